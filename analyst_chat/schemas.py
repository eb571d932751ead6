from typing import Any, Dict, List, Literal, Optional, Union

from pydantic import BaseModel, Field


MessageRole = Literal["system", "user", "assistant", "tool"]
ArtifactKind = Literal["text", "code", "sheet", "image"]
DeltaType = Literal[
    "text-delta",
    "code-delta",
    "sheet-delta",
    "image-delta",
    "title",
    "id",
    "kind",
    "clear",
    "suggestion",
    "finish",
]
ARTIFACT_KINDS = ("text", "code", "sheet", "image")


class ChatMessage(BaseModel):
    id: Optional[str] = None
    role: MessageRole
    content: Any = ""
    created_at: Optional[str] = Field(default=None, alias="createdAt")

    model_config = {"extra": "allow", "populate_by_name": True}


class ChatRequest(BaseModel):
    id: str = Field(min_length=1)
    messages: List[ChatMessage]
    selected_chat_model: str = Field(alias="selectedChatModel")

    model_config = {"populate_by_name": True}


class SuggestionRecord(BaseModel):
    id: str
    document_id: str = Field(alias="documentId")
    original_text: str = Field(alias="originalText")
    suggested_text: str = Field(alias="suggestedText")
    description: str = ""
    is_resolved: bool = Field(default=False, alias="isResolved")

    model_config = {"populate_by_name": True}


class DeltaEnvelope(BaseModel):
    type: DeltaType
    content: Union[SuggestionRecord, str] = ""

    def to_wire(self) -> Dict[str, Any]:
        if isinstance(self.content, SuggestionRecord):
            return {"type": self.type, "content": self.content.model_dump(by_alias=True)}
        return {"type": self.type, "content": self.content}


# Tool parameter schemas. These double as the JSON schema shown to the model.


class GetWeatherParams(BaseModel):
    latitude: Optional[float] = Field(default=None, description="Latitude of the location")
    longitude: Optional[float] = Field(default=None, description="Longitude of the location")


class GetFinanceParams(BaseModel):
    symbol: Optional[str] = Field(default=None, description="Stock or cryptocurrency symbol (e.g., AAPL, BTC-USD)")
    data_type: Literal["quote", "overview", "news", "market-heatmap"] = Field(
        alias="dataType",
        description="Type of data to retrieve: quote (latest price), overview (company info), news, or market-heatmap",
    )

    model_config = {"populate_by_name": True}


class WebSearchParams(BaseModel):
    query: str = Field(min_length=1, description="The search query to look up on the web")


class QueryDatabaseParams(BaseModel):
    query: str = Field(min_length=1, description="The SQL query to execute on the analytics database")
    query_type: Literal["analytics", "insert", "update"] = Field(
        alias="queryType", description="Type of database operation"
    )
    description: Optional[str] = Field(default=None, description="Human-readable description of what the query does")

    model_config = {"populate_by_name": True}


class CreateDocumentParams(BaseModel):
    title: str = Field(min_length=1)
    kind: ArtifactKind


class UpdateDocumentParams(BaseModel):
    id: str = Field(min_length=1, description="The ID of the document to update")
    description: str = Field(description="The description of changes that need to be made")


class RequestSuggestionsParams(BaseModel):
    document_id: str = Field(alias="documentId", min_length=1, description="The ID of the document to request edits")

    model_config = {"populate_by_name": True}

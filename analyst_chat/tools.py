"""Named tools the chat model may call during a turn.

Every tool is a closed record of name, description, pydantic parameter model
and async ``execute``. ``run_tool`` is the only way the orchestrator invokes
one: arguments are validated before ``execute`` runs, and any failure comes
back as a ``{"error", "message"}`` value rather than an exception, so one
broken call never ends the turn.
"""

import json
import logging
import re
import uuid
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, List, Optional, Type

from pydantic import BaseModel, ValidationError

from .analytics import AnalyticsDatabase
from .config import AppSettings
from .db import Database
from .documents import create_document_content, generate_suggestions, update_document_content
from .finance import AlphaVantageClient, get_finance
from .llm import LLMClient
from .query_gate import apply_row_ceiling, validate_query
from .schemas import (
    CreateDocumentParams,
    DeltaEnvelope,
    GetFinanceParams,
    GetWeatherParams,
    QueryDatabaseParams,
    RequestSuggestionsParams,
    SuggestionRecord,
    UpdateDocumentParams,
    WebSearchParams,
)
from .stream import DataStream
from .tavily import TavilyClient, web_search
from .weather import WeatherClient

logger = logging.getLogger("uvicorn.error")

ACTIVE_TOOLS = [
    "getWeather",
    "createDocument",
    "updateDocument",
    "requestSuggestions",
    "getFinance",
    "webSearch",
    "queryDatabase",
]
ANALYTICS_TABLES = "analytics_users, sales, user_events, product_performance, marketing_campaigns"
_FIRST_INT_RE = re.compile(r"(\d+)")


@dataclass
class Tool:
    name: str
    description: str
    params_model: Type[BaseModel]
    execute: Callable[[Any], Awaitable[Any]]

    def spec(self) -> Dict[str, Any]:
        return {
            "type": "function",
            "function": {
                "name": self.name,
                "description": self.description,
                "parameters": self.params_model.model_json_schema(),
            },
        }


@dataclass
class ToolContext:
    settings: AppSettings
    db: Database
    analytics: AnalyticsDatabase
    llm_client: LLMClient
    tavily_client: TavilyClient
    finance_client: AlphaVantageClient
    weather_client: WeatherClient
    stream: DataStream
    user_id: str


def tool_error(code: str, message: str, **extra: Any) -> Dict[str, Any]:
    return {"error": code, "message": message, **extra}


def _parse_arguments(raw_args: Any) -> Dict[str, Any]:
    if raw_args is None or raw_args == "":
        return {}
    if isinstance(raw_args, dict):
        return raw_args
    parsed = json.loads(raw_args)
    if not isinstance(parsed, dict):
        raise ValueError("tool arguments must be a JSON object")
    return parsed


async def run_tool(tool: Tool, raw_args: Any) -> Any:
    try:
        args = _parse_arguments(raw_args)
        params = tool.params_model.model_validate(args)
    except (ValueError, ValidationError) as exc:
        logger.warning("Tool %s received invalid arguments: %s", tool.name, exc)
        return tool_error("invalid_arguments", str(exc))
    try:
        return await tool.execute(params)
    except Exception as exc:
        logger.exception("Tool %s failed", tool.name)
        return tool_error("tool_failed", str(exc) or exc.__class__.__name__)


async def run_tool_call(tools: Dict[str, Tool], name: str, raw_args: Any) -> Any:
    tool = tools.get(name)
    if tool is None:
        return tool_error("unknown_tool", f"Tool '{name}' is not available in this conversation")
    return await run_tool(tool, raw_args)


# Data tools


def _get_weather(ctx: ToolContext):
    async def execute(params: GetWeatherParams) -> Dict[str, Any]:
        latitude = params.latitude if params.latitude is not None else ctx.settings.weather_latitude
        longitude = params.longitude if params.longitude is not None else ctx.settings.weather_longitude
        return await ctx.weather_client.forecast(latitude, longitude)

    return execute


def _get_finance(ctx: ToolContext):
    async def execute(params: GetFinanceParams) -> Dict[str, Any]:
        return await get_finance(ctx.finance_client, params.symbol, params.data_type)

    return execute


def _web_search(ctx: ToolContext):
    async def execute(params: WebSearchParams) -> Dict[str, Any]:
        return await web_search(ctx.tavily_client, params.query)

    return execute


async def _predefined_analytics(analytics: AnalyticsDatabase, query: str) -> Optional[Dict[str, Any]]:
    lower = query.lower()
    if "sum(amount)" in lower and "from sales" in lower and "join" not in lower:
        result = await analytics.sales_metrics()
        if result["success"]:
            return {
                "success": True,
                "message": "Sales metrics retrieved successfully",
                "data": result["data"],
                "query_executed": "Predefined sales metrics query",
            }
    if "top" in lower and "product" in lower:
        match = _FIRST_INT_RE.search(query)
        limit = int(match.group(1)) if match else 10
        result = await analytics.top_products(limit)
        if result["success"]:
            return {
                "success": True,
                "message": f"Top {limit} products by revenue",
                "data": result["data"],
                "query_executed": "Predefined top products query",
            }
    if "user" in lower and ("growth" in lower or "signup" in lower):
        result = await analytics.user_growth()
        if result["success"]:
            return {
                "success": True,
                "message": "User growth data retrieved",
                "data": result["data"],
                "query_executed": "Predefined user growth query",
            }
    return None


def _query_database(ctx: ToolContext):
    async def execute(params: QueryDatabaseParams) -> Dict[str, Any]:
        query = params.query
        if params.query_type == "analytics" and "initialize" in query.lower():
            result = await ctx.analytics.seed_sample_data()
            return {"success": True, "message": "Analytics database initialized with sample data", "data": result}

        validation = validate_query(query)
        if not validation.valid:
            return {
                "success": False,
                "error": "query_rejected",
                "message": f"Query validation failed: {validation.reason}",
                "suggestion": validation.suggestion,
            }

        if params.query_type == "analytics":
            predefined = await _predefined_analytics(ctx.analytics, query)
            if predefined is not None:
                return predefined

        result = await ctx.analytics.execute_query(query)
        if not result["success"]:
            return {
                "success": False,
                "error": "query_failed",
                "message": result["error"],
                "suggestion": f"Check your SQL syntax and table names. Available tables: {ANALYTICS_TABLES}",
            }
        return {
            "success": True,
            "message": params.description or f"Query executed successfully. Retrieved {result['rowCount']} rows.",
            "data": result["data"],
            "rowCount": result["rowCount"],
            "query_executed": apply_row_ceiling(query, ctx.analytics.row_ceiling),
        }

    return execute


# Document tools. These report progress on the stream and hand the model only an acknowledgment.


def _create_document(ctx: ToolContext):
    async def execute(params: CreateDocumentParams) -> Dict[str, Any]:
        doc_id = str(uuid.uuid4())
        stream = ctx.stream
        stream.write_data(DeltaEnvelope(type="id", content=doc_id))
        stream.write_data(DeltaEnvelope(type="title", content=params.title))
        stream.write_data(DeltaEnvelope(type="kind", content=params.kind))
        stream.write_data(DeltaEnvelope(type="clear", content=""))
        try:
            content = await create_document_content(ctx.llm_client, ctx.settings, stream, params.kind, params.title)
            await ctx.db.save_document(doc_id, params.title, params.kind, content, ctx.user_id)
        finally:
            stream.write_data(DeltaEnvelope(type="finish", content=""))
        return {
            "id": doc_id,
            "title": params.title,
            "kind": params.kind,
            "content": "A document was created and is now visible to the user.",
        }

    return execute


async def _owned_document(ctx: ToolContext, doc_id: str) -> Optional[Dict[str, Any]]:
    document = await ctx.db.get_document(doc_id)
    if not document or document.get("userId") != ctx.user_id:
        return None
    return document


def _update_document(ctx: ToolContext):
    async def execute(params: UpdateDocumentParams) -> Dict[str, Any]:
        document = await _owned_document(ctx, params.id)
        if document is None:
            return tool_error("not_found", "Document not found")
        stream = ctx.stream
        stream.write_data(DeltaEnvelope(type="clear", content=""))
        try:
            content = await update_document_content(ctx.llm_client, ctx.settings, stream, document, params.description)
            await ctx.db.save_document(document["id"], document["title"], document["kind"], content, ctx.user_id)
        finally:
            stream.write_data(DeltaEnvelope(type="finish", content=""))
        return {
            "id": document["id"],
            "title": document["title"],
            "kind": document["kind"],
            "content": "The document has been updated successfully.",
        }

    return execute


def _request_suggestions(ctx: ToolContext):
    async def execute(params: RequestSuggestionsParams) -> Dict[str, Any]:
        document = await _owned_document(ctx, params.document_id)
        if document is None or not document.get("content"):
            return tool_error("not_found", "Document not found")
        drafts = await generate_suggestions(ctx.llm_client, ctx.settings, document["content"])
        rows: List[Dict[str, Any]] = []
        for draft in drafts:
            record = SuggestionRecord(
                id=str(uuid.uuid4()),
                documentId=document["id"],
                originalText=draft["originalSentence"],
                suggestedText=draft["suggestedSentence"],
                description=draft["description"],
                isResolved=False,
            )
            ctx.stream.write_data(DeltaEnvelope(type="suggestion", content=record))
            rows.append(
                {
                    **record.model_dump(by_alias=True),
                    "documentCreatedAt": document["createdAt"],
                    "userId": ctx.user_id,
                }
            )
        if rows:
            await ctx.db.save_suggestions(rows)
        return {
            "id": document["id"],
            "title": document["title"],
            "kind": document["kind"],
            "message": "Suggestions have been added to the document",
        }

    return execute


def build_tools(ctx: ToolContext) -> Dict[str, Tool]:
    tools = [
        Tool(
            name="getWeather",
            description="Get the current weather at a location",
            params_model=GetWeatherParams,
            execute=_get_weather(ctx),
        ),
        Tool(
            name="getFinance",
            description="Get financial data about stocks, cryptocurrencies, or market overview",
            params_model=GetFinanceParams,
            execute=_get_finance(ctx),
        ),
        Tool(
            name="webSearch",
            description="Search the web for information",
            params_model=WebSearchParams,
            execute=_web_search(ctx),
        ),
        Tool(
            name="queryDatabase",
            description=(
                "Query the analytics database for sales, user growth, product, marketing campaign and user event "
                f"data. Tables: {ANALYTICS_TABLES}. Only SELECT, INSERT, UPDATE and DELETE are allowed; "
                "UPDATE and DELETE require a WHERE clause; no DDL; results are limited to "
                f"{ctx.settings.row_ceiling} rows."
            ),
            params_model=QueryDatabaseParams,
            execute=_query_database(ctx),
        ),
        Tool(
            name="createDocument",
            description=(
                "Create a document for writing or content creation activities. This tool will call other functions "
                "that will generate the contents of the document based on the title and kind."
            ),
            params_model=CreateDocumentParams,
            execute=_create_document(ctx),
        ),
        Tool(
            name="updateDocument",
            description="Update a document with the given description.",
            params_model=UpdateDocumentParams,
            execute=_update_document(ctx),
        ),
        Tool(
            name="requestSuggestions",
            description="Request suggestions for a document",
            params_model=RequestSuggestionsParams,
            execute=_request_suggestions(ctx),
        ),
    ]
    return {tool.name: tool for tool in tools}


def select_tools(tools: Dict[str, Tool], settings: AppSettings, selected_chat_model: str) -> Dict[str, Tool]:
    if settings.is_reasoning_model(selected_chat_model):
        return {}
    return {name: tools[name] for name in ACTIVE_TOOLS if name in tools}

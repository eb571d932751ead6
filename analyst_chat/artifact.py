"""Consumer-side reducer that folds streamed deltas into the current artifact.

The reducer owns a single document and a cursor into the delta buffer it is
fed. ``consume(buffer)`` only looks at items past the cursor, so handing it
the same (growing) buffer again, as a UI does on every re-render, never
re-applies a delta it has already seen.
"""

from dataclasses import dataclass, field, replace
from typing import Any, Callable, Dict, List, Literal, Optional, Sequence, Union

from .schemas import DeltaEnvelope, SuggestionRecord

ArtifactStatus = Literal["idle", "streaming"]
ReducerState = Literal["absent", "idle", "streaming"]
SuggestionHook = Callable[["ArtifactDocument", SuggestionRecord], "ArtifactDocument"]

CONTENT_DELTAS = ("text-delta", "code-delta", "sheet-delta", "image-delta")
APPEND_DELTAS = ("text-delta",)


@dataclass(frozen=True)
class ArtifactDocument:
    id: str = "init"
    kind: str = "text"
    title: str = ""
    content: str = ""
    status: ArtifactStatus = "streaming"
    suggestions: List[SuggestionRecord] = field(default_factory=list)


def collect_suggestion(document: ArtifactDocument, suggestion: SuggestionRecord) -> ArtifactDocument:
    return replace(document, suggestions=[*document.suggestions, suggestion])


DEFAULT_SUGGESTION_HOOKS: Dict[str, SuggestionHook] = {"text": collect_suggestion}


def _coerce(item: Union[DeltaEnvelope, Dict[str, Any]]) -> DeltaEnvelope:
    if isinstance(item, DeltaEnvelope):
        return item
    return DeltaEnvelope.model_validate(item)


def _apply_field(document: ArtifactDocument, delta: DeltaEnvelope) -> ArtifactDocument:
    content = delta.content if isinstance(delta.content, str) else ""
    if delta.type in APPEND_DELTAS:
        return replace(document, content=document.content + content)
    if delta.type in CONTENT_DELTAS:
        return replace(document, content=content)
    if delta.type == "id":
        return replace(document, id=content)
    if delta.type == "title":
        return replace(document, title=content)
    if delta.type == "kind":
        return replace(document, kind=content)
    if delta.type == "clear":
        return replace(document, content="")
    return document


class ArtifactReducer:
    def __init__(self, suggestion_hooks: Optional[Dict[str, SuggestionHook]] = None):
        self.document: Optional[ArtifactDocument] = None
        self.cursor = -1
        self.suggestion_hooks = dict(DEFAULT_SUGGESTION_HOOKS if suggestion_hooks is None else suggestion_hooks)

    @property
    def state(self) -> ReducerState:
        if self.document is None:
            return "absent"
        return self.document.status

    def reset(self) -> None:
        self.document = None
        self.cursor = -1

    def consume(self, buffer: Sequence[Union[DeltaEnvelope, Dict[str, Any]]]) -> int:
        """Apply every delta in ``buffer`` past the cursor; returns how many were applied."""
        start = self.cursor + 1
        if start >= len(buffer):
            return 0
        pending = buffer[start:]
        self.cursor = len(buffer) - 1
        for item in pending:
            self.apply(_coerce(item))
        return len(pending)

    def apply(self, delta: DeltaEnvelope) -> Optional[ArtifactDocument]:
        """Fold one delta into the current document.

        ``idle`` is terminal for an interaction, not for the document: an
        ``id`` delta naming a different document starts a fresh one, and any
        other non-finish delta reopens the current document as ``streaming``
        (an update to an existing artifact begins with ``clear``, not ``id``).
        """
        if delta.type == "suggestion":
            self._route_suggestion(delta)
            return self.document

        document = self.document
        if document is None:
            document = ArtifactDocument(status="idle" if delta.type == "finish" else "streaming")
            self.document = _apply_field(document, delta)
            return self.document

        if delta.type == "finish":
            if document.status == "streaming":
                self.document = replace(document, status="idle")
            return self.document

        if document.status == "idle":
            # A new interaction: a different id means a different document.
            if delta.type == "id" and isinstance(delta.content, str) and delta.content != document.id:
                document = ArtifactDocument()
            else:
                document = replace(document, status="streaming")

        self.document = _apply_field(document, delta)
        return self.document

    def _route_suggestion(self, delta: DeltaEnvelope) -> None:
        if self.document is None or not isinstance(delta.content, SuggestionRecord):
            return
        hook = self.suggestion_hooks.get(self.document.kind)
        if hook is not None:
            self.document = hook(self.document, delta.content)

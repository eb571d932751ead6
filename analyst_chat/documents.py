"""Kind-specific artifact authoring.

Each handler drafts document content with the model and writes the matching
content deltas onto the turn's stream as the draft grows. Text deltas carry
only the new chunk; code and sheet deltas carry the whole draft so far; an
image is sent as a single base64 delta.
"""

import json
import logging
import re
from typing import Any, Dict, List

from .config import AppSettings
from .llm import LLMClient
from .prompts import KIND_PROMPTS, SUGGESTIONS_PROMPT, update_document_prompt
from .schemas import DeltaEnvelope
from .stream import DataStream

logger = logging.getLogger("uvicorn.error")

MAX_SUGGESTIONS = 5
_FENCE_OPEN_RE = re.compile(r"^\s*```[\w+-]*\s*\n?")
_FENCE_CLOSE_RE = re.compile(r"\n?```\s*$")


def strip_code_fence(text: str) -> str:
    return _FENCE_CLOSE_RE.sub("", _FENCE_OPEN_RE.sub("", text, count=1))


async def _draft_text(llm: LLMClient, model: str, stream: DataStream, messages: List[Dict[str, Any]]) -> str:
    draft = ""
    async for chunk in llm.stream_text(model, messages):
        draft += chunk
        stream.write_data(DeltaEnvelope(type="text-delta", content=chunk))
    return draft


async def _draft_accumulated(
    llm: LLMClient,
    model: str,
    stream: DataStream,
    messages: List[Dict[str, Any]],
    delta_type: str,
) -> str:
    raw = ""
    draft = ""
    async for chunk in llm.stream_text(model, messages):
        raw += chunk
        draft = strip_code_fence(raw)
        stream.write_data(DeltaEnvelope(type=delta_type, content=draft))
    return draft


async def _draft_image(llm: LLMClient, model: str, stream: DataStream, prompt: str) -> str:
    image = await llm.generate_image(model, prompt)
    stream.write_data(DeltaEnvelope(type="image-delta", content=image))
    return image


async def _draft(
    kind: str,
    llm: LLMClient,
    settings: AppSettings,
    stream: DataStream,
    system: str,
    prompt: str,
) -> str:
    if kind == "image":
        return await _draft_image(llm, settings.image_model, stream, prompt)
    messages = [{"role": "system", "content": system}, {"role": "user", "content": prompt}]
    if kind == "code":
        return await _draft_accumulated(llm, settings.artifact_model, stream, messages, "code-delta")
    if kind == "sheet":
        return await _draft_accumulated(llm, settings.artifact_model, stream, messages, "sheet-delta")
    return await _draft_text(llm, settings.artifact_model, stream, messages)


async def create_document_content(
    llm: LLMClient, settings: AppSettings, stream: DataStream, kind: str, title: str
) -> str:
    return await _draft(kind, llm, settings, stream, KIND_PROMPTS.get(kind, KIND_PROMPTS["text"]), title)


async def update_document_content(
    llm: LLMClient, settings: AppSettings, stream: DataStream, document: Dict[str, Any], description: str
) -> str:
    kind = document.get("kind") or "text"
    system = update_document_prompt(document.get("content") or "", kind)
    return await _draft(kind, llm, settings, stream, system, description)


def _parse_suggestions(raw: str) -> List[Dict[str, str]]:
    text = strip_code_fence(raw or "").strip()
    try:
        data = json.loads(text)
    except json.JSONDecodeError:
        logger.warning("Suggestion response was not valid JSON")
        return []
    items = data.get("suggestions") if isinstance(data, dict) else data
    parsed: List[Dict[str, str]] = []
    for item in items or []:
        if not isinstance(item, dict):
            continue
        original = str(item.get("originalSentence") or "").strip()
        suggested = str(item.get("suggestedSentence") or "").strip()
        if not original or not suggested:
            continue
        parsed.append(
            {
                "originalSentence": original,
                "suggestedSentence": suggested,
                "description": str(item.get("description") or ""),
            }
        )
    return parsed[:MAX_SUGGESTIONS]


async def generate_suggestions(llm: LLMClient, settings: AppSettings, content: str) -> List[Dict[str, str]]:
    resp = await llm.chat_completion(
        model=settings.artifact_model,
        messages=[
            {"role": "system", "content": SUGGESTIONS_PROMPT},
            {"role": "user", "content": content},
        ],
        temperature=0.2,
        max_tokens=1200,
        response_format={"type": "json_object"},
    )
    choices = resp.get("choices") or []
    raw = (choices[0].get("message") or {}).get("content") if choices else ""
    return _parse_suggestions(raw or "")

import asyncio
import json
import logging
import uuid
from contextlib import aclosing
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Dict, List, Optional, Set

from .analytics import AnalyticsDatabase
from .config import AppSettings
from .db import Database, utc_now
from .finance import AlphaVantageClient
from .llm import LLMClient
from .prompts import TITLE_PROMPT, system_prompt
from .schemas import ChatMessage, ChatRequest
from .stream import DataStream
from .tavily import TavilyClient
from .tools import Tool, ToolContext, build_tools, run_tool_call, select_tools
from .weather import WeatherClient

logger = logging.getLogger("uvicorn.error")

GENERIC_ERROR = "Oops, an error occurred!"
TITLE_MAX_CHARS = 80


class TurnRejected(Exception):
    status_code = 400

    def __init__(self, detail: str):
        super().__init__(detail)
        self.detail = detail


class NoUserMessage(TurnRejected):
    status_code = 400


class DuplicateMessage(TurnRejected):
    status_code = 400


class NotChatOwner(TurnRejected):
    status_code = 401


class ChatNotFound(TurnRejected):
    status_code = 404


@dataclass
class TurnResult:
    response_messages: List[Dict[str, Any]] = field(default_factory=list)
    reasoning: str = ""
    steps: int = 0
    aborted: bool = False


FinishHook = Callable[[TurnResult], Awaitable[None]]


def message_text(content: Any) -> str:
    if isinstance(content, str):
        return content
    if isinstance(content, list):
        return " ".join(
            str(part.get("text") or "") for part in content if isinstance(part, dict) and part.get("type") == "text"
        ).strip()
    return "" if content is None else json.dumps(content, ensure_ascii=True)


def get_most_recent_user_message(messages: List[ChatMessage]) -> Optional[ChatMessage]:
    for message in reversed(messages):
        if message.role == "user" and message_text(message.content).strip():
            return message
    return None


def to_model_messages(messages: List[ChatMessage]) -> List[Dict[str, Any]]:
    converted: List[Dict[str, Any]] = []
    for message in messages:
        entry: Dict[str, Any] = {"role": message.role, "content": message_text(message.content)}
        extra = message.model_extra or {}
        for key in ("tool_calls", "tool_call_id", "name"):
            if extra.get(key):
                entry[key] = extra[key]
        converted.append(entry)
    return converted


def _safe_args(raw: str) -> Any:
    try:
        return json.loads(raw) if raw else {}
    except json.JSONDecodeError:
        return raw


def sanitize_response_messages(messages: List[Dict[str, Any]], reasoning: str = "") -> List[Dict[str, Any]]:
    """Reduce the raw step transcript to what gets stored.

    Tool calls without a matching result and empty assistant turns are
    dropped; assistant content becomes a list of typed parts, with the
    reasoning trace attached to the first stored assistant message.
    """
    answered = {m.get("tool_call_id") for m in messages if m.get("role") == "tool"}
    sanitized: List[Dict[str, Any]] = []
    reasoning_attached = False
    for message in messages:
        role = message.get("role")
        if role == "assistant":
            parts: List[Dict[str, Any]] = []
            text = message.get("content") or ""
            if text.strip():
                parts.append({"type": "text", "text": text})
            for call in message.get("tool_calls") or []:
                if call.get("id") not in answered:
                    continue
                function = call.get("function") or {}
                parts.append(
                    {
                        "type": "tool-call",
                        "toolCallId": call["id"],
                        "toolName": function.get("name"),
                        "args": _safe_args(function.get("arguments") or ""),
                    }
                )
            if not parts:
                continue
            if reasoning and not reasoning_attached:
                parts.insert(0, {"type": "reasoning", "reasoning": reasoning})
                reasoning_attached = True
            sanitized.append({"id": message.get("id") or str(uuid.uuid4()), "role": "assistant", "content": parts})
        elif role == "tool":
            sanitized.append(
                {
                    "id": message.get("id") or str(uuid.uuid4()),
                    "role": "tool",
                    "content": [
                        {
                            "type": "tool-result",
                            "toolCallId": message.get("tool_call_id"),
                            "toolName": message.get("name"),
                            "result": _safe_args(message.get("content") or ""),
                        }
                    ],
                }
            )
    return sanitized


async def run_model_loop(
    llm_client: LLMClient,
    model: str,
    messages: List[Dict[str, Any]],
    tools: Dict[str, Tool],
    stream: DataStream,
    max_steps: int,
) -> TurnResult:
    """Call the model up to ``max_steps`` times, running requested tools between calls."""
    history = list(messages)
    result = TurnResult()
    reasoning_parts: List[str] = []
    tool_specs = [tool.spec() for tool in tools.values()] or None

    for step in range(max(1, max_steps)):
        result.steps = step + 1
        text = ""
        calls = []
        finish_reason = "stop"
        async with aclosing(llm_client.stream_chat(model, history, tools=tool_specs)) as events:
            async for event in events:
                if stream.cancelled:
                    break
                if event.type == "text":
                    text += event.content
                    await stream.write_text(event.content)
                elif event.type == "reasoning":
                    reasoning_parts.append(event.content)
                    stream.write_reasoning(event.content)
                elif event.type == "tool_call":
                    calls.append(event)
                elif event.type == "finish":
                    finish_reason = event.finish_reason or finish_reason

        assistant: Dict[str, Any] = {"id": str(uuid.uuid4()), "role": "assistant", "content": text}
        if calls and not stream.cancelled:
            assistant["tool_calls"] = [
                {
                    "id": call.tool_call_id,
                    "type": "function",
                    "function": {"name": call.tool_name, "arguments": call.arguments},
                }
                for call in calls
            ]
        history.append(assistant)
        result.response_messages.append(assistant)
        if stream.cancelled:
            result.aborted = True
            break
        stream.write_step_finish(finish_reason, step)
        if not calls:
            break

        for call in calls:
            stream.write_tool_call(call.tool_call_id, call.tool_name, _safe_args(call.arguments))
            output = await run_tool_call(tools, call.tool_name, call.arguments)
            stream.write_tool_result(call.tool_call_id, call.tool_name, output)
            tool_message = {
                "id": str(uuid.uuid4()),
                "role": "tool",
                "tool_call_id": call.tool_call_id,
                "name": call.tool_name,
                "content": json.dumps(output, ensure_ascii=True, default=str),
            }
            history.append(tool_message)
            result.response_messages.append(tool_message)
            if stream.cancelled:
                result.aborted = True
                break
        if result.aborted:
            break

    result.reasoning = "".join(reasoning_parts)
    return result


async def run_turn(
    llm_client: LLMClient,
    model: str,
    messages: List[Dict[str, Any]],
    tools: Dict[str, Tool],
    stream: DataStream,
    max_steps: int,
    on_finish: FinishHook,
) -> Optional[TurnResult]:
    """Drive one turn to completion and invoke ``on_finish`` at most once.

    A fault while generating ends the stream with a single error event and
    skips ``on_finish``. A failing ``on_finish`` is logged only; output the
    client already received stands.
    """
    try:
        result = await run_model_loop(llm_client, model, messages, tools, stream, max_steps)
    except Exception:
        logger.exception("Turn failed while streaming")
        stream.write_error(GENERIC_ERROR)
        stream.end()
        return None
    try:
        await on_finish(result)
    except Exception:
        logger.exception("Failed to save response messages")
    stream.end()
    return result


async def generate_title(llm_client: LLMClient, model: str, message: ChatMessage) -> str:
    text = message_text(message.content).strip()
    fallback = text if len(text) <= TITLE_MAX_CHARS else text[: TITLE_MAX_CHARS - 3].rstrip() + "..."
    try:
        resp = await llm_client.chat_completion(
            model=model,
            messages=[{"role": "system", "content": TITLE_PROMPT}, {"role": "user", "content": text}],
            temperature=0.2,
            max_tokens=40,
        )
        choices = resp.get("choices") or []
        title = ((choices[0].get("message") or {}).get("content") or "") if choices else ""
    except Exception as exc:
        logger.warning("Title generation failed: %s", exc)
        return fallback or "New chat"
    title = title.strip().strip('"').replace(":", "")
    return title[:TITLE_MAX_CHARS] or fallback or "New chat"


class ChatOrchestrator:
    """Request-time handler for chat turns and chat deletion."""

    def __init__(
        self,
        settings: AppSettings,
        db: Database,
        analytics: AnalyticsDatabase,
        llm_client: LLMClient,
        tavily_client: TavilyClient,
        finance_client: AlphaVantageClient,
        weather_client: WeatherClient,
    ):
        self.settings = settings
        self.db = db
        self.analytics = analytics
        self.llm_client = llm_client
        self.tavily_client = tavily_client
        self.finance_client = finance_client
        self.weather_client = weather_client
        self.turn_tasks: Set[asyncio.Task] = set()

    async def resolve_chat(self, chat_id: str, user_id: str, user_message: ChatMessage) -> Dict[str, Any]:
        chat = await self.db.get_chat(chat_id)
        if chat is None:
            title = await generate_title(self.llm_client, self.settings.title_model, user_message)
            return await self.db.save_chat(chat_id, user_id, title)
        if chat["userId"] != user_id:
            logger.warning("User %s attempted to write to chat %s owned by another user", user_id, chat_id)
            raise NotChatOwner("Unauthorized")
        return chat

    async def start_turn(self, request: ChatRequest, user_id: str) -> DataStream:
        user_message = get_most_recent_user_message(request.messages)
        if user_message is None:
            raise NoUserMessage("No user message found")
        if await self.db.get_message(user_message.id) is not None:
            logger.warning("Chat %s turn rejected: message id %s already stored", request.id, user_message.id)
            raise DuplicateMessage("Message id already exists")
        await self.resolve_chat(request.id, user_id, user_message)
        await self.db.save_messages(
            request.id,
            [{"id": user_message.id, "role": "user", "content": user_message.content, "createdAt": utc_now()}],
        )

        selector = request.selected_chat_model
        reasoning = self.settings.is_reasoning_model(selector)
        stream = DataStream(smooth_delay_ms=self.settings.smooth_delay_ms)
        ctx = ToolContext(
            settings=self.settings,
            db=self.db,
            analytics=self.analytics,
            llm_client=self.llm_client,
            tavily_client=self.tavily_client,
            finance_client=self.finance_client,
            weather_client=self.weather_client,
            stream=stream,
            user_id=user_id,
        )
        tools = select_tools(build_tools(ctx), self.settings, selector)
        messages = [
            {"role": "system", "content": system_prompt(selector, reasoning=reasoning)},
            *to_model_messages(request.messages),
        ]
        logger.info("Chat %s turn started (model=%s, tools=%d)", request.id, selector, len(tools))

        async def on_finish(result: TurnResult) -> None:
            stored = sanitize_response_messages(result.response_messages, result.reasoning)
            created_at = utc_now()
            await self.db.save_messages(
                request.id,
                [{"id": m["id"], "role": m["role"], "content": m["content"], "createdAt": created_at} for m in stored],
            )

        task = asyncio.create_task(
            run_turn(
                self.llm_client,
                self.settings.resolve_model(selector),
                messages,
                tools,
                stream,
                self.settings.max_steps,
                on_finish,
            )
        )
        self.turn_tasks.add(task)
        task.add_done_callback(self.turn_tasks.discard)
        return stream

    async def delete_chat(self, chat_id: Optional[str], user_id: str) -> None:
        if not chat_id:
            raise ChatNotFound("Not Found")
        chat = await self.db.get_chat(chat_id)
        if chat is None:
            raise ChatNotFound("Not Found")
        if chat["userId"] != user_id:
            logger.warning("User %s attempted to delete chat %s owned by another user", user_id, chat_id)
            raise NotChatOwner("Unauthorized")
        await self.db.delete_chat(chat_id)

    async def owned_chat(self, chat_id: str, user_id: str) -> Dict[str, Any]:
        chat = await self.db.get_chat(chat_id)
        if chat is None:
            raise ChatNotFound("Not Found")
        if chat["userId"] != user_id:
            raise NotChatOwner("Unauthorized")
        return chat

    async def wait_for_turns(self) -> None:
        if self.turn_tasks:
            await asyncio.gather(*list(self.turn_tasks), return_exceptions=True)

import asyncio
import json
import re
from typing import Any, AsyncIterator, Dict, List

from .schemas import DeltaEnvelope

_WORD_RE = re.compile(r"\S+\s+")
END_EVENT = {"type": "end"}


def sse_format(event: dict) -> str:
    return f"data: {json.dumps(event)}\n\n"


class WordSmoother:
    """Coalesces raw text tokens into whole words; never reorders."""

    def __init__(self) -> None:
        self.buffer = ""

    def push(self, text: str) -> List[str]:
        self.buffer += text
        words: List[str] = []
        while True:
            match = _WORD_RE.match(self.buffer)
            if not match:
                break
            words.append(match.group(0))
            self.buffer = self.buffer[match.end():]
        return words

    def flush(self) -> str:
        rest, self.buffer = self.buffer, ""
        return rest


class DataStream:
    """Single output channel for one turn.

    Model text/reasoning and artifact deltas share one FIFO queue, so every
    consumer sees deltas in the order they were written. Writes never block;
    once the stream has ended (or the client went away) further writes are
    dropped.
    """

    def __init__(self, smooth_delay_ms: int = 0):
        self.queue: asyncio.Queue = asyncio.Queue()
        self.smoother = WordSmoother()
        self.smooth_delay = max(0, smooth_delay_ms) / 1000.0
        self.closed = False
        self.cancelled = False
        self.artifact_open = False

    def _put(self, event: Dict[str, Any]) -> None:
        if self.closed:
            return
        self.queue.put_nowait(event)

    def _flush_text(self) -> None:
        rest = self.smoother.flush()
        if rest:
            self._put({"type": "text", "content": rest})

    async def write_text(self, text: str) -> None:
        for word in self.smoother.push(text):
            self._put({"type": "text", "content": word})
            if self.smooth_delay:
                await asyncio.sleep(self.smooth_delay)

    def write_reasoning(self, text: str) -> None:
        self._flush_text()
        self._put({"type": "reasoning", "content": text})

    def write_data(self, delta: DeltaEnvelope) -> None:
        self._flush_text()
        if delta.type == "finish":
            if not self.artifact_open:
                return
            self.artifact_open = False
        elif delta.type != "suggestion":
            self.artifact_open = True
        self._put({"type": "data", "delta": delta.to_wire()})

    def write_tool_call(self, call_id: str, name: str, args: Any) -> None:
        self._flush_text()
        self._put({"type": "tool-call", "toolCallId": call_id, "toolName": name, "args": args})

    def write_tool_result(self, call_id: str, name: str, result: Any) -> None:
        self._flush_text()
        self._put({"type": "tool-result", "toolCallId": call_id, "toolName": name, "result": result})

    def write_step_finish(self, finish_reason: str, step: int) -> None:
        self._flush_text()
        self._put({"type": "finish-step", "finishReason": finish_reason, "step": step})

    def write_error(self, message: str) -> None:
        self._flush_text()
        self._put({"type": "error", "content": message})

    def end(self) -> None:
        """Emit the single end-of-turn event; closes any artifact left open."""
        if self.closed:
            return
        self._flush_text()
        if self.artifact_open:
            self.write_data(DeltaEnvelope(type="finish", content=""))
        self._put(dict(END_EVENT))
        self.closed = True

    def cancel(self) -> None:
        """Mark the consumer as gone; the producer should stop generating."""
        self.closed = True
        self.cancelled = True

    async def events(self) -> AsyncIterator[Dict[str, Any]]:
        while True:
            event = await self.queue.get()
            yield event
            if event.get("type") == END_EVENT["type"]:
                return

    def drain(self) -> List[Dict[str, Any]]:
        items: List[Dict[str, Any]] = []
        while not self.queue.empty():
            items.append(self.queue.get_nowait())
        return items


async def sse_body(stream: DataStream) -> AsyncIterator[str]:
    """Render a turn's events as server-sent events.

    If the client disconnects the generator is closed and the stream stops
    accepting writes; the producing task keeps running so its completion hook
    can still persist the assistant output.
    """
    delivered = False
    try:
        async for event in stream.events():
            yield sse_format(event)
        delivered = True
    finally:
        if not delivered and not stream.closed:
            stream.cancel()

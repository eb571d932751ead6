import asyncio
import json

import pytest

from analyst_chat.schemas import DeltaEnvelope
from analyst_chat.stream import DataStream, WordSmoother, sse_body, sse_format


def test_word_smoother_emits_whole_words_in_order():
    smoother = WordSmoother()
    assert smoother.push("Hel") == []
    assert smoother.push("lo wor") == ["Hello "]
    assert smoother.push("ld and ") == ["world ", "and "]
    assert smoother.flush() == ""
    smoother.push("tail")
    assert smoother.flush() == "tail"


@pytest.mark.asyncio
async def test_text_is_flushed_before_data_deltas():
    stream = DataStream()
    await stream.write_text("Creating a doc")
    stream.write_data(DeltaEnvelope(type="id", content="d1"))
    stream.end()
    events = stream.drain()
    assert [e["type"] for e in events] == ["text", "text", "text", "data", "data", "end"]
    assert "".join(e["content"] for e in events[:3]) == "Creating a doc"
    assert events[4]["delta"] == {"type": "finish", "content": ""}


@pytest.mark.asyncio
async def test_finish_emitted_once_per_artifact():
    stream = DataStream()
    stream.write_data(DeltaEnvelope(type="finish", content=""))
    stream.write_data(DeltaEnvelope(type="id", content="d1"))
    stream.write_data(DeltaEnvelope(type="finish", content=""))
    stream.end()
    deltas = [e["delta"]["type"] for e in stream.drain() if e["type"] == "data"]
    assert deltas == ["id", "finish"]


@pytest.mark.asyncio
async def test_end_is_emitted_once_and_writes_after_end_dropped():
    stream = DataStream()
    stream.end()
    stream.end()
    await stream.write_text("late words ")
    stream.write_error("late")
    events = stream.drain()
    assert events == [{"type": "end"}]


@pytest.mark.asyncio
async def test_sse_body_frames_each_event():
    stream = DataStream()
    await stream.write_text("hi ")
    stream.end()
    frames = [frame async for frame in sse_body(stream)]
    assert frames == [sse_format({"type": "text", "content": "hi "}), sse_format({"type": "end"})]
    assert json.loads(frames[0][len("data: "):].strip()) == {"type": "text", "content": "hi "}


@pytest.mark.asyncio
async def test_closing_body_early_cancels_stream():
    stream = DataStream()
    await stream.write_text("one ")
    body = sse_body(stream)
    first = await asyncio.wait_for(body.__anext__(), timeout=1)
    assert "one" in first
    await body.aclose()
    assert stream.cancelled
    await stream.write_text("two ")
    assert stream.drain() == []

import sqlite3
from pathlib import Path

import pytest

from analyst_chat.analytics import AnalyticsDatabase
from analyst_chat.db import Database


@pytest.mark.asyncio
async def test_db_init_creates_tables(tmp_path: Path):
    db = Database(str(tmp_path / "schema.db"))
    await db.init()
    rows = await db.fetchall("SELECT name FROM sqlite_master WHERE type='table'")
    tables = {row["name"] for row in rows}
    assert {"chats", "messages", "documents", "suggestions"}.issubset(tables)


@pytest.mark.asyncio
async def test_chat_and_message_records(tmp_path: Path):
    db = Database(str(tmp_path / "chat.db"))
    await db.init()
    chat = await db.save_chat("c1", "u1", "First chat")
    assert set(chat) == {"id", "userId", "title", "createdAt"}
    assert await db.get_chat("c1") == chat

    saved = await db.save_messages(
        "c1",
        [
            {"id": "m1", "role": "user", "content": "123"},
            {"id": "m2", "role": "assistant", "content": [{"type": "text", "text": "Hi"}]},
        ],
    )
    assert set(saved[0]) == {"id", "chatId", "role", "content", "createdAt"}
    with pytest.raises(sqlite3.IntegrityError):
        await db.save_messages("c1", [{"id": "m1", "role": "user", "content": "changed"}])
    assert (await db.get_message("m1"))["chatId"] == "c1"

    messages = await db.list_messages("c1")
    assert [m["content"] for m in messages] == ["123", [{"type": "text", "text": "Hi"}]]
    assert await db.count_messages("c1") == 2


@pytest.mark.asyncio
async def test_delete_chat_removes_its_messages_only(tmp_path: Path):
    db = Database(str(tmp_path / "chat.db"))
    await db.init()
    await db.save_chat("c1", "u1", "One")
    await db.save_chat("c2", "u1", "Two")
    await db.save_messages("c1", [{"id": "m1", "role": "user", "content": "a"}])
    await db.save_messages("c2", [{"id": "m2", "role": "user", "content": "b"}])
    await db.delete_chat("c1")
    assert await db.get_chat("c1") is None
    assert await db.count_messages("c1") == 0
    assert await db.count_messages("c2") == 1
    assert [c["id"] for c in await db.list_chats("u1")] == ["c2"]


@pytest.mark.asyncio
async def test_documents_are_versioned(tmp_path: Path):
    db = Database(str(tmp_path / "chat.db"))
    await db.init()
    await db.save_document("d1", "Doc", "text", "v1", "u1")
    await db.save_document("d1", "Doc", "text", "v2", "u1")
    versions = await db.list_documents("d1")
    assert [v["content"] for v in versions] == ["v1", "v2"]
    assert (await db.get_document("d1"))["content"] == "v2"
    assert await db.get_document("missing") is None


@pytest.mark.asyncio
async def test_analytics_seed_is_idempotent(tmp_path: Path):
    analytics = AnalyticsDatabase(str(tmp_path / "analytics.db"), row_ceiling=2)
    await analytics.init()
    first = await analytics.seed_sample_data()
    second = await analytics.seed_sample_data()
    assert first["message"] == "Sample data created successfully"
    assert second["message"] == "Sample data already exists"

    result = await analytics.execute_query("SELECT * FROM sales")
    assert result["success"] is True
    assert result["rowCount"] == 2

    top = await analytics.top_products(500)
    assert len(top["data"]) == 3


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "query",
    [
        "SELECT * FROM sales -- every sale",
        "SELECT * FROM sales /* LIMIT 5 */",
        "SELECT * FROM (SELECT * FROM sales LIMIT 1000)",
    ],
)
async def test_row_ceiling_holds_when_limit_text_is_ineffective(tmp_path: Path, query: str):
    analytics = AnalyticsDatabase(str(tmp_path / "analytics.db"), row_ceiling=3)
    await analytics.init()
    for idx in range(10):
        await analytics._fetch(
            "INSERT INTO sales(id, product_name, amount, sale_date) VALUES (?,?,?,?)",
            (f"sale-{idx}", "Widget", 10.0 + idx, "2024-05-01"),
        )

    result = await analytics.execute_query(query)
    assert result["success"] is True
    assert result["rowCount"] == 3

import json
import uuid
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List, Optional, Tuple

import aiosqlite


def utc_now() -> str:
    return datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")


def _json_dumps(value: Any) -> str:
    return json.dumps(value, ensure_ascii=True)


def _json_loads(value: Optional[str]) -> Any:
    if not value:
        return ""
    try:
        return json.loads(value)
    except Exception:
        return value


class Database:
    def __init__(self, path: str):
        self.path = path

    async def init(self) -> None:
        async with aiosqlite.connect(self.path) as db:
            await db.executescript(
                """
                PRAGMA journal_mode=WAL;
                CREATE TABLE IF NOT EXISTS chats(
                    id TEXT PRIMARY KEY,
                    user_id TEXT NOT NULL,
                    title TEXT,
                    created_at TEXT
                );
                CREATE TABLE IF NOT EXISTS messages(
                    id TEXT PRIMARY KEY,
                    chat_id TEXT NOT NULL,
                    role TEXT,
                    content TEXT,
                    created_at TEXT
                );
                CREATE INDEX IF NOT EXISTS idx_messages_chat ON messages(chat_id, created_at);
                CREATE TABLE IF NOT EXISTS documents(
                    id TEXT NOT NULL,
                    created_at TEXT NOT NULL,
                    title TEXT,
                    kind TEXT DEFAULT 'text',
                    content TEXT,
                    user_id TEXT NOT NULL,
                    PRIMARY KEY (id, created_at)
                );
                CREATE TABLE IF NOT EXISTS suggestions(
                    id TEXT PRIMARY KEY,
                    document_id TEXT NOT NULL,
                    document_created_at TEXT,
                    original_text TEXT,
                    suggested_text TEXT,
                    description TEXT,
                    is_resolved INTEGER DEFAULT 0,
                    user_id TEXT NOT NULL,
                    created_at TEXT
                );
                """
            )
            await db.commit()

    async def execute(self, query: str, params: Tuple[Any, ...] = ()) -> None:
        async with aiosqlite.connect(self.path) as db:
            await db.execute(query, params)
            await db.commit()

    async def executemany(self, query: str, rows: Iterable[Tuple[Any, ...]]) -> None:
        async with aiosqlite.connect(self.path) as db:
            await db.executemany(query, list(rows))
            await db.commit()

    async def fetchall(self, query: str, params: Tuple[Any, ...] = ()) -> List[aiosqlite.Row]:
        async with aiosqlite.connect(self.path) as db:
            db.row_factory = aiosqlite.Row
            cursor = await db.execute(query, params)
            rows = await cursor.fetchall()
            await cursor.close()
            return rows

    async def fetchone(self, query: str, params: Tuple[Any, ...] = ()) -> Optional[aiosqlite.Row]:
        rows = await self.fetchall(query, params)
        return rows[0] if rows else None

    # Chats

    async def get_chat(self, chat_id: str) -> Optional[dict]:
        row = await self.fetchone("SELECT id, user_id, title, created_at FROM chats WHERE id=?", (chat_id,))
        if not row:
            return None
        return {"id": row["id"], "userId": row["user_id"], "title": row["title"], "createdAt": row["created_at"]}

    async def save_chat(self, chat_id: str, user_id: str, title: str) -> dict:
        created_at = utc_now()
        await self.execute(
            "INSERT INTO chats(id, user_id, title, created_at) VALUES (?,?,?,?)",
            (chat_id, user_id, title, created_at),
        )
        return {"id": chat_id, "userId": user_id, "title": title, "createdAt": created_at}

    async def list_chats(self, user_id: str, limit: int = 100) -> List[dict]:
        rows = await self.fetchall(
            "SELECT id, user_id, title, created_at FROM chats WHERE user_id=? ORDER BY created_at DESC LIMIT ?",
            (user_id, limit),
        )
        return [
            {"id": r["id"], "userId": r["user_id"], "title": r["title"], "createdAt": r["created_at"]} for r in rows
        ]

    async def delete_chat(self, chat_id: str) -> None:
        async with aiosqlite.connect(self.path) as db:
            await db.execute("DELETE FROM messages WHERE chat_id=?", (chat_id,))
            await db.execute("DELETE FROM chats WHERE id=?", (chat_id,))
            await db.commit()

    # Messages

    async def save_messages(self, chat_id: str, messages: List[Dict[str, Any]]) -> List[dict]:
        saved: List[dict] = []
        rows: List[Tuple[Any, ...]] = []
        for msg in messages:
            record = {
                "id": msg.get("id") or str(uuid.uuid4()),
                "chatId": chat_id,
                "role": msg.get("role"),
                "content": msg.get("content"),
                "createdAt": msg.get("createdAt") or utc_now(),
            }
            rows.append(
                (record["id"], chat_id, record["role"], _json_dumps(record["content"]), record["createdAt"])
            )
            saved.append(record)
        if rows:
            await self.executemany(
                "INSERT INTO messages(id, chat_id, role, content, created_at) VALUES (?,?,?,?,?)",
                rows,
            )
        return saved

    async def get_message(self, message_id: str) -> Optional[dict]:
        row = await self.fetchone("SELECT id, chat_id, role FROM messages WHERE id=?", (message_id,))
        if not row:
            return None
        return {"id": row["id"], "chatId": row["chat_id"], "role": row["role"]}

    async def list_messages(self, chat_id: str, limit: int = 500) -> List[dict]:
        rows = await self.fetchall(
            "SELECT id, chat_id, role, content, created_at FROM messages WHERE chat_id=? "
            "ORDER BY created_at ASC, rowid ASC LIMIT ?",
            (chat_id, limit),
        )
        return [
            {
                "id": r["id"],
                "chatId": r["chat_id"],
                "role": r["role"],
                "content": _json_loads(r["content"]),
                "createdAt": r["created_at"],
            }
            for r in rows
        ]

    async def count_messages(self, chat_id: Optional[str] = None) -> int:
        if chat_id:
            row = await self.fetchone("SELECT COUNT(*) AS cnt FROM messages WHERE chat_id=?", (chat_id,))
        else:
            row = await self.fetchone("SELECT COUNT(*) AS cnt FROM messages")
        return int(row["cnt"]) if row else 0

    # Documents

    async def save_document(self, doc_id: str, title: str, kind: str, content: str, user_id: str) -> dict:
        created_at = utc_now()
        await self.execute(
            "INSERT INTO documents(id, created_at, title, kind, content, user_id) VALUES (?,?,?,?,?,?)",
            (doc_id, created_at, title, kind, content, user_id),
        )
        return {"id": doc_id, "createdAt": created_at, "title": title, "kind": kind, "content": content, "userId": user_id}

    async def list_documents(self, doc_id: str) -> List[dict]:
        rows = await self.fetchall(
            "SELECT id, created_at, title, kind, content, user_id FROM documents WHERE id=? ORDER BY created_at ASC",
            (doc_id,),
        )
        return [
            {
                "id": r["id"],
                "createdAt": r["created_at"],
                "title": r["title"],
                "kind": r["kind"],
                "content": r["content"],
                "userId": r["user_id"],
            }
            for r in rows
        ]

    async def get_document(self, doc_id: str) -> Optional[dict]:
        versions = await self.list_documents(doc_id)
        return versions[-1] if versions else None

    # Suggestions

    async def save_suggestions(self, suggestions: List[Dict[str, Any]]) -> None:
        created_at = utc_now()
        await self.executemany(
            "INSERT INTO suggestions(id, document_id, document_created_at, original_text, suggested_text, "
            "description, is_resolved, user_id, created_at) VALUES (?,?,?,?,?,?,?,?,?)",
            [
                (
                    s["id"],
                    s["documentId"],
                    s.get("documentCreatedAt"),
                    s["originalText"],
                    s["suggestedText"],
                    s.get("description", ""),
                    1 if s.get("isResolved") else 0,
                    s["userId"],
                    created_at,
                )
                for s in suggestions
            ],
        )

    async def list_suggestions(self, document_id: str) -> List[dict]:
        rows = await self.fetchall(
            "SELECT * FROM suggestions WHERE document_id=? ORDER BY created_at ASC", (document_id,)
        )
        return [
            {
                "id": r["id"],
                "documentId": r["document_id"],
                "originalText": r["original_text"],
                "suggestedText": r["suggested_text"],
                "description": r["description"],
                "isResolved": bool(r["is_resolved"]),
            }
            for r in rows
        ]

"""SQLite-backed repository for conversations and their messages."""

from __future__ import annotations

import uuid
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

import aiosqlite

ConversationRecord = dict[str, Any]
MessageRecord = dict[str, Any]

TITLE_MAX_LENGTH = 100


def _normalize_db_timestamp(value: str | None) -> str | None:
    """Convert SQLite timestamp strings to ISO8601 in UTC."""

    if value is None:
        return None
    try:
        parsed = datetime.fromisoformat(value)
    except ValueError:
        return value
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    else:
        parsed = parsed.astimezone(timezone.utc)
    return parsed.isoformat()


class ConversationRepository:
    """Persist conversations and the user/assistant messages exchanged in them."""

    def __init__(self, database_path: Path):
        self._path = database_path
        self._connection: aiosqlite.Connection | None = None

    async def initialize(self) -> None:
        """Open the SQLite connection and ensure tables exist."""

        if self._connection is not None:
            return

        self._path.parent.mkdir(parents=True, exist_ok=True)
        self._connection = await aiosqlite.connect(self._path)
        self._connection.row_factory = aiosqlite.Row
        await self._connection.execute("PRAGMA journal_mode=WAL;")
        await self._connection.execute("PRAGMA foreign_keys=ON;")
        await self._create_schema()

    async def _create_schema(self) -> None:
        assert self._connection is not None
        await self._connection.executescript(
            """
            CREATE TABLE IF NOT EXISTS conversations (
                id TEXT PRIMARY KEY,
                title TEXT,
                created_at DATETIME DEFAULT CURRENT_TIMESTAMP,
                updated_at DATETIME DEFAULT CURRENT_TIMESTAMP
            );

            CREATE TABLE IF NOT EXISTS messages (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                conversation_id TEXT NOT NULL REFERENCES conversations(id) ON DELETE CASCADE,
                role TEXT NOT NULL,
                content TEXT NOT NULL,
                created_at DATETIME DEFAULT CURRENT_TIMESTAMP
            );

            CREATE INDEX IF NOT EXISTS idx_messages_conversation_id ON messages(conversation_id);
            CREATE INDEX IF NOT EXISTS idx_conversations_updated_at ON conversations(updated_at);
            """
        )
        await self._connection.commit()

    async def close(self) -> None:
        if self._connection is not None:
            await self._connection.close()
            self._connection = None

    async def create_conversation(self, title: str | None = None) -> str:
        """Insert a new conversation and return its id."""

        assert self._connection is not None
        conversation_id = uuid.uuid4().hex
        stored_title = title.strip()[:TITLE_MAX_LENGTH] if title else None
        await self._connection.execute(
            "INSERT INTO conversations(id, title) VALUES (?, ?)",
            (conversation_id, stored_title),
        )
        await self._connection.commit()
        return conversation_id

    async def conversation_exists(self, conversation_id: str) -> bool:
        """Return True if the conversation is present in the database."""

        assert self._connection is not None
        cursor = await self._connection.execute(
            "SELECT 1 FROM conversations WHERE id = ? LIMIT 1",
            (conversation_id,),
        )
        row = await cursor.fetchone()
        await cursor.close()
        return row is not None

    async def append_message(self, conversation_id: str, role: str, content: str) -> int:
        """Persist a single message and bump the conversation's ``updated_at``."""

        assert self._connection is not None
        cursor = await self._connection.execute(
            "INSERT INTO messages(conversation_id, role, content) VALUES (?, ?, ?)",
            (conversation_id, role, content),
        )
        try:
            inserted_id = cursor.lastrowid
        finally:
            await cursor.close()
        await self._connection.execute(
            "UPDATE conversations SET updated_at = CURRENT_TIMESTAMP WHERE id = ?",
            (conversation_id,),
        )
        await self._connection.commit()
        if inserted_id is None:  # pragma: no cover - defensive
            raise RuntimeError("Insert failed: lastrowid is None")
        return int(inserted_id)

    async def get_messages(self, conversation_id: str) -> list[MessageRecord]:
        """Return conversation messages ordered by insertion."""

        assert self._connection is not None
        cursor = await self._connection.execute(
            """
            SELECT id, role, content, created_at
            FROM messages
            WHERE conversation_id = ?
            ORDER BY id ASC
            """,
            (conversation_id,),
        )
        rows = await cursor.fetchall()
        await cursor.close()
        return [
            {
                "message_id": row["id"],
                "role": row["role"],
                "content": row["content"],
                "created_at": _normalize_db_timestamp(row["created_at"]),
            }
            for row in rows
        ]

    async def list_conversations(self) -> list[ConversationRecord]:
        """Return conversations, most recently updated first."""

        assert self._connection is not None
        cursor = await self._connection.execute(
            """
            SELECT id, title, created_at, updated_at
            FROM conversations
            ORDER BY updated_at DESC, rowid DESC
            """
        )
        rows = await cursor.fetchall()
        await cursor.close()
        return [
            {
                "id": row["id"],
                "title": row["title"],
                "created_at": _normalize_db_timestamp(row["created_at"]),
                "updated_at": _normalize_db_timestamp(row["updated_at"]),
            }
            for row in rows
        ]

    async def update_title(self, conversation_id: str, title: str) -> None:
        assert self._connection is not None
        await self._connection.execute(
            "UPDATE conversations SET title = ?, updated_at = CURRENT_TIMESTAMP WHERE id = ?",
            (title.strip()[:TITLE_MAX_LENGTH], conversation_id),
        )
        await self._connection.commit()

    async def delete_conversation(self, conversation_id: str) -> bool:
        """Remove the conversation and, through the cascade, its messages."""

        assert self._connection is not None
        cursor = await self._connection.execute(
            "DELETE FROM conversations WHERE id = ?", (conversation_id,)
        )
        deleted = cursor.rowcount
        await cursor.close()
        await self._connection.commit()
        return bool(deleted)


__all__ = ["ConversationRepository", "TITLE_MAX_LENGTH"]

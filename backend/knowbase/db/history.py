"""Session and chat transcript persistence."""

from __future__ import annotations

import logging
import sqlite3

from knowbase.core.errors import SessionNotFound
from knowbase.db.sqlite import SQLiteDatabase
from knowbase.models.entities import ChatRecord, SessionRecord
from knowbase.utils.ids import new_id
from knowbase.utils.time import ms_to_datetime, now_ms

logger = logging.getLogger(__name__)


class ChatHistoryStore:
    """CRUD over the ``sessions`` and ``messages`` tables."""

    def __init__(self, db: SQLiteDatabase) -> None:
        self.db = db

    def create_session(self, name: str, model: str) -> SessionRecord:
        session_id = new_id("ses")
        created_at = now_ms()
        with self.db.transaction() as cursor:
            cursor.execute(
                "INSERT INTO sessions (id, name, model, created_at) VALUES (?, ?, ?, ?)",
                [session_id, name, model, created_at],
            )
        logger.info("Created session %s (%s)", session_id, name)
        return SessionRecord(id=session_id, name=name, model=model, created_at=ms_to_datetime(created_at))

    def get_session(self, session_id: str) -> SessionRecord:
        row = self.db.query_one("SELECT id, name, model, created_at FROM sessions WHERE id = ?", [session_id])
        if row is None:
            raise SessionNotFound(session_id)
        return _row_to_session(row)

    def list_sessions(self) -> list[SessionRecord]:
        rows = self.db.query(
            "SELECT id, name, model, created_at FROM sessions ORDER BY created_at DESC, rowid DESC"
        )
        return [_row_to_session(row) for row in rows]

    def update_session(self, session_id: str, name: str | None = None, model: str | None = None) -> SessionRecord:
        current = self.get_session(session_id)
        with self.db.transaction() as cursor:
            cursor.execute(
                "UPDATE sessions SET name = ?, model = ? WHERE id = ?",
                [name if name is not None else current.name, model if model is not None else current.model, session_id],
            )
        return self.get_session(session_id)

    def delete_session(self, session_id: str) -> bool:
        with self.db.transaction() as cursor:
            cursor.execute("DELETE FROM messages WHERE session_id = ?", [session_id])
            cursor.execute("DELETE FROM sessions WHERE id = ?", [session_id])
            deleted = cursor.rowcount > 0
        if deleted:
            logger.info("Deleted session %s", session_id)
        return deleted

    def save_message(
        self,
        session_id: str,
        content: str,
        is_user: bool,
        sources: str | None = None,
    ) -> ChatRecord:
        record = ChatRecord(
            id=new_id("msg"),
            session_id=session_id,
            content=content,
            is_user=is_user,
            timestamp=now_ms(),
            sources=sources,
        )
        with self.db.transaction() as cursor:
            cursor.execute(
                """
                INSERT INTO messages (id, session_id, content, is_user, timestamp, sources)
                VALUES (?, ?, ?, ?, ?, ?)
                """,
                [record.id, session_id, content, int(is_user), record.timestamp, sources],
            )
        return record

    def get_history(self, session_id: str) -> list[ChatRecord]:
        rows = self.db.query(
            """
            SELECT id, session_id, content, is_user, timestamp, sources
            FROM messages WHERE session_id = ?
            ORDER BY timestamp ASC, rowid ASC
            """,
            [session_id],
        )
        return [_row_to_message(row) for row in rows]

    def clear_history(self, session_id: str) -> int:
        with self.db.transaction() as cursor:
            cursor.execute("DELETE FROM messages WHERE session_id = ?", [session_id])
            removed = cursor.rowcount
        logger.info("Cleared %s messages from session %s", removed, session_id)
        return removed


def _row_to_session(row: sqlite3.Row) -> SessionRecord:
    return SessionRecord(
        id=row["id"],
        name=row["name"],
        model=row["model"],
        created_at=ms_to_datetime(row["created_at"]),
    )


def _row_to_message(row: sqlite3.Row) -> ChatRecord:
    return ChatRecord(
        id=row["id"],
        session_id=row["session_id"],
        content=row["content"],
        is_user=bool(row["is_user"]),
        timestamp=int(row["timestamp"]),
        sources=row["sources"],
    )


__all__ = ["ChatHistoryStore"]

from __future__ import annotations

import sqlite3
from typing import List

from .errors import StoreError
from .messages import ConversationSummary, DirectMessage, MessageStore
from .sqlite_backend import SQLiteBackend


def _row_to_message(row: sqlite3.Row) -> DirectMessage:
    return DirectMessage(
        id=row["id"],
        sender=row["from_user_id"],
        recipient=row["to_user_id"],
        text=row["text"],
        created_ms=row["created_ms"],
    )


class SQLiteMessageStore(MessageStore):
    """Durable direct message log backed by SQLite."""

    def __init__(self, backend: SQLiteBackend) -> None:
        self._backend = backend

    def append(self, message: DirectMessage) -> str:
        try:
            with self._backend.lock:
                self._backend.connection.execute(
                    """
                    INSERT INTO messages (id, from_user_id, to_user_id, text, created_ms)
                    VALUES (?, ?, ?, ?, ?)
                    """,
                    (message.id, message.sender, message.recipient, message.text, message.created_ms),
                )
        except sqlite3.Error as exc:
            raise StoreError(f"failed to store message {message.id}") from exc
        return message.id

    def query_conversation(self, user_a: str, user_b: str) -> List[DirectMessage]:
        try:
            with self._backend.lock:
                rows = self._backend.connection.execute(
                    """
                    SELECT id, from_user_id, to_user_id, text, created_ms
                    FROM messages
                    WHERE (from_user_id = ? AND to_user_id = ?)
                       OR (from_user_id = ? AND to_user_id = ?)
                    ORDER BY created_ms ASC, rowid ASC
                    """,
                    (user_a, user_b, user_b, user_a),
                ).fetchall()
        except sqlite3.Error as exc:
            raise StoreError("failed to read conversation") from exc
        return [_row_to_message(row) for row in rows]

    def list_conversations(self, user_id: str) -> List[ConversationSummary]:
        try:
            with self._backend.lock:
                rows = self._backend.connection.execute(
                    """
                    SELECT partner_id, text, created_ms FROM (
                        SELECT
                            CASE WHEN from_user_id = ? THEN to_user_id ELSE from_user_id END AS partner_id,
                            text,
                            created_ms,
                            ROW_NUMBER() OVER (
                                PARTITION BY CASE WHEN from_user_id = ? THEN to_user_id ELSE from_user_id END
                                ORDER BY created_ms DESC, rowid DESC
                            ) AS rn
                        FROM messages
                        WHERE (from_user_id = ? OR to_user_id = ?) AND from_user_id <> to_user_id
                    )
                    WHERE rn = 1
                    ORDER BY created_ms DESC
                    """,
                    (user_id, user_id, user_id, user_id),
                ).fetchall()
        except sqlite3.Error as exc:
            raise StoreError("failed to list conversations") from exc
        return [
            ConversationSummary(partner_id=row["partner_id"], last_text=row["text"], last_ms=row["created_ms"])
            for row in rows
        ]

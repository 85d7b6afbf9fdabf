from __future__ import annotations

import sqlite3
from typing import Any, Sequence

from .errors import StoreError
from .social import SocialGraph, UserRecord
from .sqlite_backend import SQLiteBackend


class SQLiteSocialGraph(SocialGraph):
    """Users and follow edges stored in the shared SQLite database.

    Every ``sqlite3.Error`` surfaces as :class:`StoreError`.
    """

    def __init__(self, backend: SQLiteBackend) -> None:
        self._backend = backend

    def _fetchone(self, sql: str, params: Sequence[Any]) -> sqlite3.Row | None:
        try:
            with self._backend.lock:
                return self._backend.connection.execute(sql, params).fetchone()
        except sqlite3.Error as exc:
            raise StoreError("failed to read social graph") from exc

    def _write(self, sql: str, params: Sequence[Any]) -> int:
        try:
            with self._backend.lock:
                return self._backend.connection.execute(sql, params).rowcount
        except sqlite3.Error as exc:
            raise StoreError("failed to update social graph") from exc

    def ensure_user(self, user_id: str, username: str | None = None) -> UserRecord:
        try:
            with self._backend.lock:
                conn = self._backend.connection
                conn.execute(
                    "INSERT OR IGNORE INTO users (id, username) VALUES (?, ?)",
                    (user_id, username or user_id),
                )
                row = conn.execute(
                    "SELECT id, username, dm_follow_only FROM users WHERE id = ?",
                    (user_id,),
                ).fetchone()
        except sqlite3.Error as exc:
            raise StoreError(f"failed to create user {user_id}") from exc
        return _row_to_user(row)

    def get_user(self, user_id: str) -> UserRecord | None:
        row = self._fetchone("SELECT id, username, dm_follow_only FROM users WHERE id = ?", (user_id,))
        return _row_to_user(row) if row is not None else None

    def user_exists(self, user_id: str) -> bool:
        return self._fetchone("SELECT 1 FROM users WHERE id = ?", (user_id,)) is not None

    def get_privacy_preference(self, user_id: str) -> bool | None:
        row = self._fetchone("SELECT dm_follow_only FROM users WHERE id = ?", (user_id,))
        if row is None:
            return None
        return _to_bool(row["dm_follow_only"])

    def set_privacy_preference(self, user_id: str, follow_only: bool) -> None:
        changed = self._write(
            "UPDATE users SET dm_follow_only = ? WHERE id = ?",
            (1 if follow_only else 0, user_id),
        )
        if changed == 0:
            raise KeyError(user_id)

    def follow(self, follower_id: str, followee_id: str) -> bool:
        try:
            with self._backend.lock:
                cursor = self._backend.connection.execute(
                    "INSERT OR IGNORE INTO follows (follower_id, followee_id) VALUES (?, ?)",
                    (follower_id, followee_id),
                )
        except sqlite3.IntegrityError as exc:
            raise StoreError(f"cannot follow unknown user {followee_id}") from exc
        except sqlite3.Error as exc:
            raise StoreError("failed to update social graph") from exc
        return cursor.rowcount > 0

    def unfollow(self, follower_id: str, followee_id: str) -> bool:
        removed = self._write(
            "DELETE FROM follows WHERE follower_id = ? AND followee_id = ?",
            (follower_id, followee_id),
        )
        return removed > 0

    def follow_exists(self, follower_id: str, followee_id: str) -> bool:
        row = self._fetchone(
            "SELECT 1 FROM follows WHERE follower_id = ? AND followee_id = ?",
            (follower_id, followee_id),
        )
        return row is not None


def _row_to_user(row: sqlite3.Row) -> UserRecord:
    return UserRecord(user_id=row["id"], username=row["username"], dm_follow_only=_to_bool(row["dm_follow_only"]))


def _to_bool(value: int | None) -> bool | None:
    if value is None:
        return None
    return bool(value)

from __future__ import annotations

import secrets
import sqlite3

from .errors import StoreError
from .sessions import Session, _now_ms
from .sqlite_backend import SQLiteBackend


class SQLiteSessionStore:
    """Durable session store backed by SQLite.

    The ``sessions`` table may also be written by the web application that
    logs users in; feedwire only reads, expires and deletes rows.
    """

    def __init__(self, backend: SQLiteBackend, ttl_ms: int = 24 * 60 * 60 * 1000) -> None:
        self._backend = backend
        self._ttl_ms = ttl_ms

    def create(self, user_id: str) -> Session:
        session = Session(
            user_id=user_id,
            session_token=f"st_{secrets.token_urlsafe(16)}",
            expires_at_ms=_now_ms() + self._ttl_ms,
        )
        try:
            with self._backend.lock:
                self._backend.connection.execute(
                    "INSERT INTO sessions (session_token, user_id, expires_at_ms) VALUES (?, ?, ?)",
                    (session.session_token, session.user_id, session.expires_at_ms),
                )
        except sqlite3.Error as exc:
            raise StoreError(f"failed to create session for {user_id}") from exc
        return session

    def get(self, session_token: str) -> Session | None:
        try:
            with self._backend.lock:
                row = self._backend.connection.execute(
                    "SELECT session_token, user_id, expires_at_ms FROM sessions WHERE session_token=?",
                    (session_token,),
                ).fetchone()
        except sqlite3.Error as exc:
            raise StoreError("failed to read session") from exc
        if row is None:
            return None
        session = Session(user_id=row[1], session_token=row[0], expires_at_ms=row[2])
        if session.expires_at_ms <= _now_ms():
            self.invalidate(session)
            return None
        return session

    def invalidate(self, session: Session) -> None:
        try:
            with self._backend.lock:
                self._backend.connection.execute(
                    "DELETE FROM sessions WHERE session_token=?",
                    (session.session_token,),
                )
        except sqlite3.Error as exc:
            raise StoreError("failed to delete session") from exc

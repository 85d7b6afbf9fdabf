"""Session resolution shared by the HTTP handlers and the WebSocket endpoint."""

from __future__ import annotations

import base64
import hashlib
import hmac
import secrets
import time
from dataclasses import dataclass, field
from typing import Mapping, Protocol

from .errors import AuthRejected

DEFAULT_COOKIE_NAME = "feedwire.sid"


def _now_ms() -> int:
    return int(time.time() * 1000)


@dataclass
class Session:
    user_id: str
    session_token: str
    expires_at_ms: int


class SessionStore:
    """Tracks active sessions keyed by session token."""

    def __init__(self, ttl_ms: int = 24 * 60 * 60 * 1000) -> None:
        self._ttl_ms = ttl_ms
        self._by_token: dict[str, Session] = {}

    def create(self, user_id: str) -> Session:
        session = Session(
            user_id=user_id,
            session_token=f"st_{secrets.token_urlsafe(16)}",
            expires_at_ms=_now_ms() + self._ttl_ms,
        )
        self._by_token[session.session_token] = session
        return session

    def get(self, session_token: str) -> Session | None:
        session = self._by_token.get(session_token)
        if session is None:
            return None
        if session.expires_at_ms <= _now_ms():
            self.invalidate(session)
            return None
        return session

    def invalidate(self, session: Session) -> None:
        self._by_token.pop(session.session_token, None)


class HandshakeSource(Protocol):
    @property
    def headers(self) -> Mapping[str, str]: ...

    @property
    def cookies(self) -> Mapping[str, str]: ...


@dataclass
class HandshakeContext:
    """Credentials presented by a connection that is not an aiohttp request."""

    headers: Mapping[str, str] = field(default_factory=dict)
    cookies: Mapping[str, str] = field(default_factory=dict)


class SessionValidator:
    """Resolves presented credentials to a user id.

    Browsers present the signed session cookie; other clients may send the raw
    session token as ``Authorization: Bearer <token>``. Both resolve through the
    same store, so a web session and a realtime session are interchangeable.
    """

    def __init__(self, store, secret: str, *, cookie_name: str = DEFAULT_COOKIE_NAME) -> None:
        if not secret:
            raise ValueError("session secret must not be empty")
        self._store = store
        self._secret = secret.encode("utf-8")
        self.cookie_name = cookie_name

    def sign(self, session_token: str) -> str:
        return f"{session_token}.{self._signature(session_token)}"

    def unsign(self, cookie_value: str) -> str | None:
        token, sep, signature = cookie_value.rpartition(".")
        if not sep or not token:
            return None
        if not hmac.compare_digest(signature, self._signature(token)):
            return None
        return token

    def _signature(self, value: str) -> str:
        digest = hmac.new(self._secret, value.encode("utf-8"), hashlib.sha256).digest()
        return base64.urlsafe_b64encode(digest).decode("ascii").rstrip("=")

    def _presented_token(self, ctx: HandshakeSource) -> str | None:
        cookie_value = ctx.cookies.get(self.cookie_name)
        if cookie_value:
            return self.unsign(cookie_value)
        auth_header = ctx.headers.get("Authorization")
        if auth_header and auth_header.startswith("Bearer "):
            return auth_header[len("Bearer ") :].strip() or None
        return None

    def resolve_identity(self, ctx: HandshakeSource) -> str | None:
        token = self._presented_token(ctx)
        if token is None:
            return None
        session = self._store.get(token)
        if session is None:
            return None
        return session.user_id

    def authenticate(self, ctx: HandshakeSource) -> str:
        user_id = self.resolve_identity(ctx)
        if user_id is None:
            raise AuthRejected("missing or invalid session")
        return user_id

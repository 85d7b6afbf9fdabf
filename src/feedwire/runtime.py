from __future__ import annotations

from typing import Callable

from .config import Settings
from .dispatcher import Dispatcher
from .gate import RelationshipGate
from .messages import InMemoryMessageStore, MessageStore, _now_ms
from .registry import ConnectionRegistry
from .sessions import SessionStore, SessionValidator
from .social import InMemorySocialGraph, SocialGraph
from .sqlite_backend import SQLiteBackend
from .sqlite_messages import SQLiteMessageStore
from .sqlite_sessions import SQLiteSessionStore
from .sqlite_social import SQLiteSocialGraph


class Runtime:
    def __init__(
        self,
        *,
        sessions,
        validator: SessionValidator,
        social: SocialGraph,
        messages: MessageStore,
        registry: ConnectionRegistry | None = None,
        backend: SQLiteBackend | None = None,
        close_superseded: bool = False,
        now_func: Callable[[], int] = _now_ms,
    ) -> None:
        self.sessions = sessions
        self.validator = validator
        self.social = social
        self.messages = messages
        self.registry = registry if registry is not None else ConnectionRegistry()
        self.gate = RelationshipGate(social)
        self.dispatcher = Dispatcher(self.registry)
        self.backend = backend
        self.close_superseded = close_superseded
        self.now = now_func

    def close(self) -> None:
        if self.backend is not None:
            self.backend.close()
            self.backend = None


def build_runtime(settings: Settings, *, now_func: Callable[[], int] = _now_ms) -> Runtime:
    """Wire stores for ``settings``: SQLite when a database path is set, memory otherwise."""

    backend: SQLiteBackend | None = None
    if settings.db_path is not None:
        backend = SQLiteBackend(settings.db_path)
        sessions = SQLiteSessionStore(backend, ttl_ms=settings.session_ttl_ms)
        social: SocialGraph = SQLiteSocialGraph(backend)
        messages: MessageStore = SQLiteMessageStore(backend)
    else:
        sessions = SessionStore(ttl_ms=settings.session_ttl_ms)
        social = InMemorySocialGraph()
        messages = InMemoryMessageStore()

    validator = SessionValidator(sessions, settings.session_secret, cookie_name=settings.session_cookie)
    return Runtime(
        sessions=sessions,
        validator=validator,
        social=social,
        messages=messages,
        backend=backend,
        close_superseded=settings.close_superseded,
        now_func=now_func,
    )

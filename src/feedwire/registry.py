from __future__ import annotations

import threading
from typing import Dict, List

from .connection import Connection


class ConnectionRegistry:
    """Maps each connected user to their single live connection.

    Every operation holds the registry lock, so a lookup never observes a
    half-applied register or unregister. Callers iterate only over the
    snapshot returned by :meth:`identities`.
    """

    def __init__(self) -> None:
        self._connections: Dict[str, Connection] = {}
        self._lock = threading.Lock()

    def register(self, user_id: str, connection: Connection) -> Connection | None:
        """Make ``connection`` current for ``user_id``; return the one it replaced."""

        with self._lock:
            previous = self._connections.get(user_id)
            self._connections[user_id] = connection
        if previous is connection:
            return None
        return previous

    def unregister(self, user_id: str, connection: Connection) -> bool:
        """Remove ``connection`` if it is still current for ``user_id``.

        A stale connection closing after a newer one registered leaves the
        newer entry in place.
        """

        with self._lock:
            if self._connections.get(user_id) is not connection:
                return False
            del self._connections[user_id]
            return True

    def lookup(self, user_id: str) -> Connection | None:
        with self._lock:
            return self._connections.get(user_id)

    def identities(self) -> List[str]:
        with self._lock:
            return list(self._connections)

    def __len__(self) -> int:
        with self._lock:
            return len(self._connections)

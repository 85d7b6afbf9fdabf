from __future__ import annotations

import logging
from enum import Enum
from typing import Dict

from .protocol import OutboundEvent
from .registry import ConnectionRegistry

logger = logging.getLogger(__name__)


class DeliveryResult(Enum):
    DELIVERED = "delivered"
    NOT_CONNECTED = "not_connected"
    WRITE_FAILED = "write_failed"


class Dispatcher:
    """Best-effort push of events to connected users.

    Callers are mutations that already committed, so nothing here raises on a
    missing or broken connection; the outcome is returned for logging only.
    """

    def __init__(self, registry: ConnectionRegistry) -> None:
        self._registry = registry

    def notify(self, user_id: str, event: OutboundEvent) -> DeliveryResult:
        connection = self._registry.lookup(user_id)
        if connection is None:
            return DeliveryResult.NOT_CONNECTED
        if connection.deliver(event.to_frame()):
            return DeliveryResult.DELIVERED
        logger.warning("dropping %s for %s: connection not writable", type(event).__name__, user_id)
        self._registry.unregister(user_id, connection)
        return DeliveryResult.WRITE_FAILED

    def broadcast(self, event: OutboundEvent) -> Dict[str, DeliveryResult]:
        """Notify every connected user.

        Not used by feedwire's own routes, which only ``notify`` the users a
        change concerns. It is the hook for code embedding the app, such as a
        feed service announcing a new post with ``FeedUpdate`` through
        ``app["runtime"].dispatcher``.
        """

        return {user_id: self.notify(user_id, event) for user_id in self._registry.identities()}

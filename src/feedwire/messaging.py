"""Per-connection direct messaging state machine.

A :class:`MessagingSession` moves through ``CONNECTING -> AUTHENTICATING ->
ACTIVE -> CLOSED``. It is transport neutral: the WebSocket handler and the
offline simulator both drive it, one inbound event at a time.
"""

from __future__ import annotations

import logging
from enum import Enum
from typing import Any

from .connection import CLOSE_SUPERSEDED, Connection
from .errors import AuthRejected, ProtocolError, SessionStateError, StoreError
from .gate import GateDecision
from .messages import DirectMessage, new_message_id
from .protocol import (
    ErrorNotice,
    FetchHistory,
    History,
    InboxChanged,
    MessageBlocked,
    MessageFailed,
    MessageReceived,
    MessageSent,
    OutboundEvent,
    Ready,
    SendMessage,
    parse_inbound,
)
from .runtime import Runtime
from .sessions import HandshakeSource

logger = logging.getLogger(__name__)

CLOSE_UNAUTHENTICATED = 1008
CLOSE_STORE_UNAVAILABLE = 1011


class SessionState(Enum):
    CONNECTING = "connecting"
    AUTHENTICATING = "authenticating"
    ACTIVE = "active"
    CLOSED = "closed"


class MessagingSession:
    def __init__(self, runtime: Runtime, connection: Connection) -> None:
        self._runtime = runtime
        self.connection = connection
        self.state = SessionState.CONNECTING
        self.user_id: str | None = None

    def _require(self, state: SessionState) -> None:
        if self.state is not state:
            raise SessionStateError(f"expected {state.value} session, found {self.state.value}")

    def _reply(self, event: OutboundEvent) -> None:
        self.connection.deliver(event.to_frame())

    def accept(self) -> None:
        self._require(SessionState.CONNECTING)
        self.state = SessionState.AUTHENTICATING

    def authenticate(self, ctx: HandshakeSource) -> bool:
        """Resolve the handshake credentials and register the connection.

        The session must name a user the social graph knows. On rejection the
        connection is closed and never registered.
        """

        self._require(SessionState.AUTHENTICATING)
        try:
            user_id = self._runtime.validator.authenticate(ctx)
            if not self._runtime.social.user_exists(user_id):
                raise AuthRejected(f"session names unknown user {user_id}")
        except AuthRejected as exc:
            logger.info("rejecting connection: %s", exc)
            self.state = SessionState.CLOSED
            self.connection.close(code=CLOSE_UNAUTHENTICATED, reason="unauthenticated")
            return False
        except StoreError:
            logger.exception("session lookup failed during handshake")
            self.state = SessionState.CLOSED
            self.connection.close(code=CLOSE_STORE_UNAVAILABLE, reason="store unavailable")
            return False

        self.user_id = user_id
        self.connection.user_id = user_id
        displaced = self._runtime.registry.register(user_id, self.connection)
        if displaced is not None:
            logger.info("connection for %s replaced an existing one", user_id)
            if self._runtime.close_superseded:
                displaced.close(code=CLOSE_SUPERSEDED, reason="superseded")
        self.state = SessionState.ACTIVE
        logger.info("connection authenticated for %s", user_id)
        self._reply(Ready(user_id=user_id))
        return True

    def handle(self, payload: Any) -> None:
        self._require(SessionState.ACTIVE)
        try:
            event = parse_inbound(payload)
        except ProtocolError as exc:
            logger.debug("bad event from %s: %s", self.user_id, exc.message)
            self._reply(ErrorNotice(code=exc.code, message=exc.message))
            return

        if isinstance(event, SendMessage):
            self.send_message(event)
        elif isinstance(event, FetchHistory):
            self.fetch_history(event)

    def send_message(self, event: SendMessage) -> GateDecision | None:
        """Gate, persist and deliver one direct message.

        The recipient is reached through the dispatcher, wherever they are
        connected. The sender's ``dm_self``/``new_message`` echo goes to this
        session's own connection, even if a newer connection has since replaced
        it in the registry. Returns ``None`` when the gate could not be read.
        """

        self._require(SessionState.ACTIVE)
        sender = self.user_id
        try:
            decision = self._runtime.gate.may_message(sender, event.recipient)
        except StoreError:
            logger.exception("gate check from %s to %s failed", sender, event.recipient)
            self._reply(MessageFailed())
            return None
        if decision is GateDecision.UNKNOWN_RECIPIENT:
            self._reply(ErrorNotice(code="unknown_recipient", message=f"no such user: {event.recipient}"))
            return decision
        if decision is GateDecision.BLOCKED:
            logger.info("message from %s to %s blocked by recipient preference", sender, event.recipient)
            self._reply(MessageBlocked())
            return decision

        message = DirectMessage(
            id=new_message_id(),
            sender=sender,
            recipient=event.recipient,
            text=event.text,
            created_ms=self._runtime.now(),
        )
        try:
            self._runtime.messages.append(message)
        except StoreError:
            logger.exception("failed to persist message from %s to %s", sender, event.recipient)
            self._reply(MessageFailed())
            return decision

        dispatcher = self._runtime.dispatcher
        dispatcher.notify(event.recipient, MessageReceived(sender=sender, text=event.text))
        dispatcher.notify(event.recipient, InboxChanged())
        self._reply(MessageSent(text=event.text))
        self._reply(InboxChanged())
        return decision

    def fetch_history(self, event: FetchHistory) -> None:
        self._require(SessionState.ACTIVE)
        try:
            messages = self._runtime.messages.query_conversation(self.user_id, event.with_user)
        except StoreError:
            logger.exception("failed to load history for %s with %s", self.user_id, event.with_user)
            self._reply(ErrorNotice(code="history_unavailable", message="history could not be loaded"))
            return
        self._reply(History(messages=messages))

    def close(self) -> None:
        """Unregister from the registry, then mark the session closed."""

        if self.state is SessionState.CLOSED:
            return
        if self.state is SessionState.ACTIVE:
            self._runtime.registry.unregister(self.user_id, self.connection)
            logger.info("connection closed for %s", self.user_id)
        self.state = SessionState.CLOSED

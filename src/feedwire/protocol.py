"""Wire events exchanged over a messaging connection.

Inbound and outbound events form closed sets of frozen dataclasses. Inbound
JSON is validated once, in :func:`parse_inbound`; everything past that point
works with typed events. Outbound events render themselves with
``to_frame()``.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Sequence, Union

from .errors import ProtocolError
from .messages import DirectMessage


@dataclass(frozen=True)
class SendMessage:
    recipient: str
    text: str


@dataclass(frozen=True)
class FetchHistory:
    with_user: str


InboundEvent = Union[SendMessage, FetchHistory]


@dataclass(frozen=True)
class Ready:
    user_id: str

    def to_frame(self) -> dict[str, Any]:
        return {"type": "ws_ready", "userId": self.user_id}


@dataclass(frozen=True)
class MessageReceived:
    sender: str
    text: str

    def to_frame(self) -> dict[str, Any]:
        return {"type": "dm", "from": self.sender, "text": self.text}


@dataclass(frozen=True)
class MessageSent:
    text: str

    def to_frame(self) -> dict[str, Any]:
        return {"type": "dm_self", "text": self.text}


@dataclass(frozen=True)
class MessageBlocked:
    def to_frame(self) -> dict[str, Any]:
        return {"type": "dm_blocked"}


@dataclass(frozen=True)
class MessageFailed:
    def to_frame(self) -> dict[str, Any]:
        return {"type": "dm_error"}


@dataclass(frozen=True)
class InboxChanged:
    def to_frame(self) -> dict[str, Any]:
        return {"type": "new_message"}


@dataclass(frozen=True)
class History:
    messages: Sequence[DirectMessage]

    def to_frame(self) -> dict[str, Any]:
        return {"type": "history", "messages": [message.to_api_dict() for message in self.messages]}


@dataclass(frozen=True)
class FeedUpdate:
    def to_frame(self) -> dict[str, Any]:
        return {"type": "feed_update"}


@dataclass(frozen=True)
class ErrorNotice:
    code: str
    message: str

    def to_frame(self) -> dict[str, Any]:
        return {"type": "error", "code": self.code, "message": self.message}


OutboundEvent = Union[
    Ready,
    MessageReceived,
    MessageSent,
    MessageBlocked,
    MessageFailed,
    InboxChanged,
    History,
    FeedUpdate,
    ErrorNotice,
]


def normalize_identity(value: Any) -> str | None:
    """Return ``value`` as an identity string, or ``None`` if it cannot be one.

    Browsers send numeric ids from JSON as integers; those map to their decimal
    form so ``7`` and ``"7"`` name the same user.
    """

    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return str(value)
    if isinstance(value, str) and value.strip():
        return value.strip()
    return None


def parse_inbound(payload: Any) -> InboundEvent:
    if not isinstance(payload, dict):
        raise ProtocolError("invalid_request", "event must be a JSON object")

    event_type = payload.get("type")
    if event_type == "dm":
        recipient = normalize_identity(payload.get("toUserId"))
        text = payload.get("text")
        if recipient is None or not isinstance(text, str):
            raise ProtocolError("invalid_request", "toUserId and text required")
        return SendMessage(recipient=recipient, text=text)
    if event_type == "history":
        with_user = normalize_identity(payload.get("withUser"))
        if with_user is None:
            raise ProtocolError("invalid_request", "withUser required")
        return FetchHistory(with_user=with_user)
    if not isinstance(event_type, str):
        raise ProtocolError("invalid_request", "type required")
    raise ProtocolError("unknown_type", f"unsupported event type: {event_type}")

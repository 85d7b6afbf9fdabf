from __future__ import annotations

import threading
import time
import uuid
from dataclasses import dataclass
from typing import Any, Dict, FrozenSet, List


def _now_ms() -> int:
    return int(time.time() * 1000)


def new_message_id() -> str:
    return uuid.uuid4().hex


def conversation_key(user_a: str, user_b: str) -> FrozenSet[str]:
    """The unordered pair naming a conversation."""

    return frozenset((user_a, user_b))


@dataclass(frozen=True)
class DirectMessage:
    """An immutable direct message between two identities."""

    id: str
    sender: str
    recipient: str
    text: str
    created_ms: int

    def to_api_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "from_user_id": self.sender,
            "to_user_id": self.recipient,
            "text": self.text,
            "created_at": self.created_ms,
        }


@dataclass(frozen=True)
class ConversationSummary:
    partner_id: str
    last_text: str
    last_ms: int

    def to_api_dict(self, username: str | None = None) -> dict[str, Any]:
        return {"id": self.partner_id, "username": username, "last_msg": self.last_text}


class MessageStore:
    def append(self, message: DirectMessage) -> str:
        raise NotImplementedError

    def query_conversation(self, user_a: str, user_b: str) -> List[DirectMessage]:
        raise NotImplementedError

    def list_conversations(self, user_id: str) -> List[ConversationSummary]:
        raise NotImplementedError


class InMemoryMessageStore(MessageStore):
    """Append-only direct message log kept in process memory."""

    def __init__(self) -> None:
        self._by_conversation: Dict[FrozenSet[str], List[DirectMessage]] = {}
        self._ids: set[str] = set()
        self._lock = threading.Lock()

    def append(self, message: DirectMessage) -> str:
        with self._lock:
            if message.id in self._ids:
                raise ValueError(f"duplicate message id: {message.id}")
            key = conversation_key(message.sender, message.recipient)
            self._by_conversation.setdefault(key, []).append(message)
            self._ids.add(message.id)
        return message.id

    def query_conversation(self, user_a: str, user_b: str) -> List[DirectMessage]:
        """Return the conversation between the two users, oldest first.

        Ties on ``created_ms`` keep append order. The result is not paginated.
        """

        with self._lock:
            messages = list(self._by_conversation.get(conversation_key(user_a, user_b), []))
        return sorted(messages, key=lambda message: message.created_ms)

    def list_conversations(self, user_id: str) -> List[ConversationSummary]:
        summaries: List[ConversationSummary] = []
        with self._lock:
            for key, messages in self._by_conversation.items():
                if user_id not in key or len(key) == 1 or not messages:
                    continue
                partner = next(iter(key - {user_id}))
                latest = max(enumerate(messages), key=lambda pair: (pair[1].created_ms, pair[0]))[1]
                summaries.append(
                    ConversationSummary(partner_id=partner, last_text=latest.text, last_ms=latest.created_ms)
                )
        summaries.sort(key=lambda summary: summary.last_ms, reverse=True)
        return summaries

from __future__ import annotations

import threading
from dataclasses import dataclass, replace
from typing import Dict, Set, Tuple


@dataclass
class UserRecord:
    user_id: str
    username: str
    dm_follow_only: bool | None = None


class SocialGraph:
    """Users, their direct-message preference and the follow graph.

    ``get_privacy_preference`` returns ``None`` when the user never set one;
    callers treat that as "accept messages from anyone".
    """

    def ensure_user(self, user_id: str, username: str | None = None) -> UserRecord:
        raise NotImplementedError

    def get_user(self, user_id: str) -> UserRecord | None:
        raise NotImplementedError

    def user_exists(self, user_id: str) -> bool:
        raise NotImplementedError

    def get_privacy_preference(self, user_id: str) -> bool | None:
        raise NotImplementedError

    def set_privacy_preference(self, user_id: str, follow_only: bool) -> None:
        raise NotImplementedError

    def follow(self, follower_id: str, followee_id: str) -> bool:
        raise NotImplementedError

    def unfollow(self, follower_id: str, followee_id: str) -> bool:
        raise NotImplementedError

    def follow_exists(self, follower_id: str, followee_id: str) -> bool:
        raise NotImplementedError


class InMemorySocialGraph(SocialGraph):
    def __init__(self) -> None:
        self._users: Dict[str, UserRecord] = {}
        self._follows: Set[Tuple[str, str]] = set()
        self._lock = threading.Lock()

    def ensure_user(self, user_id: str, username: str | None = None) -> UserRecord:
        with self._lock:
            record = self._users.get(user_id)
            if record is None:
                record = UserRecord(user_id=user_id, username=username or user_id)
                self._users[user_id] = record
            return record

    def get_user(self, user_id: str) -> UserRecord | None:
        with self._lock:
            record = self._users.get(user_id)
            return replace(record) if record else None

    def user_exists(self, user_id: str) -> bool:
        with self._lock:
            return user_id in self._users

    def get_privacy_preference(self, user_id: str) -> bool | None:
        with self._lock:
            record = self._users.get(user_id)
            return record.dm_follow_only if record else None

    def set_privacy_preference(self, user_id: str, follow_only: bool) -> None:
        with self._lock:
            record = self._users.get(user_id)
            if record is None:
                raise KeyError(user_id)
            record.dm_follow_only = follow_only

    def follow(self, follower_id: str, followee_id: str) -> bool:
        """Add the edge; returns ``False`` when it already existed."""

        with self._lock:
            edge = (follower_id, followee_id)
            if edge in self._follows:
                return False
            self._follows.add(edge)
            return True

    def unfollow(self, follower_id: str, followee_id: str) -> bool:
        with self._lock:
            edge = (follower_id, followee_id)
            if edge not in self._follows:
                return False
            self._follows.discard(edge)
            return True

    def follow_exists(self, follower_id: str, followee_id: str) -> bool:
        with self._lock:
            return (follower_id, followee_id) in self._follows

from __future__ import annotations

from enum import Enum

from .social import SocialGraph


class GateDecision(Enum):
    ALLOWED = "allowed"
    BLOCKED = "blocked"
    UNKNOWN_RECIPIENT = "unknown_recipient"


class RelationshipGate:
    """Decides whether one user may send a direct message to another.

    A recipient who opted into "followers only" accepts messages solely from
    users they follow. Every call reads the current preference and follow
    edge; nothing is cached between sends.
    """

    def __init__(self, social: SocialGraph) -> None:
        self._social = social

    def may_message(self, sender: str, recipient: str) -> GateDecision:
        if not self._social.user_exists(recipient):
            return GateDecision.UNKNOWN_RECIPIENT
        follow_only = self._social.get_privacy_preference(recipient)
        if not follow_only:
            return GateDecision.ALLOWED
        if self._social.follow_exists(recipient, sender):
            return GateDecision.ALLOWED
        return GateDecision.BLOCKED

    def can_message(self, sender: str, recipient: str) -> bool:
        return self.may_message(sender, recipient) is GateDecision.ALLOWED

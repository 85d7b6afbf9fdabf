"""Realtime direct messaging and presence for the feed application."""

from .dispatcher import DeliveryResult, Dispatcher
from .gate import GateDecision, RelationshipGate
from .messages import DirectMessage, InMemoryMessageStore, MessageStore
from .messaging import MessagingSession, SessionState
from .registry import ConnectionRegistry
from .server import main, simulate

__all__ = [
    "DeliveryResult",
    "Dispatcher",
    "GateDecision",
    "RelationshipGate",
    "DirectMessage",
    "InMemoryMessageStore",
    "MessageStore",
    "MessagingSession",
    "SessionState",
    "ConnectionRegistry",
    "main",
    "simulate",
]

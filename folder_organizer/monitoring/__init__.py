"""Monitoring module for filesystem events."""

from .watcher import (
    WatchSession,
    SessionState,
    OrganizerEventHandler,
    DebounceTracker,
    EventFilter,
    EventKind,
    RawEvent,
    SettleStrategy,
    FixedDelaySettle,
    SizeStabilitySettle,
    make_settle_strategy,
)
from .registry import SessionRegistry

__all__ = [
    "WatchSession",
    "SessionState",
    "OrganizerEventHandler",
    "DebounceTracker",
    "EventFilter",
    "EventKind",
    "RawEvent",
    "SettleStrategy",
    "FixedDelaySettle",
    "SizeStabilitySettle",
    "make_settle_strategy",
    "SessionRegistry",
]

"""
Events Module - Change events, the event bus and trigger handlers.

The bus lives in src.events.bus and the handlers in src.events.handlers;
this package only exports the event types so components can publish without
importing the bus.
"""

from src.events.change import (
    ENROLLMENTS,
    GRADES,
    PROGRESS,
    REMEDIATION_REQUESTS,
    ChangeEvent,
    ChangeKind,
    Publisher,
    discard,
)

__all__ = [
    "ENROLLMENTS",
    "GRADES",
    "PROGRESS",
    "REMEDIATION_REQUESTS",
    "ChangeEvent",
    "ChangeKind",
    "Publisher",
    "discard",
]

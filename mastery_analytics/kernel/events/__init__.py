"""
Event infrastructure.

Provides append-only audit logging and the typed in-process event channel.
"""

from mastery_analytics.kernel.events.event_bus import EventBus, EventHandler
from mastery_analytics.kernel.events.event_store import EventStore
from mastery_analytics.kernel.events.event_types import (
    BaseEvent,
    ProgressEvent,
    RecalculationFailed,
    SnapshotAuditPayload,
    SnapshotRecorded,
)

__all__ = [
    "EventBus",
    "EventHandler",
    "EventStore",
    "BaseEvent",
    "ProgressEvent",
    "RecalculationFailed",
    "SnapshotAuditPayload",
    "SnapshotRecorded",
]

"""
Kernel Data Models

SQLAlchemy models for the snapshot log and the audit trail.
"""

from mastery_analytics.kernel.models.base import Base, generate_uuid, utcnow
from mastery_analytics.kernel.models.event_log import EventLog, EventType
from mastery_analytics.kernel.models.snapshot import MasterySnapshot

__all__ = [
    "Base",
    "generate_uuid",
    "utcnow",
    "EventLog",
    "EventType",
    "MasterySnapshot",
]

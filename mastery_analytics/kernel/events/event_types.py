"""
Event type definitions using Pydantic for validation.

These are the payloads published on the EventBus and written to the audit
trail.
"""

import uuid
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict, Field


def _now() -> datetime:
    return datetime.now(timezone.utc)


class BaseEvent(BaseModel):
    """Base event payload structure."""

    model_config = ConfigDict(frozen=True)

    timestamp: datetime = Field(default_factory=_now)
    metadata: Dict[str, Any] = Field(default_factory=dict)


class ProgressEvent(BaseEvent):
    """Events about one learner's progress in one course."""

    user_id: uuid.UUID
    course_id: str


class SnapshotRecorded(ProgressEvent):
    """A new snapshot was appended to the learner's history."""

    snapshot_id: int
    run_timestamp: datetime
    general_progress: float
    expected_score: Optional[float] = None
    # Change of general progress (0..1) against the previous snapshot, if any
    general_progress_delta: Optional[float] = None


class RecalculationFailed(ProgressEvent):
    """A recalculation was abandoned; nothing was written."""

    error: str
    attempts: int = 1


class SnapshotAuditPayload(BaseModel):
    """Audit-log payload for an inserted snapshot."""

    course_id: str
    run_timestamp: datetime
    entity_count: int
    general_progress: float
    expected_score: Optional[float] = None

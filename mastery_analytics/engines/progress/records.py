"""
Snapshot record - the immutable read model of a stored snapshot.
"""

import uuid
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field


def ensure_utc(value: datetime) -> datetime:
    """Read naive datetimes as UTC; convert aware ones to UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


class SnapshotRecord(BaseModel):
    """
    One capture of a learner's estimated mastery for a (user, course) pair.

    ``id`` is the insert sequence number; history is ordered by
    ``(run_timestamp, id)``.
    """

    model_config = ConfigDict(frozen=True)

    id: int
    user_id: uuid.UUID
    course_id: str
    run_timestamp: datetime
    raw_entities: List[Dict[str, Any]] = Field(default_factory=list)
    computed_summary: List[Dict[str, Any]] = Field(default_factory=list)
    expected_score: Optional[float] = None

    @property
    def sort_key(self):
        return (ensure_utc(self.run_timestamp), self.id)

"""
Pydantic schemas for the progress API.
"""

import uuid
from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel

from mastery_analytics.engines.progress.snapshot_parser import ParsedSnapshot
from mastery_analytics.engines.progress.taxonomy import ModuleProgress, NoDataKind, TopicRow
from mastery_analytics.engines.progress.trend_analyzer import (
    AnalyticsMode,
    Period,
    RankDirection,
    TrendItem,
)


class SnapshotSummaryResponse(BaseModel):
    """One entry of the snapshot history."""

    id: int
    run_timestamp: datetime
    general_progress: float
    expected_score: Optional[float] = None


class LatestSnapshotResponse(BaseModel):
    """Latest parsed snapshot; ``snapshot`` is null for first-time users."""

    user_id: uuid.UUID
    course_id: str
    snapshot: Optional[ParsedSnapshot] = None


class SnapshotHistoryResponse(BaseModel):
    user_id: uuid.UUID
    course_id: str
    snapshots: List[SnapshotSummaryResponse]
    total: int


class ModuleViewResponse(BaseModel):
    """Module progress for the latest snapshot."""

    course_id: str
    snapshot_id: Optional[int] = None
    run_timestamp: Optional[datetime] = None
    general_progress: float = 0.0
    no_data_policy: NoDataKind
    modules: List[ModuleProgress]


class ModuleTopicsResponse(BaseModel):
    course_id: str
    module_id: int
    display_name: str
    snapshot_id: Optional[int] = None
    topics: List[TopicRow]


class RankedItemsResponse(BaseModel):
    """Top-K items by delta over a window."""

    period: Period
    mode: AnalyticsMode
    direction: RankDirection
    status: str
    items: List[TrendItem]


class RecalculateResponse(BaseModel):
    """Result of a successful recalculation."""

    snapshot: SnapshotSummaryResponse
    modules: List[ModuleProgress]

"""
Pydantic schemas for API request/response validation.
"""

from mastery_analytics.schemas.common import ErrorResponse, HealthResponse
from mastery_analytics.schemas.progress import (
    LatestSnapshotResponse,
    ModuleTopicsResponse,
    ModuleViewResponse,
    RankedItemsResponse,
    RecalculateResponse,
    SnapshotHistoryResponse,
    SnapshotSummaryResponse,
)

__all__ = [
    # Common
    "ErrorResponse",
    "HealthResponse",
    # Progress
    "LatestSnapshotResponse",
    "ModuleTopicsResponse",
    "ModuleViewResponse",
    "RankedItemsResponse",
    "RecalculateResponse",
    "SnapshotHistoryResponse",
    "SnapshotSummaryResponse",
]

"""
Progress endpoints - snapshots, module view, trends, recalculation.
"""

import uuid
from typing import Optional

from fastapi import APIRouter, HTTPException, Query, status

from mastery_analytics.api.deps import ConfiguredPolicy, Course, Mapper, Recalculator, Store
from mastery_analytics.engines.progress.errors import RecalculationError
from mastery_analytics.engines.progress.records import SnapshotRecord
from mastery_analytics.engines.progress.snapshot_parser import SnapshotParser
from mastery_analytics.engines.progress.taxonomy import NoDataPolicy
from mastery_analytics.engines.progress.trend_analyzer import (
    AnalyticsMode,
    Period,
    RankDirection,
    TrendAnalyzer,
    TrendResult,
)
from mastery_analytics.logging_config import get_logger
from mastery_analytics.schemas.common import ErrorResponse
from mastery_analytics.schemas.progress import (
    LatestSnapshotResponse,
    ModuleTopicsResponse,
    ModuleViewResponse,
    RankedItemsResponse,
    RecalculateResponse,
    SnapshotHistoryResponse,
    SnapshotSummaryResponse,
)

logger = get_logger(__name__)

router = APIRouter()


def _summary(record: SnapshotRecord) -> SnapshotSummaryResponse:
    return SnapshotSummaryResponse(
        id=record.id,
        run_timestamp=record.run_timestamp,
        general_progress=SnapshotParser.read_general_progress(record.computed_summary),
        expected_score=record.expected_score,
    )


@router.get("/snapshots/latest", response_model=LatestSnapshotResponse)
async def get_latest_snapshot(user_id: uuid.UUID, course: Course, store: Store):
    """Latest parsed snapshot, or a null snapshot for first-time users."""
    record = await store.query_latest(user_id, course.course_id)
    return LatestSnapshotResponse(
        user_id=user_id,
        course_id=course.course_id,
        snapshot=SnapshotParser.parse(record) if record else None,
    )


@router.get("/snapshots", response_model=SnapshotHistoryResponse)
async def list_snapshots(user_id: uuid.UUID, course: Course, store: Store):
    history = await store.query_history(user_id, course.course_id)
    return SnapshotHistoryResponse(
        user_id=user_id,
        course_id=course.course_id,
        snapshots=[_summary(r) for r in history],
        total=len(history),
    )


@router.get("/modules", response_model=ModuleViewResponse)
async def get_modules(
    user_id: uuid.UUID,
    course: Course,
    store: Store,
    mapper: Mapper,
    policy: ConfiguredPolicy,
):
    """Module progress of the latest stored snapshot (configured no-data policy)."""
    record = await store.query_latest(user_id, course.course_id)
    parsed = SnapshotParser.parse(record) if record else None
    return ModuleViewResponse(
        course_id=course.course_id,
        snapshot_id=parsed.snapshot_id if parsed else None,
        run_timestamp=parsed.date if parsed else None,
        general_progress=parsed.general_progress if parsed else 0.0,
        no_data_policy=policy.kind,
        modules=mapper.aggregate(parsed, course.modules, policy),
    )


@router.get("/modules/{module_id}/topics", response_model=ModuleTopicsResponse)
async def get_module_topics(
    user_id: uuid.UUID,
    module_id: int,
    course: Course,
    store: Store,
    mapper: Mapper,
):
    """Per-topic drill-down of one module."""
    module = course.module(module_id)
    if module is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Module {module_id} not found in course {course.course_id}",
        )
    record = await store.query_latest(user_id, course.course_id)
    parsed = SnapshotParser.parse(record) if record else None
    return ModuleTopicsResponse(
        course_id=course.course_id,
        module_id=module.module_id,
        display_name=module.display_name,
        snapshot_id=parsed.snapshot_id if parsed else None,
        topics=mapper.module_topics(parsed, module, course.topic_names),
    )


@router.get("/trends", response_model=TrendResult)
async def get_trends(
    user_id: uuid.UUID,
    course: Course,
    store: Store,
    mapper: Mapper,
    period: Period = Period.ALL,
    mode: AnalyticsMode = AnalyticsMode.MODULES,
    item: Optional[str] = None,
):
    """Windowed progress series, delta and per-item trends."""
    history = SnapshotParser.parse_history(await store.query_history(user_id, course.course_id))
    analyzer = TrendAnalyzer(topic_names=course.topic_names, mapper=mapper)
    return analyzer.analyze(history, period, mode, selected_item_id=item, modules=course.modules)


@router.get("/trends/top", response_model=RankedItemsResponse)
async def get_top_movers(
    user_id: uuid.UUID,
    course: Course,
    store: Store,
    mapper: Mapper,
    period: Period = Period.ALL,
    mode: AnalyticsMode = AnalyticsMode.TOPICS,
    k: int = Query(default=5, ge=1, le=50),
    direction: RankDirection = RankDirection.UP,
):
    """Items with the largest gains (up) or losses (down) in the window."""
    history = SnapshotParser.parse_history(await store.query_history(user_id, course.course_id))
    analyzer = TrendAnalyzer(topic_names=course.topic_names, mapper=mapper)
    result = analyzer.analyze(history, period, mode, modules=course.modules)
    return RankedItemsResponse(
        period=period,
        mode=mode,
        direction=direction,
        status=result.status.value,
        items=analyzer.rank_by_delta(result.items, k, direction),
    )


@router.post(
    "/recalculate",
    response_model=RecalculateResponse,
    status_code=status.HTTP_201_CREATED,
    responses={502: {"model": ErrorResponse}},
)
async def recalculate(
    user_id: uuid.UUID,
    course: Course,
    recalculator: Recalculator,
    mapper: Mapper,
):
    """Fetch fresh estimates and append a snapshot."""
    try:
        record = await recalculator.recalculate(user_id, course.course_id)
    except RecalculationError as e:
        raise HTTPException(
            status_code=status.HTTP_502_BAD_GATEWAY,
            detail=f"Recalculation failed: {e}",
        )
    parsed = SnapshotParser.parse(record)
    return RecalculateResponse(
        snapshot=_summary(record),
        modules=mapper.aggregate(parsed, course.modules, NoDataPolicy.zero()),
    )

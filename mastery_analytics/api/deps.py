"""
FastAPI dependencies for the progress services.

The store, recalculator and event bus are created once in the app lifespan
and kept on ``app.state``; tests override these dependencies directly.
"""

from typing import Annotated

from fastapi import Depends, HTTPException, Request, status

from mastery_analytics.config import Settings, get_settings
from mastery_analytics.engines.progress.errors import UnknownCourseError
from mastery_analytics.engines.progress.recalculator import SnapshotRecalculator
from mastery_analytics.engines.progress.snapshot_store import SnapshotStore
from mastery_analytics.engines.progress.taxonomy import (
    CourseTaxonomy,
    NoDataPolicy,
    TaxonomyMapper,
    load_taxonomy,
)


def get_snapshot_store(request: Request) -> SnapshotStore:
    return request.app.state.snapshot_store


def get_recalculator(request: Request) -> SnapshotRecalculator:
    return request.app.state.recalculator


def get_course_taxonomy(
    course_id: str,
    settings: Annotated[Settings, Depends(get_settings)],
) -> CourseTaxonomy:
    """Course from the path; 404 when the taxonomy does not know it."""
    try:
        return load_taxonomy(settings.taxonomy_path).course(course_id)
    except UnknownCourseError as e:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=str(e),
        )


def get_mapper(settings: Annotated[Settings, Depends(get_settings)]) -> TaxonomyMapper:
    return TaxonomyMapper(mastery_threshold=settings.mastery_threshold)


def get_no_data_policy(settings: Annotated[Settings, Depends(get_settings)]) -> NoDataPolicy:
    return NoDataPolicy.from_settings(settings.no_data_policy, settings.no_data_placeholder)


Store = Annotated[SnapshotStore, Depends(get_snapshot_store)]
Recalculator = Annotated[SnapshotRecalculator, Depends(get_recalculator)]
Course = Annotated[CourseTaxonomy, Depends(get_course_taxonomy)]
Mapper = Annotated[TaxonomyMapper, Depends(get_mapper)]
ConfiguredPolicy = Annotated[NoDataPolicy, Depends(get_no_data_policy)]

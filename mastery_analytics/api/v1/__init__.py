"""
API v1 routes.
"""

from fastapi import APIRouter

from mastery_analytics.api.v1 import progress

router = APIRouter()

router.include_router(
    progress.router,
    prefix="/users/{user_id}/courses/{course_id}/progress",
    tags=["Progress"],
)

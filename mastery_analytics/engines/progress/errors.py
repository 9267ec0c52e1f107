"""
Progress engine exceptions.
"""

import uuid
from typing import Optional


class ProgressError(Exception):
    """Base class for progress analytics errors."""


class UnknownCourseError(ProgressError, LookupError):
    """The course id has no entry in the taxonomy table."""

    def __init__(self, course_id: str):
        self.course_id = course_id
        super().__init__(f"Unknown course: {course_id}")


class EstimatorError(ProgressError):
    """The external probability estimator could not produce entities."""


class EstimatorUnavailableError(EstimatorError):
    """Transient estimator failure (timeout, transport error, 5xx). Retryable."""


class EstimatorResponseError(EstimatorError):
    """The estimator answered with a client error or a malformed body."""


class RecalculationError(ProgressError):
    """A recalculation was abandoned; no snapshot was written."""

    def __init__(
        self,
        message: str,
        user_id: Optional[uuid.UUID] = None,
        course_id: Optional[str] = None,
        attempts: int = 1,
    ):
        self.user_id = user_id
        self.course_id = course_id
        self.attempts = attempts
        super().__init__(message)

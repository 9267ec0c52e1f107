"""
Mastery snapshot model - append-only captures of estimated mastery.
"""

import uuid
from datetime import datetime
from typing import Any, Dict, List, Optional

from sqlalchemy import JSON, DateTime, Float, Index, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from mastery_analytics.kernel.models.base import Base, utcnow


class MasterySnapshot(Base):
    """
    One immutable capture of a learner's estimated mastery for a course.

    Rows are only ever inserted. ``id`` is assigned by the database in insert
    order and serves as the tie-breaker when two rows share a run_timestamp.
    Column names match the stored history written by earlier clients
    (``raw_data``, ``computed_summary``).
    """

    __tablename__ = "mastery_snapshots"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[uuid.UUID] = mapped_column(nullable=False)
    course_id: Mapped[str] = mapped_column(String(32), nullable=False)

    run_timestamp: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=utcnow,
    )

    raw_data: Mapped[List[Dict[str, Any]]] = mapped_column(JSON, nullable=False, default=list)
    computed_summary: Mapped[List[Dict[str, Any]]] = mapped_column(JSON, nullable=False, default=list)
    expected_score: Mapped[Optional[float]] = mapped_column(Float, nullable=True)

    __table_args__ = (
        Index("ix_mastery_snapshots_user_course_time", "user_id", "course_id", "run_timestamp"),
    )

    def __repr__(self) -> str:
        return f"<MasterySnapshot {self.id} user={self.user_id} course={self.course_id}>"

"""
Snapshot Store - append-only persistence of mastery snapshots.

There is no update or delete path. Each insert and its audit-log entry are
committed in a single transaction.
"""

import uuid
from datetime import datetime
from typing import Any, Dict, List, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from mastery_analytics.engines.progress.records import SnapshotRecord, ensure_utc
from mastery_analytics.engines.progress.snapshot_parser import SnapshotParser
from mastery_analytics.kernel.events.event_store import EventStore
from mastery_analytics.kernel.events.event_types import SnapshotAuditPayload
from mastery_analytics.kernel.models.base import utcnow
from mastery_analytics.kernel.models.event_log import EventType
from mastery_analytics.kernel.models.snapshot import MasterySnapshot


class SnapshotStore:
    """
    Storage collaborator over the ``mastery_snapshots`` table.

    Usage:
        store = SnapshotStore(async_session_maker)
        record = await store.insert(user_id, "2", raw, summary)
        latest = await store.query_latest(user_id, "2")
    """

    ENTITY_TYPE = "mastery_snapshot"

    def __init__(self, session_maker: async_sessionmaker[AsyncSession]):
        self.session_maker = session_maker

    @staticmethod
    def _to_record(row: MasterySnapshot) -> SnapshotRecord:
        return SnapshotRecord(
            id=row.id,
            user_id=row.user_id,
            course_id=row.course_id,
            run_timestamp=ensure_utc(row.run_timestamp),
            raw_entities=list(row.raw_data or []),
            computed_summary=list(row.computed_summary or []),
            expected_score=row.expected_score,
        )

    async def insert(
        self,
        user_id: uuid.UUID,
        course_id: str,
        raw_entities: List[Dict[str, Any]],
        computed_summary: List[Dict[str, Any]],
        expected_score: Optional[float] = None,
        run_timestamp: Optional[datetime] = None,
    ) -> SnapshotRecord:
        """Append a snapshot and its audit entry; returns the stored record."""
        async with self.session_maker() as session:
            async with session.begin():
                row = MasterySnapshot(
                    user_id=user_id,
                    course_id=str(course_id),
                    run_timestamp=ensure_utc(run_timestamp) if run_timestamp else utcnow(),
                    raw_data=list(raw_entities),
                    computed_summary=list(computed_summary),
                    expected_score=expected_score,
                )
                session.add(row)
                await session.flush()

                record = self._to_record(row)
                await EventStore(session).log_from_model(
                    event_type=EventType.SNAPSHOT_RECORDED,
                    entity_type=self.ENTITY_TYPE,
                    entity_id=str(record.id),
                    user_id=user_id,
                    payload_model=SnapshotAuditPayload(
                        course_id=record.course_id,
                        run_timestamp=record.run_timestamp,
                        entity_count=len(record.raw_entities),
                        general_progress=SnapshotParser.read_general_progress(record.computed_summary),
                        expected_score=expected_score,
                    ),
                )
        return record

    async def query_latest(self, user_id: uuid.UUID, course_id: str) -> Optional[SnapshotRecord]:
        """Most recent snapshot by (run_timestamp, id), or None."""
        async with self.session_maker() as session:
            q = (
                select(MasterySnapshot)
                .where(
                    MasterySnapshot.user_id == user_id,
                    MasterySnapshot.course_id == str(course_id),
                )
                .order_by(MasterySnapshot.run_timestamp.desc(), MasterySnapshot.id.desc())
                .limit(1)
            )
            result = await session.execute(q)
            row = result.scalar_one_or_none()
            return self._to_record(row) if row else None

    async def query_history(
        self,
        user_id: uuid.UUID,
        course_id: str,
        ascending: bool = True,
    ) -> List[SnapshotRecord]:
        """All snapshots for (user, course) ordered by (run_timestamp, id)."""
        async with self.session_maker() as session:
            q = select(MasterySnapshot).where(
                MasterySnapshot.user_id == user_id,
                MasterySnapshot.course_id == str(course_id),
            )
            if ascending:
                q = q.order_by(MasterySnapshot.run_timestamp.asc(), MasterySnapshot.id.asc())
            else:
                q = q.order_by(MasterySnapshot.run_timestamp.desc(), MasterySnapshot.id.desc())
            result = await session.execute(q)
            return [self._to_record(row) for row in result.scalars().all()]

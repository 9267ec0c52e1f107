"""
Pytest fixtures for mastery analytics tests.
"""

import os
import tempfile
import uuid
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Dict, List, Optional

# File-based SQLite for anything that imports the app's default engine
_tmp = tempfile.NamedTemporaryFile(suffix=".db", delete=False)
_tmp.close()
os.environ.setdefault("DATABASE_URL", f"sqlite+aiosqlite:///{_tmp.name}")

import pytest
import pytest_asyncio

from mastery_analytics.config import get_settings

get_settings.cache_clear()

from mastery_analytics.database import create_engine_for, create_session_maker
from mastery_analytics.engines.progress.records import SnapshotRecord
from mastery_analytics.engines.progress.snapshot_store import SnapshotStore
from mastery_analytics.kernel.models import Base

BASE_TIME = datetime(2025, 3, 1, 12, 0, tzinfo=timezone.utc)


@pytest_asyncio.fixture(scope="function")
async def db_engine(tmp_path):
    """Engine on a fresh SQLite file per test."""
    engine = create_engine_for(f"sqlite+aiosqlite:///{tmp_path / 'test.db'}")

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    await engine.dispose()


@pytest.fixture
def session_maker(db_engine):
    return create_session_maker(db_engine)


@pytest.fixture
def snapshot_store(session_maker) -> SnapshotStore:
    return SnapshotStore(session_maker)


@pytest.fixture
def user_id() -> uuid.UUID:
    return uuid.uuid4()


@pytest.fixture
def make_snapshot() -> Callable[..., SnapshotRecord]:
    """Build an in-memory SnapshotRecord."""
    counter = {"id": 0}

    def _make(
        raw_entities: Optional[List[Dict[str, Any]]] = None,
        general_progress: Optional[float] = None,
        days: float = 0,
        snapshot_id: Optional[int] = None,
        course_id: str = "2",
        user: Optional[uuid.UUID] = None,
    ) -> SnapshotRecord:
        counter["id"] += 1
        summary = [] if general_progress is None else [{"general_progress": general_progress}]
        return SnapshotRecord(
            id=snapshot_id if snapshot_id is not None else counter["id"],
            user_id=user or uuid.UUID(int=1),
            course_id=course_id,
            run_timestamp=BASE_TIME + timedelta(days=days),
            raw_entities=raw_entities or [],
            computed_summary=summary,
        )

    return _make


@pytest.fixture
def sample_raw_entities() -> List[Dict[str, Any]]:
    """Mixed estimator output: topics, tasks, a skill and junk."""
    return [
        {"topic": "1.1 Натуральные и целые числа", "prob": 0.9},
        {"topic": "1.2 Дроби и проценты", "prob": 0.4},
        {"topic": "2.3E Тригонометрические уравнения", "prob": 0.6},
        {"задача ФИПИ": "1", "prob": 0.7},
        {"задача ФИПИ": "7", "prob": 0.2},
        {"навык": "12", "prob": 0.55},
        {"topic": "без кода", "prob": 0.3},
        {"prob": 0.5},
    ]

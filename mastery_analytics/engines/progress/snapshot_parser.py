"""
Snapshot Parser - typed view of a stored snapshot.

Classifies raw entities into topics, tasks and skills and reads the general
progress scalar from the computed summary. Malformed records are skipped;
a snapshot always parses.
"""

from datetime import datetime
from typing import Any, Iterable, List, Mapping, Optional

from pydantic import BaseModel, ConfigDict

from mastery_analytics.engines.progress.entities import (
    GeneralProgressEntity,
    SkillEntity,
    TaskEntity,
    TopicEntity,
    classify_entity,
)
from mastery_analytics.engines.progress.records import SnapshotRecord, ensure_utc
from mastery_analytics.logging_config import get_logger

logger = get_logger(__name__)


class TopicProbability(BaseModel):
    model_config = ConfigDict(frozen=True)

    code: str
    prob: float
    label: str = ""


class TaskProbability(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    prob: float


class SkillProbability(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    prob: float


class ParsedSnapshot(BaseModel):
    """
    Typed view of one snapshot.

    ``topics`` keeps duplicate codes in input order; consumers that build a
    code -> value map take the last occurrence.
    """

    model_config = ConfigDict(frozen=True)

    snapshot_id: Optional[int] = None
    date: datetime
    general_progress: float = 0.0
    topics: List[TopicProbability] = []
    tasks: List[TaskProbability] = []
    skills: List[SkillProbability] = []
    expected_score: Optional[float] = None

    def topic_map(self) -> dict:
        return {t.code: t.prob for t in self.topics}

    def topic_labels(self) -> dict:
        return {t.code: t.label for t in self.topics if t.label}

    def task_map(self) -> dict:
        return {t.id: t.prob for t in self.tasks}


class SnapshotParser:
    """Pure parser of SnapshotRecords into ParsedSnapshots."""

    @classmethod
    def parse(cls, snapshot: SnapshotRecord, include_skills: bool = True) -> ParsedSnapshot:
        topics: List[TopicProbability] = []
        tasks: List[TaskProbability] = []
        skills: List[SkillProbability] = []
        dropped = 0

        for record in snapshot.raw_entities:
            entity = classify_entity(record)
            if isinstance(entity, TopicEntity):
                topics.append(TopicProbability(code=entity.code, prob=entity.prob, label=entity.label))
            elif isinstance(entity, TaskEntity):
                tasks.append(TaskProbability(id=entity.id, prob=entity.prob))
            elif isinstance(entity, SkillEntity):
                if include_skills:
                    skills.append(SkillProbability(id=entity.id, prob=entity.prob))
            else:
                dropped += 1

        if dropped:
            logger.debug(
                "Dropped unrecognised entities",
                extra={"snapshot_id": snapshot.id, "dropped": dropped},
            )

        return ParsedSnapshot(
            snapshot_id=snapshot.id,
            date=ensure_utc(snapshot.run_timestamp),
            general_progress=cls.read_general_progress(snapshot.computed_summary),
            topics=topics,
            tasks=tasks,
            skills=skills,
            expected_score=snapshot.expected_score,
        )

    @staticmethod
    def read_general_progress(summary: Optional[Iterable[Any]]) -> float:
        """First general-progress record in the summary, or 0 when absent."""
        for record in summary or ():
            if not isinstance(record, Mapping):
                continue
            entity = classify_entity(record)
            if isinstance(entity, GeneralProgressEntity):
                return entity.value
        return 0.0

    @classmethod
    def parse_history(
        cls,
        history: Iterable[SnapshotRecord],
        include_skills: bool = True,
    ) -> List[ParsedSnapshot]:
        """Parse many snapshots, ordered by (run_timestamp, id)."""
        ordered = sorted(history, key=lambda s: s.sort_key)
        return [cls.parse(s, include_skills=include_skills) for s in ordered]

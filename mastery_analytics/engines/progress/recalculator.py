"""
Snapshot Recalculator - fetch fresh estimates and append a snapshot.

Flow:
1. Call the estimator (timeout, bounded retry on transient failures)
2. Derive the computed summary and the expected exam score
3. Append the snapshot (with its audit entry, one transaction)
4. Publish SnapshotRecorded, or RecalculationFailed when abandoned, after the run
   has left the single-flight table

History is never modified. Concurrent calls for the same (user, course)
share one in-flight run and receive the same record. The run is shielded
from caller cancellation, so a started write always completes.
"""

import asyncio
import math
import uuid
from datetime import datetime
from typing import Any, Callable, Dict, List, Mapping, Optional, Protocol, Set, Tuple

from mastery_analytics.engines.progress.entities import (
    GENERAL_PROGRESS_KEY,
    PROB_KEY,
    TOPIC_KEY,
    TaskEntity,
    classify_entity,
    read_probability,
)
from mastery_analytics.engines.progress.errors import (
    EstimatorResponseError,
    EstimatorUnavailableError,
    RecalculationError,
)
from mastery_analytics.engines.progress.expected_score import ExpectedScoreCalculator
from mastery_analytics.engines.progress.records import SnapshotRecord
from mastery_analytics.engines.progress.snapshot_parser import SnapshotParser, TaskProbability
from mastery_analytics.kernel.events.event_bus import EventBus
from mastery_analytics.kernel.events.event_types import RecalculationFailed, SnapshotRecorded
from mastery_analytics.kernel.models.base import utcnow
from mastery_analytics.logging_config import get_logger

logger = get_logger(__name__)


class Estimator(Protocol):
    async def estimate(self, user_id: uuid.UUID, course_id: str) -> List[Dict[str, Any]]:
        ...


class SnapshotRepository(Protocol):
    async def insert(
        self,
        user_id: uuid.UUID,
        course_id: str,
        raw_entities: List[Dict[str, Any]],
        computed_summary: List[Dict[str, Any]],
        expected_score: Optional[float] = None,
        run_timestamp: Optional[datetime] = None,
    ) -> SnapshotRecord:
        ...

    async def query_latest(self, user_id: uuid.UUID, course_id: str) -> Optional[SnapshotRecord]:
        ...


def compute_summary(raw_entities: List[Mapping[str, Any]]) -> List[Dict[str, Any]]:
    """
    Summary list for a snapshot: the general-progress record first, then
    every record carrying a topic and a probability in [0, 1].

    General progress is the mean of those topic probabilities (0 without
    topics). Tasks and skills do not contribute.
    """
    topics: List[Dict[str, Any]] = []
    for record in raw_entities:
        if not isinstance(record, Mapping):
            continue
        prob = read_probability(record.get(PROB_KEY))
        if record.get(TOPIC_KEY) and prob is not None:
            topics.append({TOPIC_KEY: record[TOPIC_KEY], PROB_KEY: record[PROB_KEY]})

    probs = [t[PROB_KEY] for t in topics]
    general = sum(probs) / len(probs) if probs else 0
    return [{GENERAL_PROGRESS_KEY: general}] + topics


class SnapshotRecalculator:
    """
    Orchestrates estimator -> summary -> append.

    One instance per process; the single-flight table lives on the instance.
    Events are published from a separate task once the run has left the
    single-flight table, so subscribers never hold up callers and may start
    another recalculation for the same key.
    """

    def __init__(
        self,
        estimator: Estimator,
        store: SnapshotRepository,
        event_bus: Optional[EventBus] = None,
        timeout_seconds: float = 30.0,
        max_retries: int = 1,
        retry_delay_seconds: float = 0.5,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.estimator = estimator
        self.store = store
        self.event_bus = event_bus
        self.timeout_seconds = timeout_seconds
        self.max_retries = max_retries
        self.retry_delay_seconds = retry_delay_seconds
        self.clock = clock
        self._in_flight: Dict[Tuple[uuid.UUID, str], asyncio.Task] = {}
        self._publishing: Set[asyncio.Task] = set()

    def in_flight(self, user_id: uuid.UUID, course_id: str) -> bool:
        return (user_id, str(course_id)) in self._in_flight

    async def recalculate(self, user_id: uuid.UUID, course_id: str) -> SnapshotRecord:
        """
        Append a fresh snapshot for (user, course).

        Raises:
            RecalculationError: estimator or storage failure; nothing written
        """
        key = (user_id, str(course_id))
        task = self._in_flight.get(key)
        if task is None:
            task = asyncio.create_task(self._run(user_id, str(course_id)))
            self._in_flight[key] = task
            task.add_done_callback(lambda t: self._finish(key, t))
        else:
            logger.info(
                "Joining in-flight recalculation",
                extra={"user_id": str(user_id), "course_id": str(course_id)},
            )
        record, _ = await asyncio.shield(task)
        return record

    async def drain_events(self) -> None:
        """Wait until every scheduled event, including ones published meanwhile, is delivered."""
        while self._publishing:
            await asyncio.gather(*list(self._publishing), return_exceptions=True)

    def _finish(self, key: Tuple[uuid.UUID, str], task: asyncio.Task) -> None:
        if self._in_flight.get(key) is task:
            del self._in_flight[key]
        if task.cancelled():
            return
        # Retrieving the exception also keeps an abandoned failure from being reported as unhandled
        error = task.exception()
        if error is None:
            _, event = task.result()
        elif isinstance(error, RecalculationError):
            event = RecalculationFailed(
                user_id=error.user_id,
                course_id=error.course_id,
                error=str(error),
                attempts=error.attempts,
            )
        else:
            return
        self._schedule_publish(event)

    def _schedule_publish(self, event) -> None:
        if self.event_bus is None:
            return
        publish = asyncio.get_running_loop().create_task(self.event_bus.publish(event))
        self._publishing.add(publish)
        publish.add_done_callback(self._publishing.discard)

    async def _run(self, user_id: uuid.UUID, course_id: str) -> Tuple[SnapshotRecord, SnapshotRecorded]:
        log_extra = {"user_id": str(user_id), "course_id": course_id}
        logger.info("Recalculation started", extra=log_extra)

        try:
            raw_entities, attempts = await self._fetch(user_id, course_id)
        except RecalculationError as e:
            logger.error("Recalculation failed: %s", e, extra={**log_extra, "attempts": e.attempts})
            raise

        summary = compute_summary(raw_entities)
        tasks = [
            TaskProbability(id=entity.id, prob=entity.prob)
            for entity in map(classify_entity, raw_entities)
            if isinstance(entity, TaskEntity)
        ]
        expected = ExpectedScoreCalculator.expected_score(course_id, tasks)

        try:
            previous = await self.store.query_latest(user_id, course_id)
            record = await self.store.insert(
                user_id=user_id,
                course_id=course_id,
                raw_entities=raw_entities,
                computed_summary=summary,
                expected_score=expected,
                run_timestamp=self.clock(),
            )
        except Exception as e:
            logger.exception("Failed to store snapshot", extra=log_extra)
            raise RecalculationError(
                f"Failed to store snapshot: {e}", user_id=user_id, course_id=course_id, attempts=attempts
            ) from e

        general = SnapshotParser.read_general_progress(record.computed_summary)
        delta = None
        if previous is not None:
            delta = general - SnapshotParser.read_general_progress(previous.computed_summary)

        logger.info(
            "Snapshot recorded",
            extra={**log_extra, "snapshot_id": record.id, "general_progress": general, "attempts": attempts},
        )
        event = SnapshotRecorded(
            user_id=user_id,
            course_id=course_id,
            snapshot_id=record.id,
            run_timestamp=record.run_timestamp,
            general_progress=general,
            expected_score=record.expected_score,
            general_progress_delta=delta,
        )
        return record, event

    async def _fetch(self, user_id: uuid.UUID, course_id: str) -> Tuple[List[Dict[str, Any]], int]:
        """Estimator call with timeout; transient failures are retried."""
        attempts = 0
        while True:
            attempts += 1
            try:
                raw = await asyncio.wait_for(
                    self.estimator.estimate(user_id, course_id),
                    timeout=self.timeout_seconds,
                )
                return [_json_safe(r) for r in raw if isinstance(r, Mapping)], attempts
            except (asyncio.TimeoutError, EstimatorUnavailableError) as e:
                if attempts > self.max_retries:
                    message = "Estimator timed out" if isinstance(e, asyncio.TimeoutError) else str(e)
                    raise RecalculationError(
                        message, user_id=user_id, course_id=course_id, attempts=attempts
                    ) from e
                logger.warning(
                    "Estimator call failed, retrying",
                    extra={"user_id": str(user_id), "course_id": course_id, "attempt": attempts},
                )
                await asyncio.sleep(self.retry_delay_seconds)
            except EstimatorResponseError as e:
                raise RecalculationError(
                    str(e), user_id=user_id, course_id=course_id, attempts=attempts
                ) from e
            except Exception as e:
                raise RecalculationError(
                    f"Estimator error: {e}", user_id=user_id, course_id=course_id, attempts=attempts
                ) from e


def _json_safe(record: Mapping[str, Any]) -> Dict[str, Any]:
    # JSON columns reject NaN and Infinity; such values are stored as null
    return {
        key: None if isinstance(value, float) and not math.isfinite(value) else value
        for key, value in record.items()
    }

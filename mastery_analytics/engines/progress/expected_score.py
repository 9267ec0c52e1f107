"""
Expected Score - projected exam score from task mastery probabilities.

Each exam task carries a course-specific number of primary points. The
projection blends the naive expectation with a logistic calibration that
models guessing:

    naive      = sum(p * w)
    calibrated = sum((g + (1 - g) * logistic(a * (p - b))) * w)
    raw        = 0.3 * naive + 0.7 * calibrated

For the profile exam (course 3) primary points are converted to the
100-point scale by linear interpolation over the official table.
"""

import math
import re
from typing import Dict, Iterable, List, Optional, Tuple

from mastery_analytics.engines.progress.snapshot_parser import TaskProbability

_TASK_NUMBER = re.compile(r"^\s*(\d+)\s*$")


class ExpectedScoreCalculator:
    """Course-aware expected exam score."""

    # Logistic calibration
    SLOPE = 5.0
    MIDPOINT = 0.6
    GUESS = 0.25

    NAIVE_WEIGHT = 0.3
    CALIBRATED_WEIGHT = 0.7

    # course_id -> {task number: primary points}
    TASK_POINTS: Dict[str, Dict[int, int]] = {
        "1": {1: 5, **{n: 1 for n in range(6, 20)}, **{n: 2 for n in range(20, 26)}},
        "2": {n: 1 for n in range(1, 22)},
        "3": {
            **{n: 1 for n in range(1, 13)},
            13: 2, 14: 3, 15: 2, 16: 2, 17: 3, 18: 4, 19: 4,
        },
    }

    # Primary points -> 100-point scale
    SCALED_COURSES = {"3"}
    SCALE_TABLE: List[Tuple[int, int]] = [
        (1, 6), (2, 11), (3, 17), (4, 22), (5, 27), (6, 34), (7, 40), (8, 46),
        (9, 52), (10, 58), (11, 64), (12, 70), (13, 72), (14, 74), (15, 76),
        (16, 78), (17, 80), (18, 82), (19, 84), (20, 86), (21, 88), (22, 90),
        (23, 92), (24, 94), (25, 95), (26, 96), (27, 97), (28, 98), (29, 99),
        (30, 100), (31, 100), (32, 100),
    ]

    @classmethod
    def task_weight(cls, course_id: str, task_id: str) -> int:
        """Primary points of a task; 0 for tasks outside the exam."""
        match = _TASK_NUMBER.match(str(task_id))
        if not match:
            return 0
        return cls.TASK_POINTS.get(str(course_id), {}).get(int(match.group(1)), 0)

    @classmethod
    def calibrate(cls, prob: float) -> float:
        z = cls.SLOPE * (prob - cls.MIDPOINT)
        return cls.GUESS + (1 - cls.GUESS) / (1 + math.exp(-z))

    @classmethod
    def raw_points(cls, course_id: str, tasks: Iterable[TaskProbability]) -> Optional[float]:
        """Blended expected primary points, or None when not computable."""
        if str(course_id) not in cls.TASK_POINTS:
            return None
        tasks = list(tasks)
        if not tasks:
            return None

        naive = 0.0
        calibrated = 0.0
        for task in tasks:
            weight = cls.task_weight(course_id, task.id)
            naive += task.prob * weight
            calibrated += cls.calibrate(task.prob) * weight
        return cls.NAIVE_WEIGHT * naive + cls.CALIBRATED_WEIGHT * calibrated

    @classmethod
    def to_scale(cls, raw: float) -> float:
        """Interpolate primary points onto the 100-point scale."""
        first_points, first_score = cls.SCALE_TABLE[0]
        last_points, last_score = cls.SCALE_TABLE[-1]
        if raw < first_points:
            return float(first_score)
        if raw > last_points:
            return float(last_score)

        for (x1, y1), (x2, y2) in zip(cls.SCALE_TABLE, cls.SCALE_TABLE[1:]):
            if raw == x1:
                return float(y1)
            if x1 < raw < x2:
                t = (raw - x1) / (x2 - x1)
                return y1 + t * (y2 - y1)
        return float(last_score)

    @classmethod
    def expected_score(cls, course_id: str, tasks: Iterable[TaskProbability]) -> Optional[float]:
        """
        Expected exam score for a course.

        Returns:
            Score rounded to 2 decimals, or None for unknown courses and
            snapshots without tasks
        """
        raw = cls.raw_points(course_id, tasks)
        if raw is None:
            return None
        if str(course_id) in cls.SCALED_COURSES:
            return round(cls.to_scale(raw), 2)
        return round(raw, 2)

"""
Entity records - classification of raw estimator output.

The estimator emits a flat list of JSON objects. Each one is classified once,
here, into an explicit tagged union. Everything downstream works with the
typed entities and never re-inspects the raw keys.

Wire keys:
- ``topic``          topic label, e.g. "2.3E Логарифмы" -> code "2.3E"
- ``задача ФИПИ``    exam task number
- ``навык``          skill id
- ``prob``           mastery probability in [0, 1]
- ``general_progress`` overall progress, only in the computed summary
"""

import math
import re
from enum import Enum
from typing import Any, Literal, Mapping, Optional, Union

from pydantic import BaseModel, ConfigDict

TOPIC_KEY = "topic"
TASK_KEY = "задача ФИПИ"
SKILL_KEY = "навык"
PROB_KEY = "prob"
GENERAL_PROGRESS_KEY = "general_progress"

# "2.10" -> "2.10", "2.3E ..." -> "2.3E", "1.1Натуральные" -> "1.1"
TOPIC_CODE_RE = re.compile(r"^\s*(\d+\.\d+)(?:([^\W\d_])(?![^\W\d_]))?")


class EntityKind(str, Enum):
    """Kinds of entity records."""
    TOPIC = "topic"
    TASK = "task"
    SKILL = "skill"
    GENERAL = "general"


class TopicEntity(BaseModel):
    model_config = ConfigDict(frozen=True)

    kind: Literal[EntityKind.TOPIC] = EntityKind.TOPIC
    code: str
    prob: float
    label: str = ""


class TaskEntity(BaseModel):
    model_config = ConfigDict(frozen=True)

    kind: Literal[EntityKind.TASK] = EntityKind.TASK
    id: str
    prob: float


class SkillEntity(BaseModel):
    model_config = ConfigDict(frozen=True)

    kind: Literal[EntityKind.SKILL] = EntityKind.SKILL
    id: str
    prob: float


class GeneralProgressEntity(BaseModel):
    model_config = ConfigDict(frozen=True)

    kind: Literal[EntityKind.GENERAL] = EntityKind.GENERAL
    value: float


Entity = Union[TopicEntity, TaskEntity, SkillEntity, GeneralProgressEntity]


def extract_topic_code(label: Any) -> Optional[str]:
    """
    Extract the leading topic code from a topic label.

    A single designator letter directly after the number is part of the code
    only when it is not the start of a word.
    """
    if not isinstance(label, str):
        return None
    match = TOPIC_CODE_RE.match(label)
    if not match:
        return None
    number, letter = match.groups()
    return number + letter if letter else number


def read_probability(value: Any) -> Optional[float]:
    """Return ``value`` as a probability, or None when it is not one."""
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    prob = float(value)
    if math.isnan(prob) or prob < 0.0 or prob > 1.0:
        return None
    return prob


def _identifier(value: Any) -> Optional[str]:
    if isinstance(value, bool) or value is None:
        return None
    if isinstance(value, float) and value.is_integer():
        value = int(value)
    text = str(value).strip()
    return text or None


def _is_topic_label(label: Any) -> bool:
    if not isinstance(label, str):
        return False
    return TASK_KEY not in label and SKILL_KEY not in label


def classify_entity(record: Mapping[str, Any]) -> Optional[Entity]:
    """
    Classify one raw record.

    Returns None for records that are not recognised or carry an invalid
    probability; callers skip those.
    """
    if not isinstance(record, Mapping):
        return None

    if GENERAL_PROGRESS_KEY in record:
        value = record[GENERAL_PROGRESS_KEY]
        if isinstance(value, bool) or not isinstance(value, (int, float)) or math.isnan(value):
            return None
        return GeneralProgressEntity(value=min(1.0, max(0.0, float(value))))

    prob = read_probability(record.get(PROB_KEY))
    if prob is None:
        return None

    label = record.get(TOPIC_KEY)
    if label is not None and _is_topic_label(label):
        code = extract_topic_code(label)
        if code is not None:
            return TopicEntity(code=code, prob=prob, label=label.strip())

    if TASK_KEY in record:
        task_id = _identifier(record[TASK_KEY])
        if task_id is not None:
            return TaskEntity(id=task_id, prob=prob)

    if SKILL_KEY in record:
        skill_id = _identifier(record[SKILL_KEY])
        if skill_id is not None:
            return SkillEntity(id=skill_id, prob=prob)

    return None

"""
Taxonomy Mapper - topic codes into the module hierarchy.

The course taxonomy (modules, their topic codes, topic display names) is a
static versioned table shipped in ``mastery_analytics/data/taxonomy.json``
and loaded once per process.

Module progress:
- Each present topic contributes round(prob * 100).
- Module progress is the rounded mean over the module's topics that have
  data. Topics without data are excluded, not counted as zero.
- A topic is mastered at >= 80%.
- Modules without any data follow the caller's NoDataPolicy.
"""

import json
import math
from enum import Enum
from functools import lru_cache
from pathlib import Path
from typing import Dict, List, Optional, Sequence

from pydantic import BaseModel, ConfigDict, Field

from mastery_analytics.engines.progress.errors import UnknownCourseError
from mastery_analytics.engines.progress.snapshot_parser import ParsedSnapshot

BUNDLED_TAXONOMY_PATH = Path(__file__).resolve().parents[2] / "data" / "taxonomy.json"


def round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def to_percent(prob: float) -> int:
    """Probability in [0, 1] to an integer percentage in [0, 100]."""
    return min(100, max(0, round_half_up(prob * 100)))


class ModuleDefinition(BaseModel):
    model_config = ConfigDict(frozen=True)

    module_id: int
    display_name: str
    topic_codes: List[str]


class CourseTaxonomy(BaseModel):
    """Modules and topic names of one course."""

    model_config = ConfigDict(frozen=True)

    course_id: str
    title: str = ""
    modules: List[ModuleDefinition]
    topic_names: Dict[str, str] = Field(default_factory=dict)

    def module(self, module_id: int) -> Optional[ModuleDefinition]:
        for module in self.modules:
            if module.module_id == module_id:
                return module
        return None

    def topic_name(self, code: str, label: str = "") -> str:
        """Taxonomy name, else the raw estimator label, else a generic one."""
        return self.topic_names.get(code) or label or f"Тема {code}"


class TaxonomyTable(BaseModel):
    model_config = ConfigDict(frozen=True)

    version: str
    courses: Dict[str, CourseTaxonomy]

    def course(self, course_id: str) -> CourseTaxonomy:
        """Get a course's taxonomy; raises UnknownCourseError."""
        try:
            return self.courses[str(course_id)]
        except KeyError:
            raise UnknownCourseError(str(course_id)) from None


@lru_cache
def load_taxonomy(path: Optional[str] = None) -> TaxonomyTable:
    """Load and cache the taxonomy table (bundled one when ``path`` is None)."""
    source = Path(path) if path else BUNDLED_TAXONOMY_PATH
    data = json.loads(source.read_text(encoding="utf-8"))
    courses = {
        str(course_id): CourseTaxonomy(course_id=str(course_id), **course)
        for course_id, course in data.get("courses", {}).items()
    }
    return TaxonomyTable(version=str(data.get("version", "")), courses=courses)


class NoDataKind(str, Enum):
    """What to report for a module without any topic data."""
    ZERO = "zero"
    OMIT = "omit"
    PLACEHOLDER = "placeholder"


class NoDataPolicy(BaseModel):
    """
    Fallback for modules with no data.

    ZERO reports 0, OMIT drops the module from the result, PLACEHOLDER
    reports a fixed value (clamped to 0..100).
    """

    model_config = ConfigDict(frozen=True)

    kind: NoDataKind = NoDataKind.ZERO
    value: int = 0

    @classmethod
    def zero(cls) -> "NoDataPolicy":
        return cls(kind=NoDataKind.ZERO)

    @classmethod
    def omit(cls) -> "NoDataPolicy":
        return cls(kind=NoDataKind.OMIT)

    @classmethod
    def placeholder(cls, value: int) -> "NoDataPolicy":
        return cls(kind=NoDataKind.PLACEHOLDER, value=min(100, max(0, int(value))))

    @classmethod
    def from_settings(cls, kind: str, placeholder: int = 1) -> "NoDataPolicy":
        kind = NoDataKind(kind)
        if kind == NoDataKind.PLACEHOLDER:
            return cls.placeholder(placeholder)
        return cls(kind=kind)

    def fallback_progress(self) -> Optional[int]:
        """Progress for an empty module, or None when the module is omitted."""
        if self.kind == NoDataKind.OMIT:
            return None
        if self.kind == NoDataKind.PLACEHOLDER:
            return self.value
        return 0


class ModuleProgress(BaseModel):
    model_config = ConfigDict(frozen=True)

    module_id: int
    display_name: str
    progress: int = Field(ge=0, le=100)
    mastered_count: int = Field(ge=0)
    total_count: int = Field(ge=0)
    has_data: bool


class TopicRow(BaseModel):
    """One topic of a module in the drill-down view."""

    model_config = ConfigDict(frozen=True)

    code: str
    name: str
    progress: Optional[int] = None
    mastered: bool = False


class TaxonomyMapper:
    """Computes the module view of a parsed snapshot."""

    MASTERY_THRESHOLD = 80

    def __init__(self, mastery_threshold: int = MASTERY_THRESHOLD):
        self.mastery_threshold = mastery_threshold

    @staticmethod
    def topic_progress(parsed: ParsedSnapshot) -> Dict[str, int]:
        """Percent per topic code; the last duplicate wins."""
        return {code: to_percent(prob) for code, prob in parsed.topic_map().items()}

    def module_progress(
        self,
        module: ModuleDefinition,
        percents: Dict[str, int],
        policy: NoDataPolicy,
    ) -> Optional[ModuleProgress]:
        present = [percents[code] for code in module.topic_codes if code in percents]
        total = len(module.topic_codes)

        if not present:
            fallback = policy.fallback_progress()
            if fallback is None:
                return None
            return ModuleProgress(
                module_id=module.module_id,
                display_name=module.display_name,
                progress=fallback,
                mastered_count=0,
                total_count=total,
                has_data=False,
            )

        mastered = sum(1 for value in present if value >= self.mastery_threshold)
        progress = min(100, max(0, round_half_up(sum(present) / len(present))))
        return ModuleProgress(
            module_id=module.module_id,
            display_name=module.display_name,
            progress=progress,
            mastered_count=mastered,
            total_count=total,
            has_data=True,
        )

    def aggregate(
        self,
        parsed: Optional[ParsedSnapshot],
        modules: Sequence[ModuleDefinition],
        policy: Optional[NoDataPolicy] = None,
    ) -> List[ModuleProgress]:
        """
        Module progress in the order of ``modules``.

        ``parsed=None`` (no snapshot yet) applies ``policy`` to every module.
        """
        policy = policy or NoDataPolicy.zero()
        percents = self.topic_progress(parsed) if parsed is not None else {}

        result: List[ModuleProgress] = []
        for module in modules:
            progress = self.module_progress(module, percents, policy)
            if progress is not None:
                result.append(progress)
        return result

    def module_topics(
        self,
        parsed: Optional[ParsedSnapshot],
        module: ModuleDefinition,
        names: Optional[Dict[str, str]] = None,
    ) -> List[TopicRow]:
        """Rows for each topic of ``module``; progress is None without data."""
        names = names or {}
        percents = self.topic_progress(parsed) if parsed is not None else {}
        labels = parsed.topic_labels() if parsed is not None else {}
        rows = []
        for code in module.topic_codes:
            value = percents.get(code)
            rows.append(
                TopicRow(
                    code=code,
                    name=names.get(code) or labels.get(code) or f"Тема {code}",
                    progress=value,
                    mastered=value is not None and value >= self.mastery_threshold,
                )
            )
        return rows

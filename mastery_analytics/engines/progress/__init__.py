"""
Progress Engine - mastery snapshots, module aggregation and trends.

Read paths (pure):
- SnapshotParser: raw snapshot -> typed topics / tasks / skills
- TaxonomyMapper: topics -> module progress
- TrendAnalyzer: history -> windowed series, deltas, rankings

Write path:
- SnapshotRecalculator: estimator -> computed summary -> append
"""

from mastery_analytics.engines.progress.entities import (
    EntityKind,
    GeneralProgressEntity,
    SkillEntity,
    TaskEntity,
    TopicEntity,
    classify_entity,
    extract_topic_code,
)
from mastery_analytics.engines.progress.errors import (
    EstimatorError,
    EstimatorResponseError,
    EstimatorUnavailableError,
    ProgressError,
    RecalculationError,
    UnknownCourseError,
)
from mastery_analytics.engines.progress.estimator_client import EstimatorClient
from mastery_analytics.engines.progress.expected_score import ExpectedScoreCalculator
from mastery_analytics.engines.progress.recalculator import SnapshotRecalculator, compute_summary
from mastery_analytics.engines.progress.records import SnapshotRecord
from mastery_analytics.engines.progress.snapshot_parser import ParsedSnapshot, SnapshotParser
from mastery_analytics.engines.progress.snapshot_store import SnapshotStore
from mastery_analytics.engines.progress.taxonomy import (
    CourseTaxonomy,
    ModuleDefinition,
    ModuleProgress,
    NoDataKind,
    NoDataPolicy,
    TaxonomyMapper,
    TopicRow,
    load_taxonomy,
)
from mastery_analytics.engines.progress.trend_analyzer import (
    AnalyticsMode,
    Period,
    RankDirection,
    TrendAnalyzer,
    TrendItem,
    TrendResult,
    TrendStatus,
)

__all__ = [
    "EntityKind",
    "GeneralProgressEntity",
    "SkillEntity",
    "TaskEntity",
    "TopicEntity",
    "classify_entity",
    "extract_topic_code",
    "EstimatorError",
    "EstimatorResponseError",
    "EstimatorUnavailableError",
    "ProgressError",
    "RecalculationError",
    "UnknownCourseError",
    "EstimatorClient",
    "ExpectedScoreCalculator",
    "SnapshotRecalculator",
    "compute_summary",
    "SnapshotRecord",
    "ParsedSnapshot",
    "SnapshotParser",
    "SnapshotStore",
    "CourseTaxonomy",
    "ModuleDefinition",
    "ModuleProgress",
    "NoDataKind",
    "NoDataPolicy",
    "TaxonomyMapper",
    "TopicRow",
    "load_taxonomy",
    "AnalyticsMode",
    "Period",
    "RankDirection",
    "TrendAnalyzer",
    "TrendItem",
    "TrendResult",
    "TrendStatus",
]

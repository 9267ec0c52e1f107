"""
Trend Analyzer - progress over time.

Given a learner's parsed history (oldest first), produces:
- an averaged progress series over a time window,
- the net delta between the first and last point of the window,
- one TrendItem per task/topic/module of the latest snapshot, each with its
  own series and delta, rankable by delta.

Windows:
- all: full history
- 7d / 30d: snapshots with date >= now - N days

Fewer than two snapshots in the window is reported as INSUFFICIENT_DATA; an
empty history as NO_DATA. Neither is an error.
"""

import re
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Dict, List, Optional, Sequence

from pydantic import BaseModel, ConfigDict

from mastery_analytics.engines.progress.records import ensure_utc
from mastery_analytics.engines.progress.snapshot_parser import ParsedSnapshot
from mastery_analytics.engines.progress.taxonomy import (
    ModuleDefinition,
    NoDataPolicy,
    TaxonomyMapper,
    to_percent,
)

_NUMERIC_ID = re.compile(r"^\d+$")


class Period(str, Enum):
    """Trend windows."""
    DAYS_7 = "7d"
    DAYS_30 = "30d"
    ALL = "all"

    @property
    def days(self) -> Optional[int]:
        return {"7d": 7, "30d": 30}.get(self.value)


class AnalyticsMode(str, Enum):
    MODULES = "modules"
    TASKS = "tasks"
    TOPICS = "topics"


class TrendStatus(str, Enum):
    OK = "ok"
    INSUFFICIENT_DATA = "insufficient_data"
    NO_DATA = "no_data"


class RankDirection(str, Enum):
    UP = "up"      # largest positive delta first
    DOWN = "down"  # most negative delta first


class SeriesPoint(BaseModel):
    model_config = ConfigDict(frozen=True)

    date: datetime
    date_label: str
    value: float


class TrendItem(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    label: str
    current_percent: int
    delta: float
    series: List[float]


class TrendResult(BaseModel):
    model_config = ConfigDict(frozen=True)

    status: TrendStatus
    period: Period
    mode: AnalyticsMode
    selected_item_id: Optional[str] = None
    snapshot_count: int = 0
    series: List[SeriesPoint] = []
    delta: Optional[float] = None
    items: List[TrendItem] = []


class TrendAnalyzer:
    """
    Windowing, series construction and ranking over parsed history.

    Stateless apart from the label table; safe to share between requests.
    """

    MIN_POINTS = 2

    def __init__(
        self,
        topic_names: Optional[Dict[str, str]] = None,
        mapper: Optional[TaxonomyMapper] = None,
    ):
        self.topic_names = topic_names or {}
        self.mapper = mapper or TaxonomyMapper()

    @staticmethod
    def filter_window(
        history: Sequence[ParsedSnapshot],
        period: Period,
        now: Optional[datetime] = None,
    ) -> List[ParsedSnapshot]:
        """Snapshots inside the window, order preserved."""
        period = Period(period)
        if period.days is None:
            return list(history)
        now = ensure_utc(now) if now is not None else datetime.now(timezone.utc)
        cutoff = now - timedelta(days=period.days)
        return [s for s in history if ensure_utc(s.date) >= cutoff]

    def analyze(
        self,
        history: Sequence[ParsedSnapshot],
        period: Period,
        mode: AnalyticsMode,
        selected_item_id: Optional[str] = None,
        now: Optional[datetime] = None,
        modules: Optional[Sequence[ModuleDefinition]] = None,
    ) -> TrendResult:
        period = Period(period)
        mode = AnalyticsMode(mode)
        base = dict(period=period, mode=mode, selected_item_id=selected_item_id)

        if not history:
            return TrendResult(status=TrendStatus.NO_DATA, **base)

        window = self.filter_window(history, period, now)
        if len(window) < self.MIN_POINTS:
            return TrendResult(
                status=TrendStatus.INSUFFICIENT_DATA,
                snapshot_count=len(window),
                **base,
            )

        if selected_item_id is not None:
            values = self.item_values(window, mode, selected_item_id, modules)
        else:
            values = [self.aggregate_value(s, mode) for s in window]

        series = [
            SeriesPoint(date=s.date, date_label=s.date.strftime("%Y-%m-%d"), value=v)
            for s, v in zip(window, values)
        ]
        return TrendResult(
            status=TrendStatus.OK,
            snapshot_count=len(window),
            series=series,
            delta=series[-1].value - series[0].value,
            items=self.build_items(window, mode, modules),
            **base,
        )

    @staticmethod
    def aggregate_value(snapshot: ParsedSnapshot, mode: AnalyticsMode) -> float:
        """Point value of the averaged series (percent, unrounded)."""
        if mode == AnalyticsMode.MODULES:
            return snapshot.general_progress * 100
        probs = list((snapshot.task_map() if mode == AnalyticsMode.TASKS else snapshot.topic_map()).values())
        if not probs:
            return 0.0
        return sum(probs) / len(probs) * 100

    def item_values(
        self,
        window: Sequence[ParsedSnapshot],
        mode: AnalyticsMode,
        item_id: str,
        modules: Optional[Sequence[ModuleDefinition]] = None,
    ) -> List[float]:
        """One item's value per snapshot; 0 where the snapshot lacks it."""
        if mode == AnalyticsMode.MODULES:
            module = self._find_module(modules, item_id)
            if module is None:
                return [0.0 for _ in window]
            return [self._module_value(s, module) for s in window]

        values = []
        for snapshot in window:
            probs = snapshot.task_map() if mode == AnalyticsMode.TASKS else snapshot.topic_map()
            prob = probs.get(item_id)
            values.append(prob * 100 if prob is not None else 0.0)
        return values

    def build_items(
        self,
        window: Sequence[ParsedSnapshot],
        mode: AnalyticsMode,
        modules: Optional[Sequence[ModuleDefinition]] = None,
    ) -> List[TrendItem]:
        """TrendItems for everything present in the last snapshot of the window."""
        if mode == AnalyticsMode.MODULES:
            return [self._make_item(window, mode, str(m.module_id), m.display_name, modules) for m in modules or ()]

        last = window[-1]
        if mode == AnalyticsMode.TASKS:
            ids = self.order_task_ids([t.id for t in last.tasks])
            return [self._make_item(window, mode, i, f"Задача {i}") for i in ids]

        ids = list(dict.fromkeys(t.code for t in last.topics))
        labels = last.topic_labels()
        return [
            self._make_item(window, mode, code, self.topic_names.get(code) or labels.get(code) or f"Тема {code}")
            for code in ids
        ]

    @staticmethod
    def order_task_ids(ids: Sequence[str]) -> List[str]:
        """Numeric ids in numeric order, then the rest in discovery order."""
        unique = list(dict.fromkeys(ids))
        numeric = sorted((i for i in unique if _NUMERIC_ID.match(i)), key=int)
        other = [i for i in unique if not _NUMERIC_ID.match(i)]
        return numeric + other

    @staticmethod
    def rank_by_delta(
        items: Sequence[TrendItem],
        k: int,
        direction: RankDirection = RankDirection.UP,
    ) -> List[TrendItem]:
        """Top ``k`` items by delta. Ties keep their original order."""
        if k <= 0:
            return []
        if RankDirection(direction) == RankDirection.UP:
            ranked = sorted(items, key=lambda item: -item.delta)
        else:
            ranked = sorted(items, key=lambda item: item.delta)
        return ranked[:k]

    def _make_item(
        self,
        window: Sequence[ParsedSnapshot],
        mode: AnalyticsMode,
        item_id: str,
        label: str,
        modules: Optional[Sequence[ModuleDefinition]] = None,
    ) -> TrendItem:
        series = self.item_values(window, mode, item_id, modules)
        if mode == AnalyticsMode.MODULES:
            current = min(100, max(0, int(round(series[-1]))))
        else:
            probs = window[-1].task_map() if mode == AnalyticsMode.TASKS else window[-1].topic_map()
            current = to_percent(probs.get(item_id, 0.0))
        return TrendItem(
            id=item_id,
            label=label,
            current_percent=current,
            delta=series[-1] - series[0],
            series=series,
        )

    def _module_value(self, snapshot: ParsedSnapshot, module: ModuleDefinition) -> float:
        progress = self.mapper.aggregate(snapshot, [module], NoDataPolicy.zero())
        return float(progress[0].progress)

    @staticmethod
    def _find_module(
        modules: Optional[Sequence[ModuleDefinition]],
        item_id: str,
    ) -> Optional[ModuleDefinition]:
        for module in modules or ():
            if str(module.module_id) == str(item_id):
                return module
        return None

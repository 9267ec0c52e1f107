"""Unit tests for TrendAnalyzer."""

from datetime import datetime, timedelta, timezone

import pytest

from mastery_analytics.engines.progress.snapshot_parser import ParsedSnapshot
from mastery_analytics.engines.progress.taxonomy import ModuleDefinition
from mastery_analytics.engines.progress.trend_analyzer import (
    AnalyticsMode,
    Period,
    RankDirection,
    TrendAnalyzer,
    TrendItem,
    TrendStatus,
)

NOW = datetime(2025, 3, 31, 12, 0, tzinfo=timezone.utc)


def snap(days_ago, snapshot_id=None, general=0.0, topics=None, tasks=None) -> ParsedSnapshot:
    return ParsedSnapshot(
        snapshot_id=snapshot_id,
        date=NOW - timedelta(days=days_ago),
        general_progress=general,
        topics=[{"code": c, "prob": p} for c, p in (topics or {}).items()],
        tasks=[{"id": i, "prob": p} for i, p in (tasks or {}).items()],
    )


class TestWindowing:
    """Tests for filter_window."""

    def test_all_is_unfiltered(self):
        history = [snap(400, 1), snap(1, 2)]
        assert TrendAnalyzer.filter_window(history, Period.ALL, NOW) == history

    def test_windows_are_nested(self):
        """7d is a subset of 30d, which is a subset of all."""
        history = [snap(d, i) for i, d in enumerate([60, 31, 30, 20, 8, 7, 3, 0])]
        ids = {
            p: {s.snapshot_id for s in TrendAnalyzer.filter_window(history, p, NOW)}
            for p in Period
        }
        assert ids[Period.DAYS_7] <= ids[Period.DAYS_30] <= ids[Period.ALL]
        assert ids[Period.DAYS_7] == {5, 6, 7}
        assert ids[Period.DAYS_30] == {2, 3, 4, 5, 6, 7}

    def test_boundary_is_inclusive(self):
        history = [snap(7, 1)]
        assert len(TrendAnalyzer.filter_window(history, Period.DAYS_7, NOW)) == 1

    def test_naive_dates_read_as_utc(self):
        naive = ParsedSnapshot(date=(NOW - timedelta(days=2)).replace(tzinfo=None))
        assert len(TrendAnalyzer.filter_window([naive], "7d", NOW)) == 1


class TestAnalyze:
    """Series, delta and status."""

    def test_general_progress_series(self):
        history = [snap(10, 1, general=0.2), snap(0, 2, general=0.5)]
        result = TrendAnalyzer().analyze(history, Period.ALL, AnalyticsMode.MODULES, now=NOW)

        assert result.status == TrendStatus.OK
        assert [p.value for p in result.series] == pytest.approx([20, 50])
        assert result.delta == pytest.approx(30)
        assert result.series[0].date_label == "2025-03-21"

    def test_single_snapshot_is_insufficient(self):
        result = TrendAnalyzer().analyze([snap(1, 1, general=0.4)], Period.DAYS_30, AnalyticsMode.MODULES, now=NOW)
        assert result.status == TrendStatus.INSUFFICIENT_DATA
        assert result.delta is None
        assert result.series == []
        assert result.items == []
        assert result.snapshot_count == 1

    def test_window_can_make_history_insufficient(self):
        history = [snap(40, 1, general=0.1), snap(1, 2, general=0.3)]
        result = TrendAnalyzer().analyze(history, Period.DAYS_30, AnalyticsMode.MODULES, now=NOW)
        assert result.status == TrendStatus.INSUFFICIENT_DATA

    def test_empty_history_is_no_data(self):
        result = TrendAnalyzer().analyze([], Period.ALL, AnalyticsMode.TOPICS, now=NOW)
        assert result.status == TrendStatus.NO_DATA
        assert result.delta is None

    def test_delta_is_endpoint_difference(self):
        history = [snap(3, 1, general=0.3), snap(2, 2, general=0.9), snap(1, 3, general=0.1), snap(0, 4, general=0.45)]
        result = TrendAnalyzer().analyze(history, "all", "modules", now=NOW)
        assert result.delta == result.series[-1].value - result.series[0].value

    def test_task_mean_and_empty_snapshot(self):
        """A snapshot without tasks contributes 0, not a gap."""
        history = [snap(2, 1, tasks={"1": 0.2, "2": 0.6}), snap(1, 2), snap(0, 3, tasks={"1": 1.0})]
        result = TrendAnalyzer().analyze(history, Period.ALL, AnalyticsMode.TASKS, now=NOW)
        assert [p.value for p in result.series] == pytest.approx([40, 0, 100])

    def test_selected_item_missing_is_zero(self):
        history = [snap(2, 1, topics={"1.1": 0.3}), snap(1, 2, topics={"1.2": 0.9}), snap(0, 3, topics={"1.1": 0.7})]
        result = TrendAnalyzer().analyze(history, Period.ALL, AnalyticsMode.TOPICS, selected_item_id="1.1", now=NOW)
        assert [p.value for p in result.series] == pytest.approx([30, 0, 70])
        assert result.delta == pytest.approx(40)
        assert result.selected_item_id == "1.1"


class TestItems:
    """Per-item trends."""

    def test_items_come_from_last_snapshot(self):
        history = [
            snap(2, 1, topics={"1.1": 0.2, "1.2": 0.5}),
            snap(0, 2, topics={"1.1": 0.6, "2.1": 0.4}),
        ]
        result = TrendAnalyzer(topic_names={"1.1": "Натуральные и целые числа"}).analyze(
            history, Period.ALL, AnalyticsMode.TOPICS, now=NOW
        )

        assert [i.id for i in result.items] == ["1.1", "2.1"]
        first, second = result.items
        assert first.label == "Натуральные и целые числа"
        assert first.current_percent == 60
        assert first.delta == pytest.approx(40)
        assert second.label == "Тема 2.1"
        assert second.series == pytest.approx([0, 40])

    def test_unnamed_topic_uses_raw_label(self):
        history = [
            ParsedSnapshot(
                date=NOW - timedelta(days=1),
                topics=[{"code": "7.4", "prob": 0.3, "label": "7.4 Параметры"}],
            )
        ]
        result = TrendAnalyzer().analyze(history, Period.ALL, AnalyticsMode.TOPICS, now=NOW)
        assert result.items[0].label == "7.4 Параметры"

    def test_tasks_in_numeric_order(self):
        history = [
            snap(1, 1, tasks={"1": 0.1}),
            snap(0, 2, tasks={"10": 0.5, "x": 0.1, "2": 0.3, "1": 0.4}),
        ]
        result = TrendAnalyzer().analyze(history, Period.ALL, AnalyticsMode.TASKS, now=NOW)
        assert [i.id for i in result.items] == ["1", "2", "10", "x"]
        assert result.items[0].label == "Задача 1"

    def test_module_items(self):
        modules = [
            ModuleDefinition(module_id=1, display_name="Числа", topic_codes=["1.1", "1.2"]),
            ModuleDefinition(module_id=2, display_name="Функции", topic_codes=["3.1"]),
        ]
        history = [
            snap(1, 1, topics={"1.1": 0.2, "1.2": 0.4}),
            snap(0, 2, topics={"1.1": 0.8, "1.2": 0.6}),
        ]
        analyzer = TrendAnalyzer()
        result = analyzer.analyze(history, Period.ALL, AnalyticsMode.MODULES, now=NOW, modules=modules)

        assert [i.id for i in result.items] == ["1", "2"]
        assert result.items[0].series == [30.0, 70.0]
        assert result.items[0].current_percent == 70
        assert result.items[1].series == [0.0, 0.0]

        selected = analyzer.analyze(
            history, Period.ALL, AnalyticsMode.MODULES, selected_item_id="1", now=NOW, modules=modules
        )
        assert [p.value for p in selected.series] == [30.0, 70.0]


class TestRanking:
    """Tests for rank_by_delta."""

    @staticmethod
    def item(item_id, delta):
        return TrendItem(id=item_id, label=item_id, current_percent=0, delta=delta, series=[0, delta])

    def test_top_gainers(self):
        items = [self.item("a", 5), self.item("b", 20), self.item("c", -10), self.item("d", 12)]
        ranked = TrendAnalyzer.rank_by_delta(items, 2, RankDirection.UP)
        assert [i.id for i in ranked] == ["b", "d"]

    def test_top_losers(self):
        items = [self.item("a", 5), self.item("b", -20), self.item("c", -10)]
        ranked = TrendAnalyzer.rank_by_delta(items, 2, RankDirection.DOWN)
        assert [i.id for i in ranked] == ["b", "c"]

    def test_ties_keep_discovery_order(self):
        items = [self.item("x", 7), self.item("y", 7), self.item("z", 7)]
        assert [i.id for i in TrendAnalyzer.rank_by_delta(items, 3)] == ["x", "y", "z"]
        assert [i.id for i in TrendAnalyzer.rank_by_delta(items, 3, "down")] == ["x", "y", "z"]

    def test_k_larger_than_items(self):
        items = [self.item("a", 1)]
        assert len(TrendAnalyzer.rank_by_delta(items, 10)) == 1
        assert TrendAnalyzer.rank_by_delta(items, 0) == []

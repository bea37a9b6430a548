"""
Tests for the rolling search metrics window.
"""

import pytest

from recallbox.ml.search import SearchMetric, SearchMetricsTracker


def metric(query, count=1, latency=10.0, search_type="hybrid", **kwargs):
    return SearchMetric(
        query_text=query, results_count=count, latency_ms=latency, search_type=search_type, **kwargs
    )


def test_empty_summary():
    summary = SearchMetricsTracker().get_summary()

    assert summary["total_searches"] == 0
    assert summary["top_queries"] == []


def test_summary_rates_and_distribution():
    tracker = SearchMetricsTracker()
    tracker.record(metric("Rent", latency=10.0))
    tracker.record(metric("rent", count=0, latency=30.0, enhancement_applied=True))
    tracker.record(metric("bill", search_type="quick", latency=5.0, degraded=True))
    tracker.record(metric("bill", success=False, error="boom"))

    summary = tracker.get_summary()

    assert summary["total_searches"] == 4
    assert summary["top_queries"][0] == {"query": "rent", "count": 2}
    assert summary["query_distribution"] == [
        {"type": "hybrid", "count": 3},
        {"type": "quick", "count": 1},
    ]
    assert summary["success_rate"] == pytest.approx(0.75)
    assert summary["zero_result_rate"] == pytest.approx(0.25)
    assert summary["enhancement_rate"] == pytest.approx(0.25)
    assert summary["degraded_rate"] == pytest.approx(0.25)
    assert summary["average_latency_ms"] == pytest.approx(13.75)


def test_window_drops_oldest():
    tracker = SearchMetricsTracker(window_size=3)
    for i in range(5):
        tracker.record(metric(f"q{i}"))

    assert [m.query_text for m in tracker.recent(10)] == ["q4", "q3", "q2"]


def test_clear():
    tracker = SearchMetricsTracker()
    tracker.record(metric("rent"))
    tracker.clear()

    assert tracker.recent() == []


def test_metric_to_dict():
    data = metric("pay rent", latency=12.345).to_dict()

    assert data["query_length"] == 8
    assert data["latency_ms"] == pytest.approx(12.35, abs=0.01)

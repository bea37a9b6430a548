"""
Search Metrics
Rolling in-memory record of recent searches for admin diagnostics.
"""

import logging
from collections import Counter, deque
from dataclasses import dataclass, field
from datetime import datetime
from threading import Lock
from typing import Any, Dict, List, Optional

import numpy as np

logger = logging.getLogger(__name__)


@dataclass
class SearchMetric:
    """One recorded search."""

    query_text: str
    results_count: int
    latency_ms: float
    search_type: str  # hybrid | quick | filter
    owner_id: Optional[str] = None
    success: bool = True
    enhancement_applied: bool = False
    degraded: bool = False
    error: Optional[str] = None
    timestamp: datetime = field(default_factory=datetime.utcnow)

    @property
    def query_length(self) -> int:
        return len(self.query_text)

    def to_dict(self) -> dict:
        return {
            "query_text": self.query_text,
            "query_length": self.query_length,
            "results_count": self.results_count,
            "latency_ms": round(self.latency_ms, 2),
            "search_type": self.search_type,
            "owner_id": self.owner_id,
            "success": self.success,
            "enhancement_applied": self.enhancement_applied,
            "degraded": self.degraded,
            "error": self.error,
            "timestamp": self.timestamp.isoformat(),
        }


class SearchMetricsTracker:
    """
    Bounded window of recent search metrics.

    Oldest entries are dropped once the window is full.
    """

    def __init__(self, window_size: int = 1000):
        self.window_size = window_size
        self.metrics: deque = deque(maxlen=window_size)
        self.lock = Lock()

    def record(self, metric: SearchMetric) -> None:
        with self.lock:
            self.metrics.append(metric)

    def recent(self, limit: int = 20) -> List[SearchMetric]:
        with self.lock:
            return list(self.metrics)[-limit:][::-1]

    def clear(self) -> None:
        with self.lock:
            self.metrics.clear()

    def get_summary(self) -> Dict[str, Any]:
        """
        Aggregate the current window.

        Returns:
            Dict with totals, top queries, type distribution, latency
            percentiles per type and success/zero-result/enhancement rates
        """
        with self.lock:
            metrics = list(self.metrics)

        total = len(metrics)
        if total == 0:
            return {
                "total_searches": 0,
                "top_queries": [],
                "query_distribution": [],
                "average_latency_ms": 0.0,
                "latency_by_type": [],
                "success_rate": 0.0,
                "zero_result_rate": 0.0,
                "enhancement_rate": 0.0,
                "degraded_rate": 0.0,
            }

        query_counts = Counter(m.query_text.lower() for m in metrics if m.query_text)
        type_counts = Counter(m.search_type for m in metrics)

        latency_by_type = []
        for search_type in sorted(type_counts):
            latencies = np.array([m.latency_ms for m in metrics if m.search_type == search_type])
            latency_by_type.append(
                {
                    "type": search_type,
                    "avg_latency_ms": round(float(latencies.mean()), 2),
                    "p95": round(float(np.percentile(latencies, 95)), 2),
                    "p99": round(float(np.percentile(latencies, 99)), 2),
                }
            )

        return {
            "total_searches": total,
            "top_queries": [
                {"query": query, "count": count} for query, count in query_counts.most_common(10)
            ],
            "query_distribution": [
                {"type": search_type, "count": count}
                for search_type, count in sorted(type_counts.items())
            ],
            "average_latency_ms": round(float(np.mean([m.latency_ms for m in metrics])), 2),
            "latency_by_type": latency_by_type,
            "success_rate": sum(m.success for m in metrics) / total,
            "zero_result_rate": sum(m.results_count == 0 for m in metrics) / total,
            "enhancement_rate": sum(m.enhancement_applied for m in metrics) / total,
            "degraded_rate": sum(m.degraded for m in metrics) / total,
        }


# Global metrics tracker
_metrics_tracker = SearchMetricsTracker()


def get_search_metrics_tracker() -> SearchMetricsTracker:
    """Get global search metrics tracker."""
    return _metrics_tracker

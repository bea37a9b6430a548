"""
Request Timing Middleware
Tracks request latency against the p95 target.
"""

import logging
import time
from collections import deque
from threading import Lock
from typing import Callable, Dict, Optional

import numpy as np
from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware

logger = logging.getLogger(__name__)


class LatencyTracker:
    """
    Rolling window of recent request latencies.

    Percentiles are computed over the window only, so old traffic ages out.
    """

    def __init__(self, window_size: int = 1000):
        """
        Initialize latency tracker.

        Args:
            window_size: Number of recent requests to track
        """
        self.window_size = window_size
        self.latencies: deque = deque(maxlen=window_size)
        self.slow_count = 0
        self.lock = Lock()

    def record(self, latency_ms: float, slow: bool = False) -> None:
        """Record a latency measurement."""
        with self.lock:
            self.latencies.append(latency_ms)
            if slow:
                self.slow_count += 1

    def reset(self) -> None:
        with self.lock:
            self.latencies.clear()
            self.slow_count = 0

    def get_stats(self) -> Dict[str, float]:
        """
        Get latency statistics.

        Returns:
            Dict with count, p50, p95, p99, mean, min, max and slow request count
        """
        with self.lock:
            values = np.array(self.latencies, dtype=np.float64)
            slow_count = self.slow_count

        if values.size == 0:
            return {
                "count": 0,
                "p50": 0.0,
                "p95": 0.0,
                "p99": 0.0,
                "mean": 0.0,
                "min": 0.0,
                "max": 0.0,
                "slow": slow_count,
            }

        p50, p95, p99 = np.percentile(values, [50, 95, 99])
        return {
            "count": int(values.size),
            "p50": float(p50),
            "p95": float(p95),
            "p99": float(p99),
            "mean": float(values.mean()),
            "min": float(values.min()),
            "max": float(values.max()),
            "slow": slow_count,
        }


# Global latency tracker
_latency_tracker = LatencyTracker()


def get_latency_tracker() -> LatencyTracker:
    """Get global latency tracker."""
    return _latency_tracker


class RequestTimingMiddleware(BaseHTTPMiddleware):
    """
    Records latency for each request and flags requests over the target.

    Adds an X-Response-Time header to every response.
    """

    def __init__(
        self,
        app,
        tracker: Optional[LatencyTracker] = None,
        slow_request_ms: float = 500,
    ):
        """
        Initialize timing middleware.

        Args:
            app: FastAPI application
            tracker: Latency tracker (uses global if not provided)
            slow_request_ms: Requests slower than this are logged as warnings
        """
        super().__init__(app)
        self.tracker = tracker or get_latency_tracker()
        self.slow_request_ms = slow_request_ms

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        start_time = time.time()

        response = await call_next(request)

        duration_ms = (time.time() - start_time) * 1000
        slow = duration_ms > self.slow_request_ms
        self.tracker.record(duration_ms, slow=slow)

        response.headers["X-Response-Time"] = f"{duration_ms:.2f}ms"

        if slow:
            logger.warning(
                f"Slow request: {request.method} {request.url.path} took {duration_ms:.0f}ms",
                extra={
                    "method": request.method,
                    "path": request.url.path,
                    "duration_ms": duration_ms,
                    "threshold_ms": self.slow_request_ms,
                },
            )

        return response

"""
Search Service Module
Hybrid search orchestration, pagination sessions, metrics and result formatting.
"""

from .session import (
    SessionState,
    SearchSession,
    SessionPage,
    SessionStore,
    InMemorySessionStore,
    RedisSessionStore,
    session_key,
    get_session_store,
    set_session_store,
    reset_session_store,
)
from .metrics import SearchMetric, SearchMetricsTracker, get_search_metrics_tracker
from .search_service import (
    SearchService,
    SearchResponseData,
    get_search_service,
    reset_search_service,
)
from .formatting import SearchResultFormatter

__all__ = [
    "SessionState",
    "SearchSession",
    "SessionPage",
    "SessionStore",
    "InMemorySessionStore",
    "RedisSessionStore",
    "session_key",
    "get_session_store",
    "set_session_store",
    "reset_session_store",
    "SearchMetric",
    "SearchMetricsTracker",
    "get_search_metrics_tracker",
    "SearchService",
    "SearchResponseData",
    "get_search_service",
    "reset_search_service",
    "SearchResultFormatter",
]

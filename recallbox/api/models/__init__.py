"""
Pydantic Models
Request/response models for API endpoints.
"""

from .search import (
    FilterParams,
    SearchRequest,
    SearchResponse,
    SearchResultModel,
    ItemModel,
    QuickSearchResponse,
    MoreRequest,
    MoreResponse,
    SuggestionsResponse,
    FormattedResultsResponse,
)
from .feedback import FeedbackRequest, FeedbackResponse, FeedbackStatsResponse

__all__ = [
    "FilterParams",
    "SearchRequest",
    "SearchResponse",
    "SearchResultModel",
    "ItemModel",
    "QuickSearchResponse",
    "MoreRequest",
    "MoreResponse",
    "SuggestionsResponse",
    "FormattedResultsResponse",
    "FeedbackRequest",
    "FeedbackResponse",
    "FeedbackStatsResponse",
]

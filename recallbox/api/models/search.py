"""
Search Models
Pydantic models for search endpoints.
"""

from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field

from ...ml.retrieval import FusedResult, SearchFilters


class FilterParams(BaseModel):
    """Optional search filters."""

    content_types: List[str] = Field(
        default_factory=list, description="Content types (text, voice, image, email, document)"
    )
    categories: List[str] = Field(default_factory=list, description="Category labels")
    date_from: Optional[datetime] = Field(None, description="Created on or after")
    date_to: Optional[datetime] = Field(None, description="Created on or before")
    min_confidence: Optional[float] = Field(
        None, ge=0, le=1, description="Minimum relevance score"
    )

    def to_filters(self) -> SearchFilters:
        return SearchFilters(
            content_types=self.content_types,
            categories=self.categories,
            date_from=self.date_from,
            date_to=self.date_to,
            min_confidence=self.min_confidence,
        )


class SearchRequest(BaseModel):
    """
    Search request model.

    An empty query with filters lists matching items by recency; an empty
    query without filters returns no results.
    """

    query: str = Field(default="", max_length=500, description="Search query text")
    filters: Optional[FilterParams] = Field(None, description="Search filters")

    offset: int = Field(default=0, ge=0, description="Number of results to skip")
    limit: int = Field(default=10, ge=1, le=100, description="Maximum number of results to return")

    conversation_id: Optional[str] = Field(
        None, max_length=100, description="Conversation the search session belongs to"
    )
    enhance: bool = Field(default=True, description="Apply query enhancement")

    class Config:
        json_schema_extra = {
            "example": {
                "query": "electricity bill",
                "filters": {"categories": ["bills"]},
                "offset": 0,
                "limit": 10,
                "conversation_id": "telegram-123",
            }
        }


class ItemModel(BaseModel):
    """Stored item as returned in results."""

    id: str = Field(..., description="Item ID")
    raw_text: str = Field(..., description="Original text")
    ai_summary: Optional[str] = Field(None, description="AI summary")
    category: Optional[str] = Field(None, description="Category label")
    content_type: str = Field(..., description="Content type")
    metadata: Dict[str, Any] = Field(default_factory=dict, description="Structured metadata")
    created_at: Optional[datetime] = Field(None, description="Creation time")


class SearchResultModel(BaseModel):
    """Single fused search result."""

    item: ItemModel
    relevance_score: float = Field(..., ge=0, le=1, description="Fused relevance (0-1)")
    match_type: str = Field(..., description="Dominant match strategy")
    strategies: List[str] = Field(default_factory=list, description="Contributing strategies")
    excerpt: Optional[str] = Field(None, description="Highlighted excerpt")
    signal_scores: Dict[str, float] = Field(default_factory=dict, description="Per-strategy scores")
    rank: int = Field(..., ge=0, description="Result rank (0-indexed, absolute)")

    @classmethod
    def from_result(cls, result: FusedResult, rank: int) -> "SearchResultModel":
        item = result.item
        return cls(
            item=ItemModel(
                id=item.id,
                raw_text=item.raw_text or "",
                ai_summary=item.ai_summary,
                category=item.category,
                content_type=item.content_type,
                metadata=item.metadata or {},
                created_at=item.created_at,
            ),
            relevance_score=result.relevance_score,
            match_type=result.match_type.value,
            strategies=[s.value for s in result.strategies],
            excerpt=result.excerpt,
            signal_scores=result.signal_scores,
            rank=rank,
        )


class SearchResponse(BaseModel):
    """
    Search response model.

    Empty and low-confidence outcomes are flagged, not raised.
    """

    results: List[SearchResultModel] = Field(..., description="Requested page of results")

    total: int = Field(..., description="Total number of results")
    offset: int = Field(..., description="Results offset")
    limit: int = Field(..., description="Results limit")
    has_more: bool = Field(..., description="More results available via /search/more")

    query: str = Field(..., description="Original search query")
    enhanced_query: Optional[str] = Field(None, description="Query after enhancement")
    enhancement_applied: bool = Field(default=False, description="Whether enhancement changed the query")

    strategies: List[str] = Field(default_factory=list, description="Strategies that contributed")
    strategy_status: Dict[str, str] = Field(
        default_factory=dict, description="Per-engine status (ok, failed, timeout, skipped)"
    )
    degraded: bool = Field(default=False, description="An engine failed or timed out")

    confidence: float = Field(..., description="Top relevance score")
    no_results: bool = Field(..., description="Nothing matched")
    low_confidence: bool = Field(..., description="Top result below the confidence threshold")
    suggestions: List[str] = Field(default_factory=list, description="Query suggestions")
    truncated: bool = Field(default=False, description="Candidate cap left older items unsearched")

    session_key: Optional[str] = Field(None, description="Pagination session key")
    processing_time_ms: float = Field(..., description="Search time in milliseconds")

    class Config:
        json_schema_extra = {
            "example": {
                "results": [],
                "total": 0,
                "offset": 0,
                "limit": 10,
                "has_more": False,
                "query": "electrisity bill",
                "strategies": ["fuzzy"],
                "strategy_status": {"semantic": "ok", "fuzzy": "ok", "exact": "ok"},
                "confidence": 0.96,
                "no_results": False,
                "low_confidence": False,
                "processing_time_ms": 42.1,
            }
        }


class QuickSearchResponse(BaseModel):
    query: str
    results: List[SearchResultModel]
    total: int


class MoreRequest(BaseModel):
    """Request for the next page of the current search session."""

    conversation_id: Optional[str] = Field(None, max_length=100, description="Conversation ID")
    page_size: Optional[int] = Field(None, ge=1, le=50, description="Results per page")


class MoreResponse(BaseModel):
    results: List[SearchResultModel]
    start: int = Field(..., description="Index of the first result in this page")
    end: int = Field(..., description="Index after the last result in this page")
    total: int = Field(..., description="Total results in the session")
    has_more: bool
    session_key: str


class SuggestionsResponse(BaseModel):
    query: str
    suggestions: List[str]


class FormattedResultsResponse(BaseModel):
    """Current session page rendered for a chat channel."""

    channel: str
    text: str
    start: int
    end: int
    total: int
    has_more: bool

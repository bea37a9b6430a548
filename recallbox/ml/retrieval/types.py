"""
Search Types
Core data types shared by the match engines, fusion and the orchestrator.
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import TYPE_CHECKING, Any, Dict, List, Optional

if TYPE_CHECKING:
    from .filters import SearchFilters


class ContentType(Enum):
    """Kinds of content a stored item can originate from."""

    TEXT = "text"
    VOICE = "voice"
    IMAGE = "image"
    EMAIL = "email"
    DOCUMENT = "document"


class MatchStrategy(Enum):
    """
    Closed set of match strategies.

    Declaration order is the canonical order used when listing strategies.
    """

    EXACT = "exact"
    CATEGORY = "category"
    METADATA = "metadata"
    SEMANTIC = "semantic"
    FUZZY = "fuzzy"

    @classmethod
    def ordered(cls, strategies) -> List["MatchStrategy"]:
        """Return distinct strategies in declaration order."""
        present = set(strategies)
        return [strategy for strategy in cls if strategy in present]


@dataclass
class SearchableItem:
    """
    A stored item (dump) that can be searched.

    The embedding vector is not held here; it lives in the vector index.
    """

    id: str
    owner_id: str
    raw_text: str
    created_at: datetime = field(default_factory=datetime.utcnow)
    ai_summary: Optional[str] = None
    category: Optional[str] = None
    content_type: str = ContentType.TEXT.value
    metadata: Dict[str, Any] = field(default_factory=dict)

    def searchable_text(self) -> str:
        """Text used to build the item's embedding."""
        parts = [self.raw_text or ""]
        if self.ai_summary:
            parts.append(self.ai_summary)
        if self.category:
            parts.append(self.category)
        return "\n".join(part for part in parts if part).strip()

    def to_dict(self) -> dict:
        """Convert to dictionary for API responses."""
        return {
            "id": self.id,
            "owner_id": self.owner_id,
            "raw_text": self.raw_text,
            "ai_summary": self.ai_summary,
            "category": self.category,
            "content_type": self.content_type,
            "metadata": self.metadata,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }


@dataclass
class MatchResult:
    """One engine's verdict on one item."""

    item: SearchableItem
    score: float
    strategy: MatchStrategy
    excerpts: List[str] = field(default_factory=list)
    matched_terms: List[str] = field(default_factory=list)

    def __post_init__(self):
        if not 0.0 <= self.score <= 1.0:
            raise ValueError(f"Match score must be in [0, 1], got {self.score}")

    @property
    def item_id(self) -> str:
        return self.item.id

    def to_dict(self) -> dict:
        return {
            "item_id": self.item.id,
            "score": float(self.score),
            "strategy": self.strategy.value,
            "excerpts": self.excerpts,
            "matched_terms": self.matched_terms,
        }


@dataclass
class FusedResult:
    """
    Single fused search result.

    Carries everything a formatter needs to render it without re-querying.
    """

    item: SearchableItem
    relevance_score: float
    match_type: MatchStrategy
    strategies: List[MatchStrategy] = field(default_factory=list)
    excerpt: Optional[str] = None
    signal_scores: Dict[str, float] = field(default_factory=dict)

    @property
    def item_id(self) -> str:
        return self.item.id

    def to_dict(self) -> dict:
        """Convert to dictionary for API responses."""
        return {
            "item": self.item.to_dict(),
            "relevance_score": float(self.relevance_score),
            "match_type": self.match_type.value,
            "strategies": [strategy.value for strategy in self.strategies],
            "excerpt": self.excerpt,
            "signal_scores": self.signal_scores,
        }


@dataclass
class SearchQuery:
    """
    A search request scoped to one owner.

    Empty text means "match by filters only"; empty text without filters
    matches nothing.
    """

    text: str
    owner_id: str
    filters: Optional["SearchFilters"] = None
    limit: int = 10
    offset: int = 0
    conversation_id: str = "default"

    def __post_init__(self):
        self.text = (self.text or "").strip()
        if not self.owner_id:
            raise ValueError("owner_id is required")
        if self.limit < 1:
            raise ValueError(f"limit must be positive, got {self.limit}")
        if self.offset < 0:
            raise ValueError(f"offset must be non-negative, got {self.offset}")
        self.conversation_id = self.conversation_id or "default"

    @property
    def session_key(self) -> str:
        return f"{self.owner_id}:{self.conversation_id}"

    def has_filters(self) -> bool:
        return self.filters is not None and self.filters.has_item_filters()

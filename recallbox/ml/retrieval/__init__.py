"""
Retrieval & Matching Module
Vector, fuzzy and exact match engines with filtering and rank fusion.
"""

from .types import ContentType, MatchStrategy, SearchableItem, SearchQuery, MatchResult, FusedResult
from .filters import SearchFilters, filter_items, filter_results
from .vector_index import VectorIndex, VectorIndexError, cosine_similarity
from .index_manager import (
    IndexManager,
    MigrationSummary,
    content_hash,
    get_index_manager,
    reset_index_manager,
)
from .fuzzy import FuzzyMatcher
from .exact import ExactMatcher
from .fusion import RankFusion, fuse

__all__ = [
    "ContentType",
    "MatchStrategy",
    "SearchableItem",
    "SearchQuery",
    "MatchResult",
    "FusedResult",
    "SearchFilters",
    "filter_items",
    "filter_results",
    "VectorIndex",
    "VectorIndexError",
    "cosine_similarity",
    "IndexManager",
    "MigrationSummary",
    "content_hash",
    "get_index_manager",
    "reset_index_manager",
    "FuzzyMatcher",
    "ExactMatcher",
    "RankFusion",
    "fuse",
]

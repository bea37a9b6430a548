"""
Search Filtering
Filter stored items and fused results by content type, category, date and confidence.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime, time, timezone
from typing import Iterable, List, Optional

from .types import FusedResult, SearchableItem

logger = logging.getLogger(__name__)


def as_naive_utc(value: Optional[datetime]) -> Optional[datetime]:
    """Convert an aware datetime to naive UTC; naive values are taken as UTC already."""
    if value is None or value.tzinfo is None:
        return value
    return value.astimezone(timezone.utc).replace(tzinfo=None)


def _start_of(value):
    if isinstance(value, datetime) or value is None:
        return as_naive_utc(value)
    return datetime.combine(value, time.min)


def _end_of(value):
    if isinstance(value, datetime) or value is None:
        return as_naive_utc(value)
    return datetime.combine(value, time.max)


@dataclass
class SearchFilters:
    """
    Optional filters for a search query.

    Date bounds are inclusive; a plain date covers the whole day.
    """

    content_types: List[str] = field(default_factory=list)
    categories: List[str] = field(default_factory=list)
    date_from: Optional[datetime] = None
    date_to: Optional[datetime] = None
    min_confidence: Optional[float] = None

    def __post_init__(self):
        self.content_types = [ct.strip().lower() for ct in self.content_types or [] if ct.strip()]
        self.categories = [c.strip().lower() for c in self.categories or [] if c.strip()]
        self.date_from = _start_of(self.date_from)
        self.date_to = _end_of(self.date_to)

        if self.min_confidence is not None and not 0.0 <= self.min_confidence <= 1.0:
            raise ValueError(f"min_confidence must be in [0, 1], got {self.min_confidence}")

        if self.date_from and self.date_to and self.date_from > self.date_to:
            raise ValueError("date_from must not be after date_to")

    def has_item_filters(self) -> bool:
        """Whether any filter applies to item attributes (not scores)."""
        return bool(
            self.content_types
            or self.categories
            or self.date_from is not None
            or self.date_to is not None
        )

    def is_empty(self) -> bool:
        return not self.has_item_filters() and self.min_confidence is None

    def matches(self, item: SearchableItem) -> bool:
        """
        Check whether an item passes the item-level filters.

        Args:
            item: Item to check

        Returns:
            True if the item passes every active filter
        """
        if self.content_types and (item.content_type or "").lower() not in self.content_types:
            return False

        if self.categories and (item.category or "").lower() not in self.categories:
            return False

        created_at = as_naive_utc(item.created_at)
        if self.date_from is not None and created_at < self.date_from:
            return False

        if self.date_to is not None and created_at > self.date_to:
            return False

        return True

    def to_dict(self) -> dict:
        return {
            "content_types": self.content_types,
            "categories": self.categories,
            "date_from": self.date_from.isoformat() if self.date_from else None,
            "date_to": self.date_to.isoformat() if self.date_to else None,
            "min_confidence": self.min_confidence,
        }


def filter_items(
    items: Iterable[SearchableItem], filters: Optional[SearchFilters]
) -> List[SearchableItem]:
    """Keep the items that pass the item-level filters."""
    if filters is None or not filters.has_item_filters():
        return list(items)
    return [item for item in items if filters.matches(item)]


def filter_results(
    results: Iterable[FusedResult], filters: Optional[SearchFilters]
) -> List[FusedResult]:
    """
    Apply filters to fused results, including the minimum confidence.

    Args:
        results: Ordered fused results
        filters: Filters to apply (None keeps everything)

    Returns:
        Filtered results, order preserved
    """
    results = list(results)
    if filters is None or filters.is_empty():
        return results

    before = len(results)
    kept = [
        result
        for result in results
        if filters.matches(result.item)
        and (filters.min_confidence is None or result.relevance_score >= filters.min_confidence)
    ]

    logger.debug(f"Filters kept {len(kept)}/{before} results")
    return kept

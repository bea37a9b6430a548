"""
Feedback Handler
Records user feedback on search results and aggregates it for review.

Feedback is advisory: it is stored for analysis and never alters ranking.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, Optional

from sqlalchemy import func, select
from sqlalchemy.exc import SQLAlchemyError

from ..errors import ItemStoreError

logger = logging.getLogger(__name__)


@dataclass
class SearchFeedbackEvent:
    """Feedback on one search (optionally on one of its results)."""

    owner_id: str
    query: str
    item_id: Optional[str] = None
    rating: Optional[int] = None  # 1-5
    helpful: Optional[bool] = None
    comment: Optional[str] = None
    session_key: Optional[str] = None
    match_type: Optional[str] = None
    relevance_score: Optional[float] = None
    enhancement_applied: Optional[bool] = None
    timestamp: datetime = field(default_factory=datetime.utcnow)

    def __post_init__(self):
        if self.rating is not None and not 1 <= self.rating <= 5:
            raise ValueError(f"rating must be between 1 and 5, got {self.rating}")
        if self.rating is None and self.helpful is None and not self.comment:
            raise ValueError("feedback needs a rating, a helpful flag or a comment")

    def to_dict(self) -> dict:
        """Convert to dictionary for logging."""
        return {
            "owner_id": self.owner_id,
            "query": self.query,
            "item_id": self.item_id,
            "rating": self.rating,
            "helpful": self.helpful,
            "comment": self.comment,
            "session_key": self.session_key,
            "match_type": self.match_type,
            "relevance_score": self.relevance_score,
            "enhancement_applied": self.enhancement_applied,
            "timestamp": self.timestamp.isoformat(),
        }


class SearchFeedbackHandler:
    """Persists search feedback and reports aggregate statistics."""

    def __init__(self, db_session_factory=None):
        """
        Initialize feedback handler.

        Args:
            db_session_factory: SQLAlchemy session factory (defaults to SessionLocal)
        """
        if db_session_factory is None:
            from ...db.session import SessionLocal

            db_session_factory = SessionLocal
        self.db_session_factory = db_session_factory

    def record(self, event: SearchFeedbackEvent) -> int:
        """
        Store a feedback event.

        Args:
            event: Feedback event

        Returns:
            ID of the stored feedback row

        Raises:
            ItemStoreError: If the database write fails
        """
        from ...db.models import SearchFeedback

        logger.info(f"SEARCH_FEEDBACK: {event.to_dict()}")

        row = SearchFeedback(
            owner_id=event.owner_id,
            query=event.query[:500],
            item_id=event.item_id,
            rating=event.rating,
            helpful=event.helpful,
            comment=event.comment,
            session_key=event.session_key,
            match_type=event.match_type,
            relevance_score=event.relevance_score,
            enhancement_applied=event.enhancement_applied,
            created_at=event.timestamp,
        )

        session = self.db_session_factory()
        try:
            session.add(row)
            session.commit()
            session.refresh(row)
            return row.id
        except SQLAlchemyError as e:
            session.rollback()
            logger.error(f"Failed to store search feedback: {e}", exc_info=True)
            raise ItemStoreError(f"Failed to store feedback: {e}")
        finally:
            session.close()

    def get_stats(self, owner_id: Optional[str] = None) -> Dict[str, Any]:
        """
        Aggregate feedback statistics.

        Args:
            owner_id: Restrict to one owner (None = all owners)

        Returns:
            Dict with totals, average rating, helpful rate and per-match-type counts
        """
        from ...db.models import SearchFeedback

        def scoped(statement):
            if owner_id is not None:
                return statement.where(SearchFeedback.owner_id == owner_id)
            return statement

        session = self.db_session_factory()
        try:
            total = session.execute(scoped(select(func.count(SearchFeedback.id)))).scalar() or 0
            avg_rating = session.execute(
                scoped(select(func.avg(SearchFeedback.rating)))
            ).scalar()
            helpful_votes = session.execute(
                scoped(
                    select(func.count(SearchFeedback.id)).where(
                        SearchFeedback.helpful.isnot(None)
                    )
                )
            ).scalar() or 0
            helpful_yes = session.execute(
                scoped(
                    select(func.count(SearchFeedback.id)).where(
                        SearchFeedback.helpful.is_(True)
                    )
                )
            ).scalar() or 0
            by_match_type = session.execute(
                scoped(
                    select(SearchFeedback.match_type, func.count(SearchFeedback.id)).group_by(
                        SearchFeedback.match_type
                    )
                )
            ).all()
        except SQLAlchemyError as e:
            logger.error(f"Failed to read feedback stats: {e}", exc_info=True)
            raise ItemStoreError(f"Failed to read feedback stats: {e}")
        finally:
            session.close()

        return {
            "total_feedback": int(total),
            "average_rating": round(float(avg_rating), 2) if avg_rating is not None else None,
            "helpful_rate": (helpful_yes / helpful_votes) if helpful_votes else None,
            "by_match_type": {
                (match_type or "unknown"): count for match_type, count in by_match_type
            },
        }

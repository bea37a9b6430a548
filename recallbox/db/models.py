"""
SQLAlchemy ORM Models
Database table definitions using SQLAlchemy ORM.
"""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import JSON, Boolean, Column, DateTime, Float, Index, Integer, String, Text
from sqlalchemy.orm import declarative_base
from sqlalchemy.sql import func

from ..ml.retrieval.types import SearchableItem

Base = declarative_base()


class Item(Base):
    """
    Stored item (dump).

    Written by the content-ingestion pipeline; read by the search engine.
    """
    __tablename__ = 'items'

    id = Column(String(64), primary_key=True)
    owner_id = Column(String(64), nullable=False, index=True,
                      comment='Owner of the item; every search is scoped to one owner')

    raw_text = Column(Text, nullable=False, default='')
    ai_summary = Column(Text, nullable=True, comment='AI-generated summary')
    category = Column(String(100), nullable=True, index=True)
    content_type = Column(String(20), nullable=False, default='text',
                          comment='text, voice, image, email or document')
    item_metadata = Column('metadata', JSON, nullable=False, default=dict,
                           comment='Structured key/value data extracted from the item')

    # Timestamps
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow,
                        server_default=func.now())
    updated_at = Column(DateTime, nullable=False, default=datetime.utcnow,
                        server_default=func.now(), onupdate=datetime.utcnow)

    __table_args__ = (
        Index('idx_items_owner_created', 'owner_id', 'created_at'),
    )

    def to_searchable(self) -> SearchableItem:
        """Convert to the engine's item type."""
        return SearchableItem(
            id=self.id,
            owner_id=self.owner_id,
            raw_text=self.raw_text or '',
            ai_summary=self.ai_summary,
            category=self.category,
            content_type=self.content_type or 'text',
            metadata=dict(self.item_metadata or {}),
            created_at=self.created_at,
        )

    def __repr__(self):
        return f"<Item(id={self.id}, owner_id={self.owner_id}, category={self.category})>"


class SearchFeedback(Base):
    """
    Feedback on a search result.

    Advisory only; never read by the ranking path.
    """
    __tablename__ = 'search_feedback'

    id = Column(Integer, primary_key=True, autoincrement=True)
    owner_id = Column(String(64), nullable=False, index=True)
    query = Column(String(500), nullable=False)
    item_id = Column(String(64), nullable=True, index=True,
                     comment='Result the feedback refers to, if any')

    rating = Column(Integer, nullable=True, comment='1-5 rating')
    helpful = Column(Boolean, nullable=True)
    comment = Column(Text, nullable=True)

    # Context
    session_key = Column(String(200), nullable=True)
    match_type = Column(String(20), nullable=True)
    relevance_score = Column(Float, nullable=True)
    enhancement_applied = Column(Boolean, nullable=True)

    created_at = Column(DateTime, nullable=False, default=datetime.utcnow,
                        server_default=func.now())

    def __repr__(self):
        return f"<SearchFeedback(id={self.id}, owner_id={self.owner_id}, rating={self.rating})>"

"""
Database ORM Models
SQLAlchemy ORM models for database tables.
"""

from .models import Base, Item, SearchFeedback

__all__ = [
    "Base",
    "Item",
    "SearchFeedback",
]

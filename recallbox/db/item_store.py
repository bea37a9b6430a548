"""
Item Store
Read access to stored items for the search engine.
"""

import logging
import threading
from abc import ABC, abstractmethod
from typing import Dict, Iterator, List, Optional

from sqlalchemy import func, select
from sqlalchemy.exc import SQLAlchemyError

from ..ml.errors import ItemStoreError
from ..ml.retrieval.filters import SearchFilters
from ..ml.retrieval.types import SearchableItem
from .models import Item

logger = logging.getLogger(__name__)


class ItemStore(ABC):
    """
    Source of SearchableItems.

    Every listing is scoped to one owner. Failures raise ItemStoreError.
    """

    @abstractmethod
    def list_items(
        self,
        owner_id: str,
        filters: Optional[SearchFilters] = None,
        limit: Optional[int] = None,
    ) -> List[SearchableItem]:
        """List an owner's items, newest first, honoring item-level filters."""

    @abstractmethod
    def get_item(self, item_id: str) -> Optional[SearchableItem]:
        """Get a single item by id."""

    @abstractmethod
    def iter_batches(
        self, batch_size: int, owner_id: Optional[str] = None
    ) -> Iterator[List[SearchableItem]]:
        """Iterate over all items (optionally one owner's) in id order."""

    @abstractmethod
    def count(self, owner_id: Optional[str] = None) -> int:
        """Count items."""

    @abstractmethod
    def add(self, item: SearchableItem) -> None:
        """Insert or replace an item."""


def _newest_first(items: List[SearchableItem]) -> List[SearchableItem]:
    items = sorted(items, key=lambda item: item.id)
    items.sort(key=lambda item: item.created_at, reverse=True)
    return items


class InMemoryItemStore(ItemStore):
    """Thread-safe in-memory item store (local development and tests)."""

    def __init__(self, items: Optional[List[SearchableItem]] = None):
        self._items: Dict[str, SearchableItem] = {}
        self._lock = threading.Lock()
        for item in items or []:
            self.add(item)

    def add(self, item: SearchableItem) -> None:
        with self._lock:
            self._items[item.id] = item

    def remove(self, item_id: str) -> bool:
        with self._lock:
            return self._items.pop(item_id, None) is not None

    def list_items(self, owner_id, filters=None, limit=None):
        with self._lock:
            owned = [item for item in self._items.values() if item.owner_id == owner_id]

        if filters is not None and filters.has_item_filters():
            owned = [item for item in owned if filters.matches(item)]

        owned = _newest_first(owned)
        return owned[:limit] if limit is not None else owned

    def get_item(self, item_id):
        with self._lock:
            return self._items.get(item_id)

    def iter_batches(self, batch_size, owner_id=None):
        with self._lock:
            items = sorted(
                (i for i in self._items.values() if owner_id is None or i.owner_id == owner_id),
                key=lambda item: item.id,
            )
        for start in range(0, len(items), batch_size):
            yield items[start : start + batch_size]

    def count(self, owner_id=None):
        with self._lock:
            if owner_id is None:
                return len(self._items)
            return sum(1 for item in self._items.values() if item.owner_id == owner_id)


class SQLAlchemyItemStore(ItemStore):
    """
    Item store backed by the `items` table.

    Args:
        session_factory: Callable returning a new SQLAlchemy session
    """

    def __init__(self, session_factory):
        self.session_factory = session_factory

    def list_items(self, owner_id, filters=None, limit=None):
        query = select(Item).where(Item.owner_id == owner_id)

        if filters is not None:
            if filters.content_types:
                query = query.where(func.lower(Item.content_type).in_(filters.content_types))
            if filters.categories:
                query = query.where(func.lower(Item.category).in_(filters.categories))
            if filters.date_from is not None:
                query = query.where(Item.created_at >= filters.date_from)
            if filters.date_to is not None:
                query = query.where(Item.created_at <= filters.date_to)

        query = query.order_by(Item.created_at.desc(), Item.id.asc())
        if limit is not None:
            query = query.limit(limit)

        session = self.session_factory()
        try:
            rows = session.execute(query).scalars().all()
            return [row.to_searchable() for row in rows]
        except SQLAlchemyError as e:
            logger.error(f"Failed to list items for owner {owner_id}: {e}")
            raise ItemStoreError(f"Item store unavailable: {e}")
        finally:
            session.close()

    def get_item(self, item_id):
        session = self.session_factory()
        try:
            row = session.get(Item, item_id)
            return row.to_searchable() if row is not None else None
        except SQLAlchemyError as e:
            raise ItemStoreError(f"Item store unavailable: {e}")
        finally:
            session.close()

    def iter_batches(self, batch_size, owner_id=None):
        last_id = None
        while True:
            query = select(Item).order_by(Item.id).limit(batch_size)
            if owner_id is not None:
                query = query.where(Item.owner_id == owner_id)
            if last_id is not None:
                query = query.where(Item.id > last_id)

            session = self.session_factory()
            try:
                batch = [row.to_searchable() for row in session.execute(query).scalars().all()]
            except SQLAlchemyError as e:
                raise ItemStoreError(f"Item store unavailable: {e}")
            finally:
                session.close()

            if not batch:
                return
            yield batch
            last_id = batch[-1].id

    def count(self, owner_id=None):
        query = select(func.count(Item.id))
        if owner_id is not None:
            query = query.where(Item.owner_id == owner_id)

        session = self.session_factory()
        try:
            return int(session.execute(query).scalar() or 0)
        except SQLAlchemyError as e:
            raise ItemStoreError(f"Item store unavailable: {e}")
        finally:
            session.close()

    def add(self, item: SearchableItem) -> None:
        session = self.session_factory()
        try:
            session.merge(
                Item(
                    id=item.id,
                    owner_id=item.owner_id,
                    raw_text=item.raw_text,
                    ai_summary=item.ai_summary,
                    category=item.category,
                    content_type=item.content_type,
                    item_metadata=item.metadata,
                    created_at=item.created_at,
                )
            )
            session.commit()
        except SQLAlchemyError as e:
            session.rollback()
            raise ItemStoreError(f"Failed to store item {item.id}: {e}")
        finally:
            session.close()


# Global store instance
_item_store: Optional[ItemStore] = None


def get_item_store() -> ItemStore:
    """Get global item store (singleton, database-backed)."""
    global _item_store
    if _item_store is None:
        from .session import SessionLocal

        _item_store = SQLAlchemyItemStore(SessionLocal)
    return _item_store


def set_item_store(store: Optional[ItemStore]) -> None:
    """Replace the global item store (None resets it)."""
    global _item_store
    _item_store = store

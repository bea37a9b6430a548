"""
Vector Index Manager
Manages the vector index lifecycle: batch embedding, persistence and reloading.
"""

from __future__ import annotations

import hashlib
import logging
import threading
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import List, Optional

from ..config import MLConfig, get_ml_config
from ..embedding import EmbeddingProvider, get_embedding_provider
from ..errors import EmptyInput, ProviderError
from .types import SearchableItem
from .vector_index import VectorIndex, VectorIndexError

logger = logging.getLogger(__name__)


def content_hash(item: SearchableItem) -> str:
    """Hash of the text an item's vector is built from."""
    return hashlib.sha256(item.searchable_text().encode("utf-8")).hexdigest()[:32]


@dataclass
class MigrationSummary:
    """Outcome of a batch embedding run. Every item is tracked independently."""

    processed_count: int = 0
    skipped_count: int = 0
    errors: List[dict] = field(default_factory=list)

    @property
    def failed_count(self) -> int:
        return len(self.errors)

    def to_dict(self) -> dict:
        return {
            "processed": self.processed_count,
            "skipped": self.skipped_count,
            "failed": self.failed_count,
            "errors": self.errors,
        }


class IndexManager:
    """
    Keeps the vector index in sync with stored items.

    Re-embedding an item whose vector is current (same content hash and
    model) is a no-op unless forced.
    """

    def __init__(
        self,
        config: Optional[MLConfig] = None,
        index: Optional[VectorIndex] = None,
        provider: Optional[EmbeddingProvider] = None,
    ):
        """
        Initialize index manager.

        Args:
            config: ML configuration
            index: Vector index (a new empty one by default)
            provider: Embedding provider (global provider by default)
        """
        self.config = config or get_ml_config()
        self.index = index or VectorIndex(self.config.embedding.dimension)
        self._provider = provider
        self.index_path = Path(self.config.storage.index_path)

        self.loaded = False
        self.loaded_mtime: Optional[float] = None
        self.last_migration: Optional[datetime] = None
        self.last_summary: Optional[MigrationSummary] = None

        # Serializes migrations; the index itself handles concurrent readers
        self.migration_lock = threading.Lock()

        logger.info("Vector Index Manager initialized")

    @property
    def provider(self) -> EmbeddingProvider:
        if self._provider is None:
            self._provider = get_embedding_provider()
        return self._provider

    def needs_embedding(self, item: SearchableItem, force: bool = False) -> bool:
        """Whether an item lacks a current vector."""
        if force:
            return True
        return not self.index.is_current(item.id, content_hash(item), self.provider.model_id)

    def migrate_existing(
        self,
        item_store,
        batch_size: Optional[int] = None,
        force: bool = False,
        owner_id: Optional[str] = None,
    ) -> MigrationSummary:
        """
        Embed every item lacking a current vector.

        Individual failures are recorded and never abort the run.

        Args:
            item_store: Store to read items from
            batch_size: Items per embedding request
            force: Re-embed items even if their vector is current
            owner_id: Restrict the run to one owner

        Returns:
            MigrationSummary with processed, skipped and per-item errors
        """
        batch_size = batch_size or self.config.embedding.batch_size
        summary = MigrationSummary()

        with self.migration_lock:
            for batch_num, batch in enumerate(item_store.iter_batches(batch_size, owner_id), 1):
                pending = []
                for item in batch:
                    if not item.searchable_text():
                        logger.debug(f"Item {item.id} has no text to embed, skipping")
                        summary.skipped_count += 1
                    elif self.needs_embedding(item, force):
                        pending.append(item)
                    else:
                        summary.skipped_count += 1

                if pending:
                    self._embed_batch(pending, summary)
                    logger.info(
                        f"Batch {batch_num}: embedded {len(pending)} items "
                        f"({summary.processed_count} processed, {summary.failed_count} failed)"
                    )

            self.last_migration = datetime.utcnow()
            self.last_summary = summary

        logger.info(
            f"Index migration complete: processed={summary.processed_count}, "
            f"skipped={summary.skipped_count}, failed={summary.failed_count}"
        )
        return summary

    def _embed_batch(self, items: List[SearchableItem], summary: MigrationSummary) -> None:
        try:
            results = self.provider.embed_batch([item.searchable_text() for item in items])
        except (ProviderError, EmptyInput) as e:
            # Fall back to one request per item so each outcome is tracked
            logger.warning(f"Batch embedding failed, retrying items individually: {e}")
            for item in items:
                self._embed_one(item, summary)
            return

        for item, result in zip(items, results):
            self._store(item, result, summary)

    def _embed_one(self, item: SearchableItem, summary: MigrationSummary) -> None:
        try:
            result = self.provider.embed(item.searchable_text())
        except (ProviderError, EmptyInput) as e:
            error_msg = f"Item {item.id}: {e}"
            summary.errors.append({"item_id": item.id, "error": str(e)})
            logger.error(error_msg)
            return
        self._store(item, result, summary)

    def _store(self, item, result, summary: MigrationSummary) -> None:
        try:
            self.index.upsert(
                item.id,
                item.owner_id,
                result.vector,
                content_hash=content_hash(item),
                model_id=self.provider.model_id,
            )
            summary.processed_count += 1
        except ValueError as e:
            summary.errors.append({"item_id": item.id, "error": str(e)})
            logger.error(f"Item {item.id}: {e}")

    def remove_item(self, item_id: str) -> bool:
        return self.index.remove(item_id)

    def ensure_index_loaded(self) -> None:
        """
        Load the persisted index once, if one exists.

        A missing or unreadable snapshot leaves an empty index; run a reindex
        to populate it.
        """
        if self.loaded:
            return

        try:
            self.index.load(self.index_path)
            self.loaded_mtime = self.index_path.stat().st_mtime
        except FileNotFoundError:
            logger.info(f"No vector index snapshot at {self.index_path}; starting empty")
        except VectorIndexError as e:
            logger.warning(f"Could not load vector index: {e}")

        self.loaded = True

    def reload_if_changed(self) -> bool:
        """
        Reload the snapshot if another process has written a newer one.

        Returns:
            True if a reload was performed
        """
        try:
            mtime = self.index_path.stat().st_mtime
        except FileNotFoundError:
            return False

        if self.loaded_mtime is not None and mtime <= self.loaded_mtime:
            return False

        try:
            self.index.load(self.index_path)
        except VectorIndexError as e:
            logger.warning(f"Could not reload vector index: {e}")
            return False

        self.loaded_mtime = mtime
        self.loaded = True
        logger.info("Vector index reloaded from newer snapshot")
        return True

    def save(self) -> Path:
        path = self.index.save(self.index_path)
        self.loaded_mtime = path.stat().st_mtime
        return path

    def get_stats(self) -> dict:
        """
        Get index statistics.

        Returns:
            Dictionary with index stats
        """
        stats = self.index.get_stats()
        stats.update(
            {
                "status": "loaded" if self.loaded else "not_loaded",
                "index_path": str(self.index_path),
                "last_migration": self.last_migration.isoformat() if self.last_migration else None,
                "last_migration_summary": (
                    self.last_summary.to_dict() if self.last_summary else None
                ),
            }
        )
        return stats


# Global instance accessor
_manager_instance: Optional[IndexManager] = None


def get_index_manager(config: Optional[MLConfig] = None) -> IndexManager:
    """Get global vector index manager instance."""
    global _manager_instance
    if _manager_instance is None:
        _manager_instance = IndexManager(config=config)
    return _manager_instance


def reset_index_manager() -> None:
    """Reset the manager (useful for testing)."""
    global _manager_instance
    _manager_instance = None

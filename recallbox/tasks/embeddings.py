"""
Indexing Tasks
Background tasks for embedding items into the vector index and
expiring search sessions.
"""

import logging
from typing import Any, Dict, Optional

from .celery_app import app

logger = logging.getLogger(__name__)


@app.task(bind=True, name="tasks.reindex_items", max_retries=2, default_retry_delay=180)
def reindex_items(
    self,
    batch_size: int = 100,
    force: bool = False,
    owner_id: Optional[str] = None,
) -> Dict[str, Any]:
    """
    Embed new or changed items and persist the vector index.

    Items whose text is unchanged since they were last indexed are skipped,
    so running this twice in a row does no work the second time.

    Args:
        batch_size: Items to embed per provider call
        force: Re-embed every item regardless of content hash
        owner_id: Restrict to one owner (None = all owners)

    Returns:
        Dictionary with status ("success" or "partial"), counts and first errors
    """
    try:
        logger.info(
            f"Starting reindex (owner={owner_id or 'all'}, batch_size={batch_size}, force={force})"
        )

        # Import here to avoid loading the index at worker import time
        from ..ml.retrieval import get_index_manager
        from ..db.item_store import get_item_store

        index_manager = get_index_manager()
        index_manager.ensure_index_loaded()

        summary = index_manager.migrate_existing(
            get_item_store(), batch_size=batch_size, force=force, owner_id=owner_id
        )
        index_manager.save()

        logger.info(
            f"Reindex complete: processed={summary.processed_count}, "
            f"skipped={summary.skipped_count}, failed={summary.failed_count}"
        )

        return {
            "status": "success" if summary.failed_count == 0 else "partial",
            "processed": summary.processed_count,
            "skipped": summary.skipped_count,
            "failed": summary.failed_count,
            "errors": summary.errors[:10],  # Limit error details
        }

    except Exception as e:
        logger.error(f"Error reindexing items: {e}", exc_info=True)

        try:
            self.retry(exc=e)
        except self.MaxRetriesExceededError:
            logger.error("Max retries exceeded for reindex")
            return {
                "status": "error",
                "error": str(e),
                "processed": 0,
                "retries_exceeded": True,
            }


@app.task(bind=True, name="tasks.cleanup_search_sessions")
def cleanup_search_sessions(self) -> Dict[str, Any]:
    """
    Purge expired search sessions.

    Redis-backed sessions expire through their TTL, so this only removes
    anything for the in-process store.

    Returns:
        Dictionary with number of sessions removed and still active
    """
    from ..ml.search import get_session_store

    store = get_session_store()
    removed = store.sweep_expired()
    active = store.active_count()

    logger.info(f"Session cleanup: removed={removed}, active={active}")

    return {"status": "success", "removed": removed, "active": active}

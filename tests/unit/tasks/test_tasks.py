"""
Tests for the background indexing and session cleanup tasks.
"""

import pytest
from conftest import FakeEmbeddingProvider, make_item

import recallbox.db.item_store as item_store_module
import recallbox.ml.retrieval as retrieval_module
from recallbox.ml.retrieval import FusedResult, IndexManager, MatchStrategy
from recallbox.ml.search import reset_session_store, set_session_store
from recallbox.tasks.celery_app import app as celery_app
from recallbox.tasks.embeddings import cleanup_search_sessions, reindex_items


@pytest.fixture
def wired(monkeypatch, index_manager, item_store):
    monkeypatch.setattr(retrieval_module, "get_index_manager", lambda: index_manager)
    monkeypatch.setattr(item_store_module, "get_item_store", lambda: item_store)
    return index_manager


def test_beat_schedule_registers_tasks():
    schedule = celery_app.conf.beat_schedule

    assert schedule["reindex-items"]["task"] == "tasks.reindex_items"
    assert schedule["cleanup-search-sessions"]["task"] == "tasks.cleanup_search_sessions"


def test_reindex_task(wired, ml_config):
    result = reindex_items.apply(kwargs={"batch_size": 4}).get()

    assert result["status"] == "success"
    assert result["processed"] == 6
    assert ml_config.storage.index_path.exists()

    again = reindex_items.apply(kwargs={"batch_size": 4}).get()
    assert again["processed"] == 0
    assert again["skipped"] == 6


def test_reindex_task_reports_partial(monkeypatch, ml_config, item_store):
    manager = IndexManager(config=ml_config, provider=FakeEmbeddingProvider(fail_on={"Grocery"}))
    monkeypatch.setattr(retrieval_module, "get_index_manager", lambda: manager)
    monkeypatch.setattr(item_store_module, "get_item_store", lambda: item_store)

    result = reindex_items.apply(kwargs={"owner_id": "U1"}).get()

    assert result["status"] == "partial"
    assert result["processed"] == 3
    assert result["errors"][0]["item_id"] == "u1-grocery"


def test_cleanup_task(session_store, clock):
    session_store.create("U1:old", "U1", "note", [note_result()])
    clock.advance(601)
    set_session_store(session_store)
    try:
        result = cleanup_search_sessions.apply().get()
    finally:
        reset_session_store()

    assert result == {"status": "success", "removed": 1, "active": 0}


def note_result():
    return FusedResult(
        item=make_item("u1-note", "U1", "note"),
        relevance_score=1.0,
        match_type=MatchStrategy.EXACT,
        strategies=[MatchStrategy.EXACT],
    )

"""
Tests for batch embedding and index persistence.
"""

from conftest import FakeEmbeddingProvider, make_item

from recallbox.ml.retrieval import IndexManager, content_hash


def test_migrate_embeds_every_item(index_manager, item_store, fake_provider):
    summary = index_manager.migrate_existing(item_store, batch_size=4)

    assert summary.to_dict() == {"processed": 6, "skipped": 0, "failed": 0, "errors": []}
    assert index_manager.index.size() == 6
    assert index_manager.index.owner_size("U1") == 4
    assert fake_provider.calls == 6


def test_migrate_is_idempotent(index_manager, item_store, fake_provider):
    index_manager.migrate_existing(item_store)
    calls = fake_provider.calls

    summary = index_manager.migrate_existing(item_store)

    assert summary.processed_count == 0
    assert summary.skipped_count == 6
    assert fake_provider.calls == calls


def test_changed_text_is_reembedded(index_manager, item_store):
    index_manager.migrate_existing(item_store)
    item_store.add(make_item("u1-rent", "U1", "pay rent and deposit", category="finance"))

    summary = index_manager.migrate_existing(item_store)

    assert summary.processed_count == 1
    assert summary.skipped_count == 5


def test_force_reembeds_everything(index_manager, item_store):
    index_manager.migrate_existing(item_store)

    assert index_manager.migrate_existing(item_store, force=True).processed_count == 6


def test_owner_scoped_run(index_manager, item_store):
    summary = index_manager.migrate_existing(item_store, owner_id="U2")

    assert summary.processed_count == 2
    assert index_manager.index.owner_size("U1") == 0


def test_partial_failure_is_tracked_per_item(ml_config, item_store):
    manager = IndexManager(config=ml_config, provider=FakeEmbeddingProvider(fail_on={"Grocery"}))

    summary = manager.migrate_existing(item_store, batch_size=10)

    assert summary.processed_count == 5
    assert summary.failed_count == 1
    assert summary.errors[0]["item_id"] == "u1-grocery"


def test_items_without_text_are_skipped(index_manager, item_store):
    item_store.add(make_item("u1-blank", "U1", "   "))

    summary = index_manager.migrate_existing(item_store)

    assert summary.processed_count == 6
    assert summary.skipped_count == 1
    assert summary.failed_count == 0


def test_save_and_reload_in_new_manager(ml_config, index_manager, item_store, sample_items):
    index_manager.migrate_existing(item_store)
    index_manager.save()

    restored = IndexManager(config=ml_config, provider=FakeEmbeddingProvider())
    restored.ensure_index_loaded()

    assert restored.loaded is True
    assert restored.index.size() == 6
    bill = sample_items[0]
    assert restored.index.is_current(bill.id, content_hash(bill), "fake-embed-1")
    assert restored.migrate_existing(item_store).processed_count == 0


def test_missing_snapshot_starts_empty(ml_config, fake_provider):
    manager = IndexManager(config=ml_config, provider=fake_provider)
    manager.ensure_index_loaded()

    assert manager.loaded is True
    assert manager.index.size() == 0
    assert manager.reload_if_changed() is False


def test_model_change_triggers_reembedding(ml_config, index_manager, item_store):
    index_manager.migrate_existing(item_store)

    upgraded = IndexManager(
        config=ml_config,
        index=index_manager.index,
        provider=FakeEmbeddingProvider(model="fake-embed-2"),
    )

    assert upgraded.migrate_existing(item_store).processed_count == 6


def test_stats(index_manager, item_store):
    index_manager.migrate_existing(item_store)
    stats = index_manager.get_stats()

    assert stats["last_migration_summary"]["processed"] == 6
    assert stats["status"] == "not_loaded"

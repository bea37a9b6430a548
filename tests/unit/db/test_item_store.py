"""
Tests for the database-backed and in-memory item stores.
"""

from datetime import date, datetime, timedelta, timezone

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from recallbox.db.item_store import InMemoryItemStore, SQLAlchemyItemStore
from recallbox.ml.errors import ItemStoreError
from recallbox.ml.retrieval import SearchFilters


@pytest.fixture
def sql_store(db_session_factory, sample_items):
    store = SQLAlchemyItemStore(db_session_factory)
    for item in sample_items:
        store.add(item)
    return store


@pytest.fixture(params=["memory", "sql"])
def store(request, sample_items):
    if request.param == "memory":
        return InMemoryItemStore(sample_items)
    return request.getfixturevalue("sql_store")


def ids(items):
    return [item.id for item in items]


def test_list_items_newest_first_and_owner_scoped(store):
    assert ids(store.list_items("U1")) == ["u1-grocery", "u1-rent", "u1-bill", "u1-water"]
    assert ids(store.list_items("U2")) == ["u2-bill", "u2-rent"]
    assert store.list_items("U3") == []


def test_list_items_with_filters(store):
    bills = store.list_items("U1", SearchFilters(categories=["Bills"]))
    november = store.list_items("U1", SearchFilters(date_from=date(2024, 11, 2)))

    assert ids(bills) == ["u1-bill", "u1-water"]
    assert ids(november) == ["u1-grocery", "u1-rent"]


def test_timezone_aware_date_bounds_compare_in_utc(store):
    plus_two = timezone(timedelta(hours=2))
    since = SearchFilters(date_from=datetime(2024, 11, 1, 10, 0, tzinfo=plus_two))
    until = SearchFilters(date_to=datetime(2024, 11, 1, 10, 0, tzinfo=plus_two))

    assert since.date_from == datetime(2024, 11, 1, 8, 0)
    assert ids(store.list_items("U1", since)) == ["u1-grocery", "u1-rent", "u1-bill"]
    assert ids(store.list_items("U1", until)) == ["u1-water"]


def test_list_items_limit(store):
    assert len(store.list_items("U1", limit=2)) == 2


def test_get_item_round_trips_fields(store):
    item = store.get_item("u1-bill")

    assert item.owner_id == "U1"
    assert item.metadata == {"amount": 150, "vendor": "Enel"}
    assert item.created_at == datetime(2024, 11, 1, 9, 0)
    assert store.get_item("missing") is None


def test_iter_batches_and_count(store):
    batches = list(store.iter_batches(4))

    assert [len(batch) for batch in batches] == [4, 2]
    assert ids(batches[0] + batches[1]) == sorted(ids(batches[0] + batches[1]))
    assert ids(next(store.iter_batches(10, owner_id="U2"))) == ["u2-bill", "u2-rent"]
    assert store.count() == 6
    assert store.count("U1") == 4


def test_add_replaces_existing(sql_store, sample_items):
    item = sample_items[3]
    item.raw_text = "pay rent and deposit"
    sql_store.add(item)

    assert sql_store.get_item("u1-rent").raw_text == "pay rent and deposit"
    assert sql_store.count() == 6


def test_missing_tables_raise_item_store_error():
    engine = create_engine(
        "sqlite://", connect_args={"check_same_thread": False}, poolclass=StaticPool
    )
    store = SQLAlchemyItemStore(sessionmaker(bind=engine))

    with pytest.raises(ItemStoreError):
        store.list_items("U1")
    with pytest.raises(ItemStoreError):
        store.count()

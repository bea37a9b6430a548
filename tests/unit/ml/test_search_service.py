"""
Tests for the hybrid search orchestrator.
"""

from concurrent.futures import ThreadPoolExecutor
from datetime import datetime, timedelta

import pytest
import redis
from conftest import FailingProvider, SlowProvider, make_item

from recallbox.db.item_store import InMemoryItemStore
from recallbox.ml.caching import RedisCache
from recallbox.ml.errors import ItemStoreError, OwnerIsolationViolation, SessionExpired
from recallbox.ml.retrieval import MatchStrategy, SearchFilters, SearchQuery
from recallbox.ml.search import RedisSessionStore


class LeakyItemStore(InMemoryItemStore):
    """Store that ignores the owner scope."""

    def list_items(self, owner_id, filters=None, limit=None):
        with self._lock:
            return list(self._items.values())


class BrokenItemStore(InMemoryItemStore):
    def list_items(self, owner_id, filters=None, limit=None):
        raise ItemStoreError("database is down")


class UnreachableRedis:
    def __getattr__(self, name):
        def fail(*args, **kwargs):
            raise redis.ConnectionError("connection refused")

        return fail


def ids(results):
    return [r.item.id for r in results]


@pytest.fixture
def notes_store():
    start = datetime(2024, 1, 1)
    return InMemoryItemStore(
        [
            make_item(f"note-{k:02d}", "U1", f"note number {k}", created_at=start + timedelta(hours=k))
            for k in range(12)
        ]
    )


def test_typo_query_finds_item(search_service):
    response = search_service.search(SearchQuery(text="electrisity bill", owner_id="U1"))

    assert response.results[0].item.id == "u1-bill"
    assert MatchStrategy.FUZZY in response.results[0].strategies
    assert response.confidence > 0.5
    assert response.low_confidence is False
    assert all(r.item.owner_id == "U1" for r in response.results)
    assert response.enhancement_applied is True
    assert "invoice" in response.enhanced_query


def test_results_are_scoped_to_owner(search_service):
    response = search_service.search(SearchQuery(text="pay rent", owner_id="U1"))

    assert ids(response.results) == ["u1-rent"]
    assert response.results[0].relevance_score == 1.0
    assert response.strategies == ["exact", "fuzzy"]


def test_semantic_skipped_without_vectors(search_service):
    response = search_service.search(SearchQuery(text="pay rent", owner_id="U1"))

    assert response.strategy_status == {"semantic": "skipped", "fuzzy": "ok", "exact": "ok"}
    assert response.degraded is False


def test_semantic_engine_runs_after_reindex(search_service):
    search_service.reindex()

    response = search_service.search(SearchQuery(text="pay rent", owner_id="U1"))

    assert response.strategy_status["semantic"] == "ok"
    assert MatchStrategy.SEMANTIC in response.results[0].strategies
    assert all(r.item.owner_id == "U1" for r in response.results)


def test_filter_only_search_lists_by_recency(search_service):
    response = search_service.search(
        SearchQuery(text="", owner_id="U1", filters=SearchFilters(categories=["bills"]))
    )

    assert ids(response.results) == ["u1-bill", "u1-water"]
    assert all(r.relevance_score == 1.0 for r in response.results)
    assert all(r.match_type == MatchStrategy.CATEGORY for r in response.results)
    assert set(response.strategy_status.values()) == {"skipped"}


def test_empty_query_without_filters_matches_nothing(search_service):
    response = search_service.search(SearchQuery(text="  ", owner_id="U1"))

    assert response.results == []
    assert response.no_results is True


def test_low_confidence_includes_suggestions(search_service):
    response = search_service.search(SearchQuery(text="zebra bill", owner_id="U1"))

    assert response.results
    assert response.confidence == pytest.approx(4 / 9, abs=1e-4)
    assert response.low_confidence is True
    assert response.suggestions == ["bills", "finance", "shopping", "bill"]


def test_no_results_still_creates_session(search_service):
    response = search_service.search(
        SearchQuery(text="xylophone", owner_id="U1", conversation_id="chat-1")
    )

    assert response.no_results is True
    assert response.session_key == "U1:chat-1"
    assert response.suggestions


def test_min_confidence_drops_weak_results(search_service):
    response = search_service.search(
        SearchQuery(text="zebra bill", owner_id="U1", filters=SearchFilters(min_confidence=0.5))
    )

    assert response.results == []


def test_pagination_serves_every_result_once(build_service, notes_store):
    service = build_service(item_store=notes_store)

    first = service.search(SearchQuery(text="note", owner_id="U1", limit=5, conversation_id="c"))
    assert len(first.results) == 5
    assert first.has_more is True

    second = service.advance_session("U1:c", "U1")
    third = service.advance_session("U1:c", "U1")
    fourth = service.advance_session("U1:c", "U1")

    assert (second.start, second.end) == (5, 10)
    assert (third.start, third.end, third.has_more) == (10, 12, False)
    assert fourth.results == []

    everything = service.search(
        SearchQuery(text="note", owner_id="U1", limit=100, conversation_id="other")
    )
    served = ids(first.results) + ids(second.results) + ids(third.results)
    assert served == ids(everything.results)
    assert served[0] == "note-11"


def test_lexical_engines_read_every_owned_item_by_default(build_service, notes_store):
    service = build_service(item_store=notes_store)

    response = service.search(SearchQuery(text="number 0", owner_id="U1", limit=100))

    assert "note-00" in ids(response.results)
    assert response.truncated is False


def test_candidate_cap_flags_truncation(ml_config, build_service, notes_store):
    ml_config.search.candidate_limit = 5
    service = build_service(item_store=notes_store)

    searched = service.search(SearchQuery(text="note", owner_id="U1", limit=100))
    listed = service.search(
        SearchQuery(text="", owner_id="U1", filters=SearchFilters(content_types=["text"]))
    )

    assert searched.total == 5
    assert searched.truncated is True
    assert ids(searched.results)[0] == "note-11"
    assert listed.total == 5
    assert listed.truncated is True


def test_session_expires(build_service, notes_store, clock):
    service = build_service(item_store=notes_store)
    service.search(SearchQuery(text="note", owner_id="U1", limit=5))

    clock.advance(601)

    with pytest.raises(SessionExpired):
        service.advance_session("U1:default", "U1")


def test_current_page_matches_last_page(build_service, notes_store):
    service = build_service(item_store=notes_store)
    service.search(SearchQuery(text="note", owner_id="U1", limit=5))
    served = service.advance_session("U1:default", "U1")

    assert ids(service.current_page("U1:default", "U1").results) == ids(served.results)


def test_reindex_is_idempotent(search_service, fake_provider):
    first = search_service.reindex()
    calls = fake_provider.calls
    second = search_service.reindex()

    assert first["processed"] == 6
    assert second["processed"] == 0
    assert second["skipped"] == 6
    assert fake_provider.calls == calls


def test_provider_failure_degrades(build_service):
    build_service().reindex()
    service = build_service(provider=FailingProvider())

    response = service.search(SearchQuery(text="electrisity bill", owner_id="U1"))

    assert response.strategy_status["semantic"] == "failed"
    assert response.degraded is True
    assert response.results[0].item.id == "u1-bill"


def test_slow_provider_times_out(ml_config, build_service):
    build_service().reindex()
    ml_config.search.semantic_timeout = 0.05
    provider = SlowProvider(delay=0.5)
    service = build_service(provider=provider)

    response = service.search(SearchQuery(text="pay rent", owner_id="U1"))

    assert response.strategy_status["semantic"] == "timeout"
    assert response.degraded is True
    assert ids(response.results) == ["u1-rent"]
    assert provider.timeouts == [0.05]


def test_lexical_engines_survive_saturated_semantic_pool(ml_config, build_service):
    build_service().reindex()
    ml_config.search.max_workers = 2
    ml_config.search.semantic_timeout = 0.05
    ml_config.search.lexical_timeout = 0.5
    service = build_service(provider=SlowProvider(delay=1.0))

    def run(n):
        return service.search(
            SearchQuery(text="pay rent", owner_id="U1", conversation_id=f"chat-{n}")
        )

    with ThreadPoolExecutor(max_workers=3) as pool:
        responses = list(pool.map(run, range(3)))

    for response in responses:
        assert response.strategy_status["semantic"] == "timeout"
        assert response.strategy_status["fuzzy"] == "ok"
        assert response.strategy_status["exact"] == "ok"
        assert ids(response.results) == ["u1-rent"]


def test_foreign_item_raises_isolation_violation(build_service, sample_items):
    service = build_service(item_store=LeakyItemStore(sample_items))

    with pytest.raises(OwnerIsolationViolation):
        service.search(SearchQuery(text="pay rent", owner_id="U1"))


def test_item_store_failure_propagates(build_service, sample_items):
    metrics = build_service().metrics
    service = build_service(item_store=BrokenItemStore(sample_items), metrics=metrics)

    with pytest.raises(ItemStoreError):
        service.search(SearchQuery(text="pay rent", owner_id="U1"))
    assert metrics.recent(1)[0].success is False


def test_session_store_outage_keeps_results(ml_config, build_service):
    store = RedisSessionStore(
        ml_config.session,
        cache=RedisCache(config=ml_config, client=UnreachableRedis()),
        key_prefix="test_session:",
    )
    service = build_service(session_store=store)

    response = service.search(SearchQuery(text="pay rent", owner_id="U1"))

    assert ids(response.results) == ["u1-rent"]
    assert response.session_key is None


def test_quick_search(search_service):
    assert ids(search_service.quick_search("rent", "U1")) == ["u1-rent"]
    assert search_service.quick_search("r", "U1") == []


def test_suggestions_from_owner_content(search_service):
    assert search_service.suggestions("bi", "U1") == ["bills", "bill"]
    assert search_service.suggestions("mee", "U1") == ["meetings"]


def test_health(search_service):
    health = search_service.health()

    assert health["status"] == "healthy"
    assert health["embedding_provider_reachable"] is True
    assert health["active_sessions"] == 0


def test_health_reports_unreachable_provider(build_service):
    health = build_service(provider=FailingProvider()).health()

    assert health["status"] == "degraded"
    assert health["embedding_provider_reachable"] is False


def test_searches_are_recorded(search_service):
    search_service.search(SearchQuery(text="pay rent", owner_id="U1"))
    search_service.quick_search("rent", "U1")

    summary = search_service.metrics.get_summary()
    assert summary["total_searches"] == 2
    assert {d["type"] for d in summary["query_distribution"]} == {"hybrid", "quick"}

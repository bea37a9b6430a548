"""
Search Service
Hybrid search orchestrator integrating enhancement, match engines, fusion and sessions.

Pipeline:
1. Query enhancement (best-effort)
2. Semantic, fuzzy and exact engines run concurrently with per-engine timeouts
3. Rank fusion
4. Post-fusion filters
5. Pagination; the full ordered list is kept in the search session
"""

import logging
import re
import time
from collections import Counter
from concurrent.futures import ThreadPoolExecutor, wait
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple

from ..caching import RedisCacheError
from ..config import MLConfig, get_ml_config
from ..embedding import EmbeddingProvider
from ..enrichment import EnhancedQuery, QueryEnhancer
from ..errors import ItemStoreError, OwnerIsolationViolation
from ..retrieval import (
    ExactMatcher,
    FusedResult,
    FuzzyMatcher,
    IndexManager,
    MatchResult,
    MatchStrategy,
    RankFusion,
    SearchableItem,
    SearchQuery,
    filter_results,
    get_index_manager,
)
from ..retrieval.text import build_excerpt
from .metrics import SearchMetric, SearchMetricsTracker, get_search_metrics_tracker
from .session import SessionPage, SessionStore, get_session_store

logger = logging.getLogger(__name__)

STATUS_OK = "ok"
STATUS_FAILED = "failed"
STATUS_TIMEOUT = "timeout"
STATUS_SKIPPED = "skipped"

ENGINES = ("semantic", "fuzzy", "exact")

STOPWORDS = frozenset(
    "the and for are but not you all can had her was one our out day get has him his how "
    "its may new now old see two who boy did man end few got let put say she too use "
    "that this with from have will what when your they them then than just been were "
    "para como mais isso esta este uma pelo pela".split()
)

_WORD = re.compile(r"[^\W\d_]+", re.UNICODE)


@dataclass
class SearchResponseData:
    """Search outcome returned by SearchService.search()."""

    query: str
    results: List[FusedResult] = field(default_factory=list)
    total: int = 0
    limit: int = 10
    offset: int = 0
    strategies: List[str] = field(default_factory=list)
    strategy_status: Dict[str, str] = field(default_factory=dict)
    processing_time_ms: float = 0.0
    confidence: float = 0.0
    enhanced_query: Optional[str] = None
    enhancement_applied: bool = False
    session_key: Optional[str] = None
    has_more: bool = False
    low_confidence: bool = False
    suggestions: List[str] = field(default_factory=list)
    truncated: bool = False

    @property
    def degraded(self) -> bool:
        return any(s in (STATUS_FAILED, STATUS_TIMEOUT) for s in self.strategy_status.values())

    @property
    def no_results(self) -> bool:
        return self.total == 0

    def to_dict(self) -> dict:
        """Convert to dictionary for API response."""
        return {
            "query": self.query,
            "results": [r.to_dict() for r in self.results],
            "total": self.total,
            "limit": self.limit,
            "offset": self.offset,
            "strategies": self.strategies,
            "strategy_status": self.strategy_status,
            "degraded": self.degraded,
            "processing_time_ms": round(self.processing_time_ms, 2),
            "confidence": self.confidence,
            "enhanced_query": self.enhanced_query,
            "enhancement_applied": self.enhancement_applied,
            "session_key": self.session_key,
            "has_more": self.has_more,
            "no_results": self.no_results,
            "low_confidence": self.low_confidence,
            "suggestions": self.suggestions,
            "truncated": self.truncated,
        }


class SearchService:
    """
    Unified hybrid search service.

    Engine failures degrade the response (marked in strategy_status);
    item store failures and owner isolation violations propagate.
    """

    def __init__(
        self,
        config: Optional[MLConfig] = None,
        item_store=None,
        index_manager: Optional[IndexManager] = None,
        provider: Optional[EmbeddingProvider] = None,
        session_store: Optional[SessionStore] = None,
        enhancer: Optional[QueryEnhancer] = None,
        metrics: Optional[SearchMetricsTracker] = None,
    ):
        """
        Initialize search service.

        Args:
            config: ML configuration
            item_store: Item store (global store by default)
            index_manager: Vector index manager (global manager by default)
            provider: Embedding provider (the index manager's by default)
            session_store: Session store (global store by default)
            enhancer: Query enhancer
            metrics: Search metrics tracker
        """
        self.config = config or get_ml_config()
        self._item_store = item_store
        self.index_manager = index_manager or get_index_manager(self.config)
        self._provider = provider
        self.session_store = session_store or get_session_store()
        self.enhancer = enhancer or QueryEnhancer(self.config.enhancement)
        self.metrics = metrics or get_search_metrics_tracker()

        self.fuzzy = FuzzyMatcher(self.config.search)
        self.exact = ExactMatcher(self.config.search)
        self.fusion = RankFusion(self.config.fusion)

        self.timeouts = {
            "semantic": self.config.search.semantic_timeout,
            "fuzzy": self.config.search.lexical_timeout,
            "exact": self.config.search.lexical_timeout,
        }
        # Semantic calls wait on the network; lexical engines never queue behind them
        self.semantic_executor = ThreadPoolExecutor(
            max_workers=self.config.search.max_workers, thread_name_prefix="search-semantic"
        )
        self.lexical_executor = ThreadPoolExecutor(
            max_workers=self.config.search.max_workers, thread_name_prefix="search-lexical"
        )

        logger.info("Search Service initialized")

    @property
    def item_store(self):
        if self._item_store is None:
            from ...db.item_store import get_item_store

            self._item_store = get_item_store()
        return self._item_store

    @property
    def provider(self) -> EmbeddingProvider:
        if self._provider is None:
            self._provider = self.index_manager.provider
        return self._provider

    def search(self, query: SearchQuery, enhance: bool = True) -> SearchResponseData:
        """
        Execute a hybrid search.

        Args:
            query: Search query scoped to one owner
            enhance: Run query enhancement before matching

        Returns:
            SearchResponseData with the requested page and session info

        Raises:
            ItemStoreError: If candidate items cannot be loaded
            OwnerIsolationViolation: If any engine returns a foreign item
        """
        start_time = time.time()
        search_type = "hybrid" if query.text else "filter"
        response = SearchResponseData(query=query.text, limit=query.limit, offset=query.offset)

        try:
            if query.text:
                fused = self._hybrid(query, response, enhance)
            elif query.has_filters():
                fused = self._filter_only(query, response)
            else:
                fused = []
                response.strategy_status = {name: STATUS_SKIPPED for name in ENGINES}

            page = fused[query.offset : query.offset + query.limit]
            response.results = page
            response.total = len(fused)
            response.has_more = query.offset + len(page) < len(fused)
            response.confidence = fused[0].relevance_score if fused else 0.0
            response.low_confidence = (
                bool(fused) and response.confidence < self.config.search.low_confidence_threshold
            )
            response.strategies = [
                s.value for s in MatchStrategy.ordered(st for r in fused for st in r.strategies)
            ]
            response.session_key = self._store_session(query, fused, query.offset + len(page))

            if not fused or response.low_confidence:
                response.suggestions = self.suggestions("", query.owner_id, limit=5)

        except Exception as e:
            self._record(query, search_type, response, start_time, success=False, error=str(e))
            raise

        self._record(query, search_type, response, start_time)

        logger.info(
            f"Search '{query.text}' for {query.owner_id}: {response.total} results "
            f"in {response.processing_time_ms:.1f}ms (degraded={response.degraded})"
        )
        return response

    def _hybrid(
        self, query: SearchQuery, response: SearchResponseData, enhance: bool
    ) -> List[FusedResult]:
        if enhance:
            enhanced = self.enhancer.enhance(query.text)
        else:
            enhanced = EnhancedQuery(original=query.text, enhanced=query.text)
        response.enhanced_query = enhanced.enhanced
        response.enhancement_applied = enhanced.applied

        candidates = self._candidates(query, response)

        matches, status = self._run_engines(query, enhanced, candidates)
        response.strategy_status = status

        self._guard_owner(query.owner_id, matches)

        fused = self.fusion.fuse(matches)
        return filter_results(fused, query.filters)

    def _filter_only(self, query: SearchQuery, response: SearchResponseData) -> List[FusedResult]:
        """List filter matches newest first when there is no query text."""
        response.strategy_status = {name: STATUS_SKIPPED for name in ENGINES}
        strategy = MatchStrategy.CATEGORY if query.filters.categories else MatchStrategy.METADATA

        items = self._candidates(query, response)

        results = []
        for item in items:
            if item.owner_id != query.owner_id:
                self._violation(query.owner_id, item)
            results.append(
                FusedResult(
                    item=item,
                    relevance_score=1.0,
                    match_type=strategy,
                    strategies=[strategy],
                    excerpt=build_excerpt(
                        item.ai_summary or item.raw_text, [], self.config.search.excerpt_max_length
                    ),
                    signal_scores={strategy.value: 1.0},
                )
            )

        return filter_results(results, query.filters)

    def _candidates(self, query: SearchQuery, response: SearchResponseData) -> List[SearchableItem]:
        """Load the owner's filtered items, flagging the response when the cap cuts them."""
        limit = self.config.search.candidate_limit
        items = self.item_store.list_items(
            query.owner_id, query.filters, limit=None if limit is None else limit + 1
        )
        if limit is not None and len(items) > limit:
            response.truncated = True
            logger.warning(
                f"Candidate set for {query.owner_id} truncated to the newest {limit} items"
            )
            items = items[:limit]
        return items

    def _run_engines(
        self, query: SearchQuery, enhanced: EnhancedQuery, candidates: List[SearchableItem]
    ) -> Tuple[List[MatchResult], Dict[str, str]]:
        """
        Fan out to the match engines and collect what finishes in time.

        Returns:
            (all match results, per-engine status)
        """
        status: Dict[str, str] = {}
        futures = {}

        if self.index_manager.index.owner_size(query.owner_id) > 0:
            by_id = {item.id: item for item in candidates}
            futures["semantic"] = self.semantic_executor.submit(
                self._semantic_matches, query.owner_id, enhanced.enhanced, by_id
            )
        else:
            status["semantic"] = STATUS_SKIPPED

        futures["fuzzy"] = self.lexical_executor.submit(
            self.fuzzy.search, query.text, candidates, enhanced.expansions
        )
        futures["exact"] = self.lexical_executor.submit(self.exact.search, query.text, candidates)

        matches: List[MatchResult] = []
        started = time.monotonic()

        for name, future in futures.items():
            remaining = self.timeouts[name] - (time.monotonic() - started)
            done, _ = wait([future], timeout=max(0.0, remaining))

            if not done:
                status[name] = STATUS_TIMEOUT
                if future.cancel():
                    logger.warning(f"{name} engine timed out after {self.timeouts[name]}s in queue")
                else:
                    logger.warning(
                        f"{name} engine timed out after {self.timeouts[name]}s; "
                        f"worker still busy, its result will be discarded"
                    )
                continue

            error = future.exception()
            if error is None:
                matches.extend(future.result())
                status[name] = STATUS_OK
            elif isinstance(error, (OwnerIsolationViolation, ItemStoreError)):
                raise error
            else:
                status[name] = STATUS_FAILED
                logger.warning(f"{name} engine failed: {error}")

        return matches, {name: status[name] for name in ENGINES}

    def _semantic_matches(
        self, owner_id: str, text: str, candidates_by_id: Dict[str, SearchableItem]
    ) -> List[MatchResult]:
        self.index_manager.reload_if_changed()

        embedding = self.provider.embed(text, timeout=self.config.search.semantic_timeout)
        hits = self.index_manager.index.top_k(
            owner_id, embedding.vector, self.config.search.semantic_top_k
        )

        results = []
        for item_id, similarity in hits:
            if similarity < self.config.search.semantic_min_similarity:
                continue

            item = candidates_by_id.get(item_id) or self.item_store.get_item(item_id)
            if item is None:
                continue  # vector outlived its item

            results.append(
                MatchResult(
                    item=item,
                    score=min(1.0, max(0.0, similarity)),
                    strategy=MatchStrategy.SEMANTIC,
                    excerpts=[
                        build_excerpt(
                            item.ai_summary or item.raw_text,
                            [],
                            self.config.search.excerpt_max_length,
                        )
                    ],
                )
            )

        return results

    def _guard_owner(self, owner_id: str, matches: List[MatchResult]) -> None:
        for match in matches:
            if match.item.owner_id != owner_id:
                self._violation(owner_id, match.item)

    @staticmethod
    def _violation(owner_id: str, item: SearchableItem) -> None:
        logger.critical(
            f"Owner isolation violated: item {item.id} of {item.owner_id} surfaced for {owner_id}"
        )
        raise OwnerIsolationViolation(owner_id, item.owner_id, item.id)

    def _store_session(self, query: SearchQuery, fused: List[FusedResult], shown: int):
        try:
            session = self.session_store.create(
                query.session_key,
                query.owner_id,
                query.text,
                fused,
                shown=shown,
                start=min(query.offset, shown),
            )
            return session.key
        except RedisCacheError as e:
            logger.warning(f"Could not store search session {query.session_key}: {e}")
            return None

    def _record(self, query, search_type, response, start_time, success=True, error=None):
        response.processing_time_ms = (time.time() - start_time) * 1000
        self.metrics.record(
            SearchMetric(
                query_text=query.text,
                results_count=response.total,
                latency_ms=response.processing_time_ms,
                search_type=search_type,
                owner_id=query.owner_id,
                success=success,
                enhancement_applied=response.enhancement_applied,
                degraded=response.degraded,
                error=error,
            )
        )

    def quick_search(self, text: str, owner_id: str, limit: int = 5) -> List[FusedResult]:
        """
        Lexical-only search without enhancement or session.

        Args:
            text: Query text (fewer than 2 characters returns nothing)
            owner_id: Owner to search
            limit: Maximum results

        Returns:
            Top fused results
        """
        text = (text or "").strip()
        if len(text) < self.config.search.quick_search_min_length:
            return []

        start_time = time.time()
        candidates = self.item_store.list_items(
            owner_id, None, limit=self.config.search.candidate_limit
        )
        matches = self.fuzzy.search(text, candidates) + self.exact.search(text, candidates)
        self._guard_owner(owner_id, matches)

        results = self.fusion.fuse(matches)[:limit]

        self.metrics.record(
            SearchMetric(
                query_text=text,
                results_count=len(results),
                latency_ms=(time.time() - start_time) * 1000,
                search_type="quick",
                owner_id=owner_id,
            )
        )
        return results

    def advance_session(
        self,
        session_key: str,
        owner_id: Optional[str] = None,
        page_size: Optional[int] = None,
    ) -> SessionPage:
        """
        Serve the next page of a previous search.

        Raises:
            SessionExpired: If the session is missing or timed out
            OwnerIsolationViolation: If owner_id does not own the session
        """
        return self.session_store.advance(session_key, owner_id=owner_id, page_size=page_size)

    def current_page(self, session_key: str, owner_id: Optional[str] = None) -> SessionPage:
        """Return the page most recently served from a session."""
        return self.session_store.current_page(session_key, owner_id=owner_id)

    def reindex(
        self, batch_size: Optional[int] = None, owner_id: Optional[str] = None, force: bool = False
    ) -> Dict[str, Any]:
        """
        Embed items whose vectors are missing or stale, then persist the index.

        Per-item failures are reported, never raised.

        Returns:
            Dict with processed, skipped, failed and errors
        """
        summary = self.index_manager.migrate_existing(
            self.item_store, batch_size=batch_size, force=force, owner_id=owner_id
        )
        self.index_manager.save()
        return summary.to_dict()

    def health(self) -> Dict[str, Any]:
        """Report engine health. Never raises."""
        try:
            reachable = self.provider.health_check()
        except Exception as e:
            logger.warning(f"Embedding provider health check failed: {e}")
            reachable = False

        try:
            active_sessions = self.session_store.active_count()
        except Exception as e:
            logger.warning(f"Session store unavailable: {e}")
            active_sessions = None

        return {
            "status": "healthy" if reachable else "degraded",
            "embedding_provider_reachable": reachable,
            "index_size": self.index_manager.index.size(),
            "active_sessions": active_sessions,
        }

    def suggestions(self, partial: str, owner_id: str, limit: int = 5) -> List[str]:
        """
        Suggest queries from static hints and the owner's own content.

        Args:
            partial: Text typed so far (empty for general suggestions)
            owner_id: Owner whose items supply frequent terms and categories
            limit: Maximum suggestions

        Returns:
            Distinct suggestions
        """
        partial = (partial or "").strip().lower()
        suggestions = list(self.enhancer.generate_suggestions(partial, limit=limit))

        items = self.item_store.list_items(
            owner_id, None, limit=self.config.search.candidate_limit
        )

        categories = Counter(item.category.lower() for item in items if item.category)
        words = Counter(
            word
            for item in items
            for word in _WORD.findall((item.raw_text or "").lower())
            if len(word) > 3 and word not in STOPWORDS
        )
        frequent = [w for w, count in words.items() if count > 1]
        frequent.sort(key=lambda w: (-words[w], w))

        ranked_categories = sorted(categories, key=lambda c: (-categories[c], c))
        for candidate in ranked_categories + frequent:
            if partial and partial not in candidate:
                continue
            if candidate not in suggestions:
                suggestions.append(candidate)

        return suggestions[:limit]

    def get_stats(self) -> Dict[str, Any]:
        """Get service statistics."""
        return {
            "index": self.index_manager.get_stats(),
            "search_metrics": self.metrics.get_summary(),
            "config": {
                "semantic_top_k": self.config.search.semantic_top_k,
                "semantic_timeout": self.config.search.semantic_timeout,
                "lexical_timeout": self.config.search.lexical_timeout,
                "session_timeout_minutes": self.config.session.timeout_minutes,
            },
        }

    def shutdown(self) -> None:
        self.semantic_executor.shutdown(wait=False)
        self.lexical_executor.shutdown(wait=False)


# Global service instance
_search_service: Optional[SearchService] = None


def get_search_service() -> SearchService:
    """Get global search service (singleton)."""
    global _search_service
    if _search_service is None:
        _search_service = SearchService()
    return _search_service


def reset_search_service() -> None:
    """Drop the global search service (for tests)."""
    global _search_service
    if _search_service is not None:
        _search_service.shutdown()
    _search_service = None

"""
Search Sessions
Server-side pagination state for follow-up "more" requests.

A session holds a snapshot of the full fused result list for one
owner/conversation pair. It expires after a period of inactivity; each
successful advance resets the timer.
"""

import logging
import threading
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, Dict, List, Optional

from ..caching import RedisCache, get_redis_cache
from ..config import SessionConfig, get_ml_config
from ..errors import OwnerIsolationViolation, SessionExpired
from ..retrieval.types import FusedResult

logger = logging.getLogger(__name__)


class SessionState(Enum):
    """Session lifecycle states. EXPIRED is terminal."""

    CREATED = "created"
    ACTIVE = "active"
    EXPIRED = "expired"


def session_key(owner_id: str, conversation_id: str = "default") -> str:
    return f"{owner_id}:{conversation_id or 'default'}"


@dataclass
class SearchSession:
    """Pagination cursor over a snapshot of fused results."""

    key: str
    owner_id: str
    query: str
    results: List[FusedResult] = field(default_factory=list)
    cursor: int = 0
    page_start: int = 0
    page_size: int = 5
    created_at: float = 0.0
    last_accessed: float = 0.0
    state: SessionState = SessionState.CREATED

    @property
    def total(self) -> int:
        return len(self.results)

    @property
    def has_more(self) -> bool:
        return self.cursor < len(self.results)

    def to_dict(self) -> dict:
        return {
            "key": self.key,
            "owner_id": self.owner_id,
            "query": self.query,
            "cursor": self.cursor,
            "total": self.total,
            "page_size": self.page_size,
            "state": self.state.value,
        }


@dataclass
class SessionPage:
    """One page of results served from a session."""

    results: List[FusedResult]
    start: int
    end: int
    total: int
    has_more: bool

    def to_dict(self) -> dict:
        return {
            "results": [r.to_dict() for r in self.results],
            "start": self.start,
            "end": self.end,
            "total": self.total,
            "has_more": self.has_more,
        }


def _take_page(session: SearchSession, page_size: Optional[int]) -> SessionPage:
    size = page_size or session.page_size
    start = min(session.cursor, session.total)
    end = min(start + size, session.total)

    session.page_start = start
    session.cursor = end
    session.state = SessionState.ACTIVE

    return SessionPage(
        results=session.results[start:end],
        start=start,
        end=end,
        total=session.total,
        has_more=end < session.total,
    )


def _check_owner(session: SearchSession, owner_id: Optional[str]) -> None:
    if owner_id is not None and owner_id != session.owner_id:
        raise OwnerIsolationViolation(owner_id, session.owner_id)


class SessionStore(ABC):
    """Storage for search sessions."""

    def __init__(self, config: Optional[SessionConfig] = None):
        self.config = config or get_ml_config().session

    @abstractmethod
    def save(self, session: SearchSession) -> SearchSession:
        """Store (or replace) a session and reset its inactivity timer."""

    @abstractmethod
    def get(self, key: str) -> Optional[SearchSession]:
        """Return a live session, or None if missing or expired."""

    @abstractmethod
    def advance(
        self, key: str, owner_id: Optional[str] = None, page_size: Optional[int] = None
    ) -> SessionPage:
        """Serve the next page and move the cursor past it."""

    @abstractmethod
    def delete(self, key: str) -> bool:
        """Remove a session."""

    @abstractmethod
    def sweep_expired(self) -> int:
        """Purge expired sessions. Returns number removed."""

    @abstractmethod
    def active_count(self) -> int:
        """Number of live sessions."""

    def create(
        self,
        key: str,
        owner_id: str,
        query: str,
        results: List[FusedResult],
        shown: int = 0,
        start: int = 0,
        page_size: Optional[int] = None,
    ) -> SearchSession:
        """
        Create a session, replacing any previous one under the same key.

        Args:
            key: Session key ("{owner_id}:{conversation_id}")
            owner_id: Owner the results belong to
            query: Query text that produced the results
            results: Full ordered fused result list
            shown: Position after the last result already returned to the caller
            start: Position of the first result of the page already returned
            page_size: Page size for later advances

        Returns:
            The stored session
        """
        cursor = min(max(shown, 0), len(results))
        session = SearchSession(
            key=key,
            owner_id=owner_id,
            query=query,
            results=list(results),
            cursor=cursor,
            page_start=min(max(start, 0), cursor),
            page_size=page_size or self.config.page_size,
        )
        return self.save(session)

    def current_page(self, key: str, owner_id: Optional[str] = None) -> SessionPage:
        """
        Return the page most recently served, without moving the cursor.

        Raises:
            SessionExpired: If the session is missing or timed out
            OwnerIsolationViolation: If owner_id does not own the session
        """
        session = self.get(key)
        if session is None:
            raise SessionExpired(key)

        _check_owner(session, owner_id)

        return SessionPage(
            results=session.results[session.page_start : session.cursor],
            start=session.page_start,
            end=session.cursor,
            total=session.total,
            has_more=session.has_more,
        )

    def start_reaper(self, interval: Optional[float] = None) -> None:
        """Start background expiry sweeps (no-op for stores that expire on their own)."""

    def stop_reaper(self) -> None:
        """Stop background expiry sweeps."""


class InMemorySessionStore(SessionStore):
    """
    Process-local session store.

    All operations are serialized by one re-entrant lock, so concurrent
    advances on the same session never serve an item twice.
    """

    def __init__(
        self,
        config: Optional[SessionConfig] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        """
        Initialize in-memory session store.

        Args:
            config: Session configuration
            clock: Monotonic clock in seconds (injectable for tests)
        """
        super().__init__(config)
        self.clock = clock
        self._sessions: Dict[str, SearchSession] = {}
        self._lock = threading.RLock()
        self._stop_event = threading.Event()
        self._reaper: Optional[threading.Thread] = None

    def _is_expired(self, session: SearchSession) -> bool:
        return self.clock() - session.last_accessed > self.config.timeout_seconds

    def _expire(self, session: SearchSession) -> None:
        session.state = SessionState.EXPIRED
        self._sessions.pop(session.key, None)

    def save(self, session: SearchSession) -> SearchSession:
        now = self.clock()
        with self._lock:
            if not session.created_at:
                session.created_at = now
            session.last_accessed = now
            self._sessions[session.key] = session
        return session

    def get(self, key: str) -> Optional[SearchSession]:
        with self._lock:
            session = self._sessions.get(key)
            if session is None:
                return None
            if self._is_expired(session):
                self._expire(session)
                return None
            return session

    def advance(
        self, key: str, owner_id: Optional[str] = None, page_size: Optional[int] = None
    ) -> SessionPage:
        """
        Serve the next page of a session.

        Raises:
            SessionExpired: If the session is missing or timed out
            OwnerIsolationViolation: If owner_id does not own the session
        """
        with self._lock:
            session = self.get(key)
            if session is None:
                raise SessionExpired(key)

            _check_owner(session, owner_id)

            page = _take_page(session, page_size)
            session.last_accessed = self.clock()
            return page

    def delete(self, key: str) -> bool:
        with self._lock:
            return self._sessions.pop(key, None) is not None

    def sweep_expired(self) -> int:
        with self._lock:
            expired = [s for s in self._sessions.values() if self._is_expired(s)]
            for session in expired:
                self._expire(session)

        if expired:
            logger.info(f"Swept {len(expired)} expired search sessions")
        return len(expired)

    def active_count(self) -> int:
        with self._lock:
            return sum(1 for s in self._sessions.values() if not self._is_expired(s))

    def start_reaper(self, interval: Optional[float] = None) -> None:
        """
        Start the daemon thread that sweeps expired sessions.

        Args:
            interval: Seconds between sweeps (defaults to config)
        """
        if self._reaper is not None and self._reaper.is_alive():
            return

        interval = interval or self.config.sweep_interval_seconds
        self._stop_event.clear()

        def run():
            while not self._stop_event.wait(interval):
                try:
                    self.sweep_expired()
                except Exception as e:
                    logger.error(f"Session sweep failed: {e}", exc_info=True)

        self._reaper = threading.Thread(target=run, name="session-reaper", daemon=True)
        self._reaper.start()
        logger.info(f"Session reaper started (interval={interval}s)")

    def stop_reaper(self) -> None:
        self._stop_event.set()
        if self._reaper is not None:
            self._reaper.join(timeout=5)
            self._reaper = None
            logger.info("Session reaper stopped")


class RedisSessionStore(SessionStore):
    """
    Session store shared across processes through Redis.

    Each session is one pickled key written with SETEX, so Redis owns
    expiry and sweep_expired() has nothing to do.
    """

    def __init__(
        self,
        config: Optional[SessionConfig] = None,
        cache: Optional[RedisCache] = None,
        key_prefix: Optional[str] = None,
    ):
        super().__init__(config)
        self.cache = cache or get_redis_cache()
        self.key_prefix = key_prefix or get_ml_config().storage.session_key_prefix

    def _redis_key(self, key: str) -> str:
        return f"{self.key_prefix}{key}"

    def save(self, session: SearchSession) -> SearchSession:
        now = time.time()
        if not session.created_at:
            session.created_at = now
        session.last_accessed = now
        self.cache.set(self._redis_key(session.key), session, ttl=self.config.timeout_seconds)
        return session

    def get(self, key: str) -> Optional[SearchSession]:
        return self.cache.get(self._redis_key(key))

    def advance(
        self, key: str, owner_id: Optional[str] = None, page_size: Optional[int] = None
    ) -> SessionPage:
        """
        Serve the next page of a session and refresh its TTL.

        The cursor moves in one optimistic transaction, so workers in
        different processes never serve the same page twice.

        Raises:
            SessionExpired: If the session key has expired in Redis
            OwnerIsolationViolation: If owner_id does not own the session
        """

        def take(session: Optional[SearchSession]):
            if session is None:
                raise SessionExpired(key)

            _check_owner(session, owner_id)

            page = _take_page(session, page_size)
            session.last_accessed = time.time()
            return session, page

        return self.cache.update(self._redis_key(key), take, ttl=self.config.timeout_seconds)

    def delete(self, key: str) -> bool:
        return self.cache.delete(self._redis_key(key))

    def sweep_expired(self) -> int:
        return 0

    def active_count(self) -> int:
        return sum(1 for _ in self.cache.scan_keys(f"{self.key_prefix}*"))


# Global session store
_store: Optional[SessionStore] = None


def get_session_store() -> SessionStore:
    """Get global session store (backend chosen by config)."""
    global _store
    if _store is None:
        config = get_ml_config().session
        if config.backend == "redis":
            _store = RedisSessionStore(config)
        else:
            _store = InMemorySessionStore(config)
        logger.info(f"Search session store: {config.backend}")
    return _store


def set_session_store(store: Optional[SessionStore]) -> None:
    """Replace the global session store (None resets it)."""
    global _store
    if _store is not None and _store is not store:
        _store.stop_reaper()
    _store = store


def reset_session_store() -> None:
    set_session_store(None)

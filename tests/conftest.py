"""
Pytest configuration and shared fixtures
"""

import hashlib
import time
from datetime import datetime

import numpy as np
import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from recallbox.db.item_store import InMemoryItemStore
from recallbox.db.session import init_db
from recallbox.ml.config import MLConfig
from recallbox.ml.embedding import EmbeddingProvider
from recallbox.ml.embedding.provider import EmbeddingResult
from recallbox.ml.errors import ProviderError
from recallbox.ml.retrieval import IndexManager, SearchableItem
from recallbox.ml.retrieval.text import tokenize
from recallbox.ml.search import InMemorySessionStore, SearchMetricsTracker, SearchService

DIMENSION = 64


class FakeEmbeddingProvider(EmbeddingProvider):
    """Deterministic bag-of-words provider: one hashed bucket per token."""

    def __init__(self, dimension: int = DIMENSION, model: str = "fake-embed-1", fail_on=()):
        self._dimension = dimension
        self._model = model
        self.fail_on = set(fail_on)
        self.calls = 0

    @property
    def model_id(self) -> str:
        return self._model

    @property
    def dimension(self) -> int:
        return self._dimension

    def embed(self, text: str, timeout=None) -> EmbeddingResult:
        clean = self.validate_text(text)
        if any(marker in clean for marker in self.fail_on):
            raise ProviderError(f"cannot embed '{clean}'", provider="fake")

        self.calls += 1
        tokens = tokenize(clean)
        vector = np.zeros(self._dimension, dtype=np.float32)
        for token in tokens:
            bucket = int(hashlib.md5(token.encode("utf-8")).hexdigest(), 16) % self._dimension
            vector[bucket] += 1.0
        return EmbeddingResult(vector=vector, token_count=len(tokens), model_id=self._model)


class FailingProvider(EmbeddingProvider):
    """Provider whose upstream is down."""

    model_id = "fake-embed-1"
    dimension = DIMENSION

    def embed(self, text: str, timeout=None) -> EmbeddingResult:
        self.validate_text(text)
        raise ProviderError("upstream unavailable", provider="fake")


class SlowProvider(FakeEmbeddingProvider):
    """Provider that answers after a delay."""

    def __init__(self, delay: float = 0.5, **kwargs):
        super().__init__(**kwargs)
        self.delay = delay
        self.timeouts = []

    def embed(self, text: str, timeout=None) -> EmbeddingResult:
        self.timeouts.append(timeout)
        time.sleep(self.delay)
        return super().embed(text)


class ManualClock:
    """Monotonic clock moved forward by hand."""

    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


def make_item(item_id, owner_id, raw_text, category=None, created_at=None, **kwargs):
    return SearchableItem(
        id=item_id,
        owner_id=owner_id,
        raw_text=raw_text,
        category=category,
        created_at=created_at or datetime(2024, 11, 1, 12, 0),
        **kwargs,
    )


@pytest.fixture
def sample_items():
    """Two owners with overlapping content."""
    return [
        make_item(
            "u1-bill",
            "U1",
            "Electricity bill due Nov 15, $150",
            category="bills",
            created_at=datetime(2024, 11, 1, 9, 0),
            metadata={"amount": 150, "vendor": "Enel"},
        ),
        make_item(
            "u1-grocery",
            "U1",
            "Grocery list: milk, eggs",
            category="shopping",
            created_at=datetime(2024, 11, 3, 18, 30),
        ),
        make_item(
            "u1-water",
            "U1",
            "Water bill paid in October",
            category="bills",
            created_at=datetime(2024, 10, 20, 8, 15),
        ),
        make_item(
            "u1-rent",
            "U1",
            "pay rent",
            category="finance",
            created_at=datetime(2024, 11, 2, 10, 0),
        ),
        make_item(
            "u2-rent",
            "U2",
            "pay rent",
            category="finance",
            created_at=datetime(2024, 11, 2, 10, 0),
        ),
        make_item(
            "u2-bill",
            "U2",
            "Electricity bill for the beach house",
            category="bills",
            created_at=datetime(2024, 11, 5, 7, 45),
        ),
    ]


@pytest.fixture
def item_store(sample_items):
    return InMemoryItemStore(sample_items)


@pytest.fixture
def ml_config(tmp_path):
    config = MLConfig()
    config.embedding.dimension = DIMENSION
    config.storage.index_path = tmp_path / "vector_index.npz"
    config.validate()
    return config


@pytest.fixture
def fake_provider():
    return FakeEmbeddingProvider()


@pytest.fixture
def clock():
    return ManualClock()


@pytest.fixture
def index_manager(ml_config, fake_provider):
    return IndexManager(config=ml_config, provider=fake_provider)


@pytest.fixture
def session_store(ml_config, clock):
    return InMemorySessionStore(ml_config.session, clock=clock)


@pytest.fixture
def build_service(ml_config, item_store, index_manager, session_store):
    """Factory for SearchService instances sharing the fixture store and index."""
    services = []

    def build(**overrides):
        kwargs = dict(
            config=ml_config,
            item_store=item_store,
            index_manager=index_manager,
            session_store=session_store,
            metrics=SearchMetricsTracker(),
        )
        kwargs.update(overrides)
        service = SearchService(**kwargs)
        services.append(service)
        return service

    yield build

    for service in services:
        service.shutdown()


@pytest.fixture
def search_service(build_service):
    return build_service()


@pytest.fixture
def db_session_factory():
    """Session factory over a fresh in-memory SQLite database."""
    engine = create_engine(
        "sqlite://", connect_args={"check_same_thread": False}, poolclass=StaticPool
    )
    init_db(bind=engine)
    yield sessionmaker(autocommit=False, autoflush=False, bind=engine)
    engine.dispose()

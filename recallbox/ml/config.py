"""
ML Configuration
Centralized configuration for embeddings, matching, fusion, sessions and storage.
"""

import os
from pathlib import Path
from dataclasses import dataclass, field
from typing import Optional


@dataclass
class EmbeddingConfig:
    """Embedding provider configuration."""

    # OpenAI-compatible embeddings endpoint
    api_base_url: str = "https://api.openai.com/v1"
    api_key: Optional[str] = field(default_factory=lambda: os.getenv("OPENAI_API_KEY"))
    model: str = "text-embedding-3-small"
    dimension: int = 1536

    request_timeout: float = 10.0  # seconds
    batch_size: int = 32

    # Max characters sent per text (provider token limits)
    max_input_chars: int = 8000


@dataclass
class SearchConfig:
    """Match engine thresholds and orchestration settings."""

    # Semantic
    semantic_top_k: int = 50
    semantic_min_similarity: float = 0.3

    # Fuzzy
    fuzzy_min_score: float = 0.6
    fuzzy_token_threshold: float = 0.6
    fuzzy_compact_threshold: float = 0.9
    fuzzy_expansion_discount: float = 0.9

    # Exact/structured
    exact_min_score: float = 0.25
    excerpt_max_length: int = 300

    # Per-engine timeouts (seconds)
    semantic_timeout: float = 3.0
    lexical_timeout: float = 2.0

    # Cap on items pulled from the store per query; None reads every owned item
    candidate_limit: Optional[int] = None

    default_limit: int = 10
    max_limit: int = 100
    quick_search_limit: int = 5
    quick_search_min_length: int = 2

    # Confidence below this marks the response as low confidence
    low_confidence_threshold: float = 0.5

    max_workers: int = 8


@dataclass
class FusionConfig:
    """Rank fusion weights (weighted max plus bonus)."""

    exact_weight: float = 1.0
    category_weight: float = 1.0
    metadata_weight: float = 0.95
    semantic_weight: float = 0.9
    fuzzy_weight: float = 0.9

    # Added per extra distinct contributing strategy
    strategy_bonus: float = 0.1

    def validate(self) -> None:
        """Validate weights keep fusion bounded and precision-ordered."""
        weights = [
            self.exact_weight,
            self.category_weight,
            self.metadata_weight,
            self.semantic_weight,
            self.fuzzy_weight,
        ]
        for weight in weights:
            if not 0.0 <= weight <= 1.0:
                raise ValueError(f"Fusion weights must be in [0, 1], got {weight}")

        if self.strategy_bonus < 0:
            raise ValueError(f"Strategy bonus must be non-negative, got {self.strategy_bonus}")

        loose = max(self.semantic_weight, self.fuzzy_weight)
        if min(self.exact_weight, self.category_weight) < loose:
            raise ValueError("Exact and category weights must be >= semantic and fuzzy weights")


@dataclass
class SessionConfig:
    """Search session (pagination) configuration."""

    timeout_minutes: int = 10
    sweep_interval_seconds: int = 300
    page_size: int = 5
    backend: str = "memory"  # memory | redis

    @property
    def timeout_seconds(self) -> int:
        return self.timeout_minutes * 60


@dataclass
class EnhancementConfig:
    """Query enhancement configuration."""

    enabled: bool = True

    # LLM rewrite (rule-based expansion is always available)
    use_llm: bool = False
    llm_api_url: str = "https://api.anthropic.com/v1/messages"
    llm_api_key: Optional[str] = field(default_factory=lambda: os.getenv("ANTHROPIC_API_KEY"))
    llm_model: str = "claude-3-5-haiku-latest"
    llm_timeout: float = 2.0
    llm_max_tokens: int = 300

    max_synonyms_per_term: int = 2


@dataclass
class StorageConfig:
    """Vector index persistence and Redis configuration."""

    index_path: Path = field(default_factory=lambda: Path("models/cache/vector_index.npz"))

    # Redis (shared session store for multi-process deployments)
    redis_host: str = field(default_factory=lambda: os.getenv("REDIS_HOST", "localhost"))
    redis_port: int = field(default_factory=lambda: int(os.getenv("REDIS_PORT", "6379")))
    redis_password: Optional[str] = field(default_factory=lambda: os.getenv("REDIS_PASSWORD"))
    redis_db: int = 1
    session_key_prefix: str = "search_session:"

    def __post_init__(self):
        self.index_path = Path(self.index_path)


@dataclass
class MLConfig:
    """Top-level ML configuration combining all sub-configs."""

    embedding: EmbeddingConfig = field(default_factory=EmbeddingConfig)
    search: SearchConfig = field(default_factory=SearchConfig)
    fusion: FusionConfig = field(default_factory=FusionConfig)
    session: SessionConfig = field(default_factory=SessionConfig)
    enhancement: EnhancementConfig = field(default_factory=EnhancementConfig)
    storage: StorageConfig = field(default_factory=StorageConfig)

    @classmethod
    def from_env(cls) -> "MLConfig":
        """Load configuration from environment variables."""
        config = cls()

        # Override with environment variables if present
        if base_url := os.getenv("EMBEDDING_API_BASE_URL"):
            config.embedding.api_base_url = base_url

        if model := os.getenv("EMBEDDING_MODEL"):
            config.embedding.model = model

        if dimension := os.getenv("EMBEDDING_DIMENSION"):
            config.embedding.dimension = int(dimension)

        if batch_size := os.getenv("EMBEDDING_BATCH_SIZE"):
            config.embedding.batch_size = int(batch_size)

        if index_path := os.getenv("VECTOR_INDEX_PATH"):
            config.storage.index_path = Path(index_path)

        if timeout := os.getenv("SEARCH_SESSION_TIMEOUT_MINUTES"):
            config.session.timeout_minutes = int(timeout)

        if backend := os.getenv("SESSION_BACKEND"):
            config.session.backend = backend.lower()

        if use_llm := os.getenv("QUERY_ENHANCEMENT_USE_LLM"):
            config.enhancement.use_llm = use_llm.lower() in ("1", "true", "yes")

        return config

    def validate(self) -> None:
        """Validate configuration consistency."""
        assert self.embedding.dimension > 0, "Embedding dimension must be positive"
        assert self.embedding.batch_size > 0, "Embedding batch size must be positive"

        assert 0 <= self.search.fuzzy_min_score <= 1, "Fuzzy min score must be in [0, 1]"
        assert (
            self.search.candidate_limit is None or self.search.candidate_limit > 0
        ), "Candidate limit must be positive"

        assert self.session.page_size > 0, "Session page size must be positive"
        assert self.session.backend in ("memory", "redis"), "Session backend must be memory or redis"
        assert (
            self.session.sweep_interval_seconds <= self.session.timeout_seconds
        ), "Session sweep interval must not exceed the session timeout"

        self.fusion.validate()


# Global configuration instance
_global_config: Optional[MLConfig] = None


def get_ml_config() -> MLConfig:
    """Get global ML configuration (singleton pattern)."""
    global _global_config
    if _global_config is None:
        _global_config = MLConfig.from_env()
        _global_config.validate()
    return _global_config


def reset_config() -> None:
    """Reset global configuration (useful for testing)."""
    global _global_config
    _global_config = None

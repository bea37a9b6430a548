"""
Embedding Provider Adapter
Turns text into fixed-length vectors via an external embeddings API.
"""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import List, Optional

import numpy as np
import requests

from ..config import EmbeddingConfig, get_ml_config
from ..errors import EmptyInput, ProviderError

logger = logging.getLogger(__name__)


@dataclass
class EmbeddingResult:
    """Vector produced for one text."""

    vector: np.ndarray
    token_count: int
    model_id: str


class EmbeddingProvider(ABC):
    """
    Base class for embedding providers.

    Implementations raise EmptyInput before any network call and wrap every
    upstream failure in ProviderError. No caching happens at this layer.
    """

    @property
    @abstractmethod
    def model_id(self) -> str:
        """Identifier of the model producing the vectors."""

    @property
    @abstractmethod
    def dimension(self) -> int:
        """Length of produced vectors."""

    @abstractmethod
    def embed(self, text: str, timeout: Optional[float] = None) -> EmbeddingResult:
        """Embed a single non-empty text, waiting at most timeout seconds when given."""

    def embed_batch(self, texts: List[str]) -> List[EmbeddingResult]:
        """Embed several texts. Fails as a whole if any text fails."""
        return [self.embed(text) for text in texts]

    def health_check(self) -> bool:
        """Return True if the provider answers. Never raises."""
        try:
            self.embed("health check")
            return True
        except ProviderError as e:
            logger.warning(f"Embedding provider health check failed: {e}")
            return False

    @staticmethod
    def validate_text(text: Optional[str]) -> str:
        """
        Validate text before embedding.

        Raises:
            EmptyInput: If text is empty or whitespace-only
        """
        if text is None or not text.strip():
            raise EmptyInput("Cannot embed empty text")
        return text.strip()


class OpenAIEmbeddingProvider(EmbeddingProvider):
    """
    Embedding provider for OpenAI-compatible /embeddings endpoints.

    Works with OpenAI and with self-hosted servers exposing the same API.
    """

    def __init__(self, config: Optional[EmbeddingConfig] = None, session=None):
        """
        Initialize the provider.

        Args:
            config: Embedding configuration
            session: Optional requests session (defaults to module-level requests)
        """
        self.config = config or get_ml_config().embedding
        self.http = session or requests
        self.url = self.config.api_base_url.rstrip("/") + "/embeddings"

        if not self.config.api_key:
            logger.warning("No embedding API key configured; semantic search will be unavailable")

        logger.info(
            f"Embedding provider initialized: model={self.config.model}, "
            f"dimension={self.config.dimension}"
        )

    @property
    def model_id(self) -> str:
        return self.config.model

    @property
    def dimension(self) -> int:
        return self.config.dimension

    def embed(self, text: str, timeout: Optional[float] = None) -> EmbeddingResult:
        """
        Embed a single text.

        Args:
            text: Non-empty text
            timeout: Request timeout in seconds, capped at the configured one

        Returns:
            EmbeddingResult with vector, token count and model id

        Raises:
            EmptyInput: If text is empty
            ProviderError: If the upstream call fails
        """
        clean = self.validate_text(text)
        return self._request([clean], timeout)[0]

    def embed_batch(self, texts: List[str]) -> List[EmbeddingResult]:
        """
        Embed several texts in one request.

        Raises:
            EmptyInput: If any text is empty
            ProviderError: If the upstream call fails
        """
        if not texts:
            return []
        clean = [self.validate_text(text) for text in texts]
        return self._request(clean)

    def _request(
        self, texts: List[str], timeout: Optional[float] = None
    ) -> List[EmbeddingResult]:
        if timeout is None or timeout > self.config.request_timeout:
            timeout = self.config.request_timeout
        if not self.config.api_key:
            raise ProviderError("Embedding API key is not configured", provider="openai")

        payload = {
            "model": self.config.model,
            "input": [text[: self.config.max_input_chars] for text in texts],
        }
        if self.config.model.startswith("text-embedding-3"):
            payload["dimensions"] = self.config.dimension

        headers = {
            "Authorization": f"Bearer {self.config.api_key}",
            "Content-Type": "application/json",
        }

        try:
            response = self.http.post(self.url, json=payload, headers=headers, timeout=timeout)
        except requests.Timeout as e:
            raise ProviderError(
                f"Embedding request timed out after {timeout}s",
                provider="openai",
                cause=e,
            )
        except requests.RequestException as e:
            raise ProviderError(f"Embedding request failed: {e}", provider="openai", cause=e)

        if response.status_code == 429:
            raise ProviderError("Embedding provider quota exceeded (HTTP 429)", provider="openai")
        if response.status_code >= 400:
            raise ProviderError(
                f"Embedding provider returned HTTP {response.status_code}: {response.text[:200]}",
                provider="openai",
            )

        try:
            body = response.json()
            data = sorted(body["data"], key=lambda row: row.get("index", 0))
            vectors = [np.asarray(row["embedding"], dtype=np.float32) for row in data]
        except (ValueError, KeyError, TypeError) as e:
            raise ProviderError(f"Malformed embedding response: {e}", provider="openai", cause=e)

        if len(vectors) != len(texts):
            raise ProviderError(
                f"Expected {len(texts)} embeddings, got {len(vectors)}", provider="openai"
            )

        for vector in vectors:
            if vector.shape != (self.config.dimension,):
                raise ProviderError(
                    f"Embedding dimension mismatch: expected {self.config.dimension}, "
                    f"got {vector.shape}",
                    provider="openai",
                )

        total_tokens = int(body.get("usage", {}).get("total_tokens", 0))
        per_text = total_tokens // len(texts) if texts else 0
        model_id = body.get("model", self.config.model)

        return [EmbeddingResult(vector=v, token_count=per_text, model_id=model_id) for v in vectors]


# Global provider instance
_provider: Optional[EmbeddingProvider] = None


def get_embedding_provider() -> EmbeddingProvider:
    """Get global embedding provider (singleton)."""
    global _provider
    if _provider is None:
        _provider = OpenAIEmbeddingProvider()
    return _provider


def set_embedding_provider(provider: Optional[EmbeddingProvider]) -> None:
    """Replace the global provider (None resets it)."""
    global _provider
    _provider = provider

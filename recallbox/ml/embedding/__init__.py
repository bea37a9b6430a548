"""
Embedding Module
Adapters turning text into vectors.
"""

from .provider import (
    EmbeddingProvider,
    EmbeddingResult,
    OpenAIEmbeddingProvider,
    get_embedding_provider,
    set_embedding_provider,
)

__all__ = [
    "EmbeddingProvider",
    "EmbeddingResult",
    "OpenAIEmbeddingProvider",
    "get_embedding_provider",
    "set_embedding_provider",
]

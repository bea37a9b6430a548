"""
Query Enrichment Module
Query expansion and LLM access.
"""

from .llm_client import LLMClient
from .query_enhancer import EnhancedQuery, QueryEnhancer, get_query_enhancer, reset_query_enhancer

__all__ = [
    "LLMClient",
    "EnhancedQuery",
    "QueryEnhancer",
    "get_query_enhancer",
    "reset_query_enhancer",
]

"""
Exact/Structured Match Engine
Category, structured metadata and exact substring matching.
"""

import logging
import re
from typing import Any, Dict, Iterable, List, Optional, Set

from ..config import SearchConfig, get_ml_config
from .text import build_excerpt, normalize, tokenize
from .types import MatchResult, MatchStrategy, SearchableItem

logger = logging.getLogger(__name__)

CATEGORY_EQUAL_SCORE = 1.0
CATEGORY_CONTAINED_SCORE = 0.9
CATEGORY_TOKEN_SCORE = 0.8
SUMMARY_EXACT_SCORE = 0.9


def _contains_phrase(phrase: str, text: str) -> bool:
    """Phrase containment anchored at a word start (plain substring for non-ASCII)."""
    if not phrase or not text:
        return False
    if not phrase.isascii():
        return phrase in text
    return re.search(r"(?<!\w)" + re.escape(phrase), text) is not None


def _structured_values(metadata: Dict[str, Any]) -> Iterable[tuple]:
    """Yield (key, value) pairs of scalar values, one level into lists and dicts."""
    for key, value in (metadata or {}).items():
        if isinstance(value, dict):
            for sub_key, sub_value in value.items():
                if isinstance(sub_value, (str, int, float)) and not isinstance(sub_value, bool):
                    yield f"{key}.{sub_key}", sub_value
        elif isinstance(value, (list, tuple)):
            for element in value:
                if isinstance(element, (str, int, float)) and not isinstance(element, bool):
                    yield key, element
        elif isinstance(value, (str, int, float)) and not isinstance(value, bool):
            yield key, value


class ExactMatcher:
    """
    Precise matcher over categorical and structured fields.

    Produces up to three MatchResults per item: category, metadata and exact.
    """

    def __init__(self, config: Optional[SearchConfig] = None):
        self.config = config or get_ml_config().search

    def match(self, query: str, item: SearchableItem) -> List[MatchResult]:
        """
        Match a query against one item.

        Args:
            query: Query text
            item: Item to match

        Returns:
            Zero or more MatchResults (category, metadata, exact)
        """
        query_norm = normalize(query)
        query_tokens = query_norm.split()
        if not query_tokens:
            return []

        results = []
        for result in (
            self._match_category(query_norm, query_tokens, item),
            self._match_metadata(query_tokens, item),
            self._match_exact(query_norm, query_tokens, item),
        ):
            if result is not None:
                results.append(result)
        return results

    def _match_category(self, query_norm, query_tokens, item) -> Optional[MatchResult]:
        label = normalize(item.category)
        if not label:
            return None

        if query_norm == label:
            score = CATEGORY_EQUAL_SCORE
        elif len(query_norm) >= 2 and query_norm in label:
            score = CATEGORY_CONTAINED_SCORE
        elif f" {label} " in f" {query_norm} ":
            score = CATEGORY_TOKEN_SCORE
        else:
            return None

        return MatchResult(
            item=item,
            score=score,
            strategy=MatchStrategy.CATEGORY,
            excerpts=[f"Category: **{item.category}**"],
            matched_terms=[item.category],
        )

    def _match_metadata(self, query_tokens, item) -> Optional[MatchResult]:
        field_tokens: Dict[str, Set[str]] = {}
        for key, value in _structured_values(item.metadata):
            field_tokens.setdefault(key, set()).update(tokenize(str(value)))
        if item.content_type:
            field_tokens.setdefault("content_type", set()).update(tokenize(item.content_type))

        matched_terms = []
        matched_fields = []
        for token in query_tokens:
            for key, tokens in field_tokens.items():
                if token in tokens:
                    matched_terms.append(token)
                    if key not in matched_fields:
                        matched_fields.append(key)
                    break

        if not matched_terms:
            return None

        score = len(matched_terms) / len(query_tokens)
        excerpt = ", ".join(
            f"{key}: {', '.join('**' + t + '**' for t in matched_terms if t in field_tokens[key])}"
            for key in matched_fields
        )
        return MatchResult(
            item=item,
            score=round(score, 6),
            strategy=MatchStrategy.METADATA,
            excerpts=[excerpt],
            matched_terms=matched_terms,
        )

    def _match_exact(self, query_norm, query_tokens, item) -> Optional[MatchResult]:
        raw_norm = normalize(item.raw_text)
        summary_norm = normalize(item.ai_summary)

        if _contains_phrase(query_norm, raw_norm):
            score = 1.0
            terms = [query_norm] + query_tokens
        elif _contains_phrase(query_norm, summary_norm):
            score = SUMMARY_EXACT_SCORE
            terms = [query_norm] + query_tokens
        else:
            significant = [t for t in query_tokens if len(t) > 2] or query_tokens
            found = [
                t
                for t in significant
                if _contains_phrase(t, raw_norm) or _contains_phrase(t, summary_norm)
            ]
            if not found:
                return None
            score = sum(len(t) for t in found) / sum(len(t) for t in significant)
            terms = found

        if score < self.config.exact_min_score:
            return None

        source = item.raw_text if _contains_any(terms, raw_norm) else item.ai_summary
        excerpt = build_excerpt(source, _source_terms(source, terms), self.config.excerpt_max_length)
        return MatchResult(
            item=item,
            score=round(min(1.0, score), 6),
            strategy=MatchStrategy.EXACT,
            excerpts=[excerpt] if excerpt else [],
            matched_terms=terms,
        )

    def search(self, query: str, items: Iterable[SearchableItem]) -> List[MatchResult]:
        """
        Run exact/structured matching over candidate items.

        Returns:
            MatchResults sorted by score descending, then item id, then strategy
        """
        strategy_order = {s: i for i, s in enumerate(MatchStrategy)}
        results = []
        for item in items:
            results.extend(self.match(query, item))

        results.sort(key=lambda r: (-r.score, r.item.id, strategy_order[r.strategy]))
        logger.debug(f"Exact search for '{query}': {len(results)} matches")
        return results


def _contains_any(terms, text_norm: str) -> bool:
    return any(_contains_phrase(term, text_norm) for term in terms)


def _source_terms(source: Optional[str], terms: List[str]) -> List[str]:
    """Map normalized terms back to words as written in the source text."""
    if not source:
        return terms
    words = re.findall(r"\w+", source)
    originals = [word for word in words if any(normalize(word).startswith(t) for t in terms)]
    return originals or terms

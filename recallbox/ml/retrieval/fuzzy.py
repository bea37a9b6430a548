"""
Fuzzy Match Engine
Typo-tolerant lexical similarity using edit distance and phonetic codes.

Scoring combines two views of the query:

- token score: each query token is matched to its closest candidate token
  (Damerau-Levenshtein, so a transposition costs one edit); weak tokens
  count as zero and the result is the mean over query tokens
- compact score: whitespace-free partial alignment, which tolerates
  missing or extra spaces and scores a query longer than the candidate
  over its best-matching window

The final similarity is the larger of the two.
"""

import logging
from typing import Iterable, List, Optional, Sequence, Tuple

from rapidfuzz import fuzz, process
from rapidfuzz.distance import DamerauLevenshtein

from ..config import SearchConfig, get_ml_config
from .text import build_excerpt, phonetic_code, tokenize, word_pairs
from .types import MatchResult, MatchStrategy, SearchableItem

logger = logging.getLogger(__name__)

# Similarity granted to tokens that only agree phonetically
PHONETIC_FLOOR = 0.75
# Similarity for a query token that prefixes a longer candidate token
PREFIX_SCORE = 0.9

# Field weights when scoring an item
FIELD_WEIGHTS = (("raw_text", 1.0), ("ai_summary", 0.9), ("category", 0.8))


class FuzzyMatcher:
    """
    Approximate lexical matcher.

    Case-insensitive and diacritic-insensitive; non-Latin scripts are
    compared as-is.
    """

    def __init__(self, config: Optional[SearchConfig] = None):
        """
        Initialize fuzzy matcher.

        Args:
            config: Search configuration (thresholds)
        """
        self.config = config or get_ml_config().search

    def match(self, query: str, candidate_text: str) -> float:
        """
        Similarity between a query and a candidate text.

        Args:
            query: Query text
            candidate_text: Text to compare against

        Returns:
            Similarity in [0, 1]; 0 for an empty query or candidate
        """
        score, _ = self._score(tokenize(query), word_pairs(candidate_text))
        return score

    def _score(
        self, query_tokens: Sequence[str], candidate: Sequence[Tuple[str, str]]
    ) -> Tuple[float, List[str]]:
        """Return (similarity, matched original candidate words)."""
        if not query_tokens or not candidate:
            return 0.0, []

        norm_tokens = [norm for _, norm in candidate]
        unique_tokens = list(dict.fromkeys(norm_tokens))
        phonetics = {}
        for token in unique_tokens:
            code = phonetic_code(token) if len(token) >= 4 else None
            if code is not None:
                phonetics.setdefault(code, token)

        matched_norms = set()
        total = 0.0
        for query_token in query_tokens:
            best, best_token = self._best_token(query_token, unique_tokens, phonetics)
            if best >= self.config.fuzzy_token_threshold:
                total += best
                matched_norms.add(best_token)

        token_score = total / len(query_tokens)

        compact_score = 0.0
        query_compact = "".join(query_tokens)
        candidate_compact = "".join(norm_tokens)
        if min(len(query_compact), len(candidate_compact)) >= 3:
            similarity = fuzz.partial_ratio(query_compact, candidate_compact) / 100.0
            if similarity >= self.config.fuzzy_compact_threshold:
                compact_score = similarity

        if compact_score > token_score:
            # Whole-window match: also highlight candidate words occurring in the query
            matched_norms |= {norm for norm in unique_tokens if norm in query_compact}
            score = compact_score
        else:
            score = token_score

        matched_words = [word for word, norm in candidate if norm in matched_norms]
        return min(1.0, max(0.0, score)), list(dict.fromkeys(matched_words))

    def _best_token(self, query_token, tokens, phonetics) -> Tuple[float, Optional[str]]:
        if len(query_token) == 1:
            return (1.0, query_token) if query_token in tokens else (0.0, None)

        choice, similarity, _ = process.extractOne(
            query_token, tokens, scorer=DamerauLevenshtein.normalized_similarity
        )
        best, best_token = float(similarity), choice

        if best < 1.0 and len(query_token) >= 3:
            for token in tokens:
                if len(token) > len(query_token) and token.startswith(query_token):
                    if PREFIX_SCORE > best:
                        best, best_token = PREFIX_SCORE, token
                    break

        if best < PHONETIC_FLOOR and len(query_token) >= 4:
            code = phonetic_code(query_token)
            sounds_like = phonetics.get(code) if code is not None else None
            if sounds_like is not None:
                best, best_token = PHONETIC_FLOOR, sounds_like

        return best, best_token

    def match_item(
        self, query: str, item: SearchableItem, expansions: Iterable[str] = ()
    ) -> Optional[MatchResult]:
        """
        Score an item's text fields against a query and its expansion terms.

        Expansion terms are discounted so the literal query always wins ties.

        Args:
            query: Query text
            item: Item to score
            expansions: Extra terms from query enhancement

        Returns:
            MatchResult with the fuzzy strategy, or None below the minimum score
        """
        variants = [(tokenize(query), 1.0)]
        discount = self.config.fuzzy_expansion_discount
        variants.extend((tokenize(term), discount) for term in expansions if term.strip())
        variants = [(tokens, weight) for tokens, weight in variants if tokens]
        if not variants:
            return None

        best_score = 0.0
        best_words: List[str] = []
        best_terms: List[str] = []
        for field_name, field_weight in FIELD_WEIGHTS:
            text = getattr(item, field_name)
            if not text:
                continue
            pairs = word_pairs(text)
            for tokens, variant_weight in variants:
                score, words = self._score(tokens, pairs)
                weighted = score * field_weight * variant_weight
                if weighted > best_score:
                    best_score, best_words, best_terms = weighted, words, list(tokens)

        if best_score < self.config.fuzzy_min_score:
            return None

        excerpt = build_excerpt(item.raw_text, best_words, self.config.excerpt_max_length)
        return MatchResult(
            item=item,
            score=round(min(1.0, best_score), 6),
            strategy=MatchStrategy.FUZZY,
            excerpts=[excerpt] if excerpt else [],
            matched_terms=best_terms,
        )

    def search(
        self,
        query: str,
        items: Iterable[SearchableItem],
        expansions: Iterable[str] = (),
    ) -> List[MatchResult]:
        """
        Run fuzzy matching over candidate items.

        Returns:
            MatchResults sorted by score descending, then item id
        """
        expansions = list(expansions)
        results = []
        for item in items:
            result = self.match_item(query, item, expansions)
            if result is not None:
                results.append(result)

        results.sort(key=lambda r: (-r.score, r.item.id))
        logger.debug(f"Fuzzy search for '{query}': {len(results)} matches")
        return results

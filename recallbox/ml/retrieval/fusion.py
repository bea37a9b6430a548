"""
Rank Fusion
Merge per-strategy match results into one ordered, deduplicated result list.

Fusion Formula:
score = min(1, max(weight[s] * score[s]) + bonus * (distinct strategies - 1))

Weights are at most 1 and the max/count terms never decrease when a signal
is added, so the score is bounded to [0, 1] and monotonic.
"""

import logging
from typing import Dict, Iterable, List, Optional

from ..config import FusionConfig, get_ml_config
from .types import FusedResult, MatchResult, MatchStrategy

logger = logging.getLogger(__name__)


class RankFusion:
    """
    Weighted max-plus-bonus fusion.

    Holds no state beyond its configuration; fuse() is a pure function of
    its input.
    """

    def __init__(self, config: Optional[FusionConfig] = None):
        """
        Initialize rank fusion.

        Args:
            config: Fusion weights
        """
        self.config = config or get_ml_config().fusion
        self.config.validate()
        self.weights: Dict[MatchStrategy, float] = {
            MatchStrategy.EXACT: self.config.exact_weight,
            MatchStrategy.CATEGORY: self.config.category_weight,
            MatchStrategy.METADATA: self.config.metadata_weight,
            MatchStrategy.SEMANTIC: self.config.semantic_weight,
            MatchStrategy.FUZZY: self.config.fuzzy_weight,
        }

    def combine_scores(self, signals: Dict[MatchStrategy, float]) -> float:
        """
        Combine per-strategy scores of one item.

        Args:
            signals: Best raw score per strategy

        Returns:
            Combined relevance score in [0, 1]
        """
        if not signals:
            return 0.0
        best = max(self.weights[strategy] * score for strategy, score in signals.items())
        combined = best + self.config.strategy_bonus * (len(signals) - 1)
        return round(min(1.0, max(0.0, combined)), 6)

    def fuse(self, matches: Iterable[MatchResult]) -> List[FusedResult]:
        """
        Fuse match results into ordered FusedResults.

        Ordering: relevance descending, then newer items first, then item id.

        Args:
            matches: Match results from every engine (any number per item)

        Returns:
            Ordered list of FusedResults (empty if there were no matches)
        """
        grouped: Dict[str, List[MatchResult]] = {}
        for match in matches:
            grouped.setdefault(match.item.id, []).append(match)

        fused = []
        for item_id in sorted(grouped):
            group = grouped[item_id]

            best_by_strategy: Dict[MatchStrategy, MatchResult] = {}
            for match in group:
                current = best_by_strategy.get(match.strategy)
                if current is None or match.score > current.score:
                    best_by_strategy[match.strategy] = match

            signals = {s: m.score for s, m in best_by_strategy.items()}
            strategies = MatchStrategy.ordered(signals)

            dominant = strategies[0]
            for strategy in strategies[1:]:
                if self.weights[strategy] * signals[strategy] > (
                    self.weights[dominant] * signals[dominant]
                ):
                    dominant = strategy

            fused.append(
                FusedResult(
                    item=group[0].item,
                    relevance_score=self.combine_scores(signals),
                    match_type=dominant,
                    strategies=strategies,
                    excerpt=self._pick_excerpt(best_by_strategy, dominant, strategies),
                    signal_scores={s.value: round(signals[s], 6) for s in strategies},
                )
            )

        # Stable sorts, least significant key first
        fused.sort(key=lambda r: r.item.created_at, reverse=True)
        fused.sort(key=lambda r: r.relevance_score, reverse=True)

        logger.debug(f"Fused {len(grouped)} items from match results")
        return fused

    @staticmethod
    def _pick_excerpt(best_by_strategy, dominant, strategies) -> Optional[str]:
        dominant_excerpts = best_by_strategy[dominant].excerpts
        if dominant_excerpts:
            return dominant_excerpts[0]
        for strategy in strategies:
            if best_by_strategy[strategy].excerpts:
                return best_by_strategy[strategy].excerpts[0]
        return None


def fuse(matches: Iterable[MatchResult], config: Optional[FusionConfig] = None) -> List[FusedResult]:
    """Fuse match results with the given (or global) fusion configuration."""
    return RankFusion(config).fuse(matches)

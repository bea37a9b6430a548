"""
Tests for category, metadata and exact substring matching.
"""

import pytest

from recallbox.ml.config import SearchConfig
from recallbox.ml.retrieval import ExactMatcher, MatchStrategy, SearchableItem


@pytest.fixture
def matcher():
    return ExactMatcher(SearchConfig())


@pytest.fixture
def bill():
    return SearchableItem(
        id="bill",
        owner_id="U1",
        raw_text="Electricity bill due Nov 15, $150",
        ai_summary="Monthly power invoice",
        category="Bills",
        metadata={"vendor": "Enel", "amount": 150, "tags": ["utilities", "home"]},
    )


def by_strategy(results):
    return {r.strategy: r for r in results}


def test_category_equal(matcher, bill):
    result = by_strategy(matcher.match("bills", bill))[MatchStrategy.CATEGORY]

    assert result.score == 1.0
    assert result.excerpts == ["Category: **Bills**"]


def test_category_contained(matcher, bill):
    result = by_strategy(matcher.match("bill", bill))[MatchStrategy.CATEGORY]
    assert result.score == 0.9


def test_category_as_query_token(matcher, bill):
    result = by_strategy(matcher.match("unpaid bills", bill))[MatchStrategy.CATEGORY]
    assert result.score == 0.8


def test_metadata_value_match(matcher, bill):
    result = by_strategy(matcher.match("enel", bill))[MatchStrategy.METADATA]

    assert result.score == 1.0
    assert "vendor: **enel**" in result.excerpts[0]


def test_metadata_list_values_and_partial_coverage(matcher, bill):
    result = by_strategy(matcher.match("utilities zebra", bill))[MatchStrategy.METADATA]
    assert result.score == pytest.approx(0.5)


def test_exact_phrase_in_raw_text(matcher, bill):
    result = by_strategy(matcher.match("bill due", bill))[MatchStrategy.EXACT]

    assert result.score == 1.0
    assert "**bill**" in result.excerpts[0]
    assert "**due**" in result.excerpts[0]


def test_exact_phrase_in_summary(matcher, bill):
    result = by_strategy(matcher.match("power invoice", bill))[MatchStrategy.EXACT]

    assert result.score == pytest.approx(0.9)
    assert "**power**" in result.excerpts[0]


def test_partial_token_coverage(matcher, bill):
    result = by_strategy(matcher.match("bill zebra", bill))[MatchStrategy.EXACT]
    assert result.score == pytest.approx(4 / 9)


def test_no_match(matcher, bill):
    assert matcher.match("zebra", bill) == []
    assert matcher.match("", bill) == []


def test_search_orders_results(matcher, bill):
    other = SearchableItem(id="another", owner_id="U1", raw_text="bill reminder")

    results = matcher.search("bill", [bill, other])

    assert all(0.0 <= r.score <= 1.0 for r in results)
    keys = [(-r.score, r.item.id) for r in results]
    assert keys == sorted(keys)

"""
Tests for typo-tolerant lexical matching.
"""

import pytest

from recallbox.ml.config import SearchConfig
from recallbox.ml.retrieval import FuzzyMatcher, MatchStrategy, SearchableItem
from recallbox.ml.retrieval.fuzzy import PHONETIC_FLOOR
from recallbox.ml.retrieval.text import phonetic_code


@pytest.fixture
def matcher():
    return FuzzyMatcher(SearchConfig())


def item(item_id, text, **kwargs):
    return SearchableItem(id=item_id, owner_id="U1", raw_text=text, **kwargs)


def test_typo_scores_high(matcher):
    assert matcher.match("electrisity bill", "Electricity bill due Nov 15, $150") >= 0.9


def test_transposition_costs_one_edit(matcher):
    assert matcher.match("recieve", "receive the package") == pytest.approx(6 / 7, abs=1e-3)


def test_missing_space_matches(matcher):
    assert matcher.match("grocerylist", "Grocery list: milk, eggs") >= 0.9


def test_case_and_diacritics_are_ignored(matcher):
    assert matcher.match("electricite", "Facture ÉLECTRICITÉ") == pytest.approx(1.0)


def test_non_latin_scripts_compare_as_is(matcher):
    assert matcher.match("東京", "東京 trip") == pytest.approx(1.0)


def test_empty_inputs_score_zero(matcher):
    assert matcher.match("", "anything") == 0.0
    assert matcher.match("anything", "") == 0.0


def test_unrelated_text_scores_low(matcher):
    assert matcher.match("zebra", "Grocery list: milk, eggs") < 0.6


def test_sound_alike_latin_words_get_phonetic_floor(matcher):
    assert matcher.match("rupert", "Robert meeting") == pytest.approx(PHONETIC_FLOOR)


@pytest.mark.parametrize(
    "query,candidate",
    [
        ("москва", "привет мир"),
        ("θάλασσα", "βιβλίο"),
        ("1500", "invoice 2024"),
    ],
)
def test_unrelated_non_latin_and_numeric_tokens_score_low(matcher, query, candidate):
    assert matcher.match(query, candidate) < 0.6
    assert matcher.match_item(query, item("a", candidate)) is None


def test_phonetic_code_only_for_latin_words():
    assert phonetic_code("Robert") == phonetic_code("Rupert") == "r163"
    assert phonetic_code("москва") is None
    assert phonetic_code("1500") is None
    assert phonetic_code("東京") is None


def test_match_item_returns_fuzzy_result_with_excerpt(matcher):
    result = matcher.match_item("electrisity", item("a", "Electricity bill due Nov 15"))

    assert result is not None
    assert result.strategy == MatchStrategy.FUZZY
    assert 0.0 <= result.score <= 1.0
    assert "**Electricity**" in result.excerpts[0]


def test_match_item_below_threshold_is_none(matcher):
    assert matcher.match_item("zebra", item("a", "Grocery list: milk, eggs")) is None


def test_expansion_terms_are_discounted(matcher):
    result = matcher.match_item("power", item("a", "Electricity bill"), ["electricity"])

    assert result is not None
    assert result.score == pytest.approx(0.9)
    assert result.matched_terms == ["electricity"]


def test_summary_and_category_fields_are_searched(matcher):
    result = matcher.match_item(
        "invoice", item("a", "see attachment", ai_summary="Invoice from the landlord")
    )

    assert result is not None
    assert result.score == pytest.approx(0.9)


def test_search_sorts_by_score_then_id(matcher):
    items = [
        item("b", "pay rent"),
        item("a", "pay rent"),
        item("c", "pay the rent tomorrow"),
        item("d", "Grocery list"),
    ]

    results = matcher.search("pay rent", items)

    ids = [r.item.id for r in results]
    assert ids[:2] == ["a", "b"]
    assert "d" not in ids
    scores = [r.score for r in results]
    assert scores == sorted(scores, reverse=True)

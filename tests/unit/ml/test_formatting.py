"""
Tests for chat result formatting.
"""

from datetime import datetime

import pytest
from conftest import make_item

from recallbox.ml.retrieval import FusedResult, MatchStrategy
from recallbox.ml.search import SearchResultFormatter


def result(item_id, excerpt=None, category="bills", score=0.87, raw_text="Electricity <bill>"):
    return FusedResult(
        item=make_item(item_id, "U1", raw_text, category=category, created_at=datetime(2024, 11, 1)),
        relevance_score=score,
        match_type=MatchStrategy.FUZZY,
        strategies=[MatchStrategy.FUZZY],
        excerpt=excerpt,
    )


@pytest.fixture
def formatter():
    return SearchResultFormatter()


def test_telegram_escapes_and_highlights(formatter):
    text = formatter.format_for_telegram([result("a", excerpt="**Electricity** <bill>")], "elec")

    assert "(1 found)" in text
    assert "<b>Electricity</b> &lt;bill&gt;" in text
    assert "📅 Nov 1, 2024 • 🎯 87%" in text
    assert "Fuzzy match - similar wording" in text


def test_telegram_uses_preview_without_excerpt(formatter):
    text = formatter.format_for_telegram([result("a")], "bill")

    assert "💬 Electricity &lt;bill&gt;" in text


def test_whatsapp_markup(formatter):
    text = formatter.format_for_whatsapp([result("a", excerpt="**Electricity** bill")], "elec")

    assert "🔍 *Search Results* (1 found)" in text
    assert "💬 *Electricity* bill" in text
    assert "_Fuzzy match - similar wording_" in text


def test_remaining_count_accounts_for_page_start(formatter):
    page = [result(f"r{i}") for i in range(5)]

    first = formatter.format(page, "bill", "telegram", total=12, start=0)
    last = formatter.format(page[:2], "bill", "telegram", total=12, start=10)

    assert "... and 7 more results" in first
    assert "more results" not in last


def test_no_results_message(formatter):
    assert 'No results found for "<i>a&amp;b</i>"' in formatter.format([], "a&b", "telegram")
    assert 'No results found for "_zebra_"' in formatter.format([], "zebra", "whatsapp")


def test_unknown_channel(formatter):
    with pytest.raises(ValueError):
        formatter.format([result("a")], "bill", "sms")


def test_category_icons(formatter):
    assert formatter.category_icon("Finance") == "💰"
    assert formatter.category_icon(None) == "📦"
    assert formatter.category_icon("bills") == "📁"


def test_summary(formatter):
    results = [result("a"), result("b", category="finance")]

    assert formatter.format_summary(results, "bill") == 'Found 2 results for "bill" across 2 categories'
    assert formatter.format_summary([], "bill") == 'No results found for "bill"'

"""
Search Result Formatting
Render fused results as chat messages for Telegram (HTML) and WhatsApp (plain markup).
"""

import html
import re
from datetime import datetime
from typing import List, Optional

from ..retrieval.types import FusedResult, MatchStrategy

CATEGORY_ICONS = {
    "work": "💼",
    "personal": "👤",
    "shopping": "🛒",
    "finance": "💰",
    "health": "🏥",
    "travel": "✈️",
    "learning": "📚",
    "entertainment": "🎬",
    "food": "🍽️",
    "home": "🏠",
    "social": "👥",
    "ideas": "💡",
    "photos": "📷",
    "documents": "📄",
    "voice": "🎤",
    "uncategorized": "📦",
}
DEFAULT_ICON = "📁"

MATCH_TYPE_DESCRIPTIONS = {
    MatchStrategy.SEMANTIC: "Semantic match - related content",
    MatchStrategy.EXACT: "Text match - exact phrase",
    MatchStrategy.FUZZY: "Fuzzy match - similar wording",
    MatchStrategy.CATEGORY: "Category match",
    MatchStrategy.METADATA: "Metadata match",
}

SEARCH_TIP = "💡 Use more specific terms to narrow your search."

_HIGHLIGHT = re.compile(r"\*\*(.+?)\*\*")


def _format_date(value: Optional[datetime]) -> str:
    if value is None:
        return "Unknown date"
    return f"{value:%b} {value.day}, {value.year}"


def _preview(result: FusedResult, max_length: int = 120) -> str:
    text = result.item.ai_summary or result.item.raw_text
    if not text:
        return "No content available"
    if len(text) <= max_length:
        return text
    return f"{text[:max_length]}..."


class SearchResultFormatter:
    """Formats search results for bot conversations."""

    def __init__(self, max_results: int = 5, show_score: bool = True, show_match_type: bool = True):
        self.max_results = max_results
        self.show_score = show_score
        self.show_match_type = show_match_type

    @staticmethod
    def category_icon(category: Optional[str]) -> str:
        return CATEGORY_ICONS.get((category or "uncategorized").lower(), DEFAULT_ICON)

    @staticmethod
    def describe_match(match_type: MatchStrategy) -> str:
        return MATCH_TYPE_DESCRIPTIONS.get(match_type, "Content match")

    def format_for_telegram(
        self,
        results: List[FusedResult],
        query: str,
        total: Optional[int] = None,
        start: int = 0,
    ) -> str:
        """
        Format results as Telegram HTML.

        Args:
            results: Results to show (at most max_results are rendered)
            query: Query text
            total: Total result count if results is a single page
            start: Position of the first result within the total

        Returns:
            HTML message
        """
        if not results:
            return self.format_no_results(query, "telegram")

        total = total if total is not None else len(results)
        shown = results[: self.max_results]

        lines = [
            f"🔍 <b>Search Results</b> ({total} found)",
            f'Query: "<i>{html.escape(query)}</i>"',
            "",
        ]
        for result in shown:
            lines.append(self._telegram_entry(result))

        remaining = total - start - len(shown)
        if remaining > 0:
            lines.append(f"<i>... and {remaining} more results</i>")
            lines.append("💡 Use /more to see additional results")
            lines.append("")

        lines.append(SEARCH_TIP)
        return "\n".join(lines)

    def format_for_whatsapp(
        self,
        results: List[FusedResult],
        query: str,
        total: Optional[int] = None,
        start: int = 0,
    ) -> str:
        """Format results as WhatsApp text (*bold*, _italic_)."""
        if not results:
            return self.format_no_results(query, "whatsapp")

        total = total if total is not None else len(results)
        shown = results[: self.max_results]

        lines = [f"🔍 *Search Results* ({total} found)", f'Query: "_{query}_"', ""]
        for result in shown:
            lines.append(self._whatsapp_entry(result))

        remaining = total - start - len(shown)
        if remaining > 0:
            lines.append(f"_... and {remaining} more results_")
            lines.append('💡 Reply with "more" to see additional results')
            lines.append("")

        lines.append(SEARCH_TIP)
        return "\n".join(lines)

    def _telegram_entry(self, result: FusedResult) -> str:
        category = result.item.category or "Uncategorized"
        header = f"📅 {_format_date(result.item.created_at)}"
        if self.show_score:
            header += f" • 🎯 {round(result.relevance_score * 100)}%"

        if result.excerpt:
            body = _HIGHLIGHT.sub(r"<b>\1</b>", html.escape(result.excerpt, quote=True))
        else:
            body = html.escape(_preview(result))

        entry = [
            f"{self.category_icon(category)} <b>{html.escape(category)}</b>",
            header,
            f"💬 {body}",
        ]
        if self.show_match_type:
            entry.append(f"🔎 <i>{self.describe_match(result.match_type)}</i>")
        return "\n".join(entry) + "\n"

    def _whatsapp_entry(self, result: FusedResult) -> str:
        category = result.item.category or "Uncategorized"
        header = f"📅 {_format_date(result.item.created_at)}"
        if self.show_score:
            header += f" • 🎯 {round(result.relevance_score * 100)}%"

        body = _HIGHLIGHT.sub(r"*\1*", result.excerpt) if result.excerpt else _preview(result)

        entry = [f"{self.category_icon(category)} *{category}*", header, f"💬 {body}"]
        if self.show_match_type:
            entry.append(f"🔎 _{self.describe_match(result.match_type)}_")
        return "\n".join(entry) + "\n"

    @staticmethod
    def format_no_results(query: str, channel: str = "telegram") -> str:
        """Format the no-results message with search tips."""
        tips = (
            "• Different keywords\n"
            "• Broader terms\n"
            "• Check spelling\n"
            '• Search by category (e.g., "photos", "messages")'
        )
        if channel == "telegram":
            return (
                "🔍 <b>Search Results</b>\n\n"
                f'No results found for "<i>{html.escape(query)}</i>"\n\n'
                f"💡 <b>Try:</b>\n{tips}"
            )
        return f'🔍 *Search Results*\n\nNo results found for "_{query}_"\n\n💡 *Try:*\n{tips}'

    @staticmethod
    def format_summary(results: List[FusedResult], query: str) -> str:
        """One-line summary of a result set."""
        if not results:
            return f'No results found for "{query}"'
        categories = {r.item.category or "Uncategorized" for r in results}
        return f'Found {len(results)} results for "{query}" across {len(categories)} categories'

    def format(
        self,
        results: List[FusedResult],
        query: str,
        channel: str,
        total: Optional[int] = None,
        start: int = 0,
    ) -> str:
        """Format for the given channel (telegram | whatsapp)."""
        if channel == "whatsapp":
            return self.format_for_whatsapp(results, query, total, start)
        if channel == "telegram":
            return self.format_for_telegram(results, query, total, start)
        raise ValueError(f"Unknown channel: {channel}")

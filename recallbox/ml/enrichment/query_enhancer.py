"""
Query Enhancement
Best-effort query expansion with multilingual synonyms, translations and intents.
"""

import logging
from dataclasses import dataclass, field
from datetime import date, timedelta
from typing import Any, Callable, Dict, List, Optional

from ..config import EnhancementConfig, get_ml_config
from ..errors import ProviderError
from ..retrieval.text import fold, tokenize
from .llm_client import LLMClient

logger = logging.getLogger(__name__)

# Whole-phrase translations (Portuguese, Spanish, French, English)
PHRASE_EXPANSIONS: Dict[str, str] = {
    "contas de luz": "contas de luz conta fatura boleto electricity bill power",
    "conta de luz": "conta de luz fatura boleto electricity bill power",
    "energia elétrica": "energia elétrica eletricidade electricity power energy",
    "fatura energia": "fatura energia conta boleto electricity bill invoice",
    "factura electricidad": "factura electricidad recibo electricity bill power",
    "recibo luz": "recibo luz factura cuenta electricity bill power",
    "facture électricité": "facture électricité note electricity bill power",
    "electricity bill": "electricity bill electric power energy utility invoice receipt",
    "power bill": "power bill electricity electric energy utility invoice",
    "utility bill": "utility bill electricity power energy service invoice",
}

# Per-word synonyms
SYNONYMS: Dict[str, List[str]] = {
    # English
    "meeting": ["call", "appointment", "conference"],
    "urgent": ["important", "priority", "asap"],
    "work": ["job", "office", "business"],
    "personal": ["private", "family"],
    "travel": ["trip", "flight", "hotel"],
    "money": ["payment", "finance", "budget", "cost"],
    "health": ["medical", "doctor", "appointment"],
    "bill": ["invoice", "receipt", "payment", "charge"],
    "electricity": ["electric", "power", "energy", "utility"],
    "utility": ["bill", "service", "electric", "power"],
    # Portuguese
    "conta": ["fatura", "boleto", "cobrança", "bill"],
    "luz": ["energia", "eletricidade", "electricity", "power"],
    "contas": ["faturas", "boletos", "bills", "invoices"],
    "energia": ["luz", "eletricidade", "electricity", "power"],
    "eletricidade": ["energia", "luz", "electricity"],
    "fatura": ["conta", "boleto", "invoice", "bill"],
    "boleto": ["conta", "fatura", "cobrança", "bill"],
    # Spanish
    "factura": ["recibo", "cuenta", "invoice", "bill"],
    "electricidad": ["energía", "luz", "electricity"],
    "recibo": ["factura", "cuenta", "receipt", "bill"],
    # French
    "facture": ["note", "compte", "invoice", "bill"],
    "électricité": ["énergie", "courant", "electricity"],
}

CONTENT_TYPE_KEYWORDS: Dict[str, List[str]] = {
    "voice": ["voice", "audio", "recording", "message", "spoke", "said"],
    "image": ["image", "photo", "picture", "screenshot", "pic"],
    "email": ["email", "mail", "sent", "inbox"],
    "text": ["note", "text", "wrote", "typed"],
}

STATIC_SUGGESTIONS = [
    "today",
    "yesterday",
    "last week",
    "this month",
    "voice messages",
    "images",
    "emails",
    "notes",
    "meetings",
    "appointments",
    "important",
    "urgent",
    "travel",
    "receipts",
]

LLM_PROMPT = """You expand search queries for a multilingual personal inbox. Users store content in English, Portuguese, Spanish, French and other languages.

Original query: "{query}"

Expand the query with synonyms in the same language, key English translations when the query is in another language, and closely related terms. Keep the original terms and return searchable keywords, not sentences.

Respond with JSON only:
{{"enhanced": "original query plus expansions", "intents": ["intent"], "filters": {{"contentTypes": [], "categories": []}}, "confidence": 0.9}}"""


@dataclass
class EnhancedQuery:
    """Outcome of query enhancement."""

    original: str
    enhanced: str
    applied: bool = False
    source: str = "none"  # rules | llm | none
    expansions: List[str] = field(default_factory=list)
    intents: List[str] = field(default_factory=list)
    suggested_filters: Dict[str, Any] = field(default_factory=dict)
    confidence: float = 0.5

    def to_dict(self) -> dict:
        return {
            "original": self.original,
            "enhanced": self.enhanced,
            "applied": self.applied,
            "source": self.source,
            "expansions": self.expansions,
            "intents": self.intents,
            "suggested_filters": self.suggested_filters,
            "confidence": self.confidence,
        }


def _unchanged(query: str) -> EnhancedQuery:
    return EnhancedQuery(original=query, enhanced=query)


class QueryEnhancer:
    """
    Rewrites a raw query into an expanded one.

    Never fails: any error yields the original query with applied=False.
    """

    def __init__(
        self,
        config: Optional[EnhancementConfig] = None,
        llm_client: Optional[LLMClient] = None,
        today: Callable[[], date] = date.today,
    ):
        """
        Initialize query enhancer.

        Args:
            config: Enhancement configuration
            llm_client: Client for LLM rewrites (created when use_llm is set)
            today: Clock used for relative date intents
        """
        self.config = config or get_ml_config().enhancement
        self.llm_client = llm_client
        if self.llm_client is None and self.config.use_llm:
            self.llm_client = LLMClient(self.config)
        self.today = today

    def enhance(self, raw_query: str) -> EnhancedQuery:
        """
        Enhance a raw query.

        Args:
            raw_query: Query as typed by the user

        Returns:
            EnhancedQuery; the original query unchanged if enhancement fails
        """
        query = (raw_query or "").strip()
        if not query or not self.config.enabled:
            return _unchanged(raw_query or "")

        try:
            if self.llm_client is not None:
                try:
                    return self._enhance_with_llm(query)
                except ProviderError as e:
                    logger.warning(f"LLM query enhancement failed, using rules: {e}")
            return self._enhance_with_rules(query)
        except Exception as e:
            logger.error(f"Query enhancement failed for '{query}': {e}", exc_info=True)
            return _unchanged(raw_query)

    def _enhance_with_rules(self, query: str) -> EnhancedQuery:
        enhanced = self._expand_phrases(query)
        enhanced = self._expand_synonyms(enhanced)

        intents = []
        suggested_filters: Dict[str, Any] = {}
        lower = query.lower()

        date_range = self._extract_date_range(lower)
        if date_range:
            suggested_filters["date_range"] = date_range
            intents.append("temporal_search")

        content_type = self._detect_content_type(lower)
        if content_type:
            suggested_filters["content_types"] = [content_type]
            intents.append("content_type_filter")

        return self._build(query, enhanced, "rules", intents, suggested_filters, 0.6)

    def _enhance_with_llm(self, query: str) -> EnhancedQuery:
        response = self.llm_client.complete_json(LLM_PROMPT.format(query=query))

        enhanced = str(response.get("enhanced") or "").strip()
        if len(enhanced) <= 2 or "{" in enhanced:
            raise ProviderError("LLM returned an unusable enhanced query", provider="llm")

        filters = response.get("filters") or {}
        suggested_filters = {}
        if filters.get("contentTypes"):
            suggested_filters["content_types"] = list(filters["contentTypes"])
        if filters.get("categories"):
            suggested_filters["categories"] = list(filters["categories"])

        confidence = float(response.get("confidence") or 0.7)
        intents = [str(intent) for intent in response.get("intents") or []]
        return self._build(query, enhanced, "llm", intents, suggested_filters, confidence)

    @staticmethod
    def _build(query, enhanced, source, intents, suggested_filters, confidence) -> EnhancedQuery:
        original_tokens = set(tokenize(query))
        expansions = []
        for token in tokenize(enhanced):
            if token not in original_tokens and token not in expansions:
                expansions.append(token)

        applied = bool(expansions)
        return EnhancedQuery(
            original=query,
            enhanced=enhanced if applied else query,
            applied=applied,
            source=source if applied else "none",
            expansions=expansions,
            intents=intents,
            suggested_filters=suggested_filters,
            confidence=confidence,
        )

    @staticmethod
    def _expand_phrases(query: str) -> str:
        lower = query.lower().strip()
        if lower in PHRASE_EXPANSIONS:
            return PHRASE_EXPANSIONS[lower]

        for phrase, expansion in PHRASE_EXPANSIONS.items():
            if phrase in lower or (len(lower.split()) > 1 and lower in phrase):
                return f"{query} {expansion}"

        return query

    def _expand_synonyms(self, query: str) -> str:
        tokens = [fold(token) for token in query.split()]
        present = set(tokens)
        added: List[str] = []

        for key, synonyms in SYNONYMS.items():
            if fold(key) not in present:
                continue
            fresh = [s for s in synonyms if fold(s) not in present and s not in added]
            added.extend(fresh[: self.config.max_synonyms_per_term])

        if not added:
            return query
        return f"{query} {' '.join(added)}"

    def _extract_date_range(self, query: str) -> Optional[Dict[str, str]]:
        today = self.today()

        if "today" in query:
            return {"from": today.isoformat(), "to": today.isoformat()}

        if "yesterday" in query:
            yesterday = today - timedelta(days=1)
            return {"from": yesterday.isoformat(), "to": yesterday.isoformat()}

        if "last week" in query:
            return {
                "from": (today - timedelta(days=14)).isoformat(),
                "to": (today - timedelta(days=7)).isoformat(),
            }

        if "this week" in query:
            start = today - timedelta(days=(today.weekday() + 1) % 7)
            return {"from": start.isoformat(), "to": today.isoformat()}

        return None

    @staticmethod
    def _detect_content_type(query: str) -> Optional[str]:
        words = set(query.split())
        for content_type, keywords in CONTENT_TYPE_KEYWORDS.items():
            if words.intersection(keywords):
                return content_type
        return None

    def generate_suggestions(self, partial_query: str, limit: int = 5) -> List[str]:
        """
        Suggest queries matching a partial query.

        Args:
            partial_query: Text typed so far
            limit: Maximum suggestions

        Returns:
            Matching suggestions; empty for partials shorter than 2 characters
        """
        partial = (partial_query or "").strip().lower()
        if len(partial) < 2:
            return []
        return [s for s in STATIC_SUGGESTIONS if partial in s.lower()][:limit]


# Global enhancer instance
_enhancer: Optional[QueryEnhancer] = None


def get_query_enhancer() -> QueryEnhancer:
    """Get global query enhancer (singleton)."""
    global _enhancer
    if _enhancer is None:
        _enhancer = QueryEnhancer()
    return _enhancer


def reset_query_enhancer() -> None:
    global _enhancer
    _enhancer = None

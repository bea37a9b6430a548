"""
Text Utilities
Normalization, tokenization, phonetic codes and excerpt highlighting.
"""

import re
import unicodedata
from typing import Iterable, List, Optional, Tuple

_NON_WORD = re.compile(r"[^\w\s]+", re.UNICODE)
_WHITESPACE = re.compile(r"\s+")
_WORD = re.compile(r"\w+", re.UNICODE)
_LATIN_WORD = re.compile(r"[a-z]+")

# Consonant groups of the simplified Soundex code
_PHONETIC_GROUPS = ("bfpv", "cgjkqsxz", "dt", "l", "mn", "r")


def fold(text: str) -> str:
    """Case-fold and strip diacritics, keeping non-Latin scripts intact."""
    decomposed = unicodedata.normalize("NFKD", text)
    stripped = "".join(ch for ch in decomposed if not unicodedata.combining(ch))
    return stripped.casefold()


def normalize(text: Optional[str]) -> str:
    """
    Normalize text for comparison.

    Diacritics are removed, case is folded, punctuation becomes whitespace
    and runs of whitespace collapse to one space.
    """
    if not text:
        return ""
    folded = _NON_WORD.sub(" ", fold(text)).replace("_", " ")
    return _WHITESPACE.sub(" ", folded).strip()


def tokenize(text: Optional[str]) -> List[str]:
    return normalize(text).split()


def word_pairs(text: Optional[str]) -> List[Tuple[str, str]]:
    """Return (original word, normalized word) pairs for a text."""
    pairs = []
    for match in _WORD.finditer(text or ""):
        word = match.group(0)
        norm = normalize(word).replace(" ", "")
        if norm:
            pairs.append((word, norm))
    return pairs


def phonetic_code(word: str) -> Optional[str]:
    """
    Simplified Soundex code for a single word.

    Keeps the first letter, then one digit per consonant group change,
    padded or cut to four characters. Words that are not made of Latin
    letters only (other scripts, digits) have no code.
    """
    cleaned = fold(word)
    if not _LATIN_WORD.fullmatch(cleaned):
        return None

    code = cleaned[0]
    for prev, char in zip(cleaned, cleaned[1:]):
        for digit, group in enumerate(_PHONETIC_GROUPS, 1):
            if char in group:
                if prev not in group:
                    code += str(digit)
                break

    return code[:4].ljust(4, "0")


def build_excerpt(text: Optional[str], terms: Iterable[str], max_length: int = 300) -> Optional[str]:
    """
    Build a highlighted excerpt around the first matched term.

    Matched terms are wrapped in ``**``. The source window is cut to
    max_length characters with ellipses marking the cuts.

    Args:
        text: Source text
        terms: Terms to highlight (matched case-insensitively)
        max_length: Maximum characters of source text in the excerpt

    Returns:
        Excerpt, or None if text is empty
    """
    if not text:
        return None

    terms = sorted({t for t in terms if t and len(t) > 1}, key=len, reverse=True)
    pattern = (
        re.compile("|".join(re.escape(t) for t in terms), re.IGNORECASE) if terms else None
    )

    first = pattern.search(text) if pattern else None
    start = 0
    if first and len(text) > max_length:
        start = max(0, first.start() - max_length // 3)
    window = text[start : start + max_length]

    if pattern:
        window = pattern.sub(lambda m: f"**{m.group(0)}**", window)

    prefix = "..." if start > 0 else ""
    suffix = "..." if start + max_length < len(text) else ""
    return f"{prefix}{window.strip()}{suffix}"

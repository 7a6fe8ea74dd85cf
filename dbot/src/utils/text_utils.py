"""
D-BOT - Text Utilities
=======================
Helper functions for text cleaning, placeholder detection, event-name
normalisation, and query keyword extraction.

These utilities are consumed by the retriever, the dialogue heuristics
and the maintenance scripts, and should remain stateless and
side-effect-free.
"""

from __future__ import annotations

import re
import unicodedata
from typing import Any

# ── Non-printable character pattern ────────────────────────────────────
# Control characters (C0/C1) plus BOM, zero-width chars and soft hyphens
# that OCR output tends to carry.
_NON_PRINTABLE_RE = re.compile(r"[\x00-\x08\x0b\x0c\x0e-\x1f\x7f-\x9f\ufeff\u200b\u200c\u200d\u200e\u200f\u00ad\u2060\ufffe]")

_WHITESPACE_RE = re.compile(r"\s+")
_TOKEN_SPLIT_RE = re.compile(r"[\W_]+")
_NON_ALNUM_RE = re.compile(r"[^a-z0-9]")

PLACEHOLDER = "N/A"

# Words that never carry search intent on their own
STOP_WORDS: frozenset[str] = frozenset({
    "show", "me", "any", "event", "events", "of", "in", "for", "the", "a", "an",
    "find", "search", "about", "is", "are", "which", "what", "when", "where",
    "and", "with", "there", "please", "can", "you", "give", "tell", "list",
    "all", "some", "near", "upcoming", "happening", "this", "that", "from",
})


# ── Public API ─────────────────────────────────────────────────────────

def clean_text(text: str) -> str:
    """
    Normalise free text for matching and embedding.

    Steps:
        1. Unicode NFC normalisation.
        2. Strip non-printable / zero-width characters.
        3. Collapse every whitespace run (newlines included) to one space.
    """
    text = unicodedata.normalize("NFC", text)
    text = _NON_PRINTABLE_RE.sub("", text)
    return _WHITESPACE_RE.sub(" ", text).strip()


def is_placeholder(value: object) -> bool:
    """True for missing values, non-strings, blank strings and ``"N/A"``."""
    if not isinstance(value, str):
        return True
    stripped = value.strip()
    return not stripped or stripped == PLACEHOLDER


def detail(event: dict[str, Any], field: str) -> str | None:
    """
    Return a trimmed ``event_details`` field, or *None* when it is unknown.

    Examples::

        detail({"event_details": {"location": " Borcelle "}}, "location")  → "Borcelle"
        detail({"event_details": {"location": "N/A"}}, "location")         → None
        detail({}, "location")                                              → None
    """
    details = event.get("event_details") or {}
    value = details.get(field)
    if is_placeholder(value):
        return None
    return value.strip()


def normalize_name(name: str | None) -> str:
    """Lowercase and drop every non-alphanumeric character."""
    if not name:
        return ""
    return _NON_ALNUM_RE.sub("", name.lower())


def extract_keywords(query: str) -> list[str]:
    """
    Extract salient search terms from a free-text query.

    Lowercases, splits on whitespace and punctuation, drops tokens of
    length ≤ 2 and stop-words.  Order of first occurrence is kept and
    duplicates are removed.

    Examples::

        "Show me any music festival in Borcelle?" → ["music", "festival", "borcelle"]
        "the events"                              → []
    """
    tokens = _TOKEN_SPLIT_RE.split(clean_text(query).lower())
    keywords = (t for t in tokens if len(t) > 2 and t not in STOP_WORDS)
    return list(dict.fromkeys(keywords))

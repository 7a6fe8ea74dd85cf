"""
D-BOT - Hybrid Event Retrieval
===============================
Finds the events relevant to a fresh question.

Architecture (OOP)
------------------
``QualityScorer``
    Completeness heuristic (0–100) over an event's ``event_details``.
    Used both as a noise filter and as the ranking key.

``CandidateRetriever``
    Two independent strategies against the ``EventStore``:
        • vector  — Atlas ``$vectorSearch`` (needs a query vector)
        • keyword — case-insensitive regex OR across name / location /
          date / full text / OCR fragments
    A failing strategy yields zero candidates; the sibling is unaffected.

``ResultMerger``
    Union (vector first) → drop noise names → dedupe by id and normalised
    name → ordered quality tiers → stable sort by score → truncate.

``HybridRetriever``
    Runs both strategies concurrently and merges them.
"""

from __future__ import annotations

import asyncio
import re
import time
from collections.abc import Callable, Iterable, Sequence
from dataclasses import dataclass
from typing import Any

from dbot.config.settings import settings
from dbot.src.database.event_store import EventRecord, EventStore, MongoFilter
from dbot.src.utils.logger import get_logger
from dbot.src.utils.text_utils import detail, extract_keywords, normalize_name

logger = get_logger(__name__)

# ── Field weights (sum to 100) ────────────────────────────────────────
_FIELD_POINTS: tuple[tuple[str, int], ...] = (
    ("event_date", 25),
    ("location", 20),
    ("event_time", 10),
    ("organizer", 10),
    ("website", 5),
)
_NAME_POINTS = 30
_SHORT_NAME_PENALTY = 20

_ACRONYM_2_4 = re.compile(r"^[A-Z]{2,4}$")
_ACRONYM_2_3 = re.compile(r"^[A-Z]{2,3}$")
_WORD_3_PLUS = re.compile(r"^[a-z]{3,}$")

# Mongo fields searched per keyword / for the whole-phrase fallback
KEYWORD_FIELDS: tuple[str, ...] = ("event_details.event_name", "event_details.location", "event_details.event_date", "full_text", "raw_ocr.text")
PHRASE_FIELDS: tuple[str, ...] = ("event_details.event_name", "event_details.location", "event_details.event_date", "full_text")


def record_id(event: EventRecord) -> str:
    return str(event.get("_id", ""))


def event_name(event: EventRecord) -> str:
    """Trimmed raw event name, ``""`` when unknown."""
    return detail(event, "event_name") or ""


def regex_condition(field: str, text: str) -> dict[str, dict[str, str]]:
    """Case-insensitive literal match of *text* anywhere in *field*."""
    return {field: {"$regex": re.escape(text), "$options": "i"}}


# ══════════════════════════════════════════════════════════════════════
#  QUALITY SCORER
# ══════════════════════════════════════════════════════════════════════


class QualityScorer:
    """
    Additive completeness score over ``event_details``.

    ======================  =========================================  ======
    field                   condition                                  points
    ======================  =========================================  ======
    name                    length > 3 or 2–4 letter uppercase acronym  +30
    name                    length ≤ 3 and not 2–3 letter acronym      −20
    date                    known                                      +25
    location                known                                      +20
    time                    known                                      +10
    organizer               known                                      +10
    website                 known                                       +5
    ======================  =========================================  ======

    The total is clamped at 0.
    """

    __slots__ = ()

    def score(self, event: EventRecord) -> int:
        total = 0

        name = event_name(event)
        if name:
            if len(name) <= 3 and not _ACRONYM_2_3.match(name):
                total -= _SHORT_NAME_PENALTY
            if len(name) > 3 or _ACRONYM_2_4.match(name):
                total += _NAME_POINTS

        for field, points in _FIELD_POINTS:
            if detail(event, field):
                total += points

        return max(0, total)


# ══════════════════════════════════════════════════════════════════════
#  QUALITY TIERS
# ══════════════════════════════════════════════════════════════════════


def is_noise_name(name: str) -> bool:
    """
    Names of 3 characters or fewer unless they are a plain word of 3+
    letters ("THE", "Art").  Empty names count as noise.
    """
    name = name.strip().lower()
    return len(name) <= 3 and not _WORD_3_PLUS.match(name)


def strict_name(name: str) -> bool:
    """Longer than 3 characters, or a clean 2–3 letter uppercase acronym."""
    return len(name) > 3 or bool(_ACRONYM_2_3.match(name))


def relaxed_name(name: str) -> bool:
    """Anything longer than 2 characters."""
    return len(name) > 2


@dataclass(frozen=True)
class QualityTier:
    label: str
    min_score: int
    accepts_name: Callable[[str], bool]


# Applied in order; the first tier that keeps at least one record wins.
DEFAULT_TIERS: tuple[QualityTier, ...] = (
    QualityTier("strict", 50, strict_name),
    QualityTier("relaxed", 40, relaxed_name),
)


# ══════════════════════════════════════════════════════════════════════
#  RESULT MERGER
# ══════════════════════════════════════════════════════════════════════


class ResultMerger:
    """
    Merge candidate sets into one ranked, deduplicated source list.

    Parameters
    ----------
    scorer
        ``QualityScorer`` used for filtering and ranking.
    tiers
        Ordered ``QualityTier`` policy.  Defaults to strict (≥ 50) then
        relaxed (≥ 40).
    """

    __slots__ = ("_scorer", "_tiers")

    def __init__(self, scorer: QualityScorer | None = None, tiers: Sequence[QualityTier] = DEFAULT_TIERS) -> None:
        self._scorer = scorer or QualityScorer()
        self._tiers = tuple(tiers)


    def merge(self, *candidate_sets: Iterable[EventRecord], limit: int) -> list[EventRecord]:
        unique = self.dedupe(record for candidates in candidate_sets for record in candidates)
        if not unique:
            return []

        scored = [(self._scorer.score(record), record) for record in unique]
        for tier in self._tiers:
            kept = [(score, record) for score, record in scored if score >= tier.min_score and tier.accepts_name(event_name(record))]
            logger.debug("[MERGE] Tier '%s' (≥%d): %d/%d unique records kept.", tier.label, tier.min_score, len(kept), len(unique))
            if kept:
                kept.sort(key=lambda pair: pair[0], reverse=True)
                return [record for _, record in kept[:limit]]

        logger.info("[MERGE] No record passed any quality tier (%d unique).", len(unique))
        return []


    @staticmethod
    def dedupe(records: Iterable[EventRecord]) -> list[EventRecord]:
        """
        Drop repeated ids, noise names and repeated normalised names, keeping
        the first.  A dropped noise record never claims its name.
        """
        seen_ids: set[str] = set()
        seen_names: set[str] = set()
        unique: list[EventRecord] = []

        for record in records:
            rid = record_id(record)
            if rid in seen_ids:
                continue
            name = event_name(record)
            if is_noise_name(name):
                continue
            normalized = normalize_name(name)
            if normalized and normalized in seen_names:
                continue

            seen_ids.add(rid)
            if normalized:
                seen_names.add(normalized)
            unique.append(record)

        return unique


# ══════════════════════════════════════════════════════════════════════
#  CANDIDATE RETRIEVER
# ══════════════════════════════════════════════════════════════════════


class CandidateRetriever:
    """Raw candidate sets from the vector index and from keyword matching."""

    __slots__ = ("_store",)

    def __init__(self, store: EventStore) -> None:
        self._store = store


    async def vector_candidates(self, query_vector: list[float] | None, limit: int) -> list[EventRecord]:
        if not query_vector:
            return []
        try:
            results = await self._store.vector_search(query_vector, limit=limit * 2, num_candidates=settings.VECTOR_NUM_CANDIDATES)
        except Exception as exc:
            logger.warning("[RETRIEVE] Vector search failed (likely missing index) — ignoring vector results: %s", exc)
            return []
        logger.debug("[RETRIEVE] Vector search returned %d candidates.", len(results))
        return results


    async def keyword_candidates(self, query_text: str, limit: int) -> list[EventRecord]:
        query_text = query_text.strip()
        if not query_text:
            return []

        query = self.keyword_filter(query_text)
        try:
            results = await self._store.find(query, limit=limit * 2)
        except Exception as exc:
            logger.warning("[RETRIEVE] Keyword search failed — ignoring keyword results: %s", exc)
            return []
        logger.debug("[RETRIEVE] Keyword search returned %d candidates.", len(results))
        return results


    @staticmethod
    def keyword_filter(query_text: str) -> MongoFilter:
        """
        Build the keyword ``$or`` filter.

        Every extracted keyword is matched against every keyword field
        (broad OR).  With no keyword left, the whole phrase is matched
        against name, location, date and full text instead.
        """
        keywords = extract_keywords(query_text)
        if keywords:
            logger.info("[RETRIEVE] Keywords: %s", keywords)
            return {"$or": [regex_condition(field, kw) for kw in keywords for field in KEYWORD_FIELDS]}

        logger.info("[RETRIEVE] No keywords — whole-phrase match for '%s'.", query_text[:60])
        return {"$or": [regex_condition(field, query_text) for field in PHRASE_FIELDS]}


# ══════════════════════════════════════════════════════════════════════
#  HYBRID RETRIEVER
# ══════════════════════════════════════════════════════════════════════


class HybridRetriever:
    """Vector + keyword retrieval merged into ranked sources."""

    __slots__ = ("_candidates", "_merger")

    def __init__(self, store: EventStore, merger: ResultMerger | None = None) -> None:
        self._candidates = CandidateRetriever(store)
        self._merger = merger or ResultMerger()


    async def retrieve(self, query_text: str, query_vector: list[float] | None, limit: int | None = None) -> list[EventRecord]:
        limit = limit or settings.SEARCH_RESULTS_LIMIT
        t_start = time.perf_counter()

        vector_results, keyword_results = await asyncio.gather(
            self._candidates.vector_candidates(query_vector, limit),
            self._candidates.keyword_candidates(query_text, limit),
        )
        ranked = self._merger.merge(vector_results, keyword_results, limit=limit)

        elapsed_ms = (time.perf_counter() - t_start) * 1000
        logger.info("[RETRIEVE] vector=%d keyword=%d → %d ranked in %.1fms", len(vector_results), len(keyword_results), len(ranked), elapsed_ms)
        return ranked


def source_card(event: EventRecord) -> dict[str, Any]:
    """Compact public view of an event: id, name, date and location."""
    return {"id": record_id(event), "name": event_name(event), "date": detail(event, "event_date"), "location": detail(event, "location")}

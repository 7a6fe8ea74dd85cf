"""
D-BOT - RAG Engine
===================
Orchestrates a chat turn about events: fixed intents, follow-up
detection, hybrid retrieval, context assembly, generation, and layered
fallbacks.

Architecture (OOP)
------------------
``EventRAGManager``
    Stateless pipeline orchestrator.  Flow:
        1. Name gate        → anonymous first message: ask for a name
        2. Name capture     → reply to the name request: acknowledge
        3. Fixed intents    → greeting / list events / help
        4. Follow-up check  → skip retrieval, rely on history
        5. Fresh query      → embed (best effort) → hybrid retrieve
        6. Build context    → event blocks + recent turns + name hint
        7. Generate         → remote chat call with bounded timeout
        8. Gen. failure     → history extraction / itemized summary / "nothing found"
        9. Outer net        → salvaged sources, else standard search

Conversation state lives only in the caller-supplied history; nothing is
stored between requests, so one manager can serve concurrent requests.

Usage:
    from dbot.src.core.rag_engine import EventRAGManager
    rag = EventRAGManager(EventStore())
    result = await rag.get_chat_response("any jazz nights?", history=[])
"""

from __future__ import annotations

import asyncio
import time
from collections.abc import Sequence
from typing import Any

from dbot.config.prompt_templates import EVENT_BLOCK_TEMPLATE, FOLLOW_UP_TROUBLE_RESPONSE, FOUND_EVENTS_RESPONSE, GENERIC_ERROR_RESPONSE, GREETING_RESPONSE, HELP_RESPONSE, HISTORY_FOOTER, HISTORY_HEADER, LATEST_EVENTS_RESPONSE, LIST_EVENTS_RESPONSE, NAME_ACK_TEMPLATE, NAME_REQUEST, NO_EVENTS_CONTEXT, NO_EVENTS_RESPONSE, STANDARD_SEARCH_EMPTY, STANDARD_SEARCH_FOUND, SUMMARY_HEADER, SUMMARY_MORE, SYSTEM_PROMPT, USER_NAME_HINT
from dbot.config.settings import AIConfig, settings
from dbot.src.core.dialogue import ChatMessage, FollowUpClassifier, HistoryAnswerExtractor, IntentClassifier, IntentKind, extract_user_name, is_name_response, is_user, prior_turns, should_ask_for_name, user_name_from_history
from dbot.src.core.retriever import HybridRetriever, event_name, regex_condition
from dbot.src.database.event_store import EventRecord, EventStore
from dbot.src.llm.clients import ChatGenerator, Embedder, build_chat_client, build_embedder
from dbot.src.utils.logger import get_logger
from dbot.src.utils.text_utils import detail

logger = get_logger(__name__)

# ── Type aliases ───────────────────────────────────────────────────────
ChatResponse = dict[str, Any]
Identity = dict[str, str]

_STANDARD_SEARCH_FIELDS: tuple[str, ...] = ("event_details.event_name", "event_details.location", "full_text")


def _plural(count: int) -> str:
    return "event" if count == 1 else "events"


def _response(answer: str, sources: Sequence[EventRecord] | None = None) -> ChatResponse:
    return {"answer": answer, "sources": list(sources or [])}


class EventRAGManager:
    """
    Orchestrates the event chat pipeline.

    Parameters
    ----------
    store
        ``EventStore`` used for retrieval, listing and standard search.
    config
        Explicit AI configuration.  Defaults to ``AIConfig.from_settings(settings)``.
    chat_client
        Optional ``ChatGenerator``; built from *config* when omitted.
    embedder
        Optional ``Embedder``; built from *config* when omitted.
    """

    __slots__ = ("_store", "_config", "_chat", "_embedder", "_retriever", "_intents", "_follow_up", "_extractor")

    def __init__(self, store: EventStore, config: AIConfig | None = None, chat_client: ChatGenerator | None = None, embedder: Embedder | None = None, retriever: HybridRetriever | None = None) -> None:
        self._store = store
        self._config = config or AIConfig.from_settings(settings)
        self._chat = chat_client or build_chat_client(self._config)
        self._embedder = embedder or build_embedder(self._config)
        self._retriever = retriever or HybridRetriever(store)
        self._intents = IntentClassifier()
        self._follow_up = FollowUpClassifier(window=settings.FOLLOW_UP_WINDOW)
        self._extractor = HistoryAnswerExtractor()


    async def get_chat_response(self, question: str, history: Sequence[ChatMessage] | None = None, identity: Identity | None = None) -> ChatResponse:
        """
        Answer one chat turn.  Never raises: every failure degrades to a
        natural-language answer plus whatever sources could be salvaged.
        """
        t_start = time.perf_counter()
        sources: list[EventRecord] = []

        try:
            turns = prior_turns(question, history or [])
            anonymous = not identity

            # ── 1. Name gate ──────────────────────────────────────────
            if anonymous and should_ask_for_name(turns):
                logger.info("[CHAT] First message from anonymous user — asking for a name.")
                return _response(NAME_REQUEST)

            # ── 2. Name capture ───────────────────────────────────────
            if anonymous and is_name_response(turns):
                name = extract_user_name(question)
                if name:
                    return _response(NAME_ACK_TEMPLATE.format(name=name))

            # ── 3. Fixed intents ──────────────────────────────────────
            intent_result = await self._handle_intent(question)
            if intent_result is not None:
                return intent_result

            user_name = self._user_name(identity, turns)

            # ── 4. Follow-up vs. fresh query ──────────────────────────
            is_follow_up = bool(turns) and self._follow_up.is_follow_up(question, turns)

            if is_follow_up:
                logger.info("[CHAT] Follow-up question — using conversation context only.")
            else:
                # ── 5. Embed + retrieve ───────────────────────────────
                query_vector = await self._embed(question)
                sources = await self._retriever.retrieve(question, query_vector, limit=settings.SEARCH_RESULTS_LIMIT)

            # ── 6. Context assembly ───────────────────────────────────
            instruction = self.build_instruction(sources, turns, user_name)

            # ── 7. Generation ─────────────────────────────────────────
            t_llm = time.perf_counter()
            try:
                result = await asyncio.wait_for(self._chat.generate(instruction, question, temperature=self._config.temperature, max_tokens=self._config.max_tokens), timeout=self._config.timeout_seconds)
            except Exception as exc:
                logger.warning("[CHAT] Generation failed (%s) — using fallback.", str(exc) or type(exc).__name__)
                return self._generation_fallback(question, turns, sources, is_follow_up)

            if not result.success:
                logger.warning("[CHAT] Provider '%s' reported failure — using fallback.", result.provider)
                return self._generation_fallback(question, turns, sources, is_follow_up)

            llm_ms = (time.perf_counter() - t_llm) * 1000
            total_ms = (time.perf_counter() - t_start) * 1000
            logger.info("[CHAT] Answer from '%s' (%d chars, llm=%.1fms, total=%.1fms)", result.provider, len(result.text), llm_ms, total_ms)
            return _response(result.text, [] if is_follow_up else sources)

        # ── 9. Outer failure net ──────────────────────────────────────
        except Exception:
            logger.exception("[CHAT] Unexpected error while answering.")
            if sources:
                return _response(FOUND_EVENTS_RESPONSE.format(count=len(sources), noun=_plural(len(sources))), sources)
            try:
                return await self.perform_standard_search(question)
            except Exception:
                logger.exception("[CHAT] Standard search fallback failed as well.")
                return _response(GENERIC_ERROR_RESPONSE)


    async def perform_standard_search(self, query: str) -> ChatResponse:
        """
        Plain keyword search without AI: case-insensitive phrase match on
        name, location and full text.  Store errors propagate.
        """
        logger.info("[SEARCH] Standard search for '%s'", query[:80])
        mongo_filter = {"$or": [regex_condition(field, query.strip()) for field in _STANDARD_SEARCH_FIELDS]}
        results = await self._store.find(mongo_filter, limit=settings.STANDARD_SEARCH_LIMIT)

        template = STANDARD_SEARCH_FOUND if results else STANDARD_SEARCH_EMPTY
        return _response(template.format(count=len(results), query=query), results)

    # ══════════════════════════════════════════════════════════════════
    #  PIPELINE STEPS
    # ══════════════════════════════════════════════════════════════════

    async def _handle_intent(self, question: str) -> ChatResponse | None:
        intent = self._intents.classify(question)
        if intent is None:
            return None

        logger.info("[CHAT] Fixed intent matched: %s", intent.value)
        if intent is IntentKind.GREETING:
            return _response(GREETING_RESPONSE)
        if intent is IntentKind.HELP:
            return _response(HELP_RESPONSE)

        latest = self._intents.wants_latest(question)
        events = await self._store.list_events(limit=settings.LIST_EVENTS_LIMIT, latest=latest)
        template = LATEST_EVENTS_RESPONSE if latest else LIST_EVENTS_RESPONSE
        return _response(template.format(count=len(events)), events)


    async def _embed(self, question: str) -> list[float] | None:
        """Best-effort query embedding; any failure means "no vector"."""
        t_embed = time.perf_counter()
        try:
            vector = await asyncio.wait_for(self._embedder.aembed_query(question), timeout=self._config.timeout_seconds)
        except Exception as exc:
            logger.warning("[CHAT] Embedding unavailable — keyword search only: %s", str(exc) or type(exc).__name__)
            return None
        logger.debug("[CHAT] Query embedded (%d dims) in %.1fms", len(vector), (time.perf_counter() - t_embed) * 1000)
        return vector or None


    @staticmethod
    def _user_name(identity: Identity | None, turns: Sequence[ChatMessage]) -> str | None:
        if identity:
            name = identity.get("display_name") or identity.get("displayName")
            if name:
                return name
        return user_name_from_history(turns)


    def _generation_fallback(self, question: str, turns: Sequence[ChatMessage], sources: Sequence[EventRecord], is_follow_up: bool) -> ChatResponse:
        if is_follow_up:
            extracted = self._extractor.extract(question, turns)
            if extracted:
                return _response(extracted)
            return _response(FOLLOW_UP_TROUBLE_RESPONSE)

        if sources:
            return _response(self.summarize_sources(sources), sources)
        return _response(NO_EVENTS_RESPONSE)

    # ══════════════════════════════════════════════════════════════════
    #  FORMATTING
    # ══════════════════════════════════════════════════════════════════

    @staticmethod
    def format_events_context(events: Sequence[EventRecord]) -> str:
        """Numbered event blocks; full text is cut to ``CONTEXT_TEXT_CHARS``."""
        if not events:
            return NO_EVENTS_CONTEXT

        budget = settings.CONTEXT_TEXT_CHARS
        blocks: list[str] = []
        for i, event in enumerate(events, 1):
            full_text = event.get("full_text") or ""
            if len(full_text) > budget:
                full_text = full_text[:budget] + "..."
            blocks.append(EVENT_BLOCK_TEMPLATE.format(
                index=i,
                name=detail(event, "event_name") or "N/A",
                organizer=detail(event, "organizer") or "N/A",
                date=detail(event, "event_date") or "N/A",
                time=detail(event, "event_time") or "N/A",
                location=detail(event, "location") or "N/A",
                entry_type=detail(event, "entry_type") or "N/A",
                website=detail(event, "website") or "N/A",
                full_text=full_text or "N/A",
            ))
        return "\n\n".join(blocks)


    @staticmethod
    def format_history(turns: Sequence[ChatMessage]) -> str:
        """The last ``HISTORY_WINDOW`` turns as a delimited transcript."""
        if not turns:
            return ""
        lines = [f"{'User' if is_user(m) else 'D-Bot'}: {m['content']}" for m in turns[-settings.HISTORY_WINDOW:]]
        return "\n".join([HISTORY_HEADER, *lines, HISTORY_FOOTER])


    def build_instruction(self, sources: Sequence[EventRecord], turns: Sequence[ChatMessage], user_name: str | None) -> str:
        parts = [SYSTEM_PROMPT.format(events_context=self.format_events_context(sources))]
        history_block = self.format_history(turns)
        if history_block:
            parts.append(history_block)
        if user_name:
            parts.append(USER_NAME_HINT.format(name=user_name))
        return "\n\n".join(parts)


    @staticmethod
    def summarize_sources(sources: Sequence[EventRecord]) -> str:
        """Terse itemized answer used when generation is down."""
        top = settings.SUMMARY_ITEMS
        lines: list[str] = []
        for i, event in enumerate(sources[:top], 1):
            line = f"{i}. {event_name(event) or 'Event'}"
            date, time_, location = detail(event, "event_date"), detail(event, "event_time"), detail(event, "location")
            if date:
                line += f" on {date}"
            if time_:
                line += f" at {time_}"
            if location:
                line += f" at {location}"
            lines.append(line)

        count = len(sources)
        answer = SUMMARY_HEADER.format(count=count, noun=_plural(count)) + "\n\n" + "\n".join(lines)
        remaining = count - top
        if remaining > 0:
            answer += "\n\n" + SUMMARY_MORE.format(count=remaining, noun=_plural(remaining))
        return answer

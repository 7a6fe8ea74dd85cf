import asyncio

import pytest

from conftest import FakeChat, FakeEmbedder, FakeEventStore
from dbot.config.prompt_templates import FOLLOW_UP_TROUBLE_RESPONSE, GENERIC_ERROR_RESPONSE, HELP_RESPONSE, NAME_REQUEST, NO_EVENTS_CONTEXT, NO_EVENTS_RESPONSE
from dbot.src.core.rag_engine import EventRAGManager
from dbot.src.llm.clients import EmbeddingError, GenerationError


def _manager(store, ai_config, chat=None, embedder=None, **kwargs):
    return EventRAGManager(store, config=ai_config, chat_client=chat or FakeChat(), embedder=embedder or FakeEmbedder(), **kwargs)


class SlowChat(FakeChat):
    async def generate(self, instruction, text, temperature, max_tokens):
        await asyncio.sleep(5)


class BrokenRetriever:
    async def retrieve(self, query_text, query_vector, limit=None):
        raise RuntimeError("retriever exploded")


class MalformedChat(FakeChat):
    async def generate(self, instruction, text, temperature, max_tokens):
        return object()


# ── Fixed intents ─────────────────────────────────────────────────────

@pytest.mark.asyncio
async def test_list_all_events_uses_unfiltered_find(sample_events, ai_config):
    store, chat, embedder = FakeEventStore(events=sample_events), FakeChat(), FakeEmbedder()
    result = await _manager(store, ai_config, chat, embedder).get_chat_response("all events", history=[])

    assert store.find_calls == [{"query": {}, "limit": 50, "sort": None}]
    assert result["sources"] == sample_events
    assert "4 events" in result["answer"]
    assert chat.calls == [] and embedder.calls == [] and store.vector_calls == []


@pytest.mark.asyncio
async def test_latest_events_sorted_newest_first(sample_events, ai_config):
    store = FakeEventStore(events=sample_events)
    await _manager(store, ai_config).get_chat_response("latest events", history=[])
    assert store.find_calls[0]["sort"] == [("_id", -1)]


@pytest.mark.asyncio
async def test_help_intent(ai_config):
    store, chat = FakeEventStore(), FakeChat()
    result = await _manager(store, ai_config, chat).get_chat_response("what can you do?")
    assert result == {"answer": HELP_RESPONSE, "sources": []}
    assert store.find_calls == [] and chat.calls == []


# ── Fresh questions ───────────────────────────────────────────────────

@pytest.mark.asyncio
async def test_fresh_question_with_embedding_down(sample_events, ai_config):
    store = FakeEventStore(events=sample_events)
    chat = FakeChat(text="The Borcelle Music Festival sounds perfect! 🎵")
    embedder = FakeEmbedder(error=EmbeddingError("service down"))

    result = await _manager(store, ai_config, chat, embedder).get_chat_response("music festival in Borcelle", history=[])

    assert store.vector_calls == []
    patterns = {next(iter(cond.values()))["$regex"] for cond in store.find_calls[0]["query"]["$or"]}
    assert patterns == {"music", "festival", "borcelle"}

    assert len(chat.calls) == 1
    call = chat.calls[0]
    assert call["text"] == "music festival in Borcelle"
    assert call["temperature"] == 0.2 and call["max_tokens"] == 1500
    assert "Borcelle Music Festival" in call["instruction"]
    assert "Live music all day." in call["instruction"]

    assert result["answer"] == chat.text
    assert [e["_id"] for e in result["sources"]] == ["e1", "e2", "e4", "e3"]


@pytest.mark.asyncio
async def test_query_vector_reaches_vector_search(sample_events, ai_config):
    store = FakeEventStore(vector_results=sample_events[:1])
    await _manager(store, ai_config, embedder=FakeEmbedder(vector=[0.5, 0.5])).get_chat_response("jazz nights")
    assert store.vector_calls[0]["vector"] == [0.5, 0.5]


@pytest.mark.asyncio
async def test_generation_failure_summarizes_sources(sample_events, ai_config):
    store = FakeEventStore(events=sample_events[:2])
    chat = FakeChat(error=GenerationError("Gateway HTTP 500", "google", 500))

    result = await _manager(store, ai_config, chat).get_chat_response("jazz or music", history=[])

    assert result["answer"].startswith("I found 2 events related to your search! 📅")
    assert "1. Borcelle Music Festival on March 3rd at 10am to 2pm at Borcelle Park" in result["answer"]
    assert "2. Jazz Night on March 10th at 8pm at Elements Cafe" in result["answer"]
    assert "more" not in result["answer"]
    assert len(result["sources"]) == 2


@pytest.mark.asyncio
async def test_summary_mentions_remaining_events(sample_events, ai_config):
    store = FakeEventStore(events=sample_events)
    result = await _manager(store, ai_config, FakeChat(error=GenerationError("down"))).get_chat_response("festival")
    assert result["answer"].endswith("...and 1 more event!")
    assert len(result["sources"]) == 4


@pytest.mark.asyncio
async def test_generation_timeout_uses_fallback(sample_events, ai_config):
    config = ai_config.model_copy(update={"timeout_seconds": 0.05})
    store = FakeEventStore(events=sample_events[:1])
    result = await _manager(store, config, SlowChat()).get_chat_response("festival")
    assert result["answer"].startswith("I found 1 event related to your search!")


@pytest.mark.asyncio
async def test_generation_failure_without_sources(ai_config):
    result = await _manager(FakeEventStore(), ai_config, FakeChat(error=GenerationError("down"))).get_chat_response("underwater chess")
    assert result == {"answer": NO_EVENTS_RESPONSE, "sources": []}


# ── Follow-ups ────────────────────────────────────────────────────────

JAZZ_HISTORY = [
    {"role": "user", "content": "any jazz events?"},
    {"role": "assistant", "content": "Jazz Night runs 10am to 2pm at Elements Cafe."},
]


@pytest.mark.asyncio
async def test_follow_up_answered_from_history_when_generation_down(sample_events, ai_config):
    store = FakeEventStore(events=sample_events)
    chat = FakeChat(error=GenerationError("down"))

    result = await _manager(store, ai_config, chat).get_chat_response("what time?", history=JAZZ_HISTORY)

    assert "10am to 2pm" in result["answer"]
    assert result["sources"] == []
    assert store.find_calls == [] and store.vector_calls == []


@pytest.mark.asyncio
async def test_follow_up_without_extractable_answer(ai_config):
    chat = FakeChat(error=GenerationError("down"))
    result = await _manager(FakeEventStore(), ai_config, chat).get_chat_response("how much is it?", history=JAZZ_HISTORY)
    assert result == {"answer": FOLLOW_UP_TROUBLE_RESPONSE, "sources": []}


@pytest.mark.asyncio
async def test_follow_up_generation_includes_history(ai_config):
    chat = FakeChat(text="It starts at 10am! ⏰")
    result = await _manager(FakeEventStore(), ai_config, chat).get_chat_response("what time?", history=[*JAZZ_HISTORY, {"role": "user", "content": "what time?"}])

    instruction = chat.calls[0]["instruction"]
    assert "=== Previous Conversation ===" in instruction
    assert "User: any jazz events?" in instruction
    assert "D-Bot: Jazz Night runs 10am to 2pm at Elements Cafe." in instruction
    assert "User: what time?" not in instruction
    assert NO_EVENTS_CONTEXT in instruction
    assert result == {"answer": "It starts at 10am! ⏰", "sources": []}


# ── Name flow ─────────────────────────────────────────────────────────

GREETING_HISTORY = [{"role": "assistant", "content": "Hi! I'm D-BOT, your event buddy."}]


@pytest.mark.asyncio
async def test_anonymous_first_message_asks_for_name(ai_config):
    chat = FakeChat()
    result = await _manager(FakeEventStore(), ai_config, chat).get_chat_response("any jazz?", history=GREETING_HISTORY)
    assert result == {"answer": NAME_REQUEST, "sources": []}
    assert chat.calls == []


@pytest.mark.asyncio
async def test_name_reply_is_acknowledged(ai_config):
    history = [*GREETING_HISTORY, {"role": "assistant", "content": NAME_REQUEST}]
    result = await _manager(FakeEventStore(), ai_config).get_chat_response("My name is Priya.", history=history)
    assert result["answer"].startswith("Nice to meet you, Priya!")
    assert result["sources"] == []


@pytest.mark.asyncio
async def test_known_identity_skips_name_gate_and_personalizes(sample_events, ai_config):
    chat = FakeChat()
    store = FakeEventStore(events=sample_events)
    await _manager(store, ai_config, chat).get_chat_response("any jazz?", history=GREETING_HISTORY, identity={"display_name": "Priya"})
    assert "The user's name is Priya" in chat.calls[0]["instruction"]


# ── Outer failure net ─────────────────────────────────────────────────

@pytest.mark.asyncio
async def test_unexpected_error_falls_back_to_standard_search(sample_events, ai_config):
    store = FakeEventStore(events=sample_events)
    result = await _manager(store, ai_config, retriever=BrokenRetriever()).get_chat_response("jazz")
    assert result["answer"] == 'Found 4 events matching "jazz".'
    assert len(result["sources"]) == 4


@pytest.mark.asyncio
async def test_unexpected_error_after_retrieval_returns_salvaged_sources(sample_events, ai_config):
    store = FakeEventStore(events=sample_events[:2])
    result = await _manager(store, ai_config, MalformedChat()).get_chat_response("jazz")
    assert result["answer"].startswith("I found 2 events related to your search!")
    assert len(result["sources"]) == 2


@pytest.mark.asyncio
async def test_everything_down_returns_generic_apology(ai_config):
    store = FakeEventStore(find_error=RuntimeError("db down"))
    result = await _manager(store, ai_config).get_chat_response("all events")
    assert result == {"answer": GENERIC_ERROR_RESPONSE, "sources": []}


# ── Standard search ───────────────────────────────────────────────────

@pytest.mark.asyncio
async def test_standard_search(sample_events, ai_config):
    store = FakeEventStore(events=sample_events)
    result = await _manager(store, ai_config).perform_standard_search("jazz")

    call = store.find_calls[0]
    assert call["limit"] == 50
    assert call["query"] == {"$or": [
        {"event_details.event_name": {"$regex": "jazz", "$options": "i"}},
        {"event_details.location": {"$regex": "jazz", "$options": "i"}},
        {"full_text": {"$regex": "jazz", "$options": "i"}},
    ]}
    assert result["answer"] == 'Found 4 events matching "jazz".'


@pytest.mark.asyncio
async def test_standard_search_empty(ai_config):
    result = await _manager(FakeEventStore(), ai_config).perform_standard_search("zzz")
    assert result == {"answer": 'No events found matching "zzz".', "sources": []}


@pytest.mark.asyncio
async def test_standard_search_propagates_store_errors(ai_config):
    with pytest.raises(RuntimeError):
        await _manager(FakeEventStore(find_error=RuntimeError("db down")), ai_config).perform_standard_search("jazz")


# ── Formatting ────────────────────────────────────────────────────────

def test_events_context_truncates_full_text(make_event):
    context = EventRAGManager.format_events_context([make_event("1", name="Long Read", full_text="x" * 600)])
    assert "x" * 500 + "..." in context
    assert "x" * 501 not in context
    assert "Event 1:" in context and "- Date: N/A" in context


def test_events_context_empty():
    assert EventRAGManager.format_events_context([]) == NO_EVENTS_CONTEXT


def test_history_window_keeps_last_ten_turns():
    turns = [{"role": "user" if i % 2 == 0 else "assistant", "content": f"turn {i}"} for i in range(12)]
    block = EventRAGManager.format_history(turns)
    assert "turn 1\n" not in block and "User: turn 2" in block and "D-Bot: turn 11" in block
    assert EventRAGManager.format_history([]) == ""


@pytest.mark.asyncio
async def test_null_role_in_history_still_generates(sample_events, ai_config):
    chat = FakeChat(text="Jazz Night it is! 🎷")
    history = [{"role": None, "content": "hi"}, {"role": "user", "content": "hello"}]
    result = await _manager(FakeEventStore(events=sample_events), ai_config, chat).get_chat_response("jazz or music", history=history)

    assert result["answer"] == chat.text
    assert len(chat.calls) == 1
    assert "D-Bot: hi" in chat.calls[0]["instruction"]

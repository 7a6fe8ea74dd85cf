import re

import pytest
from pymongo.errors import OperationFailure

from conftest import FakeEventStore
from dbot.src.core.retriever import KEYWORD_FIELDS, PHRASE_FIELDS, CandidateRetriever, HybridRetriever, source_card


def test_keyword_filter_ors_every_keyword_over_every_field():
    query = CandidateRetriever.keyword_filter("Show me any music festival in Borcelle?")
    conditions = query["$or"]
    assert len(conditions) == 3 * len(KEYWORD_FIELDS)
    assert conditions[0] == {"event_details.event_name": {"$regex": "music", "$options": "i"}}
    assert {"raw_ocr.text": {"$regex": "borcelle", "$options": "i"}} in conditions


def test_keyword_filter_falls_back_to_whole_phrase():
    query = CandidateRetriever.keyword_filter("the events")
    assert query == {"$or": [{field: {"$regex": re.escape("the events"), "$options": "i"}} for field in PHRASE_FIELDS]}


def test_keyword_filter_escapes_regex_metacharacters():
    query = CandidateRetriever.keyword_filter("c++ (meetup)")
    patterns = {next(iter(c.values()))["$regex"] for c in query["$or"]}
    assert "meetup" in patterns
    for pattern in patterns:
        re.compile(pattern)


@pytest.mark.asyncio
async def test_vector_failure_leaves_keyword_results_intact(sample_events):
    store = FakeEventStore(events=sample_events, vector_error=OperationFailure("index not found"))
    out = await HybridRetriever(store).retrieve("music festival", [0.1, 0.2], limit=10)
    assert len(store.vector_calls) == 1
    assert {e["_id"] for e in out} == {"e1", "e2", "e3", "e4"}


@pytest.mark.asyncio
async def test_keyword_failure_leaves_vector_results_intact(sample_events):
    store = FakeEventStore(vector_results=sample_events[:2], find_error=RuntimeError("db down"))
    out = await HybridRetriever(store).retrieve("jazz", [0.1], limit=10)
    assert [e["_id"] for e in out] == ["e1", "e2"]


@pytest.mark.asyncio
async def test_no_vector_skips_vector_search(sample_events):
    store = FakeEventStore(events=sample_events)
    await HybridRetriever(store).retrieve("jazz", None, limit=5)
    assert store.vector_calls == []
    assert store.find_calls[0]["limit"] == 10


@pytest.mark.asyncio
async def test_vector_search_over_fetches(sample_events):
    store = FakeEventStore(vector_results=sample_events)
    await HybridRetriever(store).retrieve("jazz", [0.5], limit=5)
    assert store.vector_calls[0]["limit"] == 10
    assert store.vector_calls[0]["num_candidates"] == 100


@pytest.mark.asyncio
async def test_vector_results_come_first_in_merge(make_event):
    from_vector = make_event("v", name="Jazz Night", date="May 1", location="Cafe")
    from_keyword = make_event("k", name="JAZZ NIGHT", date="May 1", location="Cafe", time="8pm", organizer="x")
    store = FakeEventStore(events=[from_keyword], vector_results=[from_vector])
    out = await HybridRetriever(store).retrieve("jazz", [0.1], limit=5)
    assert [e["_id"] for e in out] == ["v"]


def test_source_card(sample_events):
    assert source_card(sample_events[1]) == {"id": "e2", "name": "Jazz Night", "date": "March 10th", "location": "Elements Cafe"}

# tests/conftest.py
import os

# Required secrets must exist before the settings singleton is imported
os.environ.setdefault("MONGO_URI", "mongodb://localhost:27017")
os.environ.setdefault("AI_API_KEY", "test-key")
os.environ.setdefault("AI_BACKEND", "edenai")

import pytest  # noqa: E402

from dbot.config.settings import AIConfig, settings  # noqa: E402
from dbot.src.database.event_store import EventStore  # noqa: E402
from dbot.src.llm.clients import GenerationResult  # noqa: E402


def build_event(_id, name="N/A", date="N/A", location="N/A", time="N/A", organizer="N/A", website="N/A", entry_type="N/A", full_text="", raw_ocr=None):
    return {
        "_id": _id,
        "event_details": {
            "event_name": name, "event_date": date, "location": location, "event_time": time,
            "organizer": organizer, "website": website, "entry_type": entry_type,
        },
        "full_text": full_text,
        "raw_ocr": raw_ocr or [],
    }


class FakeEventStore(EventStore):
    """In-memory store that records every query it receives."""

    def __init__(self, events=None, vector_results=None, find_error=None, vector_error=None):
        self.events = list(events or [])
        self.vector_results = list(vector_results or [])
        self.find_error = find_error
        self.vector_error = vector_error
        self.find_calls = []
        self.vector_calls = []
        self.embeddings = {}

    async def find(self, query, limit, sort=None):
        self.find_calls.append({"query": query, "limit": limit, "sort": sort})
        if self.find_error:
            raise self.find_error
        return self.events[:limit]

    async def vector_search(self, query_vector, limit, num_candidates=None):
        self.vector_calls.append({"vector": query_vector, "limit": limit, "num_candidates": num_candidates})
        if self.vector_error:
            raise self.vector_error
        return self.vector_results[:limit]

    async def events_without_embedding(self, limit=None):
        missing = [e for e in self.events if "embedding" not in e]
        return missing[:limit] if limit else missing

    async def all_events(self):
        return list(self.events)

    async def set_embedding(self, event_id, embedding):
        self.embeddings[event_id] = embedding
        return True


class FakeEmbedder:
    def __init__(self, vector=None, error=None):
        self.vector = vector if vector is not None else [0.1, 0.2, 0.3]
        self.error = error
        self.calls = []

    async def aembed_query(self, text):
        self.calls.append(text)
        if self.error:
            raise self.error
        return list(self.vector)


class FakeChat:
    def __init__(self, text="Here is what I found! 🎉", error=None, provider="google"):
        self.text = text
        self.error = error
        self.provider = provider
        self.calls = []

    async def generate(self, instruction, text, temperature, max_tokens):
        self.calls.append({"instruction": instruction, "text": text, "temperature": temperature, "max_tokens": max_tokens})
        if self.error:
            raise self.error
        return GenerationResult(text=self.text, provider=self.provider)


@pytest.fixture
def make_event():
    return build_event


@pytest.fixture
def ai_config():
    return AIConfig.from_settings(settings, timeout_seconds=2.0)


@pytest.fixture
def sample_events():
    return [
        build_event("e1", name="Borcelle Music Festival", date="March 3rd", location="Borcelle Park", time="10am to 2pm", organizer="City Arts", website="borcelle.example", full_text="Live music all day."),
        build_event("e2", name="Jazz Night", date="March 10th", location="Elements Cafe", time="8pm", full_text="Smooth jazz evening."),
        build_event("e3", name="Art Walk", date="April 1st", location="Old Town"),
        build_event("e4", name="Food Fair", date="April 5th", location="Main Square", time="noon"),
    ]

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from conftest import FakeChat, FakeEmbedder, FakeEventStore
from dbot.src.api.routes import get_rag_manager, router
from dbot.src.core.rag_engine import EventRAGManager


@pytest.fixture
def store(sample_events):
    return FakeEventStore(events=sample_events)


@pytest.fixture
def client(store, ai_config):
    app = FastAPI()
    app.include_router(router)
    rag = EventRAGManager(store, config=ai_config, chat_client=FakeChat(text="Try Jazz Night! 🎷"), embedder=FakeEmbedder())
    app.dependency_overrides[get_rag_manager] = lambda: rag
    return TestClient(app)


def test_chat_returns_answer_and_source_cards(client):
    response = client.post("/api/ai/chat", json={"question": "jazz", "history": []})
    assert response.status_code == 200
    body = response.json()
    assert body["answer"] == "Try Jazz Night! 🎷"
    assert body["sources"][0] == {"id": "e1", "name": "Borcelle Music Festival", "date": "March 3rd", "location": "Borcelle Park"}


@pytest.mark.parametrize("payload", [{}, {"question": "   "}, {"question": 42}])
def test_chat_rejects_blank_question(client, payload):
    response = client.post("/api/ai/chat", json=payload)
    assert response.status_code == 400
    assert response.json()["detail"] == "Please provide a valid question string."


def test_search(client):
    response = client.post("/api/ai/search", json={"query": "jazz"})
    assert response.status_code == 200
    assert response.json()["answer"] == 'Found 4 events matching "jazz".'
    assert len(response.json()["sources"]) == 4


def test_search_rejects_blank_query(client):
    response = client.post("/api/ai/search", json={"query": ""})
    assert response.status_code == 400
    assert response.json()["detail"] == "Please provide a valid query string."


def test_search_store_failure_is_500(client, store):
    store.find_error = RuntimeError("db down")
    response = client.post("/api/ai/search", json={"query": "jazz"})
    assert response.status_code == 500
    assert "db down" in response.json()["detail"]

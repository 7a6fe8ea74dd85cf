"""
D-BOT - API Routes
===================
Thin HTTP controllers over ``EventRAGManager``.

    POST /api/ai/chat    → conversational answer + source cards
    POST /api/ai/search  → plain keyword search, no AI

Each handler validates its input, delegates to the engine held on
``app.state.rag`` and shapes the result with ``format_response``.  No
business logic or database calls live here.
"""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Depends, HTTPException, Request, status
from pydantic import BaseModel, Field

from dbot.src.core.rag_engine import ChatResponse, EventRAGManager
from dbot.src.core.retriever import source_card
from dbot.src.utils.logger import get_logger

logger = get_logger(__name__)

router = APIRouter(prefix="/api/ai", tags=["ai"])


# ── Request / Response models ─────────────────────────────────────────

class ChatRequest(BaseModel):
    question: Any = None
    history: list[dict[str, Any]] = Field(default_factory=list)
    identity: dict[str, Any] | None = None


class SearchRequest(BaseModel):
    query: Any = None


class SourceCard(BaseModel):
    id: str
    name: str = ""
    date: str | None = None
    location: str | None = None


class AnswerResponse(BaseModel):
    answer: str
    sources: list[SourceCard] = []


def get_rag_manager(request: Request) -> EventRAGManager:
    return request.app.state.rag


def format_response(result: ChatResponse) -> dict[str, Any]:
    """Engine result → public payload (full records become source cards)."""
    return {"answer": result.get("answer", ""), "sources": [source_card(event) for event in result.get("sources", [])]}


def _require_text(value: Any, label: str) -> str:
    if not isinstance(value, str) or not value.strip():
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=f"Please provide a valid {label} string.")
    return value.strip()


# ── Endpoints ─────────────────────────────────────────────────────────

@router.post("/chat", response_model=AnswerResponse)
async def chat(body: ChatRequest, rag: EventRAGManager = Depends(get_rag_manager)) -> dict[str, Any]:
    """Answer one chat turn.  Never fails once the question is valid."""
    question = _require_text(body.question, "question")
    result = await rag.get_chat_response(question, history=body.history, identity=body.identity)
    return format_response(result)


@router.post("/search", response_model=AnswerResponse)
async def search(body: SearchRequest, rag: EventRAGManager = Depends(get_rag_manager)) -> dict[str, Any]:
    """Keyword search over name, location and full text."""
    query = _require_text(body.query, "query")
    try:
        result = await rag.perform_standard_search(query)
    except Exception as exc:
        logger.exception("[SEARCH] Standard search failed.")
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=f"Search failed: {exc}") from exc
    return format_response(result)

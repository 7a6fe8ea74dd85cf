"""
D-BOT - AI Service Clients
===========================
Thin async adapters around the two remote AI services the engine needs:

``ChatGenerator``
    Instruction block + user text → generated text, tagged with the
    provider that answered.

``Embedder``
    Text → fixed-length float vector.

Two backends are provided:

* **edenai** — an Eden-AI-compatible HTTP gateway (``aiohttp``).  The
  gateway fans out to a named provider/model and reports per-provider
  status; the first provider entry with ``status == "success"`` wins.
* **gemini** — Google Gemini through LangChain
  (``ChatGoogleGenerativeAI`` / ``GoogleGenerativeAIEmbeddings``).

Every failure surfaces as a typed ``AIServiceError`` subclass.  No
client retries; the orchestrator decides the fallback.
"""

from __future__ import annotations

import asyncio
import json
from dataclasses import dataclass
from typing import Any, Protocol, runtime_checkable

import aiohttp

from dbot.config.settings import AIConfig
from dbot.src.utils.logger import get_logger

logger = get_logger(__name__)

GatewayPayload = dict[str, Any]


# ══════════════════════════════════════════════════════════════════════
#  ERRORS & RESULTS
# ══════════════════════════════════════════════════════════════════════


class AIServiceError(Exception):
    """Base class for remote AI service failures."""

    def __init__(self, message: str, provider: str | None = None, status: int | None = None) -> None:
        super().__init__(message)
        self.provider = provider
        self.status = status


class GenerationError(AIServiceError):
    """The generation service failed or returned no successful provider."""


class EmbeddingError(AIServiceError):
    """The embedding service failed or returned a malformed vector."""


@dataclass(frozen=True)
class GenerationResult:
    text: str
    provider: str
    success: bool = True


# ══════════════════════════════════════════════════════════════════════
#  PROTOCOLS
# ══════════════════════════════════════════════════════════════════════


@runtime_checkable
class ChatGenerator(Protocol):
    """Anything that can turn an instruction block + user text into prose."""

    async def generate(self, instruction: str, text: str, temperature: float, max_tokens: int) -> GenerationResult: ...


@runtime_checkable
class Embedder(Protocol):
    """Structural type shared with LangChain ``Embeddings``."""

    async def aembed_query(self, text: str) -> list[float]: ...


# ══════════════════════════════════════════════════════════════════════
#  GATEWAY (EDEN AI COMPATIBLE)
# ══════════════════════════════════════════════════════════════════════


def successful_provider(data: object) -> tuple[str, GatewayPayload] | None:
    """
    Return ``(provider, payload)`` for the first provider entry whose
    ``status`` is ``"success"``, or *None*.

    Example::

        {"google": {"status": "success", "generated_text": "Hi"}}
            → ("google", {"status": "success", "generated_text": "Hi"})
    """
    if not isinstance(data, dict):
        return None
    for provider, payload in data.items():
        if isinstance(payload, dict) and payload.get("status") == "success":
            return provider, payload
    return None


class _GatewayClient:
    """Shared HTTP plumbing for the gateway chat / embedding clients."""

    __slots__ = ("_config",)

    def __init__(self, config: AIConfig) -> None:
        self._config = config


    def _headers(self) -> dict[str, str]:
        return {"Authorization": f"Bearer {self._config.api_key.get_secret_value()}", "Content-Type": "application/json"}


    async def _post(self, path: str, body: dict[str, Any], error_cls: type[AIServiceError], provider: str) -> GatewayPayload:
        url = f"{self._config.base_url}{path}"
        timeout = aiohttp.ClientTimeout(total=self._config.timeout_seconds)
        try:
            async with aiohttp.ClientSession(headers=self._headers(), timeout=timeout) as session:
                async with session.post(url, json=body) as response:
                    raw = await response.text()
                    status = response.status
        except (aiohttp.ClientError, asyncio.TimeoutError, UnicodeDecodeError) as exc:
            raise error_cls(f"Gateway request to {path} failed: {str(exc) or type(exc).__name__}", provider) from exc

        if status >= 400:
            logger.error("[GATEWAY] %s → HTTP %d: %s", path, status, raw[:500])
            raise error_cls(f"Gateway HTTP {status}", provider, status)

        try:
            data = json.loads(raw) if raw else {}
        except json.JSONDecodeError as exc:
            raise error_cls(f"Gateway returned malformed JSON (HTTP {status}).", provider, status) from exc

        return data


class GatewayChatClient(_GatewayClient):
    """Chat completion through ``POST {base_url}/text/chat``."""

    __slots__ = ()

    async def generate(self, instruction: str, text: str, temperature: float, max_tokens: int) -> GenerationResult:
        provider = self._config.chat_provider
        body = {
            "providers": provider,
            "text": text,
            "chatbot_global_action": instruction,
            "temperature": temperature,
            "max_tokens": max_tokens,
            provider: self._config.chat_model,
        }
        data = await self._post("/text/chat", body, GenerationError, provider)

        found = successful_provider(data)
        if found is None:
            logger.warning("[GATEWAY] No successful provider in chat response: %s", str(data)[:500])
            raise GenerationError("No successful provider in gateway response.", provider)

        name, payload = found
        generated = payload.get("generated_text")
        if not isinstance(generated, str) or not generated.strip():
            raise GenerationError("Gateway returned an empty generation.", name)
        return GenerationResult(text=generated, provider=name)


class GatewayEmbedder(_GatewayClient):
    """Embeddings through ``POST {base_url}/text/embeddings``."""

    __slots__ = ()

    async def aembed_query(self, text: str) -> list[float]:
        provider = self._config.embedding_provider
        body = {"providers": provider, "texts": [text], provider: self._config.embedding_model}
        data = await self._post("/text/embeddings", body, EmbeddingError, provider)

        found = successful_provider(data)
        items = found[1].get("items") if found else None
        if not items or not isinstance(items, list) or not isinstance(items[0], dict):
            raise EmbeddingError(f"Invalid embedding format from gateway: {str(data)[:300]}", provider)

        vector = items[0].get("embedding")
        if not isinstance(vector, list) or not vector:
            raise EmbeddingError("Gateway embedding is empty.", provider)
        return [float(v) for v in vector]


# ══════════════════════════════════════════════════════════════════════
#  GEMINI (LANGCHAIN)
# ══════════════════════════════════════════════════════════════════════


class GeminiChatClient:
    """Direct Gemini generation via ``langchain_google_genai``."""

    __slots__ = ("_config", "_llm")

    def __init__(self, config: AIConfig) -> None:
        self._config = config
        self._llm = self._init_llm(config.temperature, config.max_tokens)
        logger.info("LLM initialised: %s (temperature=%.1f)", config.chat_model, config.temperature)


    def _init_llm(self, temperature: float, max_tokens: int) -> Any:
        from langchain_google_genai import ChatGoogleGenerativeAI

        return ChatGoogleGenerativeAI(model=self._config.chat_model, temperature=temperature, max_output_tokens=max_tokens, google_api_key=self._config.api_key.get_secret_value())


    async def generate(self, instruction: str, text: str, temperature: float, max_tokens: int) -> GenerationResult:
        from langchain_core.messages import HumanMessage, SystemMessage

        llm = self._llm
        if (temperature, max_tokens) != (self._config.temperature, self._config.max_tokens):
            llm = self._init_llm(temperature, max_tokens)

        try:
            response = await llm.ainvoke([SystemMessage(content=instruction), HumanMessage(content=text)])
        except Exception as exc:
            raise GenerationError(f"Gemini call failed: {exc}", "google") from exc

        answer = response.content if hasattr(response, "content") else str(response)
        if not isinstance(answer, str) or not answer.strip():
            raise GenerationError("Gemini returned an empty generation.", "google")
        return GenerationResult(text=answer, provider="google")


def _gemini_embedder(config: AIConfig) -> Embedder:
    from langchain_google_genai import GoogleGenerativeAIEmbeddings

    return GoogleGenerativeAIEmbeddings(model=config.embedding_model, google_api_key=config.api_key.get_secret_value())


# ══════════════════════════════════════════════════════════════════════
#  FACTORIES
# ══════════════════════════════════════════════════════════════════════


def build_chat_client(config: AIConfig) -> ChatGenerator:
    """Return the generation client for ``config.backend``."""
    if config.backend == "gemini":
        return GeminiChatClient(config)
    logger.info("Chat via gateway %s (provider=%s, model=%s)", config.base_url, config.chat_provider, config.chat_model)
    return GatewayChatClient(config)


def build_embedder(config: AIConfig) -> Embedder:
    """Return the embedding client for ``config.backend``."""
    if config.backend == "gemini":
        return _gemini_embedder(config)
    logger.info("Embeddings via gateway %s (provider=%s, model=%s)", config.base_url, config.embedding_provider, config.embedding_model)
    return GatewayEmbedder(config)

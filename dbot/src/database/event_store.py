"""
D-BOT - EventStore
===================
Async read-mostly wrapper around the MongoDB ``events`` collection,
backed by ``motor``.

Provides:
  • Filtered ``find`` with limit and optional sort (keyword search,
    event listing, standard search).
  • Atlas ``$vectorSearch`` aggregation over the ``embedding`` path.
  • Embedding backfill helpers used by the maintenance scripts.

Collection schema (``events``)::

    {
        "_id": ObjectId,
        "event_details": {
            "event_name": str, "organizer": str, "event_date": str,
            "event_time": str, "location": str, "entry_type": str,
            "website": str
        },
        "full_text": str,
        "raw_ocr": [{"text": str, ...}, ...],
        "embedding": [float, ...]
    }

Design decisions:
  • **Singleton client** — one ``AsyncIOMotorClient`` per process,
    created lazily and re-used across requests.
  • **Dependency Injection** — the collection can be injected, which
    keeps the retriever and orchestrator testable with in-memory fakes.
"""

from __future__ import annotations

from typing import Any

import motor.motor_asyncio

from dbot.config.settings import settings
from dbot.src.utils.logger import get_logger

logger = get_logger(__name__)

# ── Type Aliases ──────────────────────────────────────────────────────
EventRecord = dict[str, Any]
MongoFilter = dict[str, Any]

# Fields returned by vector search (the embedding itself is never shipped back)
_EVENT_PROJECTION: dict[str, int] = {"_id": 1, "event_details": 1, "full_text": 1, "raw_ocr": 1}


# ══════════════════════════════════════════════════════════════════════
#  MONGODB SINGLETON CLIENT
# ══════════════════════════════════════════════════════════════════════

_mongo_client: motor.motor_asyncio.AsyncIOMotorClient | None = None


def get_mongo_client() -> motor.motor_asyncio.AsyncIOMotorClient:
    """Return (or create) the module-level async MongoDB client."""
    global _mongo_client
    if _mongo_client is None:
        _mongo_client = motor.motor_asyncio.AsyncIOMotorClient(settings.MONGO_URI.get_secret_value())
        logger.info("MongoDB async client created (singleton).")
    return _mongo_client


def close_mongo_client() -> None:
    """Close the singleton client (application shutdown)."""
    global _mongo_client
    if _mongo_client is not None:
        _mongo_client.close()
        _mongo_client = None
        logger.info("MongoDB async client closed.")


# ══════════════════════════════════════════════════════════════════════
#  EVENT STORE
# ══════════════════════════════════════════════════════════════════════


class EventStore:
    """
    Async access to the ``events`` collection.

    Parameters
    ----------
    collection
        Optional pre-built motor collection.  Defaults to
        ``settings.MONGO_DB_NAME`` / ``settings.EVENTS_COLLECTION`` on the
        singleton client.
    """

    __slots__ = ("_collection",)

    def __init__(self, collection: motor.motor_asyncio.AsyncIOMotorCollection | None = None) -> None:
        if collection is None:
            client = get_mongo_client()
            collection = client[settings.MONGO_DB_NAME][settings.EVENTS_COLLECTION]
        self._collection = collection


    async def find(self, query: MongoFilter, limit: int, sort: list[tuple[str, int]] | None = None) -> list[EventRecord]:
        """Run a filtered find and return at most *limit* documents."""
        cursor = self._collection.find(query)
        if sort:
            cursor = cursor.sort(sort)
        cursor = cursor.limit(limit)
        return await cursor.to_list(length=limit)


    async def vector_search(self, query_vector: list[float], limit: int, num_candidates: int | None = None) -> list[EventRecord]:
        """
        Approximate nearest-neighbour search over the Atlas vector index.

        Only documents that carry an ``embedding`` are indexed, so the
        search is implicitly restricted to them.  Each returned record
        carries a ``score`` (``vectorSearchScore``).

        Raises
        ------
        pymongo.errors.OperationFailure
            If the index is not configured (callers treat this as zero results).
        """
        pipeline: list[dict[str, Any]] = [
            {
                "$vectorSearch": {
                    "index": settings.VECTOR_INDEX_NAME,
                    "path": settings.VECTOR_PATH,
                    "queryVector": query_vector,
                    "numCandidates": max(num_candidates or settings.VECTOR_NUM_CANDIDATES, limit),
                    "limit": limit,
                }
            },
            {"$project": {**_EVENT_PROJECTION, "score": {"$meta": "vectorSearchScore"}}},
        ]
        cursor = self._collection.aggregate(pipeline)
        return await cursor.to_list(length=limit)


    async def list_events(self, limit: int, latest: bool = False) -> list[EventRecord]:
        """Unfiltered listing; ``latest`` sorts by ``_id`` descending (newest first)."""
        sort = [("_id", -1)] if latest else None
        return await self.find({}, limit=limit, sort=sort)


    async def events_without_embedding(self, limit: int | None = None) -> list[EventRecord]:
        """Events still missing an ``embedding`` (backfill candidates)."""
        cursor = self._collection.find({settings.VECTOR_PATH: {"$exists": False}})
        if limit:
            cursor = cursor.limit(limit)
        return await cursor.to_list(length=limit)


    async def all_events(self) -> list[EventRecord]:
        """Every event without its embedding (audit use only)."""
        cursor = self._collection.find({}, {settings.VECTOR_PATH: 0})
        return await cursor.to_list(length=None)


    async def set_embedding(self, event_id: Any, embedding: list[float]) -> bool:
        """Store *embedding* on one event.  Returns True if a document was updated."""
        result = await self._collection.update_one({"_id": event_id}, {"$set": {settings.VECTOR_PATH: embedding}})
        return result.modified_count > 0


    def __repr__(self) -> str:
        return f"EventStore(db='{settings.MONGO_DB_NAME}', collection='{settings.EVENTS_COLLECTION}')"

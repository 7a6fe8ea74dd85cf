"""
D-BOT - Embedding Backfill Script
==================================
CLI entry point that gives every event without an ``embedding`` one, so
it becomes visible to the Atlas vector index:
    1. Load settings (fail-fast on a broken ``.env``).
    2. Build the embedder for the configured AI backend.
    3. Embed each event's searchable text and store the vector.
    4. Print a structured execution summary with timing breakdown.

A failing event is logged and skipped; the run continues.

Flags:
    --limit N    Process at most N events.
    --dry-run    List the events that would be embedded, write nothing.

Usage:
    python -m dbot.scripts.backfill_embeddings
    python -m dbot.scripts.backfill_embeddings --limit 20 --dry-run
"""

from __future__ import annotations

import argparse
import asyncio
import sys
import time
from pathlib import Path
from typing import Any

# ── Ensure project root is importable when run directly ────────────────
_PROJECT_ROOT = Path(__file__).resolve().parent.parent.parent
if str(_PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(_PROJECT_ROOT))

from dbot.src.utils.text_utils import clean_text, is_placeholder  # noqa: E402

_SEARCHABLE_DETAILS: tuple[str, ...] = ("event_name", "organizer", "event_date", "event_time", "location", "entry_type")

BackfillSummary = dict[str, int]


def build_searchable_text(event: dict[str, Any]) -> str:
    """
    Text embedded for an event: known details, then the full text, then
    every OCR fragment, space-joined.
    """
    details = event.get("event_details") or {}
    parts = [details.get(field) for field in _SEARCHABLE_DETAILS]
    parts.append(event.get("full_text"))
    parts.extend(fragment.get("text") for fragment in event.get("raw_ocr") or [] if isinstance(fragment, dict))
    return clean_text(" ".join(p for p in parts if not is_placeholder(p)))


async def run_backfill(store: Any, embedder: Any, limit: int | None = None, dry_run: bool = False) -> BackfillSummary:
    """Embed every event missing a vector.  Returns per-outcome counts."""
    from dbot.src.utils.logger import get_logger
    logger = get_logger(__name__)

    events = await store.events_without_embedding(limit=limit)
    summary: BackfillSummary = {"candidates": len(events), "embedded": 0, "skipped": 0, "failed": 0}
    logger.info("[BACKFILL] %d events without an embedding.", len(events))

    for i, event in enumerate(events, 1):
        name = (event.get("event_details") or {}).get("event_name") or "Unknown"
        text = build_searchable_text(event)
        if not text:
            logger.warning("[BACKFILL] %d/%d '%s' has no searchable text — skipped.", i, len(events), name)
            summary["skipped"] += 1
            continue

        if dry_run:
            logger.info("[BACKFILL] %d/%d would embed '%s' (%d chars).", i, len(events), name, len(text))
            summary["skipped"] += 1
            continue

        try:
            vector = await embedder.aembed_query(text)
            await store.set_embedding(event["_id"], vector)
        except Exception as exc:
            logger.error("[BACKFILL] %d/%d '%s' failed: %s", i, len(events), name, exc)
            summary["failed"] += 1
            continue

        summary["embedded"] += 1
        logger.info("[BACKFILL] %d/%d embedded '%s' (%d dims).", i, len(events), name, len(vector))

    return summary


# ── CLI Argument Parsing ───────────────────────────────────────────────

def _parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(prog="backfill_embeddings", description="D-BOT — Embed events that have no vector yet.")
    parser.add_argument("--limit", type=int, default=None, help="Process at most N events.")
    parser.add_argument("--dry-run", action="store_true", default=False, help="Report what would be embedded without writing.")
    return parser.parse_args(argv)


# ── Main Orchestration ─────────────────────────────────────────────────

def main(argv: list[str] | None = None) -> None:
    args = _parse_args(argv)
    t_start = time.perf_counter()

    try:
        from dbot.config.settings import AIConfig, settings
    except Exception as exc:
        print("\n[FATAL] Configuration error — check your .env file:\n")
        print(f"  {exc}")
        print()
        sys.exit(1)

    from dbot.src.database.event_store import EventStore, close_mongo_client
    from dbot.src.llm.clients import build_embedder

    config = AIConfig.from_settings(settings)
    _print_header(settings, args)

    embedder = build_embedder(config)
    store = EventStore()
    startup_ms = (time.perf_counter() - t_start) * 1000

    try:
        summary = asyncio.run(run_backfill(store, embedder, limit=args.limit, dry_run=args.dry_run))
    finally:
        close_mongo_client()

    _print_footer(summary, startup_ms, time.perf_counter() - t_start)


# ── Pretty-print helpers ──────────────────────────────────────────────

def _print_header(settings: Any, args: argparse.Namespace) -> None:
    mongo_uri = settings.MONGO_URI.get_secret_value()
    mongo_masked = mongo_uri.split("@")[-1] if "@" in mongo_uri else mongo_uri

    print()
    print("=" * 60)
    print("  D-BOT — Embedding Backfill")
    print("=" * 60)
    print(f"  Environment  : {settings.ENV}")
    print(f"  Backend      : {settings.AI_BACKEND}")
    print(f"  Embedding    : {settings.EMBEDDING_PROVIDER}/{settings.EMBEDDING_MODEL}")
    print(f"  MongoDB      : {mongo_masked} (db: {settings.MONGO_DB_NAME})")
    print(f"  Limit        : {args.limit or 'none'}")
    print(f"  Dry run      : {args.dry_run}")
    print("=" * 60)
    print()


def _print_footer(summary: BackfillSummary, startup_ms: float, elapsed: float) -> None:
    print()
    print("=" * 60)
    print("  EXECUTION SUMMARY")
    print("-" * 60)
    print(f"  Events without vector: {summary['candidates']}")
    print(f"  Embedded             : {summary['embedded']}")
    print(f"  Skipped              : {summary['skipped']}")
    print(f"  Failed               : {summary['failed']}")
    print("-" * 60)
    print(f"  Startup time         : {startup_ms:>8.1f}ms")
    print(f"  Total elapsed        : {elapsed:>8.2f}s")
    print("=" * 60)
    print()


if __name__ == "__main__":
    main()

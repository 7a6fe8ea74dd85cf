"""
D-BOT - Event Audit Script
===========================
Read-only data-quality report over the ``events`` collection:
    • groups of events sharing a normalised name (likely duplicates)
    • events whose quality score falls below a threshold

These are the same records the result merger silently drops at query
time; the report makes them visible so they can be fixed at the source.

Usage:
    python -m dbot.scripts.audit_events
    python -m dbot.scripts.audit_events --threshold 40
"""

from __future__ import annotations

import argparse
import asyncio
import sys
import time
from collections import defaultdict
from collections.abc import Iterable
from pathlib import Path
from typing import Any

# ── Ensure project root is importable when run directly ────────────────
_PROJECT_ROOT = Path(__file__).resolve().parent.parent.parent
if str(_PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(_PROJECT_ROOT))

from dbot.src.utils.text_utils import detail, normalize_name  # noqa: E402

Event = dict[str, Any]


def find_duplicate_groups(events: Iterable[Event]) -> dict[str, list[Event]]:
    """Normalised name → events, for every name held by more than one event."""
    groups: dict[str, list[Event]] = defaultdict(list)
    for event in events:
        key = normalize_name(detail(event, "event_name"))
        if key:
            groups[key].append(event)
    return {key: members for key, members in groups.items() if len(members) > 1}


def find_low_quality(events: Iterable[Event], scorer: Any, threshold: int = 50) -> list[tuple[int, Event]]:
    """``(score, event)`` pairs below *threshold*, worst first."""
    scored = [(scorer.score(event), event) for event in events]
    return sorted((pair for pair in scored if pair[0] < threshold), key=lambda pair: pair[0])


def _parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(prog="audit_events", description="D-BOT — Report duplicate and low-quality events.")
    parser.add_argument("--threshold", type=int, default=50, help="Report events scoring below this value (default: 50).")
    return parser.parse_args(argv)


def main(argv: list[str] | None = None) -> None:
    args = _parse_args(argv)
    t_start = time.perf_counter()

    try:
        from dbot.config.settings import settings  # noqa: F401
    except Exception as exc:
        print("\n[FATAL] Configuration error — check your .env file:\n")
        print(f"  {exc}")
        print()
        sys.exit(1)

    from dbot.src.core.retriever import QualityScorer
    from dbot.src.database.event_store import EventStore, close_mongo_client

    try:
        events = asyncio.run(EventStore().all_events())
    finally:
        close_mongo_client()

    scorer = QualityScorer()
    duplicates = find_duplicate_groups(events)
    low_quality = find_low_quality(events, scorer, args.threshold)

    print()
    print("=" * 60)
    print(f"  D-BOT — Event Audit ({len(events)} events)")
    print("=" * 60)
    print(f"\n  DUPLICATE NAMES ({len(duplicates)})")
    print("-" * 60)
    for members in duplicates.values():
        print(f"  \"{detail(members[0], 'event_name')}\" — {len(members)} copies")
        for event in members:
            print(f"    {event.get('_id')} | {detail(event, 'event_date') or 'N/A'} | {detail(event, 'location') or 'N/A'} | score {scorer.score(event)}")

    print(f"\n  LOW QUALITY (score < {args.threshold}): {len(low_quality)}")
    print("-" * 60)
    for score, event in low_quality:
        print(f"  {score:>3} | \"{detail(event, 'event_name') or 'UNNAMED'}\" | {event.get('_id')}")

    print()
    print(f"  Total elapsed: {time.perf_counter() - t_start:.2f}s")
    print("=" * 60)
    print()


if __name__ == "__main__":
    main()

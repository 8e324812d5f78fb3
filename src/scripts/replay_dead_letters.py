#!/usr/bin/env python3
"""
Replay post-call notifications that failed and were stored as dead letters.

Each pending entry is run through the correlator again. Entries that succeed
are marked replayed; failures stay pending with the latest error recorded.
Duplicate replays are harmless: a call already linked is not processed again.
Replayed notifications are no longer fresh, so the report is chosen by the
match window around the call's end, never simply the newest report.

Usage:
    uv run python src/scripts/replay_dead_letters.py --dry-run
"""

import argparse
import asyncio
import sys
from pathlib import Path

# Add src to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent))

from api.routes.post_call import unwrap_notification
from core.config import get_settings
from core.database import list_pending_dead_letters, mark_replay_failed, mark_replayed
from core.logging import init_logging
from services.context import AppContext, build_context
from services.correlator import MatchStrategy
from services.provider import parse_call_event


async def replay(context: AppContext, limit: int | None = None, dry_run: bool = False) -> dict:
    """Replay pending dead letters and return counts by result."""
    db_path = context.settings.DB_PATH
    entries = await asyncio.to_thread(list_pending_dead_letters, db_path, limit)
    counts = {"pending": len(entries), "replayed": 0, "failed": 0}
    correlator = context.build_correlator(MatchStrategy.WINDOWED)

    for entry in entries:
        print(f"Dead letter {entry['id']} ({entry['conversation_id']}): {entry['error']}")
        if dry_run:
            continue

        data = unwrap_notification(entry["payload"])
        try:
            if data is None:
                raise ValueError("Not a transcription notification")
            outcome = await correlator.handle_call_finished(parse_call_event(data))
        except Exception as e:
            counts["failed"] += 1
            await asyncio.to_thread(mark_replay_failed, db_path, entry["id"], str(e))
            print(f"  Failed again: {e}")
            continue

        counts["replayed"] += 1
        await asyncio.to_thread(mark_replayed, db_path, entry["id"])
        print(f"  {outcome.status.value}: {outcome.message}")

    return counts


async def main(limit: int | None = None, dry_run: bool = False):
    """Main entry point."""
    settings = get_settings()
    init_logging(settings.LOG_LEVEL)
    context = build_context(settings)
    try:
        counts = await replay(context, limit, dry_run)
        print(
            f"\nPending: {counts['pending']}, replayed: {counts['replayed']}, "
            f"failed: {counts['failed']}"
        )
    finally:
        await context.aclose()


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Replay dead-lettered post-call notifications")
    parser.add_argument("--limit", type=int, help="Maximum number of entries to replay")
    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="List pending entries without replaying them",
    )
    args = parser.parse_args()

    asyncio.run(main(args.limit, args.dry_run))

#!/usr/bin/env python3
"""
Link call recordings and transcripts to unlinked daily reports.

Lists recent calls from ElevenLabs, matches them to reports submitted within
the match window, uploads the artifacts and writes the links into the report
log. Meant to run on a schedule as a backstop for missed post-call webhooks.

Usage:
    uv run python src/scripts/sweep_artifacts.py --limit 50
"""

import argparse
import asyncio
import sys
from pathlib import Path

# Add src to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent))

from core.config import get_settings
from core.logging import init_logging
from services.context import build_context


async def main(limit: int | None = None) -> int:
    """Main entry point. Returns the number of failed links."""
    settings = get_settings()
    init_logging(settings.LOG_LEVEL)
    context = build_context(settings)
    try:
        result = await context.correlator.sweep(limit)

        print(f"Calls considered: {result.calls_considered}")
        print(f"Unlinked reports: {result.reports_considered}")
        for outcome in result.outcomes:
            print(f"  {outcome.call_id} -> {outcome.report_id}: {outcome.status.value}")
        for failure in result.failures:
            print(f"  FAILED {failure['call_id']} -> {failure['report_id']}: {failure['error']}")

        if result.unmatched_report_ids:
            print(f"\nReports still unlinked: {', '.join(result.unmatched_report_ids)}")
        print(f"\nLinked {result.processed} report(s)")
        return len(result.failures)
    finally:
        await context.aclose()


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Link call artifacts to daily reports")
    parser.add_argument(
        "--limit",
        type=int,
        help="Number of recent calls to fetch. Defaults to SWEEP_CALL_LIMIT.",
    )
    args = parser.parse_args()

    failures = asyncio.run(main(args.limit))
    sys.exit(1 if failures else 0)

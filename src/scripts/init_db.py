#!/usr/bin/env python3
"""Create the voice-reports SQLite3 database with request log and dead letter tables."""

import argparse
import sys
from pathlib import Path

# Add src to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent))

from core.config import get_settings
from core.database import ensure_schema


def create_database(db_path: Path):
    """Create the database and tables if they don't exist."""
    ensure_schema(db_path)
    print(f"Database created successfully at: {db_path}")


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Create the voice-reports database")
    parser.add_argument("--db", type=Path, help="Database path. Defaults to DB_PATH.")
    args = parser.parse_args()

    create_database(args.db or get_settings().DB_PATH)

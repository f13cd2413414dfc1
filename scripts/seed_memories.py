#!/usr/bin/env python
"""
Load calendar memories from a JSON file into the configured database.

Usage:
    python scripts/seed_memories.py data/memories.sample.json

Environment variables required:
    DATABASE_URL                 (or MYSQL_HOST/MYSQL_USER/MYSQL_PASSWORD/MYSQL_DATABASE)

The file holds a list of entries shaped like the API response:
    {"day_number": 1, "release_date": "2025-12-01", "display_settings": {...},
     "blocks": [{"block_type": "title", "content": "...", "formatting": {...}}]}
Existing days are overwritten, blocks included.
"""

from __future__ import annotations

import json
import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parent.parent
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from app import create_app  # noqa: E402
from config import DatabaseConfigError  # noqa: E402
from memories.service import import_memories  # noqa: E402


def seed(path: Path) -> int:
    with path.open("r", encoding="utf-8") as handle:
        entries = json.load(handle)
    if not isinstance(entries, list):
        raise SystemExit(f"{path} must contain a JSON list of memories.")

    app = create_app()
    with app.app_context():
        return import_memories(entries)


if __name__ == "__main__":
    if len(sys.argv) != 2:
        sys.exit("Usage: python scripts/seed_memories.py PATH_TO_JSON")
    source = Path(sys.argv[1]).expanduser()
    if not source.exists():
        sys.exit(f"❌ {source} does not exist.")
    try:
        count = seed(source)
    except DatabaseConfigError as exc:
        sys.exit(f"❌ {exc}")
    except ValueError as exc:
        sys.exit(f"❌ Seed file rejected: {exc}")
    except KeyboardInterrupt:
        sys.exit("\n⚠️ Seeding cancelled by user.")
    print(f"✅ Seeded {count} memories from {source}")

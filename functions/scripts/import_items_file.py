"""
Copy items from a JSON items file into the database at DATABASE_URL.

Used when moving a file-backed deployment onto a database. Items already
present in the database (same id) are skipped.
"""

from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from newsdesk.config import get_settings
from newsdesk.db import JsonFileItemStore, SqlItemStore

logger = logging.getLogger(__name__)


def import_items(source: JsonFileItemStore, target: SqlItemStore, *, dry_run: bool) -> int:
    existing = {item.id for item in target.read_all()}
    imported = 0
    # Oldest first so insertion order matches creation order.
    for item in reversed(source.read_all()):
        if item.id in existing:
            logger.info("Skipping %s (already in database)", item.id)
            continue
        if not dry_run:
            target.append(item)
        imported += 1
    return imported


def main() -> int:
    settings = get_settings()
    parser = argparse.ArgumentParser(description="Import a JSON items file into SQL")
    parser.add_argument(
        "--items-file",
        default=settings.items_file,
        help="Path to the JSON items file (default: ITEMS_FILE)",
    )
    parser.add_argument(
        "--database-url",
        default=settings.database_url,
        help="SQLAlchemy URL of the target database (default: DATABASE_URL)",
    )
    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Report how many items would be imported without writing",
    )
    args = parser.parse_args()
    logging.basicConfig(level=logging.INFO)

    if not args.database_url:
        logger.error("No database URL given; set DATABASE_URL or pass --database-url")
        return 1

    source = JsonFileItemStore(args.items_file)
    target = SqlItemStore(args.database_url)
    count = import_items(source, target, dry_run=args.dry_run)
    verb = "Would import" if args.dry_run else "Imported"
    logger.info("%s %d items from %s", verb, count, args.items_file)
    return 0


if __name__ == "__main__":
    raise SystemExit(main())

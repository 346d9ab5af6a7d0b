"""
One-shot maintenance: report nested-set corruption and optionally repair it.

Counts the four corruption classes (oddness, duplicates, wrong_parent,
missing_parent) for every scope of the configured table. With --fix, bounds
are rebuilt from parent ids and the counts are reported again.

Usage:
    python scripts/check_tree.py [--fix]
"""

import asyncio
import sys
from pathlib import Path

from nestedset.config import load_settings
from nestedset.db.connection import Database
from nestedset.db.schema import nodes_table_sql
from nestedset.nodes.service import NodeService


def get_db_path(configured: str) -> Path:
    """Resolve the database path relative to the project directory."""
    path = Path(configured)
    if path.is_absolute():
        return path
    return Path(__file__).resolve().parent.parent / path


async def check(db_path: Path, fix: bool) -> int:
    settings = load_settings()
    db = await Database.connect(str(db_path), schema=nodes_table_sql(settings.tree))
    try:
        service = NodeService(db, settings.tree)

        counts = await service.count_errors()
        print(
            f"oddness={counts.oddness} duplicates={counts.duplicates} "
            f"wrong_parent={counts.wrong_parent} missing_parent={counts.missing_parent}"
        )
        if counts.total == 0:
            print("Tree is consistent.")
            return 0

        if not fix:
            print(f"Found {counts.total} error(s). Run with --fix to rebuild bounds.")
            return 1

        changed = await service.fix_tree()
        after = await service.count_errors()
        print(f"Rebuilt bounds: {changed} row(s) changed, {after.total} error(s) left.")
        return 0 if after.total == 0 else 1
    finally:
        await db.close()


if __name__ == "__main__":
    settings = load_settings()
    db_path = get_db_path(settings.db_path)
    if not db_path.exists():
        print(f"Database not found at {db_path}")
        sys.exit(1)
    print(f"Database: {db_path} (table {settings.tree.table})")
    sys.exit(asyncio.run(check(db_path, "--fix" in sys.argv[1:])))

"""
Batch runner for the settings catalog.

Modes:
- build:     read the snapshots and write the tree / merge map / search index
- changelog: diff the current snapshots against the previous run
- search:    rank a query against a built search index (debugging aid)

Examples::

    python -m settings_catalog.cli --mode build
    python -m settings_catalog.cli --mode changelog --today 2025-06-01
    python -m settings_catalog.cli --mode search --query "firewall, vpn" --limit 10
"""

from __future__ import annotations

import argparse
import sys
from pathlib import Path
from typing import List, Optional

from loguru import logger

from .catalog_build import SnapshotCache
from .changelog import generate_changelog
from .config import DATA_DIR, DEFAULT_SEARCH_LIMIT, LOG_DIR, PUBLIC_DIR, SEARCH_INDEX_FILE
from .pipeline import build_artifacts
from .search_index import SearchIndex


def _configure_logging(verbose: bool, log_file: bool) -> None:
    logger.remove()
    logger.add(sys.stderr, level="DEBUG" if verbose else "INFO")
    if log_file:
        LOG_DIR.mkdir(parents=True, exist_ok=True)
        logger.add(LOG_DIR / "settings_catalog.log", level="DEBUG", rotation="5 MB")


def run_build(data_dir: Path, public_dir: Path) -> int:
    artifacts = build_artifacts(SnapshotCache(data_dir), public_dir)
    print(f"Built {artifacts.category_count} categories and {len(artifacts.search_index)} search entries into {public_dir}")
    return 0


def run_changelog(data_dir: Path, today: Optional[str]) -> int:
    entry = generate_changelog(data_dir, today=today)
    if entry is None:
        print("No changelog entry written")
    else:
        print(
            f"{entry.date}: +{len(entry.added)} -{len(entry.removed)} ~{len(entry.changed)} settings, "
            f"+{len(entry.categories_added)} -{len(entry.categories_removed)} ~{len(entry.categories_changed)} categories"
        )
    return 0


def run_search(public_dir: Path, query: str, limit: int) -> int:
    path = public_dir / SEARCH_INDEX_FILE
    if not path.exists():
        raise FileNotFoundError(f"{path} not found; run --mode build first.")
    index = SearchIndex.from_file(path)
    results = index.search(query, limit=limit)
    for rank, entry in enumerate(results, 1):
        print(f"{rank:>3}. {entry.display_name}  [{entry.category_name}] ({entry.platform or '-'})")
    print(f"{len(results)} result(s) for {query!r}")
    return 0


def main(argv: Optional[List[str]] = None) -> int:
    ap = argparse.ArgumentParser(description="Settings catalog build tools")
    ap.add_argument("--mode", required=True, choices=["build", "changelog", "search"])
    ap.add_argument("--data-dir", type=str, default=None, help=f"snapshot directory (default {DATA_DIR})")
    ap.add_argument("--public-dir", type=str, default=None, help=f"artifact directory (default {PUBLIC_DIR})")
    ap.add_argument("--query", type=str, default="", help="comma-separated search terms (search mode)")
    ap.add_argument("--limit", type=int, default=DEFAULT_SEARCH_LIMIT, help="max results (search mode)")
    ap.add_argument("--today", type=str, default=None, help="override the changelog date (YYYY-MM-DD)")
    ap.add_argument("--verbose", action="store_true")
    ap.add_argument("--log-file", action="store_true", help=f"also log to {LOG_DIR}")
    args = ap.parse_args(argv)

    _configure_logging(args.verbose, args.log_file)
    data_dir = Path(args.data_dir) if args.data_dir else DATA_DIR
    public_dir = Path(args.public_dir) if args.public_dir else PUBLIC_DIR

    if args.mode == "build":
        return run_build(data_dir, public_dir)
    if args.mode == "changelog":
        return run_changelog(data_dir, args.today)
    if not args.query.strip():
        ap.error("--query is required in search mode")
    return run_search(public_dir, args.query, args.limit)


if __name__ == "__main__":
    sys.exit(main())

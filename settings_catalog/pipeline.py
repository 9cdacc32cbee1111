"""
Build-time artifact pipeline.

Runs the stages in dependency order over one snapshot directory:

1. visible setting counts per category (grouping rules)
2. category tree + merge map (counts rolled up)
3. flat search index

and writes the three JSON artifacts the browsing and search front end
loads.  Any structural error aborts before the first file is written, so
a failed build never leaves a half-updated set of artifacts behind.
"""

from __future__ import annotations

import json
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, List, Optional

from loguru import logger

from .catalog_build import SnapshotCache
from .category_tree import build_category_tree, iter_tree
from .config import (
    CATEGORY_TREE_FILE,
    MERGE_MAP_FILE,
    PUBLIC_DIR,
    SEARCH_INDEX_FILE,
    SETTINGS_FILE,
)
from .grouping import count_visible_settings
from .models import CategoryTreeNode, SearchIndexEntry
from .search_index import build_search_index, save_search_index


@dataclass
class BuildArtifacts:
    category_tree: List[CategoryTreeNode]
    merge_map: Dict[str, str]
    search_index: List[SearchIndexEntry]
    output_dir: Path

    @property
    def category_count(self) -> int:
        return sum(1 for _ in iter_tree(self.category_tree))


def _write_json(payload: Any, path: Path, indent: Optional[int] = None) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    with path.open("w", encoding="utf-8") as f:
        json.dump(payload, f, ensure_ascii=False, indent=indent)
    logger.info("Wrote {}", path)
    return path


def build_artifacts(cache: SnapshotCache, output_dir: Path = PUBLIC_DIR) -> BuildArtifacts:
    """
    Build and write ``category-tree.json``, ``category-merge-map.json``
    and ``search-index.json`` into ``output_dir``.

    Raises ``FileNotFoundError`` if the settings snapshot is missing.
    """
    output_dir = Path(output_dir)
    if cache.read_json(SETTINGS_FILE) is None:
        raise FileNotFoundError(f"{cache.data_dir / SETTINGS_FILE} not found; fetch the catalog first.")

    settings = cache.settings()
    categories = cache.categories()

    counts = count_visible_settings(settings)
    tree = build_category_tree(categories, counts)
    entries = build_search_index(settings, cache.category_names())

    _write_json([n.to_json_dict() for n in tree.roots], output_dir / CATEGORY_TREE_FILE)
    _write_json(dict(sorted(tree.merge_map.items())), output_dir / MERGE_MAP_FILE, indent=2)
    save_search_index(entries, output_dir / SEARCH_INDEX_FILE)

    artifacts = BuildArtifacts(
        category_tree=tree.roots,
        merge_map=tree.merge_map,
        search_index=entries,
        output_dir=output_dir,
    )
    logger.info(
        "Build complete: {} categories, {} merged, {} searchable settings",
        artifacts.category_count,
        len(artifacts.merge_map),
        len(artifacts.search_index),
    )
    return artifacts

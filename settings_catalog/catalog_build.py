"""
Loading and validating catalog snapshots.

The fetch step (outside this package) writes the raw export as JSON
arrays under the data directory.  This module reads those arrays once
per pipeline run through :class:`SnapshotCache`, validates every record
into the pydantic models of :mod:`settings_catalog.models` and exposes
small lookup helpers (category names, duplicate detection) that the
other stages share.

Structural problems in the input (a root that is not an array, a record
that is not an object) raise immediately.  Data problems inside
well-formed records (duplicate ids, dangling references) are tolerated
and only logged.
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any, Dict, Iterable, List, Mapping, Optional

from loguru import logger

from .config import (
    CATEGORIES_FILE,
    CATEGORY_TREE_FILE,
    CHANGELOG_FILE,
    DATA_DIR,
    MERGE_MAP_FILE,
    SETTINGS_FILE,
)
from .models import (
    CategoryTreeNode,
    ChangelogEntry,
    SettingCategory,
    SettingDefinition,
    parse_setting,
)


# ---------------------------
# Validation helpers
# ---------------------------

def ensure_record_list(data: Any, label: str = "records") -> List[Mapping[str, Any]]:
    """
    Check that ``data`` is a list of JSON objects and return it as a list.

    Raises ``TypeError`` for anything else; this is the only failure the
    build stages treat as fatal.
    """
    if not isinstance(data, (list, tuple)):
        raise TypeError(f"{label} must be a JSON array, got {type(data).__name__}")
    for pos, item in enumerate(data):
        if not isinstance(item, Mapping):
            raise TypeError(f"{label}[{pos}] must be an object, got {type(item).__name__}")
    return list(data)


def parse_settings(raw: Any) -> List[SettingDefinition]:
    records = ensure_record_list(raw, "Settings")
    settings = [parse_setting(r) for r in records]
    _warn_duplicates((s.id for s in settings), "settings")
    return settings


def parse_categories(raw: Any) -> List[SettingCategory]:
    records = ensure_record_list(raw, "Categories")
    categories = [SettingCategory.model_validate(r) for r in records]
    _warn_duplicates((c.id for c in categories), "categories")
    return categories


def _warn_duplicates(ids: Iterable[str], label: str) -> None:
    seen = set()
    dupes = 0
    for i in ids:
        if i in seen:
            dupes += 1
        seen.add(i)
    if dupes:
        logger.warning("Export contains {} duplicate {} ids; lookups keep the last record", dupes, label)


def category_name_map(categories: Iterable[SettingCategory]) -> Dict[str, str]:
    """id -> display name (last write wins)."""
    return {c.id: c.display_name for c in categories}


# ---------------------------
# Per-run cache
# ---------------------------

class SnapshotCache:
    """
    Read-once cache of the JSON files in one data directory.

    One instance lives for one pipeline run, so a build that touches
    ``settings.json`` from several stages parses it only once, while a
    fresh run (or a test) starts from a clean cache.
    """

    def __init__(self, data_dir: Path = DATA_DIR):
        self.data_dir = Path(data_dir)
        self._raw: Dict[str, Any] = {}
        self._parsed: Dict[str, Any] = {}

    def read_json(self, filename: str) -> Optional[Any]:
        """Parsed contents of ``filename``, or ``None`` if it does not exist."""
        if filename in self._raw:
            return self._raw[filename]
        path = self.data_dir / filename
        if not path.exists():
            logger.debug("Snapshot file {} not found", path)
            return None
        # utf-8-sig drops a leading BOM written by some exporters
        with path.open("r", encoding="utf-8-sig") as f:
            data = json.load(f)
        self._raw[filename] = data
        return data

    def clear(self) -> None:
        self._raw.clear()
        self._parsed.clear()

    def _memo(self, key: str, build):
        if key not in self._parsed:
            self._parsed[key] = build()
        return self._parsed[key]

    def settings(self) -> List[SettingDefinition]:
        def _load() -> List[SettingDefinition]:
            raw = self.read_json(SETTINGS_FILE)
            settings = parse_settings(raw if raw is not None else [])
            logger.info("Loaded {} settings from {}", len(settings), self.data_dir / SETTINGS_FILE)
            return settings

        return self._memo("settings", _load)

    def categories(self) -> List[SettingCategory]:
        def _load() -> List[SettingCategory]:
            raw = self.read_json(CATEGORIES_FILE)
            categories = parse_categories(raw if raw is not None else [])
            logger.info("Loaded {} categories from {}", len(categories), self.data_dir / CATEGORIES_FILE)
            return categories

        return self._memo("categories", _load)

    def category_names(self) -> Dict[str, str]:
        return self._memo("category_names", lambda: category_name_map(self.categories()))

    def category_tree(self) -> List[CategoryTreeNode]:
        raw = self.read_json(CATEGORY_TREE_FILE) or []
        return self._memo(
            "category_tree",
            lambda: [CategoryTreeNode.model_validate(n) for n in ensure_record_list(raw, CATEGORY_TREE_FILE)],
        )

    def merge_map(self) -> Dict[str, str]:
        raw = self.read_json(MERGE_MAP_FILE) or {}
        if not isinstance(raw, Mapping):
            raise TypeError(f"{MERGE_MAP_FILE} must be a JSON object, got {type(raw).__name__}")
        return {str(k): str(v) for k, v in raw.items()}

    def changelog(self) -> List[ChangelogEntry]:
        raw = self.read_json(CHANGELOG_FILE) or []
        return self._memo(
            "changelog",
            lambda: [ChangelogEntry.model_validate(e) for e in ensure_record_list(raw, CHANGELOG_FILE)],
        )

    def last_updated(self) -> Optional[str]:
        """Date of the newest changelog entry, if any."""
        entries = self.changelog()
        if not entries:
            return None
        return max(e.date for e in entries)

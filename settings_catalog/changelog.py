"""
Day-over-day changelog of the settings catalog.

The differ compares the current export against the previous one, both
as raw records keyed by id, and reports added, removed and changed
settings and categories.  Change detection is hash-gated: each record is
hashed over an explicit allow-list of fields, so churn in any other
field (timestamps, ordering hints, ...) never produces an entry.  For
records whose hash differs, a field-level diff restricted to the same
allow-list is produced, with nested values summarised (e.g. option
counts) instead of dumped.

File-backed runs (:func:`generate_changelog`) follow three rules:

- the very first run only records a baseline and writes no entry;
- an entry is written only when at least one bucket is non-empty;
- entries are keyed by calendar date and a same-day rerun replaces the
  day's entry instead of adding a second one.

After each run the current snapshots become the next run's baseline.
"""

from __future__ import annotations

import hashlib
import json
import shutil
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple

from loguru import logger

from .catalog_build import SnapshotCache, ensure_record_list
from .config import (
    CATEGORIES_FILE,
    CATEGORIES_PREVIOUS_FILE,
    CHANGELOG_FILE,
    SETTINGS_FILE,
    SETTINGS_PREVIOUS_FILE,
)
from .models import (
    ChangelogCategoryChange,
    ChangelogCategoryRef,
    ChangelogEntry,
    ChangelogSettingChange,
    ChangelogSettingRef,
    FieldChange,
)
from .normalize import resolve_category_name

Record = Mapping[str, Any]

SETTING_HASH_FIELDS = [
    "displayName",
    "description",
    "helpText",
    "baseUri",
    "offsetUri",
    "version",
    "options",
    "applicability",
    "keywords",
]
SETTING_SCALAR_FIELDS = ["displayName", "description", "helpText", "baseUri", "offsetUri", "version"]

CATEGORY_HASH_FIELDS = [
    "displayName",
    "description",
    "platforms",
    "technologies",
    "parentCategoryId",
]


# ---------------------------
# Hashing & field diffs
# ---------------------------

def _canonical(value: Any) -> str:
    return json.dumps(value, sort_keys=True, ensure_ascii=False, separators=(",", ":"), default=str)


def _hash_fields(record: Record, fields: Sequence[str]) -> str:
    relevant = {f: record.get(f) for f in fields}
    return hashlib.md5(_canonical(relevant).encode("utf-8")).hexdigest()


def hash_setting(record: Record) -> str:
    return _hash_fields(record, SETTING_HASH_FIELDS)


def hash_category(record: Record) -> str:
    return _hash_fields(record, CATEGORY_HASH_FIELDS)


def _display(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, str):
        return value
    return _canonical(value)


def _scalar_diffs(old: Record, new: Record, fields: Sequence[str]) -> List[FieldChange]:
    diffs: List[FieldChange] = []
    for f in fields:
        before, after = _display(old.get(f)), _display(new.get(f))
        if before != after:
            diffs.append(FieldChange(field=f, old_value=before, new_value=after))
    return diffs


def diff_setting_fields(old: Record, new: Record) -> List[FieldChange]:
    """Allow-listed field changes between two versions of a setting."""
    diffs = _scalar_diffs(old, new, SETTING_SCALAR_FIELDS)

    old_options, new_options = old.get("options") or [], new.get("options") or []
    if _canonical(old_options) != _canonical(new_options):
        diffs.append(
            FieldChange(
                field="options",
                old_value=f"{len(old_options)} options",
                new_value=f"{len(new_options)} options",
            )
        )

    for f in ("applicability", "keywords"):
        if _canonical(old.get(f)) != _canonical(new.get(f)):
            diffs.append(FieldChange(field=f, old_value=_display(old.get(f)), new_value=_display(new.get(f))))
    return diffs


def diff_category_fields(old: Record, new: Record) -> List[FieldChange]:
    return _scalar_diffs(old, new, CATEGORY_HASH_FIELDS)


# ---------------------------
# Snapshot diff
# ---------------------------

def index_by_id(records: Sequence[Record], label: str = "records") -> Dict[str, Record]:
    """Key records by id; a repeated id keeps the last record."""
    rows = ensure_record_list(records, label)
    by_id: Dict[str, Record] = {}
    for r in rows:
        by_id[str(r.get("id"))] = r
    if len(by_id) != len(rows):
        logger.warning("{} contain {} duplicate ids; keeping the last record", label, len(rows) - len(by_id))
    return by_id


def _setting_ref(record: Record, category_names: Mapping[str, str]) -> Dict[str, Any]:
    applicability = record.get("applicability") or {}
    return {
        "id": str(record.get("id")),
        "display_name": record.get("displayName") or record.get("name") or "",
        "category_id": record.get("categoryId") or "",
        "category_name": resolve_category_name(record.get("categoryId"), category_names),
        "platform": applicability.get("platform") if isinstance(applicability, Mapping) else None,
    }


def _category_ref(record: Record) -> ChangelogCategoryRef:
    return ChangelogCategoryRef(
        id=str(record.get("id")),
        display_name=record.get("displayName") or "",
        parent_category_id=record.get("parentCategoryId"),
    )


@dataclass
class SnapshotDiff:
    added: List[ChangelogSettingRef]
    removed: List[ChangelogSettingRef]
    changed: List[ChangelogSettingChange]
    categories_added: List[ChangelogCategoryRef]
    categories_removed: List[ChangelogCategoryRef]
    categories_changed: List[ChangelogCategoryChange]

    def to_entry(self, date: str) -> ChangelogEntry:
        return ChangelogEntry(
            date=date,
            added=self.added,
            removed=self.removed,
            changed=self.changed,
            categories_added=self.categories_added,
            categories_removed=self.categories_removed,
            categories_changed=self.categories_changed,
        )

    @property
    def is_empty(self) -> bool:
        return self.to_entry("").is_empty


def diff_settings(
    current: Sequence[Record],
    previous: Sequence[Record],
    category_names: Mapping[str, str],
) -> Tuple[List[ChangelogSettingRef], List[ChangelogSettingRef], List[ChangelogSettingChange]]:
    curr, prev = index_by_id(current, "Current settings"), index_by_id(previous, "Previous settings")
    added = [ChangelogSettingRef(**_setting_ref(r, category_names)) for sid, r in curr.items() if sid not in prev]
    removed = [ChangelogSettingRef(**_setting_ref(r, category_names)) for sid, r in prev.items() if sid not in curr]
    changed: List[ChangelogSettingChange] = []
    for sid, r in curr.items():
        old = prev.get(sid)
        if old is None or hash_setting(old) == hash_setting(r):
            continue
        fields = diff_setting_fields(old, r)
        if fields:
            changed.append(ChangelogSettingChange(**_setting_ref(r, category_names), fields=fields))
    return added, removed, changed


def diff_categories(
    current: Sequence[Record],
    previous: Sequence[Record],
) -> Tuple[List[ChangelogCategoryRef], List[ChangelogCategoryRef], List[ChangelogCategoryChange]]:
    curr, prev = index_by_id(current, "Current categories"), index_by_id(previous, "Previous categories")
    added = [_category_ref(r) for cid, r in curr.items() if cid not in prev]
    removed = [_category_ref(r) for cid, r in prev.items() if cid not in curr]
    changed: List[ChangelogCategoryChange] = []
    for cid, r in curr.items():
        old = prev.get(cid)
        if old is None or hash_category(old) == hash_category(r):
            continue
        fields = diff_category_fields(old, r)
        if fields:
            changed.append(ChangelogCategoryChange(id=cid, display_name=r.get("displayName") or "", fields=fields))
    return added, removed, changed


def diff_snapshots(
    current_settings: Sequence[Record],
    previous_settings: Sequence[Record],
    current_categories: Sequence[Record] = (),
    previous_categories: Optional[Sequence[Record]] = None,
) -> SnapshotDiff:
    """
    Diff two consecutive snapshots.

    ``previous_categories=None`` means no category baseline exists yet;
    the category buckets are then left empty instead of reporting every
    category as added.
    """
    category_names = {
        str(c.get("id")): c.get("displayName") or ""
        for c in ensure_record_list(current_categories, "Current categories")
    }
    added, removed, changed = diff_settings(current_settings, previous_settings, category_names)
    if previous_categories is None:
        cat_added, cat_removed, cat_changed = [], [], []
    else:
        cat_added, cat_removed, cat_changed = diff_categories(current_categories, previous_categories)
    return SnapshotDiff(added, removed, changed, cat_added, cat_removed, cat_changed)


# ---------------------------
# History
# ---------------------------

def merge_into_history(history: Sequence[ChangelogEntry], entry: ChangelogEntry) -> List[ChangelogEntry]:
    """Newest-first history with ``entry`` replacing any entry for the same date."""
    kept = [e for e in history if e.date != entry.date]
    return sorted([entry] + kept, key=lambda e: e.date, reverse=True)


def today_utc() -> str:
    return datetime.now(timezone.utc).date().isoformat()


# ---------------------------
# File-backed run
# ---------------------------

def load_changelog(path: Path) -> List[ChangelogEntry]:
    if not path.exists():
        return []
    with path.open("r", encoding="utf-8-sig") as f:
        data = json.load(f)
    return [ChangelogEntry.model_validate(e) for e in ensure_record_list(data, "Changelog")]


def save_changelog(history: Sequence[ChangelogEntry], path: Path) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    with path.open("w", encoding="utf-8") as f:
        json.dump([e.to_json_dict() for e in history], f, ensure_ascii=False, indent=2)
    return path


def generate_changelog(data_dir: Path, today: Optional[str] = None) -> Optional[ChangelogEntry]:
    """
    Diff ``settings.json`` / ``categories.json`` against the previous
    snapshots in ``data_dir`` and update ``changelog.json``.

    Returns the written entry, or ``None`` when a baseline was
    established or nothing changed.
    """
    cache = SnapshotCache(data_dir)
    current = cache.read_json(SETTINGS_FILE)
    if current is None:
        raise FileNotFoundError(f"{data_dir / SETTINGS_FILE} not found; fetch the catalog first.")
    current = ensure_record_list(current, SETTINGS_FILE)
    current_categories = ensure_record_list(cache.read_json(CATEGORIES_FILE) or [], CATEGORIES_FILE)
    changelog_path = data_dir / CHANGELOG_FILE
    logger.info("Current settings: {}", len(current))

    previous = cache.read_json(SETTINGS_PREVIOUS_FILE)
    if previous is None:
        logger.info("No previous snapshot found; establishing baseline with {} settings", len(current))
        _rotate_baseline(data_dir)
        if not changelog_path.exists():
            save_changelog([], changelog_path)
        return None

    previous_categories = cache.read_json(CATEGORIES_PREVIOUS_FILE)
    if previous_categories is None:
        logger.info("No category baseline found; category changes are skipped this run")
    diff = diff_snapshots(current, ensure_record_list(previous, SETTINGS_PREVIOUS_FILE), current_categories, previous_categories)

    logger.info(
        "Settings added={} removed={} changed={}; categories added={} removed={} changed={}",
        len(diff.added),
        len(diff.removed),
        len(diff.changed),
        len(diff.categories_added),
        len(diff.categories_removed),
        len(diff.categories_changed),
    )

    entry: Optional[ChangelogEntry] = None
    if diff.is_empty:
        logger.info("No changes detected; changelog not updated")
    else:
        entry = diff.to_entry(today or today_utc())
        history = merge_into_history(load_changelog(changelog_path), entry)
        save_changelog(history, changelog_path)
        logger.info("Changelog updated: {} ({} entries)", changelog_path, len(history))

    _rotate_baseline(data_dir)
    return entry


def _rotate_baseline(data_dir: Path) -> None:
    """Current snapshots become the baseline for the next run."""
    shutil.copyfile(data_dir / SETTINGS_FILE, data_dir / SETTINGS_PREVIOUS_FILE)
    categories = data_dir / CATEGORIES_FILE
    if categories.exists():
        shutil.copyfile(categories, data_dir / CATEGORIES_PREVIOUS_FILE)

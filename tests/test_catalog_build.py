"""Tests for snapshot loading and the per-run cache."""

import json

import pytest
from pydantic import ValidationError

from settings_catalog.catalog_build import (
    SnapshotCache,
    category_name_map,
    ensure_record_list,
    parse_categories,
    parse_settings,
)
from settings_catalog.config import CATEGORIES_FILE, CHANGELOG_FILE, MERGE_MAP_FILE, SETTINGS_FILE
from settings_catalog.models import GroupSetting, SettingKind

from conftest import raw_category, raw_setting, write_json


class TestValidation:
    """Tests for structural validation."""

    def test_non_array_root_raises(self):
        """A root that is not an array is rejected."""
        with pytest.raises(TypeError):
            ensure_record_list({"value": []}, "Settings")

    def test_non_object_record_raises(self):
        """Every record must be an object."""
        with pytest.raises(TypeError, match=r"Settings\[1\]"):
            ensure_record_list([{"id": "1"}, "oops"], "Settings")

    def test_invalid_record_raises_validation_error(self):
        """Records failing the schema raise pydantic errors."""
        with pytest.raises(ValidationError):
            parse_categories([{"displayName": "No id"}])

    def test_parse_settings_dispatches_kinds(self):
        """Settings are parsed into kind-specific models."""
        settings = parse_settings([raw_setting("1", kind=SettingKind.GROUP), raw_setting("2")])
        assert isinstance(settings[0], GroupSetting)
        assert settings[1].kind is SettingKind.CHOICE

    def test_duplicate_names_last_wins(self):
        """Duplicate category ids keep the last display name."""
        categories = parse_categories([raw_category("a", "First"), raw_category("a", "Second")])
        assert category_name_map(categories) == {"a": "Second"}


class TestSnapshotCache:
    """Tests for the read-once cache."""

    def test_missing_file_is_none(self, data_dir):
        """Missing files read as None and parse as empty."""
        cache = SnapshotCache(data_dir)
        assert cache.read_json(SETTINGS_FILE) is None
        assert cache.settings() == []
        assert cache.merge_map() == {}
        assert cache.last_updated() is None

    def test_reads_once(self, data_dir):
        """A file is parsed once per cache instance."""
        path = write_json(data_dir / SETTINGS_FILE, [raw_setting("1")])
        cache = SnapshotCache(data_dir)
        first = cache.settings()
        path.write_text(json.dumps([raw_setting("1"), raw_setting("2")]), encoding="utf-8")
        assert cache.settings() is first
        assert len(SnapshotCache(data_dir).settings()) == 2

    def test_clear(self, data_dir):
        """clear() forgets everything that was read."""
        path = write_json(data_dir / CATEGORIES_FILE, [raw_category("a", "Edge")])
        cache = SnapshotCache(data_dir)
        assert cache.category_names() == {"a": "Edge"}
        path.write_text(json.dumps([raw_category("a", "Microsoft Edge")]), encoding="utf-8")
        cache.clear()
        assert cache.category_names() == {"a": "Microsoft Edge"}

    def test_bom_prefixed_file(self, data_dir):
        """A leading BOM is tolerated."""
        payload = json.dumps([raw_category("a", "Edge")]).encode("utf-8")
        (data_dir / CATEGORIES_FILE).write_bytes(b"\xef\xbb\xbf" + payload)
        assert [c.id for c in SnapshotCache(data_dir).categories()] == ["a"]

    def test_merge_map_must_be_object(self, data_dir):
        """A merge map that is not an object is rejected."""
        write_json(data_dir / MERGE_MAP_FILE, ["a", "b"])
        with pytest.raises(TypeError):
            SnapshotCache(data_dir).merge_map()

    def test_last_updated(self, data_dir):
        """The newest changelog date is reported."""
        write_json(data_dir / CHANGELOG_FILE, [{"date": "2025-01-01"}, {"date": "2025-02-01"}])
        assert SnapshotCache(data_dir).last_updated() == "2025-02-01"

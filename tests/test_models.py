"""Tests for record models and kind dispatch."""

import pytest
from pydantic import ValidationError

from settings_catalog.models import (
    ChangelogEntry,
    ChoiceSetting,
    FieldChange,
    GroupCollectionSetting,
    SettingCategory,
    SettingKind,
    UnknownSetting,
    kind_from_odata_type,
    parse_setting,
)

from conftest import raw_setting


class TestKindDispatch:
    """Tests for resolving the kind discriminator."""

    def test_full_graph_type_name(self):
        """Full Graph type names resolve to their kind."""
        t = "#microsoft.graph.deviceManagementConfigurationSettingGroupCollectionDefinition"
        assert kind_from_odata_type(t) is SettingKind.GROUP_COLLECTION

    def test_bare_kind_value(self):
        """Bare kind names are accepted as well."""
        assert kind_from_odata_type("Redirect") is SettingKind.REDIRECT

    def test_unrecognised_kind_degrades(self):
        """Unknown discriminators map to UNKNOWN instead of raising."""
        assert kind_from_odata_type("#microsoft.graph.somethingElse") is SettingKind.UNKNOWN
        assert kind_from_odata_type(None) is SettingKind.UNKNOWN

    def test_parse_picks_subclass(self):
        """parse_setting returns the kind-specific model."""
        s = parse_setting(raw_setting("1", kind=SettingKind.GROUP_COLLECTION, maximumCount=5))
        assert isinstance(s, GroupCollectionSetting)
        assert s.kind is SettingKind.GROUP_COLLECTION
        assert s.maximum_count == 5

    def test_parse_unknown_kind(self):
        """Records without a discriminator still parse."""
        s = parse_setting({"id": "x", "displayName": "X"})
        assert isinstance(s, UnknownSetting)


class TestSettingDefinition:
    """Tests for the shared setting fields."""

    def test_camel_case_aliases(self):
        """Raw camelCase keys populate snake_case fields."""
        s = parse_setting(
            raw_setting(
                "1",
                "Camera",
                parent="0",
                base_uri="./Device",
                offset_uri="Camera",
                applicability={"platform": "windows10", "deviceMode": "none"},
                options=[{"itemId": "a", "displayName": "Allow"}],
                defaultOptionId="a",
            )
        )
        assert isinstance(s, ChoiceSetting)
        assert s.root_definition_id == "0"
        assert s.platform == "windows10"
        assert s.options[0].item_id == "a"
        assert s.default_option_id == "a"

    def test_nulls_become_empty(self):
        """Null names, keywords and options do not break consumers."""
        s = parse_setting({"id": "1", "displayName": None, "keywords": None, "options": None, "name": "camera"})
        assert s.display_name == ""
        assert s.keywords == []
        assert s.options == []
        assert s.label == "camera"

    def test_is_root(self):
        """Parentless or self-referencing settings are roots."""
        assert parse_setting(raw_setting("1")).is_root
        assert parse_setting(raw_setting("1", parent="1")).is_root
        assert not parse_setting(raw_setting("2", parent="1")).is_root

    def test_missing_id_is_rejected(self):
        """Records without an id fail validation."""
        with pytest.raises(ValidationError):
            parse_setting({"displayName": "No id"})

    def test_non_object_record_raises(self):
        """A record that is not an object is structurally invalid."""
        with pytest.raises(TypeError):
            parse_setting(["not", "a", "record"])

    def test_models_are_frozen(self):
        """Artifacts are immutable after construction."""
        s = parse_setting(raw_setting("1"))
        with pytest.raises(ValidationError):
            s.display_name = "changed"

    def test_unknown_fields_ignored(self):
        """Extra raw fields are dropped."""
        c = SettingCategory.model_validate({"id": "c", "displayName": "Edge", "lastModified": "2024-01-01"})
        assert not hasattr(c, "lastModified")


class TestChangelogEntry:
    """Tests for changelog serialisation."""

    def test_dumps_camel_case(self):
        """Entries dump with camelCase keys."""
        entry = ChangelogEntry(date="2025-01-01")
        dumped = entry.to_json_dict()
        assert set(dumped) == {
            "date",
            "added",
            "removed",
            "changed",
            "categoriesAdded",
            "categoriesRemoved",
            "categoriesChanged",
        }
        assert entry.is_empty

    def test_field_change_aliases(self):
        """Field diffs use oldValue / newValue."""
        change = FieldChange(field="displayName", old_value="Old", new_value="New")
        assert change.to_json_dict() == {"field": "displayName", "oldValue": "Old", "newValue": "New"}

    def test_round_trip_from_file_shape(self):
        """Entries load back from their own JSON shape."""
        raw = {
            "date": "2025-01-02",
            "changed": [
                {
                    "id": "1",
                    "displayName": "New",
                    "categoryName": "Edge",
                    "fields": [{"field": "displayName", "oldValue": "Old", "newValue": "New"}],
                }
            ],
        }
        entry = ChangelogEntry.model_validate(raw)
        assert entry.changed[0].fields[0].old_value == "Old"
        assert not entry.is_empty

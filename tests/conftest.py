"""Shared raw-record factories for catalog tests."""

import json
from pathlib import Path
from typing import Any, Dict, Optional

import pytest

from settings_catalog.models import SettingCategory, SettingKind, odata_type_for, parse_setting


def raw_setting(
    id: str,
    display_name: Optional[str] = None,
    kind: SettingKind = SettingKind.CHOICE,
    category_id: str = "cat",
    parent: Optional[str] = None,
    base_uri: Optional[str] = None,
    offset_uri: Optional[str] = None,
    **extra: Any,
) -> Dict[str, Any]:
    record: Dict[str, Any] = {
        "@odata.type": odata_type_for(kind),
        "id": id,
        "displayName": display_name if display_name is not None else id,
        "categoryId": category_id,
    }
    if parent is not None:
        record["rootDefinitionId"] = parent
    if base_uri is not None:
        record["baseUri"] = base_uri
    if offset_uri is not None:
        record["offsetUri"] = offset_uri
    record.update(extra)
    return record


def make_setting(*args: Any, **kwargs: Any):
    return parse_setting(raw_setting(*args, **kwargs))


def raw_category(
    id: str,
    display_name: str,
    parent: Optional[str] = None,
    **extra: Any,
) -> Dict[str, Any]:
    record: Dict[str, Any] = {"id": id, "displayName": display_name, "parentCategoryId": parent}
    record.update(extra)
    return record


def make_category(*args: Any, **kwargs: Any) -> SettingCategory:
    return SettingCategory.model_validate(raw_category(*args, **kwargs))


def write_json(path: Path, data: Any) -> Path:
    path.write_text(json.dumps(data), encoding="utf-8")
    return path


@pytest.fixture
def data_dir(tmp_path: Path) -> Path:
    d = tmp_path / "data"
    d.mkdir()
    return d

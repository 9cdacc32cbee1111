"""
Pydantic schemas for catalog records and the artifacts built from them.

Raw export records use camelCase keys; every model accepts either the
camelCase alias or the snake_case field name, ignores unknown keys and
dumps back to camelCase with ``model_dump(by_alias=True)``.

Settings are a closed tagged union: :class:`SettingKind` is the tag and
each kind has its own subclass of :class:`SettingDefinition` carrying the
kind-specific payload.  :func:`parse_setting` picks the subclass from the
raw ``@odata.type`` discriminator.
"""

from __future__ import annotations

from enum import Enum
from typing import Any, ClassVar, Dict, List, Mapping, Optional, Type

from loguru import logger
from pydantic import BaseModel, ConfigDict, Field, field_validator


class CatalogModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True, frozen=True, extra="ignore")

    def to_json_dict(self) -> Dict[str, Any]:
        return self.model_dump(by_alias=True, exclude_none=True, mode="json")


# ---------------------------
# Settings
# ---------------------------

class SettingKind(str, Enum):
    CHOICE = "Choice"
    SIMPLE = "Simple"
    GROUP = "Group"
    GROUP_COLLECTION = "GroupCollection"
    CHOICE_COLLECTION = "ChoiceCollection"
    SIMPLE_COLLECTION = "SimpleCollection"
    REDIRECT = "Redirect"
    UNKNOWN = "Unknown"


ODATA_PREFIX = "#microsoft.graph.deviceManagementConfiguration"

# Middle part of the Graph type name, e.g.
# "#microsoft.graph.deviceManagementConfigurationChoiceSettingDefinition"
ODATA_KINDS: Dict[str, SettingKind] = {
    "ChoiceSetting": SettingKind.CHOICE,
    "SimpleSetting": SettingKind.SIMPLE,
    "SettingGroup": SettingKind.GROUP,
    "SettingGroupCollection": SettingKind.GROUP_COLLECTION,
    "ChoiceSettingCollection": SettingKind.CHOICE_COLLECTION,
    "SimpleSettingCollection": SettingKind.SIMPLE_COLLECTION,
    "RedirectSetting": SettingKind.REDIRECT,
}

GROUP_KINDS = frozenset({SettingKind.GROUP, SettingKind.GROUP_COLLECTION})


def odata_type_for(kind: SettingKind) -> str:
    for middle, k in ODATA_KINDS.items():
        if k is kind:
            return f"{ODATA_PREFIX}{middle}Definition"
    return ""


def kind_from_odata_type(odata_type: Optional[str]) -> SettingKind:
    """
    Resolve the kind tag from a raw discriminator.

    Accepts the full Graph type name or a bare kind value such as
    ``"GroupCollection"``.  Anything else maps to ``SettingKind.UNKNOWN``.
    """
    if not odata_type:
        return SettingKind.UNKNOWN
    text = odata_type.strip()
    try:
        return SettingKind(text)
    except ValueError:
        pass
    if text.startswith(ODATA_PREFIX):
        text = text[len(ODATA_PREFIX):]
    if text.endswith("Definition"):
        text = text[: -len("Definition")]
    return ODATA_KINDS.get(text, SettingKind.UNKNOWN)


class ChoiceOption(CatalogModel):
    item_id: str = Field("", alias="itemId")
    name: Optional[str] = None
    display_name: str = Field("", alias="displayName")
    description: Optional[str] = None
    help_text: Optional[str] = Field(None, alias="helpText")

    @field_validator("item_id", "display_name", mode="before")
    @classmethod
    def _none_to_empty(cls, value: Any) -> Any:
        return "" if value is None else value


class SettingApplicability(CatalogModel):
    model_config = ConfigDict(extra="allow")

    description: Optional[str] = None
    platform: Optional[str] = None
    device_mode: Optional[str] = Field(None, alias="deviceMode")
    technologies: Optional[str] = None


class SettingDefinition(CatalogModel):
    """Fields shared by every setting kind."""

    kind: ClassVar[SettingKind] = SettingKind.UNKNOWN

    odata_type: str = Field("", alias="@odata.type")
    id: str
    name: str = ""
    display_name: str = Field("", alias="displayName")
    description: Optional[str] = None
    help_text: Optional[str] = Field(None, alias="helpText")
    version: Optional[str] = None
    category_id: str = Field("", alias="categoryId")
    root_definition_id: Optional[str] = Field(None, alias="rootDefinitionId")
    base_uri: Optional[str] = Field(None, alias="baseUri")
    offset_uri: Optional[str] = Field(None, alias="offsetUri")
    options: List[ChoiceOption] = Field(default_factory=list)
    applicability: Optional[SettingApplicability] = None
    keywords: List[str] = Field(default_factory=list)

    @field_validator("odata_type", "name", "display_name", "category_id", mode="before")
    @classmethod
    def _none_to_empty(cls, value: Any) -> Any:
        return "" if value is None else value

    @field_validator("options", "keywords", mode="before")
    @classmethod
    def _none_to_list(cls, value: Any) -> Any:
        return [] if value is None else value

    @property
    def label(self) -> str:
        """Display name, falling back to the internal name."""
        return self.display_name or self.name or ""

    @property
    def is_root(self) -> bool:
        return not self.root_definition_id or self.root_definition_id == self.id

    @property
    def platform(self) -> str:
        if self.applicability is None:
            return ""
        return self.applicability.platform or ""


class ChoiceSetting(SettingDefinition):
    kind: ClassVar[SettingKind] = SettingKind.CHOICE

    default_option_id: Optional[str] = Field(None, alias="defaultOptionId")


class ChoiceCollectionSetting(ChoiceSetting):
    kind: ClassVar[SettingKind] = SettingKind.CHOICE_COLLECTION


class SimpleSetting(SettingDefinition):
    kind: ClassVar[SettingKind] = SettingKind.SIMPLE

    value_definition: Optional[Dict[str, Any]] = Field(None, alias="valueDefinition")
    default_value: Optional[Any] = Field(None, alias="defaultValue")


class SimpleCollectionSetting(SimpleSetting):
    kind: ClassVar[SettingKind] = SettingKind.SIMPLE_COLLECTION


class GroupSetting(SettingDefinition):
    kind: ClassVar[SettingKind] = SettingKind.GROUP

    child_ids: List[str] = Field(default_factory=list, alias="childIds")
    minimum_count: Optional[int] = Field(None, alias="minimumCount")
    maximum_count: Optional[int] = Field(None, alias="maximumCount")


class GroupCollectionSetting(GroupSetting):
    kind: ClassVar[SettingKind] = SettingKind.GROUP_COLLECTION


class RedirectSetting(SettingDefinition):
    kind: ClassVar[SettingKind] = SettingKind.REDIRECT

    redirect_message: Optional[str] = Field(None, alias="redirectMessage")
    navigation_target: Optional[str] = Field(None, alias="navigationTarget")


class UnknownSetting(SettingDefinition):
    kind: ClassVar[SettingKind] = SettingKind.UNKNOWN


SETTING_CLASSES: Dict[SettingKind, Type[SettingDefinition]] = {
    SettingKind.CHOICE: ChoiceSetting,
    SettingKind.SIMPLE: SimpleSetting,
    SettingKind.GROUP: GroupSetting,
    SettingKind.GROUP_COLLECTION: GroupCollectionSetting,
    SettingKind.CHOICE_COLLECTION: ChoiceCollectionSetting,
    SettingKind.SIMPLE_COLLECTION: SimpleCollectionSetting,
    SettingKind.REDIRECT: RedirectSetting,
    SettingKind.UNKNOWN: UnknownSetting,
}


def parse_setting(raw: Mapping[str, Any]) -> SettingDefinition:
    """Validate one raw setting record into its kind-specific model."""
    if not isinstance(raw, Mapping):
        raise TypeError(f"Setting record must be an object, got {type(raw).__name__}")
    kind = kind_from_odata_type(raw.get("@odata.type") or raw.get("odata_type"))
    if kind is SettingKind.UNKNOWN:
        logger.debug("Setting {} has unrecognised kind {!r}", raw.get("id"), raw.get("@odata.type"))
    return SETTING_CLASSES[kind].model_validate(raw)


class AsrRuleInfo(CatalogModel):
    """Well-known identity of a Defender attack surface reduction rule."""

    guid: str
    rule_name: str = Field(alias="ruleName")
    note: Optional[str] = None


# ---------------------------
# Categories
# ---------------------------

class SettingCategory(CatalogModel):
    id: str
    name: Optional[str] = None
    display_name: str = Field("", alias="displayName")
    description: Optional[str] = None
    help_text: Optional[str] = Field(None, alias="helpText")
    parent_category_id: Optional[str] = Field(None, alias="parentCategoryId")
    root_category_id: Optional[str] = Field(None, alias="rootCategoryId")
    platforms: Optional[str] = None
    technologies: Optional[str] = None
    setting_usage: Optional[str] = Field(None, alias="settingUsage")

    @field_validator("display_name", mode="before")
    @classmethod
    def _none_to_empty(cls, value: Any) -> Any:
        return "" if value is None else value


class CategoryTreeNode(SettingCategory):
    children: List[CategoryTreeNode] = Field(default_factory=list)
    setting_count: int = Field(0, alias="settingCount")


CategoryTreeNode.model_rebuild()


# ---------------------------
# Search
# ---------------------------

class SearchIndexEntry(CatalogModel):
    id: str
    display_name: str = Field(alias="displayName")
    description: str = ""
    keywords: str = ""
    category_id: str = Field("", alias="categoryId")
    category_name: str = Field(alias="categoryName")
    scope: str = "unknown"
    platform: str = ""
    setting_type: str = Field("unknown", alias="settingType")


# ---------------------------
# Changelog
# ---------------------------

class FieldChange(CatalogModel):
    field: str
    old_value: str = Field(alias="oldValue")
    new_value: str = Field(alias="newValue")


class ChangelogSettingRef(CatalogModel):
    id: str
    display_name: str = Field(alias="displayName")
    category_id: str = Field("", alias="categoryId")
    category_name: str = Field(alias="categoryName")
    platform: Optional[str] = None


class ChangelogSettingChange(ChangelogSettingRef):
    fields: List[FieldChange] = Field(default_factory=list)


class ChangelogCategoryRef(CatalogModel):
    id: str
    display_name: str = Field(alias="displayName")
    parent_category_id: Optional[str] = Field(None, alias="parentCategoryId")


class ChangelogCategoryChange(CatalogModel):
    id: str
    display_name: str = Field(alias="displayName")
    fields: List[FieldChange] = Field(default_factory=list)


class ChangelogEntry(CatalogModel):
    date: str
    added: List[ChangelogSettingRef] = Field(default_factory=list)
    removed: List[ChangelogSettingRef] = Field(default_factory=list)
    changed: List[ChangelogSettingChange] = Field(default_factory=list)
    categories_added: List[ChangelogCategoryRef] = Field(default_factory=list, alias="categoriesAdded")
    categories_removed: List[ChangelogCategoryRef] = Field(default_factory=list, alias="categoriesRemoved")
    categories_changed: List[ChangelogCategoryChange] = Field(default_factory=list, alias="categoriesChanged")

    @property
    def is_empty(self) -> bool:
        return not (
            self.added
            or self.removed
            or self.changed
            or self.categories_added
            or self.categories_removed
            or self.categories_changed
        )

"""
Shared normalisation helpers used by every stage of the catalog build.

These helpers derive the values that several components need to agree
on: a setting's configuration path, its scope (device/user), the labels
shown for its kind and platforms, the category display name it resolves
to and the cleaned text that goes into the search index.  Keeping them
in one place means the tree builder, the grouper and the indexer never
disagree about what "the same path" or "an unknown category" means.
"""

from __future__ import annotations

import hashlib
import re
import unicodedata
from typing import Iterable, List, Mapping, Optional

from bs4 import BeautifulSoup

from .config import (
    ASR_ID_PREFIX,
    ASR_RULES,
    PLATFORM_LABELS,
    REPETITION_MARKER,
    SLUG_HASH_CHARS,
    SLUG_MAX_LENGTH,
    UNKNOWN_CATEGORY,
)
from .models import AsrRuleInfo, SettingDefinition, SettingKind


# ---------------------------
# Paths & scope
# ---------------------------

def config_path(setting: SettingDefinition) -> str:
    """
    Configuration path of a setting: ``baseUri/offsetUri``.

    When only one half is present it is returned on its own; a setting
    with neither has the empty path.
    """
    base = setting.base_uri or ""
    offset = setting.offset_uri or ""
    if base and offset:
        return f"{base}/{offset}"
    return base or offset


def setting_scope(base_uri: Optional[str]) -> str:
    """Derive ``device`` / ``user`` / ``unknown`` from a baseUri."""
    if not base_uri:
        return "unknown"
    lowered = base_uri.lower()
    if "/device/" in lowered:
        return "device"
    if "/user/" in lowered:
        return "user"
    return "unknown"


def has_repetition_marker(offset_uri: Optional[str]) -> bool:
    return bool(offset_uri) and REPETITION_MARKER in offset_uri


def collection_prefix(offset_uri: Optional[str]) -> Optional[str]:
    """
    Return the part of an offsetUri before ``/[{0}]``.

    ``None`` when the path carries no repetition marker segment.
    """
    if not offset_uri:
        return None
    idx = offset_uri.find("/" + REPETITION_MARKER)
    if idx < 0:
        return None
    return offset_uri[:idx]


# ---------------------------
# Labels
# ---------------------------

KIND_LABELS = {
    SettingKind.CHOICE: "Choice",
    SettingKind.SIMPLE: "Simple",
    SettingKind.GROUP: "Group",
    SettingKind.GROUP_COLLECTION: "Group Coll.",
    SettingKind.CHOICE_COLLECTION: "Choice Coll.",
    SettingKind.SIMPLE_COLLECTION: "Simple Coll.",
    SettingKind.REDIRECT: "Redirect",
    SettingKind.UNKNOWN: "Unknown",
}

INDEX_TYPES = {
    SettingKind.CHOICE: "choice",
    SettingKind.CHOICE_COLLECTION: "choice",
    SettingKind.SIMPLE: "simple",
    SettingKind.SIMPLE_COLLECTION: "simple",
    SettingKind.GROUP: "group",
    SettingKind.GROUP_COLLECTION: "group",
    SettingKind.REDIRECT: "redirect",
    SettingKind.UNKNOWN: "unknown",
}


def setting_type_label(kind: SettingKind) -> str:
    """Human-friendly label for a setting kind, e.g. ``"Group Coll."``."""
    return KIND_LABELS[kind]


def index_setting_type(kind: SettingKind) -> str:
    return INDEX_TYPES[kind]


def split_platforms(value: Optional[str]) -> List[str]:
    """Split a comma-separated platform string into trimmed parts."""
    if not value:
        return []
    return [p.strip() for p in value.split(",") if p.strip()]


def platform_label(platforms: Iterable[str]) -> str:
    """
    Join display labels for raw platform values.

    Unmapped values are kept as-is so nothing silently disappears.
    """
    labels = [PLATFORM_LABELS.get(p.strip(), p.strip()) for p in platforms]
    return ", ".join(lbl for lbl in labels if lbl)


def resolve_category_name(category_id: Optional[str], names: Mapping[str, str]) -> str:
    """Category display name, or the ``Unknown Category`` sentinel."""
    if not category_id:
        return UNKNOWN_CATEGORY
    return names.get(category_id) or UNKNOWN_CATEGORY


def setting_slug(setting_id: str, max_length: int = SLUG_MAX_LENGTH) -> str:
    """
    Filesystem-safe slug for a setting id.

    Ids up to ``max_length`` characters pass through unchanged.  Longer
    ids are truncated and suffixed with ``_<hash>`` so distinct ids stay
    distinct.
    """
    if len(setting_id) <= max_length:
        return setting_id
    digest = hashlib.sha1(setting_id.encode("utf-8")).hexdigest()[:SLUG_HASH_CHARS]
    return setting_id[: max_length - len(digest) - 1] + "_" + digest


# ---------------------------
# ASR rules
# ---------------------------

_ASR_SUFFIX_RES = (re.compile(r"_perruleexclusions$"), re.compile(r"_(?:off|block|audit|warn)$"))


def asr_rule_info(setting_id: str) -> Optional[AsrRuleInfo]:
    """
    ASR rule behind a setting id, or ``None`` for non-ASR settings.

    Works for the rule's choice setting, its option ids (``_block``,
    ``_audit``, ...) and its ``_perruleexclusions`` child.
    """
    if not setting_id.startswith(ASR_ID_PREFIX):
        return None
    fragment = setting_id[len(ASR_ID_PREFIX):]
    for suffix in _ASR_SUFFIX_RES:
        fragment = suffix.sub("", fragment)
    rule = ASR_RULES.get(fragment)
    if rule is None:
        return None
    guid, rule_name, note = rule
    return AsrRuleInfo(guid=guid, rule_name=rule_name, note=note)


def asr_keywords(setting_id: str) -> List[str]:
    """Rule name and GUID of an ASR setting as extra search keywords."""
    info = asr_rule_info(setting_id)
    if info is None:
        return []
    return [info.rule_name, info.guid]


# ---------------------------
# Text cleaning
# ---------------------------

# Tags that actually occur as markup in exported descriptions.  Anything
# else in angle brackets (``<server>:<port>``, ``<DOMAIN>\<user>``) is
# placeholder text and must survive.
HTML_TAGS = (
    "a", "b", "br", "code", "div", "em", "h[1-6]", "i", "li", "ol", "p",
    "pre", "span", "strong", "sub", "sup", "table", "tbody", "td", "th",
    "thead", "tr", "u", "ul",
)
_HTML_TAG_RE = re.compile(r"</?(?:%s)(?:\s[^<>]*)?/?>" % "|".join(HTML_TAGS), re.IGNORECASE)
_NON_TAG_LT_RE = re.compile(r"<(?!/?(?:%s)(?:[\s/>]))" % "|".join(HTML_TAGS), re.IGNORECASE)


def strip_html(raw: str) -> str:
    """
    Strip HTML markup using BeautifulSoup.  Upstream descriptions are
    mostly plain text; without a known tag the text is returned as-is.
    Angle brackets that do not open a known tag are escaped before
    parsing so placeholders are kept as text.
    """
    if not raw:
        return ""
    if not _HTML_TAG_RE.search(raw):
        return raw
    soup = BeautifulSoup(_NON_TAG_LT_RE.sub("&lt;", raw), "lxml")
    text = normalize_whitespace(soup.get_text(" ", strip=True))
    return re.sub(r"\s+([.,!?;:])", r"\1", text)


def normalize_whitespace(text: str) -> str:
    if not text:
        return ""
    return re.sub(r"\s+", " ", text).strip()


def basic_clean(text: Optional[str]) -> str:
    """
    Cleaning applied to free text before it is indexed:

    - strip HTML
    - NFC unicode normalisation
    - collapse whitespace
    """
    if text is None:
        return ""
    text = strip_html(str(text))
    text = unicodedata.normalize("NFC", text)
    return normalize_whitespace(text)


def truncate(text: str, max_chars: int) -> str:
    if len(text) <= max_chars:
        return text
    return text[:max_chars]

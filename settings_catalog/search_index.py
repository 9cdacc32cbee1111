"""
Search index construction and query-time ranking.

Build time: every non-structural setting is projected into a flat
:class:`~settings_catalog.models.SearchIndexEntry` and the entries are
persisted as one JSON array.  Group and group-collection definitions
are skipped because they have no value of their own to search for.

Query time: :class:`SearchIndex` keeps the entries in a pandas
DataFrame with one lower-cased column per weighted field.  A query is
split on commas into independent terms (OR semantics).  For each term a
field matches when every word of the term is a prefix of some word in
that field; each candidate remembers the most prominent field that
matched (displayName > keywords > description > categoryName).

The field index alone cannot guarantee that a setting whose *name*
matches outranks one that only mentions the term in its description, so
candidates are re-ranked by name affinity before that field score is
consulted:

1. any positive name affinity beats zero affinity;
2. higher affinity wins;
3. then the field score;
4. then display name, alphabetically.

The caller's limit is applied only after ranking.

Example::

    from settings_catalog.search_index import SearchIndex, build_search_index
    index = SearchIndex(build_search_index(settings, category_names))
    for entry in index.search("firewall, vpn", limit=20):
        print(entry.display_name)
"""

from __future__ import annotations

import json
import re
from pathlib import Path
from typing import Dict, Iterable, List, Mapping, Optional, Sequence

import numpy as np
import pandas as pd
from loguru import logger

from .config import (
    DEFAULT_SEARCH_LIMIT,
    FIELD_PRIORITY,
    INDEXED_FIELDS,
    PHRASE_AFFINITY,
    SEARCH_DESCRIPTION_MAX_CHARS,
    WORD_AFFINITY,
)
from .models import GROUP_KINDS, SearchIndexEntry, SettingDefinition
from .normalize import (
    asr_keywords,
    basic_clean,
    config_path,
    index_setting_type,
    resolve_category_name,
    setting_scope,
    truncate,
)


# ---------------------------
# Build
# ---------------------------

def build_search_entry(setting: SettingDefinition, category_names: Mapping[str, str]) -> SearchIndexEntry:
    """Project one setting into its searchable fields."""
    return SearchIndexEntry(
        id=setting.id,
        display_name=setting.label,
        description=truncate(basic_clean(setting.description), SEARCH_DESCRIPTION_MAX_CHARS),
        keywords=" ".join(k for k in setting.keywords if k),
        category_id=setting.category_id,
        category_name=resolve_category_name(setting.category_id, category_names),
        scope=setting_scope(setting.base_uri),
        platform=setting.platform,
        setting_type=index_setting_type(setting.kind),
    )


def build_search_index(
    settings: Iterable[SettingDefinition],
    category_names: Mapping[str, str],
) -> List[SearchIndexEntry]:
    """
    Build the flat search index over all searchable settings.

    Group kinds are excluded; everything else keeps input order.
    """
    entries: List[SearchIndexEntry] = []
    skipped = 0
    for s in settings:
        if s.kind in GROUP_KINDS:
            skipped += 1
            continue
        entries.append(build_search_entry(s, category_names))
    logger.info("Built search index with {} entries ({} group definitions skipped)", len(entries), skipped)
    return entries


def save_search_index(entries: Sequence[SearchIndexEntry], output_path: Path) -> Path:
    output_path.parent.mkdir(parents=True, exist_ok=True)
    payload = [e.to_json_dict() for e in entries]
    with output_path.open("w", encoding="utf-8") as f:
        json.dump(payload, f, ensure_ascii=False, separators=(",", ":"))
    size_mb = output_path.stat().st_size / 1024 / 1024
    logger.info("Search index written to {} ({} entries, {:.2f} MB)", output_path, len(entries), size_mb)
    return output_path


def load_search_index(path: Path) -> List[SearchIndexEntry]:
    with path.open("r", encoding="utf-8-sig") as f:
        data = json.load(f)
    if not isinstance(data, list):
        raise TypeError(f"Search index at {path} must be a JSON array, got {type(data).__name__}")
    return [SearchIndexEntry.model_validate(d) for d in data]


# ---------------------------
# Query helpers
# ---------------------------

# Same separators the field index splits words on.
WORD_SPLIT_RE = re.compile(r"[^\w#+]+")


def split_terms(query: str) -> List[str]:
    """Comma-separated query -> trimmed, non-empty terms."""
    if not query:
        return []
    return [t.strip() for t in query.split(",") if t.strip()]


def term_words(term: str) -> List[str]:
    return [w for w in WORD_SPLIT_RE.split(term.lower()) if w]


def _tier(name: str, term: str, tiers: Sequence[int]) -> int:
    exact, prefix, word, substring = tiers
    if name == term:
        return exact
    if name.startswith(term):
        return prefix
    if (" " + term) in name or (term + " ") in name:
        return word
    if term in name:
        return substring
    return 0


def name_affinity(display_name: str, terms: Sequence[str]) -> int:
    """
    Score how closely a display name matches any of the query terms.

    Whole-term tiers: exact 100, prefix 80, standalone word 60,
    substring 40.  A multi-word term that scores nothing as a phrase is
    retried word by word (30/25/20/15) so "windows firewall" still
    favours a setting named "Firewall".  The best score over all terms
    is returned.
    """
    lower = display_name.lower()
    best = 0
    for raw in terms:
        term = raw.strip().lower()
        if not term:
            continue
        score = _tier(lower, term, PHRASE_AFFINITY)
        if score == 0:
            words = term.split()
            if len(words) > 1:
                score = max(_tier(lower, w, WORD_AFFINITY) for w in words)
        best = max(best, score)
    return best


# ---------------------------
# Index
# ---------------------------

class SearchIndex:
    """
    Read-only, in-memory field index over search entries.

    The index is immutable after construction, so concurrent callers can
    share one instance.
    """

    def __init__(self, entries: Iterable[SearchIndexEntry]):
        by_id: Dict[str, SearchIndexEntry] = {}
        for e in entries:
            by_id[e.id] = e  # last write wins
        self.entries: List[SearchIndexEntry] = list(by_id.values())
        self._frame = pd.DataFrame(
            {
                "displayName": [e.display_name.lower() for e in self.entries],
                "keywords": [e.keywords.lower() for e in self.entries],
                "description": [e.description.lower() for e in self.entries],
                "categoryName": [e.category_name.lower() for e in self.entries],
            },
            columns=INDEXED_FIELDS,
            dtype=object,
        )

    @classmethod
    def from_file(cls, path: Path) -> "SearchIndex":
        return cls(load_search_index(path))

    def __len__(self) -> int:
        return len(self.entries)

    def _field_mask(self, field: str, words: Sequence[str]) -> np.ndarray:
        column = self._frame[field]
        mask = np.ones(len(column), dtype=bool)
        for w in words:
            pattern = r"(?<![\w#+])" + re.escape(w)
            mask &= column.str.contains(pattern, regex=True, na=False).to_numpy(dtype=bool)
        return mask

    def field_scores(self, terms: Sequence[str]) -> np.ndarray:
        """
        Best field priority per entry over all terms (0 = no match).
        """
        scores = np.zeros(len(self.entries), dtype=np.int64)
        if not self.entries:
            return scores
        for term in terms:
            words = term_words(term)
            if not words:
                continue
            for field in INDEXED_FIELDS:
                mask = self._field_mask(field, words)
                scores = np.maximum(scores, np.where(mask, FIELD_PRIORITY[field], 0))
        return scores

    def search(self, query: str, limit: Optional[int] = DEFAULT_SEARCH_LIMIT) -> List[SearchIndexEntry]:
        """Ranked entries for ``query``, truncated to ``limit`` after ranking."""
        terms = split_terms(query)
        if not terms:
            return []

        scores = self.field_scores(terms)
        candidates = np.flatnonzero(scores > 0)

        def _key(pos: int):
            entry = self.entries[pos]
            affinity = name_affinity(entry.display_name, terms)
            return (
                0 if affinity > 0 else 1,
                -affinity,
                -int(scores[pos]),
                entry.display_name.casefold(),
                entry.display_name,
                entry.id,
            )

        ranked = sorted((int(p) for p in candidates), key=_key)
        if limit is not None:
            ranked = ranked[: max(limit, 0)]
        logger.debug("Query {!r}: {} candidates, returning {}", query, len(candidates), len(ranked))
        return [self.entries[p] for p in ranked]


def search(index: SearchIndex, query: str, limit: Optional[int] = DEFAULT_SEARCH_LIMIT) -> List[SearchIndexEntry]:
    return index.search(query, limit)


# ---------------------------
# Match sources
# ---------------------------

def detect_match_sources(
    setting: SettingDefinition,
    query: str,
    extra_keywords: Optional[Sequence[str]] = None,
    category_name: Optional[str] = None,
) -> List[str]:
    """
    Which parts of a setting the query hits.

    Returns a subset of ``title``, ``description``, ``csp``, ``keywords``
    and ``category`` in that order.  Each term and each of its words is
    tried as a case-insensitive substring.  ``extra_keywords`` defaults to
    the ASR rule name and GUID for Defender ASR settings.
    """
    terms = split_terms(query)
    if not terms:
        return []
    if extra_keywords is None:
        extra_keywords = asr_keywords(setting.id)
    tokens: List[str] = []
    for term in terms:
        for tok in [term.lower()] + term.lower().split():
            if tok not in tokens:
                tokens.append(tok)

    def _hit(text: Optional[str]) -> bool:
        if not text:
            return False
        lower = text.lower()
        return any(t in lower for t in tokens)

    sources: List[str] = []
    if _hit(setting.display_name) or _hit(setting.name):
        sources.append("title")
    if _hit(setting.description):
        sources.append("description")
    if _hit(config_path(setting)):
        sources.append("csp")
    if any(_hit(k) for k in setting.keywords) or any(_hit(k) for k in extra_keywords):
        sources.append("keywords")
    if _hit(category_name):
        sources.append("category")
    return sources

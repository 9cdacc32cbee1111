"""
Grouping of flat setting lists into the rows a category page displays.

Given the settings of one category (or of one search result set) this
module decides which settings are top-level rows and which are nested
under another setting:

- the synthetic "Top Level Setting Group Collection" container is never
  shown; its children are promoted to top-level rows instead;
- a child whose configuration path equals its parent's is the same leaf
  exported twice and is dropped;
- a child whose parent is missing from the working set is promoted
  rather than lost;
- repeatable collection members (``[{0}]`` in the offsetUri) are moved
  under the group-collection header whose offsetUri is their prefix.

The result is fully sorted by display name so the same input always
produces the same grouping.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional, Sequence, Set, Tuple

from loguru import logger

from .config import STRUCTURAL_CONTAINER_NAME
from .models import SettingDefinition, SettingKind
from .normalize import collection_prefix, config_path, has_repetition_marker


@dataclass
class GroupingResult:
    root_settings: List[SettingDefinition] = field(default_factory=list)
    child_map: Dict[str, List[SettingDefinition]] = field(default_factory=dict)

    def children_of(self, setting_id: str) -> List[SettingDefinition]:
        return self.child_map.get(setting_id, [])

    def walk(self) -> Iterable[Tuple[int, SettingDefinition]]:
        """Yield ``(depth, setting)`` in display order."""
        stack = [(0, s) for s in reversed(self.root_settings)]
        while stack:
            depth, s = stack.pop()
            yield depth, s
            stack.extend((depth + 1, c) for c in reversed(self.children_of(s.id)))


def sort_key(s: SettingDefinition) -> Tuple[str, str, str]:
    label = s.label
    return (label.casefold(), label, s.id)


def is_structural_container(s: SettingDefinition, container_name: str = STRUCTURAL_CONTAINER_NAME) -> bool:
    return s.kind is SettingKind.GROUP_COLLECTION and s.display_name == container_name


def _index(settings: Iterable[SettingDefinition]) -> Dict[str, SettingDefinition]:
    by_id: Dict[str, SettingDefinition] = {}
    for s in settings:
        by_id[s.id] = s  # last write wins
    return by_id


def _resolve_parent(
    setting_id: str,
    parent_of: Dict[str, str],
    dropped: Set[str],
) -> Optional[str]:
    """Follow the parent edge past dropped duplicates."""
    parent = parent_of.get(setting_id)
    seen = {setting_id}
    while parent is not None and parent in dropped:
        if parent in seen:
            return None
        seen.add(parent)
        parent = parent_of.get(parent)
    return parent


def group_settings(
    settings: Sequence[SettingDefinition],
    container_name: str = STRUCTURAL_CONTAINER_NAME,
) -> GroupingResult:
    """
    Split ``settings`` into sorted root rows and a parent-id -> children map.

    ``container_name`` is the display name of the synthetic group
    collection whose children are promoted to the top level.
    """
    by_id = _index(settings)
    containers = {sid for sid, s in by_id.items() if is_structural_container(s, container_name)}

    # Declared parent edges inside the working set.  Missing parents and
    # structural containers leave the setting parentless (promoted).
    parent_of: Dict[str, str] = {}
    promoted = 0
    for sid, s in by_id.items():
        if sid in containers or s.is_root:
            continue
        parent_id = s.root_definition_id
        if parent_id in containers:
            continue
        if parent_id not in by_id:
            promoted += 1
            continue
        parent_of[sid] = parent_id

    # Same path as the parent -> content-free duplicate.
    dropped = {
        sid
        for sid, parent_id in parent_of.items()
        if config_path(by_id[sid]) == config_path(by_id[parent_id])
    }

    children: Dict[str, List[str]] = {}
    roots: List[str] = []
    for sid in by_id:
        if sid in containers or sid in dropped:
            continue
        parent_id = _resolve_parent(sid, parent_of, dropped) if sid in parent_of else None
        if parent_id is None:
            roots.append(sid)
        else:
            children.setdefault(parent_id, []).append(sid)

    roots = _promote_unreachable(roots, children, by_id, containers, dropped)
    roots = _nest_collections(roots, children, by_id)

    root_settings = sorted((by_id[sid] for sid in roots), key=sort_key)
    child_map: Dict[str, List[SettingDefinition]] = {}
    _collect(root_settings, children, by_id, child_map)

    logger.debug(
        "Grouped {} settings: {} roots, {} parents, {} duplicates dropped, {} orphans promoted",
        len(by_id),
        len(root_settings),
        len(child_map),
        len(dropped),
        promoted,
    )
    return GroupingResult(root_settings=root_settings, child_map=child_map)


def _promote_unreachable(
    roots: List[str],
    children: Dict[str, List[str]],
    by_id: Dict[str, SettingDefinition],
    containers: Set[str],
    dropped: Set[str],
) -> List[str]:
    """Break parent cycles by promoting one member of each cycle to root."""
    reachable: Set[str] = set()

    def _mark(start: str) -> None:
        stack = [start]
        while stack:
            cur = stack.pop()
            if cur in reachable:
                continue
            reachable.add(cur)
            stack.extend(children.get(cur, []))

    for sid in roots:
        _mark(sid)

    parent_index = {kid: parent for parent, kids in children.items() for kid in kids}
    out = list(roots)
    for sid in by_id:
        if sid in reachable or sid in containers or sid in dropped:
            continue
        # Climb to a member of the cycle itself.
        seen: Set[str] = set()
        cur = sid
        while cur not in seen and cur in parent_index:
            seen.add(cur)
            cur = parent_index[cur]
        logger.warning("Setting parent cycle detected at {}; promoting it to root", cur)
        parent = parent_index.pop(cur, None)
        if parent is not None:
            children[parent] = [k for k in children[parent] if k != cur]
        out.append(cur)
        _mark(cur)
    return out


def _nest_collections(
    roots: List[str],
    children: Dict[str, List[str]],
    by_id: Dict[str, SettingDefinition],
) -> List[str]:
    """
    Re-parent repeatable collection members under their header.

    Headers are root group collections whose offsetUri has no repetition
    marker, keyed by that offsetUri.  Members anywhere in the grouping
    move under the first header registered for their prefix.
    """
    headers: Dict[str, str] = {}
    for sid in roots:
        s = by_id[sid]
        if (
            s.kind is SettingKind.GROUP_COLLECTION
            and s.offset_uri
            and not has_repetition_marker(s.offset_uri)
        ):
            headers.setdefault(s.offset_uri, sid)
    if not headers:
        return roots

    def _target(sid: str, current_parent: Optional[str]) -> Optional[str]:
        prefix = collection_prefix(by_id[sid].offset_uri)
        if prefix is None:
            return None
        header = headers.get(prefix)
        if header is None or header == current_parent or header == sid:
            return None
        return header

    moves: List[Tuple[str, str]] = []
    kept_roots: List[str] = []
    for sid in roots:
        header = _target(sid, None)
        if header is None:
            kept_roots.append(sid)
        else:
            moves.append((sid, header))

    rebuilt: Dict[str, List[str]] = {}
    for parent_id, kids in children.items():
        remaining: List[str] = []
        for sid in kids:
            header = _target(sid, parent_id)
            if header is None:
                remaining.append(sid)
            else:
                moves.append((sid, header))
        rebuilt[parent_id] = remaining

    for sid, header in moves:
        rebuilt.setdefault(header, []).append(sid)

    children.clear()
    children.update(rebuilt)
    return kept_roots


def _collect(
    nodes: List[SettingDefinition],
    children: Dict[str, List[str]],
    by_id: Dict[str, SettingDefinition],
    child_map: Dict[str, List[SettingDefinition]],
) -> None:
    for s in nodes:
        kids = children.get(s.id)
        if not kids or s.id in child_map:
            continue
        ordered = sorted((by_id[k] for k in kids), key=sort_key)
        child_map[s.id] = ordered
        _collect(ordered, children, by_id, child_map)


# ---------------------------
# Counting
# ---------------------------

def count_visible_root_settings(settings: Sequence[SettingDefinition]) -> int:
    """Number of top-level rows :func:`group_settings` would display."""
    return len(group_settings(settings).root_settings)


def count_visible_settings(settings: Iterable[SettingDefinition]) -> Dict[str, int]:
    """
    Per-category number of settings that show up as rows.

    Roots always count; a child counts unless its configuration path is
    identical to its parent's (it would be hidden as a duplicate).
    Children whose parent is missing count as well.
    """
    by_id = _index(settings)
    counts: Dict[str, int] = {}
    for s in by_id.values():
        if not s.is_root:
            parent = by_id.get(s.root_definition_id or "")
            if parent is not None and config_path(s) == config_path(parent):
                continue
        counts[s.category_id] = counts.get(s.category_id, 0) + 1
    return counts

"""
Category tree construction for the settings catalog.

The export delivers categories as a flat list with parent pointers.  This
module turns that list into a sorted forest of
:class:`~settings_catalog.models.CategoryTreeNode` objects with rolled-up
setting counts.  The upstream data is not clean, so the builder is
lenient:

* self-referencing parents, missing parents and parent cycles all turn the
  category into a root instead of dropping it;
* siblings sharing a display name are merged when their platform,
  technology and usage metadata is identical (the merged-away ids are
  reported in a merge map so settings can follow them), and are otherwise
  disambiguated by appending a platform label to every variant except the
  one with the most settings.

Work happens on private mutable nodes; the published tree is rebuilt from
them as immutable models once every pass is done.

Example::

    from settings_catalog.category_tree import build_category_tree
    result = build_category_tree(categories, counts)
    for root in result.roots:
        print(root.display_name, root.setting_count)
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Mapping, Optional, Sequence, Set, Tuple

from loguru import logger

from .config import PLATFORM_ALIASES, ROOT_CATEGORY_ID, UNKNOWN_CATEGORY
from .models import CategoryTreeNode, SettingCategory, SettingDefinition
from .normalize import platform_label, split_platforms


@dataclass
class _Node:
    category: SettingCategory
    display_name: str
    own_count: int
    order: int
    children: List["_Node"] = field(default_factory=list)

    @property
    def meta_key(self) -> Tuple[str, str, str]:
        c = self.category
        return (c.platforms or "", c.technologies or "", c.setting_usage or "")


@dataclass
class CategoryTreeResult:
    roots: List[CategoryTreeNode]
    merge_map: Dict[str, str]  # secondary id -> primary id


def _name_key(name: str) -> Tuple[str, str]:
    return (name.casefold(), name)


def _sort_siblings(nodes: List[_Node]) -> List[_Node]:
    # Stable: equal names keep discovery order.
    return sorted(nodes, key=lambda n: _name_key(n.display_name))


def _canonical_order(nodes: Sequence[_Node]) -> List[_Node]:
    """Largest own count first; equal counts fall back to discovery order."""
    return sorted(nodes, key=lambda n: (-n.own_count, n.order))


# ---------------------------
# Construction
# ---------------------------

def _index_categories(categories: Iterable[SettingCategory]) -> Dict[str, SettingCategory]:
    by_id: Dict[str, SettingCategory] = {}
    duplicates = 0
    for cat in categories:
        if cat.id in by_id:
            duplicates += 1
        by_id[cat.id] = cat  # last write wins
    if duplicates:
        logger.warning("Category export contains {} duplicate ids; keeping the last record", duplicates)
    return by_id


def _link(nodes: Dict[str, _Node]) -> List[_Node]:
    """Attach every node to its parent; return the roots in discovery order."""
    roots: List[_Node] = []
    parent_of: Dict[str, str] = {}
    orphans = 0
    for cid, node in nodes.items():
        parent_id = node.category.parent_category_id
        if not parent_id or parent_id == cid:
            roots.append(node)
        elif parent_id not in nodes:
            orphans += 1
            roots.append(node)
        else:
            parent_of[cid] = parent_id
    if orphans:
        logger.warning("{} categories reference a missing parent; treating them as roots", orphans)

    # Parent cycles never reach a root; break each one where the walk
    # first re-enters it.
    reachable: Set[str] = {n.category.id for n in roots}
    for cid in nodes:
        chain: List[str] = []
        seen: Set[str] = set()
        cur: Optional[str] = cid
        while cur is not None and cur not in reachable and cur not in seen:
            seen.add(cur)
            chain.append(cur)
            cur = parent_of.get(cur)
        if cur is not None and cur in seen:
            logger.warning("Category parent cycle detected at {}; promoting it to root", cur)
            parent_of.pop(cur, None)
            roots.append(nodes[cur])
        reachable.update(chain)

    for cid, parent_id in parent_of.items():
        nodes[parent_id].children.append(nodes[cid])
    roots.sort(key=lambda n: n.order)
    return roots


# ---------------------------
# Sibling deduplication
# ---------------------------

def _dedupe_siblings(siblings: List[_Node], merge_map: Dict[str, str]) -> List[_Node]:
    """
    Merge or disambiguate same-named siblings, recursively.

    Returns a fresh sibling list; the input list is not modified.
    """
    by_name: Dict[str, List[_Node]] = {}
    for node in siblings:
        by_name.setdefault(node.display_name, []).append(node)

    kept: List[_Node] = []
    for name, group in by_name.items():
        if len(group) == 1:
            kept.extend(group)
            continue

        # Identical metadata -> true duplicates, merged into one node.
        by_meta: Dict[Tuple[str, str, str], List[_Node]] = {}
        for node in group:
            by_meta.setdefault(node.meta_key, []).append(node)

        survivors: List[_Node] = []
        for members in by_meta.values():
            primary, *secondaries = _canonical_order(members)
            for secondary in secondaries:
                primary.own_count += secondary.own_count
                primary.children = primary.children + secondary.children
                merge_map[secondary.category.id] = primary.category.id
            survivors.append(primary)

        if len(survivors) > 1:
            canonical, *variants = _canonical_order(survivors)
            for node in variants:
                label = platform_label(split_platforms(node.category.platforms) or ["unknown"])
                node.display_name = f"{name} ({label})"
            logger.debug("Disambiguated {} variants of category {!r}", len(variants), name)

        kept.extend(survivors)

    # A disambiguated name can equal an existing sibling's; both are kept.
    seen_names: Set[str] = set()
    for node in kept:
        if node.display_name in seen_names:
            logger.debug("Sibling categories share the name {!r} after disambiguation", node.display_name)
        seen_names.add(node.display_name)

    for node in kept:
        node.children = _dedupe_siblings(node.children, merge_map)
    return kept


def _sort_tree(nodes: List[_Node]) -> List[_Node]:
    ordered = _sort_siblings(nodes)
    for node in ordered:
        node.children = _sort_tree(node.children)
    return ordered


# ---------------------------
# Roll-up & publish
# ---------------------------

def _publish(node: _Node) -> CategoryTreeNode:
    children = [_publish(child) for child in node.children]
    total = node.own_count + sum(c.setting_count for c in children)
    fields = node.category.model_dump()
    fields["display_name"] = node.display_name
    return CategoryTreeNode(**fields, children=children, setting_count=total)


def build_category_tree(
    categories: Iterable[SettingCategory],
    setting_counts: Mapping[str, int],
) -> CategoryTreeResult:
    """
    Build the deduplicated category forest with rolled-up counts.

    ``setting_counts`` maps a category id to the number of settings that
    belong to that category directly; categories missing from the map
    count zero.  Every node of the result satisfies
    ``setting_count == own + sum(child.setting_count)``.
    """
    by_id = _index_categories(categories)
    nodes: Dict[str, _Node] = {}
    for order, (cid, cat) in enumerate(by_id.items()):
        nodes[cid] = _Node(
            category=cat,
            display_name=cat.display_name,
            own_count=int(setting_counts.get(cid, 0) or 0),
            order=order,
        )

    roots = _sort_tree(_link(nodes))
    merge_map: Dict[str, str] = {}
    roots = _dedupe_siblings(roots, merge_map)
    roots = _sort_tree(roots)

    published = [_publish(r) for r in roots]
    logger.info(
        "Built category tree: {} categories, {} roots, {} merged",
        len(nodes),
        len(published),
        len(merge_map),
    )
    return CategoryTreeResult(roots=published, merge_map=merge_map)


def iter_tree(roots: Iterable[CategoryTreeNode]) -> Iterable[CategoryTreeNode]:
    """Depth-first, pre-order walk over a published forest."""
    for node in roots:
        yield node
        yield from iter_tree(node.children)


# ---------------------------
# Platform filter
# ---------------------------

def matches_platform_filter(platform_value: Optional[str], selected: Sequence[str]) -> bool:
    """
    True when any comma-separated part of ``platform_value`` satisfies any
    selected platform (through :data:`PLATFORM_ALIASES`).
    """
    if not platform_value:
        return False
    parts = split_platforms(platform_value)
    for sel in selected:
        aliases = PLATFORM_ALIASES.get(sel, [sel])
        if any(p in aliases for p in parts):
            return True
    return False


def consolidate_settings_by_category(
    settings: Iterable[SettingDefinition],
    merge_map: Optional[Mapping[str, str]] = None,
) -> Dict[str, List[SettingDefinition]]:
    """Bucket settings by category id, following merged-away ids to their primary."""
    merge_map = merge_map or {}
    buckets: Dict[str, List[SettingDefinition]] = {}
    for s in settings:
        cid = merge_map.get(s.category_id, s.category_id)
        buckets.setdefault(cid, []).append(s)
    return buckets


def filter_category_tree(
    roots: Sequence[CategoryTreeNode],
    settings_by_category: Mapping[str, Sequence[SettingDefinition]],
    platforms: Sequence[str],
) -> List[CategoryTreeNode]:
    """
    Recompute counts for a platform filter.

    A node's own count becomes the number of root settings in that
    category whose platform matches; counts are rolled up again and nodes
    left with nothing are dropped.  An empty filter returns ``roots``
    unchanged.
    """
    if not platforms:
        return list(roots)

    def _filter(node: CategoryTreeNode) -> Optional[CategoryTreeNode]:
        children = [c for c in (_filter(child) for child in node.children) if c is not None]
        own = sum(
            1
            for s in settings_by_category.get(node.id, [])
            if s.is_root and matches_platform_filter(s.platform, platforms)
        )
        total = own + sum(c.setting_count for c in children)
        if total == 0 and not children:
            return None
        return node.model_copy(update={"children": children, "setting_count": total})

    filtered = [n for n in (_filter(r) for r in roots) if n is not None]
    logger.debug("Platform filter {} kept {} of {} roots", list(platforms), len(filtered), len(roots))
    return filtered


# ---------------------------
# Breadcrumbs
# ---------------------------

def category_breadcrumb(category_id: str, categories: Iterable[SettingCategory]) -> List[str]:
    """
    Display names of a category's ancestors, outermost first.

    The category itself is not included.  Walking stops at the all-zero
    root id, at a missing parent, or when a cycle is detected.
    """
    names: Dict[str, str] = {}
    parents: Dict[str, Optional[str]] = {}
    for cat in categories:
        names[cat.id] = cat.display_name
        parents[cat.id] = cat.parent_category_id

    crumbs: List[str] = []
    visited: Set[str] = {category_id}
    current = parents.get(category_id)
    while current and current != ROOT_CATEGORY_ID and current not in visited:
        visited.add(current)
        crumbs.insert(0, names.get(current) or UNKNOWN_CATEGORY)
        current = parents.get(current)
    return crumbs

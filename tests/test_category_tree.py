"""Tests for the category tree builder, platform filter and breadcrumbs."""

import json

from settings_catalog.category_tree import (
    build_category_tree,
    category_breadcrumb,
    consolidate_settings_by_category,
    filter_category_tree,
    iter_tree,
    matches_platform_filter,
)
from settings_catalog.config import ROOT_CATEGORY_ID, UNKNOWN_CATEGORY

from conftest import make_category, make_setting


def _names(nodes):
    return [n.display_name for n in nodes]


def _dump(result):
    return json.dumps([n.to_json_dict() for n in result.roots]) + json.dumps(result.merge_map)


class TestDisambiguation:
    """Tests for same-named siblings with different metadata."""

    def test_canonical_keeps_name_others_get_platform(self):
        """The largest-count variant keeps the bare name."""
        categories = [
            make_category("A", "Edge"),
            make_category("B", "Edge", platforms="windows10"),
            make_category("C", "Edge", platforms="macOS"),
        ]
        result = build_category_tree(categories, {"A": 5, "B": 0, "C": 3})

        by_id = {n.id: n for n in result.roots}
        assert by_id["A"].display_name == "Edge"
        assert by_id["C"].display_name == "Edge (macOS)"
        assert by_id["B"].display_name == "Edge (Windows)"
        assert result.merge_map == {}

    def test_missing_platform_labelled_unknown(self):
        """A variant without platforms is labelled as unknown."""
        categories = [
            make_category("A", "Edge", platforms="windows10"),
            make_category("B", "Edge", technologies="mdm"),
        ]
        result = build_category_tree(categories, {"A": 2})
        assert sorted(_names(result.roots)) == ["Edge", "Edge (unknown)"]

    def test_label_can_repeat_existing_sibling_name(self):
        """A disambiguated name equal to an existing sibling keeps both nodes."""
        categories = [
            make_category("A", "Edge", platforms="windows10"),
            make_category("B", "Edge", platforms="macOS"),
            make_category("C", "Edge (macOS)", platforms="macOS"),
        ]
        result = build_category_tree(categories, {"A": 5, "B": 1, "C": 2})
        assert _names(result.roots) == ["Edge", "Edge (macOS)", "Edge (macOS)"]
        assert sorted(n.id for n in result.roots) == ["A", "B", "C"]
        assert result.merge_map == {}

    def test_count_ties_go_to_first_discovered(self):
        """Equal counts keep the first category in input order canonical."""
        categories = [
            make_category("B", "Edge", platforms="macOS"),
            make_category("A", "Edge", platforms="windows10"),
        ]
        result = build_category_tree(categories, {})
        by_id = {n.id: n for n in result.roots}
        assert by_id["B"].display_name == "Edge"
        assert by_id["A"].display_name == "Edge (Windows)"


class TestMerging:
    """Tests for true duplicate categories."""

    def test_identical_metadata_merges(self):
        """Duplicates merge into the largest and record the merge."""
        categories = [
            make_category("A", "Edge", platforms="windows10"),
            make_category("B", "Edge", platforms="windows10"),
            make_category("A1", "Updates", parent="A"),
            make_category("B1", "Privacy", parent="B"),
        ]
        result = build_category_tree(categories, {"A": 1, "B": 4, "A1": 2, "B1": 3})

        assert len(result.roots) == 1
        edge = result.roots[0]
        assert edge.id == "B"
        assert _names(edge.children) == ["Privacy", "Updates"]
        assert edge.setting_count == 1 + 4 + 2 + 3
        assert result.merge_map == {"A": "B"}

    def test_merged_children_are_deduplicated(self):
        """Children brought together by a merge are deduplicated too."""
        categories = [
            make_category("A", "Edge"),
            make_category("B", "Edge"),
            make_category("A1", "Updates", parent="A"),
            make_category("B1", "Updates", parent="B"),
        ]
        result = build_category_tree(categories, {"A1": 1, "B1": 2})
        edge = result.roots[0]
        assert _names(edge.children) == ["Updates"]
        assert edge.children[0].setting_count == 3
        assert edge.setting_count == 3
        assert result.merge_map["A1"] == "B1"


class TestStructure:
    """Tests for linking, sorting and roll-up."""

    def test_roll_up_invariant(self):
        """Every node's count equals own plus children."""
        categories = [
            make_category("r", "Root"),
            make_category("a", "Alpha", parent="r"),
            make_category("b", "Beta", parent="r"),
            make_category("a1", "Deep", parent="a"),
        ]
        own = {"r": 1, "a": 2, "b": 3, "a1": 4}
        result = build_category_tree(categories, own)
        for node in iter_tree(result.roots):
            assert node.setting_count == own.get(node.id, 0) + sum(c.setting_count for c in node.children)
        assert result.roots[0].setting_count == 10

    def test_siblings_sorted_case_insensitively(self):
        """Siblings sort alphabetically ignoring case."""
        categories = [make_category("1", "beta"), make_category("2", "Alpha"), make_category("3", "Gamma")]
        result = build_category_tree(categories, {})
        assert _names(result.roots) == ["Alpha", "beta", "Gamma"]

    def test_missing_and_self_parents_become_roots(self):
        """Unresolvable parents never drop a category."""
        categories = [
            make_category("a", "Orphan", parent="nowhere"),
            make_category("b", "Self", parent="b"),
        ]
        result = build_category_tree(categories, {"a": 1})
        assert _names(result.roots) == ["Orphan", "Self"]

    def test_parent_cycle_is_broken(self):
        """Categories in a parent cycle still appear exactly once."""
        categories = [
            make_category("a", "A", parent="b"),
            make_category("b", "B", parent="a"),
            make_category("c", "C", parent="a"),
        ]
        result = build_category_tree(categories, {"a": 1, "b": 1, "c": 1})
        ids = [n.id for n in iter_tree(result.roots)]
        assert sorted(ids) == ["a", "b", "c"]
        assert sum(r.setting_count for r in result.roots) == 3

    def test_duplicate_ids_keep_last(self):
        """A repeated category id keeps the last record."""
        categories = [make_category("a", "First"), make_category("a", "Second")]
        result = build_category_tree(categories, {})
        assert _names(result.roots) == ["Second"]

    def test_idempotent(self):
        """Identical input yields byte-identical output."""
        categories = [
            make_category("A", "Edge"),
            make_category("B", "Edge", platforms="windows10"),
            make_category("C", "Edge", platforms="macOS"),
            make_category("D", "Office", parent="A"),
            make_category("E", "office", parent="A"),
        ]
        counts = {"A": 5, "C": 3, "D": 1}
        assert _dump(build_category_tree(categories, counts)) == _dump(build_category_tree(categories, counts))


class TestPlatformFilter:
    """Tests for platform filtering of the tree."""

    def test_android_alias(self):
        """Android matches enterprise and AOSP platforms."""
        assert matches_platform_filter("androidEnterprise", ["android"])
        assert matches_platform_filter("aosp", ["android"])
        assert not matches_platform_filter("iOS", ["android"])

    def test_comma_separated_values(self):
        """Any comma-separated part can match."""
        assert matches_platform_filter("macOS, iOS", ["iOS"])
        assert not matches_platform_filter("", ["iOS"])

    def test_filter_recounts_and_drops_empty(self):
        """Counts are recomputed from matching root settings."""
        categories = [
            make_category("r", "Root"),
            make_category("w", "Windows only", parent="r"),
            make_category("m", "Mac only", parent="r"),
        ]
        settings = [
            make_setting("1", category_id="w", applicability={"platform": "windows10"}),
            make_setting("2", category_id="w", applicability={"platform": "windows10"}),
            make_setting("3", category_id="m", applicability={"platform": "macOS"}),
            make_setting("4", category_id="m", parent="3", applicability={"platform": "macOS"}),
        ]
        tree = build_category_tree(categories, {"w": 2, "m": 2}).roots
        filtered = filter_category_tree(tree, consolidate_settings_by_category(settings), ["macOS"])

        assert len(filtered) == 1
        assert _names(filtered[0].children) == ["Mac only"]
        assert filtered[0].children[0].setting_count == 1
        assert filtered[0].setting_count == 1
        # the source tree is untouched
        assert tree[0].setting_count == 4

    def test_no_filter_returns_tree(self):
        """An empty selection keeps every node."""
        tree = build_category_tree([make_category("a", "A")], {}).roots
        assert filter_category_tree(tree, {}, []) == tree

    def test_consolidation_follows_merge_map(self):
        """Settings of merged-away categories land on the primary."""
        settings = [make_setting("1", category_id="A"), make_setting("2", category_id="B")]
        buckets = consolidate_settings_by_category(settings, {"A": "B"})
        assert list(buckets) == ["B"]
        assert [s.id for s in buckets["B"]] == ["1", "2"]


class TestBreadcrumb:
    """Tests for ancestor breadcrumbs."""

    def test_ancestors_root_first(self):
        """Ancestors are listed outermost first."""
        categories = [
            make_category("a", "Top", parent=ROOT_CATEGORY_ID),
            make_category("b", "Middle", parent="a"),
            make_category("c", "Leaf", parent="b"),
        ]
        assert category_breadcrumb("c", categories) == ["Top", "Middle"]
        assert category_breadcrumb("a", categories) == []

    def test_unknown_ancestor(self):
        """An ancestor without a name shows the sentinel."""
        categories = [make_category("b", "", parent=None), make_category("c", "Leaf", parent="b")]
        assert category_breadcrumb("c", categories) == [UNKNOWN_CATEGORY]

    def test_cycle_guard(self):
        """A parent cycle stops the walk."""
        categories = [make_category("a", "A", parent="b"), make_category("b", "B", parent="a")]
        assert category_breadcrumb("a", categories) == ["B"]

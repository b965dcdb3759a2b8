"""
Tests for portables.orchestration.categories.

Tests cover:
- CategorySet case-insensitivity
- Inclusion set resolution (direct children, pages, portal)
- Level ordering, claiming, pruning and orphan flattening
"""

import pytest

from portables.orchestration.categories import (
    CATEGORY_PAGES,
    CATEGORY_PORTAL,
    CategoryGraph,
    CategorySet,
    Level,
    is_selected,
    resolve_for_request,
    resolve_included,
)
from portables.orchestration.requests import ExportRequest, PageSelection


class Svc:
    """Plain stand-in with the attributes the graph reads."""

    def __init__(self, category, parent="", priority=0):
        self.category = category
        self.parent_category = parent
        self.priority = priority

    def __repr__(self):
        return self.category


def names(level):
    return [s.category for s in level.services]


class TestCategorySet:
    def test_case_insensitive_membership(self):
        s = CategorySet(["Users"])
        assert "users" in s
        assert "USERS" in s
        assert "Roles" not in s

    def test_keeps_first_spelling(self):
        s = CategorySet(["Users", "USERS"])
        assert len(s) == 1
        assert list(s) == ["Users"]

    def test_ignores_empty_and_non_strings(self):
        s = CategorySet(["", "A"])
        assert list(s) == ["A"]
        assert 1 not in s

    def test_discard(self):
        s = CategorySet(["A"])
        s.discard("a")
        assert len(s) == 0


class TestResolveIncluded:
    def test_adds_direct_children_and_portal(self):
        services = [Svc("A"), Svc("A1", "A"), Svc("A1x", "A1"), Svc("B")]
        included = resolve_included(["A"], services)
        assert set(included) == {"A", "A1", CATEGORY_PORTAL}

    def test_children_matched_case_insensitively(self):
        services = [Svc("Users"), Svc("Roles", "users")]
        assert "Roles" in resolve_included(["USERS"], services)

    def test_pages_added_when_selected(self):
        included = resolve_included(["Users"], [], pages_selected=True)
        assert CATEGORY_PAGES in included
        assert CATEGORY_PORTAL in included

    def test_pages_alone_still_adds_portal(self):
        included = resolve_included([], [], pages_selected=True)
        assert set(included) == {CATEGORY_PAGES, CATEGORY_PORTAL}

    def test_empty_request_is_empty(self):
        assert len(resolve_included([], [Svc("A")])) == 0

    def test_resolve_for_request(self):
        request = ExportRequest(items_to_export=["Users"], pages=[PageSelection(page_id=1)])
        included = resolve_for_request(request, [Svc("Users")])
        assert set(included) == {"Users", CATEGORY_PAGES, CATEGORY_PORTAL}


class TestIsSelected:
    def test_root_level_uses_own_category(self):
        level = Level(depth=0, services=[])
        assert is_selected(Svc("a"), level, CategorySet(["A"]))
        assert not is_selected(Svc("B"), level, CategorySet(["A"]))

    def test_deeper_level_uses_parent(self):
        level = Level(depth=1, services=[])
        assert is_selected(Svc("X", parent="A"), level, CategorySet(["A"]))
        assert not is_selected(Svc("A", parent="Z"), level, CategorySet(["A"]))

    def test_orphans_always_selected(self):
        level = Level(depth=2, services=[], orphaned=True)
        assert is_selected(Svc("X", parent="Missing"), level, CategorySet())


class TestCategoryGraph:
    def test_levels_in_priority_order(self):
        graph = CategoryGraph(
            [
                Svc("A2", "A", 2),
                Svc("B", priority=2),
                Svc("A1", "A", 1),
                Svc("A", priority=1),
                Svc("Portal", priority=0),
            ]
        )
        levels = list(graph.levels())
        assert [names(lv) for lv in levels] == [["Portal", "A", "B"], ["A1", "A2"]]
        assert [lv.depth for lv in levels] == [0, 1]
        assert not any(lv.orphaned for lv in levels)

    def test_equal_priorities_keep_discovery_order(self):
        graph = CategoryGraph([Svc("C"), Svc("A"), Svc("B")])
        assert names(next(graph.levels())) == ["C", "A", "B"]

    def test_children_follow_parent_order(self):
        graph = CategoryGraph(
            [Svc("B1", "B"), Svc("A1", "A"), Svc("B", priority=2), Svc("A", priority=1)]
        )
        levels = list(graph.levels())
        assert names(levels[1]) == ["A1", "B1"]

    def test_three_levels(self):
        graph = CategoryGraph([Svc("A"), Svc("A1", "A"), Svc("A1x", "A1")])
        assert [names(lv) for lv in graph.levels()] == [["A"], ["A1"], ["A1x"]]

    def test_parent_matching_case_insensitive(self):
        graph = CategoryGraph([Svc("Users"), Svc("Roles", "USERS")])
        assert [names(lv) for lv in graph.levels()] == [["Users"], ["Roles"]]

    def test_orphans_flattened_into_last_level(self):
        graph = CategoryGraph([Svc("A"), Svc("X", "Missing", 5), Svc("Y", "X", 1)])
        levels = list(graph.levels())
        assert names(levels[0]) == ["A"]
        assert levels[-1].orphaned
        assert names(levels[-1]) == ["Y", "X"]
        assert [s.category for s in graph.orphans] == ["X", "Y"]

    def test_no_roots_makes_single_orphan_level(self):
        graph = CategoryGraph([Svc("X", "Q"), Svc("Y", "R")])
        levels = list(graph.levels())
        assert len(levels) == 1
        assert levels[0].orphaned
        assert levels[0].depth == 0

    def test_every_service_visited_once(self):
        services = [Svc("A"), Svc("A1", "A"), Svc("B"), Svc("O", "Nope"), Svc("A1x", "A1")]
        graph = CategoryGraph(services)
        visited = [s for lv in graph.levels() for s in lv.services]
        assert sorted(s.category for s in visited) == sorted(s.category for s in services)

    def test_prune_drops_subtree(self):
        a = Svc("A")
        graph = CategoryGraph([a, Svc("A1", "A"), Svc("A1x", "A1"), Svc("B"), Svc("B1", "B")])
        levels = graph.levels()
        first = next(levels)
        assert names(first) == ["A", "B"]
        graph.prune(a)
        rest = list(levels)
        assert [names(lv) for lv in rest] == [["B1"]]
        assert sorted(s.category for s in graph.dropped) == ["A1", "A1x"]
        assert graph.orphans == []

    def test_children_of(self):
        graph = CategoryGraph([Svc("A"), Svc("A1", "A"), Svc("A2", "a")])
        assert [s.category for s in graph.children_of("A")] == ["A1", "A2"]
        assert graph.children_of("B") == []

    @pytest.mark.parametrize("count", [0, 1])
    def test_empty_and_single(self, count):
        graph = CategoryGraph([Svc("A")][:count])
        assert len(list(graph.levels())) == count

"""Tests for calltrawl.navigation."""
from __future__ import annotations

import pytest

from calltrawl.events import (
    FetchTree, Intent, Key, OpenDetail, Resize, RootsLoaded, Tick, TreeLoaded,
)
from calltrawl.navigation import TreeView, clamp, scroll_offset


class TestClamp:
    def test_bounds(self):
        assert clamp(-3, 5) == 0
        assert clamp(9, 5) == 4
        assert clamp(2, 5) == 2

    def test_empty(self):
        assert clamp(3, 0) == 0


class TestScrollOffset:
    def test_inside_window_unchanged(self):
        assert scroll_offset(5, 3, 10) == 3

    def test_above_window(self):
        assert scroll_offset(2, 3, 10) == 2

    def test_below_window(self):
        assert scroll_offset(15, 3, 10) == 6


@pytest.fixture
def graph(promise):
    return [
        promise("r", created=0),
        promise("a", parent="r", created=1),
        promise("a1", parent="a", created=2),
        promise("a2", parent="a", created=3),
        promise("a3", parent="a", created=4),
        promise("b", parent="r", created=5),
    ]


@pytest.fixture
def view(graph):
    v = TreeView()
    assert v.load("r") == [FetchTree("r")]
    assert v.loading
    v.handle(TreeLoaded("r", promises=graph))
    return v


def visible_ids(view):
    return [n.id for n in view.visible]


def press(view, *intents):
    effects = []
    for intent in intents:
        effects.extend(view.handle(Key(intent)))
    return effects


class TestLoad:
    def test_initial_state(self, view):
        assert not view.loading
        assert visible_ids(view) == ["r", "a", "a1", "a2", "a3", "b"]
        assert view.selected == 0
        assert view.selected_node.id == "r"

    def test_stale_root_ignored(self, view, promise):
        view.handle(TreeLoaded("other", promises=[promise("other")]))
        assert view.root.id == "r"

    def test_error_kept_with_tree(self, view):
        view.handle(TreeLoaded("r", error=RuntimeError("down")))
        assert str(view.error) == "down"
        assert view.root is not None

    def test_reload_keeps_flags_and_selection(self, view, graph, promise):
        press(view, Intent.DOWN)             # a
        press(view, Intent.COLLAPSE)         # collapse a
        press(view, Intent.DOWN)             # b
        assert view.reload() == [FetchTree("r")]
        view.handle(TreeLoaded("r", promises=graph + [promise("b1", parent="b", created=9)]))
        assert view.selected_node.id == "b"
        assert not view.root.find("a").expanded
        assert visible_ids(view) == ["r", "a", "b", "b1"]

    def test_reload_without_root(self):
        assert TreeView().reload() == []


class TestKeys:
    def test_move_and_clamp(self, view):
        press(view, Intent.UP)
        assert view.selected == 0
        press(view, Intent.BOTTOM)
        assert view.selected_node.id == "b"
        press(view, Intent.DOWN)
        assert view.selected_node.id == "b"
        press(view, Intent.TOP)
        assert view.selected == 0

    def test_toggle_collapses_subtree(self, view):
        press(view, Intent.DOWN)
        before = len(view.visible)
        assert press(view, Intent.TOGGLE) == []
        assert len(view.visible) == before - 3
        assert view.selected_node.id == "a"
        press(view, Intent.TOGGLE)
        assert len(view.visible) == before

    def test_toggle_leaf_opens_detail(self, view):
        press(view, Intent.BOTTOM)
        effects = press(view, Intent.TOGGLE)
        assert effects == [OpenDetail(view.selected_node.promise)]

    def test_inspect(self, view):
        effects = press(view, Intent.INSPECT)
        assert isinstance(effects[0], OpenDetail)
        assert effects[0].promise.id == "r"

    def test_collapse_leaf_jumps_to_parent(self, view):
        press(view, Intent.DOWN, Intent.DOWN, Intent.DOWN)
        assert view.selected_node.id == "a2"
        press(view, Intent.COLLAPSE)
        assert view.selected_node.id == "a"

    def test_expand_leaf_is_noop(self, view):
        press(view, Intent.BOTTOM)
        before = visible_ids(view)
        press(view, Intent.EXPAND)
        assert visible_ids(view) == before

    def test_collapse_root_clamps_selection(self, view):
        press(view, Intent.BOTTOM)
        view.set_node_expanded(view.root, False)
        assert visible_ids(view) == ["r"]
        assert view.selected == 0

    def test_refresh(self, view):
        assert press(view, Intent.REFRESH) == [FetchTree("r")]

    def test_empty_view(self):
        v = TreeView()
        assert press(v, Intent.DOWN, Intent.TOGGLE, Intent.INSPECT, Intent.COLLAPSE) == []
        assert v.selected == 0


class TestScrolling:
    def test_window_follows_selection(self, promise):
        promises = [promise("r")] + [
            promise(f"c{i}", parent="r", created=i) for i in range(20)
        ]
        v = TreeView(height=5)
        v.load("r")
        v.handle(TreeLoaded("r", promises=promises))
        for _ in range(7):
            press(v, Intent.DOWN)
        assert v.selected == 7
        assert v.offset == 3
        assert v.selected_node in v.window()
        press(v, Intent.TOP)
        assert v.offset == 0

    def test_resize_has_floor(self, view):
        view.handle(Resize(1))
        assert view.height == 5


class TestEvents:
    def test_tick_reloads(self, view):
        assert view.handle(Tick()) == [FetchTree("r")]

    def test_tick_while_loading(self):
        v = TreeView()
        v.load("r")
        assert v.handle(Tick()) == []

    def test_foreign_events_ignored(self, view):
        assert view.handle(RootsLoaded()) == []

    def test_unknown_event(self, view):
        with pytest.raises(TypeError):
            view.handle("bogus")

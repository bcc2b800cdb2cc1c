"""Tests for calltrawl.formatters."""
from __future__ import annotations

import io
import json
from datetime import datetime, timezone

import pytest
from rich.console import Console

from calltrawl.commands.list import list_dict, list_role
from calltrawl.commands.roots import forest_dict
from calltrawl.commands.show import promise_dict
from calltrawl.commands.tree import collapse_below, tree_dict
from calltrawl.events import RootsLoaded, TreeLoaded
from calltrawl.forest import Forest
from calltrawl.formatters.human import (
    format_list, format_roots, format_show, format_tree, node_details, render_detail,
    render_forest, render_tree, render_tree_view,
)
from calltrawl.formatters.json import format_json
from calltrawl.navigation import TreeView
from calltrawl.promise import encode_data
from calltrawl.theme import Theme
from calltrawl.tree import build_tree


@pytest.fixture
def console():
    return Console(file=io.StringIO(), width=120, color_system=None, record=True)


@pytest.fixture
def theme():
    return Theme.default(ascii=True)


@pytest.fixture
def graph(promise):
    return [
        promise("r", state="RESOLVED", created=0, func="main"),
        promise("r.1", parent="r", origin="r", scope="global", created=1, func="charge"),
        promise("r.1.1", parent="r.1", origin="r", scope="local", created=2, func="debit"),
        promise("r.2", parent="r", origin="r", sleep=True, created=3,
                state="REJECTED_TIMEDOUT"),
    ]


def plain(lines):
    return [line.plain for line in lines]


class TestTreeRendering:
    def test_ascii_tree(self, graph, theme):
        lines = plain(render_tree(build_tree("r", graph), theme))
        assert lines == [
            "v * r (main)",
            "|-- v * r.1 (rpc charge)",
            "|   `--   * r.1.1 (run debit)",
            "`--   * r.2 (sleep)",
        ]

    def test_connectors(self, graph, theme):
        lines = plain(render_tree(build_tree("r", graph), theme))
        assert lines[1].startswith("|-- ")
        assert lines[2].startswith("|   `-- ")
        assert lines[3].startswith("`-- ")
        assert "r.2 (sleep)" in lines[3]

    def test_unicode_glyphs(self, graph):
        lines = plain(render_tree(build_tree("r", graph), Theme.default()))
        assert lines[1].startswith("├── ▼ ")
        assert lines[3].startswith("└── ")

    def test_collapsed_marker(self, graph, theme):
        root = build_tree("r", graph)
        root.find("r.1").expanded = False
        lines = plain(render_tree(root, theme))
        assert len(lines) == 3
        assert lines[1].startswith("|-- > ")

    def test_node_details(self, promise, theme):
        assert node_details(promise("a", func="f"), theme).plain == "(f)"
        assert node_details(promise("a"), theme).plain == ""
        assert node_details(promise("a", scope="global"), theme).plain == "(rpc)"

    def test_tree_view_states(self, graph, theme, console):
        view = TreeView()
        view.load("r")
        console.print(render_tree_view(view, theme))
        assert "Loading tree..." in console.export_text()

        view.handle(TreeLoaded("r", promises=graph))
        console.print(render_tree_view(view, theme))
        out = console.export_text()
        assert "4 nodes  (1/4)" in out
        assert "r.1.1" in out

    def test_format_tree(self, graph, theme, console):
        format_tree(console, build_tree("r", graph), theme)
        out = console.export_text()
        assert "r.1.1 (run debit)" in out
        assert "4 promises" in out


class TestForestRendering:
    def test_render_forest(self, promise, theme, console):
        forest = Forest()
        forest.handle(RootsLoaded(promises=[promise("a"), promise("b")], cursor="c"))
        console.print(render_forest(forest, theme, width=60))
        out = console.export_text()
        assert "Call Graphs (sort: Created" in out
        assert "[1] All" in out
        assert "2 roots (more available: n=next)" in out

    def test_render_forest_empty_and_error(self, theme, console):
        forest = Forest()
        console.print(render_forest(forest, theme))
        assert "No root promises found." in console.export_text()
        forest.handle(RootsLoaded(error=RuntimeError("HTTP 500: boom")))
        console.print(render_forest(forest, theme))
        assert "Error: HTTP 500: boom" in console.export_text()

    def test_format_roots(self, promise, theme, console):
        forest = Forest(state_filter="pending")
        forest.handle(RootsLoaded(promises=[promise("a")], cursor="next-1"))
        format_roots(console, forest, theme)
        out = console.export_text()
        assert "state=pending" in out
        assert "1 roots  (next page: --cursor next-1)" in out


class TestDetail:
    def test_render_detail(self, promise, theme):
        now = datetime(2026, 1, 1, tzinfo=timezone.utc)
        p = promise("a.1", parent="a", scope="local", func="debit", created=0,
                    value={"headers": {"h": "v"}, "data": encode_data({"ok": True})})
        text = "\n".join(plain(render_detail(p, theme, now=now)))
        assert "Function" in text and "debit" in text
        assert "Scope" in text and "local" in text
        assert '{"ok": true}' in text
        assert "h: v" in text
        assert "resonate:parent = a" in text

    def test_undecodable_data(self, promise, theme):
        p = promise("a", value={"data": "%%%"})
        text = "\n".join(plain(render_detail(p, theme)))
        assert "Data (raw): %%%" in text

    def test_format_show(self, promise, theme, console):
        format_show(console, promise("shown", state="REJECTED_CANCELED"), theme)
        out = console.export_text()
        assert "shown" in out
        assert "CANCELED" in out


class TestList:
    def test_list_role(self, promise):
        assert list_role(promise("a")) == "root"
        assert list_role(promise("a", parent="a")) == "root"
        assert list_role(promise("b", parent="a")) == ""
        assert list_role(promise("c", parent="a", scope="global")) == "rpc"

    def test_format_list(self, promise, theme, console):
        format_list(console, [promise("a", func="main"), promise("b", parent="a")],
                    "cur", theme, role_of=list_role)
        out = console.export_text()
        assert "Promises" in out
        assert "main" in out
        assert "2 promises  (next page: --cursor cur)" in out


class TestCanonicalDicts:
    def test_tree_dict(self, graph):
        d = tree_dict(build_tree("r", graph))
        assert d["id"] == "r"
        assert d["func"] == "main"
        assert [c["id"] for c in d["children"]] == ["r.1", "r.2"]
        assert d["children"][0]["role"] == "rpc"
        assert d["children"][0]["children"][0]["depth"] == 2

    def test_collapse_below(self, graph):
        root = build_tree("r", graph)
        collapse_below(root, 1)
        assert root.expanded
        assert not root.find("r.1").expanded

    def test_promise_dict(self, promise):
        p = promise("a", func="main")
        d = promise_dict(p)
        assert d["role"] == "root"
        assert json.loads(d["param"]["decoded"])["func"] == "main"

    def test_forest_dict(self, promise):
        forest = Forest(role_filter="rpc")
        forest.handle(RootsLoaded(promises=[promise("a")]))
        d = forest_dict(forest)
        assert d["type"] == "rpc"
        assert d["sort"] == "created-desc"
        assert d["roots"][0]["id"] == "a"
        assert "tree" not in d["roots"][0]

    def test_list_dict(self, promise):
        d = list_dict([promise("a")], None)
        assert d == {
            "promises": [{"id": "a", "state": "PENDING", "role": "root", "func": "",
                          "created_on": None}],
            "cursor": None,
        }

    def test_format_json(self, promise):
        out = io.StringIO()
        format_json({"p": promise("a"), "n": 1}, stream=out)
        data = json.loads(out.getvalue())
        assert data["p"]["id"] == "a"
        assert data["n"] == 1

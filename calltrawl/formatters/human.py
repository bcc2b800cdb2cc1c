"""Human formatter: Rich terminal output.

Everything here takes a Theme argument. The ``render_*`` functions are pure
and return rich renderables; the ``format_*`` functions print them.
"""
from __future__ import annotations

from datetime import datetime

from rich.box import ASCII as ASCII_BOX, HEAVY_HEAD, ROUNDED
from rich.console import Console, Group
from rich.markup import escape
from rich.panel import Panel
from rich.table import Table
from rich.text import Text

from calltrawl.forest import Forest, ForestRow
from calltrawl.navigation import TreeView
from calltrawl.promise import (
    RESERVED_TAG_PREFIX, Promise, decode_data, format_ago, format_duration,
    format_timestamp, promise_role, truncate,
)
from calltrawl.theme import Theme
from calltrawl.tree import TreeLine, TreeNode, count_nodes, tree_lines

TREE_HELP = "  j/k=navigate  enter/space=toggle  h/l=collapse/expand  i=inspect  r=refresh  esc=back  q=quit"
FOREST_HELP = ("  enter=expand/collapse  a=expand-all  c=collapse-all  i=inspect  s=sort  "
               "1-5=filter  n/p=page  r=refresh  q=quit")
DETAIL_HELP = "  esc=back  t=tree  q=quit"


def box_style(theme: Theme):
    return ASCII_BOX if theme.ascii else ROUNDED


def table_box(theme: Theme):
    return ASCII_BOX if theme.ascii else HEAVY_HEAD


# ── Tree lines ────────────────────────────────────────────────────────

def node_details(p: Promise, theme: Theme) -> Text:
    """Role label with function name: (sleep), (rpc f), (run f), (f)."""
    func = p.func_name
    suffix = f" {func}" if func else ""
    if p.is_sleep:
        return Text("(sleep)", style=theme.sleep)
    if p.scope == "global":
        return Text(f"(rpc{suffix})", style=theme.rpc)
    if p.scope == "local":
        return Text(f"(run{suffix})", style=theme.run)
    if func:
        return Text(f"({func})", style=theme.dim)
    return Text()


def tree_line_text(line: TreeLine, theme: Theme, base_prefix: str = "",
                   selected: bool = False) -> Text:
    node = line.node
    t = Text(base_prefix)
    if not line.is_root:
        prefix = "".join(theme.pipe if g else "    " for g in line.guides)
        connector = theme.last_branch if line.is_last else theme.branch
        t.append(prefix + connector, style=theme.connector)

    if node.has_children:
        t.append(theme.expanded_marker if node.expanded else theme.collapsed_marker)
    else:
        t.append("  ")

    t.append_text(theme.status_dot(node.promise.state))
    t.append(" ")
    t.append(node.id)
    details = node_details(node.promise, theme)
    if details:
        t.append(" ")
        t.append_text(details)

    if selected:
        t.stylize(theme.selected)
    return t


def render_tree(root: TreeNode | None, theme: Theme, selected: int | None = None) -> list[Text]:
    return [
        tree_line_text(line, theme, selected=(i == selected))
        for i, line in enumerate(tree_lines(root))
    ]


def render_tree_view(view: TreeView, theme: Theme) -> Group:
    parts: list = []
    title = Text()
    title.append("Call Graph", style=theme.header)
    if view.root_id:
        title.append("  ")
        title.append(view.root_id, style=theme.dim)
    parts.extend([title, Text()])

    if view.loading and view.root is None:
        parts.append(Text("Loading tree..."))
        return Group(*parts)
    if view.error is not None:
        parts.append(Text(f"Error: {view.error}", style=theme.error))
        if view.root is None:
            return Group(*parts)
    if view.root is None or not view.visible:
        parts.append(Text("No tree data. Specify a root promise ID.", style=theme.dim))
        return Group(*parts)

    lines = tree_lines(view.root)
    end = min(view.offset + view.height, len(lines))
    for i in range(min(view.offset, len(lines)), end):
        parts.append(tree_line_text(lines[i], theme, selected=(i == view.selected)))

    total = len(view.visible)
    parts.append(Text())
    parts.append(Text(f"  {total} nodes  ({view.selected + 1}/{total})", style=theme.dim))
    parts.append(Text(TREE_HELP, style=theme.help))
    return Group(*parts)


# ── Forest ────────────────────────────────────────────────────────────

_STATE_PILLS = (("1", "All", ""), ("2", "Pending", "pending"),
                ("3", "Resolved", "resolved"), ("4", "Rejected", "rejected"))


def filter_pills(forest: Forest, theme: Theme) -> Text:
    t = Text()
    for key, label, state in _STATE_PILLS:
        style = theme.filter_active if forest.state_filter == state else theme.filter_inactive
        t.append(f" [{key}] {label} ", style=style)
        t.append(" ")
    role = forest.role_filter or "all"
    style = theme.filter_active if forest.role_filter else theme.filter_inactive
    t.append(f" [5] Type: {role} ", style=style)
    return t


def forest_row_text(row: ForestRow, theme: Theme, selected: bool = False) -> Text:
    item = row.item
    if row.kind == "root":
        t = Text(theme.expanded_marker if item.expanded else theme.collapsed_marker)
        t.append_text(theme.status_dot(item.promise.state))
        t.append(f" {item.id:<60} ")
        t.append_text(theme.state_text(item.promise.state))
        if selected:
            t.stylize(theme.selected)
        return t
    if row.kind == "loading":
        return Text("  Loading tree...", style=theme.dim)
    if row.kind == "error":
        return Text(f"  Error: {item.error}", style=theme.error)
    return tree_line_text(row.line, theme, base_prefix="  ")


def render_forest(forest: Forest, theme: Theme, width: int = 80) -> Group:
    parts: list = []
    title = Text()
    title.append("Call Graphs", style=theme.header)
    title.append(f" (sort: {forest.sort_mode.label})", style=theme.dim)
    parts.extend([title, Text(), filter_pills(forest, theme), Text()])

    if forest.loading and not forest.roots:
        parts.append(Text("Loading roots..."))
        return Group(*parts)
    if forest.error is not None:
        parts.append(Text(f"Error: {forest.error}", style=theme.error))
        if not forest.roots:
            return Group(*parts)
    if not forest.roots:
        parts.append(Text("No root promises found.", style=theme.dim))
        return Group(*parts)

    parts.append(Text(f"  {'Promise ID':<62} State", style=theme.dim))
    parts.append(Text(theme.rule_char * width, style=theme.dim))

    rows = forest.rows()
    end = min(forest.offset + forest.height, len(rows))
    for r in range(min(forest.offset, len(rows)), end):
        row = rows[r]
        selected = row.kind == "root" and row.root_index == forest.selected
        parts.append(forest_row_text(row, theme, selected=selected))

    info = f"  {len(forest.roots)} roots"
    if forest.has_next:
        info += " (more available: n=next)"
    if forest.has_prev:
        info += " (p=prev)"
    parts.append(Text())
    parts.append(Text(info, style=theme.dim))
    parts.append(Text(FOREST_HELP, style=theme.help))
    return Group(*parts)


# ── Detail ────────────────────────────────────────────────────────────

def _label_row(label: str, value: Text | str, theme: Theme) -> Text:
    t = Text()
    t.append(f"{label:<14}", style=theme.label)
    t.append(" ")
    if isinstance(value, Text):
        t.append_text(value)
    else:
        t.append(value)
    return t


def _value_lines(value: dict, theme: Theme) -> list[Text]:
    lines: list[Text] = []
    headers = value.get("headers") or {}
    if headers:
        lines.append(Text("  Headers:", style=theme.dim))
        for k in sorted(headers):
            t = Text("    ")
            t.append(k, style=theme.tag_key)
            t.append(f": {headers[k]}")
            lines.append(t)

    data = value.get("data")
    if data:
        decoded = decode_data(data)
        if decoded is None:
            t = Text()
            t.append("  Data (raw): ", style=theme.dim)
            t.append(data)
            lines.append(t)
        else:
            lines.append(Text("  Data:", style=theme.dim))
            lines.append(Text(f"    {decoded}"))
    else:
        lines.append(Text("  (empty)", style=theme.dim))
    return lines


def render_detail(p: Promise, theme: Theme, now: datetime | None = None) -> list[Text]:
    lines = [
        _label_row("ID", p.id, theme),
        _label_row("State", theme.state_text(p.state), theme),
        _label_row("Timeout", format_duration(p.timeout), theme),
        _label_row("Created", format_timestamp(p.created_on, now=now), theme),
        _label_row("Completed", format_timestamp(p.completed_on, now=now), theme),
    ]
    if p.func_name:
        lines.append(_label_row("Function", p.func_name, theme))
    if p.scope:
        lines.append(_label_row("Scope", p.scope, theme))

    for title, value in (("Param", p.param), ("Value", p.value)):
        lines.append(Text())
        lines.append(Text(title, style=theme.header))
        lines.extend(_value_lines(value, theme))

    lines.append(Text())
    lines.append(Text("Tags", style=theme.header))
    if not p.tags:
        lines.append(Text("  (none)", style=theme.dim))
    for k in sorted(p.tags):
        t = Text("  ")
        key_style = theme.reserved_tag if k.startswith(RESERVED_TAG_PREFIX) else theme.tag_key
        t.append(k, style=key_style)
        t.append(" = ")
        t.append(p.tags[k], style=theme.tag_value)
        lines.append(t)
    return lines


def render_detail_pane(p: Promise, theme: Theme) -> Group:
    title = Text("Promise Detail", style=theme.header)
    return Group(title, Text(), *render_detail(p, theme), Text(), Text(DETAIL_HELP, style=theme.help))


# ── One-shot formatters ───────────────────────────────────────────────

def format_tree(console: Console, root: TreeNode, theme: Theme) -> None:
    for line in render_tree(root, theme):
        console.print(line)
    console.print(f"\n[dim]{count_nodes(root)} promises[/]")


def format_roots(console: Console, forest: Forest, theme: Theme) -> None:
    title = Text()
    title.append(f"Call graphs (sort: {forest.sort_mode.label})", style=theme.header)
    filters = []
    if forest.state_filter:
        filters.append(f"state={forest.state_filter}")
    if forest.role_filter:
        filters.append(f"type={forest.role_filter}")
    if filters:
        title.append("  " + " ".join(filters), style=theme.dim)
    console.print(title)

    if not forest.roots:
        console.print(Text("No root promises found.", style=theme.dim))
        return
    for row in forest.rows():
        console.print(forest_row_text(row, theme))

    footer = f"\n[dim]{len(forest.roots)} roots"
    if forest.cursor:
        footer += f"  (next page: --cursor {escape(forest.cursor)})"
    console.print(footer + "[/]")


def format_list(console: Console, promises: list[Promise], cursor: str | None,
                theme: Theme, role_of=promise_role, now: datetime | None = None) -> None:
    w = min(console.width, 140)
    table = Table(title="Promises", show_lines=False, padding=(0, 1),
                  width=w, box=table_box(theme))
    table.add_column("ID", style="bold", no_wrap=True, overflow="ellipsis", ratio=1)
    table.add_column("State", no_wrap=True, min_width=9)
    table.add_column("Role", no_wrap=True, min_width=5)
    table.add_column("Created", style="green", no_wrap=True, justify="right", min_width=16)
    table.add_column("Func", style="dim", no_wrap=True, max_width=30)

    for p in promises:
        table.add_row(
            escape(truncate(p.id, 50)),
            theme.state_text(p.state),
            theme.role_text(role_of(p)),
            format_ago(p.created_on, now=now),
            escape(p.func_name),
        )

    console.print(table)
    footer = f"\n[dim]{len(promises)} promises"
    if cursor:
        footer += f"  (next page: --cursor {escape(cursor)})"
    console.print(footer + "[/]")


def format_show(console: Console, p: Promise, theme: Theme) -> None:
    console.print(Panel(
        Group(*render_detail(p, theme)),
        title=escape(p.id), border_style="blue", box=box_style(theme),
        width=min(console.width, 120),
    ))

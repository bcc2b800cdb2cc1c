"""Forest view: paginated root discovery with lazily expanded call trees."""
from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum

from calltrawl.client import SORT_ASC, SORT_DESC, SearchParams
from calltrawl.events import (
    Effect, Event, FetchRootTree, FetchRoots, Intent, Key, OpenDetail, Resize,
    RootTreeLoaded, RootsLoaded, Tick, TreeLoaded,
)
from calltrawl.navigation import MIN_HEIGHT, clamp, scroll_offset
from calltrawl.promise import Promise, promise_role
from calltrawl.tree import TreeLine, TreeNode, tree_lines

log = logging.getLogger(__name__)

ROLE_FILTERS = ("", "root", "rpc", "run", "sleep")
STATE_FILTERS = ("", "pending", "resolved", "rejected")


class SortMode(Enum):
    CREATED_DESC = "created-desc"   # newest first (default)
    CREATED_ASC = "created-asc"
    RESOLVED_DESC = "resolved-desc"
    RESOLVED_ASC = "resolved-asc"

    @property
    def label(self) -> str:
        return _SORT_LABELS[self]

    @property
    def sort_id(self) -> int | None:
        """Sort directive for the query; the resolved modes have none."""
        return _SORT_IDS.get(self)

    def next(self) -> SortMode:
        modes = list(SortMode)
        return modes[(modes.index(self) + 1) % len(modes)]


_SORT_LABELS = {
    SortMode.CREATED_DESC: "Created ↓",
    SortMode.CREATED_ASC: "Created ↑",
    SortMode.RESOLVED_DESC: "Resolved ↓",
    SortMode.RESOLVED_ASC: "Resolved ↑",
}

_SORT_IDS = {
    SortMode.CREATED_DESC: SORT_DESC,
    SortMode.CREATED_ASC: SORT_ASC,
}


# ── Root classification ───────────────────────────────────────────────

def is_root(p: Promise) -> bool:
    """True if the promise has no parent tag, or names itself as parent."""
    parent = p.parent_id
    return parent == "" or parent == p.id


def is_root_in_set(p: Promise, page: list[Promise]) -> bool:
    """Root check using the parent tag, then dotted id prefixes on this page.

    "job-1.2" is demoted when "job-1" is on the same page. Only the page
    is consulted, so a child whose parent sits on another page still
    counts as a root.
    """
    if not is_root(p):
        return False
    for other in page:
        if other.id != p.id and p.id.startswith(other.id + "."):
            return False
    return True


def select_roots(page: list[Promise], role_filter: str = "") -> list[Promise]:
    """Pick the rows to show from a fetched page.

    A role filter replaces root detection: every promise with that role is
    kept whether or not it has a parent.
    """
    if role_filter:
        return [p for p in page if promise_role(p) == role_filter]
    return [p for p in page if is_root_in_set(p, page)]


# ── RootItem ──────────────────────────────────────────────────────────

class RootItem:
    __slots__ = ("promise", "tree", "expanded", "loading", "error")

    def __init__(self, promise: Promise, tree: TreeNode | None = None,
                 expanded: bool = False, loading: bool = False):
        self.promise = promise
        self.tree = tree
        self.expanded = expanded
        self.loading = loading
        self.error: Exception | None = None

    def __repr__(self) -> str:
        return f"RootItem({self.id!r}, expanded={self.expanded}, loading={self.loading})"

    @property
    def id(self) -> str:
        return self.promise.id


@dataclass(frozen=True)
class ForestRow:
    """One rendered row: a root, a node of an expanded root's tree, or a
    loading/error placeholder under an expanded root."""

    kind: str  # "root" | "node" | "loading" | "error"
    item: RootItem
    root_index: int
    line: TreeLine | None = None


# ── Forest ────────────────────────────────────────────────────────────

class Forest:
    def __init__(self, limit: int = 50, height: int = 20,
                 state_filter: str = "", role_filter: str = "",
                 sort_mode: SortMode = SortMode.CREATED_DESC):
        self.roots: list[RootItem] = []
        self.selected = 0
        self.offset = 0
        self.height = max(height, MIN_HEIGHT)
        self.loading = False
        self.error: Exception | None = None

        self.state_filter = state_filter
        self.role_filter = role_filter
        self.sort_mode = sort_mode

        # Pagination: the cursor that loaded the current page, the cursor for
        # the next page, and a back-stack of markers.
        self.page_cursor: str | None = None
        self.cursor: str | None = None
        self.prev_cursors: list[str] = []
        self.limit = limit

        # Bumped whenever a new query replaces the one in flight.
        self.generation = 0

    # ── Queries ───────────────────────────────────────────────────────

    @property
    def selected_item(self) -> RootItem | None:
        if 0 <= self.selected < len(self.roots):
            return self.roots[self.selected]
        return None

    @property
    def has_next(self) -> bool:
        return self.cursor is not None

    @property
    def has_prev(self) -> bool:
        return bool(self.prev_cursors)

    def query_params(self) -> SearchParams:
        return SearchParams(
            id="*",
            state=self.state_filter,
            limit=self.limit,
            cursor=self.page_cursor or "",
            sort_id=self.sort_mode.sort_id,
        )

    def fetch_roots(self) -> FetchRoots:
        return FetchRoots(params=self.query_params(), role_filter=self.role_filter,
                          generation=self.generation)

    def find(self, root_id: str) -> RootItem | None:
        for item in self.roots:
            if item.id == root_id:
                return item
        return None

    def rows(self) -> list[ForestRow]:
        rows: list[ForestRow] = []
        for i, item in enumerate(self.roots):
            rows.append(ForestRow("root", item, i))
            if not item.expanded:
                continue
            if item.loading:
                rows.append(ForestRow("loading", item, i))
            elif item.error is not None and item.tree is None:
                rows.append(ForestRow("error", item, i))
            elif item.tree is not None:
                for line in tree_lines(item.tree, include_root=False):
                    rows.append(ForestRow("node", item, i, line))
        return rows

    def selected_row(self, rows: list[ForestRow] | None = None) -> int:
        """Row index of the selected root."""
        for r, row in enumerate(rows if rows is not None else self.rows()):
            if row.kind == "root" and row.root_index == self.selected:
                return r
        return 0

    # ── Paging and filters ────────────────────────────────────────────

    def reload(self) -> list[Effect]:
        """Start over from page 1 with the current filters."""
        self.roots = []
        self.page_cursor = None
        self.cursor = None
        self.prev_cursors = []
        self.selected = 0
        self.offset = 0
        self.loading = True
        self.generation += 1
        return [self.fetch_roots()]

    def refresh(self) -> list[Effect]:
        """Background refresh: re-query the current page, keeping rows,
        selection and the back-stack until the new page merges over them.

        Skipped while a query is already in flight.
        """
        if self.loading:
            return []
        self.loading = True
        return [self.fetch_roots()]

    def set_state_filter(self, state: str) -> list[Effect]:
        if state not in STATE_FILTERS:
            raise ValueError(f"unknown state filter: {state!r}")
        self.state_filter = state
        return self.reload()

    def set_role_filter(self, role: str) -> list[Effect]:
        if role not in ROLE_FILTERS:
            raise ValueError(f"unknown role filter: {role!r}")
        self.role_filter = role
        return self.reload()

    def cycle_role_filter(self) -> list[Effect]:
        i = ROLE_FILTERS.index(self.role_filter)
        return self.set_role_filter(ROLE_FILTERS[(i + 1) % len(ROLE_FILTERS)])

    def cycle_sort(self) -> list[Effect]:
        self.sort_mode = self.sort_mode.next()
        return self.reload()

    def next_page(self) -> list[Effect]:
        if self.cursor is None:
            return []
        # The back-stack only records an empty marker: "previous" means page 1.
        self.prev_cursors.append("")
        self.page_cursor = self.cursor
        self.roots = []
        self.selected = 0
        self.offset = 0
        self.loading = True
        self.generation += 1
        return [self.fetch_roots()]

    def prev_page(self) -> list[Effect]:
        if not self.prev_cursors:
            return []
        prev = self.prev_cursors.pop()
        self.page_cursor = prev or None
        self.cursor = self.page_cursor
        self.roots = []
        self.selected = 0
        self.offset = 0
        self.loading = True
        self.generation += 1
        return [self.fetch_roots()]

    # ── Loading ───────────────────────────────────────────────────────

    def apply_page(self, promises: list[Promise], cursor: str | None) -> None:
        """Replace the rows with a fetched page, carrying expand/tree/loading
        state over from rows with the same id."""
        old = {item.id: item for item in self.roots}
        roots = []
        for p in promises:
            item = RootItem(p)
            prior = old.get(p.id)
            if prior is not None:
                item.expanded = prior.expanded
                item.tree = prior.tree
                item.loading = prior.loading
                item.error = prior.error
            roots.append(item)
        self.roots = roots
        self.cursor = cursor
        self.loading = False
        self.error = None
        self.selected = clamp(self.selected, len(self.roots))
        self._scroll()

    def apply_error(self, error: Exception) -> None:
        self.loading = False
        self.error = error

    def attach_tree(self, root_id: str, tree: TreeNode | None,
                    error: Exception | None = None) -> None:
        """Apply a per-root tree fetch to whichever row still has that id."""
        item = self.find(root_id)
        if item is None:
            log.debug("dropping tree for %s: no longer listed", root_id)
            return
        item.loading = False
        if error is not None:
            item.error = error
            self.error = error
            log.warning("tree load failed for %s: %s", root_id, error)
        else:
            item.error = None
            item.tree = tree

    # ── Expand / collapse ─────────────────────────────────────────────

    def _expand(self, item: RootItem) -> list[Effect]:
        item.expanded = True
        if item.tree is None and not item.loading:
            item.loading = True
            return [FetchRootTree(item.id)]
        return []

    def toggle(self) -> list[Effect]:
        item = self.selected_item
        if item is None:
            return []
        if item.expanded:
            item.expanded = False
            self._scroll()
            return []
        return self._expand(item)

    def expand_all(self) -> list[Effect]:
        effects: list[Effect] = []
        for item in self.roots:
            if not item.expanded:
                effects.extend(self._expand(item))
        return effects

    def collapse_all(self) -> None:
        for item in self.roots:
            item.expanded = False
        self._scroll()

    # ── Navigation ────────────────────────────────────────────────────

    def move(self, delta: int) -> None:
        self.selected = clamp(self.selected + delta, len(self.roots))
        self._scroll()

    def _scroll(self) -> None:
        rows = self.rows()
        row = self.selected_row(rows)
        self.offset = scroll_offset(row, min(self.offset, max(len(rows) - 1, 0)), self.height)

    def handle(self, event: Event) -> list[Effect]:
        if isinstance(event, Key):
            return self._on_key(event.intent)
        if isinstance(event, RootsLoaded):
            if event.generation != self.generation:
                log.debug("dropping stale roots page (generation %d, now %d)",
                          event.generation, self.generation)
                return []
            if event.error is not None:
                self.apply_error(event.error)
            else:
                self.apply_page(event.promises, event.cursor)
            return []
        if isinstance(event, RootTreeLoaded):
            self.attach_tree(event.root_id, event.tree, event.error)
            return []
        if isinstance(event, Resize):
            self.height = max(event.height, MIN_HEIGHT)
            self._scroll()
            return []
        if isinstance(event, Tick):
            return self.refresh()
        if isinstance(event, TreeLoaded):
            return []
        raise TypeError(f"unhandled event: {event!r}")

    def _on_key(self, intent: Intent) -> list[Effect]:
        item = self.selected_item

        if intent is Intent.DOWN:
            self.move(1)
        elif intent is Intent.UP:
            self.move(-1)
        elif intent is Intent.TOP:
            self.move(-len(self.roots))
        elif intent is Intent.BOTTOM:
            self.move(len(self.roots))
        elif intent is Intent.TOGGLE:
            return self.toggle()
        elif intent is Intent.EXPAND:
            if item is not None and not item.expanded:
                return self._expand(item)
        elif intent is Intent.COLLAPSE:
            if item is not None:
                item.expanded = False
                self._scroll()
        elif intent is Intent.INSPECT:
            if item is not None:
                return [OpenDetail(item.promise)]
        elif intent is Intent.EXPAND_ALL:
            return self.expand_all()
        elif intent is Intent.COLLAPSE_ALL:
            self.collapse_all()
        elif intent is Intent.CYCLE_SORT:
            return self.cycle_sort()
        elif intent is Intent.CYCLE_ROLE:
            return self.cycle_role_filter()
        elif intent is Intent.NEXT_PAGE:
            return self.next_page()
        elif intent is Intent.PREV_PAGE:
            return self.prev_page()
        elif intent is Intent.FILTER_ALL:
            return self.set_state_filter("")
        elif intent is Intent.FILTER_PENDING:
            return self.set_state_filter("pending")
        elif intent is Intent.FILTER_RESOLVED:
            return self.set_state_filter("resolved")
        elif intent is Intent.FILTER_REJECTED:
            return self.set_state_filter("rejected")
        elif intent is Intent.REFRESH:
            return self.reload()
        return []

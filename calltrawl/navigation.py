"""Selection, scrolling and expand/collapse for the single-tree view."""
from __future__ import annotations

import logging

from calltrawl.events import (
    Effect, Event, FetchTree, Intent, Key, OpenDetail, Resize, RootTreeLoaded,
    RootsLoaded, Tick, TreeLoaded,
)
from calltrawl.tree import TreeNode, build_tree, flatten_visible

log = logging.getLogger(__name__)

MIN_HEIGHT = 5


def clamp(index: int, length: int) -> int:
    """Clamp index into [0, length - 1]; 0 for an empty list."""
    if length <= 0:
        return 0
    return max(0, min(index, length - 1))


def scroll_offset(selected: int, offset: int, height: int) -> int:
    """Smallest scroll change that keeps selected inside the window."""
    if selected < offset:
        return selected
    if selected >= offset + height:
        return selected - height + 1
    return offset


class TreeView:
    """Interactive state for one call graph.

    The visible list is the flatten_visible order of ``root`` and is rebuilt
    after every change to an ``expanded`` flag.
    """

    def __init__(self, root_id: str = "", height: int = 20):
        self.root_id = root_id
        self.root: TreeNode | None = None
        self.visible: list[TreeNode] = []
        self.selected = 0
        self.offset = 0
        self.height = max(height, MIN_HEIGHT)
        self.loading = False
        self.error: Exception | None = None

    # ── Queries ───────────────────────────────────────────────────────

    @property
    def selected_node(self) -> TreeNode | None:
        if 0 <= self.selected < len(self.visible):
            return self.visible[self.selected]
        return None

    def window(self) -> list[TreeNode]:
        return self.visible[self.offset:self.offset + self.height]

    # ── Commands ──────────────────────────────────────────────────────

    def load(self, root_id: str) -> list[Effect]:
        """Switch to a new root, dropping the current tree."""
        self.root_id = root_id
        self.root = None
        self.visible = []
        self.selected = 0
        self.offset = 0
        self.error = None
        self.loading = True
        return [FetchTree(root_id)]

    def reload(self) -> list[Effect]:
        """Re-fetch the current root, keeping the tree on screen meanwhile."""
        if not self.root_id:
            return []
        if self.root is None:
            self.loading = True
        return [FetchTree(self.root_id)]

    def set_node_expanded(self, node: TreeNode, expanded: bool) -> None:
        """Expand or collapse one node and re-flatten; leaves are ignored."""
        if not node.has_children or node.expanded == expanded:
            return
        node.expanded = expanded
        self._reflatten()

    def handle(self, event: Event) -> list[Effect]:
        if isinstance(event, Key):
            return self._on_key(event.intent)
        if isinstance(event, TreeLoaded):
            self._on_loaded(event)
            return []
        if isinstance(event, Resize):
            self.height = max(event.height, MIN_HEIGHT)
            self.offset = scroll_offset(self.selected, self.offset, self.height)
            return []
        if isinstance(event, Tick):
            if self.loading:
                return []
            return self.reload()
        if isinstance(event, (RootsLoaded, RootTreeLoaded)):
            return []
        raise TypeError(f"unhandled event: {event!r}")

    # ── Internals ─────────────────────────────────────────────────────

    def _on_loaded(self, event: TreeLoaded) -> None:
        if event.root_id != self.root_id:
            log.debug("ignoring tree for stale root %s", event.root_id)
            return
        self.loading = False
        if event.error is not None:
            self.error = event.error
            return
        self.error = None

        new_root = build_tree(self.root_id, event.promises)
        old_root = self.root
        if old_root is None:
            self.root = new_root
            self.visible = flatten_visible(new_root)
            self.selected = 0
            self.offset = 0
            return

        # Same root reloaded: keep expand flags and the selected node.
        selected_id = self.selected_node.id if self.selected_node else None
        old_flags = {old_root.id: old_root.expanded}
        for node in old_root.descendants():
            old_flags[node.id] = node.expanded
        new_root.expanded = old_flags.get(new_root.id, new_root.expanded)
        for node in new_root.descendants():
            node.expanded = old_flags.get(node.id, node.expanded)

        self.root = new_root
        self.visible = flatten_visible(new_root)
        index = next((i for i, n in enumerate(self.visible) if n.id == selected_id), self.selected)
        self._select(index)

    def _select(self, index: int) -> None:
        self.selected = clamp(index, len(self.visible))
        self.offset = scroll_offset(self.selected, self.offset, self.height)

    def _reflatten(self) -> None:
        self.visible = flatten_visible(self.root)
        if self.selected >= len(self.visible):
            self.selected = clamp(self.selected, len(self.visible))
        self.offset = scroll_offset(self.selected, min(self.offset, self.selected), self.height)

    def _on_key(self, intent: Intent) -> list[Effect]:
        node = self.selected_node

        if intent is Intent.DOWN:
            self._select(self.selected + 1)
        elif intent is Intent.UP:
            self._select(self.selected - 1)
        elif intent is Intent.TOP:
            self._select(0)
        elif intent is Intent.BOTTOM:
            self._select(len(self.visible) - 1)

        elif intent is Intent.TOGGLE:
            if node is None:
                return []
            if not node.has_children:
                # Leaf: inspect instead of toggling.
                return [OpenDetail(node.promise)]
            self.set_node_expanded(node, not node.expanded)

        elif intent is Intent.EXPAND:
            if node is not None:
                self.set_node_expanded(node, True)

        elif intent is Intent.COLLAPSE:
            if node is None:
                return []
            if node.has_children and node.expanded:
                self.set_node_expanded(node, False)
            else:
                parent_id = node.promise.parent_id
                if parent_id:
                    for i, candidate in enumerate(self.visible):
                        if candidate.id == parent_id:
                            self._select(i)
                            break

        elif intent is Intent.INSPECT:
            if node is not None:
                return [OpenDetail(node.promise)]

        elif intent is Intent.REFRESH:
            return self.reload()

        return []

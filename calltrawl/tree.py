"""Call-graph tree construction and visible-node flattening."""
from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable, Iterator

from calltrawl.promise import Promise


# ── TreeNode ──────────────────────────────────────────────────────────

class TreeNode:
    """One promise in a call graph.

    ``expanded`` is view state only; it is never derived from server data.
    ``depth`` is assigned by build_tree (root = 0).
    """

    __slots__ = ("promise", "children", "expanded", "depth")

    def __init__(self, promise: Promise, expanded: bool = True, depth: int = 0):
        self.promise = promise
        self.children: list[TreeNode] = []
        self.expanded = expanded
        self.depth = depth

    def __repr__(self) -> str:
        return f"TreeNode({self.id!r}, depth={self.depth}, children={len(self.children)})"

    @property
    def id(self) -> str:
        return self.promise.id

    @property
    def has_children(self) -> bool:
        return bool(self.children)

    def descendants(self) -> Iterator[TreeNode]:
        """All descendants in pre-order, ignoring expanded flags."""
        seen = {id(self)}
        stack = list(reversed(self.children))
        while stack:
            node = stack.pop()
            if id(node) in seen:
                continue
            seen.add(id(node))
            yield node
            stack.extend(reversed(node.children))

    def find(self, promise_id: str) -> TreeNode | None:
        if self.id == promise_id:
            return self
        for node in self.descendants():
            if node.id == promise_id:
                return node
        return None


def count_nodes(root: TreeNode | None) -> int:
    if root is None:
        return 0
    return 1 + sum(1 for _ in root.descendants())


def set_expanded(root: TreeNode, expanded: bool) -> None:
    """Expand or collapse a whole subtree."""
    root.expanded = expanded
    for node in root.descendants():
        node.expanded = expanded


# ── Building ──────────────────────────────────────────────────────────

def _created_key(node: TreeNode) -> int:
    return node.promise.created_on or 0


def build_tree(root_id: str, promises: Iterable[Promise]) -> TreeNode:
    """Build the call tree rooted at root_id from a flat set of promises.

    Parent links come from the parent tag; a promise naming itself as parent
    is not anyone's child. Children are ordered by createdOn (missing = 0),
    ties keep arrival order. Promises not reachable from the root are left
    out. If root_id is not among the promises a placeholder root is used.
    """
    nodes: dict[str, TreeNode] = {}
    children: dict[str, list[TreeNode]] = {}

    for p in promises:
        node = TreeNode(p)
        nodes[p.id] = node
        parent = p.parent_id
        if parent and parent != p.id:
            children.setdefault(parent, []).append(node)

    for kids in children.values():
        kids.sort(key=_created_key)  # stable

    root = nodes.get(root_id)
    if root is None:
        root = TreeNode(Promise.placeholder(root_id))

    # Single top-down pass; a node is placed at most once so cyclic parent
    # tags cannot loop.
    placed = {id(root)}
    stack = [root]
    while stack:
        node = stack.pop()
        owned = []
        for child in children.get(node.id, ()):
            if id(child) in placed:
                continue
            placed.add(id(child))
            child.depth = node.depth + 1
            owned.append(child)
        node.children = owned
        stack.extend(owned)

    return root


# ── Flattening ────────────────────────────────────────────────────────

def flatten_visible(root: TreeNode | None) -> list[TreeNode]:
    """Pre-order list of visible nodes: children only under expanded nodes."""
    if root is None:
        return []
    nodes: list[TreeNode] = []
    seen: set[int] = set()
    stack = [root]
    while stack:
        node = stack.pop()
        if id(node) in seen:
            continue
        seen.add(id(node))
        nodes.append(node)
        if node.expanded:
            stack.extend(reversed(node.children))
    return nodes


@dataclass(frozen=True)
class TreeLine:
    """Layout of one visible node.

    ``guides`` has one entry per ancestor level above the connector: True
    where a vertical guide continues (that ancestor has later siblings).
    ``is_root`` lines get no connector.
    """

    node: TreeNode
    guides: tuple[bool, ...]
    is_last: bool
    is_root: bool = False


def tree_lines(root: TreeNode | None, include_root: bool = True) -> list[TreeLine]:
    """Lay out the visible tree as lines, in flatten_visible order.

    With include_root=False only the root's visible descendants are laid
    out, starting at connector level 0.
    """
    if root is None:
        return []
    lines: list[TreeLine] = []
    seen = {id(root)}

    if include_root:
        lines.append(TreeLine(node=root, guides=(), is_last=True, is_root=True))
    if not root.expanded:
        return lines

    # (node, guides, is_last)
    stack: list[tuple[TreeNode, tuple[bool, ...], bool]] = []

    def push_children(parent: TreeNode, guides: tuple[bool, ...]) -> None:
        kids = [c for c in parent.children if id(c) not in seen]
        for i in range(len(kids) - 1, -1, -1):
            stack.append((kids[i], guides, i == len(kids) - 1))

    push_children(root, ())
    while stack:
        node, guides, is_last = stack.pop()
        if id(node) in seen:
            continue
        seen.add(id(node))
        lines.append(TreeLine(node=node, guides=guides, is_last=is_last))
        if node.expanded:
            push_children(node, guides + (not is_last,))
    return lines

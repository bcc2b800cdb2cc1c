"""Tree command: the call graph under one root promise."""
from __future__ import annotations

from calltrawl.client import PromiseClient
from calltrawl.loader import fetch_call_graph
from calltrawl.promise import promise_role
from calltrawl.tree import TreeNode, build_tree


def tree_dict(node: TreeNode) -> dict:
    """Nested canonical dict; collapsed nodes still list their children."""
    return {
        "id": node.id,
        "state": node.promise.state,
        "role": promise_role(node.promise),
        "func": node.promise.func_name,
        "created_on": node.promise.created_on,
        "depth": node.depth,
        "children": [tree_dict(child) for child in node.children],
    }


def collapse_below(root: TreeNode, depth: int) -> None:
    """Collapse every node at or below the given depth."""
    nodes = [root, *root.descendants()]
    for node in nodes:
        if node.depth >= depth:
            node.expanded = False


async def cmd_tree(client: PromiseClient, root_id: str,
                   collapse_depth: int | None = None) -> TreeNode:
    promises = await fetch_call_graph(client, root_id)
    root = build_tree(root_id, promises)
    if collapse_depth is not None:
        collapse_below(root, collapse_depth)
    return root

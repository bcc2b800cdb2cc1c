"""Roots command: one page of top-level call graphs."""
from __future__ import annotations

import asyncio

from calltrawl.client import PromiseClient
from calltrawl.commands.tree import tree_dict
from calltrawl.forest import Forest
from calltrawl.loader import perform


async def cmd_roots(client: PromiseClient, forest: Forest, cursor: str | None = None,
                    expand: bool = False) -> Forest:
    """Load one page into the forest, optionally loading every root's tree.

    A failed page query raises ClientError; failed tree loads are recorded
    on their rows.
    """
    forest.page_cursor = cursor
    event = await perform(client, forest.fetch_roots())
    if event.error is not None:
        raise event.error
    forest.handle(event)

    if expand:
        effects = forest.expand_all()
        for loaded in await asyncio.gather(*(perform(client, e) for e in effects)):
            forest.handle(loaded)
    return forest


def forest_dict(forest: Forest) -> dict:
    roots = []
    for item in forest.roots:
        entry = {
            "id": item.id,
            "state": item.promise.state,
            "created_on": item.promise.created_on,
            "expanded": item.expanded,
        }
        if item.tree is not None:
            entry["tree"] = tree_dict(item.tree)
        if item.error is not None:
            entry["error"] = str(item.error)
        roots.append(entry)
    return {
        "sort": forest.sort_mode.value,
        "state": forest.state_filter,
        "type": forest.role_filter,
        "cursor": forest.cursor,
        "roots": roots,
    }

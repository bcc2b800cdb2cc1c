"""Query strategies that gather the promises of a call graph."""
from __future__ import annotations

import logging
from collections import deque

from calltrawl.client import ClientError, PromiseClient, SearchParams
from calltrawl.events import (
    Effect, Event, FetchRootTree, FetchRoots, FetchTree, RootTreeLoaded,
    RootsLoaded, TreeLoaded,
)
from calltrawl.forest import select_roots
from calltrawl.promise import TAG_ORIGIN, TAG_ROOT, Promise
from calltrawl.tree import TreeNode, build_tree

log = logging.getLogger(__name__)

TREE_PAGE_LIMIT = 100


async def fetch_all(client: PromiseClient, params: SearchParams) -> list[Promise]:
    """Follow cursors until the query is exhausted. Raises ClientError."""
    promises: list[Promise] = []
    cursor = params.cursor
    while True:
        page = await client.search(SearchParams(
            id=params.id, state=params.state, tags=params.tags,
            limit=params.limit, cursor=cursor, sort_id=params.sort_id,
        ))
        promises.extend(page.promises)
        if page.cursor is None:
            return promises
        cursor = page.cursor


async def fetch_by_origin(client: PromiseClient, root_id: str) -> list[Promise]:
    return await fetch_all(client, SearchParams(
        id="*", tags={TAG_ORIGIN: root_id}, limit=TREE_PAGE_LIMIT,
    ))


async def fetch_with_root_tag(client: PromiseClient, root_id: str) -> list[Promise]:
    """Breadth-first load for stores that only write the legacy root tag.

    Each queue item is (id pattern, origin, cursor). A global-scope promise
    other than the current origin starts its own subtree and is queued as a
    new origin; each origin is queued at most once, however many pages
    it appears on. A continuation cursor goes to the front of the queue, so one
    origin is paged through before the walk moves on. The first failed
    query ends the walk and whatever was gathered is returned.
    """
    promises: list[Promise] = []
    queue: deque[tuple[str, str, str]] = deque([("*", root_id, "")])
    queued_origins = {root_id}

    while queue:
        pattern, origin, cursor = queue.popleft()
        try:
            page = await client.search(SearchParams(
                id=pattern, tags={TAG_ROOT: origin},
                limit=TREE_PAGE_LIMIT, cursor=cursor,
            ))
        except ClientError as exc:
            log.warning("legacy tree load for %s stopped at origin %s: %s", root_id, origin, exc)
            break

        for p in page.promises:
            promises.append(p)
            if p.scope == "global" and p.id != origin and p.id not in queued_origins:
                queued_origins.add(p.id)
                queue.append(("*", p.id, ""))

        if page.cursor is not None:
            queue.appendleft((pattern, origin, page.cursor))

    return promises


async def fetch_call_graph(client: PromiseClient, root_id: str) -> list[Promise]:
    """All promises under root_id: by origin tag, else the legacy BFS."""
    promises = await fetch_by_origin(client, root_id)
    if promises:
        return promises
    log.info("no promises tagged with origin %s; trying legacy root tag", root_id)
    return await fetch_with_root_tag(client, root_id)


async def fetch_root_tree(client: PromiseClient, root_id: str) -> TreeNode:
    """Tree for one forest row: by origin tag, else by dotted id prefix."""
    promises = await fetch_by_origin(client, root_id)
    if not promises:
        try:
            page = await client.search(SearchParams(id=root_id + "*", limit=TREE_PAGE_LIMIT))
        except ClientError as exc:
            log.debug("id prefix lookup for %s failed: %s", root_id, exc)
        else:
            promises = page.promises
    return build_tree(root_id, promises)


async def fetch_roots(client: PromiseClient, effect: FetchRoots) -> tuple[list[Promise], str | None]:
    page = await client.search(effect.params)
    return select_roots(page.promises, effect.role_filter), page.cursor


async def perform(client: PromiseClient, effect: Effect) -> Event | None:
    """Run a fetch effect and turn its outcome into the completion event.

    Query failures are returned on the event, never raised. Effects that
    need no I/O return None.
    """
    if isinstance(effect, FetchRoots):
        try:
            promises, cursor = await fetch_roots(client, effect)
        except ClientError as exc:
            return RootsLoaded(error=exc, generation=effect.generation)
        return RootsLoaded(promises=promises, cursor=cursor, generation=effect.generation)

    if isinstance(effect, FetchRootTree):
        try:
            tree = await fetch_root_tree(client, effect.root_id)
        except ClientError as exc:
            return RootTreeLoaded(effect.root_id, error=exc)
        return RootTreeLoaded(effect.root_id, tree=tree)

    if isinstance(effect, FetchTree):
        try:
            promises = await fetch_call_graph(client, effect.root_id)
        except ClientError as exc:
            return TreeLoaded(effect.root_id, error=exc)
        return TreeLoaded(effect.root_id, promises=promises)

    return None

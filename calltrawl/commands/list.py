"""List command: raw promise search with a role column."""
from __future__ import annotations

from calltrawl.client import PromiseClient, SearchParams
from calltrawl.promise import Promise


def list_role(p: Promise) -> str:
    """Role as shown in the promise list.

    Unlike the forest's role filter, an unscoped promise only counts as a
    root when it has no parent other than itself; otherwise it has no role.
    """
    if p.is_sleep:
        return "sleep"
    if p.scope == "global":
        return "rpc"
    if p.scope == "local":
        return "run"
    parent = p.parent_id
    if parent == "" or parent == p.id:
        return "root"
    return ""


async def cmd_list(client: PromiseClient, pattern: str = "*", state: str = "",
                   limit: int = 50, cursor: str = "",
                   roots_only: bool = False) -> tuple[list[Promise], str | None]:
    page = await client.search(SearchParams(
        id=pattern or "*", state=state, limit=limit, cursor=cursor,
    ))
    promises = page.promises
    if roots_only:
        promises = [p for p in promises if list_role(p) == "root"]
    return promises, page.cursor


def list_dict(promises: list[Promise], cursor: str | None) -> dict:
    return {
        "promises": [
            {
                "id": p.id,
                "state": p.state,
                "role": list_role(p),
                "func": p.func_name,
                "created_on": p.created_on,
            }
            for p in promises
        ],
        "cursor": cursor,
    }

"""Show command: a single promise in full."""
from __future__ import annotations

from calltrawl.client import PromiseClient
from calltrawl.promise import Promise, decode_data, promise_role


def _value_dict(value: dict) -> dict:
    data = value.get("data")
    return {
        "headers": dict(value.get("headers") or {}),
        "data": data,
        "decoded": decode_data(data),
    }


def promise_dict(p: Promise) -> dict:
    """Canonical dict for one promise."""
    return {
        "id": p.id,
        "state": p.state,
        "role": promise_role(p),
        "func": p.func_name,
        "created_on": p.created_on,
        "completed_on": p.completed_on,
        "timeout": p.timeout,
        "tags": dict(p.tags),
        "param": _value_dict(p.param),
        "value": _value_dict(p.value),
    }


async def cmd_show(client: PromiseClient, promise_id: str) -> Promise:
    return await client.get(promise_id)

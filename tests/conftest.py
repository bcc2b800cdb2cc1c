"""Shared fixtures for calltrawl tests."""
from __future__ import annotations

import fnmatch
import json
from urllib.parse import unquote

import httpx
import pytest

from calltrawl.client import PromiseClient
from calltrawl.promise import (
    TAG_ORIGIN, TAG_PARENT, TAG_ROOT, TAG_SCOPE, TAG_TIMEOUT, Promise, encode_data,
)


def make_raw(id: str, parent: str | None = None, origin: str | None = None,
             state: str = "PENDING", created: int | None = None,
             scope: str | None = None, sleep: bool = False,
             legacy_root: str | None = None, func: str | None = None,
             completed: int | None = None, **extra) -> dict:
    tags = {}
    if parent is not None:
        tags[TAG_PARENT] = parent
    if origin is not None:
        tags[TAG_ORIGIN] = origin
    if scope is not None:
        tags[TAG_SCOPE] = scope
    if sleep:
        tags[TAG_TIMEOUT] = "true"
    if legacy_root is not None:
        tags[TAG_ROOT] = legacy_root
    raw = {"id": id, "state": state, "timeout": 1_900_000_000_000, "tags": tags}
    if created is not None:
        raw["createdOn"] = created
    if completed is not None:
        raw["completedOn"] = completed
    if func is not None:
        raw["param"] = {"headers": {}, "data": encode_data({"func": func, "args": []})}
    raw.update(extra)
    return raw


@pytest.fixture
def promise():
    """Factory: build a Promise from keyword shorthand."""
    def _make(id: str, **kwargs) -> Promise:
        return Promise(make_raw(id, **kwargs))
    return _make


class FakeServer:
    """In-memory GET /promises backend served through httpx.MockTransport.

    Cursors are decimal offsets into the filtered result list. ``fail``
    maps a query predicate to a status code to return instead.
    """

    def __init__(self, promises: list[dict] | None = None):
        self.promises: list[dict] = list(promises or [])
        self.requests: list[httpx.Request] = []
        self.failures: list[tuple] = []

    def add(self, *raws: dict) -> None:
        self.promises.extend(raws)

    def fail_when(self, predicate, status: int = 500, body: str = "boom") -> None:
        self.failures.append((predicate, status, body))

    def queries(self) -> list[dict[str, str]]:
        return [dict(r.url.params) for r in self.requests if r.url.path == "/promises"]

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        params = dict(request.url.params)
        for predicate, status, body in self.failures:
            if predicate(request.url.path, params):
                return httpx.Response(status, text=body)

        if request.url.path == "/promises":
            return self._search(params)
        if request.url.path.startswith("/promises/"):
            promise_id = unquote(request.url.path[len("/promises/"):])
            for raw in self.promises:
                if raw["id"] == promise_id:
                    return httpx.Response(200, json=raw)
            return httpx.Response(404, text="not found")
        return httpx.Response(404, text="not found")

    def _search(self, params: dict[str, str]) -> httpx.Response:
        pattern = params.get("id", "*")
        state = params.get("state", "").upper()
        tags = {k[5:-1]: v for k, v in params.items() if k.startswith("tags[")}

        matched = []
        for raw in self.promises:
            if not fnmatch.fnmatchcase(raw["id"], pattern):
                continue
            if state and not raw.get("state", "").startswith(state):
                continue
            if any(raw.get("tags", {}).get(k) != v for k, v in tags.items()):
                continue
            matched.append(raw)

        if params.get("sortId") == "1":
            matched.sort(key=lambda r: r.get("createdOn", 0))
        elif params.get("sortId") == "-1":
            matched.sort(key=lambda r: r.get("createdOn", 0), reverse=True)

        start = int(params.get("cursor") or 0)
        limit = int(params.get("limit") or len(matched) or 1)
        page = matched[start:start + limit]
        body = {"promises": page}
        if start + limit < len(matched):
            body["cursor"] = str(start + limit)
        return httpx.Response(200, content=json.dumps(body).encode(),
                              headers={"content-type": "application/json"})


@pytest.fixture
def server():
    return FakeServer()


@pytest.fixture
def make_client(server):
    """Factory: a PromiseClient wired to the fake server.

    Build it inside the coroutine under test so the httpx client belongs to
    that event loop.
    """
    def _make(**kwargs) -> PromiseClient:
        return PromiseClient("http://promises.test", transport=httpx.MockTransport(server.handler),
                             **kwargs)
    return _make

"""Async HTTP client for the promise store API."""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from urllib.parse import quote

import httpx

from calltrawl.config import Config
from calltrawl.promise import Promise

log = logging.getLogger(__name__)

SORT_DESC = -1  # newest first
SORT_ASC = 1    # oldest first


class ClientError(Exception):
    """A failed promise query: transport error, bad status, or bad body."""

    def __init__(self, message: str, status: int | None = None):
        super().__init__(message)
        self.status = status


@dataclass
class SearchParams:
    id: str = "*"
    state: str = ""
    tags: dict[str, str] = field(default_factory=dict)
    limit: int = 0
    cursor: str = ""
    sort_id: int | None = None

    def query(self) -> list[tuple[str, str]]:
        """Encode as GET /promises query parameters."""
        q: list[tuple[str, str]] = []
        if self.id:
            q.append(("id", self.id))
        if self.state:
            q.append(("state", self.state))
        if self.limit > 0:
            q.append(("limit", str(self.limit)))
        if self.cursor:
            q.append(("cursor", self.cursor))
        for key, val in self.tags.items():
            q.append((f"tags[{key}]", val))
        if self.sort_id is not None:
            q.append(("sortId", str(self.sort_id)))
        return q


@dataclass
class SearchResult:
    promises: list[Promise]
    cursor: str | None = None


class PromiseClient:
    """Thin wrapper over httpx.AsyncClient for /promises.

    Use as an async context manager so the connection pool is closed::

        async with PromiseClient.from_config(config) as client:
            page = await client.search(SearchParams(id="*", limit=50))
    """

    def __init__(self, base_url: str, token: str = "", username: str = "",
                 password: str = "", timeout: float = 10.0,
                 transport: httpx.AsyncBaseTransport | None = None):
        self.base_url = base_url.rstrip("/")
        headers = {"Accept": "application/json"}
        auth = None
        if token:
            headers["Authorization"] = f"Bearer {token}"
        elif username:
            auth = httpx.BasicAuth(username, password)
        self._http = httpx.AsyncClient(
            base_url=self.base_url,
            headers=headers,
            auth=auth,
            timeout=timeout,
            transport=transport,
        )

    @classmethod
    def from_config(cls, config: Config,
                    transport: httpx.AsyncBaseTransport | None = None) -> PromiseClient:
        return cls(
            config.server,
            token=config.token,
            username=config.username,
            password=config.password,
            timeout=config.timeout,
            transport=transport,
        )

    async def __aenter__(self) -> PromiseClient:
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._http.aclose()

    async def search(self, params: SearchParams) -> SearchResult:
        """Query GET /promises with the given parameters."""
        body = await self._get_json("/promises", params.query())
        raw_promises = body.get("promises") or []
        cursor = body.get("cursor") or None
        return SearchResult(
            promises=[Promise(p) for p in raw_promises if isinstance(p, dict)],
            cursor=cursor,
        )

    async def get(self, promise_id: str) -> Promise:
        """Fetch a single promise via GET /promises/{id}."""
        body = await self._get_json(f"/promises/{quote(promise_id, safe='')}")
        return Promise(body)

    async def _get_json(self, path: str, params: list[tuple[str, str]] | None = None) -> dict:
        log.debug("GET %s %s", path, params or "")
        try:
            resp = await self._http.get(path, params=params)
        except httpx.HTTPError as exc:
            raise ClientError(f"request failed: {exc}") from exc

        if resp.status_code != httpx.codes.OK:
            raise ClientError(f"HTTP {resp.status_code}: {resp.text.strip()}",
                              status=resp.status_code)
        try:
            body = resp.json()
        except ValueError as exc:
            raise ClientError(f"decode response: {exc}") from exc
        if not isinstance(body, dict):
            raise ClientError(f"decode response: expected object, got {type(body).__name__}")
        return body

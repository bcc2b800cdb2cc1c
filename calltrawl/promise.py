"""Promise records, tag conventions, and formatting helpers."""
from __future__ import annotations

import base64
import binascii
import copy
import json
import re
from datetime import datetime, timezone
from enum import Enum
from typing import Any


# ── Tags ──────────────────────────────────────────────────────────────

TAG_ORIGIN = "resonate:origin"
TAG_PARENT = "resonate:parent"
TAG_SCOPE = "resonate:scope"
TAG_TIMEOUT = "resonate:timeout"
TAG_ROOT = "resonate:root"  # legacy relationship tag

RESERVED_TAG_PREFIX = "resonate:"


class State(str, Enum):
    PENDING = "PENDING"
    RESOLVED = "RESOLVED"
    REJECTED = "REJECTED"
    REJECTED_CANCELED = "REJECTED_CANCELED"
    REJECTED_TIMEDOUT = "REJECTED_TIMEDOUT"


STATE_LABELS = {
    State.PENDING.value: "PENDING",
    State.RESOLVED.value: "RESOLVED",
    State.REJECTED.value: "REJECTED",
    State.REJECTED_CANCELED.value: "CANCELED",
    State.REJECTED_TIMEDOUT.value: "TIMEDOUT",
}

REJECTED_STATES = frozenset({
    State.REJECTED.value, State.REJECTED_CANCELED.value, State.REJECTED_TIMEDOUT.value,
})


# ── Promise ───────────────────────────────────────────────────────────

class Promise:
    """Read-only wrapper over a promise's JSON wire form.

    The raw dict is deep-copied on construction so that tree nodes never
    share mutable data with a server response or with each other.
    """

    __slots__ = ("raw",)

    def __init__(self, raw: dict):
        self.raw = copy.deepcopy(raw)

    def __repr__(self) -> str:
        return f"Promise(id={self.id!r}, state={self.state!r})"

    def __eq__(self, other) -> bool:
        if not isinstance(other, Promise):
            return NotImplemented
        return self.raw == other.raw

    __hash__ = None  # type: ignore[assignment]

    @classmethod
    def placeholder(cls, promise_id: str) -> Promise:
        return cls({"id": promise_id})

    @property
    def id(self) -> str:
        return self.raw.get("id", "")

    @property
    def state(self) -> str:
        return self.raw.get("state", "") or ""

    @property
    def timeout(self) -> int:
        return self.raw.get("timeout") or 0

    @property
    def created_on(self) -> int | None:
        return self.raw.get("createdOn")

    @property
    def completed_on(self) -> int | None:
        return self.raw.get("completedOn")

    @property
    def tags(self) -> dict[str, str]:
        return self.raw.get("tags") or {}

    @property
    def param(self) -> dict:
        return self.raw.get("param") or {}

    @property
    def value(self) -> dict:
        return self.raw.get("value") or {}

    @property
    def parent_id(self) -> str:
        return self.tags.get(TAG_PARENT, "")

    @property
    def origin_id(self) -> str:
        return self.tags.get(TAG_ORIGIN, "")

    @property
    def scope(self) -> str:
        return self.tags.get(TAG_SCOPE, "")

    @property
    def is_sleep(self) -> bool:
        return bool(self.tags.get(TAG_TIMEOUT))

    @property
    def tree_root_id(self) -> str:
        """Id of the call graph this promise belongs to."""
        return self.origin_id or self.id

    @property
    def func_name(self) -> str:
        decoded = decode_data(self.param.get("data"))
        if decoded is None:
            return ""
        try:
            obj = json.loads(decoded)
        except (json.JSONDecodeError, TypeError):
            return ""
        if isinstance(obj, dict):
            func = obj.get("func")
            if isinstance(func, str):
                return func
        return ""


def promise_role(p: Promise) -> str:
    """Classify a promise as sleep, rpc, run or root from its tags."""
    if p.is_sleep:
        return "sleep"
    if p.scope == "global":
        return "rpc"
    if p.scope == "local":
        return "run"
    return "root"


# ── Value helpers ─────────────────────────────────────────────────────

def decode_data(data: str | None) -> str | None:
    """Decode a base64 value body. Returns None when absent or undecodable."""
    if not data:
        return None
    try:
        raw = base64.b64decode(data, validate=True)
    except (binascii.Error, ValueError):
        return None
    try:
        return raw.decode("utf-8")
    except UnicodeDecodeError:
        return None


def encode_data(obj: Any) -> str:
    """Encode a JSON-serializable object the way workers store params."""
    return base64.b64encode(json.dumps(obj).encode()).decode()


# ── Formatting helpers ────────────────────────────────────────────────

def state_label(state: str) -> str:
    return STATE_LABELS.get(state, state)


def truncate(text: str, max_len: int) -> str:
    if len(text) <= max_len:
        return text
    return text[:max_len - 3] + "..."


def ms_to_datetime(ms: int) -> datetime:
    return datetime.fromtimestamp(ms / 1000, tz=timezone.utc)


def format_ago(ms: int | None, now: datetime | None = None) -> str:
    """Relative age for list rows: 12s ago / 5m ago / 3h ago, else a date."""
    if ms is None:
        return "-"
    ts = ms_to_datetime(ms)
    now = now or datetime.now(timezone.utc)
    ago = (now - ts).total_seconds()
    if 0 <= ago < 60:
        return f"{int(ago)}s ago"
    if 0 <= ago < 3600:
        return f"{int(ago // 60)}m ago"
    if 0 <= ago < 86400:
        return f"{int(ago // 3600)}h ago"
    return ts.strftime("%Y-%m-%d %H:%M")


def format_timestamp(ms: int | None, now: datetime | None = None) -> str:
    """Absolute UTC timestamp with a relative suffix when recent."""
    if ms is None:
        return "-"
    ts = ms_to_datetime(ms)
    base = ts.strftime("%Y-%m-%d %H:%M:%S UTC")
    rel = format_ago(ms, now=now)
    if rel.endswith("ago"):
        return f"{base} ({rel})"
    return base


def format_duration(ms: int) -> str:
    secs = ms // 1000
    if secs < 60:
        return f"{secs}s"
    if secs < 3600:
        return f"{secs // 60}m"
    if secs < 86400:
        return f"{secs // 3600}h"
    return f"{secs // 86400}d"


def parse_interval(val: str) -> float:
    """Parse a refresh interval: plain seconds or 500ms / 5s / 2m / 1h."""
    m = re.match(r"^(\d+(?:\.\d+)?)(ms|s|m|h)?$", val.strip())
    if not m:
        raise ValueError(f"Cannot parse interval: {val!r} (use seconds or 500ms/5s/2m/1h)")
    n = float(m.group(1))
    unit = m.group(2) or "s"
    scale = {"ms": 0.001, "s": 1.0, "m": 60.0, "h": 3600.0}
    return n * scale[unit]

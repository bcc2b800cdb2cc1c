"""Events consumed and effects requested by the navigation state machines.

Every input to a view arrives as one of the event types below through the
view's ``handle`` method; every side effect the view wants performed (a
query, opening a detail pane) comes back as an effect value. Views never do
I/O themselves.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum, auto
from typing import Union

from calltrawl.client import SearchParams
from calltrawl.promise import Promise
from calltrawl.tree import TreeNode


class Intent(Enum):
    UP = auto()
    DOWN = auto()
    TOP = auto()
    BOTTOM = auto()
    TOGGLE = auto()
    EXPAND = auto()
    COLLAPSE = auto()
    INSPECT = auto()
    REFRESH = auto()
    # forest only
    EXPAND_ALL = auto()
    COLLAPSE_ALL = auto()
    CYCLE_SORT = auto()
    CYCLE_ROLE = auto()
    NEXT_PAGE = auto()
    PREV_PAGE = auto()
    FILTER_ALL = auto()
    FILTER_PENDING = auto()
    FILTER_RESOLVED = auto()
    FILTER_REJECTED = auto()


# ── Events ────────────────────────────────────────────────────────────

@dataclass(frozen=True)
class Key:
    intent: Intent


@dataclass(frozen=True)
class Tick:
    pass


@dataclass(frozen=True)
class Resize:
    height: int


@dataclass
class TreeLoaded:
    root_id: str
    promises: list[Promise] = field(default_factory=list)
    error: Exception | None = None


@dataclass
class RootsLoaded:
    promises: list[Promise] = field(default_factory=list)
    cursor: str | None = None
    error: Exception | None = None
    generation: int = 0


@dataclass
class RootTreeLoaded:
    root_id: str
    tree: TreeNode | None = None
    error: Exception | None = None


Event = Union[Key, Tick, Resize, TreeLoaded, RootsLoaded, RootTreeLoaded]


# ── Effects ───────────────────────────────────────────────────────────

@dataclass(frozen=True)
class OpenDetail:
    promise: Promise


@dataclass(frozen=True)
class FetchTree:
    root_id: str


@dataclass(frozen=True)
class FetchRoots:
    """One page of root candidates, with the filters in force when issued.

    generation is echoed on the RootsLoaded so the forest can drop pages
    from queries it has since replaced.
    """
    params: SearchParams
    role_filter: str = ""
    generation: int = 0


@dataclass(frozen=True)
class FetchRootTree:
    root_id: str


Effect = Union[OpenDetail, FetchTree, FetchRoots, FetchRootTree]

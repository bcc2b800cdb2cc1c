"""Interactive browser: forest, tree and detail panes on one event loop.

Keyboard input, refresh ticks and query completions all arrive on one
asyncio queue and are applied one at a time, so the views are only ever
mutated from the loop.
"""
from __future__ import annotations

import asyncio
import logging
import os
import sys
from dataclasses import dataclass

from rich.console import Console, Group
from rich.live import Live
from rich.text import Text

from calltrawl.client import PromiseClient
from calltrawl.config import ConfigError
from calltrawl.events import (
    Effect, Event, Intent, Key, OpenDetail, Resize, RootTreeLoaded, RootsLoaded,
    Tick, TreeLoaded,
)
from calltrawl.forest import Forest
from calltrawl.formatters.human import render_detail_pane, render_forest, render_tree_view
from calltrawl.loader import perform
from calltrawl.navigation import TreeView
from calltrawl.promise import Promise
from calltrawl.theme import Theme

log = logging.getLogger(__name__)

FOREST, TREE, DETAIL = "forest", "tree", "detail"

# Rows taken by titles, filters, headers and footers in each pane.
FOREST_CHROME = 12
TREE_CHROME = 8

KEYMAP: dict[str, Intent] = {
    "j": Intent.DOWN, "down": Intent.DOWN,
    "k": Intent.UP, "up": Intent.UP,
    "g": Intent.TOP, "home": Intent.TOP,
    "G": Intent.BOTTOM, "end": Intent.BOTTOM,
    "enter": Intent.TOGGLE, " ": Intent.TOGGLE,
    "l": Intent.EXPAND, "right": Intent.EXPAND,
    "h": Intent.COLLAPSE, "left": Intent.COLLAPSE,
    "i": Intent.INSPECT,
    "r": Intent.REFRESH,
    "a": Intent.EXPAND_ALL,
    "c": Intent.COLLAPSE_ALL,
    "s": Intent.CYCLE_SORT,
    "n": Intent.NEXT_PAGE,
    "p": Intent.PREV_PAGE,
    "1": Intent.FILTER_ALL,
    "2": Intent.FILTER_PENDING,
    "3": Intent.FILTER_RESOLVED,
    "4": Intent.FILTER_REJECTED,
    "5": Intent.CYCLE_ROLE,
}

_ESCAPES = {
    "\x1b[A": "up", "\x1b[B": "down", "\x1b[C": "right", "\x1b[D": "left",
    "\x1b[H": "home", "\x1b[F": "end", "\x1bOA": "up", "\x1bOB": "down",
    "\x1bOC": "right", "\x1bOD": "left",
}


def decode_keys(chunk: str) -> list[str]:
    """Split raw terminal input into key names."""
    keys = []
    i = 0
    while i < len(chunk):
        ch = chunk[i]
        if ch == "\x1b":
            seq = chunk[i:i + 3]
            if seq in _ESCAPES:
                keys.append(_ESCAPES[seq])
                i += 3
                continue
            keys.append("esc")
        elif ch in ("\r", "\n"):
            keys.append("enter")
        elif ch == "\t":
            keys.append("tab")
        elif ch == "\x03":
            keys.append("ctrl+c")
        else:
            keys.append(ch)
        i += 1
    return keys


@dataclass(frozen=True)
class KeyPressed:
    key: str


class Browser:
    def __init__(self, client: PromiseClient, theme: Theme, console: Console | None = None,
                 forest: Forest | None = None, tree_view: TreeView | None = None,
                 refresh: float = 5.0):
        self.client = client
        self.theme = theme
        self.console = console or Console()
        self.forest = forest or Forest()
        self.tree_view = tree_view or TreeView()
        self.refresh = refresh

        self.mode = FOREST
        self.previous_mode = FOREST
        self.detail: Promise | None = None
        self.done = False

        self.queue: asyncio.Queue = asyncio.Queue()
        self._tasks: set[asyncio.Task] = set()

    # ── Startup ───────────────────────────────────────────────────────

    def start(self, root_id: str = "") -> None:
        """Issue the initial queries; with root_id, open on that tree."""
        self.run_effects(self.forest.reload())
        if root_id:
            self.open_tree(root_id)

    def open_tree(self, root_id: str) -> None:
        self.mode = TREE
        self.previous_mode = TREE
        self.run_effects(self.tree_view.load(root_id))

    # ── Event handling ────────────────────────────────────────────────

    def apply(self, event: Event | KeyPressed) -> None:
        if isinstance(event, KeyPressed):
            self.on_key(event.key)
        elif isinstance(event, (RootsLoaded, RootTreeLoaded)):
            self.run_effects(self.forest.handle(event))
        elif isinstance(event, TreeLoaded):
            self.run_effects(self.tree_view.handle(event))
        elif isinstance(event, (Tick, Resize, Key)):
            view = self.active_view()
            if view is not None:
                self.run_effects(view.handle(event))
        else:
            raise TypeError(f"unhandled event: {event!r}")

    def active_view(self) -> Forest | TreeView | None:
        if self.mode == FOREST:
            return self.forest
        if self.mode == TREE:
            return self.tree_view
        return None

    def on_key(self, key: str) -> None:
        if key in ("q", "ctrl+c"):
            self.done = True
            return
        if key == "esc":
            if self.mode == DETAIL:
                self.mode = self.previous_mode
            elif self.mode == TREE:
                self.mode = FOREST
            return
        if key == "tab":
            if self.mode == FOREST and self.tree_view.root_id:
                self.mode = TREE
            elif self.mode == TREE:
                self.mode = FOREST
            return
        if key == "t" and self.mode == DETAIL and self.detail is not None:
            self.open_tree(self.detail.tree_root_id)
            return

        intent = KEYMAP.get(key)
        view = self.active_view()
        if intent is None or view is None:
            return
        self.run_effects(view.handle(Key(intent)))

    def run_effects(self, effects: list[Effect]) -> None:
        for effect in effects:
            if isinstance(effect, OpenDetail):
                if self.mode != DETAIL:
                    self.previous_mode = self.mode
                self.mode = DETAIL
                self.detail = effect.promise
            else:
                task = asyncio.get_running_loop().create_task(self._complete(effect))
                self._tasks.add(task)
                task.add_done_callback(self._tasks.discard)

    async def _complete(self, effect: Effect) -> None:
        event = await perform(self.client, effect)
        if event is not None:
            await self.queue.put(event)

    async def drain(self) -> None:
        """Wait for in-flight queries and apply everything queued."""
        while self._tasks or not self.queue.empty():
            if self._tasks:
                await asyncio.gather(*list(self._tasks))
            while not self.queue.empty():
                self.apply(self.queue.get_nowait())

    # ── Rendering ─────────────────────────────────────────────────────

    def resize(self, height: int) -> None:
        self.forest.handle(Resize(height - FOREST_CHROME))
        self.tree_view.handle(Resize(height - TREE_CHROME))

    def render(self):
        width = self.console.width
        tabs = Text("  ")
        for label, mode in (("Roots", FOREST), ("Tree", TREE)):
            active = self.mode == mode or (self.mode == DETAIL and self.previous_mode == mode)
            tabs.append(label, style="bold underline cyan1" if active else self.theme.dim)
            tabs.append("  ")
        tabs.append("  " + self.client.base_url, style=self.theme.dim)
        rule = Text(self.theme.rule_char * width, style=self.theme.dim)

        if self.mode == DETAIL and self.detail is not None:
            body = render_detail_pane(self.detail, self.theme)
        elif self.mode == TREE:
            body = render_tree_view(self.tree_view, self.theme)
        else:
            body = render_forest(self.forest, self.theme, width=width)
        return Group(tabs, rule, body)

    # ── Main loop ─────────────────────────────────────────────────────

    async def _ticker(self) -> None:
        while True:
            await asyncio.sleep(self.refresh)
            await self.queue.put(Tick())

    async def run(self, root_id: str = "") -> None:
        import termios
        import tty

        if not sys.stdin.isatty():
            raise ConfigError("browse needs an interactive terminal")
        fd = sys.stdin.fileno()
        saved = termios.tcgetattr(fd)
        loop = asyncio.get_running_loop()

        def on_input() -> None:
            chunk = os.read(fd, 64).decode(errors="ignore")
            for key in decode_keys(chunk):
                self.queue.put_nowait(KeyPressed(key))

        ticker = None
        try:
            tty.setcbreak(fd)
            loop.add_reader(fd, on_input)
            if self.refresh > 0:
                ticker = loop.create_task(self._ticker())
            self.resize(self.console.height)
            self.start(root_id)

            with Live(self.render(), console=self.console, screen=True,
                      auto_refresh=False) as live:
                height = self.console.height
                while not self.done:
                    event = await self.queue.get()
                    self.apply(event)
                    if self.console.height != height:
                        height = self.console.height
                        self.resize(height)
                    live.update(self.render(), refresh=True)
        finally:
            loop.remove_reader(fd)
            if ticker is not None:
                ticker.cancel()
            termios.tcsetattr(fd, termios.TCSADRAIN, saved)
            for task in list(self._tasks):
                task.cancel()

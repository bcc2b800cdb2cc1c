"""Immutable styling passed to every renderer."""
from __future__ import annotations

import os
import sys
from dataclasses import dataclass

from rich.text import Text

from calltrawl.promise import REJECTED_STATES, State, state_label


def detect_ascii() -> bool:
    """Return True if the terminal likely can't handle Unicode box drawing."""
    encoding = getattr(sys.stdout, "encoding", "") or ""
    if encoding.lower().replace("-", "") not in ("utf8", "utf16", "utf32"):
        return True
    lang = os.environ.get("LANG", "") + os.environ.get("LC_ALL", "")
    if lang and "utf" not in lang.lower():
        return True
    return False


@dataclass(frozen=True)
class Theme:
    ascii: bool = False

    # status
    pending: str = "yellow1"
    resolved: str = "green1"
    rejected: str = "red1"

    # layout
    header: str = "bold cyan1"
    selected: str = "bold on grey19"
    dim: str = "grey58"
    error: str = "bold red1"
    help: str = "grey58"

    # detail
    label: str = "bold cyan1"
    tag_key: str = "cyan1"
    tag_value: str = "grey89"
    reserved_tag: str = "italic cyan1"

    # tree and roles
    connector: str = "grey35"
    rpc: str = "cyan1"
    run: str = "medium_purple1"
    sleep: str = "grey58"
    root: str = "bold cyan1"

    # filter pills
    filter_active: str = "bold black on cyan1"
    filter_inactive: str = "grey58"

    @classmethod
    def default(cls, ascii: bool = False) -> Theme:
        return cls(ascii=ascii)

    # ── Glyphs ────────────────────────────────────────────────────────

    @property
    def branch(self) -> str:
        return "|-- " if self.ascii else "├── "

    @property
    def last_branch(self) -> str:
        return "`-- " if self.ascii else "└── "

    @property
    def pipe(self) -> str:
        return "|   " if self.ascii else "│   "

    @property
    def expanded_marker(self) -> str:
        return "v " if self.ascii else "▼ "

    @property
    def collapsed_marker(self) -> str:
        return "> " if self.ascii else "▶ "

    @property
    def rule_char(self) -> str:
        return "-" if self.ascii else "─"

    # ── Styled fragments ──────────────────────────────────────────────

    def state_style(self, state: str) -> str:
        if state == State.PENDING.value:
            return self.pending
        if state == State.RESOLVED.value:
            return self.resolved
        if state in REJECTED_STATES:
            return self.rejected
        return ""

    def state_text(self, state: str) -> Text:
        return Text(state_label(state), style=self.state_style(state))

    def status_dot(self, state: str) -> Text:
        style = self.state_style(state)
        if not style:
            return Text("o" if self.ascii else "○")
        return Text("*" if self.ascii else "●", style=style)

    def role_text(self, role: str) -> Text:
        styles = {"root": self.root, "rpc": self.rpc, "run": self.run, "sleep": self.sleep}
        if role in styles:
            return Text(role, style=styles[role])
        return Text("-", style=self.dim)

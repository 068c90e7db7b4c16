"""Drawing of overlays and the tab bar on top of the live terminal.

Overlays are never written into a session's pyte screen: they are painted
directly on the terminal and wiped by redrawing the covered rows from the
screen buffer. rich lays out the dropdown, the assistant panel and the tab
bar into ANSI text.
"""

from __future__ import annotations

import time
from datetime import datetime
from io import StringIO
from typing import Any, Callable, Sequence

from prompt_toolkit.output import Output  # type: ignore
from rich import box
from rich.console import Console, Group
from rich.panel import Panel
from rich.table import Table
from rich.text import Text

from ait.core.overlay import OverlayState
from ait.core.panel import AssistantPanel
from ait.core.session import SessionController, SessionState
from ait.core.tabs import Tab

SAVE_CURSOR = "\x1b7"
RESTORE_CURSOR = "\x1b8"
DIM = "\x1b[2m"
RESET = "\x1b[0m"

PANEL_REPLY_LINES = 12


def to_ansi_lines(renderable: Any, width: int) -> list[str]:
    """Render a rich renderable at ``width`` columns and return its ANSI lines."""
    buffer = StringIO()
    console = Console(
        file=buffer,
        width=max(10, width),
        force_terminal=True,
        color_system="standard",
        markup=False,
        highlight=False,
    )
    console.print(renderable)
    return buffer.getvalue().splitlines()


def relative_time(timestamp: float, now: float | None = None) -> str:
    now = time.time() if now is None else now
    diff = now - timestamp
    if diff < 60:
        return "just now"
    if diff < 3600:
        return f"{int(diff // 60)}m ago"
    if diff < 86400:
        return f"{int(diff // 3600)}h ago"
    if diff < 604800:
        return f"{int(diff // 86400)}d ago"
    return datetime.fromtimestamp(timestamp).strftime("%Y-%m-%d")


def ghost_text(remainder: str) -> str:
    """Dimmed remainder at the cursor, cursor left where it was."""
    return f"{SAVE_CURSOR}{DIM}{remainder}{RESET}{RESTORE_CURSOR}"


def dropdown_table(state: OverlayState, now: float | None = None) -> Table:
    table = Table(box=box.ROUNDED, show_header=False, pad_edge=True, expand=False)
    table.add_column("cmd", no_wrap=True, overflow="ellipsis")
    table.add_column("meta", style="dim", no_wrap=True, justify="right")
    for index, suggestion in enumerate(state.suggestions):
        meta: list[str] = []
        if suggestion.source == "dictionary":
            meta.append("dict")
        else:
            if suggestion.frequency > 1:
                meta.append(f"{suggestion.frequency}x")
            meta.append(relative_time(suggestion.last_used, now))
        style = "reverse" if index == state.selected_index else ""
        table.add_row(Text(suggestion.cmd, style=style), " ".join(meta))
    return table


def panel_view(panel: AssistantPanel) -> Panel:
    parts: list[Any] = [Text(f"> {panel.question}", style="bold")]
    if panel.loading:
        parts.append(Text("thinking...", style="cyan"))
    if panel.error:
        parts.append(Text(f"error: {panel.error}", style="red"))
    if panel.notice:
        parts.append(Text(panel.notice, style="cyan"))
    if panel.reply is not None:
        lines = panel.reply.response.strip().splitlines()
        if len(lines) > PANEL_REPLY_LINES:
            lines = lines[:PANEL_REPLY_LINES] + ["..."]
        parts.append(Text("\n".join(lines)))
        parts.append(Text(f"model: {panel.reply.model}", style="dim"))
    for index, command in enumerate(panel.commands):
        marker = ">" if index == panel.selected else " "
        style = "reverse green" if index == panel.selected else "green"
        parts.append(Text(f"{marker} {command}", style=style))
    return Panel(
        Group(*parts),
        title="Assistant",
        subtitle="Enter: ask / insert  Up/Down: choose  /help  Esc: close",
        box=box.ROUNDED,
    )


_STATE_MARKS = {
    SessionState.CONNECTING: "...",
    SessionState.CONNECTED: "",
    SessionState.FAILED: "!",
    SessionState.CLOSED: "x",
}


def tab_bar(tabs: Sequence[Tab], active_id: str | None, width: int) -> str:
    text = Text(no_wrap=True, overflow="ellipsis")
    for index, tab in enumerate(tabs):
        controller = tab.controller
        mark = "x" if controller.remote_ended else _STATE_MARKS[controller.state]
        label = f" {index + 1}:{tab.title}{' ' + mark if mark else ''} "
        text.append(label, style="reverse" if tab.tab_id == active_id else "dim")
    text.append("  Alt+T new  Alt+W close  Alt+N/P next/prev", style="dim")
    lines = to_ansi_lines(text, width)
    return lines[0] if lines else ""


def place_lines(lines: Sequence[str], top: int) -> str:
    """ANSI that paints ``lines`` from 0-based row ``top`` without moving the cursor."""
    parts = [SAVE_CURSOR]
    for offset, line in enumerate(lines):
        parts.append(f"\x1b[{top + offset + 1};1H\x1b[2K{line}{RESET}")
    parts.append(RESTORE_CURSOR)
    return "".join(parts)


class OverlayRenderer:
    """Paints the active session's overlay and wipes whatever it painted before."""

    def __init__(self, output: Output, *, clock: Callable[[], float] = time.time) -> None:
        self._output = output
        self._clock = clock
        self._drawn: tuple[int, int] | None = None

    def reset(self) -> None:
        """Forget painted regions (the surface was repainted underneath)."""
        self._drawn = None

    def _wipe(self, controller: SessionController) -> None:
        if self._drawn is None:
            return
        start, count = self._drawn
        self._drawn = None
        controller.surface.restore_rows(start, count)

    def render(self, controller: SessionController) -> None:
        surface = controller.surface
        if not surface.visible:
            return
        self._wipe(controller)
        cols, rows = surface.size
        state = controller.overlay.state

        if state.dropdown_open:
            lines = to_ansi_lines(dropdown_table(state, self._clock()), min(cols, 80))
            top = self._top_for(state.anchor_row, len(lines), rows)
            self._paint(lines[:rows], top)
            return
        if state.assistant_open:
            lines = to_ansi_lines(panel_view(controller.overlay.panel), cols)
            lines = lines[:rows]
            self._paint(lines, max(0, rows - len(lines)))
            return
        remainder = controller.overlay.remainder
        if remainder:
            self._output.write_raw(ghost_text(remainder[: max(0, cols - surface.cursor_col)]))
            self._output.flush()
            self._drawn = (surface.cursor_row, 1)

    @staticmethod
    def _top_for(anchor: int, height: int, rows: int) -> int:
        if anchor + height <= rows:
            return anchor
        above = anchor - 1 - height
        return above if above >= 0 else max(0, rows - height)

    def _paint(self, lines: list[str], top: int) -> None:
        if not lines:
            return
        self._output.write_raw(place_lines(lines, top))
        self._output.flush()
        self._drawn = (top, len(lines))

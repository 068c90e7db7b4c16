"""Terminal-emulation surface for one session.

Every session owns a ``ScreenSurface``: a pyte screen that interprets the
remote byte stream, so a background tab keeps an up-to-date picture of its
shell. The visible surface also passes the bytes straight through to the real
terminal; switching tabs repaints the new surface from its pyte buffer with
SGR styling reconstructed per cell.
"""

from __future__ import annotations

import codecs
import logging
from typing import Dict, List, Protocol

import pyte
from prompt_toolkit.output import Output  # type: ignore

logger = logging.getLogger(__name__)

# pyte colour names -> SGR parameters
_FG_CODES: Dict[str, str] = {
    "black": "30", "red": "31", "green": "32", "brown": "33",
    "blue": "34", "magenta": "35", "cyan": "36", "white": "37",
    "brightblack": "90", "brightred": "91", "brightgreen": "92",
    "brightbrown": "93", "brightblue": "94", "brightmagenta": "95",
    "brightcyan": "96", "brightwhite": "97",
}
_BG_CODES: Dict[str, str] = {
    "black": "40", "red": "41", "green": "42", "brown": "43",
    "blue": "44", "magenta": "45", "cyan": "46", "white": "47",
    "brightblack": "100", "brightred": "101", "brightgreen": "102",
    "brightbrown": "103", "brightblue": "104", "brightmagenta": "105",
    "brightcyan": "106", "brightwhite": "107",
}


class Surface(Protocol):
    visible: bool

    def write(self, data: bytes) -> None: ...

    def write_text(self, text: str) -> None: ...

    @property
    def cursor_row(self) -> int: ...

    @property
    def cursor_col(self) -> int: ...

    @property
    def size(self) -> tuple[int, int]: ...

    def fit(self, cols: int, rows: int) -> None: ...

    def show(self) -> None: ...

    def hide(self) -> None: ...

    def repaint(self) -> None: ...

    def restore_rows(self, start: int, count: int) -> None: ...


def _colour_code(value: str, names: Dict[str, str], truecolour_prefix: str) -> str | None:
    if not value or value == "default":
        return None
    code = names.get(value)
    if code:
        return code
    if len(value) == 6:
        try:
            r, g, b = int(value[0:2], 16), int(value[2:4], 16), int(value[4:6], 16)
        except ValueError:
            return None
        return f"{truecolour_prefix};{r};{g};{b}"
    return None


def char_style_codes(char: pyte.screens.Char) -> List[str]:
    codes: List[str] = []
    if char.bold:
        codes.append("1")
    if char.italics:
        codes.append("3")
    if char.underscore:
        codes.append("4")
    if char.blink:
        codes.append("5")
    if char.reverse:
        codes.append("7")
    if char.strikethrough:
        codes.append("9")
    fg = _colour_code(char.fg, _FG_CODES, "38;2")
    if fg:
        codes.append(fg)
    bg = _colour_code(char.bg, _BG_CODES, "48;2")
    if bg:
        codes.append(bg)
    return codes


def render_row(row: Dict[int, pyte.screens.Char], columns: int) -> str:
    """Render one screen row as text with minimal SGR changes, trailing blanks dropped."""
    blank = pyte.screens.Char(" ")
    last = -1
    for col in range(columns - 1, -1, -1):
        char = row.get(col, blank)
        if char.data != " " or char_style_codes(char):
            last = col
            break
    if last < 0:
        return ""

    parts: List[str] = []
    active: List[str] = []
    for col in range(last + 1):
        char = row.get(col, blank)
        codes = char_style_codes(char)
        if codes != active:
            if active:
                parts.append("\x1b[0m")
            if codes:
                parts.append(f"\x1b[{';'.join(codes)}m")
            active = codes
        parts.append(char.data)
    if active:
        parts.append("\x1b[0m")
    return "".join(parts)


class ScreenSurface:
    """pyte-backed surface; writes through to ``output`` while visible."""

    def __init__(self, cols: int, rows: int, output: Output | None = None) -> None:
        self._screen = pyte.Screen(cols, rows)
        self._stream = pyte.Stream(self._screen)
        self._decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
        self._output = output
        self.visible = False

    @property
    def screen(self) -> pyte.Screen:
        return self._screen

    @property
    def cursor_row(self) -> int:
        return self._screen.cursor.y

    @property
    def cursor_col(self) -> int:
        return self._screen.cursor.x

    @property
    def size(self) -> tuple[int, int]:
        return self._screen.columns, self._screen.lines

    def write(self, data: bytes) -> None:
        text = self._decoder.decode(data)
        if not text:
            return
        self._stream.feed(text)
        if self.visible and self._output is not None:
            self._output.write_raw(text)
            self._output.flush()

    def write_text(self, text: str) -> None:
        """Local status lines (connect errors, notices); never sent to the remote."""
        self.write(text.encode("utf-8"))

    def fit(self, cols: int, rows: int) -> None:
        cols = max(1, cols)
        rows = max(1, rows)
        if (cols, rows) == self.size:
            return
        self._screen.resize(lines=rows, columns=cols)

    def show(self) -> None:
        self.visible = True
        self.repaint()

    def hide(self) -> None:
        self.visible = False

    def row_text(self, row: int) -> str:
        if row < 0 or row >= self._screen.lines:
            return ""
        return render_row(self._screen.buffer[row], self._screen.columns)

    def display(self) -> List[str]:
        """Plain text of every row (no styling)."""
        return list(self._screen.display)

    def repaint(self) -> None:
        """Redraw the whole screen from the pyte buffer and restore the cursor."""
        if not self.visible or self._output is None:
            return
        parts = ["\x1b[0m"]
        for row in range(self._screen.lines):
            parts.append(f"\x1b[{row + 1};1H\x1b[2K")
            parts.append(self.row_text(row))
        parts.append(f"\x1b[{self.cursor_row + 1};{self.cursor_col + 1}H")
        self._output.write_raw("".join(parts))
        self._output.flush()

    def restore_rows(self, start: int, count: int) -> None:
        """Redraw ``count`` rows from ``start`` (used after an overlay closes)."""
        if not self.visible or self._output is None:
            return
        parts = ["\x1b7"]
        for row in range(max(0, start), min(self._screen.lines, start + count)):
            parts.append(f"\x1b[{row + 1};1H\x1b[2K\x1b[0m")
            parts.append(self.row_text(row))
        parts.append("\x1b8")
        self._output.write_raw("".join(parts))
        self._output.flush()

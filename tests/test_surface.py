from __future__ import annotations

import pyte

from ait.surface import ScreenSurface, char_style_codes, render_row
from tests.utils import FakeOutput


def test_hidden_surface_tracks_screen_without_output() -> None:
    output = FakeOutput()
    surface = ScreenSurface(20, 4, output)
    surface.write(b"hello\r\nworld")
    assert surface.display()[:2] == ["hello".ljust(20), "world".ljust(20)]
    assert (surface.cursor_row, surface.cursor_col) == (1, 5)
    assert output.chunks == []


def test_visible_surface_passes_bytes_through() -> None:
    output = FakeOutput()
    surface = ScreenSurface(20, 4, output)
    surface.visible = True
    surface.write(b"\x1b[1mls\x1b[0m")
    assert output.chunks == ["\x1b[1mls\x1b[0m"]


def test_split_utf8_sequences_are_reassembled() -> None:
    surface = ScreenSurface(10, 2)
    encoded = "héllo".encode("utf-8")
    surface.write(encoded[:2])
    surface.write(encoded[2:])
    assert surface.display()[0].rstrip() == "héllo"


def test_show_repaints_rows_and_cursor() -> None:
    output = FakeOutput()
    surface = ScreenSurface(20, 3, output)
    surface.write(b"$ \x1b[31mred\x1b[0m")
    surface.show()
    painted = output.text
    assert "\x1b[1;1H\x1b[2K$ \x1b[31mred\x1b[0m" in painted
    assert painted.endswith("\x1b[1;6H")


def test_restore_rows_redraws_only_the_range() -> None:
    output = FakeOutput()
    surface = ScreenSurface(20, 5, output)
    surface.write(b"a\r\nb\r\nc\r\nd")
    surface.restore_rows(1, 2)
    assert output.chunks == []

    surface.visible = True
    surface.restore_rows(1, 2)
    (chunk,) = output.chunks
    assert chunk.startswith("\x1b7") and chunk.endswith("\x1b8")
    assert "\x1b[2;1H\x1b[2K\x1b[0mb" in chunk
    assert "\x1b[3;1H\x1b[2K\x1b[0mc" in chunk
    assert "\x1b[1;1H" not in chunk


def test_fit_resizes_screen() -> None:
    surface = ScreenSurface(80, 24)
    surface.fit(100, 30)
    assert surface.size == (100, 30)
    surface.fit(0, 0)
    assert surface.size == (1, 1)


def test_style_codes_and_row_rendering() -> None:
    bold_red = pyte.screens.Char("x", fg="red", bold=True)
    assert char_style_codes(bold_red) == ["1", "31"]
    truecolour = pyte.screens.Char("y", bg="ff8000")
    assert char_style_codes(truecolour) == ["48;2;255;128;0"]

    row = {0: bold_red, 1: bold_red, 2: pyte.screens.Char(" "), 3: pyte.screens.Char("z")}
    assert render_row(row, 10) == "\x1b[1;31mxx\x1b[0m z"
    assert render_row({}, 10) == ""

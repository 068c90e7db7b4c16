from __future__ import annotations

import re

import pytest

from ait.core.overlay import OverlayState
from ait.core.panel import AssistantPanel
from ait.core.tabs import TabMultiplexer
from ait.models import AssistantReply
from ait.render import (
    OverlayRenderer,
    dropdown_table,
    ghost_text,
    panel_view,
    place_lines,
    relative_time,
    tab_bar,
    to_ansi_lines,
)
from tests.utils import FakeOutput, FakeSurface, FakeTransport, make_controller, make_profile, suggestion

ANSI = re.compile(r"\x1b\[[0-9;?]*[A-Za-z]|\x1b[78]")


def plain(lines: list[str]) -> str:
    return "\n".join(ANSI.sub("", line) for line in lines)


def test_relative_time_buckets() -> None:
    now = 1_700_000_000.0
    assert relative_time(now - 5, now) == "just now"
    assert relative_time(now - 150, now) == "2m ago"
    assert relative_time(now - 3 * 3600, now) == "3h ago"
    assert relative_time(now - 2 * 86400, now) == "2d ago"
    assert re.fullmatch(r"\d{4}-\d{2}-\d{2}", relative_time(now - 30 * 86400, now))


def test_ghost_text_keeps_cursor_in_place() -> None:
    assert ghost_text("op") == "\x1b7\x1b[2mop\x1b[0m\x1b8"


def test_dropdown_shows_frequency_and_dictionary_marks() -> None:
    now = 1_700_000_000.0
    state = OverlayState(
        dropdown_open=True,
        suggestions=[suggestion("git status", 3, now - 120), suggestion("git stash", source="dictionary")],
        selected_index=1,
    )
    text = plain(to_ansi_lines(dropdown_table(state, now), 60))
    assert "git status" in text
    assert "3x 2m ago" in text
    assert "dict" in text


def test_panel_view_lists_commands_and_errors() -> None:
    panel = AssistantPanel(question="disk?", reply=AssistantReply(response="Run df", model="llama3"))
    panel.commands = ["df -h", "du -sh ."]
    panel.selected = 1
    panel.error = "timeout"
    text = plain(to_ansi_lines(panel_view(panel), 60))
    assert "> disk?" in text
    assert "error: timeout" in text
    assert "model: llama3" in text
    assert "> du -sh ." in text


def test_panel_view_shows_command_notice() -> None:
    panel = AssistantPanel(notice="model: qwen2.5-coder")
    text = plain(to_ansi_lines(panel_view(panel), 60))
    assert "model: qwen2.5-coder" in text
    assert "error:" not in text


def test_place_lines_positions_rows() -> None:
    assert place_lines(["a", "b"], 3) == "\x1b7\x1b[4;1H\x1b[2Ka\x1b[0m\x1b[5;1H\x1b[2Kb\x1b[0m\x1b8"


@pytest.mark.asyncio
async def test_tab_bar_lists_tabs_in_order() -> None:
    transport = FakeTransport()
    tabs = TabMultiplexer(lambda p: make_controller(profile=p, transport=transport, surface=FakeSurface()))
    await tabs.connect(make_profile(id="a", name="web"))
    second = await tabs.connect(make_profile(id="b", name="db"))
    bar = ANSI.sub("", tab_bar(tabs.tabs, second.tab_id, 120))
    assert bar.index("1:web") < bar.index("2:db")
    assert "Alt+T new" in bar
    assert "Alt+N/P next/prev" in bar
    await tabs.close_all()


def test_top_for_flips_above_when_no_room() -> None:
    assert OverlayRenderer._top_for(5, 4, 24) == 5
    assert OverlayRenderer._top_for(22, 4, 24) == 17
    assert OverlayRenderer._top_for(3, 10, 12) == 2


@pytest.mark.asyncio
async def test_renderer_draws_ghost_text_and_wipes_it() -> None:
    output = FakeOutput()
    surface = FakeSurface()
    surface.visible = True
    surface.cursor_row = 4
    controller = make_controller(surface=surface)
    await controller.open()

    controller.overlay.state.inline = "htop"
    controller.buffer.feed("ht")
    renderer = OverlayRenderer(output, clock=lambda: 0.0)
    renderer.render(controller)
    assert output.chunks == [ghost_text("op")]

    controller.overlay.state.inline = None
    renderer.render(controller)
    assert surface.restored == [(4, 1)]
    await controller.close()


@pytest.mark.asyncio
async def test_renderer_skips_hidden_surface() -> None:
    output = FakeOutput()
    controller = make_controller()
    await controller.open()
    controller.overlay.state.inline = "htop"
    OverlayRenderer(output).render(controller)
    assert output.chunks == []
    await controller.close()

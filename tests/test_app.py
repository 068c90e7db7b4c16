from __future__ import annotations

import pytest

from ait.app import ShortcutDispatcher, TerminalApp
from ait.core.tabs import TabMultiplexer
from ait.errors import TransportError
from ait.history import MemoryHistory
from ait.keys import KeyEvent
from ait.settings import MemorySettingsStore, set_macro
from tests.utils import FakeOutput, FakeSurface, FakeTransport, make_controller, make_profile


def alt(key: str) -> KeyEvent:
    return KeyEvent(key, "\x1b" + key, alt=True)


def _dispatcher(settings=None):
    transport = FakeTransport()
    tabs = TabMultiplexer(lambda p: make_controller(profile=p, transport=transport, surface=FakeSurface()))
    opened: list[str] = []

    async def new_tab(profile):
        opened.append(profile.id)
        await tabs.connect(profile)

    dispatcher = ShortcutDispatcher(
        tabs,
        settings or MemorySettingsStore(),
        new_tab=new_tab,
        default_profile=make_profile(id="default", name="default"),
    )
    return dispatcher, tabs, transport, opened


@pytest.mark.asyncio
async def test_non_alt_keys_are_not_shortcuts() -> None:
    dispatcher, _tabs, _transport, _opened = _dispatcher()
    assert dispatcher.dispatch(KeyEvent("text", "t")) is False
    assert dispatcher.dispatch(alt("x")) is False


@pytest.mark.asyncio
async def test_alt_t_opens_tab_for_active_profile() -> None:
    dispatcher, tabs, _transport, opened = _dispatcher()
    assert dispatcher.dispatch(alt("t")) is True
    await dispatcher.wait_idle()
    assert opened == ["default"]

    tabs.activate(tabs.tabs[0].tab_id)
    await tabs.connect(make_profile(id="db", name="db"))
    dispatcher.dispatch(alt("t"))
    await dispatcher.wait_idle()
    assert opened == ["default", "db"]
    assert len(tabs) == 3
    await tabs.close_all()


@pytest.mark.asyncio
async def test_alt_w_and_alt_n() -> None:
    dispatcher, tabs, transport, _opened = _dispatcher()
    first = await tabs.connect(make_profile(id="a"))
    second = await tabs.connect(make_profile(id="b"))

    dispatcher.dispatch(alt("n"))
    assert tabs.active is first

    dispatcher.dispatch(alt("w"))
    await dispatcher.wait_idle()
    assert tabs.tabs == [second]
    assert transport.closed == ["s1"]
    await tabs.close_all()


@pytest.mark.asyncio
async def test_alt_p_cycles_backwards() -> None:
    dispatcher, tabs, _transport, _opened = _dispatcher()
    first = await tabs.connect(make_profile(id="a"))
    second = await tabs.connect(make_profile(id="b"))
    third = await tabs.connect(make_profile(id="c"))

    assert dispatcher.dispatch(alt("p")) is True
    assert tabs.active is second
    dispatcher.dispatch(alt("p"))
    dispatcher.dispatch(alt("p"))
    assert tabs.active is third
    assert first in tabs.tabs
    await tabs.close_all()


@pytest.mark.asyncio
async def test_macros_send_command_and_enter() -> None:
    settings = MemorySettingsStore()
    set_macro(settings, None, "1", "uptime")
    set_macro(settings, None, "10", "df -h")
    set_macro(settings, "p1", "1", "systemctl status nginx")
    dispatcher, tabs, transport, _opened = _dispatcher(settings)
    tab = await tabs.connect(make_profile(id="p1"))

    assert dispatcher.dispatch(alt("1")) is True
    assert dispatcher.dispatch(alt("0")) is True
    await tab.controller.drain()
    assert transport.written("s1") == "systemctl status nginx\rdf -h\r"
    assert tab.controller.buffer.text == ""
    await tabs.close_all()


@pytest.mark.asyncio
async def test_unbound_macro_is_not_a_shortcut() -> None:
    dispatcher, tabs, transport, _opened = _dispatcher()
    tab = await tabs.connect(make_profile())
    assert dispatcher.run_macro("5") is False
    assert dispatcher.dispatch(alt("5")) is False
    await tab.controller.drain()
    assert transport.writes == []
    await tabs.close_all()


def _app() -> tuple[TerminalApp, FakeTransport, FakeOutput]:
    transport = FakeTransport()
    output = FakeOutput(columns=100, rows=31)
    app = TerminalApp(transport, MemoryHistory(), MemorySettingsStore(), output=output, stdin_fd=0)
    return app, transport, output


@pytest.mark.asyncio
async def test_app_opens_tab_with_surface_above_tab_bar() -> None:
    app, transport, output = _app()
    await app.open_tab(make_profile(name="web"))

    assert transport.opened[0]["cols"] == 100
    assert transport.opened[0]["rows"] == 30
    assert "\x1b[31;1H" in output.text
    assert "1:web" in output.text
    await app.tabs.close_all()


@pytest.mark.asyncio
async def test_app_routes_keys_to_active_session() -> None:
    app, transport, _output = _app()
    await app.open_tab(make_profile(id="a"))
    await app.open_tab(make_profile(id="b"))

    app.feed_input("uname -a\r")
    await app.tabs.active.controller.drain()
    assert transport.written("s2") == "uname -a\r"
    assert transport.written("s1") == ""
    await app.tabs.close_all()


@pytest.mark.asyncio
async def test_app_forwards_unbound_alt_digit_to_shell() -> None:
    app, transport, _output = _app()
    await app.open_tab(make_profile())
    app.dispatcher = ShortcutDispatcher(
        app.tabs, app.settings, new_tab=app.open_tab, default_profile=make_profile()
    )

    app.feed_input("\x1b3")
    await app.tabs.active.controller.drain()
    assert transport.written("s1") == "\x1b3"
    await app.tabs.close_all()


@pytest.mark.asyncio
async def test_app_failed_connect_keeps_running() -> None:
    app, transport, output = _app()
    transport.open_error = TransportError("SSH auth error: Authentication failed.")
    await app.open_tab(make_profile())
    assert len(app.tabs) == 1
    assert "connection failed: SSH auth error" in output.text
    await app.tabs.close_all()


@pytest.mark.asyncio
async def test_resize_fits_surfaces_and_resizes_remote() -> None:
    app, transport, output = _app()
    await app.open_tab(make_profile())
    output.columns, output.rows = 120, 41

    app._on_resize()
    await app.tabs.active.controller.wait_idle()
    assert app.tabs.active.controller.surface.size == (120, 40)
    assert transport.resizes == [("s1", 120, 40)]
    assert "\x1b[1;40r" in output.text
    await app.tabs.close_all()


@pytest.mark.asyncio
async def test_run_without_profiles_exits_with_usage_code() -> None:
    app, _transport, _output = _app()
    assert await app.run([]) == 2

"""Full-screen terminal frontend.

The local tty runs in raw mode; stdin is read through ``loop.add_reader``
and decoded into key events. Global shortcuts are tried first, then the
active session gets the key. The bottom row is reserved for the tab bar and
the rows above it belong to the active session's surface.
"""

from __future__ import annotations

import asyncio
import codecs
import logging
import os
import signal
import sys
from typing import Awaitable, Callable

from prompt_toolkit.input.vt100 import raw_mode  # type: ignore
from prompt_toolkit.output import Output  # type: ignore
from prompt_toolkit.output.defaults import create_output  # type: ignore

from ait.assistant import Assistant
from ait.config import AppConfig
from ait.core.session import SessionController
from ait.core.tabs import TabMultiplexer
from ait.errors import ConnectError
from ait.history import HistoryService
from ait.keys import KeyDecoder, KeyEvent
from ait.log_utils import log_event
from ait.models import Profile
from ait.render import OverlayRenderer, tab_bar
from ait.settings import SettingsStore, resolve_macro
from ait.surface import ScreenSurface
from ait.transport.base import Transport

logger = logging.getLogger(__name__)

READ_SIZE = 4096
TAB_BAR_ROWS = 1

_MACRO_DIGITS = {str(n): str(n) for n in range(1, 10)}
_MACRO_DIGITS["0"] = "10"


class ShortcutDispatcher:
    """Global Alt shortcuts, built once and holding the multiplexer by reference."""

    def __init__(
        self,
        tabs: TabMultiplexer,
        settings: SettingsStore,
        *,
        new_tab: Callable[[Profile], Awaitable[None]],
        default_profile: Profile | None = None,
    ) -> None:
        self._tabs = tabs
        self._settings = settings
        self._new_tab = new_tab
        self._default_profile = default_profile
        self._tasks: set[asyncio.Task[None]] = set()

    def dispatch(self, event: KeyEvent) -> bool:
        if not event.alt or event.ctrl:
            return False
        key = event.key
        if key == "t":
            profile = self._active_profile()
            if profile is not None:
                self._spawn(self._new_tab(profile))
            return True
        if key == "w":
            self._spawn(self._close_active())
            return True
        if key == "n":
            self._tabs.next_tab()
            return True
        if key == "p":
            self._tabs.previous_tab()
            return True
        if key in _MACRO_DIGITS:
            # Unbound digits stay with the shell (readline digit arguments).
            return self.run_macro(_MACRO_DIGITS[key])
        return False

    def _active_profile(self) -> Profile | None:
        active = self._tabs.active
        if active is not None:
            return active.profile
        return self._default_profile

    async def _close_active(self) -> None:
        await self._tabs.close_active()

    def run_macro(self, macro_key: str) -> bool:
        """Type the bound command into the active session and press Enter."""
        active = self._tabs.active
        if active is None:
            return False
        command = resolve_macro(self._settings, active.profile.id, macro_key)
        if not command:
            logger.debug("macro.unbound key=%s", macro_key)
            return False
        log_event(logger, "macro.run", key=macro_key, profile=active.profile.id)
        active.controller.send_input(command + "\r")
        return True

    def _spawn(self, coro: Awaitable[None]) -> None:
        task = asyncio.ensure_future(coro)
        self._tasks.add(task)
        task.add_done_callback(self._task_done)

    def _task_done(self, task: asyncio.Task[None]) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None and not isinstance(exc, ConnectError):
            logger.error("shortcut.task_failed error=%s", exc, exc_info=exc)

    async def wait_idle(self) -> None:
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)


class TerminalApp:
    def __init__(
        self,
        transport: Transport,
        history: HistoryService,
        settings: SettingsStore,
        *,
        config: AppConfig | None = None,
        assistant: Assistant | None = None,
        output: Output | None = None,
        stdin_fd: int | None = None,
    ) -> None:
        self.config = config or AppConfig()
        self.transport = transport
        self.history = history
        self.settings = settings
        self.assistant = assistant
        self.output = output or create_output(stdout=sys.stdout)
        self._stdin_fd = sys.stdin.fileno() if stdin_fd is None else stdin_fd
        self.tabs = TabMultiplexer(self._make_controller)
        self.tabs.add_listener(self._on_tabs_changed)
        self.renderer = OverlayRenderer(self.output)
        self.dispatcher: ShortcutDispatcher | None = None
        self._decoder = KeyDecoder()
        self._utf8 = codecs.getincrementaldecoder("utf-8")(errors="replace")
        self._done = asyncio.Event()
        self._active_id: str | None = None
        self._started = False

    # geometry

    def _surface_size(self) -> tuple[int, int]:
        size = self.output.get_size()
        return max(1, size.columns), max(1, size.rows - TAB_BAR_ROWS)

    def _set_scroll_region(self) -> None:
        _cols, rows = self._surface_size()
        self.output.write_raw(f"\x1b[1;{rows}r")
        self.output.flush()

    # controllers and tabs

    def _make_controller(self, profile: Profile) -> SessionController:
        cols, rows = self._surface_size()
        surface = ScreenSurface(cols, rows, self.output)
        controller = SessionController(
            profile,
            self.transport,
            surface,
            self.history,
            config=self.config,
            assistant=self.assistant,
        )
        controller.overlay.add_listener(lambda _state: self._render_overlay(controller))
        return controller

    def _render_overlay(self, controller: SessionController) -> None:
        active = self.tabs.active
        if active is None or active.controller is not controller:
            return
        self.renderer.render(controller)

    async def open_tab(self, profile: Profile) -> None:
        try:
            await self.tabs.connect(profile)
        except ConnectError as exc:
            logger.warning("app.connect_failed profile=%s error=%s", profile.id, exc)

    def _on_tabs_changed(self) -> None:
        active = self.tabs.active
        active_id = active.tab_id if active else None
        if active_id != self._active_id:
            # The new surface repainted itself on show().
            self._active_id = active_id
            self.renderer.reset()
            if active is not None:
                self.renderer.render(active.controller)
        self._draw_tab_bar()
        if not self.tabs.tabs and self._started:
            self._done.set()

    def _draw_tab_bar(self) -> None:
        cols, rows = self._surface_size()
        active = self.tabs.active
        bar = tab_bar(self.tabs.tabs, active.tab_id if active else None, cols)
        self.output.write_raw(f"\x1b7\x1b[{rows + 1};1H\x1b[2K{bar}\x1b[0m\x1b8")
        self.output.flush()

    # input

    def _on_stdin(self) -> None:
        try:
            data = os.read(self._stdin_fd, READ_SIZE)
        except OSError as exc:
            logger.warning("app.stdin_failed error=%s", exc)
            data = b""
        if not data:
            self._done.set()
            return
        self.feed_input(self._utf8.decode(data))

    def feed_input(self, text: str) -> None:
        for event in self._decoder.feed(text):
            if self.dispatcher is not None and self.dispatcher.dispatch(event):
                continue
            active = self.tabs.active
            if active is not None:
                active.controller.handle_key(event)

    def _on_resize(self) -> None:
        cols, rows = self._surface_size()
        for tab in self.tabs.tabs:
            tab.controller.surface.fit(cols, rows)
        for tab in self.tabs.tabs:
            tab.controller.resize(cols, rows)
        self._set_scroll_region()
        active = self.tabs.active
        if active is not None:
            active.controller.surface.repaint()
            self.renderer.reset()
            self.renderer.render(active.controller)
        self._draw_tab_bar()
        log_event(logger, "app.resized", level=logging.DEBUG, cols=cols, rows=rows)

    # main loop

    async def run(self, profiles: list[Profile]) -> int:
        if not profiles:
            return 2
        loop = asyncio.get_running_loop()
        self.dispatcher = ShortcutDispatcher(
            self.tabs,
            self.settings,
            new_tab=self.open_tab,
            default_profile=profiles[0],
        )
        self.output.enter_alternate_screen()
        self.output.erase_screen()
        self._set_scroll_region()
        with raw_mode(self._stdin_fd):
            loop.add_reader(self._stdin_fd, self._on_stdin)
            loop.add_signal_handler(signal.SIGWINCH, self._on_resize)
            try:
                for profile in profiles:
                    await self.open_tab(profile)
                self._started = True
                if self.tabs.tabs:
                    await self._done.wait()
            finally:
                loop.remove_reader(self._stdin_fd)
                loop.remove_signal_handler(signal.SIGWINCH)
                await self.dispatcher.wait_idle()
                await self.tabs.close_all()
                self.output.write_raw("\x1b[r")
                self.output.quit_alternate_screen()
                self.output.flush()
        return 0

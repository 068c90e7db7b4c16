"""Ordered tabs over session controllers.

Exactly one tab is visible at a time. Background controllers stay connected
and keep feeding their own off-screen surfaces, so switching back shows an
up-to-date screen.
"""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass, field
from typing import Callable

from ait.core.session import SessionController
from ait.errors import ConnectError
from ait.log_utils import log_event
from ait.models import Profile

logger = logging.getLogger(__name__)

ControllerFactory = Callable[[Profile], SessionController]
Listener = Callable[[], None]


@dataclass
class Tab:
    controller: SessionController
    tab_id: str = field(default_factory=lambda: uuid.uuid4().hex[:8])

    @property
    def profile(self) -> Profile:
        return self.controller.profile

    @property
    def title(self) -> str:
        name = self.controller.profile.name
        os_info = self.controller.os_info
        return f"{name} [{os_info}]" if os_info else name


class TabMultiplexer:
    def __init__(self, factory: ControllerFactory) -> None:
        self._factory = factory
        self._tabs: list[Tab] = []
        self._active_id: str | None = None
        self._listeners: list[Listener] = []

    @property
    def tabs(self) -> list[Tab]:
        return list(self._tabs)

    @property
    def active(self) -> Tab | None:
        if self._active_id is None:
            return None
        return self.get(self._active_id)

    def __len__(self) -> int:
        return len(self._tabs)

    def get(self, tab_id: str) -> Tab | None:
        for tab in self._tabs:
            if tab.tab_id == tab_id:
                return tab
        return None

    def index_of(self, tab_id: str) -> int:
        for index, tab in enumerate(self._tabs):
            if tab.tab_id == tab_id:
                return index
        return -1

    def add_listener(self, listener: Listener) -> None:
        self._listeners.append(listener)

    def _notify(self) -> None:
        for listener in list(self._listeners):
            listener()

    async def connect(self, profile: Profile) -> Tab:
        """Open a tab for ``profile`` and make it active.

        A failed connect leaves the tab in place (FAILED) with the error on its
        surface, and re-raises the ``ConnectError``.
        """
        controller = self._factory(profile)
        tab = Tab(controller=controller)
        controller.add_listener(lambda _controller: self._notify())
        self._tabs.append(tab)
        self.activate(tab.tab_id)
        log_event(logger, "tabs.opened", tab_id=tab.tab_id, profile=profile.id)
        try:
            await controller.open()
        except ConnectError as exc:
            controller.surface.write_text(f"\r\n[connection failed: {exc}]\r\n")
            self._notify()
            raise
        return tab

    def activate(self, tab_id: str) -> bool:
        tab = self.get(tab_id)
        if tab is None:
            return False
        if tab_id == self._active_id:
            return True
        previous = self.active
        if previous is not None:
            previous.controller.surface.hide()
        self._active_id = tab_id
        tab.controller.surface.show()
        self._notify()
        return True

    async def close(self, tab_id: str) -> bool:
        index = self.index_of(tab_id)
        if index < 0:
            return False
        tab = self._tabs.pop(index)
        was_active = tab_id == self._active_id
        if was_active:
            tab.controller.surface.hide()
            self._active_id = None
        await tab.controller.close()
        log_event(logger, "tabs.closed", tab_id=tab_id)
        if was_active and self._tabs:
            fallback = min(max(0, index - 1), len(self._tabs) - 1)
            self.activate(self._tabs[fallback].tab_id)
        else:
            self._notify()
        return True

    async def close_active(self) -> bool:
        if self._active_id is None:
            return False
        return await self.close(self._active_id)

    def next_tab(self) -> Tab | None:
        if not self._tabs:
            return None
        index = self.index_of(self._active_id) if self._active_id else -1
        target = self._tabs[(index + 1) % len(self._tabs)]
        self.activate(target.tab_id)
        return target

    def previous_tab(self) -> Tab | None:
        if not self._tabs:
            return None
        index = self.index_of(self._active_id) if self._active_id else 0
        target = self._tabs[(index - 1) % len(self._tabs)]
        self.activate(target.tab_id)
        return target

    async def close_all(self) -> None:
        for tab in list(self._tabs):
            await self.close(tab.tab_id)

"""Overlay state and the keyboard interception chain for one session.

``handle_key`` is synchronous: it decides right away whether a key is
consumed, and any follow-up that has to wait (dropdown fetch, commit delay,
assistant request) runs as a tracked task. State lives in one
``OverlayState`` object owned by the coordinator; renderers read it through
the change listeners.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Awaitable, Callable

from ait.assistant import Assistant
from ait.core.input_buffer import InputBuffer
from ait.core.panel import AssistantPanel
from ait.core.suggestions import SuggestionClient
from ait.keys import KeyEvent
from ait.log_utils import log_event
from ait.models import CommandSuggestion

logger = logging.getLogger(__name__)

ERASE = "\x7f"


class OverlayMode(str, Enum):
    NONE = "none"
    INLINE = "inline"
    DROPDOWN = "dropdown"
    ASSISTANT = "assistant"


@dataclass
class OverlayState:
    inline: str | None = None
    dropdown_open: bool = False
    suggestions: list[CommandSuggestion] = field(default_factory=list)
    selected_index: int = 0
    anchor_row: int = 0
    assistant_open: bool = False

    @property
    def mode(self) -> OverlayMode:
        if self.dropdown_open:
            return OverlayMode.DROPDOWN
        if self.assistant_open:
            return OverlayMode.ASSISTANT
        if self.inline:
            return OverlayMode.INLINE
        return OverlayMode.NONE

    @property
    def selected(self) -> CommandSuggestion | None:
        if not self.dropdown_open or not self.suggestions:
            return None
        return self.suggestions[self.selected_index]


Listener = Callable[[OverlayState], None]


class OverlayCoordinator:
    def __init__(
        self,
        buffer: InputBuffer,
        suggestions: SuggestionClient,
        *,
        profile_id: str,
        send: Callable[[str], None],
        cursor_row: Callable[[], int],
        is_connected: Callable[[], bool],
        commit_delay_s: float = 0.05,
        assistant: Assistant | None = None,
        context: Callable[[], str | None] | None = None,
        on_change: Listener | None = None,
    ) -> None:
        self.state = OverlayState()
        self.panel = AssistantPanel()
        self._buffer = buffer
        self._suggestions = suggestions
        self._profile_id = profile_id
        self._send = send
        self._cursor_row = cursor_row
        self._is_connected = is_connected
        self._commit_delay_s = commit_delay_s
        self._assistant = assistant
        self._context = context
        self._listeners: list[Listener] = [on_change] if on_change else []
        self._tasks: set[asyncio.Task[None]] = set()
        self._closed = False
        buffer.add_change_listener(self._on_buffer_change)

    def add_listener(self, listener: Listener) -> None:
        self._listeners.append(listener)

    def _notify(self) -> None:
        for listener in list(self._listeners):
            listener(self.state)

    @property
    def remainder(self) -> str:
        """The part of the inline suggestion not typed yet."""
        inline = self.state.inline
        text = self._buffer.text
        if not inline or not text or not inline.startswith(text):
            return ""
        return inline[len(text):]

    # buffer -> inline suggestions

    def _on_buffer_change(self, text: str) -> None:
        if self._closed:
            return
        inline = self.state.inline
        if inline and not (text and inline.startswith(text) and len(inline) > len(text)):
            self.state.inline = None
            self._notify()
        if not text or self.state.dropdown_open or not self._is_connected():
            self._suggestions.cancel_inline()
            return
        self._suggestions.schedule_inline(
            self._profile_id,
            text,
            self._apply_inline,
            still_valid=self._inline_allowed,
        )

    def _inline_allowed(self) -> bool:
        return (
            not self._closed
            and self._is_connected()
            and len(self._buffer) > 0
            and not self.state.dropdown_open
            and not self.state.assistant_open
        )

    def _apply_inline(self, results: list[CommandSuggestion]) -> None:
        text = self._buffer.text
        top = results[0].cmd if results else None
        # Only a strict extension of the typed text has a remainder to show.
        self.state.inline = top if top and top.startswith(text) and len(top) > len(text) else None
        self._notify()

    # key chain

    def handle_key(self, event: KeyEvent) -> bool:
        """Offer a key to the overlay; True when it must not reach the shell."""
        if self._closed:
            return False
        plain = not (event.shift or event.ctrl or event.alt)

        if event.key == "right" and plain and not self.state.dropdown_open and self.remainder:
            self._accept_inline()
            return True

        if event.key == "space" and event.shift and not event.ctrl:
            self.state.inline = None
            self._suggestions.cancel_inline()
            self._spawn(self._open_dropdown(self._cursor_row() + 1))
            return True

        if event.key == "space" and event.ctrl:
            self.toggle_assistant()
            return True

        if event.key == "escape":
            if self.state.dropdown_open:
                self.close_dropdown()
                return True
            if self.state.assistant_open:
                self.close_assistant()
                return True
            return False

        if self.state.dropdown_open:
            return self._dropdown_key(event)

        if self.state.assistant_open:
            self._panel_key(event)
            return True

        return False

    def _accept_inline(self) -> None:
        remainder = self.remainder
        self.state.inline = None
        self._suggestions.cancel_inline()
        log_event(logger, "overlay.inline_accept", level=logging.DEBUG, length=len(remainder))
        self._notify()
        self.send_synthetic(remainder)

    def send_synthetic(self, text: str) -> None:
        """Write text on the user's behalf and mirror it into the input buffer."""
        if not text:
            return
        self._send(text)
        self._buffer.feed(text)

    # dropdown

    async def _open_dropdown(self, anchor: int) -> None:
        ticket = self._suggestions.begin_dropdown()
        results = await self._suggestions.fetch_dropdown(self._profile_id, self._buffer.text, ticket)
        if results is None or self._closed or not self._is_connected():
            return
        self.state.suggestions = results
        self.state.selected_index = 0
        self.state.anchor_row = anchor
        self.state.dropdown_open = bool(results)
        if self.state.dropdown_open:
            self.state.inline = None
        self._notify()

    def close_dropdown(self) -> None:
        if not self.state.dropdown_open:
            return
        self._suggestions.begin_dropdown()
        self.state.dropdown_open = False
        self.state.suggestions = []
        self.state.selected_index = 0
        self._notify()

    def _dropdown_key(self, event: KeyEvent) -> bool:
        state = self.state
        if event.key == "up":
            state.selected_index = max(0, state.selected_index - 1)
            self._notify()
            return True
        if event.key == "down":
            state.selected_index = min(len(state.suggestions) - 1, state.selected_index + 1)
            self._notify()
            return True
        if event.key in ("left", "right"):
            return True
        if event.key == "enter":
            chosen = state.selected
            self.close_dropdown()
            if chosen is not None:
                self._spawn(self._commit(chosen.cmd))
            return True
        return False

    async def _commit(self, command: str) -> None:
        erase = ERASE * len(self._buffer)
        log_event(logger, "overlay.dropdown_commit", level=logging.DEBUG, erase=len(erase))
        self.send_synthetic(erase)
        await asyncio.sleep(self._commit_delay_s)
        if self._closed:
            return
        self.send_synthetic(command)

    # assistant panel

    def toggle_assistant(self) -> None:
        if self.state.assistant_open:
            self.close_assistant()
            return
        self.state.assistant_open = True
        self.state.inline = None
        self._suggestions.cancel_inline()
        self.panel.error = None
        self._notify()

    def close_assistant(self) -> None:
        if not self.state.assistant_open:
            return
        self.state.assistant_open = False
        self._notify()

    def _panel_key(self, event: KeyEvent) -> None:
        panel = self.panel
        if event.is_text:
            panel.type_text(event.data)
        elif event.key == "backspace":
            panel.backspace()
        elif event.key == "up":
            panel.move(-1)
        elif event.key == "down":
            panel.move(1)
        elif event.key == "enter":
            if panel.is_command:
                if self._assistant is None:
                    panel.error = "assistant not configured"
                else:
                    panel.run_command(self._assistant)
            elif panel.question.strip():
                self._spawn(self._ask())
            elif panel.selected_command is not None:
                command = panel.selected_command
                self.close_assistant()
                self.send_synthetic(command)
                return
        else:
            return
        self._notify()

    async def _ask(self) -> None:
        if self._assistant is None:
            self.panel.error = "assistant not configured"
            self._notify()
            return
        context = self._context() if self._context is not None else None
        await self.panel.ask(self._assistant, context, on_loading=self._notify)
        if not self._closed:
            self._notify()

    # lifecycle

    def _spawn(self, coro: Awaitable[None]) -> None:
        task = asyncio.ensure_future(coro)
        self._tasks.add(task)
        task.add_done_callback(self._task_done)

    def _task_done(self, task: asyncio.Task[None]) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.error("overlay.task_failed error=%s", exc, exc_info=exc)

    async def wait_idle(self) -> None:
        """Wait for pending overlay work and inline fetches to settle."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)
        await self._suggestions.wait_idle()

    def close(self) -> None:
        self._closed = True
        self._suggestions.close()
        for task in list(self._tasks):
            task.cancel()
        self.state = OverlayState()

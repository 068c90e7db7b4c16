"""Local mirror of the command line the user is typing.

This only sees what the user types (and what we inject), never the remote
echo, so it drifts whenever the shell edits the line itself (history recall,
remote tab completion). That is acceptable: the only consumer is the
suggestion pipeline.
"""

from __future__ import annotations

import logging
from typing import Callable

logger = logging.getLogger(__name__)

CR = "\r"
BS = "\x08"
DEL = "\x7f"
ETX = "\x03"
TAB = "\t"
NAK = "\x15"
ESC = "\x1b"

_CLEARING = {ETX, NAK, TAB}

ChangeListener = Callable[[str], None]
CommandListener = Callable[[str], None]


class InputBuffer:
    def __init__(
        self,
        *,
        on_change: ChangeListener | None = None,
        on_command_executed: CommandListener | None = None,
    ) -> None:
        self._chars: list[str] = []
        self._change_listeners: list[ChangeListener] = [on_change] if on_change else []
        self._command_listeners: list[CommandListener] = [on_command_executed] if on_command_executed else []

    @property
    def text(self) -> str:
        return "".join(self._chars)

    @property
    def cursor_offset(self) -> int:
        return len(self._chars)

    def __len__(self) -> int:
        return len(self._chars)

    def add_change_listener(self, listener: ChangeListener) -> None:
        self._change_listeners.append(listener)

    def add_command_listener(self, listener: CommandListener) -> None:
        self._command_listeners.append(listener)

    def feed(self, data: str) -> None:
        """Classify one keystroke chunk and update the buffer.

        A chunk starting with ESC is an escape sequence (arrows, function
        keys) and is ignored whole. Anything else, a paste included, is
        classified one character at a time.
        """
        if not data or data.startswith(ESC):
            return
        before = self.text
        for ch in data:
            self._feed_char(ch)
        after = self.text
        if after != before:
            self._notify_change(after)

    def clear(self) -> None:
        if not self._chars:
            return
        self._chars.clear()
        self._notify_change("")

    def _feed_char(self, ch: str) -> None:
        if ch == CR:
            command = self.text.strip()
            self._chars.clear()
            if command:
                self._notify_command(command)
            return
        if ch in (DEL, BS):
            if self._chars:
                self._chars.pop()
            return
        if ch in _CLEARING:
            self._chars.clear()
            return
        if " " <= ch <= "~":
            self._chars.append(ch)

    def _notify_change(self, text: str) -> None:
        for listener in list(self._change_listeners):
            listener(text)

    def _notify_command(self, command: str) -> None:
        logger.debug("input.command_executed length=%d", len(command))
        for listener in list(self._command_listeners):
            listener(command)

"""Decode raw terminal input into key events.

The overlay chain needs to tell keys apart (Right arrow vs. text, Escape vs.
an escape sequence, Shift+Space vs. Space) while the remote shell needs the
exact bytes, so every ``KeyEvent`` carries both a key name and its raw
``data``.

Shift+Space is only distinguishable on terminals that report modified keys
(CSI-u / kitty protocol, or xterm ``modifyOtherKeys``); on the rest it arrives
as a plain space.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, Tuple

ESC = "\x1b"


@dataclass(frozen=True)
class KeyEvent:
    key: str
    data: str
    shift: bool = False
    ctrl: bool = False
    alt: bool = False

    @property
    def is_text(self) -> bool:
        return self.key in ("text", "space") and not (self.ctrl or self.alt)


# sequence -> (key, shift, ctrl)
SEQUENCES: Dict[str, Tuple[str, bool, bool]] = {
    "\x1b[A": ("up", False, False),
    "\x1b[B": ("down", False, False),
    "\x1b[C": ("right", False, False),
    "\x1b[D": ("left", False, False),
    "\x1bOA": ("up", False, False),
    "\x1bOB": ("down", False, False),
    "\x1bOC": ("right", False, False),
    "\x1bOD": ("left", False, False),
    "\x1b[H": ("home", False, False),
    "\x1b[F": ("end", False, False),
    "\x1bOH": ("home", False, False),
    "\x1bOF": ("end", False, False),
    "\x1b[1~": ("home", False, False),
    "\x1b[4~": ("end", False, False),
    "\x1b[2~": ("insert", False, False),
    "\x1b[3~": ("delete", False, False),
    "\x1b[5~": ("pageup", False, False),
    "\x1b[6~": ("pagedown", False, False),
    "\x1b[Z": ("tab", True, False),
    "\x1b[1;5C": ("right", False, True),
    "\x1b[1;5D": ("left", False, True),
    "\x1b[1;2C": ("right", True, False),
    "\x1b[1;2D": ("left", True, False),
    "\x1b[32;2u": ("space", True, False),
    "\x1b[27;2;32~": ("space", True, False),
    "\x1b[32;5u": ("space", False, True),
    "\x1b[27;5;32~": ("space", False, True),
    "\x1b[13;2u": ("enter", True, False),
    "\x1b[27;2;13~": ("enter", True, False),
}

_CONTROL_KEYS: Dict[str, str] = {
    "\r": "enter",
    "\n": "enter",
    "\t": "tab",
    "\x7f": "backspace",
    "\x08": "backspace",
}


class KeyDecoder:
    """Stateless splitter from one stdin read into key events.

    Terminals write a whole escape sequence per read, so sequences split
    across reads are not reassembled; a lone trailing ESC is the Escape key.
    ESC plus one character counts as Alt only when it is the entire read.
    """

    def feed(self, text: str) -> list[KeyEvent]:
        events: list[KeyEvent] = []
        i = 0
        n = len(text)
        while i < n:
            ch = text[i]
            if ch == ESC:
                event, i = self._decode_escape(text, i)
                events.append(event)
                continue
            if ch in _CONTROL_KEYS:
                events.append(KeyEvent(_CONTROL_KEYS[ch], ch))
                i += 1
                continue
            if ch == "\x00":
                events.append(KeyEvent("space", ch, ctrl=True))
                i += 1
                continue
            if ord(ch) < 0x20:
                events.append(KeyEvent(f"c-{chr(ord(ch) + 0x60)}", ch, ctrl=True))
                i += 1
                continue
            start = i
            while i < n and text[i] not in _CONTROL_KEYS and text[i] != ESC and ord(text[i]) >= 0x20:
                i += 1
            run = text[start:i]
            events.append(KeyEvent("space" if run == " " else "text", run))
        return events

    def _decode_escape(self, text: str, i: int) -> tuple[KeyEvent, int]:
        n = len(text)
        if i + 1 >= n:
            return KeyEvent("escape", ESC), i + 1
        nxt = text[i + 1]
        if nxt == "[":
            end = i + 2
            while end < n and 0x30 <= ord(text[end]) <= 0x3F:
                end += 1
            while end < n and 0x20 <= ord(text[end]) <= 0x2F:
                end += 1
            if end < n and 0x40 <= ord(text[end]) <= 0x7E:
                end += 1
            return self._lookup(text[i:end]), end
        if nxt == "O" and i + 2 < n:
            seq = text[i : i + 3]
            return self._lookup(seq), i + 3
        if nxt == ESC:
            return KeyEvent("escape", ESC), i + 1
        # A meta chord is written as one two-byte read; ESC followed by more
        # input is a typed Escape (vim) and the rest is ordinary text.
        if i == 0 and n == 2 and ord(nxt) >= 0x20 and nxt != "\x7f":
            return KeyEvent(nxt.lower(), text[i : i + 2], alt=True, shift=nxt.isupper()), i + 2
        return KeyEvent("escape", ESC), i + 1

    @staticmethod
    def _lookup(seq: str) -> KeyEvent:
        known = SEQUENCES.get(seq)
        if known is None:
            return KeyEvent("unknown", seq)
        key, shift, ctrl = known
        return KeyEvent(key, seq, shift=shift, ctrl=ctrl)

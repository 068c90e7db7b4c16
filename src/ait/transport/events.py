"""Demultiplexer for the inbound byte stream shared by every session.

Transports publish ``SessionData`` events for all sessions onto one bus;
each session controller subscribes with its own id. Events for an id nobody
has subscribed to yet are held (bounded) and replayed in order on subscribe,
which covers the window between a transport starting its reader and the
controller learning its session id.

The bus must only be touched from the event loop thread; reader threads use
``publish_threadsafe``.
"""

from __future__ import annotations

import asyncio
import logging
from collections import deque
from dataclasses import dataclass
from typing import Callable, Deque, Dict

from ait.log_utils import log_bytes_enabled

logger = logging.getLogger(__name__)

DEFAULT_HOLD_LIMIT = 256


@dataclass(frozen=True)
class SessionData:
    session_id: str
    data: bytes
    eof: bool = False


Handler = Callable[[SessionData], None]


class ByteEventBus:
    def __init__(self, *, hold_limit: int = DEFAULT_HOLD_LIMIT) -> None:
        self._handlers: Dict[str, Handler] = {}
        self._held: Dict[str, Deque[SessionData]] = {}
        self._hold_limit = hold_limit

    def subscribe(self, session_id: str, handler: Handler) -> Callable[[], None]:
        """Route events for ``session_id`` to ``handler``; returns the unsubscribe callable."""
        if session_id in self._handlers:
            raise ValueError(f"session {session_id} already has a subscriber")
        self._handlers[session_id] = handler
        for event in self._held.pop(session_id, ()):
            handler(event)

        def _unsubscribe() -> None:
            if self._handlers.get(session_id) is handler:
                del self._handlers[session_id]
            self._held.pop(session_id, None)

        return _unsubscribe

    def publish(self, event: SessionData) -> None:
        if log_bytes_enabled():
            logger.debug("bus.event session=%s bytes=%r eof=%s", event.session_id, event.data, event.eof)
        handler = self._handlers.get(event.session_id)
        if handler is not None:
            handler(event)
            return
        held = self._held.setdefault(event.session_id, deque(maxlen=self._hold_limit))
        if len(held) == held.maxlen:
            logger.warning("bus.hold_overflow session=%s", event.session_id)
        held.append(event)

    def publish_threadsafe(self, loop: asyncio.AbstractEventLoop, event: SessionData) -> None:
        loop.call_soon_threadsafe(self.publish, event)

    def discard(self, session_id: str) -> None:
        """Forget events held for a session that will never be subscribed (failed open, closed)."""
        self._held.pop(session_id, None)

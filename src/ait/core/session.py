"""One remote session: lifecycle, byte plumbing and keystroke routing.

Inbound bytes arrive on the shared bus and go straight to this session's
surface. Outbound keys pass through the overlay coordinator first; whatever
it does not consume is mirrored into the input buffer and queued for the
transport. A single writer task drains that queue so writes reach the
remote in the order they were issued.
"""

from __future__ import annotations

import asyncio
import logging
from enum import Enum
from typing import Awaitable, Callable

from ait.assistant import Assistant, build_context
from ait.config import AppConfig
from ait.core.input_buffer import InputBuffer
from ait.core.overlay import OverlayCoordinator
from ait.core.suggestions import SuggestionClient
from ait.errors import ConnectError, TransportError
from ait.fingerprint import parse_os_info
from ait.history import HistoryService
from ait.keys import KeyEvent
from ait.log_utils import log_context, log_event
from ait.models import Profile
from ait.surface import Surface
from ait.transport.base import Transport
from ait.transport.events import SessionData

logger = logging.getLogger(__name__)

WRITER_STOP_TIMEOUT_S = 2.0


class SessionState(str, Enum):
    CONNECTING = "connecting"
    CONNECTED = "connected"
    FAILED = "failed"
    CLOSED = "closed"


Listener = Callable[["SessionController"], None]


class SessionController:
    def __init__(
        self,
        profile: Profile,
        transport: Transport,
        surface: Surface,
        history: HistoryService,
        *,
        config: AppConfig | None = None,
        assistant: Assistant | None = None,
    ) -> None:
        self.config = config or AppConfig()
        self.profile = profile
        self.transport = transport
        self.surface = surface
        self.history = history
        self.session_id: str | None = None
        self.state = SessionState.CONNECTING
        self.error: str | None = None
        self.os_info: str | None = None
        self.remote_ended = False

        self.buffer = InputBuffer(on_command_executed=self._on_command_executed)
        self.suggestions = SuggestionClient(
            history,
            debounce_s=self.config.debounce_s,
            inline_limit=self.config.inline_limit,
            dropdown_limit=self.config.dropdown_limit,
        )
        self.overlay = OverlayCoordinator(
            self.buffer,
            self.suggestions,
            profile_id=profile.id,
            send=self._send_text,
            cursor_row=lambda: self.surface.cursor_row,
            is_connected=lambda: self.connected,
            commit_delay_s=self.config.commit_delay_s,
            assistant=assistant,
            context=self._assistant_context,
        )

        self._listeners: list[Listener] = []
        self._unsubscribe: Callable[[], None] | None = None
        self._writes: asyncio.Queue[bytes | None] | None = None
        self._writer: asyncio.Task[None] | None = None
        self._probe_handle: asyncio.TimerHandle | None = None
        self._tasks: set[asyncio.Task[None]] = set()

    @property
    def connected(self) -> bool:
        return self.state is SessionState.CONNECTED and not self.remote_ended

    @property
    def dimensions(self) -> tuple[int, int]:
        return self.surface.size

    def add_listener(self, listener: Listener) -> None:
        self._listeners.append(listener)

    def _notify(self) -> None:
        for listener in list(self._listeners):
            listener(self)

    # lifecycle

    async def open(self) -> str:
        """Open the remote shell; raises ``ConnectError`` with the transport's message."""
        if self.state is not SessionState.CONNECTING or self.session_id is not None:
            raise ConnectError(f"session is {self.state.value}; it cannot be opened again")
        profile = self.profile
        if not profile.has_credential:
            self._fail(f"no password or key configured for {profile.label}")

        cols, rows = self.surface.size
        with log_context(profile=profile.id):
            log_event(logger, "session.connecting", host=profile.host, port=profile.port, user=profile.user)
            try:
                session_id = await self.transport.open(
                    profile.host,
                    profile.port,
                    profile.user,
                    profile.credential,
                    cols,
                    rows,
                    key_path=profile.key_path,
                )
            except TransportError as exc:
                if self.state is SessionState.CLOSED:
                    raise ConnectError(str(exc)) from exc
                self._fail(str(exc), exc)

            if self.state is SessionState.CLOSED:
                # Closed while the transport was still connecting.
                await self._close_transport(session_id)
                raise ConnectError("session closed while connecting")

            self.session_id = session_id
            self._unsubscribe = self.transport.bus.subscribe(session_id, self._on_data)
            self.state = SessionState.CONNECTED
            self._writes = asyncio.Queue()
            self._writer = asyncio.ensure_future(self._write_loop(session_id, self._writes))
            self._schedule_probe()
            log_event(logger, "session.connected", session_id=session_id)
        self._notify()
        return session_id

    def _fail(self, message: str, cause: BaseException | None = None) -> None:
        self.state = SessionState.FAILED
        self.error = message
        log_event(logger, "session.failed", level=logging.WARNING, profile=self.profile.id, error=message)
        self._notify()
        if cause is not None:
            raise ConnectError(message) from cause
        raise ConnectError(message)

    async def close(self) -> None:
        """Tear the session down; safe to call any number of times and never raises."""
        if self.state is SessionState.CLOSED:
            return
        self.state = SessionState.CLOSED
        if self._probe_handle is not None:
            self._probe_handle.cancel()
            self._probe_handle = None
        self.overlay.close()
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None
        await self._stop_writer()
        for task in list(self._tasks):
            task.cancel()
        if self.session_id is not None:
            await self._close_transport(self.session_id)
        log_event(logger, "session.closed", session_id=self.session_id, profile=self.profile.id)
        self._notify()

    async def _close_transport(self, session_id: str) -> None:
        try:
            await self.transport.close(session_id)
        except Exception as exc:
            logger.warning("session.close_failed session=%s error=%s", session_id, exc)
        self.transport.bus.discard(session_id)

    async def _stop_writer(self) -> None:
        writer, queue = self._writer, self._writes
        self._writer = None
        if writer is None or queue is None:
            return
        queue.put_nowait(None)
        try:
            await asyncio.wait_for(writer, timeout=WRITER_STOP_TIMEOUT_S)
        except asyncio.TimeoutError:
            logger.warning("session.writer_stuck session=%s", self.session_id)

    # inbound

    def _on_data(self, event: SessionData) -> None:
        if self.state is SessionState.CLOSED or event.session_id != self.session_id:
            return
        self.surface.write(event.data)
        if event.eof and not self.remote_ended:
            self.remote_ended = True
            self.overlay.close_dropdown()
            self.suggestions.cancel_inline()
            log_event(logger, "session.remote_ended", session_id=self.session_id)
            self._notify()

    # outbound

    def handle_key(self, event: KeyEvent) -> None:
        if self.state is not SessionState.CONNECTED:
            return
        if self.overlay.handle_key(event):
            return
        self.send_input(event.data)

    def send_input(self, text: str) -> None:
        """Forward user input: mirror it into the buffer, then queue it for the remote."""
        if not text or not self.connected:
            return
        self.buffer.feed(text)
        self.write(text.encode("utf-8"))

    def _send_text(self, text: str) -> None:
        self.write(text.encode("utf-8"))

    def write(self, data: bytes) -> None:
        """Queue bytes for the remote; failures are logged by the writer, never raised."""
        if not data or self._writes is None or not self.connected:
            logger.debug("session.write_dropped state=%s bytes=%d", self.state.value, len(data))
            return
        self._writes.put_nowait(data)

    async def _write_loop(self, session_id: str, queue: asyncio.Queue[bytes | None]) -> None:
        while True:
            data = await queue.get()
            try:
                if data is None:
                    return
                await self.transport.write(session_id, data)
            except Exception as exc:
                logger.warning("session.write_failed session=%s error=%s", session_id, exc)
            finally:
                queue.task_done()

    async def drain(self) -> None:
        """Wait until every queued write has been handed to the transport."""
        if self._writes is not None and self._writer is not None:
            await self._writes.join()

    def resize(self, cols: int, rows: int) -> None:
        if not self.connected or self.session_id is None:
            return
        self._spawn(self._resize(self.session_id, cols, rows))

    async def _resize(self, session_id: str, cols: int, rows: int) -> None:
        try:
            await self.transport.resize(session_id, cols, rows)
        except Exception as exc:
            logger.warning("session.resize_failed session=%s error=%s", session_id, exc)

    # side tasks

    def _schedule_probe(self) -> None:
        loop = asyncio.get_running_loop()
        self._probe_handle = loop.call_later(
            self.config.probe_delay_s, lambda: self._spawn(self._run_probe())
        )

    async def _run_probe(self) -> None:
        self._probe_handle = None
        session_id = self.session_id
        if not self.connected or session_id is None:
            return
        try:
            output = await self.transport.exec(session_id, self.config.probe_command)
        except Exception as exc:
            logger.debug("session.probe_failed session=%s error=%s", session_id, exc)
            return
        info = parse_os_info(output)
        if info is None or self.state is SessionState.CLOSED:
            return
        self.os_info = info
        log_event(logger, "session.os_detected", session_id=session_id, os=info)
        self._notify()

    def _on_command_executed(self, command: str) -> None:
        self._spawn(self._save_command(command))

    async def _save_command(self, command: str) -> None:
        try:
            await self.history.save(self.profile.id, command)
        except Exception as exc:
            logger.debug("session.history_save_failed error=%s", exc)
            return
        self.suggestions.invalidate_cache()

    def _assistant_context(self) -> str | None:
        return build_context(self.os_info, self.buffer.text)

    def _spawn(self, coro: Awaitable[None]) -> None:
        task = asyncio.ensure_future(coro)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def wait_idle(self) -> None:
        """Let queued writes, overlay work and side tasks settle (tests and shutdown)."""
        await self.overlay.wait_idle()
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)
        await self.drain()

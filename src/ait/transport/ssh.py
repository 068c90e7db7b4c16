"""SSH transport backed by paramiko.

paramiko is blocking, so every call runs in ``asyncio.to_thread`` and each
shell gets one daemon reader thread that hands received chunks back to the
event loop through the bus.
"""

from __future__ import annotations

import asyncio
import logging
import socket
import threading
import uuid
from dataclasses import dataclass, field
from typing import Callable, Dict

import paramiko

from ait.errors import SessionNotFound, TransportError, TransportIOError
from ait.log_utils import log_event
from ait.transport.events import ByteEventBus, SessionData

logger = logging.getLogger(__name__)

READ_SIZE = 4096
EXEC_TIMEOUT_S = 10.0


@dataclass
class _Shell:
    client: paramiko.SSHClient
    channel: paramiko.Channel
    closing: threading.Event = field(default_factory=threading.Event)
    reader: threading.Thread | None = None


class SSHTransport:
    def __init__(
        self,
        bus: ByteEventBus,
        *,
        term_type: str = "xterm",
        connect_timeout: float = 15.0,
        client_factory: Callable[[], paramiko.SSHClient] = paramiko.SSHClient,
    ) -> None:
        self.bus = bus
        self._term_type = term_type
        self._connect_timeout = connect_timeout
        self._client_factory = client_factory
        self._shells: Dict[str, _Shell] = {}

    async def open(
        self,
        host: str,
        port: int,
        user: str,
        credential: str | None,
        cols: int,
        rows: int,
        *,
        key_path: str | None = None,
    ) -> str:
        shell = await asyncio.to_thread(self._open_blocking, host, port, user, credential, key_path, cols, rows)
        session_id = str(uuid.uuid4())
        self._shells[session_id] = shell
        loop = asyncio.get_running_loop()
        shell.reader = threading.Thread(
            target=self._read_loop,
            args=(loop, session_id, shell),
            name=f"ait-ssh-reader-{session_id[:8]}",
            daemon=True,
        )
        shell.reader.start()
        log_event(logger, "ssh.open", session_id=session_id, host=host, port=port, user=user)
        return session_id

    def _open_blocking(
        self,
        host: str,
        port: int,
        user: str,
        credential: str | None,
        key_path: str | None,
        cols: int,
        rows: int,
    ) -> _Shell:
        client = self._client_factory()
        client.load_system_host_keys()
        client.set_missing_host_key_policy(paramiko.WarningPolicy())
        try:
            client.connect(
                hostname=host,
                port=port,
                username=user,
                password=credential,
                key_filename=key_path,
                timeout=self._connect_timeout,
                look_for_keys=key_path is None and credential is None,
                allow_agent=credential is None,
            )
        except paramiko.AuthenticationException as exc:
            client.close()
            raise TransportError(f"SSH auth error: {exc}") from exc
        except paramiko.SSHException as exc:
            client.close()
            raise TransportError(f"SSH handshake error: {exc}") from exc
        except (OSError, socket.timeout) as exc:
            client.close()
            raise TransportError(f"TCP connect error to {host}:{port}: {exc}") from exc

        try:
            channel = client.invoke_shell(term=self._term_type, width=cols, height=rows)
        except (paramiko.SSHException, OSError) as exc:
            client.close()
            raise TransportError(f"failed to start shell: {exc}") from exc
        return _Shell(client=client, channel=channel)

    def _read_loop(self, loop: asyncio.AbstractEventLoop, session_id: str, shell: _Shell) -> None:
        """Reader thread: forward every chunk, then one EOF event, then exit."""
        trailer = b"\r\n[session closed]\r\n"
        while not shell.closing.is_set():
            try:
                data = shell.channel.recv(READ_SIZE)
            except (OSError, paramiko.SSHException) as exc:
                if shell.closing.is_set():
                    return
                trailer = f"\r\n[read error: {exc}]\r\n".encode()
                break
            if not data:
                break
            if not self._post(loop, SessionData(session_id, data)):
                return
        if not shell.closing.is_set():
            self._post(loop, SessionData(session_id, trailer, eof=True))

    def _post(self, loop: asyncio.AbstractEventLoop, event: SessionData) -> bool:
        try:
            self.bus.publish_threadsafe(loop, event)
        except RuntimeError:
            # Event loop already closed; nobody is listening any more.
            return False
        return True

    def _get(self, session_id: str) -> _Shell:
        shell = self._shells.get(session_id)
        if shell is None:
            raise SessionNotFound(session_id)
        return shell

    async def write(self, session_id: str, data: bytes) -> None:
        shell = self._get(session_id)
        try:
            await asyncio.to_thread(shell.channel.sendall, data)
        except (OSError, paramiko.SSHException) as exc:
            raise TransportIOError(f"write error: {exc}") from exc

    async def resize(self, session_id: str, cols: int, rows: int) -> None:
        shell = self._get(session_id)
        try:
            await asyncio.to_thread(shell.channel.resize_pty, width=cols, height=rows)
        except (OSError, paramiko.SSHException) as exc:
            raise TransportIOError(f"resize error: {exc}") from exc

    async def exec(self, session_id: str, command: str) -> str:
        shell = self._get(session_id)

        def _run() -> str:
            _stdin, stdout, _stderr = shell.client.exec_command(command, timeout=EXEC_TIMEOUT_S)
            return stdout.read().decode("utf-8", errors="replace")

        try:
            return await asyncio.to_thread(_run)
        except (OSError, paramiko.SSHException) as exc:
            raise TransportIOError(f"exec error: {exc}") from exc

    async def close(self, session_id: str) -> None:
        shell = self._shells.pop(session_id, None)
        if shell is None:
            return
        shell.closing.set()

        def _shutdown() -> None:
            try:
                shell.channel.close()
            finally:
                shell.client.close()

        try:
            await asyncio.to_thread(_shutdown)
        except (OSError, paramiko.SSHException) as exc:
            logger.warning("ssh.close_failed session=%s error=%s", session_id, exc)
        self.bus.discard(session_id)
        log_event(logger, "ssh.close", session_id=session_id)

    async def close_all(self) -> None:
        for session_id in list(self._shells):
            await self.close(session_id)

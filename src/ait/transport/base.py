"""Transport interface consumed by session controllers.

A transport opens remote shells and moves bytes. Inbound data is not
returned from any call; it is published on the ``ByteEventBus`` handed to the
transport at construction.
"""

from __future__ import annotations

from typing import Protocol

from ait.transport.events import ByteEventBus


class Transport(Protocol):
    bus: ByteEventBus

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
        """Open an interactive shell and return its session id; raises ``TransportError``."""
        ...

    async def write(self, session_id: str, data: bytes) -> None: ...

    async def resize(self, session_id: str, cols: int, rows: int) -> None: ...

    async def close(self, session_id: str) -> None:
        """Close the shell; closing an unknown or already closed session is a no-op."""
        ...

    async def exec(self, session_id: str, command: str) -> str:
        """Run a one-off command on the session's connection and return its stdout."""
        ...

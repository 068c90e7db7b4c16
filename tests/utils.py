from __future__ import annotations

import asyncio

from prompt_toolkit.data_structures import Size

from ait.config import AppConfig
from ait.core.session import SessionController
from ait.history import MemoryHistory
from ait.models import CommandSuggestion, Profile
from ait.transport.events import ByteEventBus, SessionData


class FakeTransport:
    """In-process transport that records every call and lets tests inject inbound data."""

    def __init__(self, bus: ByteEventBus | None = None) -> None:
        self.bus = bus or ByteEventBus()
        self.opened: list[dict] = []
        self.writes: list[tuple[str, bytes]] = []
        self.resizes: list[tuple[str, int, int]] = []
        self.closed: list[str] = []
        self.execs: list[tuple[str, str]] = []
        self.open_error: Exception | None = None
        self.write_error: Exception | None = None
        self.exec_output = ""
        self.exec_error: Exception | None = None
        self.open_gate: asyncio.Event | None = None
        self._counter = 0

    async def open(self, host, port, user, credential, cols, rows, *, key_path=None) -> str:
        self.opened.append(
            {
                "host": host,
                "port": port,
                "user": user,
                "credential": credential,
                "cols": cols,
                "rows": rows,
                "key_path": key_path,
            }
        )
        if self.open_gate is not None:
            await self.open_gate.wait()
        if self.open_error is not None:
            raise self.open_error
        self._counter += 1
        return f"s{self._counter}"

    async def write(self, session_id: str, data: bytes) -> None:
        if self.write_error is not None:
            raise self.write_error
        self.writes.append((session_id, data))

    async def resize(self, session_id: str, cols: int, rows: int) -> None:
        self.resizes.append((session_id, cols, rows))

    async def close(self, session_id: str) -> None:
        self.closed.append(session_id)

    async def exec(self, session_id: str, command: str) -> str:
        self.execs.append((session_id, command))
        if self.exec_error is not None:
            raise self.exec_error
        return self.exec_output

    def written(self, session_id: str) -> str:
        return b"".join(data for sid, data in self.writes if sid == session_id).decode("utf-8")

    def emit(self, session_id: str, data: bytes, *, eof: bool = False) -> None:
        self.bus.publish(SessionData(session_id, data, eof=eof))


class FakeSurface:
    def __init__(self, cols: int = 80, rows: int = 24) -> None:
        self.cols = cols
        self.rows = rows
        self.data = bytearray()
        self.visible = False
        self.cursor_row = 0
        self.cursor_col = 0
        self.repaints = 0
        self.restored: list[tuple[int, int]] = []

    @property
    def size(self) -> tuple[int, int]:
        return self.cols, self.rows

    @property
    def text(self) -> str:
        return self.data.decode("utf-8", errors="replace")

    def write(self, data: bytes) -> None:
        self.data += data

    def write_text(self, text: str) -> None:
        self.write(text.encode("utf-8"))

    def fit(self, cols: int, rows: int) -> None:
        self.cols, self.rows = cols, rows

    def show(self) -> None:
        self.visible = True
        self.repaint()

    def hide(self) -> None:
        self.visible = False

    def repaint(self) -> None:
        self.repaints += 1

    def restore_rows(self, start: int, count: int) -> None:
        self.restored.append((start, count))


class RecordingHistory(MemoryHistory):
    """MemoryHistory that records suggestion queries and can be told to fail."""

    def __init__(self, *, canned: list[CommandSuggestion] | None = None, **kwargs) -> None:
        super().__init__(**kwargs)
        self.queries: list[tuple[str, str, int]] = []
        self.canned = canned
        self.fail = False

    async def suggestions(self, profile_id: str, prefix: str, limit: int) -> list[CommandSuggestion]:
        self.queries.append((profile_id, prefix, limit))
        if self.fail:
            raise RuntimeError("history unavailable")
        if self.canned is not None:
            return [s for s in self.canned if s.cmd.startswith(prefix)][:limit]
        return await super().suggestions(profile_id, prefix, limit)


def make_profile(**overrides) -> Profile:
    values = {"id": "p1", "name": "web", "host": "example.org", "user": "alice", "credential": "pw"}
    values.update(overrides)
    return Profile(**values)


def make_config(**overrides) -> AppConfig:
    values = {"debounce_ms": 100, "commit_delay_ms": 50, "probe_delay_s": 60.0}
    values.update(overrides)
    return AppConfig(**values)


def make_controller(
    *,
    profile: Profile | None = None,
    transport: FakeTransport | None = None,
    history: MemoryHistory | None = None,
    surface: FakeSurface | None = None,
    config: AppConfig | None = None,
    assistant=None,
) -> SessionController:
    return SessionController(
        profile or make_profile(),
        transport or FakeTransport(),
        surface or FakeSurface(),
        history if history is not None else RecordingHistory(use_dictionary=False),
        config=config or make_config(),
        assistant=assistant,
    )


def suggestion(cmd: str, frequency: int = 1, last_used: float = 0.0, source: str = "history") -> CommandSuggestion:
    return CommandSuggestion(cmd=cmd, frequency=frequency, last_used=last_used, source=source)


class FakeOutput:
    """Stands in for a prompt_toolkit Output; records raw writes."""

    def __init__(self, columns: int = 80, rows: int = 25) -> None:
        self.columns = columns
        self.rows = rows
        self.chunks: list[str] = []
        self.flushes = 0

    @property
    def text(self) -> str:
        return "".join(self.chunks)

    def write_raw(self, data: str) -> None:
        self.chunks.append(data)

    def flush(self) -> None:
        self.flushes += 1

    def get_size(self):
        return Size(rows=self.rows, columns=self.columns)

    def enter_alternate_screen(self) -> None:
        self.chunks.append("<alt>")

    def quit_alternate_screen(self) -> None:
        self.chunks.append("</alt>")

    def erase_screen(self) -> None:
        self.chunks.append("<erase>")

"""Runtime configuration.

Values resolve in order: ``AIT_*`` environment variables (``.env`` is loaded
first), then the settings store, then the defaults below. The assistant keys
(``ai_server_url``, ``ai_model``) are written back by the panel's ``/server`` and
``/model`` commands and by the ``--ai-server``/``--ai-model`` flags.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Callable, TypeVar

from dotenv import load_dotenv

from ait.settings import SettingsStore

T = TypeVar("T")

DEFAULT_PROBE_COMMAND = "cat /etc/os-release 2>/dev/null || uname -s"
DEFAULT_AI_SERVER_URL = "http://localhost:11434"
DEFAULT_AI_MODEL = "gpt-oss:20b"


@dataclass(frozen=True)
class AppConfig:
    debounce_ms: int = 100
    inline_limit: int = 1
    dropdown_limit: int = 10
    commit_delay_ms: int = 50
    probe_delay_s: float = 1.0
    probe_command: str = DEFAULT_PROBE_COMMAND
    ai_server_url: str = DEFAULT_AI_SERVER_URL
    ai_model: str = DEFAULT_AI_MODEL
    term_type: str = "xterm"
    connect_timeout_s: float = 15.0

    @property
    def debounce_s(self) -> float:
        return self.debounce_ms / 1000

    @property
    def commit_delay_s(self) -> float:
        return self.commit_delay_ms / 1000


def _lookup(settings: SettingsStore | None, key: str, parse: Callable[[str], T], default: T) -> T:
    raw = os.getenv(f"AIT_{key.upper()}")
    if raw is None and settings is not None:
        raw = settings.get(key)
    if raw is None or raw == "":
        return default
    try:
        return parse(raw)
    except ValueError:
        return default


def load_config(settings: SettingsStore | None = None, *, dotenv: bool = True) -> AppConfig:
    if dotenv:
        load_dotenv()
    base = AppConfig()
    return AppConfig(
        debounce_ms=max(0, _lookup(settings, "debounce_ms", int, base.debounce_ms)),
        inline_limit=max(1, _lookup(settings, "inline_limit", int, base.inline_limit)),
        dropdown_limit=max(1, _lookup(settings, "dropdown_limit", int, base.dropdown_limit)),
        commit_delay_ms=max(0, _lookup(settings, "commit_delay_ms", int, base.commit_delay_ms)),
        probe_delay_s=max(0.0, _lookup(settings, "probe_delay_s", float, base.probe_delay_s)),
        probe_command=_lookup(settings, "probe_command", str, base.probe_command),
        ai_server_url=_lookup(settings, "ai_server_url", str, base.ai_server_url).rstrip("/"),
        ai_model=_lookup(settings, "ai_model", str, base.ai_model),
        term_type=_lookup(settings, "term_type", str, base.term_type),
        connect_timeout_s=max(1.0, _lookup(settings, "connect_timeout_s", float, base.connect_timeout_s)),
    )

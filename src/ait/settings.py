"""Key/value settings store and the macro table kept inside it."""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Dict, Protocol

logger = logging.getLogger(__name__)

MACRO_KEYS = tuple(str(i) for i in range(1, 11))


class SettingsStore(Protocol):
    def get(self, key: str) -> str | None: ...

    def set(self, key: str, value: str) -> None: ...

    def all(self) -> Dict[str, str]: ...


class JsonSettingsStore:
    """Settings kept as a flat JSON object on disk, rewritten on every ``set``."""

    def __init__(self, path: Path) -> None:
        self.path = path
        self._values: Dict[str, str] = self._load()

    def _load(self) -> Dict[str, str]:
        if not self.path.exists():
            return {}
        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError) as exc:
            logger.warning("settings.unreadable path=%s error=%s", self.path, exc)
            return {}
        if not isinstance(data, dict):
            return {}
        return {str(k): str(v) for k, v in data.items()}

    def get(self, key: str) -> str | None:
        return self._values.get(key)

    def set(self, key: str, value: str) -> None:
        self._values[key] = value
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self.path.write_text(json.dumps(self._values, indent=2, sort_keys=True), encoding="utf-8")

    def all(self) -> Dict[str, str]:
        return dict(self._values)


class MemorySettingsStore:
    def __init__(self, values: Dict[str, str] | None = None) -> None:
        self._values = dict(values or {})

    def get(self, key: str) -> str | None:
        return self._values.get(key)

    def set(self, key: str, value: str) -> None:
        self._values[key] = value

    def all(self) -> Dict[str, str]:
        return dict(self._values)


def _macro_settings_key(profile_id: str | None) -> str:
    return f"macros_{profile_id}" if profile_id else "macros_global"


def get_macros(store: SettingsStore, profile_id: str | None = None) -> Dict[str, str]:
    raw = store.get(_macro_settings_key(profile_id))
    if not raw:
        return {}
    try:
        data = json.loads(raw)
    except json.JSONDecodeError:
        logger.warning("macros.corrupt profile=%s", profile_id)
        return {}
    if not isinstance(data, dict):
        return {}
    return {str(k): str(v) for k, v in data.items() if str(k) in MACRO_KEYS and v}


def set_macro(store: SettingsStore, profile_id: str | None, key: str, command: str) -> None:
    """Bind ``command`` to macro ``key`` ("1".."10"); an empty command removes the binding."""
    if key not in MACRO_KEYS:
        raise ValueError(f"macro key must be one of 1..10, got {key!r}")
    macros = get_macros(store, profile_id)
    if command:
        macros[key] = command
    else:
        macros.pop(key, None)
    store.set(_macro_settings_key(profile_id), json.dumps(macros, sort_keys=True))


def resolve_macro(store: SettingsStore, profile_id: str | None, key: str) -> str | None:
    """Profile macros shadow global ones."""
    if profile_id:
        command = get_macros(store, profile_id).get(key)
        if command:
            return command
    return get_macros(store, None).get(key)

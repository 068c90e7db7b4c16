from __future__ import annotations

import json
from pathlib import Path

import pytest

from ait.config import AppConfig, load_config
from ait.settings import JsonSettingsStore, MemorySettingsStore, get_macros, resolve_macro, set_macro


def test_json_store_persists_across_instances(tmp_path: Path) -> None:
    path = tmp_path / "conf" / "settings.json"
    store = JsonSettingsStore(path)
    store.set("ai_model", "llama3")
    assert json.loads(path.read_text()) == {"ai_model": "llama3"}
    assert JsonSettingsStore(path).get("ai_model") == "llama3"



def test_json_store_ignores_corrupt_file(tmp_path: Path) -> None:
    path = tmp_path / "settings.json"
    path.write_text("{not json")
    assert JsonSettingsStore(path).all() == {}


def test_macros_profile_shadows_global() -> None:
    store = MemorySettingsStore()
    set_macro(store, None, "1", "uptime")
    set_macro(store, None, "2", "df -h")
    set_macro(store, "p1", "1", "systemctl status nginx")

    assert resolve_macro(store, "p1", "1") == "systemctl status nginx"
    assert resolve_macro(store, "p1", "2") == "df -h"
    assert resolve_macro(store, "p2", "1") == "uptime"
    assert resolve_macro(store, None, "3") is None


def test_empty_command_removes_macro() -> None:
    store = MemorySettingsStore()
    set_macro(store, None, "10", "htop")
    assert get_macros(store) == {"10": "htop"}
    set_macro(store, None, "10", "")
    assert get_macros(store) == {}


def test_invalid_macro_key_is_rejected() -> None:
    with pytest.raises(ValueError):
        set_macro(MemorySettingsStore(), None, "11", "ls")


def test_corrupt_macro_table_reads_empty() -> None:
    store = MemorySettingsStore({"macros_global": "[1, 2"})
    assert get_macros(store) == {}


def test_config_defaults(monkeypatch: pytest.MonkeyPatch) -> None:
    for key in ("AIT_DEBOUNCE_MS", "AIT_AI_MODEL", "AIT_AI_SERVER_URL", "AIT_COMMIT_DELAY_MS"):
        monkeypatch.delenv(key, raising=False)
    config = load_config(dotenv=False)
    assert config == AppConfig()
    assert config.debounce_s == 0.1
    assert config.commit_delay_s == 0.05


def test_env_overrides_settings(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("AIT_DEBOUNCE_MS", "250")
    monkeypatch.delenv("AIT_AI_MODEL", raising=False)
    monkeypatch.delenv("AIT_AI_SERVER_URL", raising=False)
    store = MemorySettingsStore(
        {"debounce_ms": "10", "ai_model": "qwen2.5-coder", "ai_server_url": "http://gpu-box:11434/"}
    )
    config = load_config(store, dotenv=False)
    assert config.debounce_ms == 250
    assert config.ai_model == "qwen2.5-coder"
    assert config.ai_server_url == "http://gpu-box:11434"


def test_unparseable_values_fall_back_to_defaults(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("AIT_DROPDOWN_LIMIT", "lots")
    monkeypatch.setenv("AIT_COMMIT_DELAY_MS", "-5")
    config = load_config(dotenv=False)
    assert config.dropdown_limit == 10
    assert config.commit_delay_ms == 0

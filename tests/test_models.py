from __future__ import annotations

import json
from pathlib import Path

from ait.models import Profile, find_profile, load_profiles


def _write(path: Path, data) -> Path:
    path.write_text(json.dumps(data), encoding="utf-8")
    return path


def test_load_profiles_skips_invalid_entries(tmp_path: Path) -> None:
    path = _write(
        tmp_path / "profiles.json",
        [
            {"id": "a", "name": "web", "host": "web.example.org", "user": "deploy", "credential": "pw"},
            {"id": "b", "name": "db", "host": "db.example.org", "user": "root", "port": 99999},
            "not a profile",
            {"id": "c", "name": "bastion", "host": "10.0.0.1", "user": "ops", "key_path": "~/.ssh/id_ed25519"},
        ],
    )
    profiles = load_profiles(path)
    assert [p.id for p in profiles] == ["a", "c"]
    assert profiles[1].has_credential


def test_load_profiles_missing_or_corrupt_file(tmp_path: Path) -> None:
    assert load_profiles(tmp_path / "nope.json") == []
    bad = tmp_path / "bad.json"
    bad.write_text("{", encoding="utf-8")
    assert load_profiles(bad) == []
    assert load_profiles(_write(tmp_path / "obj.json", {"name": "x"})) == []


def test_find_profile_by_id_then_name() -> None:
    profiles = [
        Profile(id="web", name="db", host="h1", user="u"),
        Profile(id="p2", name="Web", host="h2", user="u"),
    ]
    assert find_profile(profiles, "web").host == "h1"
    assert find_profile(profiles, "WEB").host == "h2"
    assert find_profile(profiles, "db").host == "h1"
    assert find_profile(profiles, "p2").host == "h2"
    assert find_profile(profiles, "missing") is None


def test_label_hides_default_port() -> None:
    assert Profile(name="a", host="h", user="u").label == "u@h"
    assert Profile(name="a", host="h", user="u", port=2200).label == "u@h:2200"
    assert not Profile(name="a", host="h", user="u").has_credential

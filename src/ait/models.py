"""Pydantic records exchanged with the external collaborators.

Profiles come from a JSON file written by whatever manages them; suggestions
and history entries come back from the history service already shaped.
"""

from __future__ import annotations

import json
import logging
import uuid
from pathlib import Path
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field, ValidationError

logger = logging.getLogger(__name__)


class Profile(BaseModel):
    model_config = ConfigDict(extra="ignore")

    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    name: str
    host: str
    port: int = Field(22, ge=1, le=65535)
    user: str
    credential: str | None = Field(None, description="Password, if password auth is used")
    key_path: str | None = Field(None, description="Private key file, if key auth is used")
    group: str | None = None

    @property
    def has_credential(self) -> bool:
        return bool(self.credential) or bool(self.key_path)

    @property
    def label(self) -> str:
        return f"{self.user}@{self.host}" if self.port == 22 else f"{self.user}@{self.host}:{self.port}"


class CommandSuggestion(BaseModel):
    model_config = ConfigDict(frozen=True)

    cmd: str
    frequency: int = Field(1, ge=1)
    last_used: float = 0.0
    source: Literal["history", "dictionary"] = "history"


class HistoryEntry(BaseModel):
    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    profile_id: str
    cmd: str
    ts: float
    exit_code: int | None = None
    duration_ms: int | None = None


class AssistantReply(BaseModel):
    response: str
    model: str


def load_profiles(path: Path) -> list[Profile]:
    """Load a JSON array of profiles, skipping malformed entries."""
    if not path.exists():
        return []
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError) as exc:
        logger.warning("profiles.unreadable path=%s error=%s", path, exc)
        return []
    if not isinstance(data, list):
        logger.warning("profiles.not_a_list path=%s", path)
        return []

    profiles: list[Profile] = []
    for entry in data:
        if not isinstance(entry, dict):
            continue
        try:
            profiles.append(Profile.model_validate(entry))
        except ValidationError as exc:
            logger.warning("profiles.invalid entry=%s error=%s", entry.get("name"), exc.errors())
    return profiles


def find_profile(profiles: list[Profile], ref: str) -> Profile | None:
    """Find a profile by id first, then by case-insensitive name."""
    for profile in profiles:
        if profile.id == ref:
            return profile
    lowered = ref.lower()
    for profile in profiles:
        if profile.name.lower() == lowered:
            return profile
    return None

"""Parse the output of the post-connect OS probe into a short label."""

from __future__ import annotations

import re

_PRETTY_NAME = re.compile(r'^PRETTY_NAME=(?:"([^"]+)"|(\S+))', re.MULTILINE)
_NAME = re.compile(r'^NAME=(?:"([^"]+)"|(\S+))', re.MULTILINE)
_VERSION = re.compile(r'^VERSION=(?:"([^"]+)"|(\S+))', re.MULTILINE)
_UNAME = re.compile(r"\b(Linux|Darwin|FreeBSD)\b")


def _value(pattern: re.Pattern[str], text: str) -> str | None:
    match = pattern.search(text)
    if match is None:
        return None
    value = (match.group(1) or match.group(2) or "").strip()
    return value or None


def parse_os_info(output: str) -> str | None:
    """``PRETTY_NAME``; else ``NAME`` plus ``VERSION``; else a uname kernel name; else None."""
    if not output:
        return None
    pretty = _value(_PRETTY_NAME, output)
    if pretty:
        return pretty
    name = _value(_NAME, output)
    if name:
        version = _value(_VERSION, output)
        return f"{name} {version}" if version else name
    match = _UNAME.search(output)
    return match.group(1) if match else None

"""Command history service: the source of every suggestion.

``MemoryHistory`` keeps entries for the lifetime of the process only.
Suggestions rank history by frequency then recency and are padded from the
built-in command dictionary when history alone cannot fill ``limit``.
"""

from __future__ import annotations

import time
from collections import defaultdict
from typing import Callable, Dict, List, Protocol

from ait.commands import dictionary_matches
from ait.models import CommandSuggestion, HistoryEntry


class HistoryService(Protocol):
    async def suggestions(self, profile_id: str, prefix: str, limit: int) -> list[CommandSuggestion]: ...

    async def save(
        self,
        profile_id: str,
        cmd: str,
        exit_code: int | None = None,
        duration_ms: int | None = None,
    ) -> HistoryEntry: ...

    async def clear(self, profile_id: str) -> int: ...

    async def clear_all(self) -> int: ...


class MemoryHistory:
    def __init__(self, *, clock: Callable[[], float] = time.time, use_dictionary: bool = True) -> None:
        self._entries: Dict[str, List[HistoryEntry]] = defaultdict(list)
        self._clock = clock
        self._use_dictionary = use_dictionary

    async def save(
        self,
        profile_id: str,
        cmd: str,
        exit_code: int | None = None,
        duration_ms: int | None = None,
    ) -> HistoryEntry:
        entry = HistoryEntry(
            profile_id=profile_id,
            cmd=cmd,
            ts=self._clock(),
            exit_code=exit_code,
            duration_ms=duration_ms,
        )
        self._entries[profile_id].append(entry)
        return entry

    def search_history(self, profile_id: str, prefix: str, limit: int) -> list[CommandSuggestion]:
        stats: Dict[str, tuple[int, float]] = {}
        for entry in self._entries.get(profile_id, []):
            if not entry.cmd.startswith(prefix):
                continue
            count, last = stats.get(entry.cmd, (0, 0.0))
            stats[entry.cmd] = (count + 1, max(last, entry.ts))
        ranked = sorted(stats.items(), key=lambda item: (-item[1][0], -item[1][1]))
        return [
            CommandSuggestion(cmd=cmd, frequency=count, last_used=last, source="history")
            for cmd, (count, last) in ranked[:limit]
        ]

    async def suggestions(self, profile_id: str, prefix: str, limit: int) -> list[CommandSuggestion]:
        results = self.search_history(profile_id, prefix, limit)
        if len(results) >= limit or not self._use_dictionary:
            return results

        seen = {s.cmd for s in results}
        now = self._clock()
        for cmd in dictionary_matches(prefix, (limit - len(results)) * 2):
            if len(results) >= limit:
                break
            if cmd in seen:
                continue
            seen.add(cmd)
            results.append(CommandSuggestion(cmd=cmd, frequency=1, last_used=now, source="dictionary"))
        return results

    async def clear(self, profile_id: str) -> int:
        return len(self._entries.pop(profile_id, []))

    async def clear_all(self) -> int:
        count = sum(len(entries) for entries in self._entries.values())
        self._entries.clear()
        return count

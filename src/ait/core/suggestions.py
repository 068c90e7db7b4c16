"""Suggestion fetching with debounce, a one-entry cache and last-write-wins.

Two call sites use this client. Inline ghost text is fetched on every buffer
change after a quiet period (``debounce_s``); the dropdown is fetched
immediately on an explicit gesture. Each call site has its own generation
counter: a response is delivered only if no newer request of the same kind
was issued in the meantime.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Callable, Dict

from ait.errors import SuggestionFetchError
from ait.history import HistoryService
from ait.log_utils import log_event
from ait.models import CommandSuggestion

logger = logging.getLogger(__name__)

INLINE = "inline"
DROPDOWN = "dropdown"

ResultCallback = Callable[[list[CommandSuggestion]], None]


class SuggestionClient:
    def __init__(
        self,
        service: HistoryService,
        *,
        debounce_s: float = 0.1,
        inline_limit: int = 1,
        dropdown_limit: int = 10,
    ) -> None:
        self._service = service
        self.debounce_s = debounce_s
        self.inline_limit = inline_limit
        self.dropdown_limit = dropdown_limit
        self._generations: Dict[str, int] = {INLINE: 0, DROPDOWN: 0}
        self._pending: asyncio.TimerHandle | None = None
        self._cache_key: tuple[str, str, int] | None = None
        self._cache_value: list[CommandSuggestion] = []
        self._tasks: set[asyncio.Task[None]] = set()

    async def query(self, profile_id: str, prefix: str, limit: int) -> list[CommandSuggestion]:
        """Ask the history service; failures surface as ``SuggestionFetchError``."""
        key = (profile_id, prefix, limit)
        if key == self._cache_key:
            return list(self._cache_value)
        try:
            results = list(await self._service.suggestions(profile_id, prefix, limit))
        except Exception as exc:
            raise SuggestionFetchError(str(exc)) from exc
        self._cache_key = key
        self._cache_value = results
        return list(results)

    async def fetch(self, profile_id: str, prefix: str, limit: int) -> list[CommandSuggestion]:
        """``query`` with failures logged and turned into an empty result."""
        try:
            return await self.query(profile_id, prefix, limit)
        except SuggestionFetchError as exc:
            log_event(logger, "suggestions.fetch_failed", level=logging.DEBUG, prefix=prefix, error=str(exc))
            return []

    def invalidate_cache(self) -> None:
        self._cache_key = None
        self._cache_value = []

    def is_current(self, kind: str, ticket: int) -> bool:
        return self._generations[kind] == ticket

    def _next_ticket(self, kind: str) -> int:
        self._generations[kind] += 1
        return self._generations[kind]

    # inline

    def schedule_inline(
        self,
        profile_id: str,
        prefix: str,
        on_result: ResultCallback,
        *,
        still_valid: Callable[[], bool],
    ) -> None:
        """(Re)start the debounce timer for an inline fetch of ``prefix``."""
        self.cancel_inline()
        ticket = self._next_ticket(INLINE)
        loop = asyncio.get_running_loop()
        self._pending = loop.call_later(
            self.debounce_s, self._fire_inline, ticket, profile_id, prefix, on_result, still_valid
        )

    def cancel_inline(self) -> None:
        """Drop the pending timer and invalidate any inline fetch in flight."""
        if self._pending is not None:
            self._pending.cancel()
            self._pending = None
        self._next_ticket(INLINE)

    def _fire_inline(
        self,
        ticket: int,
        profile_id: str,
        prefix: str,
        on_result: ResultCallback,
        still_valid: Callable[[], bool],
    ) -> None:
        self._pending = None
        if not self.is_current(INLINE, ticket):
            return
        task = asyncio.ensure_future(self._run_inline(ticket, profile_id, prefix, on_result, still_valid))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def _run_inline(
        self,
        ticket: int,
        profile_id: str,
        prefix: str,
        on_result: ResultCallback,
        still_valid: Callable[[], bool],
    ) -> None:
        results = await self.fetch(profile_id, prefix, self.inline_limit)
        if not self.is_current(INLINE, ticket) or not still_valid():
            logger.debug("suggestions.inline_discarded prefix=%r", prefix)
            return
        on_result(results)

    # dropdown

    def begin_dropdown(self) -> int:
        return self._next_ticket(DROPDOWN)

    async def fetch_dropdown(self, profile_id: str, prefix: str, ticket: int) -> list[CommandSuggestion] | None:
        """Fetch up to ``dropdown_limit`` candidates; None if a newer dropdown request superseded this one."""
        results = await self.fetch(profile_id, prefix, self.dropdown_limit)
        if not self.is_current(DROPDOWN, ticket):
            return None
        return results

    async def wait_idle(self) -> None:
        """Wait for in-flight inline fetches (used on shutdown and in tests)."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    def close(self) -> None:
        self.cancel_inline()
        self._next_ticket(DROPDOWN)
        for task in list(self._tasks):
            task.cancel()

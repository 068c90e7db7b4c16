"""Error taxonomy for the session engine.

Only ``ConnectError`` and ``AssistantError`` ever reach the user; the rest are
logged at the seam where they occur and absorbed.
"""

from __future__ import annotations


class AitError(Exception):
    """Base class for all ait errors."""


class ConnectError(AitError):
    """A session could not be opened (missing credential or transport rejection)."""


class TransportError(AitError):
    """Raised by a transport implementation; the message is shown verbatim on open."""


class TransportIOError(TransportError):
    """A write, resize, exec or close call failed on an open session."""


class SessionNotFound(TransportIOError):
    def __init__(self, session_id: str) -> None:
        super().__init__(f"session not found: {session_id}")
        self.session_id = session_id


class SuggestionFetchError(AitError):
    """The history service failed to answer a suggestion query."""


class AssistantError(AitError):
    """The assistant request failed; the raw message is shown in the panel."""

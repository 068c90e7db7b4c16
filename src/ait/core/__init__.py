"""Session engine: input mirroring, suggestions, overlays, sessions and tabs."""

from ait.core.input_buffer import InputBuffer
from ait.core.overlay import OverlayCoordinator, OverlayMode, OverlayState
from ait.core.panel import AssistantPanel
from ait.core.session import SessionController, SessionState
from ait.core.suggestions import SuggestionClient
from ait.core.tabs import Tab, TabMultiplexer

__all__ = [
    "AssistantPanel",
    "InputBuffer",
    "OverlayCoordinator",
    "OverlayMode",
    "OverlayState",
    "SessionController",
    "SessionState",
    "SuggestionClient",
    "Tab",
    "TabMultiplexer",
]

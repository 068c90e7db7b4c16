"""Remote shell transports and the shared inbound byte bus."""

from ait.transport.base import Transport
from ait.transport.events import ByteEventBus, SessionData

__all__ = [
    "ByteEventBus",
    "SessionData",
    "Transport",
]

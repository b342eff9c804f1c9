"""SSE log streaming for task progress."""

from .channel import ChannelClosedError, ChannelState, SSEChannel
from .events import LogEventType, SSEMessage
from .manager import ConnectionRegistry
from .service import LogStreamService

__all__ = [
    "ChannelClosedError",
    "ChannelState",
    "ConnectionRegistry",
    "LogEventType",
    "LogStreamService",
    "SSEChannel",
    "SSEMessage",
]

"""ConnectionRegistry — maps task ids to their live SSE channel."""

from __future__ import annotations

import threading
from typing import Optional

from .channel import SSEChannel


class ConnectionRegistry:
    """Thread-safe task_id -> SSEChannel mapping.

    Every operation touches a single key; the lock is only held for the
    dict access itself.
    """

    def __init__(self) -> None:
        self._channels: dict[str, SSEChannel] = {}
        self._lock = threading.Lock()

    def register(self, task_id: str, channel: SSEChannel) -> Optional[SSEChannel]:
        """Register a channel, returning the one it replaced (if any)."""
        with self._lock:
            previous = self._channels.get(task_id)
            self._channels[task_id] = channel
        return previous

    def get(self, task_id: str) -> Optional[SSEChannel]:
        with self._lock:
            return self._channels.get(task_id)

    def remove(self, task_id: str, channel: Optional[SSEChannel] = None) -> Optional[SSEChannel]:
        """Remove and return the channel for a task.

        When ``channel`` is given, only remove it if it is still the
        registered one, so cleanup of a replaced channel leaves its
        successor alone.
        """
        with self._lock:
            current = self._channels.get(task_id)
            if current is None or (channel is not None and current is not channel):
                return None
            return self._channels.pop(task_id)

    def count(self) -> int:
        with self._lock:
            return len(self._channels)

    def task_ids(self) -> list[str]:
        with self._lock:
            return list(self._channels)

    def __contains__(self, task_id: object) -> bool:
        with self._lock:
            return task_id in self._channels

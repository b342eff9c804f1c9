"""SSEChannel — a one-way server-to-client stream for a single task."""

from __future__ import annotations

import asyncio
import logging
import threading
from enum import Enum
from typing import AsyncGenerator, Callable, Optional

from .events import SSEMessage

logger = logging.getLogger(__name__)

# Queued after the last message to end the stream.
_END_OF_STREAM = object()


class ChannelState(str, Enum):
    OPEN = "open"
    COMPLETED = "completed"
    TIMED_OUT = "timed_out"
    ERRORED = "errored"


class ChannelClosedError(Exception):
    """Raised when writing to a channel whose transport is no longer usable."""


def _current_loop() -> Optional[asyncio.AbstractEventLoop]:
    try:
        return asyncio.get_running_loop()
    except RuntimeError:
        return None


class SSEChannel:
    """Queue-backed SSE channel with completion/timeout/error callbacks.

    Writes may come from any thread; they are handed to the event loop that
    owns the channel. Once the channel leaves OPEN it never reopens, and
    further writes raise ChannelClosedError.
    """

    def __init__(self, task_id: str, timeout: Optional[float] = None) -> None:
        self.task_id = task_id
        self.timeout = timeout
        self.state = ChannelState.OPEN
        self._queue: asyncio.Queue = asyncio.Queue()
        self._loop = _current_loop()
        self._state_lock = threading.Lock()
        self._on_completion: Optional[Callable[[], None]] = None
        self._on_timeout: Optional[Callable[[], None]] = None
        self._on_error: Optional[Callable[[BaseException], None]] = None

    def on_completion(self, callback: Callable[[], None]) -> None:
        self._on_completion = callback

    def on_timeout(self, callback: Callable[[], None]) -> None:
        self._on_timeout = callback

    def on_error(self, callback: Callable[[BaseException], None]) -> None:
        self._on_error = callback

    @property
    def is_open(self) -> bool:
        return self.state is ChannelState.OPEN

    def send(self, message: SSEMessage) -> None:
        """Queue a message for the client.

        The open check and the enqueue happen under one lock, so nothing can
        land behind the end-of-stream marker.
        """
        with self._state_lock:
            if not self.is_open:
                raise ChannelClosedError(
                    f"Channel for task {self.task_id} is {self.state.value}"
                )
            self._put(message)

    def complete(self) -> None:
        """Finish the stream normally after already-queued messages."""
        if self._finish(ChannelState.COMPLETED):
            self._run_callback(self._on_completion)

    def expire(self) -> None:
        if self._finish(ChannelState.TIMED_OUT):
            self._run_callback(self._on_timeout)

    def fail(self, error: BaseException) -> None:
        if self._finish(ChannelState.ERRORED):
            self._run_callback(self._on_error, error)

    async def stream(self) -> AsyncGenerator[str, None]:
        """Async generator yielding SSE strings until the channel ends.

        Expires the channel after ``timeout`` idle seconds when a timeout is
        set. A consumer that stops iterating early fails the channel, which
        is how client disconnects reach the error callback.
        """
        with self._state_lock:
            if self._loop is None:
                self._loop = asyncio.get_running_loop()
        try:
            while True:
                try:
                    item = await asyncio.wait_for(self._queue.get(), timeout=self.timeout)
                except asyncio.TimeoutError:
                    self.expire()
                    return
                if item is _END_OF_STREAM:
                    return
                yield item.to_sse_string()
        finally:
            if self.is_open:
                self.fail(ConnectionResetError("client disconnected"))

    def _finish(self, state: ChannelState) -> bool:
        with self._state_lock:
            if not self.is_open:
                return False
            self.state = state
            try:
                self._put(_END_OF_STREAM)
            except ChannelClosedError:
                logger.debug("Event loop gone while ending stream: task_id=%s", self.task_id)
        return True

    def _put(self, item: object) -> None:
        # Once bound to a loop every write goes through its callback queue,
        # on-loop or not, so items keep the order they were sent in.
        loop = self._loop
        if loop is None:
            self._queue.put_nowait(item)
            return
        try:
            loop.call_soon_threadsafe(self._queue.put_nowait, item)
        except RuntimeError as exc:
            raise ChannelClosedError(
                f"Event loop for task {self.task_id} is closed"
            ) from exc

    def _run_callback(self, callback, *args) -> None:
        if callback is None:
            return
        try:
            callback(*args)
        except Exception:
            logger.exception("Channel callback failed: task_id=%s", self.task_id)

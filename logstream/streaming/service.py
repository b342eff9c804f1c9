"""LogStreamService — pushes task progress events to each task's SSE channel.

Delivery is best-effort: events for tasks without a live channel are
dropped, and a failed write retires the channel instead of raising.
"""

from __future__ import annotations

import asyncio
import logging
import threading
from typing import Callable, Optional, Union

from logstream.hooks.icons import get_analysis_icon, get_tool_icon

from .channel import ChannelClosedError, SSEChannel
from .events import (
    AnalysisEvent,
    ConnectionEvent,
    FileStreamEvent,
    LogEvent,
    LogEventType,
    TaskCompleteEvent,
    ToolEvent,
    format_log_message,
)
from .manager import ConnectionRegistry

logger = logging.getLogger(__name__)

DEFAULT_COMPLETE_CLOSE_DELAY = 2.0

# User requests longer than this are truncated in TASK_ANALYSIS_START
_REQUEST_PREVIEW_CHARS = 50

ChannelFactory = Callable[..., SSEChannel]


class LogStreamService:
    """Registry-backed dispatcher for task log events."""

    def __init__(
        self,
        registry: Optional[ConnectionRegistry] = None,
        complete_close_delay: float = DEFAULT_COMPLETE_CLOSE_DELAY,
        channel_timeout: Optional[float] = None,
        channel_factory: ChannelFactory = SSEChannel,
    ) -> None:
        self._registry = registry if registry is not None else ConnectionRegistry()
        self.complete_close_delay = complete_close_delay
        self.channel_timeout = channel_timeout
        self._channel_factory = channel_factory
        self._pending_closes: dict[str, Union[asyncio.Task, threading.Timer]] = {}
        self._pending_lock = threading.Lock()

    @property
    def registry(self) -> ConnectionRegistry:
        return self._registry

    # -- connection lifecycle -------------------------------------------

    def create_connection(self, task_id: str) -> SSEChannel:
        """Open and register a channel, then greet it with CONNECTION_ESTABLISHED."""
        logger.info("Opening log stream: task_id=%s", task_id)
        channel = self._channel_factory(task_id, timeout=self.channel_timeout)

        def on_completion() -> None:
            logger.info("Log stream completed: task_id=%s", task_id)
            self._registry.remove(task_id, channel)

        def on_timeout() -> None:
            logger.warning("Log stream timed out: task_id=%s", task_id)
            self._registry.remove(task_id, channel)

        def on_error(error: BaseException) -> None:
            logger.error("Log stream error: task_id=%s, error=%s", task_id, error)
            self._registry.remove(task_id, channel)

        channel.on_completion(on_completion)
        channel.on_timeout(on_timeout)
        channel.on_error(on_error)

        if self._registry.register(task_id, channel) is not None:
            logger.info("Replaced existing log stream: task_id=%s", task_id)

        self.send_log_event(task_id, ConnectionEvent.for_task(task_id))
        return channel

    def close_connection(self, task_id: str) -> None:
        channel = self._registry.remove(task_id)
        if channel is None:
            logger.debug("No log stream to close: task_id=%s", task_id)
            return
        channel.complete()
        logger.info("Closed log stream: task_id=%s", task_id)

    def get_active_connection_count(self) -> int:
        return self._registry.count()

    def shutdown(self) -> None:
        """Cancel every pending delayed close."""
        with self._pending_lock:
            pending = list(self._pending_closes.values())
            self._pending_closes.clear()
        for handle in pending:
            handle.cancel()
        if pending:
            logger.info("Cancelled %d pending log stream close(s)", len(pending))

    # -- dispatch -------------------------------------------------------

    def send_log_event(self, task_id: str, event: LogEvent) -> bool:
        """Write an event to the task's channel.

        Returns True when the message reached the channel. Never raises for
        missing or broken connections.
        """
        channel = self._registry.get(task_id)
        if channel is None:
            logger.warning(
                "No log stream for task, dropping event: task_id=%s, type=%s",
                task_id, event.type.value,
            )
            return False

        message = format_log_message(event)
        logger.debug("Pushing log event: task_id=%s, data=%s", task_id, message.data)
        try:
            channel.send(message)
        except ChannelClosedError as e:
            logger.error("Failed to push log event: task_id=%s, error=%s", task_id, e)
            self._registry.remove(task_id, channel)
            return False

        logger.info("Pushed log event: task_id=%s, type=%s", task_id, event.type.value)
        return True

    # -- tool events ----------------------------------------------------

    def push_tool_execution_summary(
        self, task_id: str, tool_name: str, file_path: Optional[str], summary: str, reason: str
    ) -> None:
        self.send_log_event(task_id, ToolEvent(
            type=LogEventType.TOOL_EXECUTION_SUMMARY,
            task_id=task_id,
            message=f"Preparing to run tool: {tool_name}",
            icon=get_tool_icon(tool_name),
            tool_name=tool_name,
            file_path=file_path,
            status="PLANNING",
            description=summary,
            details=reason,
        ))

    def push_tool_start(self, task_id: str, tool_name: str, file_path: Optional[str], message: str) -> None:
        self.send_log_event(task_id, ToolEvent(
            type=LogEventType.TOOL_START,
            task_id=task_id,
            message=message,
            icon=get_tool_icon(tool_name),
            tool_name=tool_name,
            file_path=file_path,
            status="RUNNING",
        ))

    def push_tool_success(
        self, task_id: str, tool_name: str, file_path: Optional[str], message: str, execution_time: int
    ) -> None:
        self.send_log_event(task_id, ToolEvent(
            type=LogEventType.TOOL_SUCCESS,
            task_id=task_id,
            message=message,
            icon=get_tool_icon(tool_name),
            tool_name=tool_name,
            file_path=file_path,
            status="SUCCESS",
            execution_time=execution_time,
        ))

    def push_tool_error(
        self, task_id: str, tool_name: str, file_path: Optional[str], message: str, execution_time: int
    ) -> None:
        self.send_log_event(task_id, ToolEvent(
            type=LogEventType.TOOL_ERROR,
            task_id=task_id,
            message=message,
            icon="❌",
            tool_name=tool_name,
            file_path=file_path,
            status="ERROR",
            execution_time=execution_time,
        ))

    # -- analysis events ------------------------------------------------

    def push_analysis_step(self, task_id: str, step_name: str, description: str, status: str) -> None:
        self.send_log_event(task_id, AnalysisEvent(
            type=LogEventType.ANALYSIS_STEP,
            task_id=task_id,
            message=description,
            icon=get_analysis_icon(step_name),
            step_name=step_name,
            description=description,
            status=status,
        ))

    def push_task_analysis_start(self, task_id: str, user_message: str) -> None:
        preview = user_message
        if len(preview) > _REQUEST_PREVIEW_CHARS:
            preview = preview[:_REQUEST_PREVIEW_CHARS] + "..."
        self.send_log_event(task_id, AnalysisEvent(
            type=LogEventType.TASK_ANALYSIS_START,
            task_id=task_id,
            message="AI is analyzing your request...",
            icon="🧠",
            step_name="Task Analysis",
            description=f"Analyzing request: {preview}",
            status="ANALYZING",
        ))

    def push_execution_plan_generated(self, task_id: str, plan_summary: str) -> None:
        self.send_log_event(task_id, AnalysisEvent(
            type=LogEventType.EXECUTION_PLAN,
            task_id=task_id,
            message="Execution plan generated",
            icon="📋",
            step_name="Execution Plan",
            description=plan_summary,
            status="COMPLETED",
        ))

    def push_task_complete(self, task_id: str) -> None:
        """Send TASK_COMPLETE and close the stream after the grace delay.

        The close runs as an asyncio task when called on an event loop and
        on a daemon timer thread otherwise; the caller never waits for it.
        """
        self.send_log_event(task_id, TaskCompleteEvent(task_id=task_id))
        self._schedule_close(task_id)

    # -- file stream events ---------------------------------------------

    def push_file_created(self, task_id: str, file_path: str, message: str) -> None:
        self.send_log_event(task_id, FileStreamEvent(
            type=LogEventType.FILE_CREATED,
            task_id=task_id,
            message=message,
            icon="📄",
            file_path=file_path,
            status="CREATED",
        ))

    def push_file_content_chunk(
        self,
        task_id: str,
        file_path: str,
        chunk: str,
        chunk_index: int,
        total_bytes: int,
        written_bytes: int,
    ) -> None:
        self.send_log_event(task_id, FileStreamEvent(
            type=LogEventType.FILE_CONTENT_CHUNK,
            task_id=task_id,
            message=f"Writing chunk {chunk_index} ({written_bytes}/{total_bytes} bytes)",
            icon="✏️",
            file_path=file_path,
            status="WRITING",
            total_bytes=total_bytes,
            written_bytes=written_bytes,
            content_chunk=chunk,
            chunk_index=chunk_index,
        ))

    def push_file_write_progress(
        self,
        task_id: str,
        file_path: str,
        total_bytes: int,
        written_bytes: int,
        progress_percent: float,
    ) -> None:
        self.send_log_event(task_id, FileStreamEvent(
            type=LogEventType.FILE_WRITE_PROGRESS,
            task_id=task_id,
            message=f"Write progress: {progress_percent:.1f}% ({written_bytes}/{total_bytes} bytes)",
            icon="📊",
            file_path=file_path,
            status="WRITING",
            total_bytes=total_bytes,
            written_bytes=written_bytes,
            progress_percent=progress_percent,
        ))

    def push_file_write_complete(
        self, task_id: str, file_path: str, total_bytes: int, execution_time: int
    ) -> None:
        self.send_log_event(task_id, FileStreamEvent(
            type=LogEventType.FILE_WRITE_COMPLETE,
            task_id=task_id,
            message=f"File written ({total_bytes} bytes, {execution_time}ms)",
            icon="✅",
            file_path=file_path,
            status="COMPLETE",
            total_bytes=total_bytes,
            written_bytes=total_bytes,
            progress_percent=100.0,
            execution_time=execution_time,
        ))

    def push_file_write_error(
        self, task_id: str, file_path: str, error_message: str, execution_time: int
    ) -> None:
        self.send_log_event(task_id, FileStreamEvent(
            type=LogEventType.FILE_WRITE_ERROR,
            task_id=task_id,
            message=f"File write failed: {error_message}",
            icon="❌",
            file_path=file_path,
            status="ERROR",
            execution_time=execution_time,
        ))

    # -- delayed close --------------------------------------------------

    def _schedule_close(self, task_id: str) -> None:
        channel = self._registry.get(task_id)
        if channel is None:
            return
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            handle: Union[asyncio.Task, threading.Timer] = threading.Timer(
                self.complete_close_delay, self._close_on_timer, args=(task_id, channel)
            )
            handle.daemon = True
        else:
            handle = loop.create_task(self._close_after_delay(task_id, channel))

        with self._pending_lock:
            previous = self._pending_closes.get(task_id)
            self._pending_closes[task_id] = handle
        if previous is not None:
            previous.cancel()
        if isinstance(handle, threading.Timer):
            handle.start()

    async def _close_after_delay(self, task_id: str, channel: SSEChannel) -> None:
        try:
            await asyncio.sleep(self.complete_close_delay)
        except asyncio.CancelledError:
            logger.info("Delayed close cancelled: task_id=%s", task_id)
            return
        self._forget_pending(task_id, asyncio.current_task())
        self._close_channel(task_id, channel)

    def _close_on_timer(self, task_id: str, channel: SSEChannel) -> None:
        self._forget_pending(task_id, threading.current_thread())
        self._close_channel(task_id, channel)

    def _close_channel(self, task_id: str, channel: SSEChannel) -> None:
        # A client that reconnected during the delay keeps its new stream.
        if self._registry.remove(task_id, channel) is None:
            logger.debug("Log stream replaced or closed before delayed close: task_id=%s", task_id)
        channel.complete()
        logger.info("Closed log stream: task_id=%s", task_id)

    def _forget_pending(self, task_id: str, handle: object) -> None:
        with self._pending_lock:
            if self._pending_closes.get(task_id) is handle:
                del self._pending_closes[task_id]

    def pending_close_count(self) -> int:
        with self._pending_lock:
            return len(self._pending_closes)

"""Log event types and SSE serialization for task progress streams."""

from __future__ import annotations

import json
from dataclasses import dataclass, field, fields
from datetime import datetime
from enum import Enum
from typing import Any, Optional

TIMESTAMP_FORMAT = "%Y-%m-%d %H:%M:%S"

# Every log event goes out under this SSE event name.
LOG_EVENT_NAME = "log"


class LogEventType(str, Enum):
    """All event kinds pushed to a task's log stream."""

    # Connection lifecycle
    CONNECTION_ESTABLISHED = "CONNECTION_ESTABLISHED"
    TASK_COMPLETE = "TASK_COMPLETE"

    # Tool execution
    TOOL_EXECUTION_SUMMARY = "TOOL_EXECUTION_SUMMARY"
    TOOL_START = "TOOL_START"
    TOOL_SUCCESS = "TOOL_SUCCESS"
    TOOL_ERROR = "TOOL_ERROR"

    # AI analysis
    ANALYSIS_STEP = "ANALYSIS_STEP"
    TASK_ANALYSIS_START = "TASK_ANALYSIS_START"
    EXECUTION_PLAN = "EXECUTION_PLAN"

    # File writes
    FILE_CREATED = "FILE_CREATED"
    FILE_CONTENT_CHUNK = "FILE_CONTENT_CHUNK"
    FILE_WRITE_PROGRESS = "FILE_WRITE_PROGRESS"
    FILE_WRITE_COMPLETE = "FILE_WRITE_COMPLETE"
    FILE_WRITE_ERROR = "FILE_WRITE_ERROR"


def now_timestamp() -> str:
    return datetime.now().strftime(TIMESTAMP_FORMAT)


def _camel_case(name: str) -> str:
    head, *rest = name.split("_")
    return head + "".join(part.title() for part in rest)


@dataclass(frozen=True)
class LogEvent:
    """Base fields shared by every log event variant.

    Subclasses list the event kinds they may carry in ``_kinds``; building a
    variant with a foreign kind raises ``ValueError``. The base carries no
    kinds, so it cannot be built directly.
    """

    type: LogEventType
    task_id: str
    message: str
    icon: str = ""
    timestamp: str = field(default_factory=now_timestamp)

    _kinds = frozenset()

    def __post_init__(self) -> None:
        if self.type not in self._kinds:
            raise ValueError(f"{type(self).__name__} cannot carry event type {self.type}")

    def to_payload(self) -> dict[str, Any]:
        """Return the camelCase wire object, dropping unset optional fields."""
        payload: dict[str, Any] = {}
        for f in fields(self):
            value = getattr(self, f.name)
            if value is None:
                continue
            if isinstance(value, Enum):
                value = value.value
            payload[_camel_case(f.name)] = value
        return payload


@dataclass(frozen=True)
class ConnectionEvent(LogEvent):
    type: LogEventType = LogEventType.CONNECTION_ESTABLISHED
    task_id: str = ""
    message: str = "Log stream connected"
    icon: str = "🔗"

    _kinds = frozenset({LogEventType.CONNECTION_ESTABLISHED})

    @classmethod
    def for_task(cls, task_id: str) -> ConnectionEvent:
        return cls(task_id=task_id)


@dataclass(frozen=True)
class ToolEvent(LogEvent):
    tool_name: str = ""
    file_path: Optional[str] = None
    status: str = ""
    execution_time: Optional[int] = None
    description: Optional[str] = None
    details: Optional[str] = None

    _kinds = frozenset({
        LogEventType.TOOL_EXECUTION_SUMMARY,
        LogEventType.TOOL_START,
        LogEventType.TOOL_SUCCESS,
        LogEventType.TOOL_ERROR,
    })


@dataclass(frozen=True)
class AnalysisEvent(LogEvent):
    step_name: str = ""
    description: str = ""
    status: str = ""

    _kinds = frozenset({
        LogEventType.ANALYSIS_STEP,
        LogEventType.TASK_ANALYSIS_START,
        LogEventType.EXECUTION_PLAN,
    })


@dataclass(frozen=True)
class FileStreamEvent(LogEvent):
    file_path: str = ""
    status: str = ""
    total_bytes: Optional[int] = None
    written_bytes: Optional[int] = None
    progress_percent: Optional[float] = None
    content_chunk: Optional[str] = None
    chunk_index: Optional[int] = None
    execution_time: Optional[int] = None

    _kinds = frozenset({
        LogEventType.FILE_CREATED,
        LogEventType.FILE_CONTENT_CHUNK,
        LogEventType.FILE_WRITE_PROGRESS,
        LogEventType.FILE_WRITE_COMPLETE,
        LogEventType.FILE_WRITE_ERROR,
    })


@dataclass(frozen=True)
class TaskCompleteEvent(LogEvent):
    type: LogEventType = LogEventType.TASK_COMPLETE
    task_id: str = ""
    message: str = "Task completed"
    icon: str = "🎉"

    _kinds = frozenset({LogEventType.TASK_COMPLETE})


@dataclass
class SSEMessage:
    """A single named Server-Sent Event ready for the wire."""

    event: str
    data: dict[str, Any]

    def to_sse_string(self) -> str:
        """Serialize to SSE wire format.

        Format:
            event: <name>
            data: <json>

            (terminated by double newline)
        """
        data_json = json.dumps(self.data, ensure_ascii=False, default=str)
        return f"event: {self.event}\ndata: {data_json}\n\n"


def format_log_message(event: LogEvent) -> SSEMessage:
    """Wrap a log event into the ``log`` named SSE message."""
    return SSEMessage(event=LOG_EVENT_NAME, data=event.to_payload())

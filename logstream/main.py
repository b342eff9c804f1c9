"""FastAPI application for logstream — per-task SSE log streams."""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import StreamingResponse

from logstream.config.settings import settings
from logstream.streaming import LogStreamService

logging.basicConfig(level=settings.log_level)
logger = logging.getLogger(__name__)

# Singleton log stream service
log_stream_service = LogStreamService(
    complete_close_delay=settings.complete_close_delay_seconds,
    channel_timeout=settings.channel_timeout_seconds,
)


@asynccontextmanager
async def lifespan(app: FastAPI):
    yield
    log_stream_service.shutdown()


app = FastAPI(title="logstream", version="0.1.0", lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_allow_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.get("/api/logs/connections")
async def active_connections():
    """Number of open log streams (diagnostics)."""
    return {"active_connections": log_stream_service.get_active_connection_count()}


@app.get("/api/logs/{task_id}/stream")
async def stream_logs(task_id: str):
    """SSE endpoint — streams a task's log events as ``log`` messages."""
    channel = log_stream_service.create_connection(task_id)
    return StreamingResponse(
        channel.stream(),
        media_type="text/event-stream",
        headers={"Cache-Control": "no-cache", "X-Accel-Buffering": "no"},
    )


@app.delete("/api/logs/{task_id}")
async def close_logs(task_id: str):
    """Close a task's log stream; closing an unknown task is a no-op."""
    closed = task_id in log_stream_service.registry
    log_stream_service.close_connection(task_id)
    return {"task_id": task_id, "closed": closed}


@app.get("/health")
async def health():
    """Health check endpoint."""
    return {"status": "ok"}

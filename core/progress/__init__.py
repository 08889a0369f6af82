"""
Progress events, state machine, and server-side hub re-exports.
"""
from core.progress.events import (
    JOB_COMPLETED,
    JOB_FAILED,
    JOB_STARTED,
    SCRAPING_PROGRESS,
    JobCompleted,
    JobFailed,
    JobStarted,
    ProgressEvent,
    ScrapingProgress,
    build_message,
    decode_frame,
    event_from_message,
    parse_frame,
)
from core.progress import notify
from core.progress.hub import ConnectionHub
from core.progress.state import (
    COMPLETED,
    FAILED,
    RUNNING,
    ProgressState,
    apply_event,
    mark_connection_lost,
    status_text,
)

__all__ = [
    "JOB_COMPLETED",
    "JOB_FAILED",
    "JOB_STARTED",
    "SCRAPING_PROGRESS",
    "JobCompleted",
    "JobFailed",
    "JobStarted",
    "ProgressEvent",
    "ScrapingProgress",
    "build_message",
    "decode_frame",
    "event_from_message",
    "parse_frame",
    "ConnectionHub",
    "notify",
    "COMPLETED",
    "FAILED",
    "RUNNING",
    "ProgressState",
    "apply_event",
    "mark_connection_lost",
    "status_text",
]

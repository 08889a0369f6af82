"""
Typed progress frames exchanged over the progress socket.

Wire format: {"type": ..., "data": {...camelCase...}, "timestamp": ISO8601}.
"""
from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import ClassVar, Dict, Optional, Union

log = logging.getLogger("progress.events")

JOB_STARTED = "job_started"
SCRAPING_PROGRESS = "scraping_progress"
JOB_COMPLETED = "job_completed"
JOB_FAILED = "job_failed"

PROGRESS_EVENT_TYPES = (JOB_STARTED, SCRAPING_PROGRESS, JOB_COMPLETED, JOB_FAILED)


def utc_timestamp() -> str:
    return datetime.now(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def build_message(msg_type: str, data: Optional[Dict] = None, timestamp: bool = True) -> Dict:
    """Wrap a payload in the socket envelope."""
    msg: Dict = {"type": msg_type, "data": dict(data or {})}
    if timestamp:
        msg["timestamp"] = utc_timestamp()
    return msg


def _read_count(data: Dict, key: str, default: Optional[int] = None) -> int:
    """Read a non-negative integer field, raising ValueError when it is unusable."""
    value = data.get(key, default)
    if value is None or isinstance(value, bool):
        raise ValueError(f"{key} must be a number")
    if isinstance(value, float):
        if not value.is_integer():
            raise ValueError(f"{key} must be a whole number")
        value = int(value)
    elif isinstance(value, str):
        value = int(value.strip())
    elif not isinstance(value, int):
        raise ValueError(f"{key} must be a number")
    if value < 0:
        raise ValueError(f"{key} must not be negative")
    return value


def _read_optional_count(data: Dict, key: str) -> Optional[int]:
    if data.get(key) is None:
        return None
    return _read_count(data, key)


def _read_optional_str(data: Dict, key: str) -> Optional[str]:
    value = data.get(key)
    if value is None or value == "":
        return None
    return str(value)


@dataclass(frozen=True)
class JobStarted:
    type: ClassVar[str] = JOB_STARTED

    job_id: str
    execution_id: Optional[str] = None

    def payload(self) -> Dict:
        data: Dict = {"jobId": self.job_id}
        if self.execution_id is not None:
            data["executionId"] = self.execution_id
        return data

    @classmethod
    def from_data(cls, job_id: str, data: Dict) -> "JobStarted":
        return cls(job_id=job_id, execution_id=_read_optional_str(data, "executionId"))

    def to_message(self, timestamp: bool = True) -> Dict:
        return build_message(self.type, self.payload(), timestamp=timestamp)


@dataclass(frozen=True)
class ScrapingProgress:
    type: ClassVar[str] = SCRAPING_PROGRESS

    job_id: str
    current_page: int
    max_pages: int
    data_points: int
    execution_id: Optional[str] = None

    def payload(self) -> Dict:
        data: Dict = {
            "jobId": self.job_id,
            "currentPage": self.current_page,
            "maxPages": self.max_pages,
            "dataPoints": self.data_points,
        }
        if self.execution_id is not None:
            data["executionId"] = self.execution_id
        return data

    @classmethod
    def from_data(cls, job_id: str, data: Dict) -> "ScrapingProgress":
        return cls(
            job_id=job_id,
            current_page=_read_count(data, "currentPage"),
            max_pages=_read_count(data, "maxPages"),
            data_points=_read_count(data, "dataPoints", 0),
            execution_id=_read_optional_str(data, "executionId"),
        )

    def to_message(self, timestamp: bool = True) -> Dict:
        return build_message(self.type, self.payload(), timestamp=timestamp)


@dataclass(frozen=True)
class JobCompleted:
    type: ClassVar[str] = JOB_COMPLETED

    job_id: str
    success: bool
    execution_id: Optional[str] = None
    pages_scraped: Optional[int] = None
    data_points: Optional[int] = None

    def payload(self) -> Dict:
        data: Dict = {"jobId": self.job_id, "success": self.success}
        if self.execution_id is not None:
            data["executionId"] = self.execution_id
        if self.pages_scraped is not None:
            data["pagesScraped"] = self.pages_scraped
        if self.data_points is not None:
            data["dataPoints"] = self.data_points
        return data

    @classmethod
    def from_data(cls, job_id: str, data: Dict) -> "JobCompleted":
        return cls(
            job_id=job_id,
            success=bool(data.get("success", False)),
            execution_id=_read_optional_str(data, "executionId"),
            pages_scraped=_read_optional_count(data, "pagesScraped"),
            data_points=_read_optional_count(data, "dataPoints"),
        )

    def to_message(self, timestamp: bool = True) -> Dict:
        return build_message(self.type, self.payload(), timestamp=timestamp)


@dataclass(frozen=True)
class JobFailed:
    type: ClassVar[str] = JOB_FAILED

    job_id: str
    error: str = "Unknown error"

    def payload(self) -> Dict:
        return {"jobId": self.job_id, "error": self.error}

    @classmethod
    def from_data(cls, job_id: str, data: Dict) -> "JobFailed":
        return cls(job_id=job_id, error=_read_optional_str(data, "error") or "Unknown error")

    def to_message(self, timestamp: bool = True) -> Dict:
        return build_message(self.type, self.payload(), timestamp=timestamp)


ProgressEvent = Union[JobStarted, ScrapingProgress, JobCompleted, JobFailed]

_EVENT_CLASSES = {
    JOB_STARTED: JobStarted,
    SCRAPING_PROGRESS: ScrapingProgress,
    JOB_COMPLETED: JobCompleted,
    JOB_FAILED: JobFailed,
}


def decode_frame(raw: Union[str, bytes, bytearray]) -> Optional[Dict]:
    """Parse a raw socket frame into a message dict, or None if it is not a JSON object with a type."""
    try:
        if isinstance(raw, (bytes, bytearray)):
            raw = raw.decode("utf-8")
        msg = json.loads(raw)
    except (UnicodeDecodeError, ValueError) as exc:
        log.warning("Dropping malformed frame", extra={"error": str(exc)})
        return None

    if not isinstance(msg, dict) or not isinstance(msg.get("type"), str):
        log.warning("Dropping frame without a type")
        return None
    return msg


def event_from_message(msg: Dict) -> Optional[ProgressEvent]:
    """
    Build a typed progress event from a decoded message.
    Returns None for non-progress message types and for payloads that don't validate.
    """
    cls = _EVENT_CLASSES.get(msg.get("type"))
    if cls is None:
        return None

    data = msg.get("data")
    if not isinstance(data, dict):
        log.warning("Dropping progress frame without data", extra={"type": msg.get("type")})
        return None

    job_id = data.get("jobId")
    if job_id is None or job_id == "" or isinstance(job_id, (dict, list, bool)):
        log.warning("Dropping progress frame without jobId", extra={"type": msg.get("type")})
        return None

    try:
        return cls.from_data(str(job_id), data)
    except ValueError as exc:
        log.warning(
            "Dropping invalid progress frame",
            extra={"type": msg.get("type"), "job_id": str(job_id), "error": str(exc)},
        )
        return None


def parse_frame(raw: Union[str, bytes, bytearray]) -> Optional[ProgressEvent]:
    msg = decode_frame(raw)
    if msg is None:
        return None
    return event_from_message(msg)


def is_terminal_event(event: ProgressEvent) -> bool:
    return event.type in (JOB_COMPLETED, JOB_FAILED)


__all__ = [
    "JOB_STARTED",
    "SCRAPING_PROGRESS",
    "JOB_COMPLETED",
    "JOB_FAILED",
    "PROGRESS_EVENT_TYPES",
    "JobStarted",
    "ScrapingProgress",
    "JobCompleted",
    "JobFailed",
    "ProgressEvent",
    "build_message",
    "decode_frame",
    "event_from_message",
    "parse_frame",
    "is_terminal_event",
    "utc_timestamp",
]

"""
Progress state for a single scraping job as seen by a watcher.
"""
from __future__ import annotations

import math
from dataclasses import dataclass, replace
from typing import Optional

from core.progress.events import (
    JOB_COMPLETED,
    JOB_FAILED,
    SCRAPING_PROGRESS,
    ProgressEvent,
)

RUNNING = "running"
COMPLETED = "completed"
FAILED = "failed"

TERMINAL_STATUSES = (COMPLETED, FAILED)

CONNECTION_LOST_ERROR = "Connection lost"
JOB_FAILED_ERROR = "Job failed"


@dataclass(frozen=True)
class ProgressState:
    current_page: int = 0
    max_pages: int = 0
    data_points: int = 0
    status: str = RUNNING
    error: Optional[str] = None

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

    @property
    def percentage(self) -> int:
        if self.max_pages <= 0:
            return 0
        # half-up, so 2.5% shows as 3%
        return min(100, int(math.floor(self.current_page * 100 / self.max_pages + 0.5)))


def apply_event(state: Optional[ProgressState], event: ProgressEvent) -> Optional[ProgressState]:
    """
    Project one event onto the current state and return the new state.

    None means nothing has been received yet. Terminal states never change.
    Job id filtering is the caller's job.
    """
    if state is not None and state.is_terminal:
        return state

    if event.type == SCRAPING_PROGRESS:
        if state is None:
            return ProgressState(
                current_page=event.current_page,
                max_pages=event.max_pages,
                data_points=event.data_points,
                status=RUNNING,
            )
        return replace(
            state,
            current_page=max(state.current_page, event.current_page),
            max_pages=event.max_pages,
            data_points=max(state.data_points, event.data_points),
            status=RUNNING,
        )

    if event.type == JOB_COMPLETED:
        base = state or ProgressState(
            current_page=event.pages_scraped or 0,
            max_pages=event.pages_scraped or 0,
            data_points=event.data_points or 0,
        )
        if event.success:
            return replace(base, status=COMPLETED, error=None)
        return replace(base, status=FAILED, error=JOB_FAILED_ERROR)

    if event.type == JOB_FAILED:
        return replace(state or ProgressState(), status=FAILED, error=event.error)

    # job_started carries no counters
    return state


def mark_connection_lost(state: Optional[ProgressState]) -> Optional[ProgressState]:
    """Fail a running job whose socket could not be re-established."""
    if state is None or state.is_terminal:
        return state
    return replace(state, status=FAILED, error=CONNECTION_LOST_ERROR)


def status_text(state: Optional[ProgressState]) -> str:
    status = state.status if state else None
    if status == RUNNING:
        return "Scraping in progress..."
    if status == COMPLETED:
        return "Scraping completed!"
    if status == FAILED:
        return "Scraping failed"
    return "Preparing..."


__all__ = [
    "RUNNING",
    "COMPLETED",
    "FAILED",
    "TERMINAL_STATUSES",
    "CONNECTION_LOST_ERROR",
    "JOB_FAILED_ERROR",
    "ProgressState",
    "apply_event",
    "mark_connection_lost",
    "status_text",
]

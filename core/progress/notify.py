"""
Broadcast helpers used by the scraping side to push updates to watchers.
"""
from __future__ import annotations

from typing import Dict, Optional

from core.progress.events import (
    JobCompleted,
    JobFailed,
    JobStarted,
    ProgressEvent,
    ScrapingProgress,
    build_message,
)
from core.progress.hub import ConnectionHub, hub as default_hub


def _hub(target: Optional[ConnectionHub]) -> ConnectionHub:
    return target if target is not None else default_hub


async def publish_event(
    user_id: Optional[str], event: ProgressEvent, hub: Optional[ConnectionHub] = None
) -> int:
    """Deliver a typed progress event to one user, or to every client when user_id is empty."""
    message = event.to_message()
    if user_id:
        return await _hub(hub).broadcast_to_user(user_id, message)
    return await _hub(hub).broadcast_to_all(message)


async def broadcast_job_started(
    user_id: str, job_id: str, execution_id: Optional[str] = None, hub: Optional[ConnectionHub] = None
) -> int:
    event = JobStarted(job_id=str(job_id), execution_id=execution_id)
    return await _hub(hub).broadcast_to_user(user_id, event.to_message())


async def broadcast_scraping_progress(
    user_id: str,
    job_id: str,
    current_page: int,
    max_pages: int,
    data_points: int,
    execution_id: Optional[str] = None,
    hub: Optional[ConnectionHub] = None,
) -> int:
    event = ScrapingProgress(
        job_id=str(job_id),
        current_page=current_page,
        max_pages=max_pages,
        data_points=data_points,
        execution_id=execution_id,
    )
    return await _hub(hub).broadcast_to_user(user_id, event.to_message())


async def broadcast_job_completed(
    user_id: str,
    job_id: str,
    success: bool,
    execution_id: Optional[str] = None,
    pages_scraped: Optional[int] = None,
    data_points: Optional[int] = None,
    hub: Optional[ConnectionHub] = None,
) -> int:
    event = JobCompleted(
        job_id=str(job_id),
        success=success,
        execution_id=execution_id,
        pages_scraped=pages_scraped,
        data_points=data_points,
    )
    return await _hub(hub).broadcast_to_user(user_id, event.to_message())


async def broadcast_job_failed(
    user_id: str, job_id: str, error: str, hub: Optional[ConnectionHub] = None
) -> int:
    event = JobFailed(job_id=str(job_id), error=error or "Unknown error")
    return await _hub(hub).broadcast_to_user(user_id, event.to_message())


# Generic channels; payloads are passed through untouched.

async def broadcast_job_update(user_id: str, job_update: Dict, hub: Optional[ConnectionHub] = None) -> int:
    return await _hub(hub).broadcast_to_user(user_id, build_message("job_update", job_update))


async def broadcast_job_progress(
    user_id: str, job_id: str, progress: Dict, hub: Optional[ConnectionHub] = None
) -> int:
    data = {"jobId": str(job_id), **progress}
    return await _hub(hub).broadcast_to_user(user_id, build_message("job_progress", data))


async def broadcast_system_stats(stats: Dict, hub: Optional[ConnectionHub] = None) -> int:
    return await _hub(hub).broadcast_to_all(build_message("system_stats", stats))


async def broadcast_data_update(user_id: str, data_update: Dict, hub: Optional[ConnectionHub] = None) -> int:
    return await _hub(hub).broadcast_to_user(user_id, build_message("data_update", data_update))


async def broadcast_notification(user_id: str, notification: Dict, hub: Optional[ConnectionHub] = None) -> int:
    return await _hub(hub).broadcast_to_user(user_id, build_message("notification", notification))


__all__ = [
    "publish_event",
    "broadcast_job_started",
    "broadcast_scraping_progress",
    "broadcast_job_completed",
    "broadcast_job_failed",
    "broadcast_job_update",
    "broadcast_job_progress",
    "broadcast_system_stats",
    "broadcast_data_update",
    "broadcast_notification",
]

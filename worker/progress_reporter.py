"""
Pushes scraping progress from a worker process to the API's ingest endpoint.
"""
from __future__ import annotations

import logging
import os
from typing import Dict, Optional

import httpx

from core.progress.events import (
    JobCompleted,
    JobFailed,
    JobStarted,
    ScrapingProgress,
)

PROGRESS_API_URL = os.getenv("PROGRESS_API_URL", "http://localhost:5001")
PROGRESS_INGEST_KEY = os.getenv("PROGRESS_INGEST_KEY")
REQUEST_TIMEOUT = 5.0  # seconds

log = logging.getLogger("worker.progress")


class ProgressReporter:
    """
    Best-effort reporter for one job run. Delivery failures are logged and
    never raised: a scrape must not fail because nobody is watching.
    """

    def __init__(
        self,
        user_id: Optional[str],
        job_id: str,
        api_url: str = PROGRESS_API_URL,
        ingest_key: Optional[str] = PROGRESS_INGEST_KEY,
        client: Optional[httpx.AsyncClient] = None,
    ):
        self.user_id = str(user_id) if user_id is not None else None
        self.job_id = str(job_id)
        self.api_url = api_url.rstrip("/")
        self.ingest_key = ingest_key
        self._client = client

    async def _post(self, msg_type: str, data: Dict) -> Optional[int]:
        if not self.ingest_key:
            log.debug("PROGRESS_INGEST_KEY not set; skipping progress report", extra={"type": msg_type})
            return None

        body = {"userId": self.user_id, "type": msg_type, "data": data}
        headers = {"X-Progress-Key": self.ingest_key}
        url = f"{self.api_url}/internal/progress"
        try:
            if self._client is not None:
                resp = await self._client.post(url, json=body, headers=headers)
            else:
                async with httpx.AsyncClient(timeout=REQUEST_TIMEOUT) as client:
                    resp = await client.post(url, json=body, headers=headers)
            resp.raise_for_status()
            return int(resp.json().get("delivered", 0))
        except (httpx.HTTPError, ValueError, AttributeError, TypeError) as e:
            log.error("Failed to report progress", extra={"type": msg_type, "job_id": self.job_id, "error": str(e)})
            return None

    async def started(self, execution_id: Optional[str] = None) -> Optional[int]:
        event = JobStarted(job_id=self.job_id, execution_id=execution_id)
        return await self._post(event.type, event.payload())

    async def progress(
        self, current_page: int, max_pages: int, data_points: int, execution_id: Optional[str] = None
    ) -> Optional[int]:
        event = ScrapingProgress(
            job_id=self.job_id,
            current_page=current_page,
            max_pages=max_pages,
            data_points=data_points,
            execution_id=execution_id,
        )
        return await self._post(event.type, event.payload())

    async def completed(
        self,
        success: bool,
        execution_id: Optional[str] = None,
        pages_scraped: Optional[int] = None,
        data_points: Optional[int] = None,
    ) -> Optional[int]:
        event = JobCompleted(
            job_id=self.job_id,
            success=success,
            execution_id=execution_id,
            pages_scraped=pages_scraped,
            data_points=data_points,
        )
        return await self._post(event.type, event.payload())

    async def failed(self, error: str) -> Optional[int]:
        event = JobFailed(job_id=self.job_id, error=error or "Unknown error")
        return await self._post(event.type, event.payload())


__all__ = ["ProgressReporter"]

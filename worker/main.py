import asyncio
import logging
import os
import random
from typing import AsyncIterator, Dict, List, Optional

from dotenv import load_dotenv

from worker.progress_reporter import ProgressReporter

# Load `.env` for local/dev runs (override=True so updates take effect after restart).
load_dotenv(override=True)

# -------- CONFIG --------
TEST_JOB_ID = os.getenv("TEST_JOB_ID", "demo-job")
TEST_USER_ID = os.getenv("TEST_USER_ID") or None
TEST_MAX_PAGES = int(os.getenv("TEST_MAX_PAGES", "5"))
PAGE_DELAY = float(os.getenv("PAGE_DELAY", "1.0"))  # seconds between pages
# ------------------------

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
)
log = logging.getLogger("worker")


async def fake_pages(max_pages: int, delay: float = PAGE_DELAY) -> AsyncIterator[List[Dict]]:
    """Yield fake scraped rows page by page, pausing like a polite scraper would."""
    for page in range(1, max_pages + 1):
        if page > 1 and delay:
            await asyncio.sleep(delay)
        yield [
            {"title": f"Warehouse Operative {page}-{i}", "url": f"https://example.com/job/{page}/{i}"}
            for i in range(random.randint(3, 12))
        ]


async def run_job(
    reporter: ProgressReporter,
    pages: AsyncIterator[List[Dict]],
    max_pages: int,
    execution_id: Optional[str] = None,
) -> Dict:
    """
    Drive one job run: report start, one progress event per page, then completion.
    Any error while scraping is reported as job_failed.
    Returns a summary dict {success, pagesScraped, dataPoints, error}.
    """
    await reporter.started(execution_id=execution_id)

    pages_scraped = 0
    data_points = 0
    try:
        async for rows in pages:
            pages_scraped += 1
            data_points += len(rows)
            log.info("Scraping page", extra={"page": pages_scraped, "max_pages": max_pages})
            await reporter.progress(
                current_page=pages_scraped,
                max_pages=max_pages,
                data_points=data_points,
                execution_id=execution_id,
            )
    except Exception as e:
        log.exception("Scraping error", extra={"job_id": reporter.job_id, "error": str(e)})
        await reporter.failed(str(e) or "Unknown error")
        return {"success": False, "pagesScraped": pages_scraped, "dataPoints": data_points, "error": str(e)}

    await reporter.completed(
        success=True,
        execution_id=execution_id,
        pages_scraped=pages_scraped,
        data_points=data_points,
    )
    log.info("Job completed", extra={"job_id": reporter.job_id, "pages": pages_scraped, "data_points": data_points})
    return {"success": True, "pagesScraped": pages_scraped, "dataPoints": data_points, "error": None}


async def main():
    reporter = ProgressReporter(user_id=TEST_USER_ID, job_id=TEST_JOB_ID)
    await run_job(reporter, fake_pages(TEST_MAX_PAGES), TEST_MAX_PAGES, execution_id="demo-execution")


if __name__ == "__main__":
    asyncio.run(main())

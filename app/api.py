import asyncio
import contextlib
import os
import time
from contextlib import asynccontextmanager

from dotenv import load_dotenv

# Ensure .env values are loaded before app modules read their config,
# even if uvicorn is launched without `dotenv run`.
load_dotenv(override=True)

from fastapi import FastAPI, Request  # noqa: E402

from app.routes import progress  # noqa: E402
from core.progress.events import utc_timestamp  # noqa: E402
from core.progress.hub import hub  # noqa: E402

HEARTBEAT_INTERVAL = float(os.getenv("HEARTBEAT_INTERVAL", "30"))

_started_at = time.monotonic()


@asynccontextmanager
async def lifespan(app: FastAPI):
    heartbeat = asyncio.create_task(hub.run_heartbeat(HEARTBEAT_INTERVAL))
    try:
        yield
    finally:
        heartbeat.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await heartbeat


app = FastAPI(lifespan=lifespan)


app.include_router(progress.router)


@app.get("/health")
def health():
    return {
        "status": "OK",
        "timestamp": utc_timestamp(),
        "uptime": round(time.monotonic() - _started_at, 3),
    }


@app.middleware("http")
async def add_security_headers(request: Request, call_next):
    response = await call_next(request)
    response.headers.setdefault("X-Content-Type-Options", "nosniff")
    response.headers.setdefault("X-Frame-Options", "SAMEORIGIN")
    response.headers.setdefault(
        "Content-Security-Policy",
        "default-src 'self'; img-src 'self' data:; style-src 'self' 'unsafe-inline'; script-src 'self' 'unsafe-inline'; "
        "font-src 'self' data:; connect-src 'self' ws: wss:;",
    )
    return response

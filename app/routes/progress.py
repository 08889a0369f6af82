import logging
import os
from typing import Any, Dict, Optional

from fastapi import APIRouter, Header, HTTPException, WebSocket, WebSocketDisconnect
from pydantic import BaseModel, Field

from app.security import (
    allow_request,
    decode_socket_token,
    ingest_enabled,
    validate_ingest_key,
)
from core.progress.events import (
    PROGRESS_EVENT_TYPES,
    build_message,
    decode_frame,
    event_from_message,
)
from core.progress.hub import hub
from core.progress.notify import publish_event

AUTH_RATE_LIMIT = int(os.getenv("AUTH_RATE_LIMIT", "10"))
AUTH_RATE_WINDOW = 60  # seconds

log = logging.getLogger("progress.routes")

router = APIRouter()


class IngestEvent(BaseModel):
    user_id: Optional[str] = Field(default=None, alias="userId")
    type: str
    data: Dict[str, Any] = Field(default_factory=dict)


def _require_ingest_key(key: Optional[str]) -> None:
    if not ingest_enabled():
        raise HTTPException(status_code=503, detail="Progress ingest is not configured")
    if not validate_ingest_key(key):
        raise HTTPException(status_code=401, detail="Invalid progress key")


async def _handle_auth(client_id: str, msg: Dict, host: str) -> None:
    if not allow_request(f"ws-auth:{host}", limit=AUTH_RATE_LIMIT, window_seconds=AUTH_RATE_WINDOW):
        log.warning("Socket auth rate limited", extra={"client_id": client_id, "host": host})
        await hub.send(client_id, build_message("auth_error", {"error": "Too many attempts"}))
        return

    token = msg.get("token")
    if token is None and isinstance(msg.get("data"), dict):
        token = msg["data"].get("token")

    try:
        user_id = decode_socket_token(token if isinstance(token, str) else None)
    except RuntimeError as e:
        log.error("Socket auth unavailable", extra={"client_id": client_id, "error": str(e)})
        await hub.send(client_id, build_message("auth_error", {"error": "Authentication unavailable"}))
        return

    if user_id is None:
        log.info("Invalid token for client", extra={"client_id": client_id})
        await hub.send(client_id, build_message("auth_error", {"error": "Invalid token"}))
        return

    hub.authenticate(client_id, user_id)
    await hub.send(client_id, build_message("auth_ok", {"userId": user_id}))


@router.websocket("/ws")
async def progress_socket(websocket: WebSocket):
    await websocket.accept()
    client_id = hub.register(websocket)
    host = websocket.client.host if websocket.client else "unknown"

    try:
        while True:
            message = await websocket.receive()
            if message["type"] == "websocket.disconnect":
                break

            raw = message.get("text")
            if raw is None:
                raw = message.get("bytes") or b""
            msg = decode_frame(raw)
            if msg is None:
                log.info("Invalid message from client", extra={"client_id": client_id})
                continue

            msg_type = msg["type"]
            if msg_type == "auth":
                await _handle_auth(client_id, msg, host)
            elif msg_type == "pong":
                hub.mark_alive(client_id)
    except WebSocketDisconnect:
        pass
    finally:
        hub.unregister(client_id)


@router.post("/internal/progress")
async def ingest_progress(
    event: IngestEvent,
    x_progress_key: Optional[str] = Header(default=None),
):
    """Accept a progress event from a scraping worker and fan it out to watchers."""
    _require_ingest_key(x_progress_key)

    if event.type not in PROGRESS_EVENT_TYPES:
        raise HTTPException(status_code=422, detail=f"Unsupported event type: {event.type}")

    typed = event_from_message({"type": event.type, "data": event.data})
    if typed is None:
        raise HTTPException(status_code=422, detail="Invalid progress payload")

    delivered = await publish_event(event.user_id, typed, hub=hub)

    log.info(
        "Progress event published",
        extra={"type": typed.type, "job_id": typed.job_id, "delivered": delivered},
    )
    return {"delivered": delivered}


@router.get("/internal/clients")
def list_clients(x_progress_key: Optional[str] = Header(default=None)):
    _require_ingest_key(x_progress_key)
    return {"clients": hub.connected_clients()}

"""
Client side of the progress socket: one connection per watched job.
"""
from __future__ import annotations

import asyncio
import json
import logging
import os
from typing import Callable, Optional

import websockets
from websockets.exceptions import WebSocketException

from core.progress.events import (
    ProgressEvent,
    decode_frame,
    event_from_message,
    is_terminal_event,
)

PROGRESS_WS_URL = os.getenv("PROGRESS_WS_URL", "ws://localhost:5001/ws")
MAX_RETRIES = int(os.getenv("PROGRESS_MAX_RETRIES", "5"))
BACKOFF_BASE = float(os.getenv("PROGRESS_BACKOFF_BASE", "1.0"))
BACKOFF_MAX = float(os.getenv("PROGRESS_BACKOFF_MAX", "30.0"))

log = logging.getLogger("progress.channel")


class ProgressChannel:
    """
    Reads frames from the progress socket and hands events for one job id
    to `on_event`. Reconnects with exponential backoff; gives up after
    `max_retries` consecutive failed attempts and calls `on_connection_lost`.
    """

    def __init__(
        self,
        job_id: str,
        on_event: Callable[[ProgressEvent], None],
        url: str = PROGRESS_WS_URL,
        token: Optional[str] = None,
        max_retries: int = MAX_RETRIES,
        backoff_base: float = BACKOFF_BASE,
        backoff_max: float = BACKOFF_MAX,
        on_connection_lost: Optional[Callable[[], None]] = None,
        close_on_terminal: bool = False,
        connect=None,
        sleep=None,
    ):
        self.job_id = str(job_id)
        self.on_event = on_event
        self.url = url
        self.token = token
        self.max_retries = max(0, max_retries)
        self.backoff_base = backoff_base
        self.backoff_max = backoff_max
        self.on_connection_lost = on_connection_lost
        self.close_on_terminal = close_on_terminal

        self.connected = False
        self.closed = False
        self._ws = None
        self._connect = connect or websockets.connect
        self._sleep = sleep or asyncio.sleep

    def backoff_delay(self, attempt: int) -> float:
        return min(self.backoff_base * (2 ** attempt), self.backoff_max)

    async def run(self) -> None:
        failures = 0
        while not self.closed:
            try:
                async with self._connect(self.url) as ws:
                    self._ws = ws
                    if self.closed:
                        break
                    failures = 0
                    self.connected = True
                    log.info("WebSocket connected", extra={"url": self.url, "job_id": self.job_id})

                    if self.token:
                        await ws.send(json.dumps({"type": "auth", "token": self.token}))

                    async for raw in ws:
                        if self.closed:
                            break
                        await self._handle_frame(ws, raw)
                        if self.closed:
                            break
            except (OSError, asyncio.TimeoutError, WebSocketException) as e:
                log.warning("WebSocket error", extra={"url": self.url, "error": str(e)})
            finally:
                self._ws = None
                if self.connected:
                    log.info("WebSocket disconnected", extra={"url": self.url, "job_id": self.job_id})
                self.connected = False

            if self.closed:
                break

            if failures >= self.max_retries:
                log.error(
                    "Giving up on progress socket",
                    extra={"url": self.url, "job_id": self.job_id, "attempts": failures},
                )
                if self.on_connection_lost is not None:
                    self.on_connection_lost()
                break

            delay = self.backoff_delay(failures)
            failures += 1
            log.info("Reconnecting", extra={"attempt": failures, "delay": delay})
            await self._sleep(delay)

    async def _handle_frame(self, ws, raw) -> None:
        msg = decode_frame(raw)
        if msg is None:
            return

        msg_type = msg["type"]
        if msg_type == "ping":
            await ws.send(json.dumps({"type": "pong"}))
            return
        if msg_type == "auth_error":
            log.warning("Socket authentication rejected", extra={"data": msg.get("data")})
            return

        event = event_from_message(msg)
        if event is None or event.job_id != self.job_id:
            return

        self.on_event(event)
        if self.close_on_terminal and is_terminal_event(event):
            self.closed = True

    async def close(self) -> None:
        """Stop reconnecting and close the socket if one is open. Safe to call twice."""
        self.closed = True
        ws = self._ws
        if ws is not None:
            await ws.close()


__all__ = [
    "PROGRESS_WS_URL",
    "ProgressChannel",
]

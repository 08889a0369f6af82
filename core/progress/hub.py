"""
In-memory registry of progress sockets and per-user fan-out.
"""
from __future__ import annotations

import asyncio
import json
import logging
import secrets
import string
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

from starlette.websockets import WebSocketState

log = logging.getLogger("progress.hub")

HEARTBEAT_INTERVAL = 30  # seconds
CLIENT_ID_LENGTH = 9

_ID_ALPHABET = string.ascii_lowercase + string.digits


@dataclass
class HubClient:
    ws: Any
    user_id: Optional[str] = None
    is_alive: bool = True


def _is_open(ws) -> bool:
    return (
        getattr(ws, "client_state", WebSocketState.CONNECTED) == WebSocketState.CONNECTED
        and getattr(ws, "application_state", WebSocketState.CONNECTED) == WebSocketState.CONNECTED
    )


class ConnectionHub:
    """
    Tracks accepted sockets by a short random client id.
    All methods are called from the server's event loop; no locking needed.
    """

    def __init__(self):
        self._clients: Dict[str, HubClient] = {}

    def __len__(self) -> int:
        return len(self._clients)

    def _new_client_id(self) -> str:
        while True:
            client_id = "".join(secrets.choice(_ID_ALPHABET) for _ in range(CLIENT_ID_LENGTH))
            if client_id not in self._clients:
                return client_id

    def register(self, ws) -> str:
        client_id = self._new_client_id()
        self._clients[client_id] = HubClient(ws=ws)
        log.info("WebSocket client connected", extra={"client_id": client_id})
        return client_id

    def unregister(self, client_id: str) -> None:
        if self._clients.pop(client_id, None) is not None:
            log.info("WebSocket client disconnected", extra={"client_id": client_id})

    def get(self, client_id: str) -> Optional[HubClient]:
        return self._clients.get(client_id)

    def authenticate(self, client_id: str, user_id: str) -> bool:
        """Bind a user id to a connected client. Returns False if the client is gone."""
        client = self._clients.get(client_id)
        if client is None:
            return False
        client.user_id = str(user_id)
        log.info("Client authenticated", extra={"client_id": client_id, "user_id": client.user_id})
        return True

    def mark_alive(self, client_id: str) -> None:
        client = self._clients.get(client_id)
        if client is not None:
            client.is_alive = True

    async def send(self, client_id: str, message: Dict) -> bool:
        """Send one message to one client; drops the client if it is closed or the send fails."""
        client = self._clients.get(client_id)
        if client is None:
            return False
        if not _is_open(client.ws):
            self._clients.pop(client_id, None)
            return False
        try:
            await client.ws.send_text(json.dumps(message))
        except Exception as e:
            log.warning("Dropping client after failed send", extra={"client_id": client_id, "error": str(e)})
            self._clients.pop(client_id, None)
            return False
        return True

    async def broadcast_to_user(self, user_id: str, message: Dict) -> int:
        """Send to every authenticated socket of one user. Returns number of deliveries."""
        user_id = str(user_id)
        targets = [cid for cid, c in list(self._clients.items()) if c.user_id == user_id]
        delivered = 0
        for client_id in targets:
            if await self.send(client_id, message):
                delivered += 1
        return delivered

    async def broadcast_to_all(self, message: Dict) -> int:
        delivered = 0
        for client_id in list(self._clients):
            if await self.send(client_id, message):
                delivered += 1
        return delivered

    async def sweep(self) -> List[str]:
        """
        One heartbeat round: close clients that did not answer the previous ping,
        then ping the rest. Returns the ids that were dropped.
        """
        dropped: List[str] = []
        for client_id, client in list(self._clients.items()):
            if not client.is_alive:
                dropped.append(client_id)
                self._clients.pop(client_id, None)
                try:
                    await client.ws.close(code=1001)
                except Exception as e:
                    log.debug("Close after missed heartbeat failed", extra={"client_id": client_id, "error": str(e)})
                continue

            client.is_alive = False
            await self.send(client_id, {"type": "ping"})

        if dropped:
            log.info("Dropped unresponsive clients", extra={"count": len(dropped)})
        return dropped

    async def run_heartbeat(self, interval: float = HEARTBEAT_INTERVAL) -> None:
        while True:
            await asyncio.sleep(interval)
            try:
                await self.sweep()
            except Exception as e:
                log.exception("Heartbeat sweep failed", extra={"error": str(e)})

    def connected_clients(self) -> List[Dict]:
        return [
            {"id": cid, "userId": c.user_id, "isAlive": c.is_alive}
            for cid, c in self._clients.items()
        ]


# Shared hub for the API process.
hub = ConnectionHub()


__all__ = [
    "HEARTBEAT_INTERVAL",
    "HubClient",
    "ConnectionHub",
    "hub",
]

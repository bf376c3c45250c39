"""Fan-out of registry snapshots to every connected client.

Each collection is published whole, never as a diff, and independently of
the other two.  Clients must tolerate short-lived inconsistencies between
collections (a connection that names a user not yet delivered).
"""

from __future__ import annotations

import asyncio
import logging
import time
from typing import Any, Protocol

logger = logging.getLogger(__name__)

DEVICE_UPDATE = "device-update"
USER_UPDATE = "user-update"
CONNECTION_UPDATE = "connection-update"
USER_REGISTERED = "user-registered"

_EVENTS = {
    "device": DEVICE_UPDATE,
    "user": USER_UPDATE,
    "connection": CONNECTION_UPDATE,
}


class MessageSink(Protocol):
    async def send_json(self, data: Any) -> None: ...


class ClientConnection:
    """A connected push-channel client."""

    def __init__(self, sink: MessageSink, session_id: str) -> None:
        self.sink = sink
        self.session_id = session_id
        self.connected_at = time.time()

    async def send(self, message: dict) -> None:
        await self.sink.send_json(message)

    async def send_event(self, event: str, data: Any) -> None:
        await self.send({"type": event, "data": data})


class BroadcastGateway:
    """Publishes collection snapshots to all connected sessions."""

    def __init__(self) -> None:
        self._clients: dict[str, ClientConnection] = {}

    def add(self, session_id: str, sink: MessageSink) -> ClientConnection:
        client = ClientConnection(sink, session_id)
        self._clients[session_id] = client
        return client

    def remove(self, session_id: str) -> None:
        self._clients.pop(session_id, None)

    def get(self, session_id: str) -> ClientConnection | None:
        return self._clients.get(session_id)

    @property
    def client_count(self) -> int:
        return len(self._clients)

    async def publish(self, kind: str, payload: list[dict]) -> None:
        """Send *payload* as the full ``kind`` collection to every client.

        *kind* is ``"device"``, ``"user"`` or ``"connection"``.  A client
        whose send fails is dropped; the others still receive the update.
        """
        event = _EVENTS[kind]
        clients = list(self._clients.values())
        if not clients:
            return
        results = await asyncio.gather(
            *(c.send_event(event, payload) for c in clients),
            return_exceptions=True,
        )
        for client, result in zip(clients, results):
            if isinstance(result, Exception):
                logger.warning(
                    "Dropping session %s after failed %s: %s",
                    client.session_id, event, result,
                )
                self.remove(client.session_id)

    async def send_snapshot(self, session_id: str, snapshot: dict[str, list[dict]]) -> None:
        """Send every collection in *snapshot* to one session."""
        client = self._clients.get(session_id)
        if client is None:
            return
        for kind, payload in snapshot.items():
            await client.send_event(_EVENTS[kind], payload)

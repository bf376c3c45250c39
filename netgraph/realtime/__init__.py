"""netgraph.realtime — push-channel sessions and broadcasts."""

from __future__ import annotations

from netgraph.realtime.broadcast import BroadcastGateway, ClientConnection
from netgraph.realtime.sessions import SessionTracker

__all__ = [
    "BroadcastGateway",
    "ClientConnection",
    "SessionTracker",
]

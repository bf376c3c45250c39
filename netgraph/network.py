"""Network service — the object HTTP and WebSocket handlers talk to.

Wires the entity registry, admission engine, session tracker, broadcast
gateway and network probe together.  Every registry mutation below happens
in plain synchronous code between two ``await`` points, so on the event
loop it is atomic with respect to other requests; snapshots for broadcast
are taken in the same step as the mutation they describe.
"""

from __future__ import annotations

import asyncio
import logging

from netgraph.config import ServerConfig
from netgraph.errors import AdmissionDenied, NotFoundError
from netgraph.probe.base import NetworkProbe
from netgraph.realtime.broadcast import USER_REGISTERED, BroadcastGateway, MessageSink
from netgraph.realtime.sessions import SessionTracker
from netgraph.registry.admission import AdmissionEngine
from netgraph.registry.enrichment import session_device
from netgraph.registry.models import (
    Connection,
    ConnectionTest,
    ConnectionType,
    Device,
    Metrics,
    User,
)
from netgraph.registry.store import EntityRegistry

logger = logging.getLogger(__name__)

ALL_KINDS = ("device", "user", "connection")


class NetworkService:
    """Owns one registry and everything that reads or mutates it."""

    def __init__(
        self,
        probe: NetworkProbe,
        config: ServerConfig | None = None,
        registry: EntityRegistry | None = None,
        admission: AdmissionEngine | None = None,
        sessions: SessionTracker | None = None,
        gateway: BroadcastGateway | None = None,
    ) -> None:
        self.config = config or ServerConfig()
        self.probe = probe
        self.registry = registry or EntityRegistry(
            merge_users_by_name=self.config.merge_users_by_name,
        )
        self.admission = admission or AdmissionEngine()
        self.sessions = sessions or SessionTracker()
        self.gateway = gateway or BroadcastGateway()

    # ── Snapshots ──────────────────────────────────────────────────

    def snapshot(self, kind: str) -> list[dict]:
        if kind == "device":
            return [d.to_dict() for d in self.registry.list_devices()]
        if kind == "user":
            return [u.to_dict() for u in self.registry.list_users()]
        if kind == "connection":
            return [c.to_dict() for c in self.registry.list_connections()]
        raise ValueError(f"Unknown collection: {kind}")

    async def _publish(self, *kinds: str) -> None:
        payloads = [(kind, self.snapshot(kind)) for kind in kinds]
        for kind, payload in payloads:
            await self.gateway.publish(kind, payload)

    # ── Discovery ──────────────────────────────────────────────────

    async def scan(self) -> list[Device]:
        """Scan the LAN, merge what was found and return the merged records."""
        candidates = await self.probe.scan()
        merged = self.registry.upsert_devices(candidates)
        logger.info("Scan merged %d device(s), %d known", len(merged), len(self.registry.list_devices()))
        await self._publish("device")
        return merged

    async def device_metrics(self, device_id: str) -> Metrics:
        device = self.registry.get_device(device_id)
        target_ip = device.ip if device is not None and device.has_ip() else None
        return await self.probe.measure(target_ip)

    async def users_with_metrics(self) -> list[User]:
        """Current users, each annotated with best-effort live metrics."""
        users = self.registry.list_users()
        results = await asyncio.gather(
            *(self.probe.measure(u.client_ip) for u in users),
            return_exceptions=True,
        )
        for user, result in zip(users, results):
            if isinstance(result, Exception):
                logger.warning("Metrics for user %s unavailable: %s", user.id, result)
                result = Metrics.unavailable()
            user.network_metrics = result
        return users

    # ── Connections ────────────────────────────────────────────────

    def _require_entity(self, entity_id: str) -> None:
        if self.registry.get_user(entity_id) is None and self.registry.get_device(entity_id) is None:
            raise NotFoundError("entity", entity_id)

    async def connect(
        self,
        source_id: str,
        target_id: str,
        connection_type: ConnectionType,
    ) -> Connection:
        """Admit and create a connection between two known entities.

        Raises:
            NotFoundError:    either endpoint is unknown.
            AdmissionDenied:  an admission rule refused the link.
        """
        self._require_entity(source_id)
        self._require_entity(target_id)

        decision = self.admission.can_connect(source_id, target_id, connection_type, self.registry)
        if not decision.allowed:
            logger.warning(
                "Refused %s connection %s -> %s: %s",
                connection_type.value, source_id, target_id, decision.reason,
            )
            raise AdmissionDenied(decision.reason)
        conn = self.registry.add_connection(source_id, target_id, connection_type)

        await self._publish("connection")
        return conn

    async def remove_connection(self, connection_id: str) -> None:
        self.registry.remove_connection(connection_id)
        await self._publish("connection")

    def _endpoint_ip(self, entity_id: str) -> str | None:
        device = self.admission.resolve_device(entity_id, self.registry)
        if device is not None and device.has_ip():
            return device.ip
        return None

    async def test_connection(self, connection_id: str) -> ConnectionTest:
        """Probe both ends of a connection and store their averaged metrics.

        A null field on either side counts as zero in the average.
        """
        conn = self.registry.get_connection(connection_id)
        if conn is None:
            raise NotFoundError("connection", connection_id)

        source_metrics, target_metrics = await asyncio.gather(
            self.probe.measure(self._endpoint_ip(conn.source_id)),
            self.probe.measure(self._endpoint_ip(conn.target_id)),
        )
        result = ConnectionTest(metrics=source_metrics.averaged_with(target_metrics))
        # The connection may have been removed while the probes ran.
        self.registry.record_test(connection_id, result)

        await self._publish("connection")
        return result

    # ── Sessions ───────────────────────────────────────────────────

    async def open_session(self, session_id: str, sink: MessageSink) -> None:
        """Track a new push-channel client and send it the full state."""
        self.gateway.add(session_id, sink)
        snapshot = {kind: self.snapshot(kind) for kind in ALL_KINDS}
        await self.gateway.send_snapshot(session_id, snapshot)

    async def register_user(
        self,
        session_id: str,
        user_id: str | None = None,
        name: str | None = None,
        client_ip: str | None = None,
        user_agent: str | None = None,
    ) -> User:
        name = (name or "").strip() or self.registry.default_user_name()
        user = self.registry.upsert_user(User(id=user_id or "", name=name, client_ip=client_ip))
        previous = self.sessions.user_for(session_id)
        switched = previous is not None and previous != user.id
        self.sessions.attach(session_id, user.id)
        if switched:
            logger.info("Session %s switched from user %s to %s", session_id, previous, user.id)
            self.registry.remove_user_session(previous)
        self.registry.upsert_device(session_device(user, self.registry, user_agent))

        client = self.gateway.get(session_id)
        if client is not None:
            await client.send({"type": USER_REGISTERED, "user": user.to_dict()})
        if switched:
            await self._publish(*ALL_KINDS)
        else:
            await self._publish("user", "device")
        return user

    async def close_session(self, session_id: str) -> None:
        """Tear down a client: take its user offline, reset if nobody is left."""
        self.gateway.remove(session_id)
        user_id = self.sessions.detach(session_id)
        if user_id is None:
            return
        if self.registry.remove_user_session(user_id):
            self.sessions.clear()
        await self._publish(*ALL_KINDS)

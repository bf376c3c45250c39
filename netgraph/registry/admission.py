"""Connection admission rules.

Decides whether a P2P, LAN or WAN link may be created between two entities
given the connections that already exist.  The engine only reads the
registry; inserting the approved connection is the caller's job.

Rules, in order:

  P2P  — each participant may be in at most one P2P link.
  LAN  — both ends must share a /24 prefix, or both be wired.
  WAN  — no locality rule; refused only if a WAN link already joins the pair.
  P2P and LAN are also refused when *any* link already joins the pair.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

from netgraph.registry.models import Connection, ConnectionType, Device, user_device_id
from netgraph.registry.store import EntityRegistry

logger = logging.getLogger(__name__)

P2P_LIMIT = "P2P connections are limited to 2 users only"
LAN_NO_NETWORK_INFO = "Cannot determine network information for LAN connection"
LAN_DIFFERENT_NETWORK = "LAN connections are only allowed between users on the same network"
WAN_EXISTS = "A WAN connection already exists between these users"
ALREADY_CONNECTED = "Connection already exists between these users"
SELF_CONNECTION = "Cannot connect an entity to itself"


@dataclass(frozen=True)
class AdmissionDecision:
    allowed: bool
    reason: str = ""

    @classmethod
    def allow(cls) -> AdmissionDecision:
        return cls(True)

    @classmethod
    def deny(cls, reason: str) -> AdmissionDecision:
        return cls(False, reason)


def subnet_prefix(ip: str | None) -> str | None:
    """First three dotted components of an IPv4 address (its /24)."""
    if not ip:
        return None
    parts = ip.split(".")
    if len(parts) != 4 or not all(p.isdigit() for p in parts):
        return None
    return ".".join(parts[:3])


def locality_compatible(a: Device, b: Device) -> bool:
    prefix_a, prefix_b = subnet_prefix(a.ip), subnet_prefix(b.ip)
    if prefix_a is not None and prefix_a == prefix_b:
        return True
    return a.is_ethernet and b.is_ethernet


class AdmissionEngine:
    """Evaluates proposed connections against the current registry."""

    def can_connect(
        self,
        source_id: str,
        target_id: str,
        connection_type: ConnectionType,
        registry: EntityRegistry,
    ) -> AdmissionDecision:
        if source_id == target_id:
            return AdmissionDecision.deny(SELF_CONNECTION)

        connections = registry.list_connections()

        if connection_type == ConnectionType.P2P:
            if any(
                c.type == ConnectionType.P2P and (c.involves(source_id) or c.involves(target_id))
                for c in connections
            ):
                return AdmissionDecision.deny(P2P_LIMIT)

        elif connection_type == ConnectionType.LAN:
            source = self.resolve_device(source_id, registry)
            target = self.resolve_device(target_id, registry)
            if source is None or target is None:
                return AdmissionDecision.deny(LAN_NO_NETWORK_INFO)
            if not locality_compatible(source, target):
                return AdmissionDecision.deny(LAN_DIFFERENT_NETWORK)

        elif connection_type == ConnectionType.WAN:
            if _linked(connections, source_id, target_id, ConnectionType.WAN):
                return AdmissionDecision.deny(WAN_EXISTS)
            return AdmissionDecision.allow()

        if _linked(connections, source_id, target_id):
            return AdmissionDecision.deny(ALREADY_CONNECTED)
        return AdmissionDecision.allow()

    @staticmethod
    def resolve_device(entity_id: str, registry: EntityRegistry) -> Device | None:
        """The device record that carries network facts for *entity_id*.

        A device id resolves to itself.  A user resolves to its session
        device, or failing that to whichever device shares its client IP.
        A device without a usable IP resolves to nothing, wired or not.
        """
        device = registry.get_device(entity_id)
        if device is None:
            user = registry.get_user(entity_id)
            if user is None:
                return None
            device = registry.get_device(user_device_id(user.id))
            if device is None:
                device = registry.find_device_by_ip(user.client_ip)
        if device is None:
            return None
        if not device.has_ip():
            return None
        return device


def _linked(
    connections: list[Connection],
    a: str,
    b: str,
    connection_type: ConnectionType | None = None,
) -> bool:
    return any(
        c.links(a, b) and (connection_type is None or c.type == connection_type)
        for c in connections
    )

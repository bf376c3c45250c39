"""Registry records: devices, users, connections and probe metrics.

Records are plain dataclasses.  ``to_dict()`` produces the camelCase wire
shape sent to browser clients; the registry never hands out its own
instances, only copies (see :meth:`EntityRegistry.list_devices`).
"""

from __future__ import annotations

import dataclasses
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any

UNKNOWN = "unknown"  # placeholder for an unresolved ip / mac

USER_DEVICE_PREFIX = "device-user-"
SCAN_ANCHOR = "scan"


def user_anchor(user_id: str) -> str:
    return f"user:{user_id}"


def user_device_id(user_id: str) -> str:
    """Id of the synthetic device a browser session registers for *user_id*."""
    return f"{USER_DEVICE_PREFIX}{user_id}"


def utc_now() -> str:
    return datetime.now(timezone.utc).isoformat()


# ──────────────────────────────────────────────────────────────────
# Enumerations
# ──────────────────────────────────────────────────────────────────


class DeviceType(str, Enum):
    COMPUTER = "computer"
    ROUTER = "router"
    SMARTPHONE = "smartphone"
    IOT = "iot"
    GAMING = "gaming"
    OTHER = "other"


class Status(str, Enum):
    ONLINE = "online"
    OFFLINE = "offline"


class ConnectionType(str, Enum):
    P2P = "P2P"
    LAN = "LAN"
    WAN = "WAN"


# ──────────────────────────────────────────────────────────────────
# Metrics
# ──────────────────────────────────────────────────────────────────

METRIC_FIELDS = ("upload_speed", "download_speed", "latency", "packet_loss", "throughput")

_CAMEL = {
    "upload_speed": "uploadSpeed",
    "download_speed": "downloadSpeed",
    "latency": "latency",
    "packet_loss": "packetLoss",
    "throughput": "throughput",
}


@dataclass(frozen=True)
class Metrics:
    """Best-effort network measurements.  ``None`` means the probe failed."""

    upload_speed: float | None = None    # Mbit/s
    download_speed: float | None = None  # Mbit/s
    latency: float | None = None         # ms
    packet_loss: float | None = None     # percent
    throughput: float | None = None      # Mbit/s

    @classmethod
    def unavailable(cls) -> Metrics:
        return cls()

    def is_empty(self) -> bool:
        return all(getattr(self, name) is None for name in METRIC_FIELDS)

    def merged(self, other: Metrics) -> Metrics:
        """Fill this result's null fields from *other*."""
        values = {
            name: getattr(self, name) if getattr(self, name) is not None else getattr(other, name)
            for name in METRIC_FIELDS
        }
        return Metrics(**values)

    def averaged_with(self, other: Metrics) -> Metrics:
        """Mean of two sides, with a null side counted as zero."""
        values = {
            name: ((getattr(self, name) or 0.0) + (getattr(other, name) or 0.0)) / 2
            for name in METRIC_FIELDS
        }
        return Metrics(**values)

    def to_dict(self) -> dict[str, float | None]:
        return {_CAMEL[name]: getattr(self, name) for name in METRIC_FIELDS}


@dataclass(frozen=True)
class ConnectionTest:
    """Result of a connection quality test."""

    metrics: Metrics
    timestamp: str = field(default_factory=utc_now)

    def to_dict(self) -> dict[str, Any]:
        d: dict[str, Any] = self.metrics.to_dict()
        d["timestamp"] = self.timestamp
        return d


# ──────────────────────────────────────────────────────────────────
# Entities
# ──────────────────────────────────────────────────────────────────


@dataclass
class Device:
    id: str
    name: str
    ip: str = UNKNOWN
    mac: str = UNKNOWN
    type: DeviceType = DeviceType.OTHER
    is_ethernet: bool = False
    status: Status = Status.ONLINE
    is_website_user: bool = False
    # What keeps this device alive: "scan" and/or "user:<id>".  Not sent to clients.
    anchors: frozenset[str] = frozenset()

    def copy(self) -> Device:
        return dataclasses.replace(self)

    def has_ip(self) -> bool:
        return bool(self.ip) and self.ip != UNKNOWN

    def has_mac(self) -> bool:
        return bool(self.mac) and self.mac.lower() != UNKNOWN

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "ip": self.ip,
            "mac": self.mac,
            "type": self.type.value,
            "isEthernet": self.is_ethernet,
            "status": self.status.value,
            "isWebsiteUser": self.is_website_user,
        }


@dataclass
class User:
    id: str
    name: str
    status: Status = Status.ONLINE
    client_ip: str | None = None
    network_metrics: Metrics | None = None

    def copy(self) -> User:
        return dataclasses.replace(self)

    def to_dict(self) -> dict[str, Any]:
        d: dict[str, Any] = {
            "id": self.id,
            "name": self.name,
            "status": self.status.value,
        }
        if self.client_ip is not None:
            d["clientIP"] = self.client_ip
        if self.network_metrics is not None:
            d["networkMetrics"] = self.network_metrics.to_dict()
        return d


@dataclass
class Connection:
    id: str
    source_id: str
    target_id: str
    type: ConnectionType
    status: str = "active"
    established: str = field(default_factory=utc_now)
    last_test: ConnectionTest | None = None

    def copy(self) -> Connection:
        return dataclasses.replace(self)

    def links(self, a: str, b: str) -> bool:
        """True when this connection joins *a* and *b*, in either direction."""
        return {self.source_id, self.target_id} == {a, b}

    def involves(self, entity_id: str) -> bool:
        return entity_id in (self.source_id, self.target_id)

    def to_dict(self) -> dict[str, Any]:
        d: dict[str, Any] = {
            "id": self.id,
            "sourceId": self.source_id,
            "targetId": self.target_id,
            "type": self.type.value,
            "status": self.status,
            "established": self.established,
        }
        if self.last_test is not None:
            d["lastTest"] = self.last_test.to_dict()
        return d

"""netgraph.registry — the in-memory model and its rules.

Exports:
    Device, User, Connection, Metrics, ConnectionTest — records
    DeviceType, Status, ConnectionType                — enumerations
    EntityRegistry   — device / user / connection store with merge rules
    AdmissionEngine  — P2P / LAN / WAN admission rules
    is_generic_name, classify_device                  — naming heuristics
"""

from __future__ import annotations

from netgraph.registry.admission import AdmissionDecision, AdmissionEngine
from netgraph.registry.models import (
    Connection,
    ConnectionTest,
    ConnectionType,
    Device,
    DeviceType,
    Metrics,
    Status,
    User,
)
from netgraph.registry.naming import classify_device, is_generic_name
from netgraph.registry.store import EntityRegistry

__all__ = [
    "AdmissionDecision",
    "AdmissionEngine",
    "Connection",
    "ConnectionTest",
    "ConnectionType",
    "Device",
    "DeviceType",
    "EntityRegistry",
    "Metrics",
    "Status",
    "User",
    "classify_device",
    "is_generic_name",
]

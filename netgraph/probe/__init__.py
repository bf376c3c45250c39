"""netgraph.probe — external measurement and discovery tools.

Exports:
    NetworkProbe  — abstract interface the core depends on
    SystemProbe   — implementation shelling out to arp / ping / speedtest-cli
    ProbeCache    — keyed TTL cache with single-flight de-duplication
"""

from __future__ import annotations

from netgraph.probe.base import NetworkProbe
from netgraph.probe.cache import ProbeCache
from netgraph.probe.system import SystemProbe

__all__ = [
    "NetworkProbe",
    "ProbeCache",
    "SystemProbe",
]

"""Abstract network probe interface.

The registry core never shells out itself; it asks a :class:`NetworkProbe`
for measurements and scan candidates.  Tests substitute a fake.
"""

from __future__ import annotations

import abc

from netgraph.registry.models import Device, Metrics


class NetworkProbe(abc.ABC):
    """Source of network measurements and device scans."""

    @abc.abstractmethod
    async def measure(self, target_ip: str | None = None) -> Metrics:
        """Measure speed, latency and packet loss towards *target_ip*.

        Never raises for a failed or missing tool: unavailable fields are
        ``None``.  With no *target_ip* the host-level default target is used.
        """
        raise NotImplementedError

    @abc.abstractmethod
    async def scan(self) -> list[Device]:
        """Return candidate devices seen on the local network.

        Raises :class:`~netgraph.errors.ScanError` if the scan cannot run.
        """
        raise NotImplementedError

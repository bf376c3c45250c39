"""Probe implementation backed by OS tools.

  - ``speedtest-cli --simple``  upload / download / latency (host uplink)
  - ``ping -c N <host>``        packet loss, fallback latency
  - ``arp -a``                  neighbour table for device scans

Each tool runs under its own timeout.  For measurements a missing binary,
non-zero exit, timeout or unparseable output turns into ``None`` fields;
a scan that cannot run raises :class:`ScanError`.
"""

from __future__ import annotations

import asyncio
import logging

from netgraph.config import ServerConfig
from netgraph.errors import ProbeUnavailable, ScanError
from netgraph.probe.base import NetworkProbe
from netgraph.probe.cache import ProbeCache
from netgraph.probe.parsers import parse_arp, parse_ping, parse_speedtest
from netgraph.registry.models import SCAN_ANCHOR, Device, Metrics
from netgraph.registry.naming import classify_device
from netgraph.registry.store import new_device_id

logger = logging.getLogger(__name__)

BANDWIDTH_KEY = "bandwidth"


def _has_data(metrics: Metrics) -> bool:
    return not metrics.is_empty()


class SystemProbe(NetworkProbe):
    """Shells out to ``speedtest-cli``, ``ping`` and ``arp``."""

    def __init__(
        self,
        config: ServerConfig | None = None,
        cache: ProbeCache | None = None,
    ) -> None:
        self.config = config or ServerConfig()
        self.cache = cache or ProbeCache(ttl=self.config.probe_cache_ttl)

    # ------------------------------------------------------------------
    # Measurements
    # ------------------------------------------------------------------

    async def measure(self, target_ip: str | None = None) -> Metrics:
        host = target_ip or self.config.ping_host
        bandwidth, reachability = await asyncio.gather(
            self.cache.get_or_run(BANDWIDTH_KEY, self._speedtest, _has_data),
            self.cache.get_or_run(f"ping:{host}", lambda: self._ping(host), _has_data),
        )
        return bandwidth.merged(reachability)

    async def _speedtest(self) -> Metrics:
        try:
            output = await self._run_subprocess(
                ["speedtest-cli", "--simple"], timeout=self.config.probe_timeout,
            )
        except ProbeUnavailable as exc:
            logger.warning("Bandwidth probe unavailable: %s", exc)
            return Metrics.unavailable()
        values = parse_speedtest(output)
        return Metrics(
            upload_speed=values["upload_speed"],
            download_speed=values["download_speed"],
            latency=values["latency"],
            throughput=values["download_speed"],
        )

    async def _ping(self, host: str) -> Metrics:
        try:
            output = await self._run_subprocess(
                ["ping", "-c", str(self.config.ping_count), host],
                timeout=self.config.ping_timeout,
                check=False,  # exit status 1 still reports loss
            )
        except ProbeUnavailable as exc:
            logger.warning("Ping probe for %s unavailable: %s", host, exc)
            return Metrics.unavailable()
        values = parse_ping(output)
        return Metrics(packet_loss=values["packet_loss"], latency=values["latency"])

    # ------------------------------------------------------------------
    # Scan
    # ------------------------------------------------------------------

    async def scan(self) -> list[Device]:
        try:
            output = await self._run_subprocess(["arp", "-a"], timeout=self.config.scan_timeout)
        except ProbeUnavailable as exc:
            raise ScanError(str(exc)) from exc

        devices = []
        for entry in parse_arp(output):
            resolved = entry.hostname not in ("?", "")
            devices.append(Device(
                id=new_device_id(),
                name=entry.hostname if resolved else entry.ip,
                ip=entry.ip,
                mac=entry.mac,
                type=classify_device(entry.hostname, entry.ip, entry.mac),
                is_ethernet=entry.wired,
                anchors=frozenset({SCAN_ANCHOR}),
            ))
        logger.info("ARP scan found %d device(s)", len(devices))
        return devices

    # ------------------------------------------------------------------
    # Subprocess helper
    # ------------------------------------------------------------------

    @staticmethod
    async def _run_subprocess(cmd: list[str], timeout: float, check: bool = True) -> str:
        """Run *cmd* and return its stdout.

        Raises :class:`ProbeUnavailable` if the binary is missing, the run
        exceeds *timeout* (the process is killed), or it exits non-zero
        while *check* is set.
        """
        try:
            proc = await asyncio.create_subprocess_exec(
                *cmd,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except OSError as exc:
            raise ProbeUnavailable(f"{cmd[0]} could not be started: {exc}") from exc

        try:
            stdout_bytes, stderr_bytes = await asyncio.wait_for(proc.communicate(), timeout=timeout)
        except asyncio.TimeoutError as exc:
            proc.kill()
            await proc.wait()
            raise ProbeUnavailable(f"{cmd[0]} timed out after {timeout:g}s") from exc

        if check and proc.returncode != 0:
            stderr = stderr_bytes.decode("utf-8", errors="replace")
            raise ProbeUnavailable(f"{cmd[0]} failed (rc={proc.returncode}): {stderr[:200]}")
        return stdout_bytes.decode("utf-8", errors="replace")

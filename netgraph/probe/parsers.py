"""Parsers for ``speedtest-cli --simple``, ``ping`` and ``arp -a`` output."""

from __future__ import annotations

import re
from dataclasses import dataclass

_PING_LINE = re.compile(r"Ping:\s*([\d.]+)\s*ms")
_DOWNLOAD_LINE = re.compile(r"Download:\s*([\d.]+)\s*Mbit/s")
_UPLOAD_LINE = re.compile(r"Upload:\s*([\d.]+)\s*Mbit/s")
_PACKET_LOSS = re.compile(r"([\d.]+)% packet loss")
# rtt min/avg/max/mdev = 9.1/12.3/20.4/3.2 ms   (Linux)
# round-trip min/avg/max/stddev = 9.1/12.3/20.4/3.2 ms   (macOS)
_RTT_SUMMARY = re.compile(r"min/avg/max/(?:mdev|stddev)\s*=\s*[\d.]+/([\d.]+)/")

# macOS:  host (192.168.1.5) at a4:83:e7:68:e2:30 on en0 ifscope [ethernet]
# Linux:  host (192.168.1.5) at a4:83:e7:68:e2:30 [ether] on eth0
_ARP_LINE = re.compile(
    r"^(?P<host>[\w\-.?]+) \((?P<ip>\d{1,3}(?:\.\d{1,3}){3})\) at (?P<mac>[0-9a-f]{1,2}(?::[0-9a-f]{1,2}){5})",
    re.IGNORECASE,
)
_WIRED_TAG = re.compile(r"\[ether(net)?\]", re.IGNORECASE)


def _round(value: float | None) -> float | None:
    return round(value, 2) if value is not None else None


def _first_float(pattern: re.Pattern[str], text: str) -> float | None:
    m = pattern.search(text)
    return _round(float(m.group(1))) if m else None


def parse_speedtest(output: str) -> dict[str, float | None]:
    """Extract latency, download and upload from ``speedtest-cli --simple``."""
    return {
        "latency": _first_float(_PING_LINE, output),
        "download_speed": _first_float(_DOWNLOAD_LINE, output),
        "upload_speed": _first_float(_UPLOAD_LINE, output),
    }


def parse_ping(output: str) -> dict[str, float | None]:
    """Extract packet loss and average round-trip time from ``ping``."""
    return {
        "packet_loss": _first_float(_PACKET_LOSS, output),
        "latency": _first_float(_RTT_SUMMARY, output),
    }


@dataclass
class ArpEntry:
    hostname: str
    ip: str
    mac: str
    wired: bool


def normalize_mac(mac: str) -> str:
    """Zero-pad each octet (macOS prints ``0:1a:...``) and lower-case."""
    return ":".join(part.zfill(2) for part in mac.lower().split(":"))


def parse_arp(output: str) -> list[ArpEntry]:
    """Parse ``arp -a`` into entries, one per IP, skipping incomplete rows."""
    entries: list[ArpEntry] = []
    seen: set[str] = set()
    for line in output.splitlines():
        m = _ARP_LINE.match(line.strip())
        if not m or m.group("ip") in seen:
            continue
        seen.add(m.group("ip"))
        entries.append(ArpEntry(
            hostname=m.group("host"),
            ip=m.group("ip"),
            mac=normalize_mac(m.group("mac")),
            wired=bool(_WIRED_TAG.search(line)),
        ))
    return entries

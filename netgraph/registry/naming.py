"""Name and type heuristics for devices and users.

Everything here is a pure function of its arguments so it can be swapped or
tested without touching the registry.
"""

from __future__ import annotations

import re

from netgraph.registry.models import DeviceType

# ──────────────────────────────────────────────────────────────────
# Generic (placeholder) names
# ──────────────────────────────────────────────────────────────────

_NUMERIC = re.compile(r"^\d+$")
_IP_SHAPE = re.compile(r"^\d{1,3}(\.\d{1,3}){3}$")
_PLACEHOLDERS = [
    re.compile(r"^device[-_ ]?\d+$", re.IGNORECASE),
    re.compile(r"^web user \d+$", re.IGNORECASE),
    re.compile(r"^unknown", re.IGNORECASE),
    re.compile(r"^(device|computer)$", re.IGNORECASE),
]
_USER_AGENT = re.compile(
    r"^mozilla/\d|applewebkit/|gecko/|chrome/\d|safari/\d|\(khtml", re.IGNORECASE
)

MIN_NAME_LENGTH = 3


def is_generic_name(name: str | None) -> bool:
    """True when *name* looks like a placeholder another source may replace."""
    if not name:
        return True
    name = name.strip()
    if len(name) < MIN_NAME_LENGTH:
        return True
    if _NUMERIC.match(name) or _IP_SHAPE.match(name):
        return True
    if any(p.match(name) for p in _PLACEHOLDERS):
        return True
    return bool(_USER_AGENT.search(name))


def pick_name(current: str, candidate: str | None) -> str:
    """Choose between an existing and an incoming display name.

    A specific name beats a generic one whichever side it comes from;
    otherwise the incoming name wins.
    """
    if not candidate:
        return current
    if is_generic_name(candidate) and not is_generic_name(current):
        return current
    return candidate


# ──────────────────────────────────────────────────────────────────
# Device type classification
# ──────────────────────────────────────────────────────────────────


def _token_prefix(*keywords: str) -> re.Pattern[str]:
    # keyword must start a hostname token: "ernests-macbook" is not a "nest"
    return re.compile(r"(?<![a-z0-9])(?:" + "|".join(keywords) + ")", re.IGNORECASE)


_GAMING = _token_prefix("xbox", "playstation", "ps4", "ps5", "nintendo", "steamdeck")
_SMARTPHONE = _token_prefix(
    "iphone", "android", "pixel", "galaxy", "samsung", "xiaomi", "huawei", "oneplus",
)
_COMPUTER = _token_prefix(
    "macbook", "imac", "mac", "ipad", "windows", "desktop", "laptop", "linux", "ubuntu",
    "surface", "pc",
)
_IOT = _token_prefix(
    "esp", "tasmota", "shelly", "nest", "echo", "alexa", "chromecast", "roku", "ring", "hue",
    "sonos", "tplink", "camera",
)
_PHONE_MAC_PREFIXES = ("a8:", "ac:")
_ROUTER_OCTETS = {"1", "254"}


def is_router_ip(ip: str | None) -> bool:
    if not ip or not _IP_SHAPE.match(ip):
        return False
    return ip.rsplit(".", 1)[1] in _ROUTER_OCTETS


def classify_device(hostname: str | None, ip: str | None, mac: str | None) -> DeviceType:
    """Guess a device type from what an ARP entry tells us."""
    if is_router_ip(ip):
        return DeviceType.ROUTER
    host = "" if hostname in (None, "?") else hostname
    if host and _GAMING.search(host):
        return DeviceType.GAMING
    if (host and _SMARTPHONE.search(host)) or (mac or "").lower().startswith(_PHONE_MAC_PREFIXES):
        return DeviceType.SMARTPHONE
    if host and _COMPUTER.search(host):
        return DeviceType.COMPUTER
    if host and _IOT.search(host):
        return DeviceType.IOT
    return DeviceType.COMPUTER if host else DeviceType.OTHER


# ──────────────────────────────────────────────────────────────────
# Browser user-agent hints
# ──────────────────────────────────────────────────────────────────

_UA_PLATFORMS: list[tuple[re.Pattern[str], str, DeviceType]] = [
    (re.compile(r"iphone", re.IGNORECASE), "iPhone", DeviceType.SMARTPHONE),
    (re.compile(r"ipad", re.IGNORECASE), "iPad", DeviceType.SMARTPHONE),
    (re.compile(r"android", re.IGNORECASE), "Android phone", DeviceType.SMARTPHONE),
    (re.compile(r"xbox", re.IGNORECASE), "Xbox", DeviceType.GAMING),
    (re.compile(r"playstation", re.IGNORECASE), "PlayStation", DeviceType.GAMING),
    (re.compile(r"nintendo", re.IGNORECASE), "Nintendo Switch", DeviceType.GAMING),
    (re.compile(r"cros", re.IGNORECASE), "Chromebook", DeviceType.COMPUTER),
    (re.compile(r"macintosh|mac os x", re.IGNORECASE), "Mac", DeviceType.COMPUTER),
    (re.compile(r"windows", re.IGNORECASE), "Windows PC", DeviceType.COMPUTER),
    (re.compile(r"linux", re.IGNORECASE), "Linux PC", DeviceType.COMPUTER),
]


def describe_user_agent(user_agent: str | None) -> tuple[str | None, DeviceType]:
    """Return a friendly platform name and device type for a browser UA.

    Unrecognised agents give ``(None, DeviceType.COMPUTER)``.
    """
    if user_agent:
        for pattern, name, device_type in _UA_PLATFORMS:
            if pattern.search(user_agent):
                return name, device_type
    return None, DeviceType.COMPUTER

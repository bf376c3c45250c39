"""Server configuration, read from ``NETGRAPH_*`` environment variables."""

from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Mapping

_TRUE = {"1", "true", "yes", "on"}


def _env_bool(env: Mapping[str, str], key: str, default: bool) -> bool:
    raw = env.get(key)
    if raw is None or raw.strip() == "":
        return default
    return raw.strip().lower() in _TRUE


@dataclass
class ServerConfig:
    """Runtime settings for the HTTP/WebSocket server and the probes."""

    host: str = "0.0.0.0"
    port: int = 3002
    log_level: str = "INFO"

    # Probe timeouts (seconds)
    probe_timeout: float = 60.0   # speedtest-cli
    ping_timeout: float = 20.0
    scan_timeout: float = 10.0    # arp -a

    ping_host: str = "google.com"
    ping_count: int = 10
    probe_cache_ttl: float = 300.0

    # Two registrations with the same display name are one user
    merge_users_by_name: bool = True

    @classmethod
    def from_env(cls, env: Mapping[str, str] | None = None) -> ServerConfig:
        env = os.environ if env is None else env
        defaults = cls()
        return cls(
            host=env.get("NETGRAPH_HOST", defaults.host),
            port=int(env.get("NETGRAPH_PORT", defaults.port)),
            log_level=env.get("NETGRAPH_LOG_LEVEL", defaults.log_level).upper(),
            probe_timeout=float(env.get("NETGRAPH_PROBE_TIMEOUT", defaults.probe_timeout)),
            ping_timeout=float(env.get("NETGRAPH_PING_TIMEOUT", defaults.ping_timeout)),
            scan_timeout=float(env.get("NETGRAPH_SCAN_TIMEOUT", defaults.scan_timeout)),
            ping_host=env.get("NETGRAPH_PING_HOST", defaults.ping_host),
            ping_count=int(env.get("NETGRAPH_PING_COUNT", defaults.ping_count)),
            probe_cache_ttl=float(env.get("NETGRAPH_PROBE_CACHE_TTL", defaults.probe_cache_ttl)),
            merge_users_by_name=_env_bool(
                env, "NETGRAPH_MERGE_USERS_BY_NAME", defaults.merge_users_by_name
            ),
        )

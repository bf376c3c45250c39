"""Keyed TTL cache with single-flight de-duplication for probe results."""

from __future__ import annotations

import asyncio
import logging
import time
from typing import Any, Awaitable, Callable

logger = logging.getLogger(__name__)


class ProbeCache:
    """Remember probe results per key for ``ttl`` seconds.

    While a probe for a key is running, further callers for the same key
    await that run instead of starting another.  In-flight probes are
    shielded: a caller that goes away does not cancel the probe for the
    others.
    """

    def __init__(
        self,
        ttl: float = 300.0,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.ttl = ttl
        self._clock = clock
        self._entries: dict[str, tuple[float, Any]] = {}
        self._inflight: dict[str, asyncio.Task] = {}

    def get(self, key: str) -> Any | None:
        entry = self._entries.get(key)
        if entry is None:
            return None
        stored_at, value = entry
        if self._clock() - stored_at >= self.ttl:
            del self._entries[key]
            return None
        return value

    def put(self, key: str, value: Any) -> None:
        self._entries[key] = (self._clock(), value)

    def clear(self) -> None:
        self._entries.clear()

    async def get_or_run(
        self,
        key: str,
        factory: Callable[[], Awaitable[Any]],
        cacheable: Callable[[Any], bool] = lambda _value: True,
    ) -> Any:
        cached = self.get(key)
        if cached is not None:
            logger.debug("Probe cache hit for %s", key)
            return cached

        task = self._inflight.get(key)
        if task is None:
            task = asyncio.ensure_future(self._run(key, factory, cacheable))
            self._inflight[key] = task
        return await asyncio.shield(task)

    async def _run(
        self,
        key: str,
        factory: Callable[[], Awaitable[Any]],
        cacheable: Callable[[Any], bool],
    ) -> Any:
        try:
            value = await factory()
            if cacheable(value):
                self.put(key, value)
            return value
        finally:
            self._inflight.pop(key, None)

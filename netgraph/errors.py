"""Error taxonomy shared by the registry, probe and HTTP layers."""

from __future__ import annotations


class NetgraphError(Exception):
    """Base error for netgraph operations."""


class NotFoundError(NetgraphError):
    """A referenced device, user or connection does not exist."""

    def __init__(self, kind: str, entity_id: str) -> None:
        self.kind = kind
        self.entity_id = entity_id
        super().__init__(f"{kind.capitalize()} not found: {entity_id}")


class AdmissionDenied(NetgraphError):
    """A proposed connection violates an admission rule."""

    def __init__(self, reason: str) -> None:
        self.reason = reason
        super().__init__(reason)


class ProbeUnavailable(NetgraphError):
    """An external measurement tool is missing, failed or timed out."""


class ScanError(NetgraphError):
    """The device scan could not run at all."""

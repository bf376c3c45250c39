"""In-memory entity registry: devices, users and connections.

The registry is an ordinary object owned by :class:`NetworkService` and
passed to whoever needs it.  All mutators are synchronous, so on the asyncio
event loop each one runs to completion before any other handler can observe
the collections.  Readers only ever receive copies.
"""

from __future__ import annotations

import logging
import uuid
from typing import Iterable

from netgraph.errors import NotFoundError
from netgraph.registry.models import (
    Connection,
    ConnectionTest,
    ConnectionType,
    Device,
    DeviceType,
    Status,
    User,
    user_anchor,
)
from netgraph.registry.naming import pick_name

logger = logging.getLogger(__name__)


def new_device_id() -> str:
    return f"device-{uuid.uuid4().hex[:12]}"


def new_user_id() -> str:
    return f"user-{uuid.uuid4().hex[:12]}"


def new_connection_id() -> str:
    return f"conn-{uuid.uuid4().hex}"


class EntityRegistry:
    """Owns the device, user and connection collections.

    Args:
        merge_users_by_name: When ``True`` (the default), a registration whose
            name matches an existing user is treated as that user
            reconnecting.  Distinct people with the same display name then
            share one identity; turn this off to key users by id only.
    """

    def __init__(self, merge_users_by_name: bool = True) -> None:
        self.merge_users_by_name = merge_users_by_name
        self._devices: dict[str, Device] = {}
        self._users: dict[str, User] = {}
        self._connections: dict[str, Connection] = {}

    # ------------------------------------------------------------------
    # Snapshots
    # ------------------------------------------------------------------

    def list_devices(self) -> list[Device]:
        return [d.copy() for d in self._devices.values()]

    def list_users(self) -> list[User]:
        return [u.copy() for u in self._users.values()]

    def list_connections(self) -> list[Connection]:
        return [c.copy() for c in self._connections.values()]

    def get_device(self, device_id: str) -> Device | None:
        device = self._devices.get(device_id)
        return device.copy() if device else None

    def get_user(self, user_id: str) -> User | None:
        user = self._users.get(user_id)
        return user.copy() if user else None

    def get_connection(self, connection_id: str) -> Connection | None:
        conn = self._connections.get(connection_id)
        return conn.copy() if conn else None

    def find_device_by_ip(self, ip: str | None) -> Device | None:
        device = _match_device(self._devices, Device(id="", name="", ip=ip or ""))
        return device.copy() if device else None

    def online_users(self) -> list[User]:
        return [u.copy() for u in self._users.values() if u.status == Status.ONLINE]

    def counts(self) -> dict[str, int]:
        return {
            "devices": len(self._devices),
            "users": len(self._users),
            "connections": len(self._connections),
        }

    # ------------------------------------------------------------------
    # Devices
    # ------------------------------------------------------------------

    def upsert_device(self, candidate: Device) -> Device:
        """Insert *candidate* or merge it into the device it duplicates.

        Lookup order: ``id``, then ``ip``, then ``mac`` (placeholder values
        never match).  Returns a copy of the stored record.
        """
        return _upsert_into(self._devices, candidate).copy()

    def upsert_devices(self, candidates: Iterable[Device]) -> list[Device]:
        """Merge a batch of devices atomically.

        The batch is applied to a working copy which replaces the live set
        only once every candidate has merged, so a failure part-way leaves
        the registry untouched.
        """
        working = {device_id: d.copy() for device_id, d in self._devices.items()}
        merged: list[Device] = []
        for candidate in candidates:
            record = _upsert_into(working, candidate)
            if all(record.id != m.id for m in merged):
                merged.append(record)
        self._devices = working
        return [m.copy() for m in merged]

    # ------------------------------------------------------------------
    # Users
    # ------------------------------------------------------------------

    def upsert_user(self, candidate: User) -> User:
        """Register a user, or bring a known one back online.

        Lookup order: ``id``, then exact ``name`` among all known users
        (online or offline) when name merging is enabled.  A new user keeps
        the candidate's id if it has one, otherwise gets a generated id.
        """
        existing = self._users.get(candidate.id) if candidate.id else None
        if existing is None and self.merge_users_by_name and candidate.name:
            existing = next(
                (u for u in self._users.values() if u.name == candidate.name), None
            )

        if existing is not None:
            existing.name = pick_name(existing.name, candidate.name)
            existing.status = Status.ONLINE
            if candidate.client_ip:
                existing.client_ip = candidate.client_ip
            logger.info("User %s (%s) is online", existing.id, existing.name)
            return existing.copy()

        user = candidate.copy()
        user.id = user.id or new_user_id()
        user.status = Status.ONLINE
        self._users[user.id] = user
        logger.info("Registered new user %s (%s)", user.id, user.name)
        return user.copy()

    def default_user_name(self) -> str:
        return f"Web User {len(self._users) + 1}"

    def remove_user_session(self, user_id: str) -> bool:
        """Take *user_id* offline and drop the devices only it anchored.

        Returns ``True`` when this left nobody online and the registry was
        reset.
        """
        user = self._users.get(user_id)
        if user is not None:
            user.status = Status.OFFLINE
            logger.info("User %s (%s) went offline", user.id, user.name)

        anchor = user_anchor(user_id)
        for device_id, device in list(self._devices.items()):
            if anchor not in device.anchors:
                continue
            device.anchors = device.anchors - {anchor}
            if not device.anchors:
                del self._devices[device_id]

        if not any(u.status == Status.ONLINE for u in self._users.values()):
            self.reset()
            return True
        return False

    def reset(self) -> None:
        self._devices.clear()
        self._users.clear()
        self._connections.clear()
        logger.info("All users offline, registry cleared")

    # ------------------------------------------------------------------
    # Connections
    # ------------------------------------------------------------------

    def add_connection(
        self,
        source_id: str,
        target_id: str,
        connection_type: ConnectionType,
    ) -> Connection:
        conn = Connection(
            id=new_connection_id(),
            source_id=source_id,
            target_id=target_id,
            type=connection_type,
        )
        self._connections[conn.id] = conn
        logger.info(
            "Connection %s established: %s -[%s]- %s",
            conn.id, source_id, connection_type.value, target_id,
        )
        return conn.copy()

    def remove_connection(self, connection_id: str) -> None:
        if self._connections.pop(connection_id, None) is None:
            raise NotFoundError("connection", connection_id)
        logger.info("Connection %s removed", connection_id)

    def record_test(self, connection_id: str, result: ConnectionTest) -> Connection:
        conn = self._connections.get(connection_id)
        if conn is None:
            raise NotFoundError("connection", connection_id)
        conn.last_test = result
        return conn.copy()


# ──────────────────────────────────────────────────────────────────
# Device merge helpers
# ──────────────────────────────────────────────────────────────────


def _match_device(devices: dict[str, Device], candidate: Device) -> Device | None:
    if candidate.id and candidate.id in devices:
        return devices[candidate.id]
    if candidate.has_ip():
        for device in devices.values():
            if device.ip == candidate.ip:
                return device
    if candidate.has_mac():
        mac = candidate.mac.lower()
        for device in devices.values():
            if device.has_mac() and device.mac.lower() == mac:
                return device
    return None


def _upsert_into(devices: dict[str, Device], candidate: Device) -> Device:
    existing = _match_device(devices, candidate)
    if existing is None:
        device = candidate.copy()
        device.id = device.id or new_device_id()
        devices[device.id] = device
        logger.debug("Added device %s (%s, %s)", device.id, device.name, device.ip)
        return device

    existing.name = pick_name(existing.name, candidate.name)
    if candidate.has_ip():
        existing.ip = candidate.ip
    if candidate.has_mac():
        existing.mac = candidate.mac
    if candidate.type != DeviceType.OTHER:
        existing.type = candidate.type
    existing.is_ethernet = candidate.is_ethernet or existing.is_ethernet
    existing.status = candidate.status
    existing.is_website_user = existing.is_website_user or candidate.is_website_user
    existing.anchors = existing.anchors | candidate.anchors
    return existing


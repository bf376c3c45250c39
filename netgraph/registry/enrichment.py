"""Best-effort naming of the device behind a browser session.

Kept apart from identity resolution: this only proposes a display name and
type for a session's synthetic device.  Which record it merges into is
decided by :meth:`EntityRegistry.upsert_device` alone.
"""

from __future__ import annotations

from netgraph.registry.models import UNKNOWN, Device, User, user_anchor, user_device_id
from netgraph.registry.naming import describe_user_agent, is_generic_name
from netgraph.registry.store import EntityRegistry


def session_device(
    user: User,
    registry: EntityRegistry,
    user_agent: str | None = None,
) -> Device:
    """Build the synthetic ``device-user-<id>`` candidate for *user*.

    Name preference: a specific name already scanned at the client's IP,
    then the browser platform ("iPhone", "Windows PC"), then the user name.
    A device already scanned at that IP also keeps its type.
    """
    platform, device_type = describe_user_agent(user_agent)
    name = platform or user.name

    scanned = registry.find_device_by_ip(user.client_ip)
    if scanned is not None:
        device_type = scanned.type
        if not is_generic_name(scanned.name):
            name = scanned.name

    return Device(
        id=user_device_id(user.id),
        name=name,
        ip=user.client_ip or UNKNOWN,
        type=device_type,
        is_website_user=True,
        anchors=frozenset({user_anchor(user.id)}),
    )

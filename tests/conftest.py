"""pytest configuration for netgraph tests."""

from __future__ import annotations

import pytest

from netgraph.network import NetworkService
from netgraph.registry.models import DeviceType

from tests.fakes import FakeProbe, scanned


# Configure asyncio mode for pytest-asyncio
def pytest_configure(config):
    config.addinivalue_line(
        "markers", "asyncio: mark test as async"
    )


@pytest.fixture()
def probe():
    return FakeProbe(devices=[
        scanned("device-router", "192.168.1.1", name="HomeRouter", type=DeviceType.ROUTER),
        scanned("device-laptop", "192.168.1.10", name="alice-laptop"),
        scanned("device-desktop", "192.168.1.20", name="bob-desktop"),
        scanned("device-remote", "10.0.0.5", name="remote-box"),
    ])


@pytest.fixture()
def network(probe):
    return NetworkService(probe)

"""Tests for the HTTP API and the WebSocket push channel."""

from __future__ import annotations

from unittest.mock import AsyncMock, patch

import pytest
from fastapi.testclient import TestClient

from netgraph.errors import ScanError
from netgraph.registry.models import Metrics, User
from netgraph.server import create_app


@pytest.fixture()
def client(network):
    # Enter the client so every WebSocket session shares one event loop.
    with TestClient(create_app(network)) as client:
        yield client


def _scan(client) -> None:
    resp = client.post("/api/scan")
    assert resp.status_code == 200


def receive_until(ws, msg_type: str, predicate=lambda _m: True, limit: int = 25) -> dict:
    """Read push messages until one of *msg_type* satisfies *predicate*."""
    for _ in range(limit):
        message = ws.receive_json()
        if message["type"] == msg_type and predicate(message):
            return message
    raise AssertionError(f"no {msg_type} message within {limit} messages")


class TestHealth:
    def test_health(self, client):
        resp = client.get("/health")
        assert resp.status_code == 200
        assert resp.json() == {"status": "ok", "clients": 0, "devices": 0, "users": 0, "connections": 0}


class TestDevices:
    def test_empty(self, client):
        resp = client.get("/api/devices")
        assert resp.status_code == 200
        assert resp.json() == []

    def test_scan_returns_devices(self, client):
        resp = client.post("/api/scan")
        assert resp.status_code == 200
        body = resp.json()
        assert len(body) == 4
        for key in ("id", "name", "ip", "mac", "type", "isEthernet", "status", "isWebsiteUser"):
            assert key in body[0]
        assert body[0]["type"] == "router"
        assert "anchors" not in body[0]
        assert len(client.get("/api/devices").json()) == 4

    def test_scan_failure(self, client, probe):
        probe.scan_error = ScanError("arp: command not found")
        resp = client.post("/api/scan")
        assert resp.status_code == 500
        assert resp.json() == {"error": "Scan failed"}

    def test_device_metrics(self, client, probe):
        probe.metrics["192.168.1.10"] = Metrics(upload_speed=1.5, latency=3.0)
        _scan(client)
        resp = client.get("/api/devices/device-laptop/metrics")
        assert resp.status_code == 200
        assert resp.json() == {
            "uploadSpeed": 1.5,
            "downloadSpeed": None,
            "latency": 3.0,
            "packetLoss": None,
            "throughput": None,
        }

    def test_device_metrics_unknown_device_still_measures(self, client):
        resp = client.get("/api/devices/device-1/metrics")
        assert resp.status_code == 200
        assert set(resp.json()) == {"uploadSpeed", "downloadSpeed", "latency", "packetLoss", "throughput"}


class TestConnect:
    def test_lan_same_subnet(self, client):
        _scan(client)
        resp = client.post("/api/connect", json={
            "userId": "device-desktop", "sourceId": "device-laptop", "connectionType": "LAN",
        })
        assert resp.status_code == 200
        body = resp.json()
        assert body["type"] == "LAN"
        assert body["status"] == "active"
        assert body["sourceId"] == "device-laptop"
        assert body["targetId"] == "device-desktop"
        assert body["id"].startswith("conn-")

    def test_duplicate_reversed_is_400(self, client):
        _scan(client)
        client.post("/api/connect", json={
            "userId": "device-desktop", "sourceId": "device-laptop", "connectionType": "LAN",
        })
        resp = client.post("/api/connect", json={
            "userId": "device-laptop", "sourceId": "device-desktop", "connectionType": "LAN",
        })
        assert resp.status_code == 400
        assert "already exists" in resp.json()["error"]

    def test_second_p2p_denied(self, client):
        _scan(client)
        first = client.post("/api/connect", json={
            "userId": "device-desktop", "sourceId": "device-laptop", "connectionType": "P2P",
        })
        second = client.post("/api/connect", json={
            "userId": "device-remote", "sourceId": "device-laptop", "connectionType": "P2P",
        })
        assert first.status_code == 200
        assert second.status_code == 400
        assert second.json() == {"error": "P2P connections are limited to 2 users only"}

    def test_wan_across_subnets(self, client):
        _scan(client)
        resp = client.post("/api/connect", json={
            "userId": "device-remote", "sourceId": "device-laptop", "connectionType": "WAN",
        })
        assert resp.status_code == 200
        assert resp.json()["type"] == "WAN"

    def test_unknown_entity_is_404(self, client):
        _scan(client)
        resp = client.post("/api/connect", json={
            "userId": "user-ghost", "sourceId": "device-laptop", "connectionType": "WAN",
        })
        assert resp.status_code == 404
        assert "error" in resp.json()

    def test_bad_connection_type_is_400(self, client):
        _scan(client)
        resp = client.post("/api/connect", json={
            "userId": "device-remote", "sourceId": "device-laptop", "connectionType": "BLUETOOTH",
        })
        assert resp.status_code == 400
        assert "connectionType" in resp.json()["error"]

    def test_missing_ids_is_400(self, client):
        resp = client.post("/api/connect", json={"connectionType": "WAN"})
        assert resp.status_code == 400

    def test_malformed_body_is_400(self, client):
        resp = client.post("/api/connect", content=b"not json", headers={"content-type": "application/json"})
        assert resp.status_code == 400
        assert resp.json() == {"error": "Invalid request body"}


    def test_unexpected_error_is_json_500(self, network):
        client = TestClient(create_app(network), raise_server_exceptions=False)
        with patch.object(network, "connect", AsyncMock(side_effect=RuntimeError("registry exploded"))):
            resp = client.post("/api/connect", json={
                "userId": "device-desktop", "sourceId": "device-laptop", "connectionType": "LAN",
            })
        assert resp.status_code == 500
        assert resp.json() == {"error": "Internal server error"}

    def test_unexpected_delete_error_is_json_500(self, network):
        client = TestClient(create_app(network), raise_server_exceptions=False)
        with patch.object(network, "remove_connection", AsyncMock(side_effect=KeyError("conn-1"))):
            resp = client.delete("/api/connections/conn-1")
        assert resp.status_code == 500
        assert resp.json() == {"error": "Internal server error"}


class TestConnections:
    def _connect(self, client) -> str:
        _scan(client)
        resp = client.post("/api/connect", json={
            "userId": "device-desktop", "sourceId": "device-laptop", "connectionType": "LAN",
        })
        return resp.json()["id"]

    def test_list(self, client):
        conn_id = self._connect(client)
        assert [c["id"] for c in client.get("/api/connections").json()] == [conn_id]

    def test_delete(self, client):
        conn_id = self._connect(client)
        resp = client.delete(f"/api/connections/{conn_id}")
        assert resp.status_code == 200
        assert resp.json() == {"success": True}
        assert client.delete(f"/api/connections/{conn_id}").status_code == 404

    def test_quality_test(self, client):
        conn_id = self._connect(client)
        resp = client.post(f"/api/connections/{conn_id}/test")
        assert resp.status_code == 200
        body = resp.json()
        for key in ("uploadSpeed", "downloadSpeed", "latency", "packetLoss", "throughput", "timestamp"):
            assert key in body
        stored = client.get("/api/connections").json()[0]
        assert stored["lastTest"] == body

    def test_quality_test_unknown(self, client):
        resp = client.post("/api/connections/conn-1/test")
        assert resp.status_code == 404

    def test_quality_test_probe_fault_is_500(self, client, probe):
        conn_id = self._connect(client)
        probe.measure_error = RuntimeError("probe subsystem exploded")
        resp = client.post(f"/api/connections/{conn_id}/test")
        assert resp.status_code == 500
        assert resp.json() == {"error": "Failed to test connection"}


class TestUsers:
    def test_users_without_metrics(self, client, network):
        network.registry.upsert_user(User(id="user-1", name="Alice"))
        resp = client.get("/api/users", params={"metrics": "false"})
        assert resp.json() == [{"id": "user-1", "name": "Alice", "status": "online"}]

    def test_users_with_metrics(self, client, network):
        network.registry.upsert_user(User(id="user-1", name="Alice"))
        resp = client.get("/api/users")
        assert resp.json()[0]["networkMetrics"] == {
            "uploadSpeed": None,
            "downloadSpeed": None,
            "latency": None,
            "packetLoss": None,
            "throughput": None,
        }


class TestWebSocket:
    def test_initial_state_and_registration(self, client):
        _scan(client)
        with client.websocket_connect("/ws") as ws:
            assert ws.receive_json()["type"] == "device-update"
            assert ws.receive_json()["type"] == "user-update"
            assert ws.receive_json()["type"] == "connection-update"

            ws.send_json({"type": "bogus"})
            ws.send_json({"type": "register-user", "name": "Alice"})

            registered = ws.receive_json()
            assert registered["type"] == "user-registered"
            assert registered["user"]["name"] == "Alice"
            assert registered["user"]["status"] == "online"

            users = receive_until(ws, "user-update")
            assert [u["name"] for u in users["data"]] == ["Alice"]
            devices = receive_until(ws, "device-update")
            assert any(d["isWebsiteUser"] for d in devices["data"])

    def test_disconnect_marks_offline(self, client):
        with client.websocket_connect("/ws") as watcher:
            watcher.send_json({"type": "register-user", "name": "Alice"})
            receive_until(watcher, "user-registered")

            with client.websocket_connect("/ws") as other:
                other.send_json({"type": "register-user", "id": "user-bob", "name": "Bob"})
                receive_until(other, "user-registered")

            update = receive_until(
                watcher,
                "user-update",
                lambda m: any(u["id"] == "user-bob" and u["status"] == "offline" for u in m["data"]),
            )
            assert {u["name"]: u["status"] for u in update["data"]} == {
                "Alice": "online",
                "Bob": "offline",
            }

    def test_same_name_reconnect_keeps_identity(self, client):
        with client.websocket_connect("/ws") as watcher:
            watcher.send_json({"type": "register-user", "name": "Carol"})
            first = receive_until(watcher, "user-registered")["user"]

            with client.websocket_connect("/ws") as other:
                other.send_json({"type": "register-user", "name": "Carol"})
                second = receive_until(other, "user-registered")["user"]

            assert second["id"] == first["id"]

    def test_invalid_json_gets_error_and_keeps_session(self, client):
        _scan(client)
        with client.websocket_connect("/ws") as ws:
            ws.send_json({"type": "register-user", "name": "Alice"})
            receive_until(ws, "user-registered")
            receive_until(ws, "device-update", lambda m: any(d["isWebsiteUser"] for d in m["data"]))

            ws.send_text("this is not json")
            error = receive_until(ws, "error")
            assert error["detail"] == "Invalid JSON"

            users = client.get("/api/users", params={"metrics": "false"}).json()
            assert [(u["name"], u["status"]) for u in users] == [("Alice", "online")]
            assert len(client.get("/api/devices").json()) == 5

            ws.send_json({"type": "register-user", "name": "Alice"})
            assert receive_until(ws, "user-registered")["user"]["name"] == "Alice"

    def test_non_object_json_gets_error(self, client):
        with client.websocket_connect("/ws") as ws:
            ws.send_text("[1, 2]")
            error = receive_until(ws, "error")
            assert error["detail"] == "Expected a JSON object"

            ws.send_json({"type": "register-user", "name": "Dave"})
            assert receive_until(ws, "user-registered")["user"]["status"] == "online"

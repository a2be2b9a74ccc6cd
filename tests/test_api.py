import time

import pytest
from fastapi.testclient import TestClient

from api import _forward, create_app

MAC = "aa:bb:cc:dd:ee:ff"


@pytest.fixture
def client(monitor):
    with TestClient(create_app(monitor)) as client:
        yield client


def test_health(client):
    body = client.get("/health").json()
    assert body["ok"] is True
    assert body["scanOk"] is True


def test_get_devices_scans_and_returns_records(client):
    devices = client.get("/devices").json()
    assert [d["mac"] for d in devices] == ["00:1a:11:22:33:44", "3c:5a:b4:01:02:03", MAC]
    phone = devices[-1]
    assert phone["type"] == "Phone"
    assert phone["status"] == "online"
    assert phone["blocked"] is False


def test_get_devices_serves_cache_when_scan_fails(client, runner):
    client.get("/devices")
    runner.fail("arp-scan", stderr="arp-scan: command not found")
    response = client.get("/devices")
    assert response.status_code == 200
    assert len(response.json()) == 3
    assert client.get("/health").json()["scanOk"] is False


def test_block_then_list_shows_blocked(client, runner):
    response = client.post("/devices/block", json={"mac": MAC})
    assert response.status_code == 200
    assert response.json() == {"message": f"Device {MAC} blocked successfully"}

    runner.scan_output = ""
    devices = {d["mac"]: d for d in client.get("/devices").json()}
    assert devices[MAC]["blocked"] is True
    assert devices[MAC]["status"] == "offline"


def test_block_failure_is_a_server_error(client, runner):
    runner.fail("iptables", "-I", stderr="Permission denied")
    response = client.post("/devices/block", json={"mac": MAC})
    assert response.status_code == 500


def test_unblock(client):
    client.post("/devices/block", json={"mac": MAC})
    response = client.post("/devices/unblock", json={"mac": MAC})
    assert response.status_code == 200
    assert client.get(f"/devices/{MAC}").json()["blocked"] is False


@pytest.mark.parametrize("path", ["/devices/block", "/devices/unblock", "/devices/alert", "/guests/add"])
@pytest.mark.parametrize("body", [{}, {"mac": ""}, {"mac": "not-a-mac"}])
def test_missing_or_bad_mac_is_rejected_without_side_effects(client, runner, path, body):
    runner.calls.clear()
    response = client.post(path, json=body)
    assert response.status_code == 400
    assert runner.calls == []


def test_unknown_device_lookup(client):
    assert client.get("/devices/11:22:33:44:55:66").status_code == 404
    assert client.get("/devices/garbage").status_code == 400


def test_alert_approve_scenario(client):
    for _ in range(2):
        response = client.post("/devices/alert", json={"mac": MAC, "ip": "192.168.1.5", "name": "MyPhone"})
        assert response.json() == {"message": "Alert received"}

    pending = client.get("/requests/pending").json()
    assert [(p["mac"], p["status"]) for p in pending] == [(MAC, "pending")]

    response = client.post(f"/requests/approve/{MAC}", json={"timeLimit": 0})
    assert response.status_code == 200
    assert client.get("/requests/pending").json() == []
    assert client.get(f"/devices/{MAC}").json()["blocked"] is False


def test_reject_without_body(client):
    client.post("/devices/alert", json={"mac": MAC})
    response = client.post(f"/requests/reject/{MAC}")
    assert response.status_code == 200
    assert response.json() == {"message": f"Device {MAC} rejected"}
    assert client.get(f"/devices/{MAC}").json()["blocked"] is True


def test_unknown_action(client):
    assert client.post(f"/requests/ignore/{MAC}").status_code == 400


def test_guest_lifecycle(client):
    response = client.post("/guests/add", json={"mac": MAC, "name": "Visitor", "timeLimitMinutes": 60})
    assert response.status_code == 200
    assert response.json()["guest"]["expiresAt"] is not None
    assert client.post("/guests/add", json={"mac": MAC}).status_code == 400
    assert [g["name"] for g in client.get("/guests/active").json()] == ["Visitor"]

    assert client.post("/guests/remove", json={"mac": MAC}).status_code == 200
    assert client.get("/guests/active").json() == []
    assert client.post("/guests/remove", json={"mac": MAC}).status_code == 404


def test_websocket_snapshot_then_events(client):
    client.get("/devices")
    with client.websocket_connect("/ws") as ws:
        snapshot = ws.receive_json()
        assert snapshot["type"] == "device_scan"
        assert len(snapshot["data"]) == 3

        client.post("/devices/alert", json={"mac": "11:22:33:44:55:66", "ip": "192.168.1.77", "name": "Laptop"})
        assert ws.receive_json() == {
            "type": "newDeviceAttempt",
            "data": {"mac": "11:22:33:44:55:66", "ip": "192.168.1.77", "name": "Laptop"},
        }

        client.post("/devices/block", json={"mac": MAC})
        assert ws.receive_json() == {"type": "deviceBlocked", "data": {"mac": MAC}}

        ws.send_text("scandevices")
        assert ws.receive_json()["type"] == "device_scan"


def test_timed_approve_then_reject_blocks_once(client, runner):
    client.post("/devices/alert", json={"mac": MAC})
    assert client.post(f"/requests/approve/{MAC}", json={"timeLimit": 0.001}).status_code == 200
    assert client.post(f"/requests/reject/{MAC}").status_code == 200

    time.sleep(0.2)

    assert len(runner.commands("hostapd_cli")) == 1
    assert len([c for c in runner.commands("iptables") if c[1] == "-I"]) == 2
    assert client.get(f"/devices/{MAC}").json()["blocked"] is True


def test_manual_unblock_outlasts_timed_approval(client, runner):
    client.post(f"/requests/approve/{MAC}", json={"timeLimit": 0.001})
    assert client.post("/devices/unblock", json={"mac": MAC}).status_code == 200

    time.sleep(0.2)

    assert runner.commands("hostapd_cli") == []
    assert client.get(f"/devices/{MAC}").json()["blocked"] is False


class BrokenSocket:
    def __init__(self):
        self.closed = False

    async def send_json(self, data):
        raise RuntimeError("socket is gone")

    async def close(self):
        self.closed = True


@pytest.mark.asyncio
async def test_forward_closes_socket_when_send_fails(broadcaster):
    subscription = broadcaster.subscribe()
    broadcaster.publish("deviceBlocked", {"mac": MAC})
    websocket = BrokenSocket()
    await _forward(websocket, subscription)
    assert websocket.closed

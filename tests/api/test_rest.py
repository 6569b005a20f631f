"""REST facade and service endpoints."""

from core.container import container
from core.exceptions import StorageError


def test_status_on_fresh_store(client):
    response = client.get("/status")

    assert response.status_code == 200
    body = response.json()
    assert body["motorA"] is False
    assert body["motorB"] is False
    assert body["voltage"] == 0
    assert body["deviceConnected"] is False
    assert "lastUpdated" in body


def test_status_alias(client):
    response = client.get("/api/status")

    assert response.status_code == 200
    assert response.json()["deviceConnected"] is False


def test_invalid_motor_id(client):
    response = client.post("/motor/C")

    assert response.status_code == 400


def test_motor_without_device(client):
    response = client.post("/motor/A", json={"state": True})

    assert response.status_code == 200
    body = response.json()
    assert body["success"] is False
    assert body["message"] == "device not connected"
    assert client.get("/status").json()["motorA"] is False


def test_motor_toggle_goes_through_device(client):
    with client.websocket_connect("/ws") as device:
        device.send_json({"type": "esp32_register"})
        assert device.receive_json()["type"] == "initial_state"

        response = client.post("/api/motor/b")
        command = device.receive_json()

    assert response.json()["success"] is True
    assert response.json()["state"] is True
    assert command == {"type": "motor_command", "motor": "B", "state": True}
    assert client.get("/status").json()["motorB"] is True


def test_health(client):
    body = client.get("/health").json()

    assert body["status"] == "OK"
    assert body["storageConnected"] is True
    assert body["deviceConnected"] is False
    assert body["observerCount"] == 0
    assert body["uptime"] >= 0


def test_root_describes_service(client):
    body = client.get("/").json()

    assert "websocket" in body["endpoints"]
    assert "GET /status" in body["endpoints"]["rest"]


def test_ws_info_lists_message_types(client):
    body = client.get("/ws/info").json()

    assert "motor_control" in body["supported_message_types"]
    assert "esp32_register" in body["supported_message_types"]
    assert body["device"] is None


def test_storage_failure_is_500(client, monkeypatch):
    async def broken_read():
        raise StorageError("read", "disk I/O error")

    monkeypatch.setattr(container.state_store(), "read", broken_read)

    response = client.get("/status")

    assert response.status_code == 500
    assert response.json()["success"] is False
    assert "disk I/O error" in response.json()["error"]

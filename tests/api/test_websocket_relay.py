"""End-to-end relay scenarios over real WebSocket sessions."""


def test_observer_then_device_scenario(client):
    with client.websocket_connect("/ws") as observer:
        observer.send_json({"type": "web_register"})
        snapshot = observer.receive_json()
        status = observer.receive_json()

        assert snapshot["type"] == "state_update"
        assert snapshot["motorA"] is False
        assert status == {"type": "device_status", "connected": False}

        with client.websocket_connect("/ws") as device:
            device.send_json({"type": "esp32_register", "id": "esp32-01"})
            assert device.receive_json() == {"type": "initial_state", "motorA": False, "motorB": False}
            assert observer.receive_json() == {"type": "device_status", "connected": True}

            observer.send_json({"type": "motor_control", "motor": "A", "state": True})
            assert device.receive_json() == {"type": "motor_command", "motor": "A", "state": True}

            device.send_json({
                "type": "state_update",
                "motorA": True,
                "motorB": False,
                "voltage": 12.1,
                "current": 0.5,
                "power": 6.05,
            })
            update = observer.receive_json()
            assert update["type"] == "state_update"
            assert update["motorA"] is True
            assert update["voltage"] == 12.1
            assert update["lastUpdated"]

        assert observer.receive_json() == {"type": "device_status", "connected": False}

    status = client.get("/status").json()
    assert status["motorA"] is True
    assert status["power"] == 6.05


def test_motor_control_without_device_errors_to_sender(client):
    with client.websocket_connect("/ws") as observer:
        observer.send_json({"type": "web_register"})
        observer.receive_json()
        observer.receive_json()

        observer.send_json({"type": "motor_control", "motor": "B", "state": True})

        assert observer.receive_json() == {"type": "error", "message": "device not connected"}


def test_root_path_accepts_device(client):
    with client.websocket_connect("/") as device:
        device.send_json({"type": "device_register"})
        assert device.receive_json()["type"] == "initial_state"

        assert client.get("/health").json()["deviceConnected"] is True

    assert client.get("/health").json()["deviceConnected"] is False


def test_garbage_keeps_connection_open(client):
    with client.websocket_connect("/ws") as observer:
        observer.send_text("{not json")
        observer.send_json({"type": "unknown_thing"})
        observer.send_json({"type": "web_register"})

        assert observer.receive_json()["type"] == "state_update"
        assert observer.receive_json()["type"] == "device_status"


def test_observer_count_follows_connections(client):
    with client.websocket_connect("/ws") as first, client.websocket_connect("/ws") as second:
        for ws in (first, second):
            ws.send_json({"type": "web_register"})
            ws.receive_json()
            ws.receive_json()

        assert client.get("/health").json()["observerCount"] == 2

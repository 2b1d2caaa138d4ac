import pytest
from fastapi import WebSocketDisconnect
from fastapi.testclient import TestClient

from tableside.core.security import create_session_token
from tableside.main import app


def _receive_until(websocket, frame_type: str, limit: int = 50) -> dict:
    for _ in range(limit):
        frame = websocket.receive_json()
        if frame["type"] == frame_type:
            return frame
    raise AssertionError(f"no {frame_type} frame received")


def test_session_requires_token():
    client = TestClient(app)
    with pytest.raises(WebSocketDisconnect) as exc:
        with client.websocket_connect("/ws/session") as websocket:
            websocket.receive_json()
    assert exc.value.code == 1008


def test_session_for_unknown_user_is_closed():
    client = TestClient(app)
    token = create_session_token("5550177")
    with pytest.raises(WebSocketDisconnect):
        with client.websocket_connect(f"/ws/session?token={token}") as websocket:
            websocket.receive_json()


def test_session_streams_state_and_runs_actions():
    client = TestClient(app)
    client.post("/auth/login", json={"phone_number": "5550100", "name": "Alex"})
    token = create_session_token("5550100")

    with client.websocket_connect(f"/ws/session?token={token}&table=Table%204") as websocket:
        state = _receive_until(websocket, "state")
        assert state["data"]["user"]["name"] == "Alex"
        assert state["data"]["room"] == "table-4"

        websocket.send_json({
            "action": "add_to_cart",
            "id": "a1",
            "item": {"id": "green-tea", "name": "Green Tea", "price": 4.0},
            "quantity": 2,
        })
        toast = _receive_until(websocket, "toast")
        assert toast["data"]["message"] == "Green Tea added to cart"
        result = _receive_until(websocket, "result")
        assert result["action"] == "add_to_cart"
        assert result["id"] == "a1"

        websocket.send_json({"action": "state", "id": "a2"})
        result = _receive_until(websocket, "result")
        assert result["data"]["cart_count"] == 2
        assert result["data"]["totals"]["subtotal"] == 8.0

        websocket.send_text("not json")
        error = _receive_until(websocket, "error")
        assert error["detail"] == "Frames must be JSON objects"

        websocket.send_json({"action": "teleport", "id": "a3"})
        toast = _receive_until(websocket, "toast")
        assert toast["data"]["message"] == "Invalid request"

from __future__ import annotations

import time

from starlette.testclient import WebSocketTestSession

from app.api import ws as ws_module


def test_signal_connection_survives_keepalive_timeout(client, headers_for) -> None:
    """Ensure that the server side keepalive pings keep the socket open."""

    room = client.post("/api/rooms", json={}, headers=headers_for("keepalive-user"))
    room_id = room.json()["id"]

    settings = ws_module.settings
    original_timeout = settings.websocket_receive_timeout_seconds
    original_interval = settings.websocket_ping_interval_seconds

    settings.websocket_receive_timeout_seconds = 0.1
    settings.websocket_ping_interval_seconds = 0.05

    try:
        with client.websocket_connect(f"/ws/signal/{room_id}?user_id=keepalive-user") as connection:
            _assert_keepalive_sequence(connection)
    finally:
        settings.websocket_receive_timeout_seconds = original_timeout
        settings.websocket_ping_interval_seconds = original_interval


def _assert_keepalive_sequence(connection: WebSocketTestSession) -> None:
    """Observe two keepalive pings with client responses to keep the connection active."""

    welcome = connection.receive_json()
    assert welcome["event"] == "welcome"

    time.sleep(0.15)
    ping = connection.receive_json()
    assert ping["type"] == "ping"
    connection.send_json({"type": "pong"})

    time.sleep(0.12)
    ping_again = connection.receive_json()
    assert ping_again["type"] == "ping"
    connection.send_json({"type": "pong"})

    connection.send_json({"type": "ping"})
    pong = connection.receive_json()
    assert pong["type"] == "pong"

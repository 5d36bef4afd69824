"""HTTP surface of rooms, invites and media resolution."""

from __future__ import annotations

from fastapi.testclient import TestClient

from app.monitoring.metrics import media_resolutions_total


def _create_room(client: TestClient, headers: dict[str, str], **payload) -> dict:
    response = client.post("/api/rooms", json=payload, headers=headers)
    assert response.status_code == 201, response.text
    return response.json()


def test_health_and_root(client: TestClient, headers_for) -> None:
    _create_room(client, headers_for("u-host"))

    health = client.get("/health").json()

    assert (health["status"], health["rooms"], health["signal_connections"]) == ("ok", 1, 0)
    assert client.get("/api/").status_code == 200


def test_create_room_returns_host_membership(client: TestClient, headers_for) -> None:
    room = _create_room(client, headers_for("u-host", "Hostess"), name="Movie night", max_users=4)

    assert room["id"].startswith("room_")
    assert room["name"] == "Movie night"
    assert room["max_users"] == 4
    assert room["host_id"] == "u-host"
    assert [(user["id"], user["name"], user["role"]) for user in room["current_users"]] == [
        ("u-host", "Hostess", "host")
    ]
    assert room["settings"]["allow_guest_control"] is False


def test_requests_without_identity_are_rejected(client: TestClient) -> None:
    response = client.post("/api/rooms", json={})

    assert response.status_code == 422


def test_join_flow_and_error_mapping(client: TestClient, headers_for) -> None:
    room = _create_room(client, headers_for("u-host"), max_users=2)

    joined = client.post("/api/rooms/join", json={"target": room["id"]}, headers=headers_for("u-a", "A"))
    full = client.post("/api/rooms/join", json={"target": room["id"]}, headers=headers_for("u-b"))
    missing = client.post("/api/rooms/join", json={"target": "room_nothere"}, headers=headers_for("u-b"))

    assert joined.status_code == 200
    assert [user["id"] for user in joined.json()["current_users"]] == ["u-host", "u-a"]
    assert full.status_code == 409
    assert full.json()["detail"]["code"] == "room_full"
    assert missing.status_code == 404
    assert missing.json()["detail"] == {"code": "room_not_found", "message": "Room not found"}


def test_private_room_invite_flow(client: TestClient, headers_for) -> None:
    host = headers_for("u-host")
    room = _create_room(client, host, is_private=True)
    assert room["invite_code"]

    public = client.get("/api/rooms/public").json()
    assert room["id"] not in [entry["id"] for entry in public]

    issued = client.post("/api/invites", json={"room_id": room["id"], "max_uses": 1}, headers=host)
    assert issued.status_code == 201, issued.text
    invite = issued.json()
    assert invite["link"].endswith(f"/join/{invite['code']}")
    assert invite["max_uses"] == 1

    first = client.post(f"/api/invites/{invite['code']}", headers=headers_for("u-a"))
    second = client.post(f"/api/invites/{invite['code']}", headers=headers_for("u-b"))

    assert first.status_code == 200
    assert second.status_code == 410
    assert second.json()["detail"]["code"] == "invite_invalid"


def test_invite_creation_requires_manager(client: TestClient, headers_for) -> None:
    room = _create_room(client, headers_for("u-host"))
    client.post("/api/rooms/join", json={"target": room["id"]}, headers=headers_for("u-a"))

    response = client.post("/api/invites", json={"room_id": room["id"]}, headers=headers_for("u-a"))

    assert response.status_code == 403
    assert response.json()["detail"]["code"] == "unauthorized_manage"


def test_invite_code_hidden_from_non_members(client: TestClient, headers_for) -> None:
    room = _create_room(client, headers_for("u-host"), is_private=True)

    as_host = client.get(f"/api/rooms/{room['id']}", headers=headers_for("u-host")).json()
    as_stranger = client.get(f"/api/rooms/{room['id']}").json()

    assert as_host["invite_code"] == room["invite_code"]
    assert as_stranger["invite_code"] is None


def test_playback_requires_control_permission(client: TestClient, headers_for) -> None:
    room = _create_room(client, headers_for("u-host"))
    client.post("/api/rooms/join", json={"target": room["id"]}, headers=headers_for("u-a"))

    denied = client.put(
        f"/api/rooms/{room['id']}/playback",
        json={"is_playing": True, "current_time": 5},
        headers=headers_for("u-a"),
    )
    promoted = client.put(
        f"/api/rooms/{room['id']}/members/u-a/role",
        json={"role": "moderator"},
        headers=headers_for("u-host"),
    )
    allowed = client.put(
        f"/api/rooms/{room['id']}/playback",
        json={"is_playing": True, "current_time": 5},
        headers=headers_for("u-a"),
    )

    assert denied.status_code == 403
    assert denied.json()["detail"]["code"] == "unauthorized_control"
    assert promoted.status_code == 200
    assert allowed.status_code == 200
    assert allowed.json()["is_playing"] is True
    assert allowed.json()["current_time"] == 5


def test_assigning_host_role_is_rejected(client: TestClient, headers_for) -> None:
    room = _create_room(client, headers_for("u-host"))
    client.post("/api/rooms/join", json={"target": room["id"]}, headers=headers_for("u-a"))

    response = client.put(
        f"/api/rooms/{room['id']}/members/u-a/role",
        json={"role": "host"},
        headers=headers_for("u-host"),
    )

    assert response.status_code == 422
    assert response.json()["detail"]["code"] == "invalid_role"


def test_set_video_from_url(client: TestClient, headers_for) -> None:
    room = _create_room(client, headers_for("u-host"))

    response = client.put(
        f"/api/rooms/{room['id']}/video",
        json={"url": "https://youtu.be/dQw4w9WgXcQ", "start_time": 12},
        headers=headers_for("u-host"),
    )

    assert response.status_code == 200, response.text
    payload = response.json()
    assert payload["current_video"]["id"] == "dQw4w9WgXcQ"
    assert payload["current_video"]["platform"] == "youtube"
    assert payload["current_time"] == 12
    assert payload["is_playing"] is True


def test_set_video_requires_exactly_one_source(client: TestClient, headers_for) -> None:
    room = _create_room(client, headers_for("u-host"))

    response = client.put(f"/api/rooms/{room['id']}/video", json={}, headers=headers_for("u-host"))

    assert response.status_code == 422


def test_resolve_media_endpoint(client: TestClient) -> None:
    resolved = client.post("/api/media/resolve", json={"url": "https://www.twitch.tv/videos/42"})
    rejected = client.post("/api/media/resolve", json={"url": "https://"})

    assert resolved.status_code == 200
    assert resolved.json()["platform"] == "twitch"
    assert resolved.json()["title"] == "Twitch VOD: 42"
    assert rejected.status_code == 422
    assert rejected.json()["detail"]["code"] == "media_unresolvable"


def test_leave_transfers_host_and_last_leave_closes(client: TestClient, headers_for) -> None:
    room = _create_room(client, headers_for("u-host"))
    client.post("/api/rooms/join", json={"target": room["id"]}, headers=headers_for("u-a", "A"))

    handed_over = client.post(f"/api/rooms/{room['id']}/leave", headers=headers_for("u-host"))
    assert handed_over.status_code == 200
    assert handed_over.json()["host_id"] == "u-a"

    closed = client.post(f"/api/rooms/{room['id']}/leave", headers=headers_for("u-a"))
    assert closed.status_code == 200
    assert closed.json() is None
    assert client.get(f"/api/rooms/{room['id']}").status_code == 404


def test_close_room_and_listings(client: TestClient, headers_for) -> None:
    busy = _create_room(client, headers_for("h-1"), name="Busy")
    quiet = _create_room(client, headers_for("h-2"), name="Quiet")
    client.post("/api/rooms/join", json={"target": busy["id"]}, headers=headers_for("u-a"))

    listing = client.get("/api/rooms/public", params={"limit": 5}).json()
    mine = client.get("/api/rooms/mine", headers=headers_for("u-a")).json()

    assert [entry["id"] for entry in listing] == [busy["id"], quiet["id"]]
    assert listing[0]["member_count"] == 2
    assert [entry["id"] for entry in mine] == [busy["id"]]

    assert client.delete(f"/api/rooms/{quiet['id']}", headers=headers_for("u-a")).status_code == 404
    assert client.delete(f"/api/rooms/{quiet['id']}", headers=headers_for("h-2")).status_code == 204
    assert client.get(f"/api/rooms/{quiet['id']}").status_code == 404


def test_voice_state_update(client: TestClient, headers_for) -> None:
    room = _create_room(client, headers_for("u-host"))

    response = client.put(
        f"/api/rooms/{room['id']}/voice",
        json={"voice_enabled": True, "muted": True},
        headers=headers_for("u-host"),
    )

    host = response.json()["current_users"][0]
    assert (host["voice_enabled"], host["is_muted"]) == (True, True)


def test_metrics_endpoint_reports_room_commands(client: TestClient, headers_for) -> None:
    _create_room(client, headers_for("u-host"))

    body = client.get("/metrics").text

    assert "# TYPE watchparty_room_commands_total counter" in body
    assert 'watchparty_room_commands_total{command="create",outcome="ok"}' in body
    assert "watchparty_rooms_active" in body


def test_invite_lifetime_has_an_upper_bound(client: TestClient, headers_for) -> None:
    room = _create_room(client, headers_for("u-host"))

    response = client.post(
        "/api/invites",
        json={"room_id": room["id"], "expires_in_hours": 1e9},
        headers=headers_for("u-host"),
    )

    assert response.status_code == 422


def test_video_url_is_not_resolved_for_callers_without_control(
    client: TestClient, headers_for
) -> None:
    media_resolutions_total._samples.clear()
    room = _create_room(client, headers_for("u-host"))
    client.post("/api/rooms/join", json={"target": room["id"]}, headers=headers_for("u-a"))

    denied = client.put(
        f"/api/rooms/{room['id']}/video",
        json={"url": "https://youtu.be/dQw4w9WgXcQ"},
        headers=headers_for("u-a"),
    )
    stranger = client.put(
        f"/api/rooms/{room['id']}/video",
        json={"url": "https://youtu.be/dQw4w9WgXcQ"},
        headers=headers_for("u-x"),
    )

    assert denied.status_code == 403
    assert denied.json()["detail"]["code"] == "unauthorized_control"
    assert stranger.status_code == 404
    assert media_resolutions_total.value("youtube") == 0

"""Tests for room storage and identifier generation."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest

from watchparty.rooms import (
    IdentifierExhaustedError,
    IdentifierGenerator,
    Room,
    RoomInvite,
    RoomRegistry,
)


def _room(room_id: str, created_at: datetime) -> Room:
    return Room(id=room_id, name=room_id, host_id="h", host_name="H", created_at=created_at)


def test_delete_room_forgets_members_but_keeps_invites() -> None:
    registry = RoomRegistry()
    now = datetime(2024, 1, 1, tzinfo=timezone.utc)
    registry.put_room(_room("room_a", now))
    registry.put_invite(RoomInvite(room_id="room_a", code="ABCDEFGH", created_by="h"))
    registry.link_user("u-1", "room_a")
    registry.link_user("u-2", "room_a")

    removed = registry.delete_room("room_a")

    assert removed is not None
    assert not registry.has_room("room_a")
    assert registry.room_ids_for_user("u-1") == set()
    assert registry.room_ids_for_user("u-2") == set()
    assert registry.get_invite("ABCDEFGH") is not None
    assert len(registry) == 0


def test_rooms_for_user_skips_deleted_rooms_and_sorts_by_creation() -> None:
    registry = RoomRegistry()
    start = datetime(2024, 1, 1, tzinfo=timezone.utc)
    registry.put_room(_room("room_late", start + timedelta(hours=1)))
    registry.put_room(_room("room_early", start))
    for room_id in ("room_late", "room_early", "room_ghost"):
        registry.link_user("u-1", room_id)

    assert [room.id for room in registry.rooms_for_user("u-1")] == ["room_early", "room_late"]


def test_unlink_user_is_idempotent() -> None:
    registry = RoomRegistry()
    registry.unlink_user("nobody", "room_x")
    registry.link_user("u-1", "room_x")
    registry.unlink_user("u-1", "room_x")
    registry.unlink_user("u-1", "room_x")

    assert registry.room_ids_for_user("u-1") == set()


def test_generated_identifiers_follow_documented_shapes() -> None:
    generator = IdentifierGenerator()

    room_id = generator.room_id(lambda candidate: False)
    code = generator.invite_code(lambda candidate: False)

    assert room_id.startswith("room_")
    suffix = room_id.removeprefix("room_")
    assert len(suffix) == 9 and suffix.isalnum() and suffix == suffix.lower()
    assert len(code) == 8 and code.isalnum() and code == code.upper()


def test_identifier_generator_retries_collisions() -> None:
    class Scripted(IdentifierGenerator):
        def __init__(self, tokens: list[str]) -> None:
            self._tokens = iter(tokens)

        def token(self, length: int, alphabet: str) -> str:
            return next(self._tokens)

    taken = {"AAAAAAAA"}
    generator = Scripted(["AAAAAAAA", "BBBBBBBB"])

    assert generator.invite_code(taken.__contains__) == "BBBBBBBB"


def test_identifier_generator_gives_up_after_repeated_collisions() -> None:
    class Stuck(IdentifierGenerator):
        def token(self, length: int, alphabet: str) -> str:
            return "A" * length

    with pytest.raises(IdentifierExhaustedError):
        Stuck().invite_code(lambda candidate: True)

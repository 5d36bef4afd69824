"""Authoritative in-memory storage for rooms and invites."""

from __future__ import annotations

from collections import defaultdict
from typing import Dict, Set

from .models import Room, RoomInvite


class RoomRegistry:
    """Room, invite and membership indexes.

    The registry holds no business rules: callers keep the invariants.
    Invites are not removed together with their room, validity checks
    take care of stale entries.
    """

    def __init__(self) -> None:
        self._rooms: Dict[str, Room] = {}
        self._invites: Dict[str, RoomInvite] = {}
        self._user_rooms: Dict[str, Set[str]] = defaultdict(set)

    def put_room(self, room: Room) -> None:
        self._rooms[room.id] = room

    def delete_room(self, room_id: str) -> Room | None:
        room = self._rooms.pop(room_id, None)
        for user_id in list(self._user_rooms):
            self.unlink_user(user_id, room_id)
        return room

    def get_room(self, room_id: str) -> Room | None:
        return self._rooms.get(room_id)

    def has_room(self, room_id: str) -> bool:
        return room_id in self._rooms

    def list_rooms(self) -> list[Room]:
        return list(self._rooms.values())

    def put_invite(self, invite: RoomInvite) -> None:
        self._invites[invite.code] = invite

    def get_invite(self, code: str) -> RoomInvite | None:
        return self._invites.get(code)

    def has_invite(self, code: str) -> bool:
        return code in self._invites

    def link_user(self, user_id: str, room_id: str) -> None:
        self._user_rooms[user_id].add(room_id)

    def unlink_user(self, user_id: str, room_id: str) -> None:
        rooms = self._user_rooms.get(user_id)
        if rooms is None:
            return
        rooms.discard(room_id)
        if not rooms:
            self._user_rooms.pop(user_id, None)

    def room_ids_for_user(self, user_id: str) -> set[str]:
        return set(self._user_rooms.get(user_id, ()))

    def rooms_for_user(self, user_id: str) -> list[Room]:
        rooms = [
            room
            for room_id in self._user_rooms.get(user_id, ())
            if (room := self._rooms.get(room_id)) is not None
        ]
        rooms.sort(key=lambda room: room.created_at)
        return rooms

    def clear(self) -> None:
        self._rooms.clear()
        self._invites.clear()
        self._user_rooms.clear()

    def __len__(self) -> int:
        return len(self._rooms)


__all__ = ["RoomRegistry"]

"""Room lifecycle and playback authorization rules."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Callable, Dict

from app.monitoring.metrics import invites_issued_total, room_commands_total, rooms_active

from .identifiers import HOST_AVATAR, IdentifierGenerator
from .models import (
    DEFAULT_MAX_USERS,
    DEFAULT_ROOM_NAME,
    Room,
    RoomInvite,
    RoomOptions,
    RoomRole,
    RoomUser,
    VideoInfo,
)
from .registry import RoomRegistry

logger = logging.getLogger(__name__)

DEFAULT_INVITE_TTL_HOURS = 24.0
MAX_INVITE_TTL_HOURS = 24.0 * 365 * 10
DEFAULT_PUBLIC_ROOMS_LIMIT = 20
MANAGER_ROLES: frozenset[RoomRole] = frozenset({RoomRole.HOST, RoomRole.MODERATOR})
ASSIGNABLE_ROLES: frozenset[RoomRole] = frozenset({RoomRole.MODERATOR, RoomRole.MEMBER})


class SessionErrorCode(str, Enum):
    """Failure kinds reported by room commands."""

    ROOM_NOT_FOUND = "room_not_found"
    ROOM_FULL = "room_full"
    INVITE_INVALID = "invite_invalid"
    NOT_A_MEMBER = "not_a_member"
    UNAUTHORIZED_CONTROL = "unauthorized_control"
    UNAUTHORIZED_MANAGE = "unauthorized_manage"
    INVALID_ROLE = "invalid_role"


ERROR_MESSAGES: dict[SessionErrorCode, str] = {
    SessionErrorCode.ROOM_NOT_FOUND: "Room not found",
    SessionErrorCode.ROOM_FULL: "Room is full",
    SessionErrorCode.INVITE_INVALID: "Invite code is invalid, expired or exhausted",
    SessionErrorCode.NOT_A_MEMBER: "User is not a member of this room",
    SessionErrorCode.UNAUTHORIZED_CONTROL: "Insufficient permissions to control playback",
    SessionErrorCode.UNAUTHORIZED_MANAGE: "Insufficient permissions to manage the room",
    SessionErrorCode.INVALID_ROLE: "Role cannot be assigned",
}


@dataclass(slots=True)
class SessionResult:
    """Outcome of a room command.

    Truthy on success so callers can treat it as a plain boolean.
    """

    error: SessionErrorCode | None = None
    room: Room | None = None

    def __bool__(self) -> bool:
        return self.error is None

    @property
    def success(self) -> bool:
        return self.error is None

    @property
    def message(self) -> str | None:
        return ERROR_MESSAGES[self.error] if self.error is not None else None


@dataclass(slots=True)
class InviteResult(SessionResult):
    invite: RoomInvite | None = None
    link: str | None = None


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class SessionController:
    """Apply room commands on top of a :class:`RoomRegistry`.

    Every command that reads and then mutates a room holds that room's lock
    for its whole duration, so concurrent joins cannot overshoot capacity and
    failover cannot interleave with a join.
    """

    def __init__(
        self,
        registry: RoomRegistry,
        *,
        identifiers: IdentifierGenerator | None = None,
        clock: Callable[[], datetime] | None = None,
        public_base_url: str = "http://localhost:8080",
        invite_ttl_hours: float = DEFAULT_INVITE_TTL_HOURS,
        default_max_users: int = DEFAULT_MAX_USERS,
    ) -> None:
        self._registry = registry
        self._ids = identifiers or IdentifierGenerator()
        self._clock = clock or _utcnow
        self._public_base_url = public_base_url.rstrip("/")
        self._invite_ttl_hours = invite_ttl_hours
        self._default_max_users = default_max_users
        self._room_locks: Dict[str, asyncio.Lock] = {}

    @property
    def registry(self) -> RoomRegistry:
        return self._registry

    # ------------------------------------------------------------------
    # Authorization
    # ------------------------------------------------------------------

    @staticmethod
    def can_control_video(user: RoomUser, room: Room) -> bool:
        return user.role in MANAGER_ROLES or room.settings.allow_guest_control

    @staticmethod
    def can_manage_room(user: RoomUser, room: Room) -> bool:
        return user.role in MANAGER_ROLES

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def create_room(
        self, host_id: str, host_name: str, options: RoomOptions | None = None
    ) -> Room:
        options = options or RoomOptions()
        now = self._clock()
        room_id = self._ids.room_id(self._registry.has_room)
        invite_code = (
            self._ids.invite_code(self._registry.has_invite) if options.is_private else None
        )
        host = RoomUser(
            id=host_id,
            name=host_name,
            avatar=HOST_AVATAR,
            role=RoomRole.HOST,
            joined_at=now,
        )
        room = Room(
            id=room_id,
            name=options.name or DEFAULT_ROOM_NAME,
            description=options.description or "",
            host_id=host_id,
            host_name=host_name,
            is_private=options.is_private,
            invite_code=invite_code,
            max_users=options.max_users or self._default_max_users,
            current_users=[host],
            settings=options.build_settings(),
            created_at=now,
        )
        self._registry.put_room(room)
        self._registry.link_user(host_id, room_id)
        if invite_code is not None:
            self._registry.put_invite(
                RoomInvite(
                    room_id=room_id,
                    code=invite_code,
                    created_by=host_id,
                    expires_at=now + timedelta(hours=self._invite_ttl_hours),
                )
            )
            invites_issued_total.labels("room-created").inc()
        rooms_active.set(len(self._registry))
        room_commands_total.labels("create", "ok").inc()
        logger.info("Room %s created by %s (private=%s)", room_id, host_id, options.is_private)
        return room

    async def join_room(self, user_id: str, user_name: str, room_id_or_code: str) -> SessionResult:
        room_id, invite = self._resolve_join_target(room_id_or_code)
        if room_id is None:
            return self._fail("join", SessionErrorCode.ROOM_NOT_FOUND)

        async with self._room_lock(room_id):
            if invite is not None and not invite.is_valid(self._clock()):
                return self._fail("join", SessionErrorCode.INVITE_INVALID)
            room = self._registry.get_room(room_id)
            if room is None:
                code = (
                    SessionErrorCode.INVITE_INVALID
                    if invite is not None
                    else SessionErrorCode.ROOM_NOT_FOUND
                )
                return self._fail("join", code)

            existing = room.find_member(user_id)
            if existing is not None:
                existing.is_online = True
                self._registry.link_user(user_id, room.id)
                return self._ok("join", room)

            if room.is_full:
                return self._fail("join", SessionErrorCode.ROOM_FULL)

            room.current_users.append(
                RoomUser(
                    id=user_id,
                    name=user_name,
                    avatar=self._ids.avatar(),
                    role=RoomRole.MEMBER,
                    joined_at=self._clock(),
                )
            )
            self._registry.link_user(user_id, room.id)
            if invite is not None:
                invite.current_uses += 1
            logger.info("User %s joined room %s", user_id, room.id)
            return self._ok("join", room)

    async def leave_room(self, user_id: str, room_id: str) -> SessionResult:
        async with self._room_lock(room_id):
            room = self._registry.get_room(room_id)
            if room is None:
                return self._fail("leave", SessionErrorCode.ROOM_NOT_FOUND)
            member = room.find_member(user_id)
            if member is None:
                return self._fail("leave", SessionErrorCode.NOT_A_MEMBER)

            if member.role is RoomRole.HOST:
                successor = next(
                    (
                        candidate
                        for candidate in room.current_users
                        if candidate.id != user_id and candidate.is_online
                    ),
                    None,
                )
                if successor is None:
                    self._destroy_room(room)
                    logger.info("Room %s closed after its last online host left", room_id)
                    return self._ok("leave", None)
                successor.role = RoomRole.HOST
                room.host_id = successor.id
                room.host_name = successor.name
                logger.info("Host of room %s passed from %s to %s", room_id, user_id, successor.id)

            room.current_users.remove(member)
            self._registry.unlink_user(user_id, room_id)
            return self._ok("leave", room)

    async def close_room(self, room_id: str, user_id: str) -> SessionResult:
        async with self._room_lock(room_id):
            room = self._registry.get_room(room_id)
            if room is None:
                return self._fail("close", SessionErrorCode.ROOM_NOT_FOUND)
            member = room.find_member(user_id)
            if member is None:
                return self._fail("close", SessionErrorCode.NOT_A_MEMBER)
            if member.role is not RoomRole.HOST:
                return self._fail("close", SessionErrorCode.UNAUTHORIZED_MANAGE)
            self._destroy_room(room)
            logger.info("Room %s closed by host %s", room_id, user_id)
            return self._ok("close", None)

    # ------------------------------------------------------------------
    # Playback
    # ------------------------------------------------------------------

    async def update_room_video(
        self, room_id: str, user_id: str, video: VideoInfo, start_time: float = 0.0
    ) -> SessionResult:
        async with self._room_lock(room_id):
            room, error = self._authorize(
                room_id, user_id, self.can_control_video, SessionErrorCode.UNAUTHORIZED_CONTROL
            )
            if error is not None:
                return self._fail("set-video", error)
            room.current_video = video
            room.current_time = start_time
            room.is_playing = True
            logger.debug("Room %s switched to video %s", room_id, video.id)
            return self._ok("set-video", room)

    def check_video_control(self, room_id: str, user_id: str) -> SessionResult:
        """Authorize a video switch ahead of any media lookup.

        :meth:`update_room_video` repeats the check under the room lock.
        """

        room, error = self._authorize(
            room_id, user_id, self.can_control_video, SessionErrorCode.UNAUTHORIZED_CONTROL
        )
        if error is not None:
            return self._fail("set-video", error)
        return SessionResult(room=room)

    async def update_playback_state(
        self, room_id: str, user_id: str, is_playing: bool, current_time: float
    ) -> SessionResult:
        async with self._room_lock(room_id):
            room, error = self._authorize(
                room_id, user_id, self.can_control_video, SessionErrorCode.UNAUTHORIZED_CONTROL
            )
            if error is not None:
                return self._fail("set-playback", error)
            room.is_playing = is_playing
            room.current_time = current_time
            return self._ok("set-playback", room)

    # ------------------------------------------------------------------
    # Invites and membership management
    # ------------------------------------------------------------------

    async def generate_invite(
        self,
        room_id: str,
        user_id: str,
        expires_in_hours: float | None = DEFAULT_INVITE_TTL_HOURS,
        max_uses: int | None = None,
    ) -> InviteResult:
        async with self._room_lock(room_id):
            room, error = self._authorize(
                room_id, user_id, self.can_manage_room, SessionErrorCode.UNAUTHORIZED_MANAGE
            )
            if error is not None:
                self._record("invite", error)
                return InviteResult(error=error)
            code = self._ids.invite_code(self._registry.has_invite)
            expires_at = self._invite_expiry(expires_in_hours)
            invite = RoomInvite(
                room_id=room.id,
                code=code,
                created_by=user_id,
                expires_at=expires_at,
                max_uses=max_uses,
            )
            self._registry.put_invite(invite)
            invites_issued_total.labels("on-demand").inc()
            self._record("invite", None)
            return InviteResult(room=room, invite=invite, link=self.invite_link(code))

    async def generate_invite_link(
        self,
        room_id: str,
        user_id: str,
        expires_in_hours: float | None = DEFAULT_INVITE_TTL_HOURS,
        max_uses: int | None = None,
    ) -> str | None:
        result = await self.generate_invite(room_id, user_id, expires_in_hours, max_uses)
        return result.link if result else None

    def invite_link(self, code: str) -> str:
        return f"{self._public_base_url}/join/{code}"

    async def set_member_role(
        self, room_id: str, actor_id: str, target_id: str, role: RoomRole
    ) -> SessionResult:
        async with self._room_lock(room_id):
            room, error = self._authorize(
                room_id, actor_id, self.can_manage_room, SessionErrorCode.UNAUTHORIZED_MANAGE
            )
            if error is not None:
                return self._fail("set-role", error)
            target = room.find_member(target_id)
            if target is None:
                return self._fail("set-role", SessionErrorCode.NOT_A_MEMBER)
            if role not in ASSIGNABLE_ROLES or target.role is RoomRole.HOST:
                return self._fail("set-role", SessionErrorCode.INVALID_ROLE)
            target.role = role
            logger.info("User %s set role of %s in room %s to %s", actor_id, target_id, room_id, role.value)
            return self._ok("set-role", room)

    async def set_presence(self, room_id: str, user_id: str, online: bool) -> SessionResult:
        async with self._room_lock(room_id):
            room = self._registry.get_room(room_id)
            if room is None:
                return self._fail("presence", SessionErrorCode.ROOM_NOT_FOUND)
            member = room.find_member(user_id)
            if member is None:
                return self._fail("presence", SessionErrorCode.NOT_A_MEMBER)
            member.is_online = online
            return self._ok("presence", room)

    async def set_voice_state(
        self,
        room_id: str,
        user_id: str,
        *,
        voice_enabled: bool | None = None,
        muted: bool | None = None,
    ) -> SessionResult:
        async with self._room_lock(room_id):
            room = self._registry.get_room(room_id)
            if room is None:
                return self._fail("voice", SessionErrorCode.ROOM_NOT_FOUND)
            member = room.find_member(user_id)
            if member is None:
                return self._fail("voice", SessionErrorCode.NOT_A_MEMBER)
            if voice_enabled is not None:
                member.voice_enabled = voice_enabled
            if muted is not None:
                member.is_muted = muted
            return self._ok("voice", room)

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def get_room(self, room_id: str) -> Room | None:
        return self._registry.get_room(room_id)

    def get_user_rooms(self, user_id: str) -> list[Room]:
        return self._registry.rooms_for_user(user_id)

    def get_public_rooms(self, limit: int = DEFAULT_PUBLIC_ROOMS_LIMIT) -> list[Room]:
        if limit <= 0:
            return []
        rooms = [room for room in self._registry.list_rooms() if not room.is_private]
        rooms.sort(key=lambda room: room.member_count, reverse=True)
        return rooms[:limit]

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _room_lock(self, room_id: str) -> asyncio.Lock:
        lock = self._room_locks.get(room_id)
        if lock is None:
            lock = asyncio.Lock()
            # Unknown rooms get a throwaway lock; the command then reports ROOM_NOT_FOUND.
            if self._registry.has_room(room_id):
                self._room_locks[room_id] = lock
        return lock

    def _invite_expiry(self, expires_in_hours: float | None) -> datetime | None:
        if expires_in_hours is None:
            return None
        hours = min(float(expires_in_hours), MAX_INVITE_TTL_HOURS)
        try:
            return self._clock() + timedelta(hours=hours)
        except (OverflowError, ValueError):
            logger.info(
                "Invite lifetime of %s hours is out of range; issuing without expiry",
                expires_in_hours,
            )
            return None

    def _resolve_join_target(self, room_id_or_code: str) -> tuple[str | None, RoomInvite | None]:
        if self._registry.has_room(room_id_or_code):
            return room_id_or_code, None
        invite = self._registry.get_invite(room_id_or_code)
        if invite is None:
            return None, None
        return invite.room_id, invite

    def _authorize(
        self,
        room_id: str,
        user_id: str,
        predicate: Callable[[RoomUser, Room], bool],
        denied: SessionErrorCode,
    ) -> tuple[Room | None, SessionErrorCode | None]:
        room = self._registry.get_room(room_id)
        if room is None:
            return None, SessionErrorCode.ROOM_NOT_FOUND
        member = room.find_member(user_id)
        if member is None:
            return room, SessionErrorCode.NOT_A_MEMBER
        if not predicate(member, room):
            return room, denied
        return room, None

    def _destroy_room(self, room: Room) -> None:
        self._registry.delete_room(room.id)
        self._room_locks.pop(room.id, None)
        rooms_active.set(len(self._registry))

    def _ok(self, command: str, room: Room | None) -> SessionResult:
        self._record(command, None)
        return SessionResult(room=room)

    def _fail(self, command: str, error: SessionErrorCode) -> SessionResult:
        self._record(command, error)
        return SessionResult(error=error)

    @staticmethod
    def _record(command: str, error: SessionErrorCode | None) -> None:
        outcome = "ok" if error is None else error.value
        room_commands_total.labels(command, outcome).inc()
        if error is not None:
            logger.debug("Room command %s rejected: %s", command, error.value)


__all__ = [
    "DEFAULT_INVITE_TTL_HOURS",
    "DEFAULT_PUBLIC_ROOMS_LIMIT",
    "MAX_INVITE_TTL_HOURS",
    "ERROR_MESSAGES",
    "InviteResult",
    "SessionController",
    "SessionErrorCode",
    "SessionResult",
]

"""In-memory data model for watch-party rooms."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum


class RoomRole(str, Enum):
    """Roles that a user can have inside a room."""

    HOST = "host"
    MODERATOR = "moderator"
    MEMBER = "member"


class VideoPlatform(str, Enum):
    """Platform tags attached to resolved videos."""

    YOUTUBE = "youtube"
    TWITCH = "twitch"
    DIRECT = "direct"
    UNKNOWN = "unknown"


DEFAULT_ROOM_NAME = "New room"
DEFAULT_MAX_USERS = 50
DEFAULT_SYNC_TOLERANCE = 2.0


@dataclass(frozen=True, slots=True)
class VideoInfo:
    """Video reference produced by a media resolver.

    Rooms store and forward it untouched.
    """

    id: str
    title: str
    duration: str
    thumbnail: str
    platform: VideoPlatform
    embed_url: str
    original_url: str


@dataclass(slots=True)
class RoomSettings:
    allow_guest_control: bool = False
    require_approval: bool = False
    chat_enabled: bool = True
    voice_enabled: bool = True
    # Seconds of drift tolerated by clients before re-syncing. Advisory only.
    sync_tolerance: float = DEFAULT_SYNC_TOLERANCE


@dataclass(slots=True)
class RoomUser:
    id: str
    name: str
    avatar: str
    role: RoomRole
    joined_at: datetime
    is_online: bool = True
    voice_enabled: bool = False
    is_muted: bool = False


@dataclass(slots=True)
class Room:
    """A watch-party room.

    ``current_users`` keeps join order, which also decides host failover.
    """

    id: str
    name: str
    host_id: str
    host_name: str
    created_at: datetime
    description: str = ""
    is_private: bool = False
    invite_code: str | None = None
    max_users: int = DEFAULT_MAX_USERS
    current_users: list[RoomUser] = field(default_factory=list)
    current_video: VideoInfo | None = None
    is_playing: bool = False
    current_time: float = 0.0
    settings: RoomSettings = field(default_factory=RoomSettings)

    def find_member(self, user_id: str) -> RoomUser | None:
        for member in self.current_users:
            if member.id == user_id:
                return member
        return None

    @property
    def member_count(self) -> int:
        return len(self.current_users)

    @property
    def is_full(self) -> bool:
        return len(self.current_users) >= self.max_users


@dataclass(slots=True)
class RoomInvite:
    """Invitation code pointing at a room."""

    room_id: str
    code: str
    created_by: str
    expires_at: datetime | None = None
    max_uses: int | None = None
    current_uses: int = 0

    def is_valid(self, now: datetime) -> bool:
        if self.expires_at is not None and self.expires_at <= now:
            return False
        if self.max_uses is not None and self.current_uses >= self.max_uses:
            return False
        return True


@dataclass(slots=True)
class RoomOptions:
    """Optional attributes supplied when creating a room."""

    name: str | None = None
    description: str | None = None
    is_private: bool = False
    max_users: int | None = None
    allow_guest_control: bool | None = None
    require_approval: bool | None = None
    chat_enabled: bool | None = None
    voice_enabled: bool | None = None
    sync_tolerance: float | None = None

    def build_settings(self) -> RoomSettings:
        defaults = RoomSettings()
        return RoomSettings(
            allow_guest_control=_pick(self.allow_guest_control, defaults.allow_guest_control),
            require_approval=_pick(self.require_approval, defaults.require_approval),
            chat_enabled=_pick(self.chat_enabled, defaults.chat_enabled),
            voice_enabled=_pick(self.voice_enabled, defaults.voice_enabled),
            sync_tolerance=_pick(self.sync_tolerance, defaults.sync_tolerance),
        )


def _pick(value, default):
    return default if value is None else value


__all__ = [
    "DEFAULT_MAX_USERS",
    "DEFAULT_ROOM_NAME",
    "DEFAULT_SYNC_TOLERANCE",
    "Room",
    "RoomInvite",
    "RoomOptions",
    "RoomRole",
    "RoomSettings",
    "RoomUser",
    "VideoInfo",
    "VideoPlatform",
]

"""Pydantic schemas for API payloads."""

from .rooms import (
    InviteCreate,
    InviteRead,
    JoinRequest,
    PlaybackUpdate,
    ResolveRequest,
    RoleUpdate,
    RoomCreate,
    RoomRead,
    RoomSettingsRead,
    RoomSettingsUpdate,
    RoomSummary,
    RoomUserRead,
    VideoInfoSchema,
    VideoUpdate,
    VoiceStateUpdate,
)

__all__ = [
    "InviteCreate",
    "InviteRead",
    "JoinRequest",
    "PlaybackUpdate",
    "ResolveRequest",
    "RoleUpdate",
    "RoomCreate",
    "RoomRead",
    "RoomSettingsRead",
    "RoomSettingsUpdate",
    "RoomSummary",
    "RoomUserRead",
    "VideoInfoSchema",
    "VideoUpdate",
    "VoiceStateUpdate",
]

"""Room state: storage, identifiers and session rules."""

from .controller import (  # noqa: F401
    ERROR_MESSAGES,
    MAX_INVITE_TTL_HOURS,
    InviteResult,
    SessionController,
    SessionErrorCode,
    SessionResult,
)
from .identifiers import IdentifierExhaustedError, IdentifierGenerator  # noqa: F401
from .models import (  # noqa: F401
    Room,
    RoomInvite,
    RoomOptions,
    RoomRole,
    RoomSettings,
    RoomUser,
    VideoInfo,
    VideoPlatform,
)
from .registry import RoomRegistry  # noqa: F401

__all__ = [
    "ERROR_MESSAGES",
    "IdentifierExhaustedError",
    "IdentifierGenerator",
    "InviteResult",
    "MAX_INVITE_TTL_HOURS",
    "Room",
    "RoomInvite",
    "RoomOptions",
    "RoomRegistry",
    "RoomRole",
    "RoomSettings",
    "RoomUser",
    "SessionController",
    "SessionErrorCode",
    "SessionResult",
    "VideoInfo",
    "VideoPlatform",
]

"""Schemas for watch party rooms, invites and playback."""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field, conint, constr, model_validator

from watchparty.rooms import (
    MAX_INVITE_TTL_HOURS,
    Room,
    RoomInvite,
    RoomOptions,
    RoomRole,
    VideoInfo,
    VideoPlatform,
)


class RoomSettingsRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    allow_guest_control: bool
    require_approval: bool
    chat_enabled: bool
    voice_enabled: bool
    sync_tolerance: float


class RoomSettingsUpdate(BaseModel):
    """Optional overrides applied on top of the default room settings."""

    allow_guest_control: bool | None = None
    require_approval: bool | None = None
    chat_enabled: bool | None = None
    voice_enabled: bool | None = None
    sync_tolerance: float | None = Field(default=None, ge=0)


class RoomCreate(BaseModel):
    """Payload for creating a new room."""

    name: constr(strip_whitespace=True, max_length=128) | None = Field(
        default=None, description="Human readable room name"
    )
    description: str | None = Field(default=None, max_length=1024)
    is_private: bool = Field(default=False, description="Private rooms are joinable by invite only")
    max_users: conint(ge=1, le=1000) | None = Field(
        default=None, description="Member capacity; server default when omitted"
    )
    settings: RoomSettingsUpdate | None = None

    def to_options(self) -> RoomOptions:
        overrides = self.settings or RoomSettingsUpdate()
        return RoomOptions(
            name=self.name or None,
            description=self.description,
            is_private=self.is_private,
            max_users=self.max_users,
            allow_guest_control=overrides.allow_guest_control,
            require_approval=overrides.require_approval,
            chat_enabled=overrides.chat_enabled,
            voice_enabled=overrides.voice_enabled,
            sync_tolerance=overrides.sync_tolerance,
        )


class VideoInfoSchema(BaseModel):
    """Video reference exchanged with clients."""

    model_config = ConfigDict(from_attributes=True)

    id: constr(min_length=1)
    title: str
    duration: str
    thumbnail: str = ""
    platform: VideoPlatform
    embed_url: str
    original_url: str

    def to_domain(self) -> VideoInfo:
        return VideoInfo(
            id=self.id,
            title=self.title,
            duration=self.duration,
            thumbnail=self.thumbnail,
            platform=self.platform,
            embed_url=self.embed_url,
            original_url=self.original_url,
        )


class RoomUserRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    name: str
    avatar: str
    role: RoomRole
    joined_at: datetime
    is_online: bool
    voice_enabled: bool
    is_muted: bool


class RoomRead(BaseModel):
    """Full room state returned to clients."""

    model_config = ConfigDict(from_attributes=True)

    id: str
    name: str
    description: str
    host_id: str
    host_name: str
    created_at: datetime
    is_private: bool
    invite_code: str | None = None
    max_users: int
    current_users: list[RoomUserRead]
    current_video: VideoInfoSchema | None = None
    is_playing: bool
    current_time: float
    settings: RoomSettingsRead

    @classmethod
    def for_viewer(cls, room: Room, viewer_id: str | None) -> "RoomRead":
        """Serialize *room*, hiding its invite code from non-members."""

        payload = cls.model_validate(room)
        if viewer_id is None or room.find_member(viewer_id) is None:
            payload.invite_code = None
        return payload


class RoomSummary(BaseModel):
    """Compact listing entry for public rooms."""

    id: str
    name: str
    description: str
    host_name: str
    member_count: int
    max_users: int
    is_playing: bool
    current_video: VideoInfoSchema | None = None

    @classmethod
    def from_room(cls, room: Room) -> "RoomSummary":
        return cls(
            id=room.id,
            name=room.name,
            description=room.description,
            host_name=room.host_name,
            member_count=room.member_count,
            max_users=room.max_users,
            is_playing=room.is_playing,
            current_video=(
                VideoInfoSchema.model_validate(room.current_video)
                if room.current_video is not None
                else None
            ),
        )


class JoinRequest(BaseModel):
    target: constr(strip_whitespace=True, min_length=1) = Field(
        ..., description="Room identifier or invite code"
    )


class VideoUpdate(BaseModel):
    """Switch the room video, given either resolved metadata or a raw link."""

    video: VideoInfoSchema | None = None
    url: constr(strip_whitespace=True, min_length=1) | None = None
    start_time: float = Field(default=0.0, ge=0)

    @model_validator(mode="after")
    def check_source(self) -> "VideoUpdate":
        if (self.video is None) == (self.url is None):
            raise ValueError("Provide exactly one of 'video' or 'url'")
        return self


class PlaybackUpdate(BaseModel):
    is_playing: bool
    current_time: float = Field(..., ge=0, description="Playback position in seconds")


class RoleUpdate(BaseModel):
    role: RoomRole


class VoiceStateUpdate(BaseModel):
    voice_enabled: bool | None = None
    muted: bool | None = None


class InviteCreate(BaseModel):
    """Payload for issuing an invite; ``expires_in_hours=null`` never expires."""

    room_id: constr(min_length=1)
    expires_in_hours: float | None = Field(default=24.0, gt=0, le=MAX_INVITE_TTL_HOURS)
    max_uses: conint(ge=1) | None = Field(default=None, description="Unlimited when omitted")


class InviteRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    code: str
    room_id: str
    created_by: str
    expires_at: datetime | None = None
    max_uses: int | None = None
    current_uses: int
    link: str

    @classmethod
    def from_invite(cls, invite: RoomInvite, link: str) -> "InviteRead":
        return cls(
            code=invite.code,
            room_id=invite.room_id,
            created_by=invite.created_by,
            expires_at=invite.expires_at,
            max_uses=invite.max_uses,
            current_uses=invite.current_uses,
            link=link,
        )


class ResolveRequest(BaseModel):
    url: constr(strip_whitespace=True, min_length=1)

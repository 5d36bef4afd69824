"""Room management API endpoints."""

from __future__ import annotations

from fastapi import APIRouter, Depends, Query, Response, status

from app.api.deps import (
    Caller,
    ensure_success,
    get_caller,
    get_media_resolver,
    get_optional_caller,
    get_session_controller,
    get_signal_relay,
    session_error,
)
from app.config import get_settings
from app.monitoring.metrics import media_resolutions_total
from app.schemas import (
    JoinRequest,
    PlaybackUpdate,
    RoleUpdate,
    RoomCreate,
    RoomRead,
    RoomSummary,
    VideoUpdate,
    VoiceStateUpdate,
)
from watchparty.media import MediaResolver
from watchparty.realtime import SignalRelay
from watchparty.rooms import SessionController, SessionErrorCode

router = APIRouter(prefix="/rooms", tags=["rooms"])

settings = get_settings()


@router.post("", response_model=RoomRead, status_code=status.HTTP_201_CREATED)
async def create_room(
    payload: RoomCreate,
    caller: Caller = Depends(get_caller),
    controller: SessionController = Depends(get_session_controller),
) -> RoomRead:
    """Create a room hosted by the caller."""

    room = await controller.create_room(caller.id, caller.name, payload.to_options())
    return RoomRead.for_viewer(room, caller.id)


@router.get("/public", response_model=list[RoomSummary])
def list_public_rooms(
    limit: int = Query(default=settings.public_rooms_limit, ge=0, le=settings.public_rooms_max_limit),
    controller: SessionController = Depends(get_session_controller),
) -> list[RoomSummary]:
    """Public rooms, most populated first."""

    return [RoomSummary.from_room(room) for room in controller.get_public_rooms(limit)]


@router.get("/mine", response_model=list[RoomRead])
def list_my_rooms(
    caller: Caller = Depends(get_caller),
    controller: SessionController = Depends(get_session_controller),
) -> list[RoomRead]:
    return [RoomRead.for_viewer(room, caller.id) for room in controller.get_user_rooms(caller.id)]


@router.post("/join", response_model=RoomRead)
async def join_room(
    payload: JoinRequest,
    caller: Caller = Depends(get_caller),
    controller: SessionController = Depends(get_session_controller),
) -> RoomRead:
    """Join by room identifier or invite code."""

    result = ensure_success(await controller.join_room(caller.id, caller.name, payload.target))
    return RoomRead.for_viewer(result.room, caller.id)


@router.get("/{room_id}", response_model=RoomRead)
def read_room(
    room_id: str,
    viewer_id: str | None = Depends(get_optional_caller),
    controller: SessionController = Depends(get_session_controller),
) -> RoomRead:
    room = controller.get_room(room_id)
    if room is None:
        raise session_error(SessionErrorCode.ROOM_NOT_FOUND)
    return RoomRead.for_viewer(room, viewer_id)


@router.post("/{room_id}/leave", response_model=RoomRead | None)
async def leave_room(
    room_id: str,
    caller: Caller = Depends(get_caller),
    controller: SessionController = Depends(get_session_controller),
    relay: SignalRelay = Depends(get_signal_relay),
) -> RoomRead | None:
    """Leave a room; returns ``null`` when the room closed as a result."""

    result = ensure_success(await controller.leave_room(caller.id, room_id))
    if result.room is None:
        await relay.disconnect_room(room_id, "Room closed")
        return None
    departed = await relay.disconnect_user(room_id, caller.id, "Left the room")
    if departed is not None:
        await relay.broadcast(
            room_id, {"type": "system", "event": "peer-left", "user": departed.to_public()}
        )
    return RoomRead.for_viewer(result.room, caller.id)


@router.delete("/{room_id}", status_code=status.HTTP_204_NO_CONTENT)
async def close_room(
    room_id: str,
    caller: Caller = Depends(get_caller),
    controller: SessionController = Depends(get_session_controller),
    relay: SignalRelay = Depends(get_signal_relay),
) -> Response:
    ensure_success(await controller.close_room(room_id, caller.id))
    await relay.disconnect_room(room_id, "Room closed")
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.put("/{room_id}/video", response_model=RoomRead)
async def update_room_video(
    room_id: str,
    payload: VideoUpdate,
    caller: Caller = Depends(get_caller),
    controller: SessionController = Depends(get_session_controller),
    resolver: MediaResolver = Depends(get_media_resolver),
) -> RoomRead:
    """Switch the room to a new video and start playing it.

    A raw ``url`` is resolved only once the caller may control playback;
    links that cannot be resolved answer 422.
    """

    if payload.video is not None:
        video = payload.video.to_domain()
    else:
        ensure_success(controller.check_video_control(room_id, caller.id))
        video = await resolver.resolve(payload.url)
        media_resolutions_total.labels(video.platform.value).inc()

    result = ensure_success(
        await controller.update_room_video(room_id, caller.id, video, payload.start_time)
    )
    return RoomRead.for_viewer(result.room, caller.id)


@router.put("/{room_id}/playback", response_model=RoomRead)
async def update_playback(
    room_id: str,
    payload: PlaybackUpdate,
    caller: Caller = Depends(get_caller),
    controller: SessionController = Depends(get_session_controller),
) -> RoomRead:
    result = ensure_success(
        await controller.update_playback_state(
            room_id, caller.id, payload.is_playing, payload.current_time
        )
    )
    return RoomRead.for_viewer(result.room, caller.id)


@router.put("/{room_id}/members/{target_id}/role", response_model=RoomRead)
async def update_member_role(
    room_id: str,
    target_id: str,
    payload: RoleUpdate,
    caller: Caller = Depends(get_caller),
    controller: SessionController = Depends(get_session_controller),
) -> RoomRead:
    """Promote or demote a member; the host role cannot be assigned."""

    result = ensure_success(
        await controller.set_member_role(room_id, caller.id, target_id, payload.role)
    )
    return RoomRead.for_viewer(result.room, caller.id)


@router.put("/{room_id}/voice", response_model=RoomRead)
async def update_voice_state(
    room_id: str,
    payload: VoiceStateUpdate,
    caller: Caller = Depends(get_caller),
    controller: SessionController = Depends(get_session_controller),
) -> RoomRead:
    result = ensure_success(
        await controller.set_voice_state(
            room_id, caller.id, voice_enabled=payload.voice_enabled, muted=payload.muted
        )
    )
    return RoomRead.for_viewer(result.room, caller.id)

"""Room invitation API endpoints."""

from __future__ import annotations

from fastapi import APIRouter, Depends, status

from app.api.deps import Caller, ensure_success, get_caller, get_session_controller
from app.schemas import InviteCreate, InviteRead, RoomRead
from watchparty.rooms import SessionController

router = APIRouter(prefix="/invites", tags=["invites"])


@router.post("", response_model=InviteRead, status_code=status.HTTP_201_CREATED)
async def create_invitation(
    payload: InviteCreate,
    caller: Caller = Depends(get_caller),
    controller: SessionController = Depends(get_session_controller),
) -> InviteRead:
    """Issue an invite code for a room the caller manages."""

    result = ensure_success(
        await controller.generate_invite(
            payload.room_id,
            caller.id,
            expires_in_hours=payload.expires_in_hours,
            max_uses=payload.max_uses,
        )
    )
    return InviteRead.from_invite(result.invite, result.link)


@router.post("/{code}", response_model=RoomRead)
async def accept_invitation(
    code: str,
    caller: Caller = Depends(get_caller),
    controller: SessionController = Depends(get_session_controller),
) -> RoomRead:
    """Join the room an invite code points at."""

    result = ensure_success(await controller.join_room(caller.id, caller.name, code.strip().upper()))
    return RoomRead.for_viewer(result.room, caller.id)

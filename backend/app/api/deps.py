"""FastAPI dependencies for the API layer."""

from __future__ import annotations

from dataclasses import dataclass

from fastapi import Header, HTTPException, status

from app.services.sessions import get_media_resolver, get_session_controller, get_signal_relay
from watchparty.rooms import ERROR_MESSAGES, SessionErrorCode, SessionResult

ERROR_STATUS: dict[SessionErrorCode, int] = {
    SessionErrorCode.ROOM_NOT_FOUND: status.HTTP_404_NOT_FOUND,
    SessionErrorCode.NOT_A_MEMBER: status.HTTP_404_NOT_FOUND,
    SessionErrorCode.INVITE_INVALID: status.HTTP_410_GONE,
    SessionErrorCode.ROOM_FULL: status.HTTP_409_CONFLICT,
    SessionErrorCode.UNAUTHORIZED_CONTROL: status.HTTP_403_FORBIDDEN,
    SessionErrorCode.UNAUTHORIZED_MANAGE: status.HTTP_403_FORBIDDEN,
    SessionErrorCode.INVALID_ROLE: status.HTTP_422_UNPROCESSABLE_ENTITY,
}


@dataclass(slots=True, frozen=True)
class Caller:
    """Identity of the user issuing a request."""

    id: str
    name: str


def get_caller(
    x_user_id: str = Header(..., min_length=1),
    x_user_name: str | None = Header(default=None),
) -> Caller:
    """Read the caller identity supplied by the fronting application."""

    user_id = x_user_id.strip()
    if not user_id:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="X-User-Id header must not be blank",
        )
    name = (x_user_name or "").strip() or user_id
    return Caller(id=user_id, name=name)


def get_optional_caller(x_user_id: str | None = Header(default=None)) -> str | None:
    if x_user_id is None:
        return None
    return x_user_id.strip() or None


def session_error(code: SessionErrorCode) -> HTTPException:
    return HTTPException(
        status_code=ERROR_STATUS[code],
        detail={"code": code.value, "message": ERROR_MESSAGES[code]},
    )


def ensure_success(result: SessionResult) -> SessionResult:
    """Raise the HTTP error matching a failed room command."""

    if result.error is not None:
        raise session_error(result.error)
    return result


__all__ = [
    "Caller",
    "ERROR_STATUS",
    "ensure_success",
    "get_caller",
    "get_media_resolver",
    "get_optional_caller",
    "get_session_controller",
    "get_signal_relay",
    "session_error",
]

"""WebSocket endpoint relaying voice signalling between room members."""

from __future__ import annotations

import asyncio
import json
import logging
import time
from collections.abc import AsyncIterator, Awaitable, Callable
from typing import Any, Dict, TypeVar

from fastapi import APIRouter, WebSocket, status
from fastapi.websockets import WebSocketDisconnect, WebSocketState

from app.config import get_settings
from app.monitoring.metrics import realtime_events_total
from app.services.sessions import services_for
from watchparty.realtime import safe_send_json
from watchparty.voice.signaling import MUTE_CHANGED, InvalidSignalError, signal_kind

router = APIRouter(prefix="/ws", tags=["ws"])

settings = get_settings()

logger = logging.getLogger(__name__)

T = TypeVar("T")


async def iter_keepalive_messages(
    websocket: WebSocket,
    receiver: Callable[[], Awaitable[T]],
    *,
    timeout_seconds: float | int | None,
    ping_interval_seconds: float | int | None,
    ping_payload: Dict[str, Any] | None = None,
) -> AsyncIterator[T]:
    """Yield messages from *receiver* while sending keepalive pings when idle."""

    ping_payload = ping_payload or {"type": "ping"}
    timeout = float(timeout_seconds) if timeout_seconds else 0.0
    interval = float(ping_interval_seconds) if ping_interval_seconds else 0.0
    last_activity = time.monotonic()
    last_ping_sent: float | None = None

    while True:
        try:
            if timeout > 0:
                message = await asyncio.wait_for(receiver(), timeout=timeout)
            else:
                message = await receiver()
        except asyncio.TimeoutError:
            if websocket.application_state != WebSocketState.CONNECTED:
                break

            now = time.monotonic()
            idle_long_enough = interval <= 0 or (
                now - last_activity >= interval
                and (last_ping_sent is None or now - last_ping_sent >= interval)
            )
            if idle_long_enough:
                if not await safe_send_json(websocket, ping_payload):
                    break
                last_ping_sent = now
            continue
        except (RuntimeError, WebSocketDisconnect):
            break
        else:
            last_activity = time.monotonic()
            last_ping_sent = None
            yield message


async def _send_error(websocket: WebSocket, detail: str) -> None:
    await safe_send_json(websocket, {"type": "error", "detail": detail})


def _caller_id(websocket: WebSocket) -> str | None:
    raw = websocket.query_params.get("user_id") or websocket.headers.get("x-user-id")
    if raw is None:
        return None
    return raw.strip() or None


@router.websocket("/signal/{room_id}")
async def websocket_signal_room(websocket: WebSocket, room_id: str) -> None:
    """Relay WebRTC offers, answers, candidates and mute changes inside a room."""

    services = services_for(websocket)
    controller = services.controller
    relay = services.relay

    user_id = _caller_id(websocket)
    if user_id is None:
        await websocket.close(code=status.WS_1008_POLICY_VIOLATION, reason="Missing user_id")
        return

    room = controller.get_room(room_id)
    if room is None:
        await websocket.close(code=status.WS_1008_POLICY_VIOLATION, reason="Room not found")
        return
    member = room.find_member(user_id)
    if member is None:
        await websocket.close(code=status.WS_1008_POLICY_VIOLATION, reason="Not a room member")
        return

    await websocket.accept()
    participant, snapshot, replaced = await relay.register(
        room_id, websocket, user_id=user_id, display_name=member.name
    )
    if replaced is not None:
        logger.info("User %s reconnected to signalling in room %s", user_id, room_id)
        try:
            await replaced.websocket.close(code=1000, reason="Replaced by a new connection")
        except RuntimeError:
            pass
    await controller.set_presence(room_id, user_id, True)

    await safe_send_json(
        websocket,
        {
            "type": "system",
            "event": "welcome",
            "user": participant.to_public(),
            "participants": snapshot,
        },
    )
    await relay.broadcast(
        room_id,
        {"type": "system", "event": "peer-joined", "user": participant.to_public()},
        exclude={user_id},
    )

    try:
        async for raw_message in iter_keepalive_messages(
            websocket,
            websocket.receive_text,
            timeout_seconds=settings.websocket_receive_timeout_seconds,
            ping_interval_seconds=settings.websocket_ping_interval_seconds,
        ):
            try:
                payload = json.loads(raw_message)
            except json.JSONDecodeError:
                await _send_error(websocket, "Invalid message format")
                continue

            if not isinstance(payload, dict):
                await _send_error(websocket, "Message payload must be a JSON object")
                continue

            message_type = payload.get("type")
            if message_type == "ping":
                await safe_send_json(websocket, {"type": "pong"})
                continue
            if message_type == "pong":
                continue
            if message_type != "signal":
                await _send_error(websocket, "Unsupported payload type")
                continue

            current = controller.get_room(room_id)
            if current is None or current.find_member(user_id) is None:
                await websocket.close(
                    code=status.WS_1008_POLICY_VIOLATION, reason="No longer a room member"
                )
                break

            signal = payload.get("signal")
            if not isinstance(signal, dict):
                await _send_error(websocket, "Signal body must be a JSON object")
                continue
            try:
                kind = signal_kind(signal)
            except InvalidSignalError as exc:
                await _send_error(websocket, str(exc))
                continue
            realtime_events_total.labels("signal", "in", kind).inc()

            target = payload.get("to")
            if target is not None and (not isinstance(target, str) or target == user_id):
                await _send_error(websocket, "Signal target must be another peer id")
                continue

            if kind == MUTE_CHANGED and isinstance(signal.get("muted"), bool):
                await controller.set_voice_state(room_id, user_id, muted=signal["muted"])

            delivered = await relay.relay(room_id, user_id, signal, to=target)
            if target is not None and not delivered:
                await _send_error(websocket, f"Peer {target} is not connected")
    except WebSocketDisconnect:
        pass
    finally:
        departed = await relay.unregister(room_id, user_id, websocket)
        if departed is not None:
            await controller.set_presence(room_id, user_id, False)
            await relay.broadcast(
                room_id,
                {"type": "system", "event": "peer-left", "user": departed.to_public()},
            )

"""Server-side relay for voice signalling between room members."""

from __future__ import annotations

import asyncio
import logging
from collections import defaultdict
from dataclasses import dataclass
from typing import Any, Dict, Iterable

from fastapi.websockets import WebSocket, WebSocketDisconnect, WebSocketState

from app.monitoring.metrics import realtime_connections, realtime_events_total

logger = logging.getLogger(__name__)


async def safe_send_json(websocket: WebSocket, data: dict[str, Any]) -> bool:
    """Safely send JSON data through websocket, handling disconnections gracefully.

    Returns True if message was sent successfully, False otherwise.
    """
    if websocket.application_state != WebSocketState.CONNECTED:
        return False
    try:
        await websocket.send_json(data)
        return True
    except (WebSocketDisconnect, RuntimeError) as e:
        logger.debug("Failed to send websocket message: %s", e)
        return False


@dataclass(slots=True)
class RelayParticipant:
    user_id: str
    display_name: str
    websocket: WebSocket

    def to_public(self) -> dict[str, Any]:
        return {"id": self.user_id, "name": self.display_name}


class SignalRelay:
    """Track signalling sockets per room and forward messages between them."""

    def __init__(self) -> None:
        self._rooms: Dict[str, Dict[str, RelayParticipant]] = defaultdict(dict)
        self._lock = asyncio.Lock()

    @property
    def connection_count(self) -> int:
        return sum(len(participants) for participants in self._rooms.values())

    async def register(
        self, room_id: str, websocket: WebSocket, *, user_id: str, display_name: str
    ) -> tuple[RelayParticipant, list[dict[str, Any]], RelayParticipant | None]:
        """Add a socket; a second socket for the same user replaces the first."""

        participant = RelayParticipant(
            user_id=user_id, display_name=display_name, websocket=websocket
        )
        async with self._lock:
            participants = self._rooms[room_id]
            replaced = participants.get(user_id)
            participants[user_id] = participant
            snapshot = self._snapshot_locked(room_id)
        if replaced is None:
            realtime_connections.labels("signal").inc()
        return participant, snapshot, replaced

    async def unregister(
        self, room_id: str, user_id: str, websocket: WebSocket
    ) -> RelayParticipant | None:
        async with self._lock:
            participants = self._rooms.get(room_id)
            if not participants:
                return None
            current = participants.get(user_id)
            if current is None or current.websocket is not websocket:
                return None
            participants.pop(user_id, None)
            if not participants:
                self._rooms.pop(room_id, None)
        realtime_connections.labels("signal").dec()
        return current

    async def snapshot(self, room_id: str) -> list[dict[str, Any]]:
        async with self._lock:
            return self._snapshot_locked(room_id)

    async def send_to(self, room_id: str, user_id: str, payload: dict[str, Any]) -> bool:
        async with self._lock:
            participant = self._rooms.get(room_id, {}).get(user_id)
        if participant is None:
            return False
        return await safe_send_json(participant.websocket, payload)

    async def broadcast(
        self,
        room_id: str,
        payload: dict[str, Any],
        *,
        exclude: Iterable[str] | None = None,
    ) -> int:
        exclude_set = set(exclude or ())
        async with self._lock:
            targets = [
                participant.websocket
                for user_id, participant in self._rooms.get(room_id, {}).items()
                if user_id not in exclude_set
            ]
        delivered = 0
        for websocket in targets:
            if await safe_send_json(websocket, payload):
                delivered += 1
        return delivered

    async def relay(
        self,
        room_id: str,
        sender_id: str,
        signal: dict[str, Any],
        *,
        to: str | None = None,
    ) -> bool:
        """Forward *signal* to one peer, or to every other peer when *to* is None."""

        kind = str(signal.get("kind", "unknown"))
        payload = {"type": "signal", "from": sender_id, "signal": signal}
        if to is not None:
            delivered = await self.send_to(room_id, to, payload)
        else:
            delivered = await self.broadcast(room_id, payload, exclude={sender_id}) > 0
        realtime_events_total.labels("signal", "out" if delivered else "dropped", kind).inc()
        if not delivered:
            logger.debug("Signal %s from %s in room %s reached nobody", kind, sender_id, room_id)
        return delivered

    async def disconnect_room(self, room_id: str, reason: str) -> None:
        async with self._lock:
            participants = list(self._rooms.pop(room_id, {}).values())
        for participant in participants:
            realtime_connections.labels("signal").dec()
            if participant.websocket.application_state == WebSocketState.CONNECTED:
                try:
                    await participant.websocket.close(code=1000, reason=reason)
                except RuntimeError:
                    continue

    async def disconnect_user(
        self, room_id: str, user_id: str, reason: str
    ) -> RelayParticipant | None:
        """Drop and close the socket of a user who is no longer a room member."""

        async with self._lock:
            participants = self._rooms.get(room_id)
            if not participants:
                return None
            participant = participants.pop(user_id, None)
            if not participants:
                self._rooms.pop(room_id, None)
        if participant is None:
            return None
        realtime_connections.labels("signal").dec()
        if participant.websocket.application_state == WebSocketState.CONNECTED:
            try:
                await participant.websocket.close(code=1000, reason=reason)
            except RuntimeError:
                logger.debug("Signal socket of %s in room %s already closed", user_id, room_id)
        return participant

    def _snapshot_locked(self, room_id: str) -> list[dict[str, Any]]:
        participants = self._rooms.get(room_id, {})
        return [participant.to_public() for participant in participants.values()]


__all__ = ["RelayParticipant", "SignalRelay", "safe_send_json"]

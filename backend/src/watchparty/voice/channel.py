"""Client side of the room signalling relay."""

from __future__ import annotations

import asyncio
import contextlib
import json
import logging
from typing import Any, Awaitable, Callable, Dict, List

import websockets
from websockets.exceptions import ConnectionClosed

from .signaling import SignalHandler, SignalingDeliveryError

logger = logging.getLogger(__name__)

# (event, user, participants); participants is only populated for "welcome".
PresenceHandler = Callable[[str, Dict[str, Any], List[Dict[str, Any]]], Awaitable[None]]


class WebSocketSignalingChannel:
    """:class:`SignalingChannel` speaking to ``/ws/signal/{room_id}``.

    Inbound signals and relay presence events are handed to the registered
    handlers one at a time, in the order the relay delivered them.
    """

    def __init__(self, url: str, *, open_timeout: float = 10.0) -> None:
        self._url = url
        self._open_timeout = open_timeout
        self._handlers: list[SignalHandler] = []
        self._presence_handlers: list[PresenceHandler] = []
        self._websocket: Any = None
        self._reader: asyncio.Task[None] | None = None

    @property
    def url(self) -> str:
        return self._url

    @property
    def connected(self) -> bool:
        return self._websocket is not None

    def on_message(self, handler: SignalHandler) -> None:
        self._handlers.append(handler)

    def on_presence(self, handler: PresenceHandler) -> None:
        self._presence_handlers.append(handler)

    async def connect(self) -> None:
        self._websocket = await websockets.connect(self._url, open_timeout=self._open_timeout)
        self._reader = asyncio.get_running_loop().create_task(self._read_loop())
        logger.info("Signalling channel connected to %s", self._url)

    async def close(self) -> None:
        websocket, self._websocket = self._websocket, None
        if websocket is not None:
            await websocket.close()
        if self._reader is not None:
            self._reader.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._reader
            self._reader = None

    async def send(self, peer_id: str, message: Dict[str, Any]) -> None:
        await self._send({"type": "signal", "to": peer_id, "signal": message})

    async def broadcast(self, message: Dict[str, Any]) -> None:
        await self._send({"type": "signal", "signal": message})

    async def _send(self, payload: Dict[str, Any]) -> None:
        websocket = self._websocket
        if websocket is None:
            raise SignalingDeliveryError("Signalling channel is not connected")
        try:
            await websocket.send(json.dumps(payload))
        except ConnectionClosed as exc:
            raise SignalingDeliveryError(f"Signalling connection closed: {exc}") from exc

    async def _read_loop(self) -> None:
        websocket = self._websocket
        try:
            async for raw in websocket:
                try:
                    payload = json.loads(raw)
                except json.JSONDecodeError:
                    logger.warning("Dropping non-JSON relay message")
                    continue
                if not isinstance(payload, dict):
                    continue
                message_type = payload.get("type")
                if message_type == "ping":
                    await websocket.send(json.dumps({"type": "pong"}))
                    continue
                if message_type == "error":
                    logger.warning("Signalling relay reported: %s", payload.get("detail"))
                    continue
                if message_type == "system":
                    await self._dispatch_presence(payload)
                    continue
                if message_type != "signal":
                    logger.debug("Ignoring relay message of type %s", message_type)
                    continue
                sender = payload.get("from")
                signal = payload.get("signal")
                if not isinstance(sender, str) or not isinstance(signal, dict):
                    continue
                for handler in list(self._handlers):
                    try:
                        await handler(sender, signal)
                    except Exception:
                        logger.exception("Signal handler failed for message from %s", sender)
        except ConnectionClosed:
            logger.info("Signalling channel to %s closed", self._url)
        finally:
            if self._websocket is websocket:
                self._websocket = None

    async def _dispatch_presence(self, payload: Dict[str, Any]) -> None:
        event = payload.get("event")
        user = payload.get("user")
        if not isinstance(event, str) or not isinstance(user, dict):
            return
        participants = [
            entry for entry in payload.get("participants") or [] if isinstance(entry, dict)
        ]
        for handler in list(self._presence_handlers):
            try:
                await handler(event, user, participants)
            except Exception:
                logger.exception("Presence handler failed for %s event", event)


__all__ = ["PresenceHandler", "WebSocketSignalingChannel"]

"""Ordered notification channel for voice mesh events."""

from __future__ import annotations

import asyncio
import contextlib
import inspect
import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Union

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class PeerJoined:
    """A remote stream became available."""

    peer_id: str
    stream: Any


@dataclass(frozen=True, slots=True)
class PeerLeft:
    peer_id: str


@dataclass(frozen=True, slots=True)
class PeerMuteChanged:
    peer_id: str
    muted: bool


@dataclass(frozen=True, slots=True)
class SpeakingChanged:
    user_id: str
    speaking: bool


VoiceEvent = Union[PeerJoined, PeerLeft, PeerMuteChanged, SpeakingChanged]
VoiceListener = Callable[[VoiceEvent], Union[Awaitable[None], None]]


class VoiceEventChannel:
    """Deliver events to listeners from a single pump task.

    Events reach every listener in emission order, which keeps the
    per-peer ordering of the coordinator intact. A failing listener is
    logged and does not stop delivery to the others.
    """

    def __init__(self) -> None:
        self._listeners: list[VoiceListener] = []
        self._queue: asyncio.Queue[VoiceEvent] | None = None
        self._pump: asyncio.Task[None] | None = None

    def subscribe(self, listener: VoiceListener) -> Callable[[], None]:
        self._listeners.append(listener)

        def unsubscribe() -> None:
            with contextlib.suppress(ValueError):
                self._listeners.remove(listener)

        return unsubscribe

    def emit(self, event: VoiceEvent) -> None:
        """Queue *event*; must be called from inside the running loop."""

        queue = self._ensure_pump()
        queue.put_nowait(event)

    async def drain(self) -> None:
        """Wait until every queued event has been delivered."""

        if self._queue is not None:
            await self._queue.join()

    async def aclose(self) -> None:
        await self.drain()
        if self._pump is not None:
            self._pump.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._pump
            self._pump = None

    def _ensure_pump(self) -> asyncio.Queue[VoiceEvent]:
        if self._queue is None:
            self._queue = asyncio.Queue()
        if self._pump is None or self._pump.done():
            self._pump = asyncio.get_running_loop().create_task(self._run(self._queue))
        return self._queue

    async def _run(self, queue: asyncio.Queue[VoiceEvent]) -> None:
        while True:
            event = await queue.get()
            try:
                for listener in list(self._listeners):
                    try:
                        result = listener(event)
                        if inspect.isawaitable(result):
                            await result
                    except Exception:
                        logger.exception("Voice event listener failed for %s", type(event).__name__)
            finally:
                queue.task_done()


__all__ = [
    "PeerJoined",
    "PeerLeft",
    "PeerMuteChanged",
    "SpeakingChanged",
    "VoiceEvent",
    "VoiceEventChannel",
    "VoiceListener",
]

"""Peer-to-peer voice mesh for one local participant of a room."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Mapping, Sequence

from .events import PeerJoined, PeerLeft, PeerMuteChanged, SpeakingChanged, VoiceEventChannel
from .interfaces import (
    ANALYSER_FFT_SIZE,
    AudioConstraints,
    LocalMediaSource,
    MediaAccessError,
    MediaCapture,
    PeerLink,
    PeerLinkFactory,
    PeerLinkHandlers,
)
from .signaling import (
    ANSWER,
    BYE,
    ICE_CANDIDATE,
    MUTE_CHANGED,
    OFFER,
    InvalidSignalError,
    SessionDescription,
    SignalingChannel,
    SignalingDeliveryError,
    answer_message,
    bye_message,
    candidate_message,
    mute_message,
    offer_message,
    signal_kind,
)
from .speaking import DEFAULT_SAMPLE_INTERVAL, DEFAULT_THRESHOLD, SpeakingDetector

logger = logging.getLogger(__name__)

DEFAULT_ICE_SERVERS: tuple[Mapping[str, Any], ...] = (
    {"urls": ["stun:stun.l.google.com:19302"]},
    {"urls": ["stun:stun1.l.google.com:19302"]},
)


class PeerPhase(str, Enum):
    IDLE = "idle"
    OFFERING = "offering"
    ANSWERING = "answering"
    CONNECTED = "connected"
    CLOSED = "closed"


class ConnectionStatus(str, Enum):
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"


@dataclass(slots=True)
class VoicePeerState:
    """Negotiation state kept for one remote participant."""

    peer_id: str
    link: PeerLink | None = None
    phase: PeerPhase = PeerPhase.IDLE
    remote_stream: Any = None
    muted: bool = False
    volume: int = 100


@dataclass(frozen=True, slots=True)
class VoiceUser:
    id: str
    name: str
    is_muted: bool
    is_speaking: bool
    volume: int


class VoiceMeshCoordinator:
    """Own the local capture and one negotiation state machine per peer.

    Signalling for a single peer is serialised with a FIFO lock so offers,
    answers and candidates apply in arrival order. Answers and candidates
    for unknown peers are ignored. Nothing here retries: failures are logged
    once and surfaced as ``False``.
    """

    def __init__(
        self,
        room_id: str,
        user_id: str,
        *,
        capture: MediaCapture,
        link_factory: PeerLinkFactory,
        channel: SignalingChannel,
        ice_servers: Sequence[Mapping[str, Any]] = DEFAULT_ICE_SERVERS,
        constraints: AudioConstraints | None = None,
        events: VoiceEventChannel | None = None,
        speaking_threshold: float = DEFAULT_THRESHOLD,
        speaking_interval: float = DEFAULT_SAMPLE_INTERVAL,
    ) -> None:
        self.room_id = room_id
        self.user_id = user_id
        self._capture = capture
        self._link_factory = link_factory
        self._channel = channel
        self._ice_servers = list(ice_servers)
        self._constraints = constraints or AudioConstraints()
        self._events = events or VoiceEventChannel()
        self._speaking_threshold = speaking_threshold
        self._speaking_interval = speaking_interval

        self._local_media: LocalMediaSource | None = None
        self._detector: SpeakingDetector | None = None
        self._peers: Dict[str, VoicePeerState] = {}
        self._peer_locks: Dict[str, asyncio.Lock] = {}
        self._joined = False
        self._muted = False

        channel.on_message(self.handle_signal)

    @property
    def events(self) -> VoiceEventChannel:
        return self._events

    @property
    def joined(self) -> bool:
        return self._joined

    @property
    def muted(self) -> bool:
        return self._muted

    @property
    def has_local_media(self) -> bool:
        return self._local_media is not None

    def peer(self, peer_id: str) -> VoicePeerState | None:
        return self._peers.get(peer_id)

    # ------------------------------------------------------------------
    # Local media
    # ------------------------------------------------------------------

    async def initialize_audio(self) -> bool:
        if self._local_media is not None:
            return True
        try:
            media = await self._capture.open(self._constraints)
        except MediaAccessError as exc:
            logger.warning(
                "Microphone access denied for %s in room %s: %s", self.user_id, self.room_id, exc
            )
            return False
        self._local_media = media
        self._muted = False
        self._start_speaking_detection(media)
        return True

    async def join_voice_chat(self) -> bool:
        if self._local_media is None and not await self.initialize_audio():
            return False
        self._joined = True
        logger.info("User %s joined voice in room %s", self.user_id, self.room_id)
        return True

    async def leave_voice_chat(self) -> None:
        was_joined, self._joined = self._joined, False
        peers = list(self._peers.values())
        self._peers.clear()
        # Held locks stay so a later signal for that peer still queues behind them.
        self._peer_locks = {
            peer_id: lock for peer_id, lock in self._peer_locks.items() if lock.locked()
        }

        if was_joined and peers:
            await self._broadcast(bye_message(self.user_id))

        for state in peers:
            state.phase = PeerPhase.CLOSED
        await asyncio.gather(*(self._close_link(state) for state in peers))

        if self._detector is not None:
            await self._detector.stop()
            self._detector = None

        media, self._local_media = self._local_media, None
        self._muted = False
        if media is not None:
            for track in media.audio_tracks():
                try:
                    track.stop()
                except Exception:
                    logger.warning("Failed to stop local audio track", exc_info=True)
            try:
                await media.close()
            except Exception:
                logger.warning("Failed to release local capture device", exc_info=True)
        if was_joined:
            logger.info("User %s left voice in room %s", self.user_id, self.room_id)

    def _start_speaking_detection(self, media: LocalMediaSource) -> None:
        try:
            analyser = media.create_analyser(ANALYSER_FFT_SIZE)
        except Exception:
            logger.warning("Speaking detection unavailable", exc_info=True)
            return

        def on_change(speaking: bool) -> None:
            self._events.emit(SpeakingChanged(user_id=self.user_id, speaking=speaking))

        self._detector = SpeakingDetector(
            analyser,
            on_change,
            threshold=self._speaking_threshold,
            interval=self._speaking_interval,
        )
        self._detector.start()

    # ------------------------------------------------------------------
    # Peer connections
    # ------------------------------------------------------------------

    async def create_peer_connection(self, peer_id: str) -> VoicePeerState:
        state, _ = await self._open_link(peer_id)
        return state

    async def send_offer(self, peer_id: str) -> bool:
        async with self._peer_lock(peer_id):
            state = self._peers.get(peer_id)
            if state is not None and state.phase is not PeerPhase.CLOSED and state.link is not None:
                link = state.link
            else:
                state, link = await self._open_link(peer_id)
            try:
                offer = await link.create_offer()
                await link.set_local_description(offer)
                offer = link.local_description or offer
            except Exception as exc:
                await self._negotiation_failed(state, OFFER, exc)
                return False
            if not self._is_current(state):
                logger.debug("Offer to %s dropped; the peer left during negotiation", peer_id)
                return False
            state.phase = PeerPhase.OFFERING
            return await self._deliver(peer_id, offer_message(offer))

    async def handle_offer(self, peer_id: str, offer: Any) -> bool:
        async with self._peer_lock(peer_id):
            try:
                description = SessionDescription.from_payload(offer)
            except InvalidSignalError as exc:
                logger.warning("Ignoring malformed offer from %s: %s", peer_id, exc)
                return False
            state, link = await self._open_link(peer_id)
            state.phase = PeerPhase.ANSWERING
            try:
                await link.set_remote_description(description)
                answer = await link.create_answer()
                await link.set_local_description(answer)
                answer = link.local_description or answer
            except Exception as exc:
                await self._negotiation_failed(state, OFFER, exc)
                return False
            if not self._is_current(state):
                logger.debug("Answer to %s dropped; the peer left during negotiation", peer_id)
                return False
            return await self._deliver(peer_id, answer_message(answer))

    async def handle_answer(self, peer_id: str, answer: Any) -> bool:
        async with self._peer_lock(peer_id):
            state = self._peers.get(peer_id)
            if state is None or state.link is None:
                logger.debug("Answer from %s arrived without a pending connection", peer_id)
                return False
            try:
                description = SessionDescription.from_payload(answer)
            except InvalidSignalError as exc:
                logger.warning("Ignoring malformed answer from %s: %s", peer_id, exc)
                return False
            try:
                await state.link.set_remote_description(description)
            except Exception as exc:
                await self._negotiation_failed(state, ANSWER, exc)
                return False
            return True

    async def handle_ice_candidate(self, peer_id: str, candidate: Mapping[str, Any]) -> bool:
        async with self._peer_lock(peer_id):
            state = self._peers.get(peer_id)
            if state is None or state.link is None:
                logger.debug("ICE candidate from %s arrived without a connection", peer_id)
                return False
            try:
                await state.link.add_ice_candidate(candidate)
            except Exception as exc:
                logger.warning("Failed to add ICE candidate from %s: %s", peer_id, exc)
                return False
            return True

    async def handle_signal(self, peer_id: str, message: Dict[str, Any]) -> None:
        """Dispatch an inbound message delivered by the signalling channel."""

        try:
            kind = signal_kind(message)
        except InvalidSignalError as exc:
            logger.warning("Dropping signal from %s: %s", peer_id, exc)
            return

        if kind == OFFER:
            await self.handle_offer(peer_id, message.get("description"))
        elif kind == ANSWER:
            await self.handle_answer(peer_id, message.get("description"))
        elif kind == ICE_CANDIDATE:
            candidate = message.get("candidate")
            if isinstance(candidate, Mapping):
                await self.handle_ice_candidate(peer_id, candidate)
            else:
                logger.debug("Ignoring empty ICE candidate from %s", peer_id)
        elif kind == MUTE_CHANGED:
            muted = bool(message.get("muted"))
            state = self._peers.get(peer_id)
            if state is not None:
                state.muted = muted
            self._events.emit(PeerMuteChanged(peer_id=peer_id, muted=muted))
        elif kind == BYE:
            await self.remove_peer(peer_id)

    async def remove_peer(self, peer_id: str) -> bool:
        if peer_id not in self._peers and peer_id not in self._peer_locks:
            return False
        # Waits for an in-flight negotiation with the peer to finish first.
        async with self._peer_lock(peer_id):
            state = self._peers.pop(peer_id, None)
            if state is None:
                return False
            state.phase = PeerPhase.CLOSED
            await self._close_link(state)
        self._events.emit(PeerLeft(peer_id=peer_id))
        return True

    # ------------------------------------------------------------------
    # Local controls and status
    # ------------------------------------------------------------------

    async def toggle_mute(self) -> bool:
        if self._local_media is None:
            return False
        self._muted = not self._muted
        for track in self._local_media.audio_tracks():
            track.enabled = not self._muted
        await self._broadcast(mute_message(self.user_id, self._muted))
        return self._muted

    def set_volume(self, peer_id: str, volume: int) -> bool:
        state = self._peers.get(peer_id)
        if state is None:
            return False
        state.volume = max(0, min(100, int(volume)))
        return True

    def get_connection_status(self) -> ConnectionStatus:
        if not self._joined:
            return ConnectionStatus.DISCONNECTED
        if any(
            state.link is not None and state.link.connection_state == "connected"
            for state in self._peers.values()
        ):
            return ConnectionStatus.CONNECTED
        return ConnectionStatus.CONNECTING

    def connected_peers(self) -> list[VoiceUser]:
        return [
            VoiceUser(
                id=state.peer_id,
                name=f"User {state.peer_id}",
                is_muted=state.muted,
                is_speaking=False,
                volume=state.volume,
            )
            for state in self._peers.values()
        ]

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _peer_lock(self, peer_id: str) -> asyncio.Lock:
        lock = self._peer_locks.get(peer_id)
        if lock is None:
            lock = self._peer_locks[peer_id] = asyncio.Lock()
        return lock

    async def _open_link(self, peer_id: str) -> tuple[VoicePeerState, PeerLink]:
        state = VoicePeerState(peer_id=peer_id)
        link = self._link_factory.create(self._ice_servers, self._handlers_for(state))
        state.link = link
        if self._local_media is not None:
            for track in self._local_media.audio_tracks():
                link.add_track(track)

        previous = self._peers.get(peer_id)
        self._peers[peer_id] = state
        if previous is not None:
            previous.phase = PeerPhase.CLOSED
            await self._close_link(previous)
        return state, link

    def _is_current(self, state: VoicePeerState) -> bool:
        return self._peers.get(state.peer_id) is state

    def _handlers_for(self, state: VoicePeerState) -> PeerLinkHandlers:
        async def on_track(stream: Any) -> None:
            if not self._is_current(state):
                return
            state.remote_stream = stream
            self._events.emit(PeerJoined(peer_id=state.peer_id, stream=stream))

        async def on_ice_candidate(candidate: Mapping[str, Any]) -> None:
            if self._is_current(state):
                await self._deliver(state.peer_id, candidate_message(candidate))

        async def on_connection_state_change(connection_state: str) -> None:
            logger.debug("Voice link with %s is %s", state.peer_id, connection_state)
            if not self._is_current(state):
                return
            if connection_state == "connected":
                state.phase = PeerPhase.CONNECTED
            elif connection_state in {"failed", "closed"}:
                logger.info("Voice link with %s %s", state.peer_id, connection_state)
                await self.remove_peer(state.peer_id)

        return PeerLinkHandlers(
            on_track=on_track,
            on_ice_candidate=on_ice_candidate,
            on_connection_state_change=on_connection_state_change,
        )

    async def _negotiation_failed(self, state: VoicePeerState, step: str, exc: Exception) -> None:
        logger.warning("Voice negotiation with %s failed during %s: %s", state.peer_id, step, exc)
        state.phase = PeerPhase.CLOSED
        if self._is_current(state):
            self._peers.pop(state.peer_id, None)
        await self._close_link(state)

    async def _close_link(self, state: VoicePeerState) -> None:
        if state.link is None:
            return
        try:
            await state.link.close()
        except Exception:
            logger.warning("Failed to close voice link with %s", state.peer_id, exc_info=True)

    async def _deliver(self, peer_id: str, message: Dict[str, Any]) -> bool:
        try:
            await self._channel.send(peer_id, message)
        except SignalingDeliveryError as exc:
            logger.warning("Signal %s to %s was not delivered: %s", message["kind"], peer_id, exc)
            return False
        return True

    async def _broadcast(self, message: Dict[str, Any]) -> bool:
        try:
            await self._channel.broadcast(message)
        except SignalingDeliveryError as exc:
            logger.warning("Broadcast of %s was not delivered: %s", message["kind"], exc)
            return False
        return True


__all__ = [
    "DEFAULT_ICE_SERVERS",
    "ConnectionStatus",
    "PeerPhase",
    "VoiceMeshCoordinator",
    "VoicePeerState",
    "VoiceUser",
]

"""Production media and transport adapters built on aiortc.

- Microphone capture through ffmpeg (``MediaPlayer``), fanned out with a
  ``MediaRelay`` so peer links and the analyser each get their own consumer.
- Mute implemented by a pass-through track that emits silence while disabled.
- Frequency analysis with numpy, shaped like a browser ``AnalyserNode``
  (Blackman window, dB scaling into 0..255, temporal smoothing).
"""

from __future__ import annotations

import logging
from typing import Any, Mapping, Sequence

import av
import numpy as np
from aiortc import (
    MediaStreamTrack,
    RTCConfiguration,
    RTCIceServer,
    RTCPeerConnection,
    RTCSessionDescription,
)
from aiortc.contrib.media import MediaPlayer, MediaRelay
from aiortc.sdp import candidate_from_sdp, candidate_to_sdp
from av.error import FFmpegError

from .interfaces import (
    ANALYSER_FFT_SIZE,
    AudioConstraints,
    MediaAccessError,
    PeerLinkHandlers,
)
from .signaling import SessionDescription

logger = logging.getLogger(__name__)

MIN_DECIBELS = -100.0
MAX_DECIBELS = -30.0
SMOOTHING_TIME_CONSTANT = 0.8


class MutableAudioTrack(MediaStreamTrack):
    """Pass-through audio track that outputs silence while disabled."""

    kind = "audio"

    def __init__(self, source: MediaStreamTrack) -> None:
        super().__init__()
        self._source = source
        self.enabled = True

    async def recv(self):  # type: ignore[override]
        frame = await self._source.recv()
        if not self.enabled and isinstance(frame, av.AudioFrame):
            for plane in frame.planes:
                plane.update(bytes(plane.buffer_size))
        return frame

    def stop(self) -> None:  # type: ignore[override]
        self._source.stop()
        super().stop()


def _mono_float(frame: av.AudioFrame) -> np.ndarray:
    samples = frame.to_ndarray()
    if samples.ndim == 2:
        if frame.format.is_planar:
            samples = samples.mean(axis=0)
        else:
            channels = len(frame.layout.channels)
            samples = samples.reshape(-1, channels).mean(axis=1)
    if np.issubdtype(samples.dtype, np.integer):
        scale = float(np.iinfo(samples.dtype).max) + 1.0
        return samples.astype(np.float64) / scale
    return samples.astype(np.float64)


class TrackFrequencyAnalyser:
    """Byte frequency data for the latest window of an audio track."""

    def __init__(self, track: MediaStreamTrack, fft_size: int = ANALYSER_FFT_SIZE) -> None:
        self._track = track
        self._fft_size = fft_size
        self.frequency_bin_count = fft_size // 2
        self._window = np.blackman(fft_size)
        self._buffer = np.zeros(fft_size)
        self._smoothed = np.zeros(self.frequency_bin_count)

    async def read_frequency_data(self) -> Sequence[int]:
        frame = await self._track.recv()
        samples = _mono_float(frame)
        self._buffer = np.concatenate((self._buffer, samples))[-self._fft_size :]
        spectrum = np.abs(np.fft.rfft(self._buffer * self._window))[: self.frequency_bin_count]
        spectrum /= self._fft_size
        self._smoothed = (
            SMOOTHING_TIME_CONSTANT * self._smoothed + (1 - SMOOTHING_TIME_CONSTANT) * spectrum
        )
        decibels = 20 * np.log10(np.maximum(self._smoothed, 1e-12))
        scaled = (decibels - MIN_DECIBELS) * (255.0 / (MAX_DECIBELS - MIN_DECIBELS))
        return np.clip(scaled, 0, 255).astype(np.uint8)

    def stop(self) -> None:
        self._track.stop()


class MicrophoneSource:
    """Local capture shared between peer links and the analyser."""

    def __init__(self, player: MediaPlayer) -> None:
        self._player = player
        self._relay = MediaRelay()
        self._track = MutableAudioTrack(self._relay.subscribe(player.audio))
        self._analysers: list[TrackFrequencyAnalyser] = []

    def audio_tracks(self) -> Sequence[MutableAudioTrack]:
        return [self._track]

    def create_analyser(self, fft_size: int = ANALYSER_FFT_SIZE) -> TrackFrequencyAnalyser:
        analyser = TrackFrequencyAnalyser(self._relay.subscribe(self._player.audio), fft_size)
        self._analysers.append(analyser)
        return analyser

    async def close(self) -> None:
        self._track.stop()
        for analyser in self._analysers:
            analyser.stop()
        self._analysers.clear()
        if self._player.audio is not None:
            self._player.audio.stop()


class MicrophoneCapture:
    """Open the platform microphone through ffmpeg.

    ffmpeg input devices expose no echo cancellation, noise suppression or
    gain control switches; the constraints are logged and left to the
    capture device configuration.
    """

    def __init__(
        self,
        device: str = "default",
        *,
        input_format: str | None = "pulse",
        options: Mapping[str, str] | None = None,
    ) -> None:
        self._device = device
        self._format = input_format
        self._options = dict(options or {})

    async def open(self, constraints: AudioConstraints) -> MicrophoneSource:
        logger.debug("Opening microphone %s (%s) with %s", self._device, self._format, constraints)
        try:
            player = MediaPlayer(self._device, format=self._format, options=self._options)
        except (FFmpegError, OSError) as exc:
            raise MediaAccessError(f"Cannot open capture device {self._device!r}: {exc}") from exc
        if player.audio is None:
            raise MediaAccessError(f"Capture device {self._device!r} exposes no audio stream")
        return MicrophoneSource(player)


def _candidate_payload(candidate: Any) -> dict[str, Any]:
    return {
        "candidate": "candidate:" + candidate_to_sdp(candidate),
        "sdpMid": candidate.sdpMid,
        "sdpMLineIndex": candidate.sdpMLineIndex,
    }


class AiortcPeerLink:
    """:class:`PeerLink` backed by ``RTCPeerConnection``."""

    def __init__(self, pc: RTCPeerConnection, handlers: PeerLinkHandlers) -> None:
        self._pc = pc

        @pc.on("track")
        async def on_track(track: MediaStreamTrack) -> None:
            await handlers.on_track(track)

        @pc.on("icecandidate")
        async def on_ice_candidate(candidate: Any) -> None:
            if candidate is not None:
                await handlers.on_ice_candidate(_candidate_payload(candidate))

        @pc.on("connectionstatechange")
        async def on_connection_state_change() -> None:
            await handlers.on_connection_state_change(pc.connectionState)

    @property
    def connection_state(self) -> str:
        return self._pc.connectionState

    @property
    def local_description(self) -> SessionDescription | None:
        description = self._pc.localDescription
        if description is None:
            return None
        return SessionDescription(type=description.type, sdp=description.sdp)

    def add_track(self, track: MediaStreamTrack) -> None:
        self._pc.addTrack(track)

    async def create_offer(self) -> SessionDescription:
        offer = await self._pc.createOffer()
        return SessionDescription(type=offer.type, sdp=offer.sdp)

    async def create_answer(self) -> SessionDescription:
        answer = await self._pc.createAnswer()
        return SessionDescription(type=answer.type, sdp=answer.sdp)

    async def set_local_description(self, description: SessionDescription) -> None:
        await self._pc.setLocalDescription(
            RTCSessionDescription(sdp=description.sdp, type=description.type)
        )

    async def set_remote_description(self, description: SessionDescription) -> None:
        await self._pc.setRemoteDescription(
            RTCSessionDescription(sdp=description.sdp, type=description.type)
        )

    async def add_ice_candidate(self, candidate: Mapping[str, Any]) -> None:
        raw = candidate.get("candidate")
        if not raw:
            logger.debug("Skipping end-of-candidates marker")
            return
        ice = candidate_from_sdp(str(raw).removeprefix("candidate:"))
        ice.sdpMid = candidate.get("sdpMid")
        ice.sdpMLineIndex = candidate.get("sdpMLineIndex")
        await self._pc.addIceCandidate(ice)

    async def close(self) -> None:
        await self._pc.close()


class AiortcPeerLinkFactory:
    def create(
        self, ice_servers: Sequence[Mapping[str, Any]], handlers: PeerLinkHandlers
    ) -> AiortcPeerLink:
        configuration = RTCConfiguration(
            iceServers=[
                RTCIceServer(
                    urls=server["urls"],
                    username=server.get("username"),
                    credential=server.get("credential"),
                )
                for server in ice_servers
            ]
        )
        return AiortcPeerLink(RTCPeerConnection(configuration=configuration), handlers)


__all__ = [
    "AiortcPeerLink",
    "AiortcPeerLinkFactory",
    "MicrophoneCapture",
    "MicrophoneSource",
    "MutableAudioTrack",
    "TrackFrequencyAnalyser",
]

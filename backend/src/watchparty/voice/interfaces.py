"""Capability contracts between the voice mesh and the media/transport stack.

The coordinator only talks to these protocols; ``aiortc_adapters`` provides
the production implementations and tests provide in-memory fakes.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Mapping, Protocol, Sequence

from .signaling import SessionDescription

ANALYSER_FFT_SIZE = 256


class MediaAccessError(Exception):
    """Raised when the local capture device cannot be opened."""


@dataclass(frozen=True, slots=True)
class AudioConstraints:
    """Processing requested from the capture device."""

    echo_cancellation: bool = True
    noise_suppression: bool = True
    auto_gain_control: bool = True


class LocalAudioTrack(Protocol):
    enabled: bool

    def stop(self) -> None:
        ...


class FrequencyAnalyser(Protocol):
    """Frequency-domain view of the local capture.

    ``read_frequency_data`` returns ``frequency_bin_count`` byte magnitudes
    (0..255) for the most recent audio window.
    """

    frequency_bin_count: int

    async def read_frequency_data(self) -> Sequence[int]:
        ...


class LocalMediaSource(Protocol):
    def audio_tracks(self) -> Sequence[LocalAudioTrack]:
        ...

    def create_analyser(self, fft_size: int = ANALYSER_FFT_SIZE) -> FrequencyAnalyser:
        ...

    async def close(self) -> None:
        ...


class MediaCapture(Protocol):
    async def open(self, constraints: AudioConstraints) -> LocalMediaSource:
        ...


@dataclass(slots=True)
class PeerLinkHandlers:
    """Callbacks a link invokes while negotiating with one remote peer."""

    on_track: Callable[[Any], Awaitable[None]]
    on_ice_candidate: Callable[[Mapping[str, Any]], Awaitable[None]]
    on_connection_state_change: Callable[[str], Awaitable[None]]


class PeerLink(Protocol):
    """One peer-to-peer connection."""

    @property
    def connection_state(self) -> str:
        ...

    @property
    def local_description(self) -> SessionDescription | None:
        ...

    def add_track(self, track: LocalAudioTrack) -> None:
        ...

    async def create_offer(self) -> SessionDescription:
        ...

    async def create_answer(self) -> SessionDescription:
        ...

    async def set_local_description(self, description: SessionDescription) -> None:
        ...

    async def set_remote_description(self, description: SessionDescription) -> None:
        ...

    async def add_ice_candidate(self, candidate: Mapping[str, Any]) -> None:
        ...

    async def close(self) -> None:
        ...


class PeerLinkFactory(Protocol):
    def create(
        self, ice_servers: Sequence[Mapping[str, Any]], handlers: PeerLinkHandlers
    ) -> PeerLink:
        ...


__all__ = [
    "ANALYSER_FFT_SIZE",
    "AudioConstraints",
    "FrequencyAnalyser",
    "LocalAudioTrack",
    "LocalMediaSource",
    "MediaAccessError",
    "MediaCapture",
    "PeerLink",
    "PeerLinkFactory",
    "PeerLinkHandlers",
]

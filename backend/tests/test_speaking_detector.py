from __future__ import annotations

import asyncio
from typing import Sequence

import pytest

from watchparty.voice import PeerLeft, SpeakingDetector, VoiceEventChannel
from watchparty.voice.speaking import mean_magnitude


class ScriptedAnalyser:
    frequency_bin_count = 4

    def __init__(self, frames: list[list[int]]) -> None:
        self._frames = list(frames)
        self.reads = 0

    async def read_frequency_data(self) -> Sequence[int]:
        self.reads += 1
        await asyncio.sleep(0)
        if self._frames:
            return self._frames.pop(0)
        return [0, 0, 0, 0]


class BrokenAnalyser:
    frequency_bin_count = 4

    async def read_frequency_data(self) -> Sequence[int]:
        raise OSError("capture device vanished")


def test_mean_magnitude_handles_empty_window() -> None:
    assert mean_magnitude([]) == 0.0
    assert mean_magnitude([0, 20, 40]) == 20.0


def test_sample_is_edge_triggered() -> None:
    changes: list[bool] = []
    detector = SpeakingDetector(ScriptedAnalyser([]), changes.append, threshold=10)

    results = [detector.sample(frame) for frame in ([50] * 4, [60] * 4, [10] * 4, [0] * 4, [11] * 4)]

    assert results == [True, False, True, False, True]
    assert changes == [True, False, True]
    assert detector.speaking is True


@pytest.mark.anyio("asyncio")
async def test_loop_samples_until_stopped() -> None:
    changes: list[bool] = []
    analyser = ScriptedAnalyser([[30] * 4, [30] * 4, [0] * 4])
    detector = SpeakingDetector(analyser, changes.append, threshold=10, interval=0)

    detector.start()
    assert detector.running
    while analyser.reads < 5:
        await asyncio.sleep(0)
    await detector.stop()

    assert changes == [True, False]
    assert not detector.running
    assert detector.speaking is False


@pytest.mark.anyio("asyncio")
async def test_loop_ends_when_analyser_fails() -> None:
    detector = SpeakingDetector(BrokenAnalyser(), lambda speaking: None, interval=0)

    detector.start()
    for _ in range(3):
        await asyncio.sleep(0)

    assert not detector.running
    await detector.stop()


@pytest.mark.anyio("asyncio")
async def test_event_channel_keeps_order_and_survives_failing_listener() -> None:
    channel = VoiceEventChannel()
    received: list[str] = []

    def broken(event) -> None:
        raise RuntimeError("listener bug")

    async def slow(event) -> None:
        await asyncio.sleep(0)
        received.append(event.peer_id)

    channel.subscribe(broken)
    unsubscribe = channel.subscribe(slow)
    for peer_id in ("a", "b", "c"):
        channel.emit(PeerLeft(peer_id=peer_id))
    await channel.drain()
    unsubscribe()
    channel.emit(PeerLeft(peer_id="d"))
    await channel.aclose()

    assert received == ["a", "b", "c"]

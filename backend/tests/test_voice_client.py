"""Signalling channel, voice client wiring and the numpy audio adapters."""

from __future__ import annotations

import asyncio
import json
from typing import Any

import av
import httpx
import numpy as np
import pytest

from watchparty.voice import channel as channel_module
from watchparty.voice.aiortc_adapters import MutableAudioTrack, TrackFrequencyAnalyser
from watchparty.voice.channel import WebSocketSignalingChannel
from watchparty.voice.client import (
    VoiceClientConfig,
    attach_presence,
    build_voice_session,
    fetch_voice_config,
    parse_args,
)
from watchparty.voice.signaling import SignalingDeliveryError


class DummyConnection:
    """Stands in for a ``websockets`` client connection."""

    def __init__(self) -> None:
        self.inbox: asyncio.Queue[str | None] = asyncio.Queue()
        self.sent: list[dict[str, Any]] = []
        self.closed = False

    async def send(self, raw: str) -> None:
        self.sent.append(json.loads(raw))

    async def close(self) -> None:
        self.closed = True
        await self.inbox.put(None)

    def deliver(self, payload: Any) -> None:
        self.inbox.put_nowait(payload if isinstance(payload, str) else json.dumps(payload))

    def __aiter__(self):
        return self._iterate()

    async def _iterate(self):
        while True:
            raw = await self.inbox.get()
            if raw is None:
                return
            yield raw


class DummyCoordinator:
    def __init__(self, user_id: str) -> None:
        self.user_id = user_id
        self.offers: list[str] = []
        self.removed: list[str] = []

    async def send_offer(self, peer_id: str) -> bool:
        self.offers.append(peer_id)
        return True

    async def remove_peer(self, peer_id: str) -> bool:
        self.removed.append(peer_id)
        return True


class FrameTrack:
    def __init__(self, frames: list[av.AudioFrame]) -> None:
        self._frames = list(frames)
        self.stopped = False

    async def recv(self) -> av.AudioFrame:
        return self._frames.pop(0)

    def stop(self) -> None:
        self.stopped = True


def _frame(samples: np.ndarray) -> av.AudioFrame:
    frame = av.AudioFrame.from_ndarray(
        samples.astype(np.int16).reshape(1, -1), format="s16", layout="mono"
    )
    frame.sample_rate = 48000
    return frame


async def _wait_for(condition) -> None:
    for _ in range(200):
        if condition():
            return
        await asyncio.sleep(0)
    raise AssertionError("condition not reached")


@pytest.fixture()
def connection(monkeypatch: pytest.MonkeyPatch) -> DummyConnection:
    dummy = DummyConnection()

    async def fake_connect(url: str, **kwargs: Any) -> DummyConnection:
        dummy.url = url
        return dummy

    monkeypatch.setattr(channel_module.websockets, "connect", fake_connect)
    return dummy


@pytest.mark.anyio("asyncio")
async def test_channel_wraps_outgoing_signals(connection: DummyConnection) -> None:
    channel = WebSocketSignalingChannel("ws://relay/ws/signal/room_1?user_id=alice")

    with pytest.raises(SignalingDeliveryError):
        await channel.send("bob", {"kind": "offer"})

    await channel.connect()
    await channel.send("bob", {"kind": "offer"})
    await channel.broadcast({"kind": "mute-changed", "muted": True})
    await channel.close()

    assert connection.url == "ws://relay/ws/signal/room_1?user_id=alice"
    assert connection.sent == [
        {"type": "signal", "to": "bob", "signal": {"kind": "offer"}},
        {"type": "signal", "signal": {"kind": "mute-changed", "muted": True}},
    ]
    assert connection.closed
    assert not channel.connected


@pytest.mark.anyio("asyncio")
async def test_channel_dispatches_signals_and_answers_pings(connection: DummyConnection) -> None:
    channel = WebSocketSignalingChannel("ws://relay/ws/signal/room_1?user_id=alice")
    received: list[tuple[str, dict[str, Any]]] = []

    async def failing(sender: str, signal: dict[str, Any]) -> None:
        raise RuntimeError("handler bug")

    async def record(sender: str, signal: dict[str, Any]) -> None:
        received.append((sender, signal))

    channel.on_message(failing)
    channel.on_message(record)
    await channel.connect()

    connection.deliver("not json")
    connection.deliver({"type": "ping"})
    connection.deliver({"type": "error", "detail": "Peer bob is not connected"})
    connection.deliver({"type": "signal", "signal": {"kind": "offer"}})
    connection.deliver({"type": "signal", "from": "bob", "signal": {"kind": "answer"}})
    await _wait_for(lambda: received)
    await channel.close()

    assert received == [("bob", {"kind": "answer"})]
    assert connection.sent == [{"type": "pong"}]


@pytest.mark.anyio("asyncio")
async def test_presence_events_drive_offers_and_removal(connection: DummyConnection) -> None:
    channel = WebSocketSignalingChannel("ws://relay/ws/signal/room_1?user_id=alice")
    coordinator = DummyCoordinator("alice")
    attach_presence(coordinator, channel)
    await channel.connect()

    connection.deliver(
        {
            "type": "system",
            "event": "welcome",
            "user": {"id": "alice", "name": "Alice"},
            "participants": [
                {"id": "bob", "name": "Bob"},
                {"id": "alice", "name": "Alice"},
                {"id": "carol", "name": "Carol"},
            ],
        }
    )
    connection.deliver({"type": "system", "event": "peer-joined", "user": {"id": "dave"}})
    connection.deliver({"type": "system", "event": "peer-left", "user": {"id": "bob"}})
    await _wait_for(lambda: coordinator.removed)
    await channel.close()

    assert coordinator.offers == ["bob", "carol"]
    assert coordinator.removed == ["bob"]


@pytest.mark.anyio("asyncio")
async def test_fetch_voice_config_reads_server_options() -> None:
    requests: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        requests.append(request)
        return httpx.Response(
            200,
            json={
                "iceServers": [{"urls": ["turn:turn.example:3478"], "username": "u", "credential": "c"}],
                "signalUrl": "wss://watch.example/ws/signal",
                "speaking": {"threshold": 14, "fftSize": 256, "sampleInterval": 0.05},
            },
        )

    async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
        config = await fetch_voice_config("https://watch.example/", http_client=client)

    assert str(requests[0].url) == "https://watch.example/api/config/webrtc"
    assert config.signal_url == "wss://watch.example/ws/signal"
    assert config.ice_servers[0]["credential"] == "c"
    assert config.speaking_threshold == 14.0
    assert config.speaking_interval == 0.05


def test_config_falls_back_to_default_stun() -> None:
    config = VoiceClientConfig.from_payload({"signalUrl": "ws://localhost:8000/ws/signal/"})

    assert config.signal_url == "ws://localhost:8000/ws/signal"
    assert [server["urls"] for server in config.ice_servers] == [
        ["stun:stun.l.google.com:19302"],
        ["stun:stun1.l.google.com:19302"],
    ]


@pytest.mark.anyio("asyncio")
async def test_build_voice_session_targets_room_socket() -> None:
    config = VoiceClientConfig(signal_url="wss://watch.example/ws/signal")

    coordinator, channel = build_voice_session("room_1", "guest one", config)

    assert channel.url == "wss://watch.example/ws/signal/room_1?user_id=guest+one"
    assert (coordinator.room_id, coordinator.user_id) == ("room_1", "guest one")
    assert not coordinator.joined


def test_parse_args_defaults() -> None:
    args = parse_args(["room_1", "alice", "--muted"])

    assert (args.room, args.user, args.muted) == ("room_1", "alice", True)
    assert args.api == "http://localhost:8000"
    assert args.format == "pulse"


@pytest.mark.anyio("asyncio")
async def test_frequency_analyser_reports_tone_energy() -> None:
    ticks = np.arange(256)
    tone = np.sin(2 * np.pi * 16 * ticks / 256) * 16000
    loud = TrackFrequencyAnalyser(FrameTrack([_frame(tone)]))
    quiet = TrackFrequencyAnalyser(FrameTrack([_frame(np.zeros(256))]))

    loud_data = await loud.read_frequency_data()
    quiet_data = await quiet.read_frequency_data()

    assert len(loud_data) == loud.frequency_bin_count == 128
    assert int(np.argmax(loud_data)) == 16
    assert max(loud_data) > 100
    assert max(quiet_data) == 0


@pytest.mark.anyio("asyncio")
async def test_muted_track_emits_silence() -> None:
    tone = np.full(256, 1200)
    source = FrameTrack([_frame(tone), _frame(tone)])
    track = MutableAudioTrack(source)

    live = await track.recv()
    track.enabled = False
    silenced = await track.recv()
    track.stop()

    assert live.to_ndarray().max() == 1200
    assert silenced.to_ndarray().max() == 0
    assert source.stopped

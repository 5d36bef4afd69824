"""Join the voice overlay of a watch party room from the command line."""

from __future__ import annotations

import argparse
import asyncio
import contextlib
import logging
import signal
import sys
from dataclasses import dataclass, field
from typing import Any, Dict, List
from urllib.parse import urlencode

import httpx

from .aiortc_adapters import AiortcPeerLinkFactory, MicrophoneCapture
from .channel import WebSocketSignalingChannel
from .coordinator import DEFAULT_ICE_SERVERS, VoiceMeshCoordinator
from .events import PeerJoined, PeerLeft, PeerMuteChanged, SpeakingChanged, VoiceEvent
from .speaking import DEFAULT_SAMPLE_INTERVAL, DEFAULT_THRESHOLD

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class VoiceClientConfig:
    """Runtime options published by ``GET /api/config/webrtc``."""

    signal_url: str
    ice_servers: List[Dict[str, Any]] = field(
        default_factory=lambda: [dict(server) for server in DEFAULT_ICE_SERVERS]
    )
    speaking_threshold: float = DEFAULT_THRESHOLD
    speaking_interval: float = DEFAULT_SAMPLE_INTERVAL

    @classmethod
    def from_payload(cls, payload: Dict[str, Any]) -> "VoiceClientConfig":
        speaking = payload.get("speaking") or {}
        config = cls(signal_url=str(payload["signalUrl"]).rstrip("/"))
        if payload.get("iceServers"):
            config.ice_servers = list(payload["iceServers"])
        if speaking.get("threshold") is not None:
            config.speaking_threshold = float(speaking["threshold"])
        if speaking.get("sampleInterval"):
            config.speaking_interval = float(speaking["sampleInterval"])
        return config


async def fetch_voice_config(
    api_base: str, *, http_client: httpx.AsyncClient | None = None
) -> VoiceClientConfig:
    url = f"{api_base.rstrip('/')}/api/config/webrtc"
    owns_client = http_client is None
    client = http_client or httpx.AsyncClient(timeout=10.0)
    try:
        response = await client.get(url)
        response.raise_for_status()
        return VoiceClientConfig.from_payload(response.json())
    finally:
        if owns_client:
            await client.aclose()


def signal_url_for(config: VoiceClientConfig, room_id: str, user_id: str) -> str:
    return f"{config.signal_url}/{room_id}?{urlencode({'user_id': user_id})}"


def attach_presence(coordinator: VoiceMeshCoordinator, channel: WebSocketSignalingChannel) -> None:
    """Offer to everyone already present on arrival and drop peers as they leave.

    Only the newcomer sends offers, so two peers never offer to each other.
    """

    async def on_presence(
        event: str, user: Dict[str, Any], participants: List[Dict[str, Any]]
    ) -> None:
        if event == "welcome":
            for participant in participants:
                peer_id = participant.get("id")
                if isinstance(peer_id, str) and peer_id != coordinator.user_id:
                    await coordinator.send_offer(peer_id)
        elif event == "peer-left":
            peer_id = user.get("id")
            if isinstance(peer_id, str):
                await coordinator.remove_peer(peer_id)

    channel.on_presence(on_presence)


def build_voice_session(
    room_id: str,
    user_id: str,
    config: VoiceClientConfig,
    *,
    device: str = "default",
    input_format: str | None = "pulse",
) -> tuple[VoiceMeshCoordinator, WebSocketSignalingChannel]:
    channel = WebSocketSignalingChannel(signal_url_for(config, room_id, user_id))
    coordinator = VoiceMeshCoordinator(
        room_id,
        user_id,
        capture=MicrophoneCapture(device, input_format=input_format),
        link_factory=AiortcPeerLinkFactory(),
        channel=channel,
        ice_servers=config.ice_servers,
        speaking_threshold=config.speaking_threshold,
        speaking_interval=config.speaking_interval,
    )
    attach_presence(coordinator, channel)
    return coordinator, channel


def _log_event(event: VoiceEvent) -> None:
    if isinstance(event, PeerJoined):
        logger.info("peer %s joined", event.peer_id)
    elif isinstance(event, PeerLeft):
        logger.info("peer %s left", event.peer_id)
    elif isinstance(event, PeerMuteChanged):
        logger.info("peer %s %s", event.peer_id, "muted" if event.muted else "unmuted")
    elif isinstance(event, SpeakingChanged):
        logger.info("%s speaking", "started" if event.speaking else "stopped")


async def run_voice_client(args: argparse.Namespace) -> int:
    config = await fetch_voice_config(args.api)
    coordinator, channel = build_voice_session(
        args.room,
        args.user,
        config,
        device=args.device,
        input_format=args.format or None,
    )
    coordinator.events.subscribe(_log_event)

    if not await coordinator.join_voice_chat():
        logger.error("could not open microphone %s", args.device)
        return 1

    stop = asyncio.Event()
    loop = asyncio.get_running_loop()
    for signum in (signal.SIGINT, signal.SIGTERM):  # pragma: no cover - platform specific
        with contextlib.suppress(NotImplementedError, RuntimeError):
            loop.add_signal_handler(signum, stop.set)

    try:
        await channel.connect()
        if args.muted:
            await coordinator.toggle_mute()
        await stop.wait()
    finally:
        await coordinator.leave_voice_chat()
        await channel.close()
        await coordinator.events.aclose()
    return 0


def parse_args(argv: list[str]) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description=__doc__)
    parser.add_argument("room", help="Room identifier, e.g. room_k3j9x2a1b")
    parser.add_argument("user", help="Member id used when joining the room")
    parser.add_argument(
        "--api",
        default="http://localhost:8000",
        help="Base URL of the watch party API",
    )
    parser.add_argument("--device", default="default", help="ffmpeg capture device")
    parser.add_argument(
        "--format",
        default="pulse",
        help="ffmpeg input format for the capture device (empty to autodetect)",
    )
    parser.add_argument("--muted", action="store_true", help="Join with the microphone muted")
    parser.add_argument(
        "--log-level",
        default="INFO",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Log verbosity level",
    )
    return parser.parse_args(argv)


def main(argv: list[str] | None = None) -> int:
    args = parse_args(argv if argv is not None else sys.argv[1:])
    logging.basicConfig(
        level=getattr(logging, args.log_level.upper(), logging.INFO),
        format="%(asctime)s [%(levelname)s] %(message)s",
    )
    try:
        return asyncio.run(run_voice_client(args))
    except httpx.HTTPError as exc:
        logger.error("could not load voice configuration: %s", exc)
        return 2
    except KeyboardInterrupt:  # pragma: no cover - manual interruption
        return 130


if __name__ == "__main__":
    raise SystemExit(main())

"""Configuration endpoints for exposing runtime options to the frontend."""

from __future__ import annotations

from fastapi import APIRouter, Request

from app.config import get_settings

router = APIRouter(prefix="/config", tags=["config"])


def _signal_base_url(request: Request) -> str:
    """Websocket origin matching the scheme and host the request arrived on."""

    forwarded_proto = request.headers.get("x-forwarded-proto", "").split(",")[0].strip()
    secure = (forwarded_proto or request.url.scheme).lower() in {"https", "wss"}
    host = (request.headers.get("x-forwarded-host") or request.headers.get("host") or "").split(",")[0].strip()
    if not host:
        host = request.url.netloc
    return f"{'wss' if secure else 'ws'}://{host}/ws/signal"


@router.get("/webrtc")
def read_webrtc_config(request: Request) -> dict[str, object]:
    """Expose WebRTC ICE configuration and voice chat defaults."""

    settings = get_settings()
    return {
        "iceServers": settings.webrtc_ice_servers_payload,
        "signalUrl": _signal_base_url(request),
        "speaking": {
            "threshold": settings.speaking_threshold,
            "fftSize": settings.speaking_fft_size,
            "sampleInterval": settings.speaking_sample_interval_seconds,
        },
        "keepalive": {
            "timeout": settings.websocket_receive_timeout_seconds,
            "pingInterval": settings.websocket_ping_interval_seconds,
        },
    }

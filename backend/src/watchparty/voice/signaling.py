"""Helpers for the WebRTC signalling payloads.

Voice negotiation messages travel through an opaque transport; this module
owns their shape so the coordinator, the relay endpoint and the client
channel agree on it.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, Mapping, Protocol

OFFER = "offer"
ANSWER = "answer"
ICE_CANDIDATE = "ice-candidate"
MUTE_CHANGED = "mute-changed"
BYE = "bye"

SIGNAL_KINDS = frozenset({OFFER, ANSWER, ICE_CANDIDATE, MUTE_CHANGED, BYE})

SignalHandler = Callable[[str, Dict[str, Any]], Awaitable[None]]


class SignalingDeliveryError(Exception):
    """Raised by a channel when a message could not be handed to the transport."""


class InvalidSignalError(ValueError):
    """Raised when an inbound payload is not a usable signalling message."""


class SignalingChannel(Protocol):
    """Transport used by the voice coordinator to reach remote peers."""

    async def send(self, peer_id: str, message: Dict[str, Any]) -> None:
        ...

    async def broadcast(self, message: Dict[str, Any]) -> None:
        ...

    def on_message(self, handler: SignalHandler) -> None:
        ...


@dataclass(frozen=True, slots=True)
class SessionDescription:
    """SDP blob exchanged during offer/answer."""

    type: str
    sdp: str

    @classmethod
    def from_payload(cls, payload: Any) -> "SessionDescription":
        if isinstance(payload, SessionDescription):
            return payload
        if not isinstance(payload, Mapping):
            raise InvalidSignalError("Session description must be an object")
        sdp_type = payload.get("type")
        sdp = payload.get("sdp")
        if not isinstance(sdp_type, str) or not isinstance(sdp, str):
            raise InvalidSignalError("Session description requires 'type' and 'sdp'")
        return cls(type=sdp_type, sdp=sdp)

    def to_payload(self) -> Dict[str, str]:
        return {"type": self.type, "sdp": self.sdp}


def build_signal_envelope(kind: str, payload: Mapping[str, Any] | None = None) -> Dict[str, Any]:
    """Normalise outgoing signalling payloads."""

    if kind not in SIGNAL_KINDS:
        raise InvalidSignalError(f"Unsupported signal kind: {kind}")
    body: Dict[str, Any] = {"kind": kind}
    for key, value in (payload or {}).items():
        if key == "kind":
            continue
        if key == "description" and isinstance(value, SessionDescription):
            value = value.to_payload()
        body[key] = value
    return body


def offer_message(description: SessionDescription) -> Dict[str, Any]:
    return build_signal_envelope(OFFER, {"description": description})


def answer_message(description: SessionDescription) -> Dict[str, Any]:
    return build_signal_envelope(ANSWER, {"description": description})


def candidate_message(candidate: Mapping[str, Any]) -> Dict[str, Any]:
    return build_signal_envelope(ICE_CANDIDATE, {"candidate": dict(candidate)})


def mute_message(user_id: str, muted: bool) -> Dict[str, Any]:
    return build_signal_envelope(MUTE_CHANGED, {"userId": user_id, "muted": muted})


def bye_message(user_id: str) -> Dict[str, Any]:
    return build_signal_envelope(BYE, {"userId": user_id})


def signal_kind(message: Mapping[str, Any]) -> str:
    """Return the kind of an inbound message or raise :class:`InvalidSignalError`."""

    kind = message.get("kind")
    if not isinstance(kind, str) or kind not in SIGNAL_KINDS:
        raise InvalidSignalError(f"Unsupported signal kind: {kind!r}")
    return kind


__all__ = [
    "ANSWER",
    "BYE",
    "ICE_CANDIDATE",
    "MUTE_CHANGED",
    "OFFER",
    "SIGNAL_KINDS",
    "InvalidSignalError",
    "SessionDescription",
    "SignalHandler",
    "SignalingChannel",
    "SignalingDeliveryError",
    "answer_message",
    "build_signal_envelope",
    "bye_message",
    "candidate_message",
    "mute_message",
    "offer_message",
    "signal_kind",
]

"""Realtime helpers for the signalling relay."""

from .relay import RelayParticipant, SignalRelay, safe_send_json  # noqa: F401

__all__ = ["RelayParticipant", "SignalRelay", "safe_send_json"]

"""Application service helpers."""

from .sessions import (
    WatchPartyServices,
    get_media_resolver,
    get_session_controller,
    get_signal_relay,
    services_for,
    shutdown_sessions,
    startup_sessions,
)

__all__ = [
    "WatchPartyServices",
    "get_media_resolver",
    "get_session_controller",
    "get_signal_relay",
    "services_for",
    "shutdown_sessions",
    "startup_sessions",
]

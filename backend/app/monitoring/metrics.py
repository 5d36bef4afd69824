"""Metric definitions for room sessions and the signalling relay."""

from __future__ import annotations

from .registry import registry


room_commands_total = registry.counter(
    "watchparty_room_commands_total",
    "Number of room session commands processed, by outcome.",
    label_names=("command", "outcome"),
)

rooms_active = registry.gauge(
    "watchparty_rooms_active",
    "Number of rooms currently held in memory.",
)

invites_issued_total = registry.counter(
    "watchparty_invites_issued_total",
    "Number of invite codes issued.",
    label_names=("source",),
)

media_resolutions_total = registry.counter(
    "watchparty_media_resolutions_total",
    "Number of media URLs resolved, by detected platform.",
    label_names=("platform",),
)

realtime_events_total = registry.counter(
    "realtime_events_total",
    "Count of realtime messages processed by the signalling relay.",
    label_names=("topic", "direction", "action"),
)

realtime_connections = registry.gauge(
    "realtime_active_connections",
    "Number of active websocket connections handled locally.",
    label_names=("scope",),
)

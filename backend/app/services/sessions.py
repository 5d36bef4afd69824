"""Watch party services owned by one application instance."""

from __future__ import annotations

import logging
from dataclasses import dataclass

import httpx
from fastapi import FastAPI, Request
from starlette.requests import HTTPConnection

from app.config import Settings
from watchparty.media import UrlPatternResolver
from watchparty.realtime import SignalRelay
from watchparty.rooms import RoomRegistry, SessionController

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class WatchPartyServices:
    """Registry, controller, relay and resolver sharing one lifetime."""

    registry: RoomRegistry
    controller: SessionController
    relay: SignalRelay
    resolver: UrlPatternResolver
    http_client: httpx.AsyncClient | None = None

    @classmethod
    def create(cls, settings: Settings) -> "WatchPartyServices":
        registry = RoomRegistry()
        controller = SessionController(
            registry,
            public_base_url=settings.public_base_url,
            invite_ttl_hours=settings.invite_ttl_hours,
            default_max_users=settings.default_max_users,
        )
        http_client = (
            httpx.AsyncClient(timeout=settings.oembed_timeout_seconds)
            if settings.oembed_enabled
            else None
        )
        resolver = UrlPatternResolver(
            embed_parent=settings.embed_parent_host, http_client=http_client
        )
        return cls(
            registry=registry,
            controller=controller,
            relay=SignalRelay(),
            resolver=resolver,
            http_client=http_client,
        )

    async def aclose(self) -> None:
        for room in self.registry.list_rooms():
            await self.relay.disconnect_room(room.id, "Server shutting down")
        self.registry.clear()
        if self.http_client is not None:
            await self.http_client.aclose()
            self.http_client = None


async def startup_sessions(app: FastAPI, settings: Settings) -> WatchPartyServices:
    services = WatchPartyServices.create(settings)
    app.state.watchparty = services
    logger.info(
        "Watch party services started (oEmbed %s)",
        "enabled" if services.http_client is not None else "disabled",
    )
    return services


async def shutdown_sessions(app: FastAPI) -> None:
    services: WatchPartyServices | None = getattr(app.state, "watchparty", None)
    if services is None:
        return
    await services.aclose()
    app.state.watchparty = None
    logger.info("Watch party services stopped")


def services_for(connection: HTTPConnection) -> WatchPartyServices:
    services = getattr(connection.app.state, "watchparty", None)
    if services is None:
        raise RuntimeError("Watch party services are not running")
    return services


def get_session_controller(request: Request) -> SessionController:
    return services_for(request).controller


def get_signal_relay(request: Request) -> SignalRelay:
    return services_for(request).relay


def get_media_resolver(request: Request) -> UrlPatternResolver:
    return services_for(request).resolver


__all__ = [
    "WatchPartyServices",
    "get_media_resolver",
    "get_session_controller",
    "get_signal_relay",
    "services_for",
    "shutdown_sessions",
    "startup_sessions",
]

from functools import lru_cache
import json
from pathlib import Path
from typing import Annotated, Any, Iterable, List

from pydantic import AnyHttpUrl, BaseModel, Field, field_validator
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict


DEFAULT_STUN_SERVERS = ("stun:stun.l.google.com:19302", "stun:stun1.l.google.com:19302")


class IceServer(BaseModel):
    """Representation of a WebRTC ICE server configuration."""

    urls: list[str] = Field(default_factory=list, description="ICE server URLs")
    username: str | None = Field(default=None, description="Optional TURN username")
    credential: str | None = Field(default=None, description="Optional TURN credential")

    @field_validator("urls", mode="before")
    @classmethod
    def ensure_list(cls, value: Any) -> list[str]:
        if isinstance(value, str):
            return [value]
        if isinstance(value, (list, tuple, set)):
            return [str(item) for item in value]
        return [] if value in (None, Ellipsis) else [str(value)]


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    app_name: str = Field(default="Watch Party API", env="APP_NAME", description="Human readable service name")
    environment: str = Field(default="development", env="ENVIRONMENT", description="Deployment environment name")
    debug: bool = Field(default=True, env="DEBUG", description="Enable debug mode")

    cors_origins: Annotated[List[AnyHttpUrl], NoDecode] = Field(
        default_factory=lambda: [
            "http://localhost",
            "http://localhost:3000",
            "http://localhost:5173",
            "http://localhost:8080",
            "http://127.0.0.1:8080",
        ],
        env="CORS_ORIGINS",
        description="List of allowed CORS origins",
    )
    cors_allow_origin_regex: str | None = Field(
        default=r"^https?://(localhost|127\.0\.0\.1|\[::1\])(:\d+)?$",
        env="CORS_ALLOW_ORIGIN_REGEX",
        description="Optional regular expression that matches allowed CORS origins",
    )

    public_base_url: str = Field(
        default="http://localhost:8080",
        env="PUBLIC_BASE_URL",
        description="Origin used when building shareable invite links",
    )
    default_max_users: int = Field(
        default=50, ge=1, env="DEFAULT_MAX_USERS", description="Room capacity when none is given"
    )
    invite_ttl_hours: float = Field(
        default=24.0, gt=0, env="INVITE_TTL_HOURS", description="Lifetime of invites issued for private rooms"
    )
    public_rooms_limit: int = Field(
        default=20, ge=1, env="PUBLIC_ROOMS_LIMIT", description="Default size of the public room listing"
    )
    public_rooms_max_limit: int = Field(default=100, ge=1, env="PUBLIC_ROOMS_MAX_LIMIT")

    webrtc_ice_servers: list[IceServer] = Field(
        default_factory=list,
        env="WEBRTC_ICE_SERVERS",
        description="List of ICE (STUN/TURN) servers available to WebRTC peers.",
    )
    webrtc_stun_servers: list[str] = Field(
        default_factory=list,
        env="WEBRTC_STUN_SERVERS",
        description="Additional STUN endpoints exposed to clients.",
    )
    webrtc_turn_servers: list[str] = Field(
        default_factory=list,
        env="WEBRTC_TURN_SERVERS",
        description="TURN endpoints exposed to clients.",
    )
    webrtc_turn_username: str | None = Field(default=None, env="WEBRTC_TURN_USERNAME")
    webrtc_turn_credential: str | None = Field(default=None, env="WEBRTC_TURN_CREDENTIAL")

    speaking_threshold: float = Field(
        default=10.0,
        ge=0,
        env="SPEAKING_THRESHOLD",
        description="Mean byte magnitude above which the local user counts as speaking",
    )
    speaking_fft_size: int = Field(default=256, env="SPEAKING_FFT_SIZE")
    speaking_sample_interval_seconds: float = Field(
        default=1 / 60, gt=0, env="SPEAKING_SAMPLE_INTERVAL_SECONDS"
    )
    oembed_enabled: bool = Field(
        default=False,
        env="OEMBED_ENABLED",
        description="Look up real video titles through the YouTube oEmbed endpoint",
    )
    oembed_timeout_seconds: float = Field(default=5.0, gt=0, env="OEMBED_TIMEOUT_SECONDS")
    embed_parent_host: str = Field(
        default="localhost",
        env="EMBED_PARENT_HOST",
        description="Host passed to the Twitch player as its embedding parent",
    )

    websocket_receive_timeout_seconds: int = Field(
        default=30, env="WEBSOCKET_RECEIVE_TIMEOUT_SECONDS"
    )
    websocket_ping_interval_seconds: float = Field(
        default=15.0, gt=0, env="WEBSOCKET_PING_INTERVAL_SECONDS"
    )

    model_config = SettingsConfigDict(
        env_file=str(Path(__file__).resolve().parents[2] / ".env"),
        env_file_encoding="utf-8",
        extra="ignore",
    )

    @field_validator("cors_origins", mode="before")
    @classmethod
    def assemble_cors_origins(cls, v):  # type: ignore[override]
        if v in (None, "", Ellipsis):
            return v
        if isinstance(v, str):
            return [origin.strip() for origin in v.split(",") if origin.strip()]
        if isinstance(v, (list, tuple, set)):
            return list(v)
        return v

    @field_validator("public_base_url", mode="after")
    @classmethod
    def strip_trailing_slash(cls, value: str) -> str:
        return value.rstrip("/")

    @field_validator(
        "webrtc_ice_servers",
        "webrtc_stun_servers",
        "webrtc_turn_servers",
        mode="before",
    )
    @classmethod
    def parse_iterable_field(cls, value: Any) -> list[Any] | Any:
        if value in (None, "", Ellipsis):
            return []
        if isinstance(value, str):
            try:
                parsed = json.loads(value)
            except json.JSONDecodeError:
                return [item.strip() for item in value.split(",") if item.strip()]
            if isinstance(parsed, (list, tuple, set)):
                return list(parsed)
            return [str(value)]
        if isinstance(value, (list, tuple, set)):
            return list(value)
        return [value]

    def _aggregate_ice_servers(self) -> list[IceServer]:
        def coerce_server(entry: Any) -> IceServer | None:
            if isinstance(entry, IceServer):
                return entry
            if isinstance(entry, dict):
                return IceServer.model_validate(entry)
            if isinstance(entry, str):
                return IceServer(urls=[entry])
            if isinstance(entry, Iterable):
                return IceServer(urls=[str(item) for item in entry])
            return None

        servers: list[IceServer] = []
        for item in self.webrtc_ice_servers:
            server = coerce_server(item)
            if server is not None:
                servers.append(server)

        if self.webrtc_stun_servers:
            servers.append(IceServer(urls=[str(url) for url in self.webrtc_stun_servers]))

        if self.webrtc_turn_servers:
            servers.append(
                IceServer(
                    urls=[str(url) for url in self.webrtc_turn_servers],
                    username=self.webrtc_turn_username,
                    credential=self.webrtc_turn_credential,
                )
            )

        if not servers:
            servers.extend(IceServer(urls=[url]) for url in DEFAULT_STUN_SERVERS)

        return servers

    @property
    def webrtc_ice_servers_payload(self) -> list[dict[str, Any]]:
        return [
            server.model_dump(mode="json", exclude_none=True)
            for server in self._aggregate_ice_servers()
        ]


@lru_cache
def get_settings() -> Settings:
    return Settings()

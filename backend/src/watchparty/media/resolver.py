"""Turn user supplied links into :class:`VideoInfo` references."""

from __future__ import annotations

import hashlib
import logging
import re
from typing import Protocol
from urllib.parse import urlsplit

import httpx

from ..rooms.models import VideoInfo, VideoPlatform

logger = logging.getLogger(__name__)

YOUTUBE_PATTERN = re.compile(
    r"(?:youtube\.com/(?:[^/]+/.+/|(?:v|e(?:mbed)?)/|.*[?&]v=)|youtu\.be/)([^\"&?/\s]{11})"
)
TWITCH_PATTERN = re.compile(r"twitch\.tv/(?:videos/(\d+)|([a-zA-Z0-9_]+))")
DIRECT_VIDEO_PATTERN = re.compile(r"\.(mp4|webm|ogg|avi|mov|wmv|flv|mkv)(?:\?.*)?$", re.IGNORECASE)

YOUTUBE_OEMBED_URL = "https://www.youtube.com/oembed"
UNKNOWN_DURATION = "??:??"


class MediaResolutionError(Exception):
    """Raised when a link cannot be turned into a playable video."""


class MediaResolver(Protocol):
    async def resolve(self, url: str) -> VideoInfo:
        ...


def normalise_url(url: str) -> str:
    """Return *url* with an explicit scheme."""

    candidate = url.strip()
    if not candidate:
        raise MediaResolutionError("Video link must not be empty")
    if not candidate.startswith(("http://", "https://")):
        candidate = "https://" + candidate.removeprefix("//")
    if not urlsplit(candidate).netloc:
        raise MediaResolutionError(f"Unsupported video link: {url}")
    return candidate


def _stable_id(url: str) -> str:
    return hashlib.sha1(url.encode("utf-8")).hexdigest()[:9]


class UrlPatternResolver:
    """Recognise YouTube, Twitch and direct file links.

    Anything else is treated as an embeddable web page. When an HTTP client
    is supplied, YouTube titles and thumbnails are looked up through oEmbed;
    lookup failures fall back to the pattern-derived values.
    """

    def __init__(
        self,
        *,
        embed_parent: str = "localhost",
        http_client: httpx.AsyncClient | None = None,
    ) -> None:
        self._embed_parent = embed_parent
        self._http = http_client

    async def resolve(self, url: str) -> VideoInfo:
        normalised = normalise_url(url)

        youtube = YOUTUBE_PATTERN.search(normalised)
        if youtube:
            return await self._youtube(youtube.group(1), normalised)

        twitch = TWITCH_PATTERN.search(normalised)
        if twitch:
            vod_id, channel = twitch.groups()
            if vod_id is not None:
                return self._twitch_vod(vod_id, normalised)
            return self._twitch_channel(channel, normalised)

        if DIRECT_VIDEO_PATTERN.search(normalised):
            return self._direct(normalised)

        return VideoInfo(
            id=_stable_id(normalised),
            title="Web page video",
            duration=UNKNOWN_DURATION,
            thumbnail="",
            platform=VideoPlatform.UNKNOWN,
            embed_url=normalised,
            original_url=normalised,
        )

    async def _youtube(self, video_id: str, original_url: str) -> VideoInfo:
        title = f"YouTube Video {video_id}"
        thumbnail = f"https://img.youtube.com/vi/{video_id}/hqdefault.jpg"
        if self._http is not None:
            metadata = await self._youtube_oembed(self._http, original_url)
            title = metadata.get("title") or title
            thumbnail = metadata.get("thumbnail_url") or thumbnail
        return VideoInfo(
            id=video_id,
            title=title,
            duration=UNKNOWN_DURATION,
            thumbnail=thumbnail,
            platform=VideoPlatform.YOUTUBE,
            embed_url=f"https://www.youtube.com/embed/{video_id}?autoplay=1&controls=1",
            original_url=original_url,
        )

    @staticmethod
    async def _youtube_oembed(http: httpx.AsyncClient, url: str) -> dict[str, str]:
        try:
            response = await http.get(
                YOUTUBE_OEMBED_URL, params={"url": url, "format": "json"}
            )
            response.raise_for_status()
            payload = response.json()
        except (httpx.HTTPError, ValueError) as exc:
            logger.warning("YouTube oEmbed lookup failed for %s: %s", url, exc)
            return {}
        if not isinstance(payload, dict):
            return {}
        return {key: str(value) for key, value in payload.items() if isinstance(value, str)}

    def _twitch_vod(self, vod_id: str, original_url: str) -> VideoInfo:
        return VideoInfo(
            id=vod_id,
            title=f"Twitch VOD: {vod_id}",
            duration=UNKNOWN_DURATION,
            thumbnail="",
            platform=VideoPlatform.TWITCH,
            embed_url=f"https://player.twitch.tv/?video={vod_id}&parent={self._embed_parent}",
            original_url=original_url,
        )

    def _twitch_channel(self, channel: str, original_url: str) -> VideoInfo:
        return VideoInfo(
            id=channel,
            title=f"Live Stream: {channel}",
            duration="LIVE",
            thumbnail=f"https://static-cdn.jtvnw.net/previews-ttv/live_user_{channel}.jpg",
            platform=VideoPlatform.TWITCH,
            embed_url=f"https://player.twitch.tv/?channel={channel}&parent={self._embed_parent}",
            original_url=original_url,
        )

    @staticmethod
    def _direct(url: str) -> VideoInfo:
        filename = urlsplit(url).path.rsplit("/", 1)[-1] or "Video"
        return VideoInfo(
            id=_stable_id(url),
            title=filename,
            duration=UNKNOWN_DURATION,
            thumbnail="",
            platform=VideoPlatform.DIRECT,
            embed_url=url,
            original_url=url,
        )


__all__ = [
    "MediaResolutionError",
    "MediaResolver",
    "UrlPatternResolver",
    "normalise_url",
]

from dataclasses import dataclass
from typing import Any

import requests
from django.conf import settings

from .errors import ConfigurationError
from .records import Video
from .retry import call_with_retry

WATCH_URL = "https://www.youtube.com/watch?v={video_id}"


@dataclass(frozen=True)
class YouTubeConfig:
    api_key: str
    api_url: str
    timeout: float
    max_attempts: int

    @classmethod
    def from_settings(cls) -> "YouTubeConfig":
        if not settings.YOUTUBE_API_KEY:
            raise ConfigurationError("YOUTUBE_API_KEY")
        return cls(
            api_key=settings.YOUTUBE_API_KEY,
            api_url=settings.YOUTUBE_API_URL.rstrip("/"),
            timeout=settings.ADAPTER_TIMEOUT_SECONDS,
            max_attempts=settings.ADAPTER_MAX_ATTEMPTS,
        )


@dataclass(frozen=True)
class ChannelMatch:
    channel_id: str
    channel_name: str


class YouTubeClient:
    """Channel resolver and video lister on top of the YouTube Data API v3."""

    def __init__(self, config: YouTubeConfig, session: requests.Session | None = None):
        self.config = config
        self.session = session or requests.Session()

    @classmethod
    def from_settings(cls) -> "YouTubeClient":
        return cls(YouTubeConfig.from_settings())

    def _search(self, params: dict[str, Any]) -> dict[str, Any]:
        def _request():
            resp = self.session.get(
                f"{self.config.api_url}/search",
                params={**params, "part": "snippet", "key": self.config.api_key},
                timeout=self.config.timeout,
            )
            resp.raise_for_status()
            return resp.json()

        return call_with_retry(_request, service="YouTube search", max_attempts=self.config.max_attempts)

    def search_channel(self, query: str) -> ChannelMatch | None:
        """Return the first channel matching ``query``, or None."""
        data = self._search({"type": "channel", "q": query})
        items = data.get("items") or []
        if not items:
            return None

        item = items[0]
        channel_id = (item.get("id") or {}).get("channelId")
        channel_name = (item.get("snippet") or {}).get("title")
        if not channel_id or not channel_name:
            return None
        return ChannelMatch(channel_id=channel_id, channel_name=channel_name)

    def list_recent(self, channel_id: str, limit: int = 5) -> list[Video]:
        """Most recent uploads of a channel, newest first."""
        data = self._search({
            "channelId": channel_id,
            "order": "date",
            "type": "video",
            "maxResults": limit,
        })
        videos = []
        for item in (data.get("items") or [])[:limit]:
            video_id = (item.get("id") or {}).get("videoId")
            snippet = item.get("snippet") or {}
            if not video_id:
                continue
            thumbnail = ((snippet.get("thumbnails") or {}).get("default") or {}).get("url")
            videos.append(Video(
                video_id=video_id,
                title=snippet.get("title", ""),
                url=WATCH_URL.format(video_id=video_id),
                published_at=snippet.get("publishedAt", ""),
                thumbnail_url=thumbnail,
            ))
        return videos

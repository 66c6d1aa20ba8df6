"""
Submission intake: turns a pasted link into a YouTube video id plus display metadata.

Only YouTube links are accepted. Titles come from YouTube's oEmbed endpoint,
which needs no API key; thumbnails are derived from the video id.
"""

import logging
import re
from dataclasses import dataclass
from typing import Optional
from urllib.parse import parse_qs, urlparse

import httpx

from upnext_engine.errors import InvalidInput
from upnext_models.item import DisplayMetadata

logger = logging.getLogger(__name__)

OEMBED_URL = "https://www.youtube.com/oembed"
THUMBNAIL_BASE = "https://i.ytimg.com/vi"

VIDEO_ID_RE = re.compile(r"^[A-Za-z0-9_-]{11}$")
YOUTUBE_HOSTS = {"youtube.com", "www.youtube.com", "m.youtube.com", "music.youtube.com"}
SHORT_HOSTS = {"youtu.be", "www.youtu.be"}
PATH_PREFIXES = ("/shorts/", "/embed/", "/live/")


@dataclass(frozen=True)
class Submission:
    url: str
    extracted_id: str
    metadata: DisplayMetadata


def extract_video_id(url: str) -> str:
    """Return the 11-character video id of a YouTube link, or raise InvalidInput."""
    raw = (url or "").strip()
    if not raw:
        raise InvalidInput("url is required")
    if "://" not in raw:
        raw = f"https://{raw}"

    try:
        parsed = urlparse(raw)
        host = (parsed.hostname or "").lower()
    except ValueError:
        raise InvalidInput("Not a YouTube URL")
    if parsed.scheme not in {"http", "https"}:
        raise InvalidInput("Not a YouTube URL")

    candidate: Optional[str] = None
    if host in YOUTUBE_HOSTS:
        if parsed.path.rstrip("/") == "/watch":
            candidate = (parse_qs(parsed.query).get("v") or [None])[0]
        else:
            for prefix in PATH_PREFIXES:
                if parsed.path.startswith(prefix):
                    candidate = parsed.path[len(prefix):].split("/")[0]
                    break
    elif host in SHORT_HOSTS:
        candidate = parsed.path.lstrip("/").split("/")[0]
    else:
        raise InvalidInput("Not a YouTube URL")

    if not candidate or not VIDEO_ID_RE.match(candidate):
        raise InvalidInput("Could not find a YouTube video id in the URL")
    return candidate


def thumbnails(video_id: str) -> tuple[str, str]:
    return f"{THUMBNAIL_BASE}/{video_id}/mqdefault.jpg", f"{THUMBNAIL_BASE}/{video_id}/hqdefault.jpg"


class MetadataFetcher:
    def __init__(self, timeout: float = 5.0, enabled: bool = True):
        self._timeout = timeout
        self._enabled = enabled
        self._client: Optional[httpx.AsyncClient] = None

    async def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self._timeout)
        return self._client

    async def fetch(self, video_id: str) -> DisplayMetadata:
        small_img, big_img = thumbnails(video_id)
        fallback = DisplayMetadata(title=f"YouTube: {video_id}", small_img=small_img, big_img=big_img)
        if not self._enabled:
            return fallback

        client = await self._get_client()
        try:
            response = await client.get(
                OEMBED_URL,
                params={"url": f"https://www.youtube.com/watch?v={video_id}", "format": "json"},
            )
        except httpx.HTTPError as exc:
            logger.warning("YouTube oEmbed request failed", extra={"extractedId": video_id, "error": str(exc)})
            return fallback

        if response.status_code != 200:
            logger.warning(
                "YouTube oEmbed returned non-200",
                extra={"extractedId": video_id, "statusCode": response.status_code},
            )
            return fallback

        try:
            data = response.json()
        except ValueError:
            logger.warning("YouTube oEmbed returned invalid JSON", extra={"extractedId": video_id})
            return fallback
        return DisplayMetadata(title=data.get("title") or fallback.title, small_img=small_img, big_img=big_img)

    async def close(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None


class SubmissionIntake:
    def __init__(self, fetcher: MetadataFetcher):
        self.fetcher = fetcher

    async def normalize(self, url: str) -> Submission:
        video_id = extract_video_id(url)
        metadata = await self.fetcher.fetch(video_id)
        return Submission(url=url.strip(), extracted_id=video_id, metadata=metadata)

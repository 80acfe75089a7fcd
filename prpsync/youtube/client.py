"""
YouTube Client - video metadata and best-effort transcripts

Talks to the YouTube Data API v3 over httpx. Transcript text cannot be
downloaded with an API key alone, so the transcript is always the video
description with a label saying so; this never fails the pipeline.
"""

import logging
import re
from dataclasses import dataclass
from urllib.parse import urlsplit

import httpx

from prpsync.exceptions import InvalidURLError, NotFoundError, RateLimitError, UpstreamError
from prpsync.retry import RetryPolicy

logger = logging.getLogger(__name__)

YOUTUBE_API_BASE = "https://www.googleapis.com/youtube/v3"
DEFAULT_TIMEOUT = 30.0
DEFAULT_RETRY_AFTER = 60

YOUTUBE_HOSTS = frozenset(
    {
        "youtube.com",
        "www.youtube.com",
        "m.youtube.com",
        "youtu.be",
        "www.youtu.be",
    }
)

# Matched against "host/path?query" of a URL already on a known host
VIDEO_URL_PATTERNS = [
    re.compile(r"(?:www\.|m\.)?youtube\.com/(?:watch\?v=|embed/|v/)([a-zA-Z0-9_-]{11})"),
    re.compile(r"(?:www\.)?youtu\.be/([a-zA-Z0-9_-]{11})"),
]

DURATION_PATTERN = re.compile(r"PT(?:(\d+)H)?(?:(\d+)M)?(?:(\d+)S)?")

TRANSCRIPT_FALLBACK_LABEL = "[Transcript not available via API. Using video description as fallback]"
TRANSCRIPT_FAILED_LABEL = "[Transcript extraction failed. Using video description]"


@dataclass
class VideoMetadata:
    """Metadata for one video."""

    id: str
    title: str
    description: str
    channel_title: str
    published_at: str
    duration: str

    def to_dict(self) -> dict[str, str]:
        return {
            "id": self.id,
            "title": self.title,
            "description": self.description,
            "channel": self.channel_title,
            "published_at": self.published_at,
            "duration": self.duration,
        }


def _split(url: str):
    url = (url or "").strip()
    if "://" not in url:
        url = f"https://{url}"
    try:
        return urlsplit(url)
    except ValueError:
        return None


def is_youtube_url(url: str) -> bool:
    """True if the URL's host is a YouTube domain (not just mentioned in it)."""
    parts = _split(url)
    return parts is not None and parts.hostname in YOUTUBE_HOSTS


def extract_video_id(url: str) -> str:
    """
    Extract the 11-character video id from a YouTube URL.

    Supports watch?v=, youtu.be/, embed/ and /v/ URLs. No network access.

    Raises:
        InvalidURLError: If the URL matches none of the known shapes
    """
    parts = _split(url)
    if parts is not None and parts.hostname in YOUTUBE_HOSTS:
        target = f"{parts.hostname}{parts.path}"
        if parts.query:
            target += f"?{parts.query}"
        for pattern in VIDEO_URL_PATTERNS:
            match = pattern.match(target)
            if match:
                return match.group(1)

    raise InvalidURLError("Invalid YouTube URL format", {"url": (url or "")[:200]})


def format_duration(iso_duration: str) -> str:
    """
    Render an ISO-8601 duration like ``PT1H2M3S`` as ``1h 2m 3s``.

    Zero-valued parts are omitted and an empty result renders as ``0s``.
    Unparseable input is returned unchanged.
    """
    match = DURATION_PATTERN.match(iso_duration or "")
    if not match:
        return iso_duration

    parts = []
    for value, unit in zip(match.groups(), ("h", "m", "s")):
        if value and int(value) > 0:
            parts.append(f"{int(value)}{unit}")

    return " ".join(parts) or "0s"


def is_retryable(exc: BaseException) -> bool:
    """Rate limits and transport failures are worth another attempt."""
    return isinstance(exc, (RateLimitError, httpx.TransportError))


class YouTubeClient:
    """
    Client for the YouTube Data API.

    Usage:
        async with YouTubeClient(api_key) as youtube:
            metadata = await youtube.get_video_metadata("dQw4w9WgXcQ")
            transcript = await youtube.get_video_transcript("dQw4w9WgXcQ")
    """

    def __init__(
        self,
        api_key: str,
        retry: RetryPolicy | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
        timeout: float = DEFAULT_TIMEOUT,
    ):
        """
        Initialize YouTube client.

        Args:
            api_key: YouTube Data API key
            retry: Retry policy; its classifier is replaced with this client's
            transport: Optional httpx transport (tests use MockTransport)
            timeout: Per-request timeout in seconds
        """
        self._api_key = api_key
        self._retry = (retry or RetryPolicy()).with_classifier(is_retryable, "youtube")
        self._client = httpx.AsyncClient(
            base_url=YOUTUBE_API_BASE,
            timeout=timeout,
            transport=transport,
        )

    async def __aenter__(self) -> "YouTubeClient":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()

    async def close(self) -> None:
        """Close the underlying HTTP client."""
        await self._client.aclose()

    async def _get(self, path: str, params: dict[str, str]) -> dict:
        """One GET attempt, raising typed errors for non-2xx responses."""
        response = await self._client.get(path, params={**params, "key": self._api_key})

        if response.status_code == 429:
            retry_after = response.headers.get("Retry-After")
            raise RateLimitError(
                "YouTube API rate limit exceeded",
                service="youtube",
                retry_after=int(retry_after) if retry_after and retry_after.isdigit() else DEFAULT_RETRY_AFTER,
            )
        if response.is_error:
            raise UpstreamError(
                f"YouTube API error: {response.reason_phrase}",
                status=response.status_code,
                service="youtube",
            )

        try:
            return response.json()
        except ValueError:
            raise UpstreamError(
                "YouTube API returned a non-JSON response",
                status=response.status_code,
                service="youtube",
            )

    async def _request(self, path: str, params: dict[str, str]) -> dict:
        """GET with retries; transport errors that outlast retries become UpstreamError."""
        try:
            return await self._retry.execute(self._get, path, params)
        except httpx.TransportError as e:
            raise UpstreamError(
                f"YouTube API unreachable: {type(e).__name__}",
                service="youtube",
            ) from e

    async def get_video_metadata(self, video_id: str) -> VideoMetadata:
        """
        Fetch title, description, channel, publish date and duration.

        Raises:
            NotFoundError: If the video does not exist
            UpstreamError: If the API fails after retries
        """
        data = await self._request(
            "/videos", {"part": "snippet,contentDetails", "id": video_id}
        )

        items = data.get("items") or []
        if not items:
            raise NotFoundError("Video not found", {"video_id": video_id})

        video = items[0]
        snippet = video.get("snippet", {})
        content_details = video.get("contentDetails", {})

        metadata = VideoMetadata(
            id=video_id,
            title=snippet.get("title", ""),
            description=snippet.get("description", ""),
            channel_title=snippet.get("channelTitle", ""),
            published_at=snippet.get("publishedAt", ""),
            duration=format_duration(content_details.get("duration", "")),
        )
        logger.debug(f"Fetched metadata for {video_id}: {metadata.title[:60]}")
        return metadata

    async def get_video_transcript(
        self,
        video_id: str,
        metadata: VideoMetadata | None = None,
    ) -> str:
        """
        Best-effort transcript for a video.

        Caption tracks are discovered but their text needs OAuth access this
        client does not have, so the description is returned as a labeled
        fallback. Failure to list captions degrades the label, never raises.

        Args:
            video_id: Video id
            metadata: Already-fetched metadata, saves a second metadata call
        """
        if metadata is None:
            metadata = await self.get_video_metadata(video_id)

        try:
            captions = await self._request("/captions", {"videoId": video_id, "part": "snippet"})
        except UpstreamError as e:
            logger.warning(f"Caption lookup failed for {video_id}: {e.message}")
            return f"{TRANSCRIPT_FAILED_LABEL}\n\n{metadata.description}"

        track_count = len(captions.get("items") or [])
        logger.debug(f"{video_id} has {track_count} caption tracks; using description")
        return f"{TRANSCRIPT_FALLBACK_LABEL}\n\n{metadata.description}"

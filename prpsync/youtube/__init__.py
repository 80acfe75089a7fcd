"""YouTube metadata client."""

from prpsync.youtube.client import (
    VideoMetadata,
    YouTubeClient,
    extract_video_id,
    format_duration,
    is_youtube_url,
)

__all__ = ["VideoMetadata", "YouTubeClient", "extract_video_id", "format_duration", "is_youtube_url"]

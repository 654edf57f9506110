"""
Video Collector
===============

Fetch a channel's latest uploads from the YouTube Data API v3.

Flow:
1. channels.list (contentDetails) -> uploads playlist ID
2. playlistItems.list -> newest video IDs
3. videos.list (snippet, statistics, contentDetails) -> full metadata
"""

import logging
from datetime import datetime
from typing import List, Optional

import isodate
from dateutil import parser as dtparser
from pydantic import BaseModel

from .youtube_api import api_get

logger = logging.getLogger(__name__)

WATCH_URL = "https://www.youtube.com/watch?v={}"


class VideoRecord(BaseModel):
    """One upload as returned by the collector."""
    video_id: str
    title: str
    description: str = ""
    thumbnail_url: Optional[str] = None
    published_at: datetime
    duration_iso: Optional[str] = None
    duration: Optional[str] = None  # "4:13" / "1:02:03"
    view_count: int = 0
    url: str


def duration_seconds(iso_duration: str) -> Optional[int]:
    """Convert ISO 8601 duration (e.g., PT1H2M3S) to seconds, None if unparsable."""
    try:
        return int(isodate.parse_duration(iso_duration).total_seconds())
    except (AttributeError, TypeError, ValueError):
        return None


def format_duration(iso_duration: str) -> str:
    """Render an ISO 8601 duration as M:SS or H:MM:SS."""
    total = duration_seconds(iso_duration)
    if total is None:
        return "unknown"
    hours, rest = divmod(total, 3600)
    minutes, seconds = divmod(rest, 60)
    if hours:
        return f"{hours}:{minutes:02d}:{seconds:02d}"
    return f"{minutes}:{seconds:02d}"


def uploads_playlist_id(channel_id: str) -> Optional[str]:
    """Return the channel's uploads playlist ID, None for unknown channels."""
    data = api_get("channels", part="contentDetails", id=channel_id)
    items = data.get("items") or []
    if not items:
        return None
    return items[0].get("contentDetails", {}).get("relatedPlaylists", {}).get("uploads")


def _to_record(it: dict) -> VideoRecord:
    sn = it.get("snippet", {})
    cd = it.get("contentDetails", {})
    st = it.get("statistics", {})
    thumbs = sn.get("thumbnails", {})
    thumb = (thumbs.get("medium") or {}).get("url") or (thumbs.get("default") or {}).get("url")

    try:
        views = int(st.get("viewCount", 0))
    except (TypeError, ValueError):
        views = 0

    iso = cd.get("duration")
    return VideoRecord(
        video_id=it["id"],
        title=sn.get("title", ""),
        description=sn.get("description", ""),
        thumbnail_url=thumb,
        published_at=dtparser.isoparse(sn["publishedAt"]),
        duration_iso=iso,
        duration=format_duration(iso) if iso else None,
        view_count=views,
        url=WATCH_URL.format(it["id"]),
    )


def fetch_latest_videos(channel_id: str, max_results: int = 10) -> List[VideoRecord]:
    """
    Fetch the newest uploads of a channel.

    Args:
        channel_id: YouTube channel ID (UC...)
        max_results: Page size for the uploads playlist (max 50)

    Returns:
        List of VideoRecord, newest first; empty for unknown channels

    Raises:
        YTError on API failures
    """
    playlist_id = uploads_playlist_id(channel_id)
    if not playlist_id:
        logger.info("Channel %s has no uploads playlist", channel_id)
        return []

    data = api_get(
        "playlistItems",
        part="snippet",
        playlistId=playlist_id,
        maxResults=min(max_results, 50),
    )
    ids = [
        it["snippet"]["resourceId"]["videoId"]
        for it in data.get("items", [])
        if it.get("snippet", {}).get("resourceId", {}).get("videoId")
    ]
    if not ids:
        return []

    data = api_get("videos", part="snippet,statistics,contentDetails", id=",".join(ids))
    records = [_to_record(it) for it in data.get("items", [])]
    records.sort(key=lambda r: r.published_at, reverse=True)
    logger.debug("Fetched %d videos for %s", len(records), channel_id)
    return records

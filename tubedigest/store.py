"""
Library Store
=============

JSON document store for channels, videos and summaries.

Features:
- One `library.json` per data directory, with schema versioning
- Atomic writes (temp file + fsync + replace) under a file lock, so the CLI
  and the API server can share a data directory
- Relational rules enforced on write:
  - channel external ID and video external ID are unique
  - deleting a channel deletes its videos and summaries
  - deleting a video keeps its summaries (video_id becomes None)
"""

from __future__ import annotations

import json
import os
import threading
from contextlib import contextmanager
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Dict, Iterator, List, Optional

from filelock import FileLock
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator
from pydantic.alias_generators import to_camel

from .summarizer import SummarySection

SCHEMA_VERSION = "1.0.0"

FREQUENCIES = ("hourly", "every3hours", "every6hours", "every12hours", "daily", "weekly", "monthly")


class DuplicateError(ValueError):
    """Unique key already present."""


class NotFoundError(KeyError):
    """No record with the given ID."""

    def __str__(self) -> str:
        return str(self.args[0]) if self.args else "not found"


def _now() -> datetime:
    return datetime.now(timezone.utc)


# ---------- Pydantic Models ----------

class Record(BaseModel):
    """Base for stored records: snake_case on disk, camelCase over the API."""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    def api_dict(self) -> dict:
        return self.model_dump(mode="json", by_alias=True)


class Channel(Record):
    id: int
    channel_id: str
    name: str
    channel_url: str
    thumbnail_url: Optional[str] = None
    frequency: str = "daily"
    is_active: bool = True
    created_at: datetime = Field(default_factory=_now)
    last_polled_at: Optional[datetime] = None

    @field_validator("frequency")
    @classmethod
    def validate_frequency(cls, v: str):
        if v not in FREQUENCIES:
            raise ValueError(f"frequency must be one of {', '.join(FREQUENCIES)}")
        return v


class ChannelWithStats(Channel):
    video_count: int = 0
    summary_count: int = 0
    new_videos_count: int = 0


class Video(Record):
    id: int
    channel_id: int
    video_id: str
    title: str
    description: Optional[str] = None
    thumbnail_url: Optional[str] = None
    published_at: datetime
    duration: Optional[str] = None
    view_count: Optional[int] = None
    url: str
    created_at: datetime = Field(default_factory=_now)


class Summary(Record):
    id: int
    video_id: Optional[int] = None
    channel_id: int
    title: str
    content: str
    core_theme: Optional[str] = None
    tags: List[str] = Field(default_factory=list)
    key_points: List[str] = Field(default_factory=list)
    insights: List[str] = Field(default_factory=list)
    sections: List[SummarySection] = Field(default_factory=list)
    created_at: datetime = Field(default_factory=_now)


class SummaryWithDetails(Summary):
    channel_name: str
    video_title: str
    video_url: str
    video_duration: Optional[str] = None
    video_view_count: Optional[int] = None
    video_published_at: datetime


class LibraryData(BaseModel):
    schema_version: str = SCHEMA_VERSION
    next_ids: Dict[str, int] = Field(default_factory=lambda: {"channel": 1, "video": 1, "summary": 1})
    channels: List[Channel] = Field(default_factory=list)
    videos: List[Video] = Field(default_factory=list)
    summaries: List[Summary] = Field(default_factory=list)


# ---------- Helpers ----------

def _atomic_write_json(target: Path, obj: dict) -> None:
    """Write JSON to a temp file, fsync, then replace the target."""
    target.parent.mkdir(parents=True, exist_ok=True)
    temp = target.with_suffix(target.suffix + ".tmp")
    with temp.open("w", encoding="utf-8") as f:
        json.dump(obj, f, ensure_ascii=False, indent=2)
        f.flush()
        os.fsync(f.fileno())
    os.replace(temp, target)


# ---------- Store ----------

class LibraryStore:
    """
    Persistence for the channel library.

    Every call re-reads `library.json`, so several processes may share one
    data directory; writes are serialized by a `.lock` file.
    """

    def __init__(self, path: Path):
        self.path = Path(path)
        self._lock = threading.RLock()
        self._file_lock = FileLock(str(self.path) + ".lock", timeout=30)

    def _load(self) -> LibraryData:
        if not self.path.exists():
            return LibraryData()
        with self.path.open("r", encoding="utf-8") as f:
            data = json.load(f)
        try:
            return LibraryData(**data)
        except ValidationError as e:
            raise ValueError(f"Invalid library schema at {self.path}:\n{e}") from e

    @contextmanager
    def _read(self) -> Iterator[LibraryData]:
        with self._lock:
            yield self._load()

    @contextmanager
    def _write(self) -> Iterator[LibraryData]:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        with self._lock, self._file_lock:
            data = self._load()
            yield data
            _atomic_write_json(self.path, data.model_dump(mode="json"))

    @staticmethod
    def _next_id(data: LibraryData, kind: str) -> int:
        nid = data.next_ids.get(kind, 1)
        data.next_ids[kind] = nid + 1
        return nid

    # ----- channels -----

    def list_channels(self) -> List[Channel]:
        with self._read() as data:
            return list(data.channels)

    def channels_with_stats(self, now: Optional[datetime] = None) -> List[ChannelWithStats]:
        week_ago = (now or _now()) - timedelta(days=7)
        with self._read() as data:
            out = []
            for ch in data.channels:
                vids = [v for v in data.videos if v.channel_id == ch.id]
                out.append(ChannelWithStats(
                    **ch.model_dump(),
                    video_count=len(vids),
                    summary_count=sum(1 for s in data.summaries if s.channel_id == ch.id),
                    new_videos_count=sum(1 for v in vids if v.published_at > week_ago),
                ))
            return out

    def get_channel(self, channel_pk: int) -> Optional[Channel]:
        with self._read() as data:
            return next((c for c in data.channels if c.id == channel_pk), None)

    def get_channel_by_external_id(self, channel_id: str) -> Optional[Channel]:
        with self._read() as data:
            return next((c for c in data.channels if c.channel_id == channel_id), None)

    def create_channel(
        self,
        channel_id: str,
        name: str,
        channel_url: str,
        thumbnail_url: Optional[str] = None,
        frequency: str = "daily",
        is_active: bool = True,
    ) -> Channel:
        """
        Raises:
            DuplicateError if the external channel ID is already registered
        """
        with self._write() as data:
            if any(c.channel_id == channel_id for c in data.channels):
                raise DuplicateError(f"Channel {channel_id} is already registered")
            ch = Channel(
                id=self._next_id(data, "channel"),
                channel_id=channel_id,
                name=name,
                channel_url=channel_url,
                thumbnail_url=thumbnail_url,
                frequency=frequency,
                is_active=is_active,
            )
            data.channels.append(ch)
            return ch

    def update_channel(self, channel_pk: int, **updates) -> Channel:
        with self._write() as data:
            for i, ch in enumerate(data.channels):
                if ch.id != channel_pk:
                    continue
                new_ext = updates.get("channel_id")
                if new_ext and any(c.channel_id == new_ext and c.id != channel_pk for c in data.channels):
                    raise DuplicateError(f"Channel {new_ext} is already registered")
                merged = Channel(**{**ch.model_dump(), **updates})
                data.channels[i] = merged
                return merged
        raise NotFoundError(f"Channel {channel_pk} not found")

    def delete_channel(self, channel_pk: int) -> bool:
        with self._write() as data:
            before = len(data.channels)
            data.channels = [c for c in data.channels if c.id != channel_pk]
            if len(data.channels) == before:
                return False
            data.videos = [v for v in data.videos if v.channel_id != channel_pk]
            data.summaries = [s for s in data.summaries if s.channel_id != channel_pk]
            return True

    # ----- videos -----

    def videos_by_channel(self, channel_pk: int) -> List[Video]:
        with self._read() as data:
            vids = [v for v in data.videos if v.channel_id == channel_pk]
        return sorted(vids, key=lambda v: v.published_at, reverse=True)

    def get_video(self, video_pk: int) -> Optional[Video]:
        with self._read() as data:
            return next((v for v in data.videos if v.id == video_pk), None)

    def get_video_by_external_id(self, video_id: str) -> Optional[Video]:
        with self._read() as data:
            return next((v for v in data.videos if v.video_id == video_id), None)

    def create_video(self, **fields) -> Video:
        """
        Raises:
            DuplicateError if the external video ID already exists
            NotFoundError if the owning channel does not exist
        """
        with self._write() as data:
            if not any(c.id == fields.get("channel_id") for c in data.channels):
                raise NotFoundError(f"Channel {fields.get('channel_id')} not found")
            if any(v.video_id == fields.get("video_id") for v in data.videos):
                raise DuplicateError(f"Video {fields.get('video_id')} already exists")
            video = Video(id=self._next_id(data, "video"), **fields)
            data.videos.append(video)
            return video

    def latest_videos(self, limit: Optional[int] = 50) -> List[Video]:
        with self._read() as data:
            vids = sorted(data.videos, key=lambda v: v.published_at, reverse=True)
        return vids[:limit] if limit else vids

    def delete_video(self, video_pk: int) -> bool:
        with self._write() as data:
            before = len(data.videos)
            data.videos = [v for v in data.videos if v.id != video_pk]
            if len(data.videos) == before:
                return False
            for s in data.summaries:
                if s.video_id == video_pk:
                    s.video_id = None
            return True

    # ----- summaries -----

    @staticmethod
    def _details(data: LibraryData, summaries: List[Summary]) -> List[SummaryWithDetails]:
        channels = {c.id: c for c in data.channels}
        videos = {v.id: v for v in data.videos}
        out = []
        for s in summaries:
            ch = channels.get(s.channel_id)
            v = videos.get(s.video_id) if s.video_id is not None else None
            out.append(SummaryWithDetails(
                **s.model_dump(),
                channel_name=ch.name if ch else "Unknown channel",
                video_title=v.title if v else "Unknown video",
                video_url=v.url if v else "",
                video_duration=v.duration if v else None,
                video_view_count=v.view_count if v else None,
                video_published_at=v.published_at if v else s.created_at,
            ))
        return out

    def summaries(self, channel_pk: Optional[int] = None) -> List[SummaryWithDetails]:
        with self._read() as data:
            rows = [s for s in data.summaries if channel_pk is None or s.channel_id == channel_pk]
            return self._details(data, rows)

    def latest_summaries(self, limit: int = 20) -> List[SummaryWithDetails]:
        with self._read() as data:
            rows = sorted(data.summaries, key=lambda s: s.created_at, reverse=True)[:limit]
            return self._details(data, rows)

    def search_summaries(self, query: str) -> List[SummaryWithDetails]:
        """Case-insensitive match on title, content or any tag."""
        q = query.lower()
        with self._read() as data:
            rows = [
                s for s in data.summaries
                if q in s.title.lower()
                or q in s.content.lower()
                or any(q in t.lower() for t in s.tags)
            ]
            return self._details(data, rows)

    def get_summary(self, summary_pk: int) -> Optional[Summary]:
        with self._read() as data:
            return next((s for s in data.summaries if s.id == summary_pk), None)

    def get_summary_details(self, summary_pk: int) -> Optional[SummaryWithDetails]:
        with self._read() as data:
            rows = [s for s in data.summaries if s.id == summary_pk]
            return self._details(data, rows)[0] if rows else None

    def summary_for_video(self, video_pk: int) -> Optional[Summary]:
        with self._read() as data:
            return next((s for s in data.summaries if s.video_id == video_pk), None)

    def create_summary(self, **fields) -> Summary:
        """
        Raises:
            NotFoundError if the owning channel does not exist
        """
        with self._write() as data:
            if not any(c.id == fields.get("channel_id") for c in data.channels):
                raise NotFoundError(f"Channel {fields.get('channel_id')} not found")
            summary = Summary(id=self._next_id(data, "summary"), **fields)
            data.summaries.append(summary)
            return summary

    def delete_summary(self, summary_pk: int) -> bool:
        with self._write() as data:
            before = len(data.summaries)
            data.summaries = [s for s in data.summaries if s.id != summary_pk]
            return len(data.summaries) != before

    # ----- stats -----

    def stats(self, now: Optional[datetime] = None) -> Dict[str, int]:
        week_ago = (now or _now()) - timedelta(days=7)
        with self._read() as data:
            return {
                "totalChannels": len(data.channels),
                "totalVideos": len(data.videos),
                "totalSummaries": len(data.summaries),
                "newThisWeek": sum(1 for s in data.summaries if s.created_at > week_ago),
            }

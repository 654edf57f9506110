"""
Digest Service
==============

Application operations shared by the HTTP API and the CLI.

Flow per channel:
    1. Resolve the pasted URL to a channel ID and register the channel
    2. Poll the uploads playlist for new videos (per-channel frequency)
    3. Summarize videos in the background (transcript -> LLM -> store)
    4. Export summaries as Markdown (Obsidian vault, download, or zip)
"""

import io
import logging
import zipfile
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Callable, Dict, List, Optional

from .channel_resolver import fetch_channel_info
from .config import Settings, get_settings
from .markdown_generator import render_summary_markdown, safe_filename
from .progress import CancelToken, TaskRegistry
from .store import Channel, DuplicateError, LibraryStore, NotFoundError, Summary, Video
from .summarizer import VideoSummary, summarize_video
from .transcript_fetcher import fetch_transcript_text
from .vault_client import ObsidianVault, vault_from_settings
from .video_collector import fetch_latest_videos

logger = logging.getLogger(__name__)

INITIAL_VIDEO_COUNT = 10

# Finished progress items stay listed this long before they are evicted
PROGRESS_RETENTION = timedelta(hours=1)

FREQUENCY_INTERVALS: Dict[str, timedelta] = {
    "hourly": timedelta(hours=1),
    "every3hours": timedelta(hours=3),
    "every6hours": timedelta(hours=6),
    "every12hours": timedelta(hours=12),
    "daily": timedelta(days=1),
    "weekly": timedelta(weeks=1),
    "monthly": timedelta(days=30),
}


@dataclass
class ExportResult:
    method: str  # "obsidian_direct" | "download"
    filename: str
    markdown: str
    path: Optional[str] = None


@dataclass
class BulkResult:
    success_count: int
    error_count: int
    total: int
    errors: Dict[str, str]

    def as_dict(self, noun: str = "channels") -> dict:
        if self.error_count == 0:
            message = f"All {noun} ({self.success_count}) processed successfully."
        else:
            message = f"{self.success_count} {noun} succeeded, {self.error_count} failed"
        return {
            "message": message,
            "successCount": self.success_count,
            "errorCount": self.error_count,
            "total": self.total,
        }


class DigestService:
    def __init__(
        self,
        store: LibraryStore,
        registry: TaskRegistry,
        vault: Optional[ObsidianVault] = None,
        settings: Optional[Settings] = None,
    ):
        self.store = store
        self.registry = registry
        self.vault = vault
        self.settings = settings or get_settings()

    # ----- channels -----

    def register_channel(self, channel_url: str, frequency: str = "daily", is_active: bool = True) -> Channel:
        """
        Resolve and register a channel, then fetch its initial videos.

        Raises:
            ChannelNotFound / UpstreamUnavailable from the resolver
            DuplicateError if the channel is already registered
        """
        info = fetch_channel_info(channel_url)
        if self.store.get_channel_by_external_id(info.channel_id):
            raise DuplicateError("This channel is already registered.")

        channel = self.store.create_channel(
            channel_id=info.channel_id,
            name=info.name,
            channel_url=channel_url,
            thumbnail_url=info.thumbnail_url or None,
            frequency=frequency,
            is_active=is_active,
        )
        logger.info(
            "Registered channel %s (%s) via %s", channel.name, channel.channel_id,
            info.resolution.method if info.resolution else "unknown",
        )

        try:
            self.fetch_channel_videos(channel.id)
        except Exception as e:
            logger.error("Initial video fetch failed for %s: %s", channel.name, e)
        return channel

    def refresh_channel(self, channel_pk: int) -> Channel:
        channel = self._channel(channel_pk)
        info = fetch_channel_info(channel.channel_url)
        return self.store.update_channel(
            channel_pk,
            name=info.name,
            channel_id=info.channel_id,
            thumbnail_url=info.thumbnail_url or None,
        )

    def delete_channel(self, channel_pk: int) -> None:
        if not self.store.delete_channel(channel_pk):
            raise NotFoundError(f"Channel {channel_pk} not found")

    def _channel(self, channel_pk: int) -> Channel:
        channel = self.store.get_channel(channel_pk)
        if channel is None:
            raise NotFoundError(f"Channel {channel_pk} not found")
        return channel

    def _video(self, video_pk: int) -> Video:
        video = self.store.get_video(video_pk)
        if video is None:
            raise NotFoundError(f"Video {video_pk} not found")
        return video

    # ----- videos -----

    def fetch_channel_videos(self, channel_pk: int, max_results: int = INITIAL_VIDEO_COUNT) -> int:
        """Insert unseen uploads for a channel. Returns how many were new."""
        channel = self._channel(channel_pk)
        records = fetch_latest_videos(channel.channel_id, max_results)

        added = 0
        for rec in records:
            if self.store.get_video_by_external_id(rec.video_id):
                continue
            try:
                self.store.create_video(
                    channel_id=channel.id,
                    video_id=rec.video_id,
                    title=rec.title,
                    description=rec.description or None,
                    thumbnail_url=rec.thumbnail_url,
                    published_at=rec.published_at,
                    duration=rec.duration,
                    view_count=rec.view_count,
                    url=rec.url,
                )
                added += 1
            except DuplicateError:
                # Another poller inserted it in the meantime
                continue

        self.store.update_channel(channel.id, last_polled_at=datetime.now(timezone.utc))
        logger.info("Fetched %d new videos for %s", added, channel.name)
        return added

    def _fan_out(self, channels: List[Channel]) -> BulkResult:
        ok, errors = 0, {}
        for channel in channels:
            try:
                self.fetch_channel_videos(channel.id)
                ok += 1
            except Exception as e:
                logger.error("Video fetch failed for channel %s: %s", channel.name, e)
                errors[channel.name] = str(e)
        return BulkResult(ok, len(errors), len(channels), errors)

    def fetch_all_channel_videos(self) -> BulkResult:
        """Fetch videos for every channel; one failure never stops the others."""
        return self._fan_out(self.store.list_channels())

    def due_channels(self, now: Optional[datetime] = None) -> List[Channel]:
        """Active channels whose polling interval has elapsed."""
        now = now or datetime.now(timezone.utc)
        due = []
        for ch in self.store.list_channels():
            if not ch.is_active:
                continue
            interval = FREQUENCY_INTERVALS.get(ch.frequency, FREQUENCY_INTERVALS["daily"])
            if ch.last_polled_at is None or now - ch.last_polled_at >= interval:
                due.append(ch)
        return due

    def poll_due_channels(self, now: Optional[datetime] = None) -> BulkResult:
        return self._fan_out(self.due_channels(now))

    def delete_video(self, video_pk: int) -> None:
        if not self.store.delete_video(video_pk):
            raise NotFoundError(f"Video {video_pk} not found")

    # ----- summaries -----

    def _summarize(
        self,
        video: Video,
        token: Optional[CancelToken] = None,
        report: Callable[[int], None] = lambda pct: None,
    ) -> Summary:
        """Transcript -> LLM -> store, checking the token between stages."""
        report(25)
        transcript = fetch_transcript_text(video.video_id)
        if token:
            token.raise_if_cancelled()

        report(50)
        result = summarize_video(video.title, video.description or "", transcript, settings=self.settings)
        if token:
            token.raise_if_cancelled()

        report(75)
        existing = self.store.summary_for_video(video.id)
        if existing:
            self.store.delete_summary(existing.id)
        return self.store.create_summary(
            video_id=video.id,
            channel_id=video.channel_id,
            title=video.title,
            content=result.content,
            core_theme=result.core_theme or None,
            key_points=result.key_points,
            insights=result.insights,
            tags=result.tags,
            sections=result.sections,
        )

    def start_summary(self, video_pk: int) -> str:
        """
        Queue background summary generation for a video.

        Any previous summary of the video is replaced. Returns the progress ID.
        """
        video = self._video(video_pk)
        channel = self._channel(video.channel_id)

        existing = self.store.summary_for_video(video.id)
        if existing:
            self.store.delete_summary(existing.id)

        evicted = self.registry.evict_finished(PROGRESS_RETENTION)
        if evicted:
            logger.debug("Evicted %d finished progress items", evicted)

        item = self.registry.register(video.id, video.title, channel.name)
        self.registry.submit(item.id, lambda token, report: self._summarize(video, token, report))
        logger.info("Queued summary %s for video %s", item.id, video.video_id)
        return item.id

    def summarize_video(self, video_pk: int) -> Summary:
        """Synchronous summary of one video."""
        return self._summarize(self._video(video_pk))

    def summarize_pending(
        self,
        channel_pk: Optional[int] = None,
        on_progress: Optional[Callable[[Video], None]] = None,
    ) -> BulkResult:
        """Summarize every video without a summary; failures are isolated per video."""
        if channel_pk is not None:
            videos = self.store.videos_by_channel(channel_pk)
        else:
            videos = self.store.latest_videos(limit=None)
        pending = [v for v in videos if self.store.summary_for_video(v.id) is None]

        ok, errors = 0, {}
        for video in pending:
            try:
                self._summarize(video)
                ok += 1
            except Exception as e:
                logger.error("Summary failed for %s: %s", video.video_id, e)
                errors[video.video_id] = str(e)
            if on_progress:
                on_progress(video)
        return BulkResult(ok, len(errors), len(pending), errors)

    def delete_summary(self, summary_pk: int) -> None:
        if not self.store.delete_summary(summary_pk):
            raise NotFoundError(f"Summary {summary_pk} not found")

    # ----- export -----

    def render_markdown(self, summary_pk: int) -> ExportResult:
        """Render one summary; deleted videos link to '#' dated today."""
        summary = self.store.get_summary(summary_pk)
        if summary is None:
            raise NotFoundError(f"Summary {summary_pk} not found")
        channel = self._channel(summary.channel_id)
        video = self.store.get_video(summary.video_id) if summary.video_id is not None else None

        markdown = render_summary_markdown(
            _as_video_summary(summary),
            video.url if video else "#",
            channel.name,
            video.published_at if video else datetime.now(timezone.utc),
        )
        return ExportResult(
            method="download",
            filename=f"{safe_filename(summary.title)}.md",
            markdown=markdown,
            path=f"{self.settings.export_folder}/{safe_filename(channel.name)}/{safe_filename(summary.title)}.md",
        )

    def export_summary(self, summary_pk: int) -> ExportResult:
        """Push into Obsidian when connected, otherwise return a download."""
        result = self.render_markdown(summary_pk)
        if self.vault is not None and self.vault.put_note(result.path, result.markdown):
            result.method = "obsidian_direct"
            return result
        result.path = None
        return result

    def export_all(self, channel_pk: Optional[int] = None) -> bytes:
        """Zip archive of every summary (optionally one channel) as Markdown."""
        rows = self.store.summaries(channel_pk)
        buf = io.BytesIO()
        used = set()
        with zipfile.ZipFile(buf, "w", zipfile.ZIP_DEFLATED) as zf:
            for row in rows:
                markdown = render_summary_markdown(
                    _as_video_summary(row),
                    row.video_url or "#",
                    row.channel_name,
                    row.video_published_at,
                )
                name = f"{safe_filename(row.title)}.md"
                if name in used:
                    name = f"{safe_filename(row.title)}_{row.id}.md"
                used.add(name)
                zf.writestr(name, markdown)
        logger.info("Exported %d summaries to zip", len(rows))
        return buf.getvalue()

    def stats(self) -> dict:
        return self.store.stats()


def _as_video_summary(summary: Summary) -> VideoSummary:
    return VideoSummary(
        title=summary.title,
        core_theme=summary.core_theme or "",
        content=summary.content,
        sections=summary.sections,
        key_points=summary.key_points,
        insights=summary.insights,
        tags=summary.tags,
    )


def build_service(settings: Optional[Settings] = None, connect_vault: bool = True) -> DigestService:
    """Wire a service from settings (store under DATA_DIR, optional vault)."""
    settings = settings or get_settings()
    vault = vault_from_settings(settings) if connect_vault else None
    return DigestService(LibraryStore(settings.library_path), TaskRegistry(), vault, settings)

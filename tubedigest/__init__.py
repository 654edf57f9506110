"""
YouTube Digest Core Modules
===========================

Channel resolution, video polling, LLM summaries and Markdown export for
Obsidian.
"""

__version__ = "1.0.0"

from .channel_resolver import (
    ChannelNotFound,
    ChannelResolutionError,
    Resolution,
    ResolutionExhausted,
    UpstreamUnavailable,
    fetch_channel_info,
    resolve_channel,
    resolve_channel_id,
)
from .video_collector import fetch_latest_videos
from .transcript_fetcher import fetch_transcript_text
from .summarizer import VideoSummary, parse_summary_payload, summarize_video
from .markdown_generator import render_summary_markdown, safe_filename
from .store import LibraryStore
from .progress import TaskRegistry
from .vault_client import ObsidianVault
from .service import DigestService, build_service

__all__ = [
    "ChannelNotFound",
    "ChannelResolutionError",
    "Resolution",
    "ResolutionExhausted",
    "UpstreamUnavailable",
    "fetch_channel_info",
    "resolve_channel",
    "resolve_channel_id",
    "fetch_latest_videos",
    "fetch_transcript_text",
    "VideoSummary",
    "parse_summary_payload",
    "summarize_video",
    "render_summary_markdown",
    "safe_filename",
    "LibraryStore",
    "TaskRegistry",
    "ObsidianVault",
    "DigestService",
    "build_service",
]

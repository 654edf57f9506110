"""
Markdown Generator
==================

Render summaries as Obsidian-compatible Markdown notes.

Features:
- YAML frontmatter (title, channel, url, published date, tags)
- Core theme, key points, timestamped sections, insights, full summary
- Hashtags with whitespace folded to underscores
- Unicode-preserving safe filenames
"""

import re
from datetime import datetime
from typing import List

from slugify import slugify

from .summarizer import VideoSummary

MAX_FILENAME_CHARS = 100
FOOTER = "*This summary was generated automatically by AI.*"

_FORBIDDEN = re.compile(r'[<>:"/\\|?*\x00-\x1f]')


def safe_filename(title: str) -> str:
    """
    Filesystem-safe note name that keeps non-Latin titles readable.

    Example: 'React 19: what\'s new?' -> 'React_19_what_s_new'
    """
    cleaned = _FORBIDDEN.sub("", title or "")
    name = slugify(
        cleaned,
        allow_unicode=True,
        lowercase=False,
        separator="_",
        max_length=MAX_FILENAME_CHARS,
    )
    return name or "summary"


def format_tag(tag: str) -> str:
    return "#" + re.sub(r"\s+", "_", tag.strip())


def _quote(v: str) -> str:
    """Double-quoted YAML scalar (JSON string syntax is valid YAML)."""
    escaped = v.replace("\\", "\\\\").replace('"', '\\"').replace("\n", " ")
    return f'"{escaped}"'


def _bullets(items: List[str]) -> str:
    return "\n".join(f"- {it}" for it in items)


def render_summary_markdown(
    summary: VideoSummary,
    video_url: str,
    channel_name: str,
    published_at: datetime,
) -> str:
    """
    Build the Markdown note for one summary.

    Args:
        summary: Structured summary
        video_url: Link back to the video ("#" when the video was deleted)
        channel_name: Display name of the channel
        published_at: Video publish timestamp

    Returns:
        Markdown text with YAML frontmatter
    """
    date = published_at.date().isoformat()
    tags = " ".join(format_tag(t) for t in summary.tags if t.strip())

    lines = [
        "---",
        f"title: {_quote(summary.title)}",
        f"channel: {_quote(channel_name)}",
        f"url: {_quote(video_url)}",
        f"published: {date}",
    ]
    if summary.tags:
        folded = [_quote(format_tag(t)[1:]) for t in summary.tags if t.strip()]
        lines.append(f"tags: [{', '.join(folded)}]")
    lines += ["---", "", f"# {summary.title}", ""]

    lines += [
        "## Metadata",
        f"- **Channel**: {channel_name}",
        f"- **Published**: {date}",
        f"- **Link**: [Watch on YouTube]({video_url})",
    ]
    if tags:
        lines.append(f"- **Tags**: {tags}")
    lines.append("")

    if summary.core_theme:
        lines += ["## Core Theme", summary.core_theme, ""]

    if summary.key_points:
        lines += ["## Key Points", _bullets(summary.key_points), ""]

    if summary.sections:
        lines += ["## Sections", ""]
        for section in summary.sections:
            heading = f"### {section.title}"
            if section.timestamp:
                heading += f" ({section.timestamp})"
            lines += [heading, section.content]
            if section.key_words:
                lines.append("**Key words**: " + ", ".join(section.key_words))
            lines.append("")

    if summary.insights:
        lines += ["## Insights", _bullets(summary.insights), ""]

    lines += ["## Detailed Summary", summary.content, "", "---", FOOTER, ""]
    return "\n".join(lines)

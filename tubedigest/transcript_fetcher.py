"""
Transcript Fetcher
==================

Optional transcript text for a video, used to ground summaries.

Preference order: manually created transcripts in the preferred languages,
then auto-generated ones, then whatever the video has. Any failure means
"no transcript"; summaries fall back to title and description.
"""

import logging
from typing import Optional, Sequence

from youtube_transcript_api import (
    CouldNotRetrieveTranscript,
    NoTranscriptFound,
    YouTubeTranscriptApi,
)

logger = logging.getLogger(__name__)

DEFAULT_LANGUAGES = ("ko", "en", "en-US", "en-GB")


def _join(fetched) -> str:
    return "\n".join(s.text for s in fetched if getattr(s, "text", ""))


def fetch_transcript_text(
    video_id: str,
    languages: Sequence[str] = DEFAULT_LANGUAGES,
) -> Optional[str]:
    """Return transcript plaintext for `video_id`, or None when unavailable."""
    try:
        transcript_list = YouTubeTranscriptApi().list(video_id)
    except CouldNotRetrieveTranscript as e:
        logger.info("No transcripts for %s: %s", video_id, type(e).__name__)
        return None
    except Exception as e:
        logger.warning("Transcript listing failed for %s: %s", video_id, e)
        return None

    for finder in (
        transcript_list.find_manually_created_transcript,
        transcript_list.find_generated_transcript,
    ):
        try:
            transcript = finder(list(languages))
            return _join(transcript.fetch())
        except NoTranscriptFound:
            continue
        except CouldNotRetrieveTranscript as e:
            logger.info("Transcript fetch failed for %s: %s", video_id, type(e).__name__)
            continue

    # Last resort: whatever language is available
    for transcript in transcript_list:
        try:
            return _join(transcript.fetch())
        except CouldNotRetrieveTranscript:
            continue

    return None

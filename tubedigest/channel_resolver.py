"""
Channel Resolver
================

Resolves a pasted YouTube channel URL to a canonical channel ID.

Supports, in this order:
- Direct channel URLs (/channel/UC...), returned without any API call
- Modern handles (/@username, including non-Latin handles)
- Legacy vanity URLs (/c/CustomName)
- Legacy user URLs (/user/LegacyUser)

Handles and vanity names are not channel IDs. They go through a fallback
chain: legacy username lookup, then a ranked `@name` channel search, then an
unprefixed search. The first tier that yields a candidate wins.
"""

import logging
import re
import unicodedata
import urllib.parse as up
from dataclasses import dataclass, field
from typing import List, Optional

from .youtube_api import YTError, api_get

logger = logging.getLogger(__name__)

YOUTUBE_HOST = "youtube.com"

# Matched against the URL path, in order; the first matching shape decides
# how the capture is used. Names run to the next path segment.
RE_CHANNEL_URL = re.compile(r"^/channel/([A-Za-z0-9_-]*)")
RE_HANDLE_URL = re.compile(r"^/@([^/]+)")
RE_CUSTOM_URL = re.compile(r"^/c/([^/]+)")
RE_USER_URL = re.compile(r"^/user/([^/]+)")

NAME_PUNCTUATION = "_.-"

HANDLE_SEARCH_RESULTS = 10
PLAIN_SEARCH_RESULTS = 5

# Resolution methods
DIRECT = "direct"
USERNAME = "username"
EXACT_HANDLE = "exact_handle"
HANDLE_SUBSTRING = "handle_substring"
TITLE = "title"
FIRST_RESULT = "first_result"
UNPREFIXED_SEARCH = "unprefixed_search"

BEST_GUESS_METHODS = frozenset({FIRST_RESULT, UNPREFIXED_SEARCH})


class ChannelResolutionError(ValueError):
    """Base class for resolver failures; `user_message` is safe to show."""
    user_message = "Could not resolve the channel."


class ChannelNotFound(ChannelResolutionError):
    """The URL is not a recognizable channel URL."""
    user_message = "Invalid channel URL. Please check the address."


class ResolutionExhausted(ChannelNotFound):
    """A handle/name was recognized but every lookup tier came back empty."""
    user_message = "Channel not found. Please check the URL."


class UpstreamUnavailable(ChannelResolutionError):
    """Every lookup tier that was reached failed at the YouTube API."""
    user_message = "Could not fetch channel info from YouTube. Please try again later."

    def __init__(self, message: str, errors: Optional[List[Exception]] = None):
        super().__init__(message)
        self.errors = errors or []


@dataclass(frozen=True)
class Resolution:
    """A resolved channel ID and the tier that produced it."""
    channel_id: str
    method: str

    @property
    def confident(self) -> bool:
        """False when the ID is a best-guess fallback rather than a match."""
        return self.method not in BEST_GUESS_METHODS


@dataclass(frozen=True)
class ParsedChannelUrl:
    kind: str  # "channel" | "handle" | "custom" | "user"
    value: str


@dataclass
class ChannelInfo:
    channel_id: str
    name: str
    thumbnail_url: str = ""
    custom_url: Optional[str] = None
    resolution: Optional[Resolution] = field(default=None, compare=False)


def parse_channel_url(url: str) -> ParsedChannelUrl:
    """
    Match a URL against the known channel URL shapes.

    Only youtube.com and its subdomains are accepted; shapes are matched
    against the URL path.

    Raises:
        ChannelNotFound for other hosts, unknown shapes, an empty /channel/ ID
        or a name with characters outside letters, marks, digits and `_.-`
    """
    s = (url or "").strip()
    if "://" not in s:
        s = "https://" + s
    try:
        parsed = up.urlparse(s)
        host = (parsed.hostname or "").lower()
    except ValueError:
        host = ""
    if host != YOUTUBE_HOST and not host.endswith("." + YOUTUBE_HOST):
        raise ChannelNotFound(f"Not a YouTube URL: {url!r}")

    path = up.unquote(parsed.path)

    m = RE_CHANNEL_URL.match(path)
    if m:
        if not m.group(1):
            raise ChannelNotFound(f"Channel URL has an empty channel ID: {url!r}")
        return ParsedChannelUrl("channel", m.group(1))

    for kind, pattern in (("handle", RE_HANDLE_URL), ("custom", RE_CUSTOM_URL), ("user", RE_USER_URL)):
        m = pattern.match(path)
        if m:
            if not _is_channel_name(m.group(1)):
                raise ChannelNotFound(f"Invalid characters in channel name: {url!r}")
            return ParsedChannelUrl(kind, m.group(1))

    raise ChannelNotFound(f"Not a recognized YouTube channel URL: {url!r}")


def _is_channel_name(name: str) -> bool:
    """Letters, combining marks, digits and `_.-` only (e.g. Devanagari vowel signs)."""
    return all(
        unicodedata.category(ch)[0] in "LMN" or ch in NAME_PUNCTUATION
        for ch in name
    )


def _rank_candidates(name: str, items: List[dict]) -> Optional[Resolution]:
    """Pick the most specific search candidate for a handle/name."""
    handle = f"@{name}".lower()
    plain = name.lower()

    def snippet(it: dict) -> dict:
        return it.get("snippet", {})

    def cid(it: dict) -> str:
        return snippet(it).get("channelId") or it.get("id", {}).get("channelId")

    tiers = (
        (EXACT_HANDLE, lambda it: (snippet(it).get("customUrl") or "").lower() == handle),
        (HANDLE_SUBSTRING, lambda it: handle in (snippet(it).get("customUrl") or "").lower()),
        (TITLE, lambda it: (snippet(it).get("title") or "").lower() == plain),
    )
    for method, matches in tiers:
        for it in items:
            if matches(it) and cid(it):
                return Resolution(cid(it), method)

    first = cid(items[0])
    return Resolution(first, FIRST_RESULT) if first else None


def _search_channels(q: str, max_results: int) -> List[dict]:
    data = api_get("search", part="snippet", q=q, type="channel", maxResults=max_results)
    return data.get("items") or []


def resolve_username(name: str) -> Resolution:
    """
    Resolve a handle, vanity name or legacy username to a channel ID.

    Raises:
        ResolutionExhausted if all tiers return zero candidates
        UpstreamUnavailable if every tier reached failed at the API
    """
    errors: List[Exception] = []

    # 1) Legacy username lookup
    try:
        data = api_get("channels", part="snippet", forUsername=name)
        items = data.get("items") or []
        if items:
            return Resolution(items[0]["id"], USERNAME)
    except YTError as e:
        logger.warning("forUsername lookup failed for %r: %s", name, e)
        errors.append(e)

    # 2) Ranked search for @name
    try:
        items = _search_channels(f"@{name}", HANDLE_SEARCH_RESULTS)
        ranked = _rank_candidates(name, items) if items else None
        if ranked:
            return ranked
    except YTError as e:
        logger.warning("Handle search failed for %r: %s", name, e)
        errors.append(e)

    # 3) Unprefixed search, first hit
    try:
        items = _search_channels(name, PLAIN_SEARCH_RESULTS)
        if items:
            first = items[0]
            channel_id = first.get("snippet", {}).get("channelId") or first.get("id", {}).get("channelId")
            if channel_id:
                return Resolution(channel_id, UNPREFIXED_SEARCH)
    except YTError as e:
        logger.warning("Plain search failed for %r: %s", name, e)
        errors.append(e)

    # All three tiers were reached; only an outage on every one is "unavailable".
    if len(errors) == 3:
        raise UpstreamUnavailable(f"YouTube API unavailable while resolving {name!r}", errors)
    raise ResolutionExhausted(f"No channel found for {name!r}")


def resolve_channel(url: str) -> Resolution:
    """
    Resolve a channel URL to a `Resolution`.

    /channel/<ID> URLs never touch the network.
    """
    parsed = parse_channel_url(url)
    if parsed.kind == "channel":
        return Resolution(parsed.value, DIRECT)

    resolution = resolve_username(parsed.value)
    if not resolution.confident:
        logger.info(
            "Channel %r resolved by best guess (%s) to %s",
            parsed.value, resolution.method, resolution.channel_id,
        )
    return resolution


def resolve_channel_id(url: str) -> str:
    """Resolve a channel URL to its canonical channel ID."""
    return resolve_channel(url).channel_id


def fetch_channel_info(url: str) -> ChannelInfo:
    """
    Resolve a channel URL and load its display metadata.

    Raises:
        ChannelNotFound / ResolutionExhausted / UpstreamUnavailable
    """
    resolution = resolve_channel(url)
    try:
        data = api_get("channels", part="snippet", id=resolution.channel_id)
    except YTError as e:
        raise UpstreamUnavailable(f"Could not load channel {resolution.channel_id}: {e}", [e]) from e

    items = data.get("items") or []
    if not items:
        raise ChannelNotFound(f"Channel {resolution.channel_id} does not exist")

    ch = items[0]
    sn = ch.get("snippet", {})
    thumbs = sn.get("thumbnails", {})
    thumb = (thumbs.get("medium") or {}).get("url") or (thumbs.get("default") or {}).get("url") or ""
    return ChannelInfo(
        channel_id=ch["id"],
        name=sn.get("title", ""),
        thumbnail_url=thumb,
        custom_url=sn.get("customUrl"),
        resolution=resolution,
    )

"""
YouTube Data API transport
==========================

Thin GET wrapper around https://www.googleapis.com/youtube/v3 shared by the
channel resolver and the video collector.
"""

import logging
from typing import Optional

import requests

from .auth_helper import bearer_headers
from .config import get_settings

logger = logging.getLogger(__name__)

YT_API = "https://www.googleapis.com/youtube/v3"


class YTError(RuntimeError):
    """YouTube API error."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


def api_get(path: str, **params) -> dict:
    """
    Make a GET request to the YouTube Data API.

    Uses a service account bearer token when GOOGLE_SERVICE_ACCOUNT_PATH is
    configured, otherwise the API key.

    Raises:
        YTError on missing credentials, transport failure or non-200 status
    """
    settings = get_settings()
    url = f"{YT_API}/{path}"
    headers = {}

    if settings.service_account_path:
        try:
            headers = bearer_headers(settings.service_account_path)
        except Exception as e:
            raise YTError(f"Service account auth failed: {e}") from e
    elif settings.youtube_api_key:
        params["key"] = settings.youtube_api_key
    else:
        raise YTError("Missing YOUTUBE_API_KEY or GOOGLE_SERVICE_ACCOUNT_PATH in environment.")

    logger.debug("GET %s %s", path, {k: v for k, v in params.items() if k != "key"})
    try:
        r = requests.get(url, params=params, headers=headers, timeout=settings.http_timeout)
    except requests.RequestException as e:
        raise YTError(f"YT API request failed: {e}") from e

    if r.status_code != 200:
        raise YTError(f"YT API error {r.status_code}: {r.text[:200]}", status_code=r.status_code)
    return r.json()

"""
Authentication Helper
=====================
Service account tokens for the YouTube Data API.
"""

import logging
import os
from typing import Dict, Optional

from google.auth import default
from google.auth.transport.requests import Request
from google.oauth2 import service_account

logger = logging.getLogger(__name__)

YOUTUBE_SCOPES = ["https://www.googleapis.com/auth/youtube.readonly"]

_credentials_cache: Dict[str, object] = {}


def _load_credentials(service_account_path: Optional[str]):
    key = service_account_path or "<adc>"
    creds = _credentials_cache.get(key)
    if creds is not None:
        return creds

    if service_account_path and os.path.exists(service_account_path):
        creds = service_account.Credentials.from_service_account_file(
            service_account_path, scopes=YOUTUBE_SCOPES
        )
    else:
        # Application default credentials (gcloud auth application-default login)
        try:
            creds, _ = default(scopes=YOUTUBE_SCOPES)
        except Exception as e:
            raise RuntimeError(
                "No valid Google credentials found. Set GOOGLE_SERVICE_ACCOUNT_PATH "
                "or run `gcloud auth application-default login`."
            ) from e

    _credentials_cache[key] = creds
    return creds


def get_access_token(service_account_path: Optional[str] = None) -> str:
    """
    Return a fresh OAuth2 access token.

    Credentials are cached per path and only refreshed once they expire.
    """
    creds = _load_credentials(service_account_path)
    if not creds.valid:
        logger.debug("Refreshing Google credentials")
        creds.refresh(Request())
    return creds.token


def bearer_headers(service_account_path: Optional[str] = None) -> Dict[str, str]:
    """Authorization header for an authenticated YouTube API request."""
    return {"Authorization": f"Bearer {get_access_token(service_account_path)}"}

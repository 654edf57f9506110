"""
Obsidian Vault Client
=====================

Push Markdown notes into an Obsidian vault through the Local REST API
plugin (https://github.com/coddingtonbear/obsidian-local-rest-api).

Writes use PUT (create or replace) and fall back to POST (append) when the
PUT is rejected. Read helpers return empty results on failure.
"""

import logging
import urllib.parse as up
from typing import List, Optional

import requests

from .config import Settings

logger = logging.getLogger(__name__)


class VaultError(RuntimeError):
    """The vault REST API is unreachable or rejected the credentials."""


class ObsidianVault:
    """
    Minimal client for the Obsidian Local REST API.

    Usage:
        vault = ObsidianVault(api_key, "http://127.0.0.1:27124")
        vault.connect()
        vault.put_note("YouTube Summaries/Channel/Note.md", markdown)
    """

    def __init__(self, api_key: str, base_url: str, timeout: float = 30.0, verify: bool = True):
        self.api_key = api_key
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.session = requests.Session()
        self.session.headers["Authorization"] = f"Bearer {api_key}"
        self.session.verify = verify

    def _note_url(self, path: str) -> str:
        return f"{self.base_url}/vault/{up.quote(path, safe='/')}"

    def connect(self) -> None:
        """
        Check that the REST API answers with our key.

        Raises:
            VaultError if the server is unreachable or returns non-2xx
        """
        try:
            r = self.session.get(f"{self.base_url}/", timeout=self.timeout)
        except requests.RequestException as e:
            raise VaultError(f"Obsidian REST API unreachable: {e}") from e
        if not r.ok:
            raise VaultError(f"Obsidian REST API connection failed: {r.status_code} {r.reason}")
        logger.info("Connected to Obsidian REST API at %s", self.base_url)

    def append_note(self, path: str, markdown: str) -> bool:
        """POST (create or append) a note. Returns False on failure."""
        try:
            r = self.session.post(
                self._note_url(path),
                data=markdown.encode("utf-8"),
                headers={"Content-Type": "text/markdown"},
                timeout=self.timeout,
            )
        except requests.RequestException as e:
            logger.error("Obsidian note create failed for %s: %s", path, e)
            return False
        if r.ok:
            logger.info("Created note in Obsidian: %s", path)
            return True
        logger.error("Obsidian note create failed for %s: %s %s", path, r.status_code, r.reason)
        return False

    def put_note(self, path: str, markdown: str) -> bool:
        """PUT (create or replace) a note, falling back to POST."""
        try:
            r = self.session.put(
                self._note_url(path),
                data=markdown.encode("utf-8"),
                headers={"Content-Type": "text/markdown"},
                timeout=self.timeout,
            )
        except requests.RequestException as e:
            logger.warning("Obsidian PUT failed for %s (%s); retrying with POST", path, e)
            return self.append_note(path, markdown)
        if r.ok:
            logger.info("Updated note in Obsidian: %s", path)
            return True
        logger.warning("Obsidian PUT rejected for %s (%s); retrying with POST", path, r.status_code)
        return self.append_note(path, markdown)

    def search(self, query: str) -> List[dict]:
        """Simple full-text search across the vault."""
        try:
            r = self.session.post(
                f"{self.base_url}/search/simple/",
                params={"query": query},
                timeout=self.timeout,
            )
            if r.ok:
                data = r.json()
                return data if isinstance(data, list) else []
            logger.error("Obsidian search failed: %s %s", r.status_code, r.reason)
        except (requests.RequestException, ValueError) as e:
            logger.error("Obsidian search failed: %s", e)
        return []

    def list_files(self) -> List[str]:
        """File names at the vault root."""
        try:
            r = self.session.get(f"{self.base_url}/vault/", timeout=self.timeout)
            if r.ok:
                files = r.json().get("files")
                return files if isinstance(files, list) else []
            logger.error("Obsidian file listing failed: %s %s", r.status_code, r.reason)
        except (requests.RequestException, ValueError, AttributeError) as e:
            logger.error("Obsidian file listing failed: %s", e)
        return []


def vault_from_settings(settings: Settings) -> Optional[ObsidianVault]:
    """
    Build and connect a vault client, or None when the integration is off.

    The integration is optional: a missing key or a failed connection
    disables it and exports fall back to file downloads.
    """
    if not settings.obsidian_api_key:
        logger.info("OBSIDIAN_API_KEY not set; Obsidian export disabled")
        return None

    vault = ObsidianVault(
        settings.obsidian_api_key,
        settings.obsidian_base_url,
        timeout=settings.http_timeout,
    )
    try:
        vault.connect()
    except VaultError as e:
        logger.warning("Obsidian integration disabled: %s", e)
        return None
    return vault

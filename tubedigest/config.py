"""
Configuration
=============

Environment-driven settings for the digest service.

Values are read from the process environment after loading an optional
`.env` file. `get_settings()` caches the result; call
`get_settings.cache_clear()` after changing the environment.
"""

import logging
import os
from functools import lru_cache
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv
from pydantic import BaseModel


LOG_FORMAT = "%(asctime)s - %(levelname)s - %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"


class Settings(BaseModel):
    """Validated runtime configuration."""
    youtube_api_key: Optional[str] = None
    service_account_path: Optional[str] = None
    http_timeout: float = 30.0

    openai_api_key: Optional[str] = None
    openai_model: str = "gpt-4o"
    summary_backend: str = "openai"  # "openai" | "ollama"
    ollama_model: str = "mistral"
    summary_language: str = "Korean"
    summary_max_chars: int = 12000

    obsidian_api_key: Optional[str] = None
    obsidian_host: str = "127.0.0.1"
    obsidian_port: str = "27124"
    obsidian_scheme: str = "http"
    export_folder: str = "YouTube Summaries"

    data_dir: Path = Path("./data")
    log_level: str = "INFO"

    @property
    def obsidian_base_url(self) -> str:
        return f"{self.obsidian_scheme}://{self.obsidian_host}:{self.obsidian_port}"

    @property
    def library_path(self) -> Path:
        return self.data_dir / "library.json"

    @classmethod
    def from_env(cls) -> "Settings":
        env = os.getenv
        return cls(
            youtube_api_key=env("YOUTUBE_API_KEY") or env("GOOGLE_API_KEY"),
            service_account_path=env("GOOGLE_SERVICE_ACCOUNT_PATH"),
            http_timeout=float(env("HTTP_TIMEOUT", "30")),
            openai_api_key=env("OPENAI_API_KEY"),
            openai_model=env("OPENAI_MODEL", "gpt-4o"),
            summary_backend=env("SUMMARY_BACKEND", "openai").lower(),
            ollama_model=env("OLLAMA_MODEL", "mistral"),
            summary_language=env("SUMMARY_LANGUAGE", "Korean"),
            summary_max_chars=int(env("SUMMARY_MAX_CHARS", "12000")),
            obsidian_api_key=env("OBSIDIAN_API_KEY"),
            obsidian_host=env("OBSIDIAN_HOST", "127.0.0.1"),
            obsidian_port=env("OBSIDIAN_PORT", "27124"),
            obsidian_scheme=env("OBSIDIAN_SCHEME", "http"),
            export_folder=env("EXPORT_FOLDER", "YouTube Summaries"),
            data_dir=Path(env("DATA_DIR", "./data")),
            log_level=env("LOG_LEVEL", "INFO").upper(),
        )


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Load `.env` (if present) and return the cached settings."""
    load_dotenv()
    return Settings.from_env()


def configure_logging(level: Optional[str] = None) -> logging.Logger:
    """Configure root logging for CLI and server entry points."""
    logging.basicConfig(
        level=(level or get_settings().log_level),
        format=LOG_FORMAT,
        datefmt=DATE_FORMAT,
    )
    return logging.getLogger("tubedigest")

"""Server configuration and logging setup."""

import logging
import sys

from pydantic import Field, SecretStr
from pydantic_settings import BaseSettings, SettingsConfigDict

from .models import APIConfiguration

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


class ServerConfig(BaseSettings):
    """Settings read from ``BOOKMARKS_*`` environment variables or ``.env``."""

    model_config = SettingsConfigDict(
        env_prefix="BOOKMARKS_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    api_key: SecretStr
    api_url: str = "http://127.0.0.1:8766/api/v1"
    timeout: float = Field(default=10.0, gt=0)
    max_retries: int = Field(default=5, ge=1)
    request_delay: float = Field(default=0.05, ge=0)

    ws_host: str = "localhost"
    ws_port: int = 8765

    refresh_debounce_ms: int = Field(default=50, ge=0)
    # Root, bookmarks bar and "other bookmarks" in Chromium browsers
    protected_folder_ids: list[str] = Field(default_factory=lambda: ["0", "1", "2"])

    log_level: str = "INFO"

    def get_api_config(self) -> APIConfiguration:
        """Build the HTTP client configuration."""
        return APIConfiguration(
            base_url=self.api_url,
            api_key=self.api_key,
            timeout=self.timeout,
            max_retries=self.max_retries,
            request_delay=self.request_delay,
        )

    @property
    def refresh_delay(self) -> float:
        return self.refresh_debounce_ms / 1000.0


def setup_logging(level: str | int = "INFO") -> None:
    """Send log records to stderr.

    stdout carries the MCP stdio transport, so nothing may be logged there.
    Calling this twice does not add a second handler.
    """
    root = logging.getLogger()
    root.setLevel(level.upper() if isinstance(level, str) else level)

    has_console = any(
        isinstance(h, logging.StreamHandler) and getattr(h, "stream", None) is sys.stderr
        for h in root.handlers
    )
    if not has_console:
        handler = logging.StreamHandler(sys.stderr)
        handler.setFormatter(logging.Formatter(LOG_FORMAT))
        root.addHandler(handler)

    # httpx logs every request at INFO
    logging.getLogger("httpx").setLevel(logging.WARNING)

"""Configuration module for Notura Store."""

import logging
import os
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv
from pydantic import BaseModel, Field, model_validator

from notura import __version__

# Load environment variables from the project root .env file.
# Anchored to __file__ so it works regardless of the process CWD.
_PROJECT_ROOT = Path(__file__).resolve().parent.parent.parent
load_dotenv(_PROJECT_ROOT / ".env")

# User-level config: lives alongside the default data directory
_USER_ENV = Path.home() / ".notura" / ".env"
load_dotenv(_USER_ENV)


logger = logging.getLogger(__name__)


class NoturaConfig(BaseModel):
    """Configuration for the Notura storage layer."""

    # Base directory that relative paths are resolved against
    base_dir: Path = Field(
        default_factory=lambda: Path(os.getenv("NOTURA_BASE_DIR", "."))
    )
    # Database configuration
    database_path: Path = Field(
        default_factory=lambda: Path(
            os.getenv("NOTURA_DATABASE_PATH", "data/notura.db")
        )
    )
    # Image bytes live on disk, metadata lives in the database
    images_dir: Path = Field(
        default_factory=lambda: Path(os.getenv("NOTURA_IMAGES_DIR", "data/images"))
    )
    # Seconds-level lock waits are surfaced as errors, never infinite blocking
    busy_timeout_ms: int = Field(
        default_factory=lambda: int(os.getenv("NOTURA_BUSY_TIMEOUT_MS", "5000"))
    )
    # Search configuration
    search_limit: int = Field(
        default_factory=lambda: int(os.getenv("NOTURA_SEARCH_LIMIT", "50"))
    )
    highlight_window: int = Field(
        default_factory=lambda: int(os.getenv("NOTURA_HIGHLIGHT_WINDOW", "30"))
    )
    snippet_tokens: int = Field(
        default_factory=lambda: int(os.getenv("NOTURA_SNIPPET_TOKENS", "32"))
    )
    log_level: str = Field(
        default_factory=lambda: os.getenv("NOTURA_LOG_LEVEL", "INFO")
    )
    # Operation metrics saved by the CLI on exit
    metrics_file: Path = Field(
        default_factory=lambda: Path(
            os.getenv("NOTURA_METRICS_FILE", "~/.notura/metrics.json")
        ).expanduser()
    )
    version: str = Field(default=__version__)

    @model_validator(mode="after")
    def _validate_limits(self) -> "NoturaConfig":
        """Reject non-positive limits."""
        if self.search_limit < 1:
            raise ValueError("search_limit must be >= 1")
        if self.highlight_window < 0:
            raise ValueError("highlight_window must be >= 0")
        if not 1 <= self.snippet_tokens <= 64:
            # FTS5 caps snippet() at 64 tokens
            raise ValueError("snippet_tokens must be between 1 and 64")
        if self.busy_timeout_ms < 0:
            raise ValueError("busy_timeout_ms must be >= 0")
        return self

    def get_absolute_path(self, path: Path) -> Path:
        """Convert a relative path to an absolute path based on base_dir."""
        if path.is_absolute():
            return path
        return self.base_dir / path

    def get_db_url(self) -> str:
        """Get the database URL for SQLite."""
        db_path = self.get_absolute_path(self.database_path)
        db_path.parent.mkdir(parents=True, exist_ok=True)
        return f"sqlite:///{db_path}"

    def get_images_dir(self) -> Path:
        """Get the absolute images directory, creating it if needed."""
        images_dir = self.get_absolute_path(self.images_dir)
        images_dir.mkdir(parents=True, exist_ok=True)
        return images_dir


# Create a global config instance
config = NoturaConfig()

"""Environment and settings (Pydantic Settings)."""

from pathlib import Path
from typing import Literal, Optional

from pydantic_settings import BaseSettings, SettingsConfigDict

# Default data directory: ~/.quill/data/
_data_dir = Path.home() / ".quill" / "data"


class Settings(BaseSettings):
    """Quill settings loaded from environment and .env.

    Item files live under data_dir; the search index is a single SQLite
    file that can be deleted and rebuilt from those files at any time.
    """

    model_config = SettingsConfigDict(
        env_prefix="QUILL_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Paths (markdown files are the source of truth)
    data_dir: Path = _data_dir
    db_path: Optional[Path] = None  # defaults to data_dir / "search.db"

    # Logging
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = "INFO"
    log_file: Optional[Path] = None  # defaults to data_dir / "quill.log"

    @property
    def index_path(self) -> Path:
        """Resolved SQLite index path."""
        return self.db_path or self.data_dir / "search.db"

    @property
    def log_path(self) -> Path:
        return self.log_file or self.data_dir / "quill.log"


def get_settings() -> Settings:
    """Return application settings (singleton-like)."""
    return Settings()

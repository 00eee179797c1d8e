"""Console entry point: logging setup, then the typer app."""

import logging
import sys
from logging.handlers import RotatingFileHandler
from pathlib import Path

from .cli import app
from .config import get_settings

LOG_FILE_MAX_BYTES = 5 * 1024 * 1024
LOG_FILE_BACKUP_COUNT = 3

FILE_FORMAT = "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s"
CONSOLE_FORMAT = "%(levelname)-8s | %(name)s | %(message)s"


def _file_handler(log_file: Path) -> logging.Handler:
    log_file.parent.mkdir(parents=True, exist_ok=True)
    handler = RotatingFileHandler(
        log_file,
        maxBytes=LOG_FILE_MAX_BYTES,
        backupCount=LOG_FILE_BACKUP_COUNT,
        encoding="utf-8",
    )
    handler.setFormatter(logging.Formatter(FILE_FORMAT, datefmt="%Y-%m-%d %H:%M:%S"))
    handler.setLevel(logging.DEBUG)
    return handler


def setup_logging() -> None:
    """Send quill's log records to a rotating file next to the data.

    The file gets everything at QUILL_LOG_LEVEL (INFO unless set); stderr
    only sees warnings so command output stays clean. Broken settings
    fall back to ~/.quill/quill.log rather than leaving logging unset.
    """
    try:
        settings = get_settings()
        log_file = settings.log_path
        log_level = settings.log_level
    except (ValueError, OSError) as e:
        print(f"Warning: cannot load settings, using default log file: {e}", file=sys.stderr)
        log_file = Path.home() / ".quill" / "quill.log"
        log_level = "INFO"

    stderr_handler = logging.StreamHandler()
    stderr_handler.setFormatter(logging.Formatter(CONSOLE_FORMAT))
    stderr_handler.setLevel(logging.WARNING)

    root = logging.getLogger()
    root.setLevel(getattr(logging, log_level))
    root.addHandler(_file_handler(log_file))
    root.addHandler(stderr_handler)


def main() -> None:
    setup_logging()
    app()


if __name__ == "__main__":
    main()

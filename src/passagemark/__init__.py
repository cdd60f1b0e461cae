"""passagemark - two-colour passage highlighting for reading exams.

Readers highlight text in yellow or green; highlights are stored as
character offsets per container, merged per colour, persisted per exam
session, and re-applied to content that is regenerated on every render.
"""

import logging
import os
from logging.handlers import RotatingFileHandler
from pathlib import Path

__version__ = "0.1.0"


def _setup_logging(log_dir: Path) -> None:
    """Configure logging to both console and rotating file."""
    log_dir.mkdir(parents=True, exist_ok=True)
    log_file = log_dir / f"passagemark.{os.getpid()}.log"

    root_logger = logging.getLogger()
    root_logger.setLevel(logging.DEBUG)

    # File handler - detailed logging with rotation (10MB, keep 5 backups)
    file_handler = RotatingFileHandler(
        log_file,
        maxBytes=10 * 1024 * 1024,
        backupCount=5,
        encoding="utf-8",
    )
    file_handler.setLevel(logging.DEBUG)
    file_handler.setFormatter(
        logging.Formatter(
            "%(asctime)s | %(levelname)-8s | %(name)s:%(lineno)d | %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S",
        )
    )

    # Console handler - less verbose
    console_handler = logging.StreamHandler()
    console_handler.setLevel(logging.INFO)
    console_handler.setFormatter(logging.Formatter("%(levelname)s: %(message)s"))

    root_logger.addHandler(file_handler)
    root_logger.addHandler(console_handler)

    logging.info("Logging configured. Log file: %s", log_file.absolute())


def main() -> None:
    """Entry point for the passagemark web application."""
    from nicegui import ui

    from passagemark.config import get_settings

    settings = get_settings()
    _setup_logging(settings.app.log_dir)

    import passagemark.pages  # noqa: F401 - registers routes

    port = settings.app.port
    storage_secret = settings.app.storage_secret.get_secret_value()

    print(f"passagemark v{__version__}")
    print(f"Starting application on http://0.0.0.0:{port}")

    reload = os.environ.get("PASSAGEMARK_RELOAD", "1") != "0"
    ui.run(host="0.0.0.0", port=port, reload=reload, storage_secret=storage_secret)  # nosec B104


if __name__ in {"__main__", "__mp_main__"}:
    main()

"""Logging utilities for VoiceScribe.

Every module calls ``setup_logger(__name__)`` once at import. Console output
carries a level emoji; the daily log file stays plain text.
"""

import logging
import sys
from datetime import datetime
from pathlib import Path
from typing import Optional

from voicescribe.config.config_loader import config

DEFAULT_LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


class EmojiFormatter(logging.Formatter):
    """Formatter that prefixes each console line with a level emoji."""

    EMOJI_MAP = {
        logging.DEBUG: "🐛",
        logging.INFO: "🟢",
        logging.WARNING: "🟡",
        logging.ERROR: "🛑",
        logging.CRITICAL: "🛑",
    }

    def format(self, record: logging.LogRecord) -> str:
        emoji = self.EMOJI_MAP.get(record.levelno, "")
        message = super().format(record)
        return f"{emoji} {message}" if emoji else message


def log_file_path(log_dir: Path, day: Optional[datetime] = None) -> Path:
    """Return the daily log file for ``day`` (today by default)."""
    date_str = (day or datetime.now()).strftime("%Y-%m-%d")
    return log_dir / f"voicescribe-{date_str}.log"


def _file_handler(log_dir: Path, log_format: str) -> Optional[logging.Handler]:
    try:
        log_dir.mkdir(parents=True, exist_ok=True)
        handler = logging.FileHandler(
            log_file_path(log_dir), mode="a", encoding="utf-8"
        )
    except OSError as e:
        sys.stderr.write(f"File logging disabled, cannot write to {log_dir}: {e}\n")
        return None
    handler.setFormatter(logging.Formatter(log_format))
    return handler


def setup_logger(name: str) -> logging.Logger:
    """Set up a logger with console and file handlers.

    Level, format, directory and whether to write files at all come from the
    ``logging`` config section. Handlers are attached only the first time a
    name is seen.

    Args:
        name: Logger name (typically __name__).

    Returns:
        Configured logger instance.
    """
    logger = logging.getLogger(name)
    if logger.handlers:
        return logger

    log_level = str(config.get("logging.level", "INFO")).upper()
    log_format = config.get("logging.format", DEFAULT_LOG_FORMAT)

    logger.setLevel(getattr(logging, log_level, logging.INFO))
    logger.propagate = False

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setFormatter(EmojiFormatter(log_format))
    logger.addHandler(console_handler)

    if config.get("logging.file_enabled", True):
        log_dir = Path(config.get("logging.directory", "logs"))
        file_handler = _file_handler(log_dir, log_format)
        if file_handler is not None:
            logger.addHandler(file_handler)

    return logger

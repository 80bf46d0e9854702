"""Utility functions for knowledge-garden."""

import hashlib
import os
import sys
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional

import dateparser
from loguru import logger


def setup_logging(
    log_level: str = "INFO",
    log_to_file: bool = False,
    log_to_stdout: bool = False,
    log_dir: Optional[Path] = None,
) -> None:  # pragma: no cover
    """Configure loguru sinks.

    Args:
        log_level: Minimum level to emit
        log_to_file: Write to a rotating file under the config directory
        log_to_stdout: Write to stderr (stdout is left to command output)
        log_dir: Override the directory used for the file sink
    """
    logger.remove()

    if log_to_file:
        directory = log_dir or Path(
            os.getenv("GARDEN_CONFIG_DIR", Path.home() / ".knowledge-garden")
        )
        directory.mkdir(parents=True, exist_ok=True)
        logger.add(
            str(directory / "garden.log"),
            level=log_level,
            rotation="10 MB",
            retention="10 days",
            backtrace=True,
            diagnose=False,
            enqueue=True,
            colorize=False,
        )

    if log_to_stdout:
        logger.add(sys.stderr, level=log_level, backtrace=True, diagnose=False, colorize=True)

    logger.info(f"Logging configured: level={log_level} file={log_to_file} stdout={log_to_stdout}")


def utc_now() -> datetime:
    """Current time as a timezone-aware UTC datetime."""
    return datetime.now(timezone.utc)


def ensure_timezone_aware(dt: datetime) -> datetime:
    """Treat naive datetimes as UTC.

    SQLite drops tzinfo on the way back out, so every timestamp read from the
    database passes through here before it is compared.
    """
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def format_timestamp(dt: Optional[datetime]) -> Optional[str]:
    """RFC-3339 UTC string with a trailing Z, or None."""
    if dt is None:
        return None
    return ensure_timezone_aware(dt).isoformat().replace("+00:00", "Z")


def parse_timestamp(value: object) -> Optional[datetime]:
    """Parse an RFC-3339 string (or datetime) into an aware UTC datetime."""
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return ensure_timezone_aware(value)
    text = str(value).strip()
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    try:
        return ensure_timezone_aware(datetime.fromisoformat(text))
    except ValueError:
        # Hand-edited front-matter sometimes carries looser date formats
        parsed = dateparser.parse(text, settings={"RETURN_AS_TIMEZONE_AWARE": True})
        if parsed is None:
            logger.warning(f"Unparseable timestamp value: {value!r}")
            return None
        return ensure_timezone_aware(parsed)


def compute_checksum(content: str) -> str:
    """SHA-256 hex digest of text content."""
    return hashlib.sha256(content.encode("utf-8")).hexdigest()

"""Utility functions for MultiSub."""

import os
import re
import logging
from .exceptions import FileSystemError, FormattingError

logger = logging.getLogger(__name__)

_SRT_TIME_RE = re.compile(r"^\s*(\d+):(\d{2}):(\d{2})[,.](\d{1,3})\s*$")

def ensure_dir_exists(dir_path: str) -> None:
    """
    Creates `dir_path` (and parents) unless it is already a directory.

    Raises:
        ValueError: If dir_path is empty.
        FileSystemError: If the path is a file or cannot be created.
    """
    if not dir_path:
        raise ValueError("Directory path cannot be empty.")
    if os.path.isdir(dir_path):
        return
    if os.path.exists(dir_path):
        raise FileSystemError(f"Path exists but is not a directory: {dir_path}")
    try:
        os.makedirs(dir_path, exist_ok=True)
    except OSError as e:
        logger.error(f"Could not create directory {dir_path}: {e}")
        raise FileSystemError(f"Could not create directory {dir_path}: {e}") from e
    logger.info(f"Created directory: {dir_path}")

def to_milliseconds(seconds: float) -> int:
    """Rounds a time in seconds to whole milliseconds, clamping at zero."""
    if seconds < 0:
        return 0
    return int(round(seconds * 1000))

def format_time_srt(seconds: float) -> str:
    """
    Formats seconds into SRT time format HH:MM:SS,ms.

    Args:
        seconds: Time in seconds.

    Returns:
        Formatted time string.
    """
    milliseconds = to_milliseconds(seconds)
    hrs = milliseconds // 3600000
    milliseconds %= 3600000
    mins = milliseconds // 60000
    milliseconds %= 60000
    secs = milliseconds // 1000
    milliseconds %= 1000
    return f"{hrs:02d}:{mins:02d}:{secs:02d},{milliseconds:03d}"

def parse_time_srt(value: str) -> float:
    """
    Parses an SRT timestamp (HH:MM:SS,ms) back into seconds.

    Raises:
        FormattingError: If the value is not a valid timestamp.
    """
    match = _SRT_TIME_RE.match(value)
    if not match:
        raise FormattingError(f"Invalid SRT timestamp: '{value}'")
    hrs, mins, secs, frac = match.groups()
    millis = int(frac.ljust(3, "0"))
    return int(hrs) * 3600 + int(mins) * 60 + int(secs) + millis / 1000.0

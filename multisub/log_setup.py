"""Logging configuration for MultiSub."""

import logging
import os
import sys
from logging.handlers import RotatingFileHandler
from typing import Optional

from .exceptions import FileSystemError
from .utils import ensure_dir_exists

DEFAULT_LOG_FORMAT = '%(asctime)s - %(levelname)s - [%(name)s:%(lineno)d] - %(message)s'
DEFAULT_DATE_FORMAT = '%Y-%m-%d %H:%M:%S'
MAX_LOG_BYTES = 10 * 1024 * 1024 # 10 MB
LOG_BACKUPS = 5

# Client libraries that log every HTTP request at INFO.
NOISY_LOGGERS = ("httpx", "httpcore", "openai", "urllib3")


def _file_handler(log_dir: str, log_file: str, formatter: logging.Formatter) -> Optional[RotatingFileHandler]:
    """Builds the rotating file handler, or returns None if the log directory is unusable."""
    log_path = os.path.join(log_dir, log_file)
    try:
        ensure_dir_exists(log_dir)
        handler = RotatingFileHandler(log_path, maxBytes=MAX_LOG_BYTES, backupCount=LOG_BACKUPS, encoding='utf-8')
    except (FileSystemError, OSError) as e:
        sys.stderr.write(f"File logging disabled, cannot open {log_path}: {e}\n")
        return None
    handler.setFormatter(formatter)
    return handler


def setup_logging(
    log_level: int = logging.INFO,
    log_dir: str = "logs",
    log_file: str = "multisub.log",
    console: bool = True
) -> None:
    """
    Configures the root logger with a stdout handler and a rotating file.

    Calling it again replaces the handlers from the previous call, which is
    how the CLI switches from its bootstrap log to the configured one.

    Args:
        log_level: The minimum logging level (e.g., logging.INFO, logging.DEBUG).
        log_dir: The directory to store log files.
        log_file: The name of the log file.
        console: Whether to attach the stdout handler. The CLI turns this off
                 while a progress bar owns the terminal.
    """
    root = logging.getLogger()
    for handler in root.handlers[:]:
        root.removeHandler(handler)
        handler.close()

    root.setLevel(log_level)
    formatter = logging.Formatter(DEFAULT_LOG_FORMAT, datefmt=DEFAULT_DATE_FORMAT)

    if console:
        stream_handler = logging.StreamHandler(sys.stdout)
        stream_handler.setFormatter(formatter)
        stream_handler.setLevel(log_level)
        root.addHandler(stream_handler)

    file_handler = _file_handler(log_dir, log_file, formatter)
    if file_handler is not None:
        root.addHandler(file_handler)
        root.info(f"Logging initialized. Log file: {os.path.join(log_dir, log_file)}")

    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


def setup_logging_from_config(config: dict, log_level: int, console: bool = True) -> None:
    """Applies setup_logging with the log_dir and log_file keys of a merged config."""
    setup_logging(
        log_level=log_level,
        log_dir=config.get('log_dir', 'logs'),
        log_file=config.get('log_file', 'multisub.log'),
        console=console
    )

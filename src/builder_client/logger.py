"""
Builder Client Logger

Provides persistent file logging for diagnosing sync and dispatch issues.
Logs are written to ~/.builder_client/logs/builder_client.log unless the
config or the BUILDER_CLIENT_LOG_DIR environment variable says otherwise.

Features:
- Rotating log files (max 5MB, keeps 3 backups)
- Command dispatch logging (network vs. local)
- Snapshot merge logging
- Exception logging with full stack traces
"""

import logging
import os
import sys
import traceback
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Any, Dict, Optional

LOG_DIR_ENV = "BUILDER_CLIENT_LOG_DIR"
DEFAULT_LOG_DIR = Path.home() / ".builder_client" / "logs"
LOG_FILE_NAME = "builder_client.log"

_FORMAT = logging.Formatter(
    "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)

# Package logger; module loggers (logging.getLogger(__name__)) propagate here
_logger = logging.getLogger("builder_client")
_logger.setLevel(logging.DEBUG)

_log_file: Optional[Path] = None


def resolve_log_dir(log_dir: Optional[str] = None) -> Path:
    """Pick the log directory: explicit value, then env var, then default."""
    if log_dir:
        return Path(log_dir).expanduser()
    env_dir = os.getenv(LOG_DIR_ENV)
    if env_dir:
        return Path(env_dir).expanduser()
    return DEFAULT_LOG_DIR


def init_logging(level: str = "INFO", log_dir: Optional[str] = None, console: bool = False) -> Path:
    """Attach the rotating file handler (and optionally stderr) to the package logger.

    Calling this again replaces the previously installed handlers.

    Args:
        level: Log level name for the handlers
        log_dir: Directory for the log file
        console: Also log to stderr

    Returns:
        Path of the log file
    """
    global _log_file

    for handler in list(_logger.handlers):
        _logger.removeHandler(handler)
        handler.close()

    directory = resolve_log_dir(log_dir)
    directory.mkdir(parents=True, exist_ok=True)
    _log_file = directory / LOG_FILE_NAME

    numeric_level = getattr(logging, level.upper(), logging.INFO)

    file_handler = RotatingFileHandler(
        _log_file,
        maxBytes=5 * 1024 * 1024,  # 5MB
        backupCount=3,
        encoding="utf-8",
    )
    file_handler.setLevel(numeric_level)
    file_handler.setFormatter(_FORMAT)
    _logger.addHandler(file_handler)

    if console and sys.stderr is not None:
        stream_handler = logging.StreamHandler(sys.stderr)
        stream_handler.setLevel(numeric_level)
        stream_handler.setFormatter(logging.Formatter("%(levelname)s - %(message)s"))
        _logger.addHandler(stream_handler)

    return _log_file


def get_logger() -> logging.Logger:
    """Get the builder client logger instance."""
    return _logger


def get_log_file_path() -> str:
    """Get the path to the log file."""
    return str(_log_file) if _log_file else "N/A"


def log_startup(server_url: str):
    """Log client startup."""
    _logger.info("=" * 60)
    _logger.info("Builder Client Starting")
    _logger.info(f"  Server URL: {server_url}")
    _logger.info(f"  Python: {sys.version}")
    _logger.info(f"  Log file: {get_log_file_path()}")
    _logger.info("=" * 60)


def log_shutdown():
    """Log client shutdown."""
    _logger.info("Builder Client Shutdown")
    _logger.info("-" * 60)


def log_command(text: str, sent: bool, original: Optional[str] = None):
    """Log a dispatched command, noting rewrites and local-only handling."""
    target = "NET" if sent else "LOCAL"
    if original is not None and original != text:
        _logger.info(f"CMD {target} | {text} | rewritten from: {original}")
    else:
        _logger.info(f"CMD {target} | {text}")


def log_snapshot(fields: Dict[str, Any]):
    """Log which fields an inbound snapshot carried."""
    _logger.debug(f"SNAPSHOT | {_summarize_fields(fields)}")


def log_exception(context: str, exc: Exception):
    """Log an exception with full stack trace."""
    tb = traceback.format_exc()
    _logger.error(f"EXCEPTION in {context}")
    _logger.error(f"  Type: {type(exc).__name__}")
    _logger.error(f"  Message: {str(exc)}")
    _logger.error(f"  Traceback:\n{tb}")


def log_connection(event: str, details: str = ""):
    """Log connection events."""
    _logger.info(f"CONNECTION {event}: {details}")


def _summarize_fields(fields: Dict[str, Any], max_len: int = 100) -> str:
    """Summarize snapshot fields for logging."""
    if not fields:
        return "{}"

    summary = {}
    for k, v in fields.items():
        if isinstance(v, (list, dict)):
            summary[k] = f"<{type(v).__name__}:{len(v)} items>"
        else:
            summary[k] = v

    result = str(summary)
    if len(result) > max_len:
        return result[: max_len - 3] + "..."
    return result

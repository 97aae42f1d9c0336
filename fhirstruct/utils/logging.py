"""
fhirstruct Logging Utilities - Session Logs for Decode & Validation Runs

Overview:
---------
Centralised logging configuration for the codec, validator and registry.
Provides session-based file logging with unique identifiers, configurable
verbosity, and structured blocks that summarise each decode and validation
run so a failing document can be traced after the fact.

Log Location:
-------------
- Default: ~/.fhirstruct/logs/
- Each CLI run creates a timestamped log file with session ID
- A symlink 'fhirstruct.log' always points to the latest session
- Can be overridden via FHIRSTRUCT_LOG_DIR environment variable

Log File Format:
----------------
- fhirstruct_YYYYMMDD_HHMMSS_<session_id>.log  (per-session files)
- fhirstruct.log (symlink to latest)

Log Levels:
-----------
- DEBUG: Every unknown key preserved, every issue recorded
- INFO: Registry loads, decode/validation summaries
- WARNING: Advisory binding findings, data skipped on re-encode
- ERROR: Decode failures

Usage:
------
    from fhirstruct.utils.logging import get_logger, setup_logging

    # Call once at startup (CLI entry point)
    log_file = setup_logging(level="DEBUG")

    # Get logger in any module
    logger = get_logger(__name__)
    logger.info("Decoding document...")
"""

from __future__ import annotations

import logging
import os
import sys
import uuid
from datetime import datetime
from pathlib import Path
from typing import Optional

# ============================================================================
# Constants
# ============================================================================

DEFAULT_LOG_DIR = Path.home() / ".fhirstruct" / "logs"
DEFAULT_LOG_LEVEL = "INFO"
SYMLINK_NAME = "fhirstruct.log"
ROOT_LOGGER = "fhirstruct"

LOG_FORMAT = "%(asctime)s | %(levelname)-8s | %(session_id)s | %(name)s | %(message)s"
LOG_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

# File logging adds line numbers
FILE_LOG_FORMAT = "%(asctime)s | %(levelname)-8s | %(session_id)s | %(name)s:%(lineno)d | %(message)s"

_log_file_path: Optional[Path] = None
_session_id: Optional[str] = None


# ============================================================================
# Session ID Filter - Adds session_id to all log records
# ============================================================================

class SessionIdFilter(logging.Filter):
    """Add session_id to all log records."""

    def __init__(self, session_id: str):
        super().__init__()
        self.session_id = session_id

    def filter(self, record: logging.LogRecord) -> bool:
        record.session_id = self.session_id  # type: ignore[attr-defined]
        return True


class SessionFormatter(logging.Formatter):
    """Formatter that defaults session_id to 'N/A' for records from other handlers."""

    def format(self, record: logging.LogRecord) -> str:
        if not hasattr(record, "session_id"):
            record.session_id = _session_id or "N/A"  # type: ignore[attr-defined]
        return super().format(record)


# ============================================================================
# Setup Functions
# ============================================================================

def generate_session_id() -> str:
    """Generate a short unique session ID (6 characters)."""
    return uuid.uuid4().hex[:6]


def get_log_directory() -> Path:
    """Get the log directory, respecting FHIRSTRUCT_LOG_DIR environment variable."""
    env_log_dir = os.getenv("FHIRSTRUCT_LOG_DIR")
    if env_log_dir:
        return Path(env_log_dir)
    return DEFAULT_LOG_DIR


def generate_log_filename(session_id: str) -> str:
    """Generate a timestamped log filename with session ID."""
    timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
    return f"fhirstruct_{timestamp}_{session_id}.log"


def setup_logging(
    level: Optional[str] = None,
    log_dir: Optional[Path] = None,
    console_output: bool = False,
    quiet: bool = False,
) -> Path:
    """
    Initialise fhirstruct logging with a session file and optional console output.

    Each call creates a new timestamped log file with a unique session ID
    and repoints the 'fhirstruct.log' symlink at it.

    Parameters
    ----------
    level : str, optional
        Log level: DEBUG, INFO, WARNING, ERROR. Defaults to INFO.
        Can also be set via FHIRSTRUCT_LOG_LEVEL environment variable.
    log_dir : Path, optional
        Directory for log files. Defaults to ~/.fhirstruct/logs/
    console_output : bool
        If True, also log to console (stderr). Default False.
    quiet : bool
        If True, suppress console output entirely. Default False.

    Returns
    -------
    Path
        Path to the log file being written to.
    """
    global _log_file_path, _session_id

    _session_id = generate_session_id()

    if level is None:
        level = os.getenv("FHIRSTRUCT_LOG_LEVEL", DEFAULT_LOG_LEVEL)
    log_level = getattr(logging, level.upper(), logging.INFO)

    if log_dir is None:
        log_dir = get_log_directory()
    log_dir.mkdir(parents=True, exist_ok=True)

    log_file = log_dir / generate_log_filename(_session_id)
    _log_file_path = log_file

    root = logging.getLogger(ROOT_LOGGER)
    for handler in root.handlers[:]:
        root.removeHandler(handler)
        handler.close()
    for f in root.filters[:]:
        root.removeFilter(f)

    root.setLevel(log_level)
    root.addFilter(SessionIdFilter(_session_id))

    # No rotation: each session gets its own file
    file_handler = logging.FileHandler(log_file, encoding="utf-8")
    file_handler.setLevel(log_level)
    file_handler.setFormatter(SessionFormatter(FILE_LOG_FORMAT, LOG_DATE_FORMAT))
    root.addHandler(file_handler)

    if console_output and not quiet:
        console_handler = logging.StreamHandler(sys.stderr)
        console_handler.setLevel(log_level)
        console_handler.setFormatter(SessionFormatter(LOG_FORMAT, LOG_DATE_FORMAT))
        root.addHandler(console_handler)

    root.propagate = False

    symlink_path = log_dir / SYMLINK_NAME
    try:
        if symlink_path.is_symlink() or symlink_path.exists():
            symlink_path.unlink()
        symlink_path.symlink_to(log_file.name)
    except OSError as exc:
        # Symlinks may be unavailable (e.g. Windows without admin)
        root.debug("Could not update %s: %s", symlink_path, exc)

    root.info("=" * 80)
    root.info("fhirstruct Logging Session Started")
    root.info(f"  Session ID: {_session_id}")
    root.info(f"  Log file: {log_file}")
    root.info(f"  Log level: {level.upper()}")
    root.info(f"  Timestamp: {datetime.now().isoformat()}")
    root.info("=" * 80)

    return log_file


def get_logger(name: str) -> logging.Logger:
    """
    Get a logger instance for the given module name.

    Parameters
    ----------
    name : str
        Module name (typically __name__)

    Returns
    -------
    logging.Logger
        Logger namespaced under ``fhirstruct``.  Nothing is written to a
        session file until :func:`setup_logging` has run.
    """
    if name.startswith(ROOT_LOGGER):
        return logging.getLogger(name)
    return logging.getLogger(f"{ROOT_LOGGER}.{name}")


def get_current_log_file() -> Optional[Path]:
    """Return the path to the current log file, if logging is initialised."""
    return _log_file_path


def get_session_id() -> Optional[str]:
    """Return the current session ID, if logging is initialised."""
    return _session_id


# ============================================================================
# Logging Helper Functions - Structured Logging
# ============================================================================

def log_decode_start(
    logger: logging.Logger,
    source: str,
    wire_format: str,
    size: Optional[int] = None,
) -> None:
    """Log the start of a decode operation."""
    logger.info("-" * 60)
    logger.info("DECODE START")
    logger.info(f"  Source: {source}")
    logger.info(f"  Format: {wire_format}")
    if size is not None:
        logger.info(f"  Size: {size} bytes")
    logger.info("-" * 60)


def log_decode_complete(
    logger: logging.Logger,
    type_name: str,
    unknown_keys: int = 0,
) -> None:
    """Log a successful decode."""
    msg = f"✓ DECODED: {type_name}"
    if unknown_keys:
        msg += f" ({unknown_keys} unknown key(s) preserved)"
    logger.info(msg)


def log_validation_summary(
    logger: logging.Logger,
    type_name: str,
    errors: int,
    warnings: int,
    duration_seconds: Optional[float] = None,
) -> None:
    """Log the outcome of one validation pass."""
    logger.info("-" * 60)
    status = "PASSED" if errors == 0 else "FAILED"
    logger.info(f"VALIDATION {status}")
    logger.info(f"  Type: {type_name}")
    logger.info(f"  Errors: {errors}")
    logger.info(f"  Warnings: {warnings}")
    if duration_seconds is not None:
        logger.info(f"  Duration: {duration_seconds:.3f}s")
    logger.info("-" * 60)


def log_document(
    logger: logging.Logger,
    label: str,
    content: str,
    truncate_at: int = 2000,
) -> None:
    """Log (truncated) wire content at DEBUG level."""
    if len(content) > truncate_at:
        display = content[:truncate_at] + f"... [TRUNCATED, {len(content)} chars total]"
    else:
        display = content

    logger.debug(f"{label}:\n{display}")

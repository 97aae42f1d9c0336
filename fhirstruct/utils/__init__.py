"""
fhirstruct Utilities Package - Cross-Cutting Helpers

Overview:
---------
Helpers reused by the CLI and the library modules without importing the
codec or schema layers at package load time.
"""

from .logging import (
    setup_logging,
    get_logger,
    get_current_log_file,
    get_session_id,
    log_decode_start,
    log_decode_complete,
    log_validation_summary,
    log_document,
)

__all__ = [
    # Logging utilities
    "setup_logging",
    "get_logger",
    "get_current_log_file",
    "get_session_id",
    "log_decode_start",
    "log_decode_complete",
    "log_validation_summary",
    "log_document",
]

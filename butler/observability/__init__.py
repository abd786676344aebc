"""Observability utilities (redaction, error log file, access telemetry)."""

from butler.observability.access_denied_log import log_access_denied
from butler.observability.error_log_file import setup_error_log_file
from butler.observability.redaction import redact_text, sanitize

__all__ = [
    "log_access_denied",
    "redact_text",
    "sanitize",
    "setup_error_log_file",
]

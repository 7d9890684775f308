"""
Utility helpers used by the pipeline.

This subpackage exposes the error hierarchy and JSON Lines event reporting,
the run logger, HTTP session/retry helpers and atomic JSON writes.
"""

from .errors import ERRORS, report_error, report_ok
from .files import read_json, write_json_atomic, write_text_atomic
from .logger import MigrationLogger

__all__ = [
    "ERRORS",
    "report_error",
    "report_ok",
    "read_json",
    "write_json_atomic",
    "write_text_atomic",
    "MigrationLogger",
]

"""
Console and file logging for pipeline runs.

Every component receives the same :class:`MigrationLogger` so progress lines
from all stages end up, in order, both on stdout and in
``<report_dir>/migration.log``.
"""

from __future__ import annotations

import os
from typing import Optional

_RULE_WIDTH = 60


class MigrationLogger:
    """Prints ``[LEVEL] message`` lines and mirrors them to a log file."""

    def __init__(self, report_dir: Optional[str] = None, *, verbose: bool = False) -> None:
        self.report_dir = report_dir
        self.verbose = verbose
        self.log_file = os.path.join(report_dir, "migration.log") if report_dir else None

    def log_message(self, message: str, level: str = "INFO") -> None:
        if level != "DEBUG" or self.verbose:
            print(f"[{level}] {message}")
        if self.log_file:
            os.makedirs(os.path.dirname(self.log_file), exist_ok=True)
            with open(self.log_file, "a", encoding="utf-8") as f:
                f.write(f"{level}: {message}\n")

    def debug(self, message: str) -> None:
        self.log_message(message, level="DEBUG")

    def info(self, message: str) -> None:
        self.log_message(message, level="INFO")

    def warning(self, message: str) -> None:
        self.log_message(message, level="WARNING")

    def error(self, message: str) -> None:
        self.log_message(message, level="ERROR")

    def banner(self, title: str, level: str = "INFO", char: str = "=") -> None:
        """Log ``title`` between two horizontal rules."""
        rule = char * _RULE_WIDTH
        self.log_message(rule, level)
        self.log_message(title, level)
        self.log_message(rule, level)

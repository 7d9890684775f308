"""
Error types and structured event reporting for the migration pipeline.

Two families of exceptions are defined here.  :class:`StageError` and its
subclasses are fatal: they abort the running stage and, through the
orchestrator, the whole run.  :class:`ItemError` and its subclasses concern a
single asset or record; callers catch them, report them and move on to the
next item.

Alongside the exceptions, this module keeps a JSON Lines record of per-item
events so that a run can be reviewed afterwards:

``report_error``
    Record an item-level failure.  An optional exception can be supplied and
    will be serialized to the log.

``report_ok``
    Record a successful step for an item.  Additional key/value information
    can be attached via the ``extra`` parameter.

The ``ERRORS`` dictionary maps event codes to human readable messages.  Codes
not present in the dictionary fall back to the code itself.
"""

from __future__ import annotations

import json
import os
from typing import Any, Dict, Optional


class MigrationError(Exception):
    """Base class for all errors raised by the pipeline."""


class ConfigError(MigrationError):
    """The configuration file or environment is invalid."""


class StageError(MigrationError):
    """A fatal error that stops the current stage and the run."""


class FetchError(StageError):
    """A resource collection could not be retrieved from the API."""

    def __init__(self, message: str, *, status_code: Optional[int] = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class StageTimeoutError(StageError):
    """The stage ran past its configured deadline."""


class ItemError(MigrationError):
    """A failure isolated to a single item of a batch."""


class AssetDownloadError(ItemError):
    """An asset could not be downloaded."""

    def __init__(self, url: str, message: str) -> None:
        super().__init__(f"{url}: {message}")
        self.url = url


class RedirectLimitError(AssetDownloadError):
    """A redirect chain exceeded the configured number of hops."""


# Mapping of event codes used throughout the migration to descriptive messages.
# The keys include both error and success codes as the same lookup is used by
# :func:`report_error` and :func:`report_ok`.
ERRORS: Dict[str, str] = {
    "ASSET_DOWNLOAD": "Failed to download asset",
    "ASSET_DOWNLOADED": "Asset downloaded",
    "FEATURED_IMAGE": "Failed to download featured image",
    "PAGE_ASSET": "Failed to download asset referenced by a page",
    "RECORD_MISSING": "No content record for captured document",
    "RECORD_UPDATED": "Content record updated from captured document",
    "INTEGRATION_FAILED": "Failed to integrate captured document",
}

DEFAULT_REPORT_DIR = os.path.join("reports", "migration")


def _write_jsonl(path: str, data: Dict[str, Any]) -> None:
    """Append ``data`` as a JSON object followed by a newline to ``path``."""
    os.makedirs(os.path.dirname(path) or ".", exist_ok=True)
    with open(path, "a", encoding="utf-8") as f:
        json.dump(data, f, ensure_ascii=False)
        f.write("\n")


def report_error(
    code: str,
    item: Dict[str, Any],
    exc: Optional[BaseException] = None,
    *,
    report_dir: str = DEFAULT_REPORT_DIR,
) -> None:
    """Log an error event for ``item``.

    Parameters
    ----------
    code:
        A key identifying the type of error.  If ``code`` is present in
        :data:`ERRORS` its value will be used as the message.
    item:
        The asset or record the event concerns.  Only the ``slug``, ``title``
        and ``url`` keys are referenced if present.
    exc:
        Optional exception instance that triggered the error.
    report_dir:
        Directory holding ``errors.jsonl``.
    """
    entry: Dict[str, Any] = {
        "code": code,
        "message": ERRORS.get(code, code),
        "slug": item.get("slug"),
        "title": item.get("title"),
        "url": item.get("url"),
    }
    if exc is not None:
        entry["error"] = str(exc)
    _write_jsonl(os.path.join(report_dir, "errors.jsonl"), entry)


def report_ok(
    code: str,
    item: Dict[str, Any],
    extra: Optional[Dict[str, Any]] = None,
    *,
    report_dir: str = DEFAULT_REPORT_DIR,
) -> None:
    """Log a successful event for ``item``.

    ``extra`` is merged into the entry written to ``success.jsonl``.
    """
    entry: Dict[str, Any] = {
        "code": code,
        "message": ERRORS.get(code, code),
        "slug": item.get("slug"),
        "title": item.get("title"),
        "url": item.get("url"),
    }
    if extra:
        entry.update(extra)
    _write_jsonl(os.path.join(report_dir, "success.jsonl"), entry)

"""
HTTP plumbing shared by the fetcher and the asset downloader.

A single :class:`requests.Session` is built per run from the configuration so
that the static credential, the ``User-Agent`` header and connection pooling
are shared by every stage.  :class:`RateLimiter` keeps requests spaced out and
:func:`with_retries` retries transient failures (429, 5xx and connection
errors) with exponential backoff.  Client errors are never retried; they are
handed back to the caller, which decides whether they are fatal.
"""

from __future__ import annotations

import time
from typing import Callable, Optional

import requests

RETRY_STATUSES = (429, 500, 502, 503, 504)


class RateLimiter:
    """
    Simple time-based rate limiter.  Ensures that no more than ``rpm``
    requests are dispatched per minute.  ``rpm`` of zero disables it.
    """

    def __init__(self, rpm: int = 200) -> None:
        self.rpm = max(0, rpm)
        self.interval = 60.0 / float(self.rpm) if self.rpm else 0.0
        self._last = 0.0

    def wait(self, time_fn: Callable[[], float] = time.time, sleep_fn: Callable[[float], None] = time.sleep) -> None:
        if not self.interval:
            return
        now = time_fn()
        dt = now - self._last
        if dt < self.interval:
            sleep_fn(self.interval - dt)
        self._last = time_fn()


def build_session(
    *,
    user_agent: str,
    username: Optional[str] = None,
    app_password: Optional[str] = None,
) -> requests.Session:
    """
    Create the session used for every request of a run.

    :param user_agent: Value of the ``User-Agent`` header.
    :param username: WordPress user for application-password auth.
    :param app_password: The application password.  Both credentials must
        be set for authentication to be enabled.
    :return: A configured ``requests.Session``.
    """
    session = requests.Session()
    session.headers.update({"User-Agent": user_agent, "Accept": "application/json"})
    if username and app_password:
        session.auth = (username, app_password)
    return session


def with_retries(
    fn: Callable[[], requests.Response],
    *,
    max_attempts: int = 3,
    base_delay: float = 0.7,
    sleep_fn: Callable[[float], None] = time.sleep,
) -> requests.Response:
    """
    Execute a function returning a ``requests.Response``, retrying on
    transient HTTP errors.  Retries are attempted on status codes 429
    and 5xx and on connection-level errors.  Backoff is exponential and
    a ``Retry-After`` header takes precedence when present.

    :param fn: A zero-argument callable that performs the HTTP request.
    :param max_attempts: Maximum number of attempts before giving up.
    :param base_delay: Base delay in seconds for exponential backoff.
    :param sleep_fn: Sleep function, replaceable in tests.
    :return: The successful (or redirecting) ``requests.Response``.
    :raises requests.HTTPError: for client errors, or once all attempts fail.
    :raises requests.RequestException: when the last attempt fails at the
        connection level.
    """
    attempt = 0
    while True:
        try:
            resp = fn()
            resp.raise_for_status()
            return resp
        except requests.HTTPError as e:
            status = e.response.status_code if e.response is not None else None
            if e.response is not None:
                # Streamed responses hold their pooled connection until closed.
                e.response.close()
            if status not in RETRY_STATUSES or attempt >= max_attempts - 1:
                raise
            retry_after = e.response.headers.get("Retry-After")
            try:
                wait = float(retry_after) if retry_after else base_delay * (2 ** attempt)
            except ValueError:
                wait = base_delay * (2 ** attempt)
            sleep_fn(wait)
            attempt += 1
        except requests.RequestException:
            if attempt >= max_attempts - 1:
                raise
            sleep_fn(base_delay * (2 ** attempt))
            attempt += 1

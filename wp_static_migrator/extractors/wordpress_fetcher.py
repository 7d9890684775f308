"""
Paginated extraction of raw collections from the WordPress REST API.

:class:`WordPressFetcher` walks the ``/wp-json/wp/v2/*`` list endpoints page
by page and persists each collection as one JSON array under
``<data_dir>/raw``.  The number of pages comes from the ``X-WP-TotalPages``
header of the first response.  WordPress answers ``400`` once ``page`` runs
past the last page; on any page after the first this is treated as the end
of the collection.  Every other failure raises :class:`FetchError`, which the
orchestrator treats as fatal to the run.

Usage example::

    fetcher = WordPressFetcher(config, session, logger)
    posts = fetcher.fetch_all("/wp-json/wp/v2/posts", per_page=100)
    fetcher.save_collection("posts", posts)
"""

from __future__ import annotations

import os
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional, Tuple

import requests

from wp_static_migrator.config import MigrationConfig
from wp_static_migrator.utils.errors import FetchError
from wp_static_migrator.utils.files import ensure_dir, write_json_atomic
from wp_static_migrator.utils.http import RateLimiter, with_retries
from wp_static_migrator.utils.logger import MigrationLogger

TOTAL_PAGES_HEADER = "X-WP-TotalPages"
PAGINATION_END_STATUS = 400

# Collections fetched by a full run, in order: (file name, endpoint).
RESOURCE_ENDPOINTS: Tuple[Tuple[str, str], ...] = (
    ("pages", "/wp-json/wp/v2/pages"),
    ("posts", "/wp-json/wp/v2/posts"),
    ("media", "/wp-json/wp/v2/media"),
    ("categories", "/wp-json/wp/v2/categories"),
    ("tags", "/wp-json/wp/v2/tags"),
)


class WordPressFetcher:
    """Client for the paginated list endpoints of the WordPress REST API."""

    def __init__(
        self,
        config: MigrationConfig,
        session: requests.Session,
        logger: MigrationLogger,
        *,
        check_deadline: Optional[Callable[[], None]] = None,
    ) -> None:
        self.config = config
        self.session = session
        self.logger = logger
        self.check_deadline = check_deadline or (lambda: None)
        self._limiter = RateLimiter(config.http.rpm)

    def _get(self, url: str, params: Optional[Dict[str, Any]] = None) -> requests.Response:
        self.check_deadline()
        self._limiter.wait()

        def do_request() -> requests.Response:
            return self.session.get(url, params=params, timeout=self.config.http.timeout)

        return with_retries(
            do_request,
            max_attempts=self.config.http.max_attempts,
            base_delay=self.config.http.base_delay,
        )

    @staticmethod
    def _parse_json(resp: requests.Response, url: str) -> Any:
        try:
            return resp.json()
        except ValueError as e:
            raise FetchError(f"Unparsable response from {url}: {e}") from e

    def fetch_all(self, endpoint: str, per_page: Optional[int] = None) -> List[Any]:
        """
        Fetch every item of a list endpoint.

        :param endpoint: Path relative to the site, e.g. ``/wp-json/wp/v2/posts``.
        :param per_page: Page size; defaults to ``wordpress.per_page``.
        :return: Items in request order (page 1 items, then page 2, ...).
        :raises FetchError: if the first page fails, or any page fails for a
            reason other than running past the last page.
        """
        per_page = per_page or self.config.wordpress.per_page
        url = f"{self.config.site_url}{endpoint}"
        items: List[Any] = []
        page = 1
        total_pages = 1

        self.logger.info(f"Fetching {endpoint}...")

        while page <= total_pages:
            params = {"per_page": per_page, "page": page, "_embed": "1"}
            self.logger.info(f"  Page {page}/{total_pages}: {url}")
            try:
                resp = self._get(url, params=params)
            except requests.HTTPError as e:
                status = e.response.status_code if e.response is not None else None
                if status == PAGINATION_END_STATUS and page > 1:
                    self.logger.info(f"  Reached end of pagination at page {page}")
                    break
                raise FetchError(f"Error fetching page {page} of {endpoint}: {e}", status_code=status) from e
            except requests.RequestException as e:
                raise FetchError(f"Error fetching page {page} of {endpoint}: {e}") from e

            data = self._parse_json(resp, url)

            if page == 1:
                header = resp.headers.get(TOTAL_PAGES_HEADER)
                if header:
                    try:
                        total_pages = int(header)
                    except ValueError as e:
                        raise FetchError(f"Invalid {TOTAL_PAGES_HEADER} header {header!r} from {url}") from e
                    self.logger.info(f"  Total pages to fetch: {total_pages}")

            if isinstance(data, list):
                items.extend(data)
                self.logger.info(f"  Fetched {len(data)} items (Total so far: {len(items)})")
            else:
                items.append(data)

            page += 1

        self.logger.info(f"Completed: {len(items)} items fetched from {endpoint}")
        return items

    def fetch_site_info(self) -> Dict[str, Any]:
        """Fetch the API root document (site name, description, namespaces)."""
        url = f"{self.config.site_url}/wp-json"
        self.logger.info("Fetching site information...")
        try:
            resp = self._get(url)
        except requests.RequestException as e:
            raise FetchError(f"Error fetching site info: {e}") from e
        info = self._parse_json(resp, url)
        if not isinstance(info, dict):
            raise FetchError(f"Unexpected site info payload from {url}")
        return info

    def save_collection(self, name: str, data: Any) -> str:
        """Replace ``<raw_dir>/<name>.json`` with ``data``."""
        path = os.path.join(self.config.paths.raw_dir, f"{name}.json")
        write_json_atomic(path, data)
        self.logger.info(f"Saved to {path}")
        return path

    def fetch_resources(self) -> Dict[str, int]:
        """
        Fetch the site info and every collection of :data:`RESOURCE_ENDPOINTS`,
        saving each one as soon as it is complete, then write ``summary.json``.

        :return: Item count per collection.
        """
        ensure_dir(self.config.paths.raw_dir)

        self.save_collection("site-info", self.fetch_site_info())

        counts: Dict[str, int] = {}
        for name, endpoint in RESOURCE_ENDPOINTS:
            items = self.fetch_all(endpoint)
            self.save_collection(name, items)
            counts[name] = len(items)

        summary = {
            "fetchedAt": datetime.now(timezone.utc).isoformat(),
            "source": self.config.site_url,
            "counts": counts,
        }
        self.save_collection("summary", summary)

        for name, count in counts.items():
            self.logger.info(f"  {name.capitalize()}: {count}")
        return counts

"""
Idempotent download of binary assets referenced by WordPress content.

:class:`AssetDownloader` stores every asset under ``paths.media_dir`` and
records where it went in ``media-mapping.json`` (absolute source URL →
site-relative path such as ``/media/images/photo.jpg``).  The mapping only
grows: entries from previous runs are loaded first, reused whenever their
file is still on disk, and merged back when the batch is saved.
Assets come from the media library (``raw/media.json``), from the Open Graph
images of processed posts and from the images referenced by rendered pages
of the live site.  Local paths never point outside ``media_dir``.

An asset whose target file already exists is never requested again.
Redirects are followed by hand so the ``Location`` header can be resolved
against the URL that produced it, and a chain longer than
``http.max_redirects`` hops fails with :class:`RedirectLimitError`.  A failed
download never leaves a partial file behind.

Usage example::

    downloader = AssetDownloader(config, session, logger)
    summary = downloader.download_all()          # media.json → public/media
    local = downloader.ensure("https://example.com/wp-content/uploads/a.jpg")
    downloader.save_mapping()
"""

from __future__ import annotations

import glob
import hashlib
import json
import mimetypes
import os
import posixpath
import re
import time
from dataclasses import dataclass
from typing import Any, Callable, Dict, Iterable, List, Optional
from urllib.parse import unquote, urljoin, urlparse

import requests
from bs4 import BeautifulSoup
from pydantic import ValidationError

from wp_static_migrator.config import MigrationConfig
from wp_static_migrator.models.content import ContentRecord, MediaItem
from wp_static_migrator.utils.errors import (
    AssetDownloadError,
    FetchError,
    RedirectLimitError,
    StageError,
    report_error,
    report_ok,
)
from wp_static_migrator.utils.files import ensure_dir, read_json, write_json_atomic
from wp_static_migrator.utils.http import RateLimiter, with_retries
from wp_static_migrator.utils.logger import MigrationLogger

REDIRECT_STATUSES = (301, 302, 303, 307, 308)
CHUNK_SIZE = 64 * 1024
FEATURED_SUBDIR = "blog-featured"
PAGE_ASSETS_SUBDIR = "images/site"

_IMAGE_PATH_RE = re.compile(r"\.(png|jpe?g|gif|webp|svg|avif|ico)$", re.IGNORECASE)
_CSS_URL_RE = re.compile(r"url\(\s*['\"]?([^'\")]+?)['\"]?\s*\)", re.IGNORECASE)


def media_subdir(mime_type: str) -> str:
    """Directory an asset is filed under, by MIME type."""
    if mime_type.startswith("image/"):
        return "images"
    if mime_type.startswith("video/"):
        return "videos"
    if mime_type.startswith("application/pdf"):
        return "documents"
    return "other"


def filename_from_url(url: str, fallback_stem: str, default_ext: str = ".jpg") -> str:
    """
    Derive a file name from the last path segment of ``url``.

    When the segment has no extension, ``fallback_stem`` plus the path's
    extension (or ``default_ext``) is used instead.
    """
    path = urlparse(url).path
    # Decoded separators ("%2F", "%5C") must not reach the file system.
    name = unquote(posixpath.basename(path)).replace("\\", "/").rsplit("/", 1)[-1]
    if "." in name and not name.startswith("."):
        return name
    ext = posixpath.splitext(name)[1] or default_ext
    return f"{fallback_stem}{ext}"


def _srcset_urls(value: str) -> List[str]:
    # "a.jpg 300w, b.jpg 600w": the URL is the first token of each candidate.
    return [candidate.split()[0] for candidate in value.split(",") if candidate.strip()]


def extract_asset_urls(html: str, base_url: str) -> List[str]:
    """
    Absolute URLs of the images referenced by a rendered page.

    ``src``/``srcset`` (and their lazy-loading ``data-`` twins) of ``img`` and
    ``source`` elements, ``link`` hrefs and CSS ``url()`` references in
    ``style`` elements and attributes are collected.  Relative references
    are resolved against ``base_url``.  Only image file types are kept,
    without duplicates, in the order they first appear.
    """
    soup = BeautifulSoup(html, "html.parser")
    refs: List[str] = []
    for tag in soup.find_all(["img", "source"]):
        for attr in ("src", "data-src"):
            if tag.get(attr):
                refs.append(tag[attr])
        for attr in ("srcset", "data-srcset"):
            if tag.get(attr):
                refs.extend(_srcset_urls(tag[attr]))
    for tag in soup.find_all("link", href=True):
        refs.append(tag["href"])
    for tag in soup.find_all(style=True):
        refs.extend(_CSS_URL_RE.findall(tag["style"]))
    for tag in soup.find_all("style"):
        refs.extend(_CSS_URL_RE.findall(tag.get_text()))

    urls: List[str] = []
    for ref in refs:
        ref = ref.strip()
        if not ref or ref.startswith("data:"):
            continue
        absolute = urljoin(base_url, ref)
        parsed = urlparse(absolute)
        if parsed.scheme not in ("http", "https") or not _IMAGE_PATH_RE.search(parsed.path):
            continue
        if absolute not in urls:
            urls.append(absolute)
    return urls


@dataclass
class DownloadSummary:
    downloaded: int = 0
    skipped: int = 0
    failed: int = 0

    @property
    def succeeded(self) -> int:
        return self.downloaded + self.skipped


class AssetDownloader:
    """Downloads assets once and keeps the URL → local path mapping."""

    def __init__(
        self,
        config: MigrationConfig,
        session: requests.Session,
        logger: MigrationLogger,
        *,
        check_deadline: Optional[Callable[[], None]] = None,
        sleep_fn: Callable[[float], None] = time.sleep,
    ) -> None:
        self.config = config
        self.session = session
        self.logger = logger
        self.check_deadline = check_deadline or (lambda: None)
        self.sleep_fn = sleep_fn
        self.summary = DownloadSummary()
        self._limiter = RateLimiter(config.http.rpm)

        self.existing: Dict[str, str] = self.load_mapping()
        # URL → local path for this run.
        self.mapping: Dict[str, str] = {}
        # Local path → URL, so two URLs never share one file.
        self._claimed: Dict[str, str] = {path: url for url, path in self.existing.items()}

    ###########################################################################
    # Mapping persistence
    ###########################################################################

    def load_mapping(self) -> Dict[str, str]:
        path = self.config.paths.mapping_file
        if not os.path.exists(path):
            return {}
        try:
            data = read_json(path)
        except (OSError, json.JSONDecodeError) as e:
            raise StageError(f"Could not read asset mapping {path}: {e}") from e
        if not isinstance(data, dict):
            raise StageError(f"Asset mapping {path} is not a JSON object")
        return {str(k): str(v) for k, v in data.items()}

    def save_mapping(self) -> Dict[str, str]:
        """
        Merge this run's entries into the mapping file.

        Existing entries whose local file is present are kept as they are;
        nothing is ever removed.
        """
        merged = dict(self.existing)
        for url, local in self.mapping.items():
            previous = merged.get(url)
            if previous and previous != local and self._file_exists(previous):
                continue
            merged[url] = local
        write_json_atomic(self.config.paths.mapping_file, merged)
        self.existing = merged
        self.logger.info(f"Media mapping saved to: {self.config.paths.mapping_file} ({len(merged)} URLs)")
        return merged

    ###########################################################################
    # Local paths
    ###########################################################################

    def _absolute_path(self, local: str) -> Optional[str]:
        """File system path of a mapping value, or ``None`` if it is not inside ``media_dir``."""
        prefix = self.config.paths.media_url_prefix.rstrip("/") + "/"
        if not local.startswith(prefix):
            return None
        root = os.path.abspath(self.config.paths.media_dir)
        path = os.path.abspath(os.path.join(root, *local[len(prefix):].split("/")))
        if os.path.commonpath([root, path]) != root or path == root:
            return None
        return path

    def _file_exists(self, local: str) -> bool:
        path = self._absolute_path(local)
        return bool(path) and os.path.exists(path)

    def _local_path(self, url: str, subdir: str, filename: str) -> str:
        prefix = self.config.paths.media_url_prefix.rstrip("/")
        local = f"{prefix}/{subdir}/{filename}"
        owner = self._claimed.get(local)
        if owner is not None and owner != url:
            stem, ext = posixpath.splitext(filename)
            digest = hashlib.sha1(url.encode("utf-8")).hexdigest()[:8]
            local = f"{prefix}/{subdir}/{stem}-{digest}{ext}"
        return local

    ###########################################################################
    # Download
    ###########################################################################

    def ensure(
        self,
        url: str,
        *,
        subdir: Optional[str] = None,
        filename: Optional[str] = None,
        slug: str = "asset",
    ) -> str:
        """
        Make sure ``url`` is available locally and return its local path.

        :param url: Absolute source URL of the asset.
        :param subdir: Media subdirectory; derived from the URL's file type
            when omitted.
        :param filename: Target file name; derived from the URL when omitted.
        :param slug: Stem used when the URL has no usable file name.
        :return: The site-relative path recorded in the mapping.
        :raises AssetDownloadError: if the asset cannot be downloaded.
        """
        if url in self.mapping:
            return self.mapping[url]

        previous = self.existing.get(url)
        if previous and self._file_exists(previous):
            self.logger.info(f"  Skipped (exists): {previous}")
            self.summary.skipped += 1
            self._record(url, previous)
            return previous

        filename = filename or filename_from_url(url, slug)
        if subdir is None:
            subdir = media_subdir(_guess_mime(filename))
        local = self._local_path(url, subdir, filename)
        target = self._absolute_path(local)
        if target is None:
            raise AssetDownloadError(url, f"Refusing to write outside the media directory: {local}")

        if os.path.exists(target):
            self.logger.info(f"  Skipped (exists): {local}")
            self.summary.skipped += 1
            self._record(url, local)
            return local

        ensure_dir(os.path.dirname(target))
        self.logger.info(f"  Downloading: {url}")
        self._download(url, target)
        self.summary.downloaded += 1
        self._record(url, local)
        return local

    def _record(self, url: str, local: str) -> None:
        self.mapping[url] = local
        self._claimed[local] = url

    def _download(self, url: str, target: str, hops: int = 0) -> None:
        self.check_deadline()
        self._limiter.wait()

        def do_request() -> requests.Response:
            return self.session.get(
                url,
                stream=True,
                allow_redirects=False,
                timeout=self.config.http.timeout,
            )

        try:
            resp = with_retries(
                do_request,
                max_attempts=self.config.http.max_attempts,
                base_delay=self.config.http.base_delay,
            )
        except requests.HTTPError as e:
            _remove_partial(target)
            status = e.response.status_code if e.response is not None else "?"
            raise AssetDownloadError(url, f"HTTP {status}") from e
        except requests.RequestException as e:
            _remove_partial(target)
            raise AssetDownloadError(url, str(e)) from e

        with resp:
            if resp.status_code in REDIRECT_STATUSES:
                _remove_partial(target)
                location = resp.headers.get("Location")
                if not location:
                    raise AssetDownloadError(url, "Redirect without Location header")
                if hops >= self.config.http.max_redirects:
                    raise RedirectLimitError(url, f"More than {self.config.http.max_redirects} redirects")
                next_url = urljoin(url, location)
                self.logger.debug(f"  Redirect {resp.status_code}: {url} -> {next_url}")
                self._download(next_url, target, hops + 1)
                return

            if not 200 <= resp.status_code < 300:
                _remove_partial(target)
                raise AssetDownloadError(url, f"HTTP {resp.status_code}")

            try:
                with open(target, "wb") as f:
                    for chunk in resp.iter_content(chunk_size=CHUNK_SIZE):
                        if chunk:
                            f.write(chunk)
            except (OSError, requests.RequestException) as e:
                _remove_partial(target)
                raise AssetDownloadError(url, str(e)) from e

    ###########################################################################
    # Batches
    ###########################################################################

    def _pause(self, downloaded_before: int) -> None:
        delay = self.config.http.download_delay
        if delay and self.summary.downloaded > downloaded_before:
            self.sleep_fn(delay)

    def download_media(self, media_items: Iterable[Dict[str, Any]]) -> DownloadSummary:
        """
        Download every media library item and its responsive size variants.

        A failing item is logged, reported and counted; the batch goes on.
        Failing size variants are only logged.
        """
        items = list(media_items)
        total = len(items)
        self.logger.info(f"Downloading {total} media items...")

        for idx, raw in enumerate(items, start=1):
            progress = f"[{idx}/{total}]"
            downloaded_before = self.summary.downloaded
            event = {"url": raw.get("source_url") if isinstance(raw, dict) else None}
            try:
                item = MediaItem.model_validate(raw)
                event = {"slug": item.slug, "url": item.source_url}
                subdir = media_subdir(item.mime_type)
                local = self.ensure(item.source_url, subdir=subdir, slug=item.slug)
                self.logger.info(f"{progress} OK {local}")
                report_ok("ASSET_DOWNLOADED", event, {"path": local}, report_dir=self.config.paths.report_dir)
            except (AssetDownloadError, ValidationError) as e:
                self.summary.failed += 1
                self.logger.warning(f"{progress} Failed: {event.get('url')} - {e}")
                report_error("ASSET_DOWNLOAD", event, e, report_dir=self.config.paths.report_dir)
                continue

            for size_name, size_url in item.size_variants():
                try:
                    self.ensure(size_url, subdir=subdir, slug=f"{item.slug}-{size_name}")
                except AssetDownloadError as e:
                    self.logger.debug(f"{progress}   size '{size_name}' skipped: {e}")

            if idx < total:
                self._pause(downloaded_before)

        self.logger.info(
            f"Download complete: {self.summary.succeeded} succeeded, {self.summary.failed} failed"
        )
        return self.summary

    def download_all(self) -> DownloadSummary:
        """Download everything listed in ``raw/media.json`` and save the mapping."""
        media_json = os.path.join(self.config.paths.raw_dir, "media.json")
        if not os.path.exists(media_json):
            raise StageError(f"Media data not found at {media_json}. Run the fetch stage first.")
        try:
            media_items = read_json(media_json)
        except (OSError, json.JSONDecodeError) as e:
            raise StageError(f"Could not read {media_json}: {e}") from e
        if not isinstance(media_items, list):
            raise StageError(f"{media_json} is not a JSON array")

        summary = self.download_media(media_items)
        self.save_mapping()
        return summary

    def download_featured_images(self) -> Dict[str, str]:
        """
        Download the Open Graph image of every processed post and write the
        slug → local path map to ``processed/blog-featured-images.json``.
        """
        posts_dir = self.config.paths.records_dir("post")
        files = sorted(glob.glob(os.path.join(posts_dir, "*.json")))
        self.logger.info(f"Found {len(files)} blog posts")

        image_map: Dict[str, str] = {}
        for path in files:
            try:
                record = ContentRecord.model_validate(read_json(path))
            except (OSError, json.JSONDecodeError, ValidationError) as e:
                self.logger.warning(f"Could not read {path}: {e}")
                continue

            url = record.featured_image_url()
            if not url:
                self.logger.info(f"No featured image for: {record.slug}")
                continue

            filename = f"{record.slug}{posixpath.splitext(urlparse(url).path)[1] or '.png'}"
            event = {"slug": record.slug, "title": record.title, "url": url}
            try:
                image_map[record.slug] = self.ensure(url, subdir=FEATURED_SUBDIR, filename=filename)
            except AssetDownloadError as e:
                self.summary.failed += 1
                self.logger.warning(f"Failed to download featured image for {record.slug}: {e}")
                report_error("FEATURED_IMAGE", event, e, report_dir=self.config.paths.report_dir)

        out_path = os.path.join(self.config.paths.processed_dir, "blog-featured-images.json")
        write_json_atomic(out_path, image_map)
        self.save_mapping()
        self.logger.info(f"Featured images mapped: {len(image_map)} of {len(files)} posts")
        return image_map

    def _fetch_page(self, url: str) -> str:
        self.check_deadline()
        self._limiter.wait()

        def do_request() -> requests.Response:
            return self.session.get(
                url,
                headers={"Accept": "text/html,application/xhtml+xml"},
                timeout=self.config.http.timeout,
            )

        try:
            resp = with_retries(
                do_request,
                max_attempts=self.config.http.max_attempts,
                base_delay=self.config.http.base_delay,
            )
        except requests.RequestException as e:
            raise FetchError(f"Could not fetch page {url}: {e}") from e
        return resp.text

    def download_page_assets(self, page_urls: Optional[Iterable[str]] = None) -> Dict[str, str]:
        """
        Download the images referenced by rendered pages of the live site.

        Each page of ``wordpress.asset_pages`` (the home page by default) is
        fetched and scanned with :func:`extract_asset_urls`; every reference
        is stored under ``images/site``.  A page that cannot be fetched is
        fatal, a failing asset is reported and skipped.  The URL → path map
        of this pass goes to ``raw/homepage-asset-mapping.json`` and is also
        merged into the media mapping.
        """
        site_root = self.config.site_url + "/"
        pages = [urljoin(site_root, page) for page in (page_urls or self.config.wordpress.asset_pages)]

        asset_map: Dict[str, str] = {}
        for page_url in pages:
            self.logger.info(f"Scanning {page_url} for assets...")
            urls = [url for url in extract_asset_urls(self._fetch_page(page_url), page_url) if url not in asset_map]
            total = len(urls)
            self.logger.info(f"Found {total} assets")

            for idx, url in enumerate(urls, start=1):
                try:
                    asset_map[url] = self.ensure(url, subdir=PAGE_ASSETS_SUBDIR)
                except AssetDownloadError as e:
                    self.summary.failed += 1
                    self.logger.warning(f"[{idx}/{total}] Failed: {url} - {e}")
                    report_error("PAGE_ASSET", {"url": url}, e, report_dir=self.config.paths.report_dir)
                    continue
                self.logger.info(f"[{idx}/{total}] OK {asset_map[url]}")

        write_json_atomic(self.config.paths.page_asset_mapping_file, asset_map)
        self.save_mapping()
        self.logger.info(f"Page assets mapped: {len(asset_map)}")
        return asset_map


def _guess_mime(filename: str) -> str:
    return mimetypes.guess_type(filename)[0] or "application/octet-stream"


def _remove_partial(path: str) -> None:
    if os.path.exists(path):
        os.remove(path)

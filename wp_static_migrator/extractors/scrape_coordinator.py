"""
Planning of the capture step for content the REST API does not expose.

Page-builder content (Oxygen, Elementor and friends) is rendered only on the
live site, so ``content.rendered`` in the API is empty or useless.  The
:class:`ScrapeCoordinator` reads the page and post indexes written by the
transformer, writes a human-readable worklist for whoever (or whatever)
performs the capture, and drops a placeholder document for every item that
has not been captured yet.

Placeholders embed :data:`PLACEHOLDER_SENTINEL`; the integrator refuses to
merge any document containing it.  Existing capture files are never
overwritten, so re-planning is always safe.
"""

from __future__ import annotations

import html
import json
import os
from dataclasses import dataclass, field
from typing import List

from pydantic import ValidationError

from wp_static_migrator.config import MigrationConfig
from wp_static_migrator.models.content import IndexEntry, ScrapeTask
from wp_static_migrator.utils.errors import StageError
from wp_static_migrator.utils.files import ensure_dir, read_json, write_text_atomic
from wp_static_migrator.utils.logger import MigrationLogger

PLACEHOLDER_SENTINEL = "TODO: Replace this with actual scraped HTML content"

_RULE = "=" * 70
_SUBRULE = "-" * 70

_PLACEHOLDER_TEMPLATE = """<!-- Scraped content for: {title} -->
<!-- URL: {url} -->
<!-- {sentinel} -->

<{tag} class="{css_class}">
  <h1>{title}</h1>
  <p>Content needs to be scraped from WordPress site.</p>
</{tag}>"""


def _comment_safe(text: str) -> str:
    # "--" would end the HTML comment early.
    return text.replace("--", "&#45;&#45;")


def placeholder_document(task: ScrapeTask) -> str:
    """Render the placeholder written for a task that has no capture yet."""
    is_post = task.kind == "post"
    return _PLACEHOLDER_TEMPLATE.format(
        title=_comment_safe(html.escape(task.title, quote=False)),
        url=_comment_safe(task.url),
        sentinel=PLACEHOLDER_SENTINEL,
        tag="article" if is_post else "div",
        css_class="post-content" if is_post else "page-content",
    )


def is_placeholder(text: str) -> bool:
    return PLACEHOLDER_SENTINEL in text


@dataclass
class ScrapePlan:
    worklist_path: str
    tasks: List[ScrapeTask] = field(default_factory=list)
    placeholders_created: int = 0


class ScrapeCoordinator:
    """Builds the capture worklist and the placeholder documents."""

    def __init__(self, config: MigrationConfig, logger: MigrationLogger) -> None:
        self.config = config
        self.logger = logger

    def _read_index(self, kind: str) -> List[IndexEntry]:
        path = self.config.paths.index_file(kind)
        try:
            data = read_json(path)
        except (OSError, json.JSONDecodeError) as e:
            raise StageError(f"Could not read {path}: {e}") from e
        if not isinstance(data, list):
            raise StageError(f"{path} is not a JSON array")
        try:
            return [IndexEntry.model_validate(entry) for entry in data]
        except ValidationError as e:
            raise StageError(f"Invalid entry in {path}: {e}") from e

    def load_pages(self) -> List[ScrapeTask]:
        """Tasks for every page of ``pages-index.json``, which must exist."""
        path = self.config.paths.index_file("page")
        if not os.path.exists(path):
            raise StageError(f"Pages index not found at {path}. Run the content transformation first.")
        return [
            ScrapeTask(slug=entry.slug, title=entry.title, url=entry.url, kind="page")
            for entry in self._read_index("page")
        ]

    def load_posts(self) -> List[ScrapeTask]:
        """Tasks for every post of ``posts-index.json``; empty if there is none.

        Post URLs are rebuilt from ``wordpress.post_url_template`` because the
        index holds the API permalink, not the live blog URL.
        """
        path = self.config.paths.index_file("post")
        if not os.path.exists(path):
            return []
        return [
            ScrapeTask(slug=entry.slug, title=entry.title, url=self.config.post_url(entry.slug), kind="post")
            for entry in self._read_index("post")
        ]

    def capture_path(self, task: ScrapeTask) -> str:
        return os.path.join(self.config.paths.captures_dir(task.kind), f"{task.slug}.html")

    def write_worklist(self, tasks: List[ScrapeTask]) -> str:
        """Write the numbered list of URLs to capture and where to save them."""
        lines = ["PAGES TO SCRAPE", _RULE, ""]
        for kind, heading in (("page", "PAGES:"), ("post", "POSTS:")):
            group = [t for t in tasks if t.kind == kind]
            if not group:
                continue
            lines.extend([heading, _SUBRULE])
            for idx, task in enumerate(group, start=1):
                lines.append(f"{idx}. {task.title}")
                lines.append(f"   URL: {task.url}")
                lines.append(f"   Save to: {self.capture_path(task)}")
                lines.append("")
            lines.append("")

        path = self.config.paths.worklist_file
        write_text_atomic(path, "\n".join(lines))
        self.logger.info(f"URL list saved to: {path}")
        return path

    def create_placeholders(self, tasks: List[ScrapeTask]) -> int:
        """Write a placeholder for each task without a capture file."""
        created = 0
        for task in tasks:
            path = self.capture_path(task)
            ensure_dir(os.path.dirname(path))
            try:
                # "x" refuses to open an existing file.
                with open(path, "x", encoding="utf-8") as f:
                    f.write(placeholder_document(task))
            except FileExistsError:
                self.logger.debug(f"  Capture exists, left untouched: {path}")
                continue
            created += 1
        self.logger.info(f"Created {created} placeholder files")
        return created

    def plan(self) -> ScrapePlan:
        pages = self.load_pages()
        posts = self.load_posts()
        self.logger.info(f"Found {len(pages)} pages and {len(posts)} posts to scrape.")

        tasks = pages + posts
        for kind in ("page", "post"):
            ensure_dir(self.config.paths.captures_dir(kind))
        worklist = self.write_worklist(tasks)
        created = self.create_placeholders(tasks)

        self.logger.info(f"Next: capture each URL listed in {worklist}, then run the 'integrate' stage.")
        return ScrapePlan(worklist_path=worklist, tasks=tasks, placeholders_created=created)

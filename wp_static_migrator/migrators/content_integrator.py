"""
Merge of captured page markup into the canonical content records.

For every captured document of a kind, :class:`ContentIntegrator` finds the
record with the same slug under ``processed/<kind>s`` and replaces its
``content`` field with the normalized capture.  All other fields belong to
the transformer and are written back exactly as they were read.

Placeholders (see :mod:`wp_static_migrator.extractors.scrape_coordinator`)
and captures without a matching record are skipped.  A capture that cannot
be read, or a record that cannot be parsed or written, is reported and
counted as failed without stopping the batch.
"""

from __future__ import annotations

import glob
import json
import os
from dataclasses import dataclass
from typing import Dict, Optional

from pydantic import ValidationError

from wp_static_migrator.config import MigrationConfig
from wp_static_migrator.extractors.scrape_coordinator import is_placeholder
from wp_static_migrator.models.content import CONTENT_KINDS, ContentRecord
from wp_static_migrator.parsers.content_normalizer import ContentNormalizer
from wp_static_migrator.utils.errors import report_error, report_ok
from wp_static_migrator.utils.files import read_json, write_json_atomic
from wp_static_migrator.utils.logger import MigrationLogger


@dataclass
class IntegrationCounts:
    updated: int = 0
    skipped: int = 0
    failed: int = 0


class ContentIntegrator:
    def __init__(
        self,
        config: MigrationConfig,
        logger: MigrationLogger,
        normalizer: Optional[ContentNormalizer] = None,
    ) -> None:
        self.config = config
        self.logger = logger
        self.normalizer = normalizer or ContentNormalizer(config.pipeline.extra_boilerplate_patterns)
        self.counts: Dict[str, IntegrationCounts] = {}

    def _merge_one(self, kind: str, slug: str, capture_path: str, record_path: str, counts: IntegrationCounts) -> None:
        event = {"slug": slug}
        try:
            with open(capture_path, "r", encoding="utf-8") as f:
                captured = f.read()

            if is_placeholder(captured):
                self.logger.info(f"  Skipped: {slug} (placeholder)")
                counts.skipped += 1
                return

            data = read_json(record_path)
            record = ContentRecord.model_validate(data)
            event["title"] = record.title

            data["content"] = self.normalizer.normalize(captured, kind)
            write_json_atomic(record_path, data)
        except (OSError, UnicodeDecodeError, json.JSONDecodeError, ValidationError, ValueError) as e:
            counts.failed += 1
            self.logger.error(f"  Failed: {slug} - {e}")
            report_error("INTEGRATION_FAILED", event, e, report_dir=self.config.paths.report_dir)
            return

        counts.updated += 1
        self.logger.info(f"  Updated: {slug}")
        report_ok("RECORD_UPDATED", event, {"kind": kind}, report_dir=self.config.paths.report_dir)

    def integrate(self, kind: str) -> int:
        """
        Merge every captured document of ``kind`` into its record.

        :param kind: ``"page"`` or ``"post"``.
        :return: Number of records actually updated.  Skip and failure
            counts are kept in ``self.counts[kind]``.
        """
        if kind not in CONTENT_KINDS:
            raise ValueError(f"Unknown content kind: {kind!r}")

        counts = IntegrationCounts()
        self.counts[kind] = counts

        captures_dir = self.config.paths.captures_dir(kind)
        if not os.path.isdir(captures_dir):
            self.logger.warning(f"No scraped {kind}s found in {captures_dir}")
            return 0

        records_dir = self.config.paths.records_dir(kind)
        capture_files = sorted(glob.glob(os.path.join(captures_dir, "*.html")))
        self.logger.info(f"Integrating {len(capture_files)} scraped {kind}s...")

        for capture_path in capture_files:
            slug = os.path.splitext(os.path.basename(capture_path))[0]
            record_path = os.path.join(records_dir, f"{slug}.json")
            if not os.path.exists(record_path):
                self.logger.info(f"  Skipped: {slug} (no JSON file found)")
                counts.skipped += 1
                report_error("RECORD_MISSING", {"slug": slug}, report_dir=self.config.paths.report_dir)
                continue
            self._merge_one(kind, slug, capture_path, record_path, counts)

        self.logger.info(
            f"{kind.capitalize()}s: {counts.updated} updated, {counts.skipped} skipped, {counts.failed} failed"
        )
        return counts.updated

    def integrate_all(self) -> Dict[str, int]:
        updated = {kind: self.integrate(kind) for kind in CONTENT_KINDS}
        total = sum(updated.values())
        self.logger.info(f"Pages updated: {updated['page']}")
        self.logger.info(f"Posts updated: {updated['post']}")
        self.logger.info(f"Total: {total}")
        if total == 0:
            self.logger.warning(
                f"No content was integrated. Make sure captured files exist in {self.config.paths.scraped_html_dir}"
            )
        return updated

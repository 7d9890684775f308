"""
High-level orchestration of the WordPress → static content migration.

This module defines the :class:`Stage` abstraction, the
:class:`StageContext` every stage receives, and the
:class:`PipelineOrchestrator` that runs stages in order.  The stages wire
the fetcher, the asset downloader, the capture planner and the integrator
together:

* ``fetch`` – raw collections from the REST API into ``data/raw``
* ``media`` – media library download and URL mapping
* ``featured-images`` – Open Graph images of processed posts
* ``page-assets`` – images referenced by rendered pages of the live site
* ``plan-capture`` – capture worklist and placeholders
* ``integrate`` – captured markup into ``data/processed`` records

A stage that raises stops the run: later stages are not attempted and
:meth:`PipelineOrchestrator.run` returns ``False``.  Outputs of completed
stages stay on disk; every stage is idempotent or additive, so re-running
the pipeline after fixing the cause is safe.  The pipeline assumes it is the
only writer of the content store.
"""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Iterable, List, Optional, Sequence

import requests

from wp_static_migrator.config import MigrationConfig
from wp_static_migrator.extractors.scrape_coordinator import ScrapeCoordinator
from wp_static_migrator.extractors.wordpress_fetcher import WordPressFetcher
from wp_static_migrator.migrators.asset_downloader import AssetDownloader
from wp_static_migrator.migrators.content_integrator import ContentIntegrator
from wp_static_migrator.parsers.content_normalizer import ContentNormalizer
from wp_static_migrator.utils.errors import ConfigError, MigrationError, StageTimeoutError
from wp_static_migrator.utils.http import build_session
from wp_static_migrator.utils.logger import MigrationLogger


@dataclass
class StageContext:
    """Everything a stage needs: configuration, shared clients, the clock."""

    config: MigrationConfig
    session: requests.Session
    logger: MigrationLogger
    clock: Callable[[], float] = time.monotonic
    deadline: Optional[float] = None
    results: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_config(cls, config: MigrationConfig, logger: Optional[MigrationLogger] = None) -> "StageContext":
        session = build_session(
            user_agent=config.wordpress.user_agent,
            username=config.wordpress.username,
            app_password=config.wordpress.app_password,
        )
        logger = logger or MigrationLogger(config.paths.report_dir, verbose=config.pipeline.verbose)
        return cls(config=config, session=session, logger=logger)

    def start_stage(self) -> None:
        timeout = self.config.pipeline.stage_timeout
        self.deadline = self.clock() + timeout if timeout else None

    def check_deadline(self) -> None:
        if self.deadline is not None and self.clock() > self.deadline:
            raise StageTimeoutError(
                f"Stage exceeded its deadline of {self.config.pipeline.stage_timeout} seconds"
            )


@dataclass
class Stage:
    name: str
    description: str
    run: Callable[[StageContext], Any]


###############################################################################
# Stage bodies
###############################################################################


def run_fetch(context: StageContext) -> Dict[str, int]:
    fetcher = WordPressFetcher(context.config, context.session, context.logger, check_deadline=context.check_deadline)
    return fetcher.fetch_resources()


def run_media(context: StageContext) -> Dict[str, int]:
    downloader = AssetDownloader(context.config, context.session, context.logger, check_deadline=context.check_deadline)
    summary = downloader.download_all()
    return {"downloaded": summary.downloaded, "skipped": summary.skipped, "failed": summary.failed}


def run_featured_images(context: StageContext) -> Dict[str, str]:
    downloader = AssetDownloader(context.config, context.session, context.logger, check_deadline=context.check_deadline)
    return downloader.download_featured_images()


def run_page_assets(context: StageContext) -> Dict[str, str]:
    downloader = AssetDownloader(context.config, context.session, context.logger, check_deadline=context.check_deadline)
    return downloader.download_page_assets()


def run_plan_capture(context: StageContext) -> Dict[str, Any]:
    plan = ScrapeCoordinator(context.config, context.logger).plan()
    return {
        "worklist": plan.worklist_path,
        "tasks": len(plan.tasks),
        "placeholders_created": plan.placeholders_created,
    }


def run_integrate(context: StageContext) -> Dict[str, int]:
    normalizer = ContentNormalizer(context.config.pipeline.extra_boilerplate_patterns)
    return ContentIntegrator(context.config, context.logger, normalizer).integrate_all()


STAGES: Dict[str, Stage] = {
    stage.name: stage
    for stage in (
        Stage("fetch", "WordPress REST API Data Fetch", run_fetch),
        Stage("media", "Media Assets Download", run_media),
        Stage("featured-images", "Blog Featured Images Download", run_featured_images),
        Stage("page-assets", "Page-Referenced Assets Download", run_page_assets),
        Stage("plan-capture", "Capture Worklist and Placeholders", run_plan_capture),
        Stage("integrate", "Captured Content Integration", run_integrate),
    )
}

DEFAULT_STAGES: Sequence[str] = ("fetch", "media", "plan-capture", "integrate")


def build_stages(names: Optional[Iterable[str]] = None) -> List[Stage]:
    """Resolve stage names, in the given order, to :class:`Stage` objects."""
    stages = []
    for name in names or DEFAULT_STAGES:
        if name not in STAGES:
            raise ConfigError(f"Unknown stage '{name}'. Available: {', '.join(STAGES)}")
        stages.append(STAGES[name])
    return stages


###############################################################################
# Orchestrator
###############################################################################


class PipelineOrchestrator:
    """
    Runs stages one after the other and stops at the first failure.

    Each stage gets a start banner and a success or failure banner; the
    return value of each completed stage is kept in ``context.results``.
    """

    def __init__(self, context: StageContext) -> None:
        self.context = context
        self.logger = context.logger
        self.completed: List[str] = []

    def run(self, stages: Sequence[Stage]) -> bool:
        self.logger.banner("WORDPRESS TO STATIC CONTENT MIGRATION")
        self.logger.info("Stages: " + ", ".join(stage.name for stage in stages))

        for idx, stage in enumerate(stages):
            self.logger.banner(f"RUNNING: {stage.description}")
            self.context.start_stage()
            try:
                self.context.results[stage.name] = stage.run(self.context)
            except Exception as e:
                self._fail(stage, e, not_attempted=[s.name for s in stages[idx + 1:]])
                return False
            self.completed.append(stage.name)
            self.logger.info(f"{stage.description} completed successfully")

        self.logger.banner("ALL STAGES COMPLETED")
        for name in self.completed:
            self.logger.info(f"  {name}: {self.context.results.get(name)}")
        return True

    def _fail(self, stage: Stage, exc: Exception, *, not_attempted: List[str]) -> None:
        kind = "" if isinstance(exc, MigrationError) else f" (unexpected {type(exc).__name__})"
        self.logger.error(f"{stage.description} failed{kind}: {exc}")
        self.logger.banner(f"PIPELINE FAILED at stage '{stage.name}'", level="ERROR")
        if self.completed:
            self.logger.error("Completed stages (outputs kept): " + ", ".join(self.completed))
        if not_attempted:
            self.logger.error("Not attempted: " + ", ".join(not_attempted))

"""
Configuration for a pipeline run.

Configuration is read from a JSON file (``config/migration_config.json`` by
default) and completed with defaults and environment variables, in the same
spirit as ``setdefault`` on a plain dictionary.  The result is validated into
a :class:`MigrationConfig`, which is handed to every component at
construction time.  Nothing in the pipeline reads the environment directly.

Example file::

    {
      "wordpress": {"base_url": "https://example.com", "per_page": 100},
      "http": {"timeout": 30, "max_attempts": 3},
      "paths": {"data_dir": "data", "media_dir": "public/media"},
      "pipeline": {"stage_timeout": 3600}
    }
"""

from __future__ import annotations

import json
import os
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from wp_static_migrator.utils.errors import ConfigError

DEFAULT_CONFIG_FILE = os.path.join("config", "migration_config.json")


class WordPressSettings(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    base_url: str = Field(..., min_length=1)
    username: Optional[str] = None
    app_password: Optional[str] = None
    per_page: int = Field(100, ge=1, le=100)
    post_url_template: str = "{site_url}/blog/{slug}/"
    user_agent: str = "WordPress-Static-Migration/1.0"
    # Rendered pages scanned for image references; relative to the site root.
    asset_pages: List[str] = Field(default_factory=lambda: ["/"])

    @field_validator("base_url")
    @classmethod
    def _strip_trailing_slash(cls, v: str) -> str:
        return v.rstrip("/")


class HttpSettings(BaseModel):
    timeout: float = Field(30.0, gt=0)
    max_attempts: int = Field(3, ge=1)
    base_delay: float = Field(0.7, ge=0)
    rpm: int = Field(0, ge=0)
    max_redirects: int = Field(5, ge=0)
    download_delay: float = Field(0.1, ge=0)


class PathSettings(BaseModel):
    data_dir: str = "data"
    media_dir: str = os.path.join("public", "media")
    media_url_prefix: str = "/media"
    report_dir: str = os.path.join("reports", "migration")

    @property
    def raw_dir(self) -> str:
        return os.path.join(self.data_dir, "raw")

    @property
    def processed_dir(self) -> str:
        return os.path.join(self.data_dir, "processed")

    @property
    def scraped_html_dir(self) -> str:
        return os.path.join(self.data_dir, "scraped-html")

    @property
    def mapping_file(self) -> str:
        return os.path.join(self.raw_dir, "media-mapping.json")

    @property
    def page_asset_mapping_file(self) -> str:
        return os.path.join(self.raw_dir, "homepage-asset-mapping.json")

    @property
    def worklist_file(self) -> str:
        return os.path.join(self.data_dir, "pages-to-scrape.txt")

    def records_dir(self, kind: str) -> str:
        return os.path.join(self.processed_dir, f"{kind}s")

    def captures_dir(self, kind: str) -> str:
        return os.path.join(self.scraped_html_dir, f"{kind}s")

    def index_file(self, kind: str) -> str:
        return os.path.join(self.processed_dir, f"{kind}s-index.json")


class PipelineSettings(BaseModel):
    stage_timeout: Optional[float] = Field(None, gt=0)
    verbose: bool = False
    extra_boilerplate_patterns: List[str] = Field(default_factory=list)


class MigrationConfig(BaseModel):
    wordpress: WordPressSettings
    http: HttpSettings = Field(default_factory=HttpSettings)
    paths: PathSettings = Field(default_factory=PathSettings)
    pipeline: PipelineSettings = Field(default_factory=PipelineSettings)

    @property
    def site_url(self) -> str:
        return self.wordpress.base_url

    def post_url(self, slug: str) -> str:
        return self.wordpress.post_url_template.format(site_url=self.site_url, slug=slug)


def load_config(config: Optional[Dict[str, Any]] = None, *, config_file: Optional[str] = None) -> MigrationConfig:
    """
    Build a :class:`MigrationConfig` from a dictionary or a JSON file.

    Values found in the file win over environment variables, which win
    over built-in defaults.  ``WP_BASE_URL``, ``WP_USERNAME`` and
    ``WP_APP_PASSWORD`` are honoured.

    :param config: An already-loaded configuration dictionary.
    :param config_file: Path to a JSON configuration file; ignored when it
        does not exist.
    :raises ConfigError: if the file cannot be parsed or a value is invalid.
    """
    if config_file and os.path.exists(config_file):
        try:
            with open(config_file, "r", encoding="utf-8") as f:
                config = json.load(f)
        except json.JSONDecodeError as e:
            raise ConfigError(f"Could not decode {config_file}: {e}") from e
    elif config is None:
        config = {}

    config.setdefault("wordpress", {})
    config["wordpress"].setdefault("base_url", os.getenv("WP_BASE_URL", ""))
    config["wordpress"].setdefault("username", os.getenv("WP_USERNAME") or None)
    config["wordpress"].setdefault("app_password", os.getenv("WP_APP_PASSWORD") or None)

    config.setdefault("http", {})
    config.setdefault("paths", {})
    config.setdefault("pipeline", {})

    try:
        return MigrationConfig.model_validate(config)
    except ValidationError as e:
        raise ConfigError(f"Invalid configuration: {e}") from e

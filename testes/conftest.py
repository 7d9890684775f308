import os
import sys

# Ensure project root is on sys.path for imports when running tests directly
PROJECT_ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))
if PROJECT_ROOT not in sys.path:
    sys.path.insert(0, PROJECT_ROOT)

import pytest
import requests

from wp_static_migrator.config import load_config
from wp_static_migrator.utils.logger import MigrationLogger

SITE = "https://example.com"


@pytest.fixture
def config(tmp_path):
    """A configuration rooted in ``tmp_path`` with retries and pauses disabled."""
    return load_config(
        {
            "wordpress": {"base_url": SITE + "/"},
            "http": {"max_attempts": 1, "base_delay": 0, "download_delay": 0, "timeout": 5},
            "paths": {
                "data_dir": str(tmp_path / "data"),
                "media_dir": str(tmp_path / "public" / "media"),
                "report_dir": str(tmp_path / "reports"),
            },
        }
    )


@pytest.fixture
def logger(config):
    return MigrationLogger(config.paths.report_dir)


@pytest.fixture
def session():
    s = requests.Session()
    yield s
    s.close()

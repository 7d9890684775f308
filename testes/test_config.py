import json
import os
import sys

# Ensure project root is on sys.path for imports when running tests directly
PROJECT_ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))
if PROJECT_ROOT not in sys.path:
    sys.path.insert(0, PROJECT_ROOT)

import pytest

from wp_static_migrator.config import load_config
from wp_static_migrator.utils.errors import ConfigError


def test_file_values_and_defaults(tmp_path):
    path = tmp_path / "config.json"
    path.write_text(json.dumps({"wordpress": {"base_url": "https://example.com/"}, "http": {"rpm": 60}}))

    config = load_config(config_file=str(path))

    assert config.site_url == "https://example.com"
    assert config.http.rpm == 60
    assert config.http.max_redirects == 5
    assert config.wordpress.per_page == 100
    assert config.wordpress.asset_pages == ["/"]
    assert config.paths.mapping_file == os.path.join("data", "raw", "media-mapping.json")
    assert config.post_url("hello") == "https://example.com/blog/hello/"


def test_environment_fills_missing_values(monkeypatch):
    monkeypatch.setenv("WP_BASE_URL", "https://env.example.com")
    monkeypatch.setenv("WP_USERNAME", "editor")
    monkeypatch.setenv("WP_APP_PASSWORD", "abcd efgh")

    config = load_config({})

    assert config.site_url == "https://env.example.com"
    assert config.wordpress.username == "editor"
    assert config.wordpress.app_password == "abcd efgh"


def test_file_wins_over_environment(monkeypatch):
    monkeypatch.setenv("WP_BASE_URL", "https://env.example.com")

    config = load_config({"wordpress": {"base_url": "https://file.example.com"}})

    assert config.site_url == "https://file.example.com"


def test_missing_base_url_is_rejected(monkeypatch):
    monkeypatch.delenv("WP_BASE_URL", raising=False)
    with pytest.raises(ConfigError):
        load_config({})


def test_invalid_values_are_rejected():
    with pytest.raises(ConfigError):
        load_config({"wordpress": {"base_url": "https://example.com", "per_page": 500}})


def test_undecodable_file_is_rejected(tmp_path):
    path = tmp_path / "config.json"
    path.write_text("{broken")

    with pytest.raises(ConfigError):
        load_config(config_file=str(path))

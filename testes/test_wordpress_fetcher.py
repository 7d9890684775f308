import json
import os
import sys

# Ensure project root is on sys.path for imports when running tests directly
PROJECT_ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))
if PROJECT_ROOT not in sys.path:
    sys.path.insert(0, PROJECT_ROOT)

import pytest
import responses

from wp_static_migrator.extractors.wordpress_fetcher import RESOURCE_ENDPOINTS, WordPressFetcher
from wp_static_migrator.utils.errors import FetchError

SITE = "https://example.com"
POSTS = "/wp-json/wp/v2/posts"


@responses.activate
def test_pages_are_concatenated_in_request_order(config, session, logger):
    responses.add(responses.GET, SITE + POSTS, json=[{"id": 1}, {"id": 2}], headers={"X-WP-TotalPages": "3"})
    responses.add(responses.GET, SITE + POSTS, json=[{"id": 3}, {"id": 4}])
    responses.add(responses.GET, SITE + POSTS, json=[{"id": 5}])

    items = WordPressFetcher(config, session, logger).fetch_all(POSTS, per_page=2)

    assert [item["id"] for item in items] == [1, 2, 3, 4, 5]
    assert len(responses.calls) == 3
    first = responses.calls[0].request.url
    assert "per_page=2" in first and "page=1" in first and "_embed=1" in first
    assert "page=3" in responses.calls[2].request.url


@responses.activate
def test_400_after_first_page_ends_pagination(config, session, logger):
    responses.add(responses.GET, SITE + POSTS, json=[{"id": 1}, {"id": 2}], headers={"X-WP-TotalPages": "4"})
    responses.add(responses.GET, SITE + POSTS, json=[{"id": 3}, {"id": 4}])
    responses.add(responses.GET, SITE + POSTS, json=[{"id": 5}])
    responses.add(responses.GET, SITE + POSTS, json={"code": "rest_post_invalid_page_number"}, status=400)

    items = WordPressFetcher(config, session, logger).fetch_all(POSTS, per_page=2)

    assert [item["id"] for item in items] == [1, 2, 3, 4, 5]
    assert len(responses.calls) == 4


@responses.activate
def test_missing_total_pages_header_means_single_page(config, session, logger):
    responses.add(responses.GET, SITE + POSTS, json=[{"id": 1}])

    items = WordPressFetcher(config, session, logger).fetch_all(POSTS)

    assert items == [{"id": 1}]
    assert len(responses.calls) == 1


@pytest.mark.parametrize("status", [400, 401, 500])
@responses.activate
def test_first_page_failure_raises_fetch_error(config, session, logger, status):
    responses.add(responses.GET, SITE + POSTS, json={"code": "error"}, status=status)

    with pytest.raises(FetchError) as excinfo:
        WordPressFetcher(config, session, logger).fetch_all(POSTS)
    assert excinfo.value.status_code == status


@responses.activate
def test_later_page_server_error_is_fatal(config, session, logger):
    responses.add(responses.GET, SITE + POSTS, json=[{"id": 1}], headers={"X-WP-TotalPages": "2"})
    responses.add(responses.GET, SITE + POSTS, body="boom", status=502)

    with pytest.raises(FetchError):
        WordPressFetcher(config, session, logger).fetch_all(POSTS)


@responses.activate
def test_unparsable_body_raises_fetch_error(config, session, logger):
    responses.add(responses.GET, SITE + POSTS, body="<html>not json</html>")

    with pytest.raises(FetchError):
        WordPressFetcher(config, session, logger).fetch_all(POSTS)


@responses.activate
def test_transient_error_is_retried(config, session, logger):
    config.http.max_attempts = 2
    responses.add(responses.GET, SITE + POSTS, body="busy", status=503, headers={"Retry-After": "0"})
    responses.add(responses.GET, SITE + POSTS, json=[{"id": 1}])

    items = WordPressFetcher(config, session, logger).fetch_all(POSTS)

    assert items == [{"id": 1}]
    assert len(responses.calls) == 2


def test_save_collection_replaces_file(config, session, logger):
    fetcher = WordPressFetcher(config, session, logger)
    fetcher.save_collection("tags", [{"id": 1}, {"id": 2}])
    path = fetcher.save_collection("tags", [{"id": 3}])

    with open(path, encoding="utf-8") as f:
        assert json.load(f) == [{"id": 3}]
    assert not os.path.exists(path + ".tmp")


@responses.activate
def test_fetch_resources_writes_every_collection_and_summary(config, session, logger):
    responses.add(responses.GET, SITE + "/wp-json", json={"name": "Example", "description": "A site"})
    for name, endpoint in RESOURCE_ENDPOINTS:
        responses.add(responses.GET, SITE + endpoint, json=[{"id": 1, "kind": name}], headers={"X-WP-TotalPages": "1"})

    counts = WordPressFetcher(config, session, logger).fetch_resources()

    assert counts == {name: 1 for name, _ in RESOURCE_ENDPOINTS}
    raw_dir = config.paths.raw_dir
    for name in ["site-info", "pages", "posts", "media", "categories", "tags", "summary"]:
        assert os.path.exists(os.path.join(raw_dir, f"{name}.json"))
    with open(os.path.join(raw_dir, "summary.json"), encoding="utf-8") as f:
        summary = json.load(f)
    assert summary["source"] == SITE
    assert summary["counts"]["media"] == 1


@responses.activate
def test_deadline_is_checked_before_each_request(config, session, logger):
    class Expired(Exception):
        pass

    def check_deadline():
        raise Expired()

    with pytest.raises(Expired):
        WordPressFetcher(config, session, logger, check_deadline=check_deadline).fetch_all(POSTS)
    assert len(responses.calls) == 0

import json
import os
import sys

# Ensure project root is on sys.path for imports when running tests directly
PROJECT_ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))
if PROJECT_ROOT not in sys.path:
    sys.path.insert(0, PROJECT_ROOT)

from wp_static_migrator.extractors.scrape_coordinator import placeholder_document
from wp_static_migrator.migrators.content_integrator import ContentIntegrator
from wp_static_migrator.models.content import ScrapeTask
from wp_static_migrator.parsers.content_normalizer import ContentNormalizer

ABOUT = {
    "slug": "about",
    "title": "About",
    "content": "<p>Old API content</p>",
    "excerpt": "Who we are",
    "seo": {"title": "About | Example", "openGraph": {"images": []}},
    "url": "https://example.com/about/",
    "publishedDate": "2024-01-01T00:00:00",
    "modifiedDate": "2024-02-01T00:00:00",
    "template": "full-width",
}


def write_record(config, kind, record):
    path = os.path.join(config.paths.records_dir(kind), f"{record['slug']}.json")
    os.makedirs(os.path.dirname(path), exist_ok=True)
    with open(path, "w", encoding="utf-8") as f:
        json.dump(record, f)
    return path


def write_capture(config, kind, slug, text):
    path = os.path.join(config.paths.captures_dir(kind), f"{slug}.html")
    os.makedirs(os.path.dirname(path), exist_ok=True)
    with open(path, "w", encoding="utf-8") as f:
        f.write(text)
    return path


def load(path):
    with open(path, encoding="utf-8") as f:
        return json.load(f)


def test_capture_replaces_content_and_keeps_other_fields(config, logger):
    record_path = write_record(config, "page", ABOUT)
    write_capture(config, "page", "about", "<p>New body</p>")

    updated = ContentIntegrator(config, logger).integrate("page")

    assert updated == 1
    record = load(record_path)
    assert record["content"] == ContentNormalizer().normalize("<p>New body</p>", "page")
    assert "Old API content" not in record["content"]
    assert {k: v for k, v in record.items() if k != "content"} == {
        k: v for k, v in ABOUT.items() if k != "content"
    }


def test_integrating_twice_overwrites_instead_of_appending(config, logger):
    record_path = write_record(config, "page", ABOUT)
    write_capture(config, "page", "about", "# About\n\nWe sell eSIMs.")
    integrator = ContentIntegrator(config, logger)

    integrator.integrate("page")
    first = load(record_path)["content"]
    integrator.integrate("page")

    assert load(record_path)["content"] == first
    assert first.count("We sell eSIMs.") == 1


def test_placeholder_never_changes_record(config, logger):
    record_path = write_record(config, "page", ABOUT)
    task = ScrapeTask(slug="about", title="About", url=ABOUT["url"], kind="page")
    write_capture(config, "page", "about", placeholder_document(task))
    integrator = ContentIntegrator(config, logger)

    assert integrator.integrate("page") == 0
    assert integrator.counts["page"].skipped == 1
    assert load(record_path) == ABOUT


def test_capture_without_record_is_skipped(config, logger):
    write_capture(config, "post", "orphan", "<p>Nobody owns me</p>")
    integrator = ContentIntegrator(config, logger)

    assert integrator.integrate("post") == 0
    assert integrator.counts["post"].skipped == 1
    assert not os.path.exists(os.path.join(config.paths.records_dir("post"), "orphan.json"))


def test_corrupt_record_is_counted_and_batch_continues(config, logger):
    broken = os.path.join(config.paths.records_dir("post"), "broken.json")
    os.makedirs(os.path.dirname(broken))
    with open(broken, "w", encoding="utf-8") as f:
        f.write("{oops")
    good = write_record(config, "post", {**ABOUT, "slug": "good", "author": "Ana", "tags": ["travel"]})
    write_capture(config, "post", "broken", "<p>Broken</p>")
    write_capture(config, "post", "good", "<p>Good</p>")
    integrator = ContentIntegrator(config, logger)

    assert integrator.integrate("post") == 1
    assert integrator.counts["post"].failed == 1
    assert "<p>Good</p>" in load(good)["content"]
    assert load(good)["tags"] == ["travel"]
    with open(broken, encoding="utf-8") as f:
        assert f.read() == "{oops"
    with open(os.path.join(config.paths.report_dir, "errors.jsonl"), encoding="utf-8") as f:
        assert json.loads(f.readline())["code"] == "INTEGRATION_FAILED"


def test_missing_capture_directory_yields_zero(config, logger):
    assert ContentIntegrator(config, logger).integrate_all() == {"page": 0, "post": 0}

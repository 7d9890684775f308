"""
Top-level package for the WordPress → static site content migration.

This package bundles the components required to pull the content of a
WordPress site through its REST API, mirror its media library locally,
plan the capture of page-builder markup the API cannot deliver, and merge
the captured markup back into the canonical per-page and per-post JSON
records.  Modules are split into subpackages:

* :mod:`wp_static_migrator.extractors` – REST API fetching and capture planning
* :mod:`wp_static_migrator.parsers` – cleanup of captured markdown/HTML
* :mod:`wp_static_migrator.migrators` – asset download and record integration
* :mod:`wp_static_migrator.utils` – logging, error reports, HTTP and file helpers

Each layer receives its configuration at construction time; orchestration
is handled in :mod:`wp_static_migrator.pipeline`.
"""

__version__ = "1.0.0"

"""
Extractors for the source WordPress site.

This subpackage provides the paginated REST API fetcher that stores raw
collections under ``data/raw``, and the coordinator that plans the capture
of rendered page markup for content the API does not expose.
"""

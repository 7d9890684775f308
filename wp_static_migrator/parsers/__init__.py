"""
Parsers and converters used by the migration pipeline.

Currently this subpackage exposes :class:`ContentNormalizer` from
:mod:`wp_static_migrator.parsers.content_normalizer`.
"""

from .content_normalizer import ContentNormalizer

__all__ = ["ContentNormalizer"]

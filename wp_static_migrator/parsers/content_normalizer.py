"""
Cleanup of captured page markup before it is stored in a content record.

Captures come either as markdown (from a crawler such as Firecrawl) or as raw
HTML copied from the browser.  Both carry the site chrome around the actual
content: consent banners, the top navigation, the language switcher, the
footer with social links.  :class:`ContentNormalizer` removes that chrome in
two passes:

1. ordered literal-marker rules on the raw text (they see markdown before it
   is converted, which is where crawler output is easiest to recognise);
2. structural removal on the parsed HTML tree with BeautifulSoup
   (``nav``/``header``/``footer`` landmarks, ARIA roles, consent containers,
   scripts and styles).

The result is wrapped in the single container the rendering layer expects.
Normalizing twice gives the same result as normalizing once.
"""

from __future__ import annotations

import os
import re
from typing import Iterable, List, NamedTuple, Optional, Pattern

import markdown
from bs4 import BeautifulSoup, Tag

from wp_static_migrator.extractors.scrape_coordinator import is_placeholder
from wp_static_migrator.models.content import CONTENT_KINDS
from wp_static_migrator.utils.files import write_text_atomic

WRAPPER_OPEN = '<div id="main-content" class="ct-section page-content">'
WRAPPER_CLOSE = "</div>"
WRAPPER_ID = "main-content"

MARKDOWN_EXTENSIONS = ["extra", "sane_lists"]


class BoilerplateRule(NamedTuple):
    name: str
    pattern: Pattern[str]


def _between(name: str, start: str, end: str) -> BoilerplateRule:
    """Rule removing everything from ``start`` through the next ``end``."""
    return BoilerplateRule(name, re.compile(re.escape(start) + r"[\s\S]*?" + re.escape(end)))


# Applied in this order; the preferences dialog shares its end marker with the
# revisit button block, so the button rule must run first.
DEFAULT_RULES: List[BoilerplateRule] = [
    _between("consent-revisit", "![Revisit consent button]", "Приеми всички"),
    _between("consent-preferences", "Customise Consent Preferences", "Приеми всички"),
    BoilerplateRule(
        "language-switcher",
        re.compile(r"Езици\n\n-.*?\[България\][\s\S]*?Romania\]\(https://travelesim\.ro/\)"),
    ),
    _between("footer-social", "[Visit our Facebook]", "Developed by Travel eSIM by Breeze"),
    BoilerplateRule("header-icons", re.compile(r"closechevron-down.*?twitterinstagram$", re.MULTILINE)),
]

_STRIP_TAGS = ["script", "style", "noscript", "nav", "header", "footer", "template"]
_STRIP_ROLES = ["navigation", "banner", "contentinfo"]
_CONSENT_RE = re.compile(
    r"(cookie|consent|gdpr)[-_]?(banner|bar|notice|popup|modal|container|overlay)|^cky-consent",
    re.IGNORECASE,
)


def looks_like_markdown(text: str) -> bool:
    return not text.lstrip().startswith("<")


def _is_consent_container(el: Tag) -> bool:
    values = [el.get("id") or ""]
    classes = el.get("class") or []
    values.extend(classes if isinstance(classes, list) else [classes])
    return any(_CONSENT_RE.search(v) for v in values if v)


class ContentNormalizer:
    """Turns a raw capture into a sanitized, wrapped HTML fragment."""

    def __init__(self, extra_patterns: Optional[Iterable[str]] = None) -> None:
        self.rules: List[BoilerplateRule] = list(DEFAULT_RULES)
        for idx, pattern in enumerate(extra_patterns or [], start=1):
            self.rules.append(BoilerplateRule(f"custom-{idx}", re.compile(pattern, re.MULTILINE)))

    def strip_boilerplate(self, text: str) -> str:
        for rule in self.rules:
            text = rule.pattern.sub("", text)
        return text.strip()

    def strip_structural(self, html: str) -> str:
        soup = BeautifulSoup(html, "html.parser")

        doomed = soup.find_all(_STRIP_TAGS)
        doomed += soup.find_all(attrs={"role": _STRIP_ROLES})
        doomed += soup.find_all(_is_consent_container)
        for el in doomed:
            # Children of an already removed element are gone with it.
            if not el.decomposed:
                el.decompose()

        # A capture of the whole document or of the container itself keeps
        # only what is inside the content container.
        root = soup.find(id=WRAPPER_ID) or soup.body or soup
        return root.decode_contents().strip()

    def normalize(self, raw: str, kind: str) -> str:
        """
        Clean ``raw`` and wrap it in the content container.

        Placeholder documents are returned unchanged.  A capture that is
        already wrapped, such as the copied outer HTML of the content
        container, is cleaned like any other and gets a fresh wrapper, so
        normalizing twice gives the same result as normalizing once.

        :param raw: Captured markdown or HTML.
        :param kind: ``"page"`` or ``"post"``.
        :raises ValueError: for an unknown ``kind``.
        """
        if kind not in CONTENT_KINDS:
            raise ValueError(f"Unknown content kind: {kind!r}")
        if is_placeholder(raw):
            return raw

        cleaned = self.strip_boilerplate(raw)
        if looks_like_markdown(cleaned):
            cleaned = markdown.markdown(cleaned, extensions=MARKDOWN_EXTENSIONS)
        body = self.strip_structural(cleaned)
        return f"{WRAPPER_OPEN}\n{body}\n{WRAPPER_CLOSE}"

    def save_markdown_as_html(self, slug: str, text: str, kind: str, captures_dir: str) -> str:
        """Normalize a markdown capture and store it as ``<captures_dir>/<slug>.html``."""
        path = os.path.join(captures_dir, f"{slug}.html")
        write_text_atomic(path, self.normalize(text, kind))
        return path

from __future__ import annotations

from typing import Any, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

ContentKind = Literal["page", "post"]
CONTENT_KINDS: tuple[str, ...] = ("page", "post")


def _slugify(value: str) -> str:
    text = value.strip().lower()
    out = []
    prev_dash = False
    for ch in text:
        if ch.isalnum():
            out.append(ch)
            prev_dash = False
        else:
            if not prev_dash:
                out.append("-")
            prev_dash = True
    slug = "".join(out).strip("-")
    return slug[:200]


class IndexEntry(BaseModel):
    """One row of ``pages-index.json`` or ``posts-index.json``."""

    model_config = ConfigDict(extra="allow", str_strip_whitespace=True)

    slug: str = "home"
    title: str = "Untitled"
    url: str = ""

    @field_validator("slug", mode="before")
    @classmethod
    def _default_slug(cls, v: Optional[str]):
        if v is None or not str(v).strip():
            return "home"
        return v

    @field_validator("title", mode="before")
    @classmethod
    def _default_title(cls, v: Optional[str]):
        if v is None or not str(v).strip():
            return "Untitled"
        return v


class ScrapeTask(BaseModel):
    slug: str = Field(..., min_length=1)
    title: str
    url: str
    kind: ContentKind


class ContentRecord(BaseModel):
    """
    The canonical JSON record of a page or post.

    Only ``content`` is owned by this pipeline; every other field comes
    from the upstream transformer and is validated here but never rewritten.
    Kind-specific fields (``author``, ``categories``, ``tags`` ...) are
    allowed through as extras.
    """

    model_config = ConfigDict(extra="allow", populate_by_name=True)

    slug: str = Field(..., min_length=1)
    title: Optional[str] = ""
    content: str = ""
    excerpt: Optional[str] = ""
    seo: Optional[dict[str, Any]] = None
    url: Optional[str] = ""
    published_date: Optional[str] = Field("", alias="publishedDate")
    modified_date: Optional[str] = Field("", alias="modifiedDate")

    @model_validator(mode="before")
    @classmethod
    def _ensure_slug(cls, data: Any):
        # Records written without a slug fall back to one derived from the title.
        if isinstance(data, dict) and not str(data.get("slug") or "").strip():
            title = data.get("title")
            if isinstance(title, str) and title.strip():
                data = {**data, "slug": _slugify(title)}
        return data

    def featured_image_url(self) -> Optional[str]:
        images = ((self.seo or {}).get("openGraph") or {}).get("images") or []
        if images and isinstance(images[0], dict):
            return images[0].get("url") or None
        return None


class MediaSize(BaseModel):
    model_config = ConfigDict(extra="allow")

    source_url: Optional[str] = None


class MediaItem(BaseModel):
    """An entry of ``media.json`` as returned by ``/wp/v2/media``."""

    model_config = ConfigDict(extra="allow")

    id: Optional[int] = None
    source_url: str
    slug: str = "media"
    mime_type: str = "image/jpeg"
    media_details: Optional[dict[str, Any]] = None

    @field_validator("slug", mode="before")
    @classmethod
    def _default_slug(cls, v: Optional[str]):
        return v or "media"

    @field_validator("mime_type", mode="before")
    @classmethod
    def _default_mime(cls, v: Optional[str]):
        return v or "image/jpeg"

    def size_variants(self) -> list[tuple[str, str]]:
        sizes = (self.media_details or {}).get("sizes") or {}
        variants = []
        if isinstance(sizes, dict):
            for name, data in sizes.items():
                size = MediaSize.model_validate(data) if isinstance(data, dict) else None
                if size and size.source_url:
                    variants.append((name, size.source_url))
        return variants

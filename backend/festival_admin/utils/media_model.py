"""Canonical media model for content records (films, news, partners).

A content record owns one ordered gallery of asset URLs and designates
members of it as roles through integer pointers:

- ``cover_index`` addresses the "cover" image,
- ``logo_index`` addresses the "logo" image.

The poster is an independent URL field and is never part of the gallery.

Stored documents keep the field names the admin has always written
(``galleryUrls``, ``galleryCoverIndex``, ``galleryLogoIndex``, ``posterUrl``).
Those names are stable because existing documents and reports use them.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import StrEnum
from typing import Any, Mapping

GALLERY_FIELD = "galleryUrls"
COVER_INDEX_FIELD = "galleryCoverIndex"
LOGO_INDEX_FIELD = "galleryLogoIndex"
POSTER_FIELD = "posterUrl"

MEDIA_FIELDS: tuple[str, ...] = (
    GALLERY_FIELD,
    COVER_INDEX_FIELD,
    LOGO_INDEX_FIELD,
    POSTER_FIELD,
)

LEGACY_URL_KEY = "url"
LEGACY_COVER_FLAG = "isCover"
LEGACY_LOGO_FLAG = "isLogo"


class MediaRole(StrEnum):
    cover = "cover"
    logo = "logo"


@dataclass(frozen=True, slots=True)
class RawRecord:
    """A stored document exactly as the persistence layer enumerated it."""

    id: str
    data: Mapping[str, Any]
    collection: str = ""


@dataclass(frozen=True, slots=True)
class ContentRecord:
    id: str
    collection: str = ""
    gallery_urls: tuple[str, ...] = ()
    cover_index: int | None = None
    logo_index: int | None = None
    poster_url: str | None = None

    def __len__(self) -> int:
        return len(self.gallery_urls)

    def role_index(self, role: MediaRole) -> int | None:
        if role == MediaRole.cover:
            return self.cover_index
        return self.logo_index

    def in_bounds(self, index: int | None) -> bool:
        return index is not None and 0 <= index < len(self.gallery_urls)


@dataclass(frozen=True, slots=True)
class GalleryItem:
    url: str
    index: int
    is_cover: bool
    is_logo: bool


def to_media_fields(record: ContentRecord) -> dict[str, Any]:
    """Serialise the media-related fields of ``record`` under stored names.

    Undefined pointers and a missing poster are emitted as ``None``; the
    persistence layer treats ``None`` as "remove the key".
    """
    return {
        GALLERY_FIELD: list(record.gallery_urls),
        COVER_INDEX_FIELD: record.cover_index,
        LOGO_INDEX_FIELD: record.logo_index,
        POSTER_FIELD: record.poster_url,
    }


def media_fields_of(data: Mapping[str, Any]) -> dict[str, Any]:
    """Project a raw document onto the media fields (absent keys -> ``None``)."""
    return {field: data.get(field) for field in MEDIA_FIELDS}


__all__ = [
    "COVER_INDEX_FIELD",
    "ContentRecord",
    "GALLERY_FIELD",
    "GalleryItem",
    "LEGACY_COVER_FLAG",
    "LEGACY_LOGO_FLAG",
    "LEGACY_URL_KEY",
    "LOGO_INDEX_FIELD",
    "MEDIA_FIELDS",
    "MediaRole",
    "POSTER_FIELD",
    "RawRecord",
    "media_fields_of",
    "to_media_fields",
]

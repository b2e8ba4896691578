"""Decode stored gallery data into the canonical ContentRecord.

Stored galleries come in three shapes:

- canonical: a list of URL strings plus ``galleryCoverIndex`` /
  ``galleryLogoIndex`` fields,
- legacy tagged: a list of ``{"url", "isCover", "isLogo"}`` objects,
- legacy mixed: strings and tagged objects in the same list.

Each entry is decoded as exactly one of ``CanonicalEntry``,
``LegacyTaggedEntry`` or ``MalformedEntry``. Malformed entries are dropped
and logged; normalization itself never fails.

Role positions always refer to the canonical output, i.e. positions after
dropped entries were removed.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Mapping

from .media_model import (
    COVER_INDEX_FIELD,
    GALLERY_FIELD,
    LEGACY_COVER_FLAG,
    LEGACY_LOGO_FLAG,
    LEGACY_URL_KEY,
    LOGO_INDEX_FIELD,
    POSTER_FIELD,
    ContentRecord,
    RawRecord,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class CanonicalEntry:
    url: str


@dataclass(frozen=True, slots=True)
class LegacyTaggedEntry:
    url: str
    is_cover: bool
    is_logo: bool


@dataclass(frozen=True, slots=True)
class MalformedEntry:
    value: Any
    reason: str


GalleryEntry = CanonicalEntry | LegacyTaggedEntry | MalformedEntry


@dataclass(frozen=True, slots=True)
class NormalizationSkip:
    """A piece of stored media data that could not be decoded and was dropped.

    ``position`` is the original list position for gallery entries and
    ``None`` for whole fields.
    """

    field: str
    position: int | None
    reason: str


def decode_entry(item: Any) -> GalleryEntry:
    if isinstance(item, str):
        return CanonicalEntry(url=item)
    if isinstance(item, Mapping):
        url = item.get(LEGACY_URL_KEY)
        if isinstance(url, str):
            return LegacyTaggedEntry(
                url=url,
                is_cover=item.get(LEGACY_COVER_FLAG) is True,
                is_logo=item.get(LEGACY_LOGO_FLAG) is True,
            )
        return MalformedEntry(value=item, reason="object without url")
    return MalformedEntry(value=item, reason=f"unsupported entry type {type(item).__name__}")


def _read_pointer(value: Any) -> tuple[int | None, bool]:
    """Return ``(pointer, readable)`` for a stored index value."""
    if value is None:
        return None, True
    if isinstance(value, bool):
        return None, False
    if isinstance(value, int):
        return value, True
    if isinstance(value, float) and value.is_integer():
        return int(value), True
    return None, False


def _remap_pointer(
    pointer: int | None,
    positions: dict[int, int],
    original_size: int,
) -> int | None:
    if pointer is None:
        return None
    if pointer < 0 or pointer >= original_size:
        # Left in place so repair reports and fixes it.
        return pointer
    return positions.get(pointer)


def normalize_with_skips(
    raw: RawRecord | ContentRecord,
    *,
    log: logging.Logger | None = None,
) -> tuple[ContentRecord, list[NormalizationSkip]]:
    if isinstance(raw, ContentRecord):
        return raw, []

    log = log or logger
    data = raw.data
    skips: list[NormalizationSkip] = []

    stored_gallery = data.get(GALLERY_FIELD)
    if stored_gallery is None:
        items: list[Any] = []
    elif isinstance(stored_gallery, list):
        items = stored_gallery
    else:
        items = []
        skips.append(
            NormalizationSkip(
                field=GALLERY_FIELD,
                position=None,
                reason=f"gallery is {type(stored_gallery).__name__}, not a list",
            )
        )

    urls: list[str] = []
    positions: dict[int, int] = {}
    tagged_cover: int | None = None
    tagged_logo: int | None = None

    for original_position, item in enumerate(items):
        entry = decode_entry(item)
        if isinstance(entry, MalformedEntry):
            skips.append(
                NormalizationSkip(
                    field=GALLERY_FIELD,
                    position=original_position,
                    reason=entry.reason,
                )
            )
            continue
        canonical_position = len(urls)
        positions[original_position] = canonical_position
        urls.append(entry.url)
        if isinstance(entry, LegacyTaggedEntry):
            if entry.is_cover and tagged_cover is None:
                tagged_cover = canonical_position
            if entry.is_logo and tagged_logo is None:
                tagged_logo = canonical_position

    pointers: dict[str, int | None] = {}
    for field_name in (COVER_INDEX_FIELD, LOGO_INDEX_FIELD):
        value, readable = _read_pointer(data.get(field_name))
        if not readable:
            skips.append(
                NormalizationSkip(
                    field=field_name,
                    position=None,
                    reason=f"index is {type(data.get(field_name)).__name__}, not an integer",
                )
            )
        pointers[field_name] = _remap_pointer(value, positions, len(items))

    cover_index = tagged_cover if tagged_cover is not None else pointers[COVER_INDEX_FIELD]
    logo_index = tagged_logo if tagged_logo is not None else pointers[LOGO_INDEX_FIELD]

    poster = data.get(POSTER_FIELD)
    if poster is not None and not isinstance(poster, str):
        skips.append(
            NormalizationSkip(
                field=POSTER_FIELD,
                position=None,
                reason=f"poster is {type(poster).__name__}, not a string",
            )
        )
        poster = None

    for skip in skips:
        log.warning(
            "Dropped media data record=%s collection=%s field=%s position=%s: %s",
            raw.id,
            raw.collection,
            skip.field,
            skip.position,
            skip.reason,
        )

    record = ContentRecord(
        id=raw.id,
        collection=raw.collection,
        gallery_urls=tuple(urls),
        cover_index=cover_index,
        logo_index=logo_index,
        poster_url=poster,
    )
    return record, skips


def normalize(
    raw: RawRecord | ContentRecord,
    *,
    log: logging.Logger | None = None,
) -> ContentRecord:
    """Decode ``raw`` into canonical form; a ContentRecord passes through."""
    record, _ = normalize_with_skips(raw, log=log)
    return record


__all__ = [
    "CanonicalEntry",
    "GalleryEntry",
    "LegacyTaggedEntry",
    "MalformedEntry",
    "NormalizationSkip",
    "decode_entry",
    "normalize",
    "normalize_with_skips",
]

"""Read and update role pointers on a ContentRecord.

Every function here is pure: no I/O, no shared state, and the argument is
never mutated. Updates return a new record; callers own persisting it.
Invalid requests (index out of range) return the record unchanged and emit
a warning on the supplied logger.
"""

from __future__ import annotations

import logging
from dataclasses import replace
from typing import Iterable

from .media_model import ContentRecord, GalleryItem, MediaRole

logger = logging.getLogger(__name__)


def get_cover(record: ContentRecord) -> str | None:
    """Return the cover URL, defaulting to the first gallery image."""
    if not record.gallery_urls:
        return None
    if record.in_bounds(record.cover_index):
        return record.gallery_urls[record.cover_index]  # type: ignore[index]
    return record.gallery_urls[0]


def get_logo(record: ContentRecord) -> str | None:
    # No fallback: most records have no logo.
    if record.in_bounds(record.logo_index):
        return record.gallery_urls[record.logo_index]  # type: ignore[index]
    return None


def get_poster(record: ContentRecord) -> str | None:
    return record.poster_url or None


def get_display_cover(record: ContentRecord) -> str | None:
    """Cover for public listings: gallery cover first, then the poster."""
    return get_cover(record) or get_poster(record)


def get_gallery_view(record: ContentRecord) -> list[GalleryItem]:
    return [
        GalleryItem(
            url=url,
            index=index,
            is_cover=record.cover_index == index,
            is_logo=record.logo_index == index,
        )
        for index, url in enumerate(record.gallery_urls)
    ]


def _warn_out_of_range(
    record: ContentRecord,
    action: str,
    index: int,
    log: logging.Logger | None,
) -> None:
    (log or logger).warning(
        "Invalid %s index %s for record %s with %s images",
        action,
        index,
        record.id,
        len(record.gallery_urls),
    )


def _set_role_index(
    record: ContentRecord,
    role: MediaRole,
    index: int,
    log: logging.Logger | None,
) -> ContentRecord:
    if not record.in_bounds(index):
        _warn_out_of_range(record, str(role), index, log)
        return record
    if record.role_index(role) == index:
        return record
    if role == MediaRole.cover:
        return replace(record, cover_index=index)
    return replace(record, logo_index=index)


def set_cover_index(
    record: ContentRecord,
    index: int,
    *,
    log: logging.Logger | None = None,
) -> ContentRecord:
    return _set_role_index(record, MediaRole.cover, index, log)


def set_logo_index(
    record: ContentRecord,
    index: int,
    *,
    log: logging.Logger | None = None,
) -> ContentRecord:
    return _set_role_index(record, MediaRole.logo, index, log)


def clear_cover(record: ContentRecord) -> ContentRecord:
    if record.cover_index is None:
        return record
    return replace(record, cover_index=None)


def clear_logo(record: ContentRecord) -> ContentRecord:
    if record.logo_index is None:
        return record
    return replace(record, logo_index=None)


def _shift_after_insert(pointer: int | None, position: int) -> int | None:
    if pointer is None or pointer < position:
        return pointer
    return pointer + 1


def _shift_after_remove(pointer: int | None, removed: int) -> int | None:
    if pointer is None or pointer < removed:
        return pointer
    if pointer == removed:
        return None
    return pointer - 1


def _follow_move(pointer: int | None, source: int, target: int) -> int | None:
    if pointer is None:
        return None
    if pointer == source:
        return target
    if source < pointer <= target:
        return pointer - 1
    if target <= pointer < source:
        return pointer + 1
    return pointer


def add_media(
    record: ContentRecord,
    url: str,
    *,
    position: int | None = None,
) -> ContentRecord:
    """Insert ``url`` at ``position`` (append by default).

    Role pointers keep addressing the asset they addressed before.
    """
    size = len(record.gallery_urls)
    resolved = size if position is None else max(0, min(int(position), size))
    urls = list(record.gallery_urls)
    urls.insert(resolved, url)
    return replace(
        record,
        gallery_urls=tuple(urls),
        cover_index=_shift_after_insert(record.cover_index, resolved),
        logo_index=_shift_after_insert(record.logo_index, resolved),
    )


def extend_media(record: ContentRecord, urls: Iterable[str]) -> ContentRecord:
    """Append newly uploaded URLs, skipping blanks."""
    additions = tuple(url for url in urls if isinstance(url, str) and url.strip())
    if not additions:
        return record
    return replace(record, gallery_urls=record.gallery_urls + additions)


def remove_media(
    record: ContentRecord,
    index: int,
    *,
    log: logging.Logger | None = None,
) -> ContentRecord:
    """Remove the asset at ``index``.

    A role pointing at the removed asset is cleared; later pointers shift down.
    """
    if not record.in_bounds(index):
        _warn_out_of_range(record, "remove", index, log)
        return record
    urls = record.gallery_urls[:index] + record.gallery_urls[index + 1 :]
    return replace(
        record,
        gallery_urls=urls,
        cover_index=_shift_after_remove(record.cover_index, index),
        logo_index=_shift_after_remove(record.logo_index, index),
    )


def move_media(
    record: ContentRecord,
    from_index: int,
    to_index: int,
    *,
    log: logging.Logger | None = None,
) -> ContentRecord:
    """Move one asset to a new position; role pointers follow their assets."""
    if not record.in_bounds(from_index):
        _warn_out_of_range(record, "move source", from_index, log)
        return record
    if not record.in_bounds(to_index):
        _warn_out_of_range(record, "move target", to_index, log)
        return record
    if from_index == to_index:
        return record
    urls = list(record.gallery_urls)
    moved = urls.pop(from_index)
    urls.insert(to_index, moved)
    return replace(
        record,
        gallery_urls=tuple(urls),
        cover_index=_follow_move(record.cover_index, from_index, to_index),
        logo_index=_follow_move(record.logo_index, from_index, to_index),
    )


__all__ = [
    "add_media",
    "clear_cover",
    "clear_logo",
    "extend_media",
    "get_cover",
    "get_display_cover",
    "get_gallery_view",
    "get_logo",
    "get_poster",
    "move_media",
    "remove_media",
    "set_cover_index",
    "set_logo_index",
]

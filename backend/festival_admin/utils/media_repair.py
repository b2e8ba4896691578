from __future__ import annotations

import logging
from dataclasses import replace

from .media_model import ContentRecord
from .media_validation import validate

logger = logging.getLogger(__name__)


def repair(record: ContentRecord, *, log: logging.Logger | None = None) -> ContentRecord:
    """Fix invalid role pointers with a fixed, idempotent policy.

    - cover out of bounds: first image, or unset when the gallery is empty
    - logo out of bounds: unset (logos never fall back)
    - cover and logo on the same image: cover wins, logo is unset

    Valid records are returned unchanged.
    """
    if validate(record).is_valid:
        return record

    log = log or logger
    size = len(record.gallery_urls)
    cover_index = record.cover_index
    logo_index = record.logo_index

    if cover_index is not None and not record.in_bounds(cover_index):
        fixed = 0 if size > 0 else None
        log.info(
            "Fixing out-of-bounds cover index record=%s: %s -> %s",
            record.id,
            cover_index,
            fixed,
        )
        cover_index = fixed

    if logo_index is not None and not record.in_bounds(logo_index):
        log.info(
            "Fixing out-of-bounds logo index record=%s: %s -> None",
            record.id,
            logo_index,
        )
        logo_index = None

    if cover_index is not None and cover_index == logo_index:
        log.info(
            "Clearing logo index record=%s: index %s is already the cover",
            record.id,
            logo_index,
        )
        logo_index = None

    return replace(record, cover_index=cover_index, logo_index=logo_index)


__all__ = ["repair"]

from __future__ import annotations

from dataclasses import dataclass, field
from enum import StrEnum
from typing import Any, Mapping

from .media_model import (
    COVER_INDEX_FIELD,
    GALLERY_FIELD,
    LOGO_INDEX_FIELD,
    POSTER_FIELD,
    ContentRecord,
)


class MediaIssue(StrEnum):
    cover_out_of_bounds = "cover_out_of_bounds"
    logo_out_of_bounds = "logo_out_of_bounds"
    role_collision = "role_collision"


@dataclass(frozen=True, slots=True)
class ValidationResult:
    is_valid: bool
    issues: list[str] = field(default_factory=list)
    codes: list[MediaIssue] = field(default_factory=list)


def _out_of_bounds(index: int, size: int) -> bool:
    return index < 0 or index >= size


def validate(record: ContentRecord) -> ValidationResult:
    """Check the role pointers of ``record`` against the gallery invariants."""
    size = len(record.gallery_urls)
    issues: list[str] = []
    codes: list[MediaIssue] = []

    if record.cover_index is not None and _out_of_bounds(record.cover_index, size):
        issues.append(
            f"Cover index {record.cover_index} is out of bounds (gallery has {size} images)"
        )
        codes.append(MediaIssue.cover_out_of_bounds)

    if record.logo_index is not None and _out_of_bounds(record.logo_index, size):
        issues.append(
            f"Logo index {record.logo_index} is out of bounds (gallery has {size} images)"
        )
        codes.append(MediaIssue.logo_out_of_bounds)

    if (
        record.cover_index is not None
        and record.logo_index is not None
        and record.cover_index == record.logo_index
    ):
        issues.append(f"Same index {record.cover_index} is used for both cover and logo")
        codes.append(MediaIssue.role_collision)

    return ValidationResult(is_valid=not issues, issues=issues, codes=codes)


def _is_whole_number(value: Any) -> bool:
    if isinstance(value, bool):
        return False
    if isinstance(value, int):
        return True
    return isinstance(value, float) and value.is_integer()


def audit_document(data: Mapping[str, Any]) -> list[str]:
    """Report structural problems of a stored document without decoding it.

    Read-only verification used after a migration to confirm every document
    is in canonical form: an empty result means the migration would leave
    the document's media fields untouched.
    """
    issues: list[str] = []
    gallery = data.get(GALLERY_FIELD)
    size = 0
    if isinstance(gallery, list):
        size = len(gallery)
        if any(not isinstance(item, str) for item in gallery):
            issues.append(f"{GALLERY_FIELD} contains objects (should be strings only)")
    elif gallery is not None:
        issues.append(f"{GALLERY_FIELD} is not an array")

    pointers: dict[str, Any] = {}
    for name, field_name in (("Cover", COVER_INDEX_FIELD), ("Logo", LOGO_INDEX_FIELD)):
        value = data.get(field_name)
        if value is None:
            continue
        if not _is_whole_number(value):
            issues.append(f"{field_name} is not a whole number")
            continue
        pointers[field_name] = value
        if _out_of_bounds(value, size):
            issues.append(f"{name} index {value} is out of bounds (gallery has {size} images)")

    cover = pointers.get(COVER_INDEX_FIELD)
    logo = pointers.get(LOGO_INDEX_FIELD)
    if cover is not None and logo is not None and cover == logo:
        issues.append(f"Same index {cover} is used for both cover and logo")

    poster = data.get(POSTER_FIELD)
    if poster is not None and not isinstance(poster, str):
        issues.append(f"{POSTER_FIELD} is not a string")
    return issues


__all__ = ["MediaIssue", "ValidationResult", "audit_document", "validate"]

from __future__ import annotations

from prometheus_client import Counter

media_migration_records_total = Counter(
    "media_migration_records_total",
    "Records processed by the media role migration, by outcome.",
    ["outcome"],
)
media_normalization_skips_total = Counter(
    "media_normalization_skips_total",
    "Stored gallery entries or fields dropped during normalization.",
)
media_role_edits_total = Counter(
    "media_role_edits_total",
    "Gallery edits applied through the admin media API, by operation.",
    ["operation"],
)

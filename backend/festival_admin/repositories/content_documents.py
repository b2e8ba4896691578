from __future__ import annotations

from typing import Any, Iterator, Mapping

import psycopg
from psycopg import sql
from psycopg.types.json import Jsonb

from ..config import settings
from ..db import get_conn, pool
from ..services.media_migration import MediaWriteError
from ..utils.media_model import RawRecord


def _table() -> sql.Identifier:
    return sql.Identifier(*settings.media_documents_table.split("."))


def _split_fields(fields: Mapping[str, Any]) -> tuple[list[str], dict[str, Any]]:
    """Separate keys to drop (``None`` values) from keys to merge."""
    removed = sorted(key for key, value in fields.items() if value is None)
    patch = {key: value for key, value in fields.items() if value is not None}
    return removed, patch


_SELECT_DOCUMENTS = sql.SQL(
    """
    SELECT id, data
      FROM {table}
     WHERE collection = %s
     ORDER BY id
     LIMIT %s
    """
)

_SELECT_DOCUMENT = sql.SQL(
    """
    SELECT data
      FROM {table}
     WHERE collection = %s AND id = %s
     LIMIT 1
    """
)

_MERGE_MEDIA_FIELDS = sql.SQL(
    """
    UPDATE {table}
       SET data = (data - %s::text[]) || %s::jsonb,
           updated_at = now()
     WHERE collection = %s AND id = %s
     RETURNING data
    """
)


def iter_raw_records(
    conn: psycopg.Connection,
    collection: str,
    *,
    batch_size: int = 200,
    limit: int | None = None,
) -> Iterator[RawRecord]:
    """Stream one collection through a server-side cursor, ordered by id."""
    query = _SELECT_DOCUMENTS.format(table=_table())
    with conn.cursor(name=f"media_scan_{collection}") as cur:
        cur.itersize = max(1, int(batch_size))
        cur.execute(query, (collection, limit))
        for record_id, data in cur:
            yield RawRecord(
                id=str(record_id),
                data=data if isinstance(data, dict) else {},
                collection=collection,
            )


def write_media_fields(
    conn: psycopg.Connection,
    collection: str,
    record_id: str,
    fields: Mapping[str, Any],
) -> None:
    """Merge ``fields`` into one stored document; ``None`` removes the key.

    ``conn`` is expected to be in autocommit mode so every call is its own
    transaction.
    """
    removed, patch = _split_fields(fields)
    query = _MERGE_MEDIA_FIELDS.format(table=_table())
    try:
        with conn.cursor() as cur:
            cur.execute(query, (removed, Jsonb(patch), collection, record_id))
            row = cur.fetchone()
    except psycopg.Error as exc:
        raise MediaWriteError(f"Failed to write {collection}/{record_id}: {exc}") from exc
    if row is None:
        raise MediaWriteError(f"Document {collection}/{record_id} no longer exists")


async def get_document(collection: str, record_id: str) -> dict[str, Any] | None:
    async with get_conn() as cur:
        await cur.execute(
            _SELECT_DOCUMENT.format(table=_table()),
            (collection, record_id),
        )
        row = await cur.fetchone()
        if not row:
            return None
        data = row["data"]
        return dict(data) if isinstance(data, dict) else {}


async def update_media_fields(
    collection: str,
    record_id: str,
    fields: Mapping[str, Any],
) -> dict[str, Any] | None:
    removed, patch = _split_fields(fields)
    async with pool.connection() as conn:  # type: ignore[attr-defined]
        async with conn.cursor() as cur:  # type: ignore[attr-defined]
            await cur.execute(
                _MERGE_MEDIA_FIELDS.format(table=_table()),
                (removed, Jsonb(patch), collection, record_id),
            )
            row = await cur.fetchone()
            await conn.commit()
            return dict(row[0]) if row else None


__all__ = [
    "get_document",
    "iter_raw_records",
    "update_media_fields",
    "write_media_fields",
]

from __future__ import annotations

from contextlib import asynccontextmanager
from typing import AsyncIterator

from psycopg import AsyncCursor
from psycopg.rows import dict_row
from psycopg_pool import AsyncConnectionPool

from .config import settings


def _conninfo() -> str:
    return str(settings.database_url) if settings.database_url else ""


pool = AsyncConnectionPool(
    conninfo=_conninfo(),
    min_size=1,
    max_size=10,
    open=False,
)


@asynccontextmanager
async def get_conn() -> AsyncIterator[AsyncCursor]:
    async with pool.connection() as conn:  # type: ignore[attr-defined]
        async with conn.cursor(row_factory=dict_row) as cur:  # type: ignore[attr-defined]
            yield cur

from __future__ import annotations

import logging
from contextlib import contextmanager
from contextvars import ContextVar, Token
from typing import Any, Iterator

import sentry_sdk

_log_context: ContextVar[dict[str, Any]] = ContextVar("media_log_context", default={})


class MediaContextFilter(logging.Filter):
    """Inject migration and request metadata from ContextVars into every log record."""

    def filter(self, record: logging.LogRecord) -> bool:  # pragma: no cover - formatting only
        context = _log_context.get({})
        record.request_id = context.get("request_id")
        record.migration_run_id = context.get("migration_run_id")
        record.collection = context.get("collection")
        record.record_id = context.get("record_id")
        return True


def _sync_sentry_tags(keys, context: dict[str, Any]) -> None:
    scope = sentry_sdk.get_isolation_scope()
    for key in keys:
        value = context.get(key)
        if value is None:
            scope.remove_tag(key)
        else:
            scope.set_tag(key, value)


def push_log_context(**values: Any) -> Token:
    merged = {**_log_context.get({}), **values}
    _sync_sentry_tags(values, merged)
    return _log_context.set(merged)


def pop_log_context(token: Token) -> None:
    pushed = _log_context.get({})
    _log_context.reset(token)
    _sync_sentry_tags(pushed, _log_context.get({}))


def push_request_context(request_id: str) -> Token:
    return push_log_context(request_id=request_id)


@contextmanager
def migration_context(run_id: str, collection: str | None = None) -> Iterator[None]:
    token = push_log_context(migration_run_id=run_id, collection=collection)
    try:
        yield
    finally:
        pop_log_context(token)


@contextmanager
def record_context(record_id: str, collection: str | None = None) -> Iterator[None]:
    values: dict[str, Any] = {"record_id": record_id}
    if collection:
        values["collection"] = collection
    token = _log_context.set({**_log_context.get({}), **values})
    try:
        yield
    finally:
        _log_context.reset(token)


def current_log_context() -> dict[str, Any]:
    return dict(_log_context.get({}))


__all__ = [
    "MediaContextFilter",
    "current_log_context",
    "migration_context",
    "pop_log_context",
    "push_log_context",
    "push_request_context",
    "record_context",
]

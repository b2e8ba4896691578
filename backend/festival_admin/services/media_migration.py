"""Convert stored galleries to the canonical index-based form.

Per record, as one unit of work:

1. normalize the stored document (legacy tagged/mixed galleries -> URLs + indices)
2. validate the role pointers
3. repair them when validation reports issues
4. diff the stored media fields against the canonical result
5. write the canonical fields back (apply mode only, non-empty diffs only)

Dry-run never writes. Apply mode is record-isolated: a failed write is
reported and the run continues. Only a failure to enumerate the corpus
aborts the run. Every step is idempotent, so re-running after an apply (or
after an interrupted run) converges to zero changes.
"""

from __future__ import annotations

import contextvars
import logging
import threading
from collections.abc import Callable, Iterable, Iterator, Sequence
from concurrent.futures import FIRST_COMPLETED, Future, ThreadPoolExecutor, wait
from dataclasses import dataclass, field
from enum import StrEnum
from typing import Any

import sentry_sdk

from ..logging_context import record_context
from ..metrics import media_migration_records_total, media_normalization_skips_total
from ..utils.media_model import (
    GALLERY_FIELD,
    MEDIA_FIELDS,
    ContentRecord,
    RawRecord,
    media_fields_of,
    to_media_fields,
)
from ..utils.media_normalizer import normalize_with_skips
from ..utils.media_repair import repair
from ..utils.media_validation import validate

logger = logging.getLogger(__name__)

WriteRecord = Callable[[str, ContentRecord], Any]


class MediaSourceReadError(RuntimeError):
    """Raised when the record source itself cannot be enumerated."""


class MediaWriteError(RuntimeError):
    """Raised by persistence writes that did not update the stored document."""


class MigrationAction(StrEnum):
    converted_legacy_gallery = "converted_legacy_gallery"
    repaired_indices = "repaired_indices"
    normalized_fields = "normalized_fields"


@dataclass(frozen=True, slots=True)
class FieldChange:
    before: Any
    after: Any


@dataclass(frozen=True, slots=True)
class RecordDiff:
    record_id: str
    collection: str
    action: MigrationAction
    changes: dict[str, FieldChange]
    issues: list[str] = field(default_factory=list)
    skipped_entries: int = 0


@dataclass(frozen=True, slots=True)
class WriteFailure:
    record_id: str
    collection: str
    error: str


@dataclass(frozen=True, slots=True)
class MigrationReport:
    dry_run: bool
    total_records: int
    records_changed: int
    records_unchanged: int
    records_written: int
    per_record_diffs: list[RecordDiff]
    write_failures: list[WriteFailure]
    cancelled: bool = False


@dataclass(frozen=True, slots=True)
class RecordPlan:
    """Outcome of the pure steps for one record."""

    record: ContentRecord
    diff: RecordDiff | None


def _same_value(before: Any, after: Any) -> bool:
    if isinstance(before, bool) != isinstance(after, bool):
        return False
    return before == after


def diff_media_fields(raw: RawRecord, final: ContentRecord) -> dict[str, FieldChange]:
    """Field-level changes between the stored document and ``final``.

    Absent keys compare equal to ``None`` and an absent gallery equals an
    empty one, so untouched records never produce a write.
    """
    before = media_fields_of(raw.data)
    after = to_media_fields(final)
    changes: dict[str, FieldChange] = {}
    for field_name in MEDIA_FIELDS:
        old = before[field_name]
        new = after[field_name]
        if field_name == GALLERY_FIELD and old is None and new == []:
            continue
        if not _same_value(old, new):
            changes[field_name] = FieldChange(before=old, after=new)
    return changes


def _has_legacy_entries(raw: RawRecord) -> bool:
    gallery = raw.data.get(GALLERY_FIELD)
    if not isinstance(gallery, list):
        return gallery is not None
    return any(not isinstance(item, str) for item in gallery)


def plan_record(raw: RawRecord, *, log: logging.Logger | None = None) -> RecordPlan:
    """Run normalize -> validate -> repair for one record and diff the result."""
    log = log or logger
    record, skips = normalize_with_skips(raw, log=log)
    if skips:
        media_normalization_skips_total.inc(len(skips))

    result = validate(record)
    final = record if result.is_valid else repair(record, log=log)

    changes = diff_media_fields(raw, final)
    if not changes:
        return RecordPlan(record=final, diff=None)

    if _has_legacy_entries(raw):
        action = MigrationAction.converted_legacy_gallery
    elif result.issues:
        action = MigrationAction.repaired_indices
    else:
        action = MigrationAction.normalized_fields

    diff = RecordDiff(
        record_id=raw.id,
        collection=raw.collection,
        action=action,
        changes=changes,
        issues=list(result.issues),
        skipped_entries=len(skips),
    )
    return RecordPlan(record=final, diff=diff)


class _ReportAccumulator:
    """Thread-safe aggregation of per-record outcomes."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self.total = 0
        self.changed = 0
        self.unchanged = 0
        self.written = 0
        self.diffs: list[RecordDiff] = []
        self.failures: list[WriteFailure] = []

    def add_unchanged(self) -> None:
        with self._lock:
            self.total += 1
            self.unchanged += 1

    def add_changed(self, diff: RecordDiff) -> None:
        with self._lock:
            self.total += 1
            self.changed += 1
            self.diffs.append(diff)

    def add_written(self) -> None:
        with self._lock:
            self.written += 1

    def add_failure(self, failure: WriteFailure) -> None:
        with self._lock:
            self.failures.append(failure)

    def build(self, *, dry_run: bool, cancelled: bool) -> MigrationReport:
        with self._lock:
            return MigrationReport(
                dry_run=dry_run,
                total_records=self.total,
                records_changed=self.changed,
                records_unchanged=self.unchanged,
                records_written=self.written,
                per_record_diffs=sorted(
                    self.diffs, key=lambda d: (d.collection, d.record_id)
                ),
                write_failures=sorted(
                    self.failures, key=lambda f: (f.collection, f.record_id)
                ),
                cancelled=cancelled,
            )


def _capture_write_failure(raw: RawRecord, exc: BaseException | None, message: str) -> None:
    if not sentry_sdk.get_client().is_active():
        return
    with sentry_sdk.new_scope() as scope:
        scope.set_tag("media_migration.collection", raw.collection)
        scope.set_tag("media_migration.record_id", raw.id)
        scope.set_tag("alert_kind", "media_write_failure")
        if exc is not None:
            sentry_sdk.capture_exception(exc)
        else:
            sentry_sdk.capture_message(message, level="warning")


def _process_record(
    raw: RawRecord,
    write_record: WriteRecord,
    accumulator: _ReportAccumulator,
    *,
    dry_run: bool,
    log: logging.Logger,
) -> None:
    with record_context(raw.id, raw.collection):
        plan = plan_record(raw, log=log)
        if plan.diff is None:
            accumulator.add_unchanged()
            media_migration_records_total.labels(outcome="unchanged").inc()
            return

        accumulator.add_changed(plan.diff)
        media_migration_records_total.labels(outcome="changed").inc()
        if dry_run:
            log.info(
                "Would update record=%s collection=%s action=%s fields=%s",
                raw.id,
                raw.collection,
                plan.diff.action,
                sorted(plan.diff.changes),
            )
            return

        error: str | None = None
        try:
            outcome = write_record(raw.id, plan.record)
        except Exception as exc:
            error = f"{type(exc).__name__}: {exc}"
            log.warning(
                "Write failed record=%s collection=%s: %s", raw.id, raw.collection, error
            )
            _capture_write_failure(raw, exc, error)
        else:
            if outcome is False:
                error = "write rejected by persistence layer"
                log.warning(
                    "Write rejected record=%s collection=%s", raw.id, raw.collection
                )
                _capture_write_failure(raw, None, error)

        if error is not None:
            accumulator.add_failure(
                WriteFailure(record_id=raw.id, collection=raw.collection, error=error)
            )
            media_migration_records_total.labels(outcome="write_failed").inc()
            return

        accumulator.add_written()
        media_migration_records_total.labels(outcome="written").inc()
        log.info(
            "Updated record=%s collection=%s action=%s",
            raw.id,
            raw.collection,
            plan.diff.action,
        )


_EXHAUSTED = object()


def _pull(iterator: Iterator[RawRecord]) -> Any:
    try:
        return next(iterator)
    except StopIteration:
        return _EXHAUSTED
    except Exception as exc:
        raise MediaSourceReadError(f"Failed to enumerate records: {exc}") from exc


def _drain(futures: Iterable[Future]) -> None:
    for future in futures:
        future.result()


def migrate(
    record_source: Iterable[RawRecord],
    write_record: WriteRecord,
    *,
    dry_run: bool = True,
    log: logging.Logger | None = None,
    cancel_event: threading.Event | None = None,
    max_workers: int = 1,
) -> MigrationReport:
    """Migrate every record yielded by ``record_source``.

    ``write_record(record_id, record)`` persists the canonical media fields;
    it reports failure by raising or by returning ``False``. Cancellation is
    checked between records only; records already started always finish.
    Raises MediaSourceReadError when ``record_source`` fails to enumerate.
    """
    log = log or logger
    accumulator = _ReportAccumulator()
    cancelled = False
    try:
        iterator = iter(record_source)
    except Exception as exc:
        raise MediaSourceReadError(f"Failed to enumerate records: {exc}") from exc

    def should_stop() -> bool:
        return cancel_event is not None and cancel_event.is_set()

    if max_workers <= 1:
        while True:
            if should_stop():
                cancelled = True
                break
            raw = _pull(iterator)
            if raw is _EXHAUSTED:
                break
            _process_record(raw, write_record, accumulator, dry_run=dry_run, log=log)
    else:
        in_flight_limit = 2 * max_workers
        pending: set[Future] = set()
        with ThreadPoolExecutor(max_workers=max_workers) as executor:
            while True:
                if should_stop():
                    cancelled = True
                    break
                raw = _pull(iterator)
                if raw is _EXHAUSTED:
                    break
                context = contextvars.copy_context()
                pending.add(
                    executor.submit(
                        context.run,
                        _process_record,
                        raw,
                        write_record,
                        accumulator,
                        dry_run=dry_run,
                        log=log,
                    )
                )
                if len(pending) >= in_flight_limit:
                    done, pending = wait(pending, return_when=FIRST_COMPLETED)
                    _drain(done)
            done, _ = wait(pending)
            _drain(done)

    report = accumulator.build(dry_run=dry_run, cancelled=cancelled)
    log.info(
        "Media migration finished dry_run=%s total=%s changed=%s unchanged=%s written=%s failures=%s cancelled=%s",
        report.dry_run,
        report.total_records,
        report.records_changed,
        report.records_unchanged,
        report.records_written,
        len(report.write_failures),
        report.cancelled,
    )
    return report


def combine_reports(reports: Sequence[MigrationReport]) -> MigrationReport:
    """Merge per-collection reports into one run report."""
    diffs = [diff for report in reports for diff in report.per_record_diffs]
    failures = [failure for report in reports for failure in report.write_failures]
    return MigrationReport(
        dry_run=all(report.dry_run for report in reports) if reports else True,
        total_records=sum(report.total_records for report in reports),
        records_changed=sum(report.records_changed for report in reports),
        records_unchanged=sum(report.records_unchanged for report in reports),
        records_written=sum(report.records_written for report in reports),
        per_record_diffs=sorted(diffs, key=lambda d: (d.collection, d.record_id)),
        write_failures=sorted(failures, key=lambda f: (f.collection, f.record_id)),
        cancelled=any(report.cancelled for report in reports),
    )


def report_to_dict(report: MigrationReport) -> dict[str, Any]:
    return {
        "summary": {
            "dry_run": report.dry_run,
            "total_records": report.total_records,
            "records_changed": report.records_changed,
            "records_unchanged": report.records_unchanged,
            "records_written": report.records_written,
            "write_failures": len(report.write_failures),
            "cancelled": report.cancelled,
        },
        "records": [
            {
                "record_id": diff.record_id,
                "collection": diff.collection,
                "action": str(diff.action),
                "issues": list(diff.issues),
                "skipped_entries": diff.skipped_entries,
                "changes": {
                    name: {"before": change.before, "after": change.after}
                    for name, change in sorted(diff.changes.items())
                },
            }
            for diff in report.per_record_diffs
        ],
        "write_failures": [
            {
                "record_id": failure.record_id,
                "collection": failure.collection,
                "error": failure.error,
            }
            for failure in report.write_failures
        ],
    }


__all__ = [
    "FieldChange",
    "MediaSourceReadError",
    "MediaWriteError",
    "MigrationAction",
    "MigrationReport",
    "RecordDiff",
    "RecordPlan",
    "WriteFailure",
    "combine_reports",
    "diff_media_fields",
    "migrate",
    "plan_record",
    "report_to_dict",
]

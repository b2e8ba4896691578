#!/usr/bin/env python3
"""Gallery role migration tooling.

Subcommands:
- migrate-media: convert every stored gallery to URLs + cover/logo indices
  and repair invalid pointers. Default is dry-run (no DB writes); use
  --apply to persist changes.
- validate-media: read-only audit that every stored document is canonical.

Primary outputs (deterministic):
- JSON report (machine-readable)
- Markdown report (human-readable)

Exit codes: 0 completed (even with per-record write failures), 1 no database
URL, 2 records could not be enumerated, 130 interrupted.
"""

from __future__ import annotations

import argparse
import json
import signal
import sys
import threading
import uuid
from contextlib import closing
from pathlib import Path
from typing import Any, Sequence

import psycopg


ROOT_DIR = Path(__file__).resolve().parents[1]
if str(ROOT_DIR) not in sys.path:
    sys.path.insert(0, str(ROOT_DIR))

from festival_admin.config import settings  # noqa: E402
from festival_admin.logging_context import migration_context  # noqa: E402
from festival_admin.logging_utils import setup_logging  # noqa: E402
from festival_admin.repositories.content_documents import (  # noqa: E402
    iter_raw_records,
    write_media_fields,
)
from festival_admin.services.media_migration import (  # noqa: E402
    MediaSourceReadError,
    MigrationReport,
    combine_reports,
    migrate,
    report_to_dict,
)
from festival_admin.utils.media_model import ContentRecord, to_media_fields  # noqa: E402
from festival_admin.utils.media_validation import audit_document  # noqa: E402

EXIT_OK = 0
EXIT_NO_DATABASE = 1
EXIT_READ_FAILURE = 2
EXIT_INTERRUPTED = 130


def _ensure_db_url(url: str | None) -> str | None:
    if not url:
        return None
    if "sslmode=" in url:
        return url
    if "localhost" in url or "127.0.0.1" in url:
        return url
    sep = "&" if "?" in url else "?"
    return f"{url}{sep}sslmode=require"


def _default_db_url() -> str | None:
    return str(settings.database_url) if settings.database_url else None


def parse_args(argv: Sequence[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Migrate and audit gallery media roles.")
    subparsers = parser.add_subparsers(dest="command", required=True)

    def add_common(sub: argparse.ArgumentParser) -> None:
        sub.add_argument(
            "--database-url",
            default=None,
            help="Postgres URL (defaults to $DATABASE_URL).",
        )
        sub.add_argument(
            "--collection",
            action="append",
            default=None,
            help="Collection to process; repeatable (defaults to all configured collections).",
        )
        sub.add_argument(
            "--batch-size",
            type=int,
            default=settings.media_migration_batch_size,
            help="Rows fetched per round trip.",
        )
        sub.add_argument(
            "--limit",
            type=int,
            default=None,
            help="Max records per collection.",
        )

    migrate_parser = subparsers.add_parser(
        "migrate-media", help="Normalize and repair stored galleries."
    )
    add_common(migrate_parser)
    mode = migrate_parser.add_mutually_exclusive_group()
    mode.add_argument(
        "--dry-run",
        dest="apply",
        action="store_false",
        help="Report changes without writing (default).",
    )
    mode.add_argument(
        "--apply",
        dest="apply",
        action="store_true",
        help="Persist canonical media fields.",
    )
    migrate_parser.set_defaults(apply=False)
    migrate_parser.add_argument(
        "--workers",
        type=int,
        default=settings.media_migration_workers,
        help="Records processed concurrently.",
    )
    migrate_parser.add_argument(
        "--output-dir",
        default=".",
        help="Directory for report files.",
    )
    migrate_parser.add_argument(
        "--json-out",
        default="-",
        help="JSON report file name inside --output-dir, or '-' for stdout.",
    )
    migrate_parser.add_argument(
        "--md-out",
        default="-",
        help="Markdown report file name inside --output-dir, or '-' for stdout.",
    )

    validate_parser = subparsers.add_parser(
        "validate-media", help="Audit stored documents without writing."
    )
    add_common(validate_parser)
    return parser.parse_args(argv)


def format_report(report: dict[str, Any]) -> str:
    return json.dumps(report, indent=2, sort_keys=True)


def format_markdown_report(report: dict[str, Any]) -> str:
    summary: dict[str, Any] = dict(report.get("summary") or {})
    records: list[dict[str, Any]] = list(report.get("records") or [])
    failures: list[dict[str, Any]] = list(report.get("write_failures") or [])

    lines: list[str] = []
    lines.append("# Gallery Media Migration Report")
    lines.append("")
    lines.append(f"- Mode: `{'dry-run' if summary.get('dry_run', True) else 'apply'}`")
    for key in (
        "total_records",
        "records_changed",
        "records_unchanged",
        "records_written",
        "write_failures",
        "cancelled",
    ):
        lines.append(f"- {key.replace('_', ' ').capitalize()}: `{summary.get(key, 0)}`")
    lines.append("")

    def cell(value: Any) -> str:
        raw = "" if value is None else str(value)
        return raw.replace("\n", " ").replace("|", "\\|")

    lines.append("## Records")
    lines.append("")
    if not records:
        lines.append("_None_")
    else:
        lines.append("| collection | record_id | action | fields | issues | skipped |")
        lines.append("|---|---|---|---|---|---|")
        for row in records:
            lines.append(
                "| "
                + " | ".join(
                    [
                        cell(row.get("collection")),
                        cell(row.get("record_id")),
                        cell(row.get("action")),
                        cell(", ".join(sorted(row.get("changes") or {}))),
                        cell("; ".join(row.get("issues") or [])),
                        cell(row.get("skipped_entries", 0)),
                    ]
                )
                + " |"
            )
    lines.append("")

    lines.append("## Write Failures")
    lines.append("")
    if not failures:
        lines.append("_None_")
    else:
        lines.append("| collection | record_id | error |")
        lines.append("|---|---|---|")
        for row in failures:
            lines.append(
                f"| {cell(row.get('collection'))} | {cell(row.get('record_id'))} | {cell(row.get('error'))} |"
            )
    lines.append("")

    lines.append("## Notes")
    lines.append("")
    lines.append("- Output is deterministic (no timestamps).")
    lines.append("- Only gallery and role fields are ever written.")
    lines.append("")
    return "\n".join(lines)


def _emit(payload: str, target: str, output_dir: Path, label: str) -> None:
    if target == "-":
        print(payload)
        return
    output_dir.mkdir(parents=True, exist_ok=True)
    path = output_dir / target
    path.write_text(payload + "\n", encoding="utf-8")
    print(f"Wrote {label} report to {path}")


def _collections(args: argparse.Namespace) -> list[str]:
    return list(args.collection or settings.media_collections)


def run_migration(
    read_conn: psycopg.Connection,
    write_conn: psycopg.Connection,
    collections: Sequence[str],
    *,
    apply: bool,
    batch_size: int,
    limit: int | None,
    workers: int,
    cancel_event: threading.Event,
) -> MigrationReport:
    run_id = uuid.uuid4().hex[:12]
    reports: list[MigrationReport] = []
    for collection in collections:

        def write_record(record_id: str, record: ContentRecord, _collection: str = collection) -> None:
            write_media_fields(write_conn, _collection, record_id, to_media_fields(record))

        with migration_context(run_id, collection):
            with closing(
                iter_raw_records(read_conn, collection, batch_size=batch_size, limit=limit)
            ) as source:
                report = migrate(
                    source,
                    write_record,
                    dry_run=not apply,
                    cancel_event=cancel_event,
                    max_workers=workers,
                )
        reports.append(report)
        if report.cancelled:
            break
    return combine_reports(reports)


def _migrate_command(args: argparse.Namespace, db_url: str) -> int:
    cancel_event = threading.Event()

    def _request_cancel(signum, frame) -> None:
        print("Interrupt received; finishing records in flight...", file=sys.stderr)
        cancel_event.set()

    previous_handler = signal.signal(signal.SIGINT, _request_cancel)
    try:
        with psycopg.connect(db_url, autocommit=False) as read_conn, psycopg.connect(
            db_url, autocommit=True
        ) as write_conn:
            report = run_migration(
                read_conn,
                write_conn,
                _collections(args),
                apply=bool(args.apply),
                batch_size=args.batch_size,
                limit=args.limit,
                workers=max(1, int(args.workers)),
                cancel_event=cancel_event,
            )
    except (MediaSourceReadError, psycopg.Error) as exc:
        print(f"Database error: {exc}", file=sys.stderr)
        return EXIT_READ_FAILURE
    finally:
        signal.signal(signal.SIGINT, previous_handler)

    payload = report_to_dict(report)
    output_dir = Path(str(args.output_dir or ".")).resolve()
    _emit(format_report(payload), str(args.json_out or "").strip() or "-", output_dir, "JSON")
    _emit(format_markdown_report(payload), str(args.md_out or "").strip() or "-", output_dir, "Markdown")
    return EXIT_INTERRUPTED if report.cancelled else EXIT_OK


def build_audit(rows: Sequence[tuple[str, str, list[str]]], total: int) -> dict[str, Any]:
    """Summarise ``(collection, record_id, issues)`` rows with issues."""
    flagged = sorted(
        ({"collection": c, "record_id": r, "issues": issues} for c, r, issues in rows if issues),
        key=lambda item: (item["collection"], item["record_id"]),
    )
    return {
        "summary": {"total_records": total, "records_with_issues": len(flagged)},
        "records": flagged,
    }


def _validate_command(args: argparse.Namespace, db_url: str) -> int:
    rows: list[tuple[str, str, list[str]]] = []
    total = 0
    try:
        with psycopg.connect(db_url, autocommit=False) as conn:
            for collection in _collections(args):
                for raw in iter_raw_records(
                    conn, collection, batch_size=args.batch_size, limit=args.limit
                ):
                    total += 1
                    rows.append((collection, raw.id, audit_document(raw.data)))
    except psycopg.Error as exc:
        print(f"Database error: {exc}", file=sys.stderr)
        return EXIT_READ_FAILURE
    print(format_report(build_audit(rows, total)))
    return EXIT_OK


def main(argv: Sequence[str] | None = None) -> int:
    args = parse_args(argv)
    setup_logging(settings.log_level)
    db_url = _ensure_db_url(args.database_url or _default_db_url())
    if not db_url:
        print("Error: provide --database-url or set $DATABASE_URL", file=sys.stderr)
        return EXIT_NO_DATABASE

    if args.command == "validate-media":
        return _validate_command(args, db_url)
    return _migrate_command(args, db_url)


if __name__ == "__main__":
    raise SystemExit(main())

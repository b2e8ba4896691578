import copy
import threading

import pytest

from festival_admin.services.media_migration import (
    FieldChange,
    MediaSourceReadError,
    MediaWriteError,
    MigrationAction,
    combine_reports,
    diff_media_fields,
    migrate,
    plan_record,
    report_to_dict,
)
from festival_admin.utils.media_model import (
    ContentRecord,
    RawRecord,
    to_media_fields,
)


class DocumentStore:
    """Minimal document store keyed by id for one collection."""

    def __init__(self, docs: dict[str, dict], collection: str = "films") -> None:
        self.docs = copy.deepcopy(docs)
        self.collection = collection
        self.writes: list[str] = []

    def records(self):
        for record_id in sorted(self.docs):
            yield RawRecord(id=record_id, data=copy.deepcopy(self.docs[record_id]), collection=self.collection)

    def write(self, record_id: str, record: ContentRecord) -> None:
        self.writes.append(record_id)
        doc = self.docs[record_id]
        for key, value in to_media_fields(record).items():
            if value is None:
                doc.pop(key, None)
            else:
                doc[key] = value


def _scenario_corpus() -> dict[str, dict]:
    docs: dict[str, dict] = {}
    for i in range(85):
        if i % 5 == 0:
            docs[f"canon-{i:03d}"] = {"title": f"Film {i}"}
        else:
            docs[f"canon-{i:03d}"] = {
                "title": f"Film {i}",
                "galleryUrls": [f"https://cdn/{i}/a.jpg", f"https://cdn/{i}/b.jpg"],
                "galleryCoverIndex": 1,
                "galleryLogoIndex": 0,
                "posterUrl": f"https://cdn/{i}/poster.jpg",
            }
    for i in range(10):
        docs[f"legacy-{i:03d}"] = {
            "galleryUrls": [
                {"url": f"https://cdn/l{i}/x.jpg", "isCover": True},
                {"url": f"https://cdn/l{i}/y.jpg"},
                {"url": f"https://cdn/l{i}/z.jpg", "isLogo": True},
            ]
        }
    for i in range(5):
        docs[f"oob-{i:03d}"] = {
            "galleryUrls": [f"https://cdn/o{i}/a.jpg"],
            "galleryCoverIndex": 4,
            "galleryLogoIndex": 9,
        }
    return docs


def test_scenario_dry_run_apply_rerun_converges():
    store = DocumentStore(_scenario_corpus())

    dry = migrate(store.records(), store.write, dry_run=True)
    assert dry.total_records == 100
    assert dry.records_changed == 15
    assert dry.records_unchanged == 85
    assert dry.records_written == 0
    assert store.writes == []

    applied = migrate(store.records(), store.write, dry_run=False)
    assert applied.records_changed == 15
    assert applied.records_written == 15
    assert applied.write_failures == []

    rerun = migrate(store.records(), store.write, dry_run=True)
    assert rerun.records_changed == 0
    assert rerun.records_unchanged == 100

    assert store.docs["legacy-000"]["galleryUrls"] == [
        "https://cdn/l0/x.jpg",
        "https://cdn/l0/y.jpg",
        "https://cdn/l0/z.jpg",
    ]
    assert store.docs["legacy-000"]["galleryCoverIndex"] == 0
    assert store.docs["legacy-000"]["galleryLogoIndex"] == 2
    assert store.docs["oob-000"]["galleryCoverIndex"] == 0
    assert "galleryLogoIndex" not in store.docs["oob-000"]


def test_record_diffs_are_sorted_and_labelled():
    store = DocumentStore(_scenario_corpus())
    report = migrate(store.records(), store.write, dry_run=True)
    ids = [diff.record_id for diff in report.per_record_diffs]
    assert ids == sorted(ids)
    by_id = {diff.record_id: diff for diff in report.per_record_diffs}
    assert by_id["legacy-003"].action == MigrationAction.converted_legacy_gallery
    assert by_id["oob-001"].action == MigrationAction.repaired_indices
    assert by_id["oob-001"].issues == [
        "Cover index 4 is out of bounds (gallery has 1 images)",
        "Logo index 9 is out of bounds (gallery has 1 images)",
    ]
    assert by_id["oob-001"].changes["galleryCoverIndex"] == FieldChange(before=4, after=0)


def test_absent_gallery_matches_empty_gallery():
    raw = RawRecord(id="n", data={"title": "no media"})
    assert diff_media_fields(raw, ContentRecord(id="n")) == {}


def test_bool_index_is_not_equal_to_int():
    raw = RawRecord(id="b", data={"galleryUrls": ["a", "b"], "galleryCoverIndex": True})
    plan = plan_record(raw)
    assert plan.diff is not None
    assert plan.diff.changes["galleryCoverIndex"] == FieldChange(before=True, after=None)
    assert plan.diff.skipped_entries == 1


def test_write_failures_are_isolated():
    store = DocumentStore(_scenario_corpus())

    def flaky_write(record_id, record):
        if record_id == "legacy-002":
            raise MediaWriteError("connection reset")
        if record_id == "oob-003":
            return False
        store.write(record_id, record)

    report = migrate(store.records(), flaky_write, dry_run=False)
    assert report.records_changed == 15
    assert report.records_written == 13
    assert [(f.record_id, f.error) for f in report.write_failures] == [
        ("legacy-002", "MediaWriteError: connection reset"),
        ("oob-003", "write rejected by persistence layer"),
    ]

    rerun = migrate(store.records(), store.write, dry_run=True)
    assert rerun.records_changed == 2


def test_enumeration_failure_escalates():
    def broken_source():
        yield RawRecord(id="a", data={})
        raise ConnectionError("cursor lost")

    with pytest.raises(MediaSourceReadError) as excinfo:
        migrate(broken_source(), lambda record_id, record: None, dry_run=True)
    assert isinstance(excinfo.value.__cause__, ConnectionError)


def test_enumeration_failure_escalates_with_workers():
    def broken_source():
        for i in range(5):
            yield RawRecord(id=str(i), data={})
        raise ConnectionError("cursor lost")

    with pytest.raises(MediaSourceReadError):
        migrate(broken_source(), lambda record_id, record: None, dry_run=True, max_workers=3)


def test_cancellation_stops_between_records():
    cancel = threading.Event()

    def source():
        yield RawRecord(id="r1", data={"galleryUrls": ["a"], "galleryCoverIndex": 3})
        yield RawRecord(id="r2", data={})
        cancel.set()
        yield RawRecord(id="r3", data={})
        yield RawRecord(id="r4", data={})

    report = migrate(source(), lambda record_id, record: None, dry_run=True, cancel_event=cancel)
    assert report.cancelled is True
    assert report.total_records == 3
    assert report.records_changed == 1


def test_parallel_run_matches_sequential_run():
    docs = _scenario_corpus()
    sequential = migrate(DocumentStore(docs).records(), lambda i, r: None, dry_run=True)
    parallel = migrate(
        DocumentStore(docs).records(), lambda i, r: None, dry_run=True, max_workers=4
    )
    assert parallel == sequential


def test_parallel_apply_writes_every_changed_record():
    store = DocumentStore(_scenario_corpus())
    lock = threading.Lock()

    def write(record_id, record):
        with lock:
            store.write(record_id, record)

    report = migrate(store.records(), write, dry_run=False, max_workers=4)
    assert report.records_written == 15
    assert sorted(store.writes) == sorted(d.record_id for d in report.per_record_diffs)


def test_combine_reports_and_dict_shape():
    films = migrate(DocumentStore(_scenario_corpus(), "films").records(), lambda i, r: None)
    news = migrate(
        DocumentStore({"n1": {"galleryUrls": [{"url": "a", "isLogo": True}]}}, "news").records(),
        lambda i, r: None,
    )
    combined = combine_reports([news, films])
    assert combined.total_records == 101
    assert combined.records_changed == 16
    assert combined.per_record_diffs[0].collection == "films"

    payload = report_to_dict(combined)
    assert payload["summary"]["dry_run"] is True
    assert payload["summary"]["records_changed"] == 16
    news_entry = payload["records"][-1]
    assert news_entry["collection"] == "news"
    assert news_entry["action"] == "converted_legacy_gallery"
    assert news_entry["changes"]["galleryLogoIndex"] == {"before": None, "after": 0}

"""Tests for prmark-store implementations."""

from __future__ import annotations

from datetime import datetime, timezone

from prmark_store.models import STATUS_FAILED, STATUS_PLACED, AnnotationRecord, PassRecord
from prmark_store.noop import NoOpStore
from prmark_store.sqlite import SQLiteStore


def _make_record(repo="owner/repo", pr_number=1, reviewed_at=None, published=True):
    return PassRecord(
        repo=repo,
        pr_number=pr_number,
        pr_title="Fix auth bug",
        reviewer_model="anthropic",
        head_sha="a" * 40,
        reviewed_at=reviewed_at or datetime.now(timezone.utc).isoformat(),
        mode="inline",
        verdict="request_changes",
        published=published,
        annotations=[
            AnnotationRecord(file="src/auth.py", line=42, side="revised", status=STATUS_PLACED, body="Missing check"),
            AnnotationRecord(
                file="src/auth.py",
                line=7,
                side="original",
                status=STATUS_FAILED,
                body="Guard removed",
                stage="activate",
                error="no press handler",
            ),
        ],
    )


class TestPassRecord:
    def test_counts_placed_and_failed(self):
        record = _make_record()
        assert record.placed == 1
        assert [a.line for a in record.failed] == [7]


class TestNoOpStore:
    def test_save_does_not_raise(self):
        NoOpStore().save(_make_record())

    def test_list_passes_returns_empty(self):
        store = NoOpStore()
        store.save(_make_record())
        assert store.list_passes("owner/repo") == []
        assert store.list_passes("owner/repo", pr_number=1) == []


class TestSQLiteStore:
    def test_save_and_list_round_trips_annotations(self, tmp_path):
        store = SQLiteStore(db_path=str(tmp_path / "test.db"))
        store.save(_make_record())
        [record] = store.list_passes("owner/repo")
        assert record.mode == "inline"
        assert record.verdict == "request_changes"
        assert record.published is True
        failed = record.failed[0]
        assert (failed.file, failed.line, failed.side, failed.stage) == ("src/auth.py", 7, "original", "activate")
        assert failed.error == "no press handler"
        store.close()

    def test_filter_by_pr_number(self, tmp_path):
        store = SQLiteStore(db_path=str(tmp_path / "test.db"))
        store.save(_make_record(pr_number=1))
        store.save(_make_record(pr_number=2))
        assert [r.pr_number for r in store.list_passes("owner/repo", pr_number=2)] == [2]
        store.close()

    def test_filter_by_repo(self, tmp_path):
        store = SQLiteStore(db_path=str(tmp_path / "test.db"))
        store.save(_make_record(repo="owner/one"))
        store.save(_make_record(repo="owner/two"))
        assert [r.repo for r in store.list_passes("owner/two")] == ["owner/two"]
        store.close()

    def test_ordered_oldest_first(self, tmp_path):
        store = SQLiteStore(db_path=str(tmp_path / "test.db"))
        store.save(_make_record(pr_number=2, reviewed_at="2026-02-01T00:00:00+00:00"))
        store.save(_make_record(pr_number=1, reviewed_at="2026-01-01T00:00:00+00:00"))
        assert [r.pr_number for r in store.list_passes("owner/repo")] == [1, 2]
        store.close()

    def test_unpublished_flag_persisted(self, tmp_path):
        store = SQLiteStore(db_path=str(tmp_path / "test.db"))
        store.save(_make_record(published=False))
        assert store.list_passes("owner/repo")[0].published is False
        store.close()

    def test_data_survives_reopen(self, tmp_path):
        path = str(tmp_path / "test.db")
        store = SQLiteStore(db_path=path)
        store.save(_make_record())
        store.close()
        reopened = SQLiteStore(db_path=path)
        assert len(reopened.list_passes("owner/repo")) == 1
        reopened.close()

    def test_list_after_close_returns_empty(self, tmp_path):
        store = SQLiteStore(db_path=str(tmp_path / "test.db"))
        store.close()
        assert store.list_passes("owner/repo") == []

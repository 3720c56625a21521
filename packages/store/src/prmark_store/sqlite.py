"""SQLiteStore: local file-based history of review passes.

Schema:
  passes: one row per review pass; annotation outcomes are stored as a
           JSON column so reads never need a JOIN.
"""

from __future__ import annotations

import json
import logging
import sqlite3

from prmark_store.base import BaseStore
from prmark_store.models import AnnotationRecord, PassRecord

logger = logging.getLogger(__name__)

_SCHEMA = """
CREATE TABLE IF NOT EXISTS passes (
    id                INTEGER PRIMARY KEY AUTOINCREMENT,
    repo              TEXT NOT NULL,
    pr_number         INTEGER NOT NULL,
    pr_title          TEXT,
    reviewer_model    TEXT,
    head_sha          TEXT,
    reviewed_at       TEXT,
    mode              TEXT,
    verdict           TEXT,
    published         INTEGER DEFAULT 0,
    annotations_json  TEXT DEFAULT '[]'
);
CREATE INDEX IF NOT EXISTS idx_passes_repo ON passes (repo);
CREATE INDEX IF NOT EXISTS idx_passes_pr   ON passes (repo, pr_number);
"""

_ANNOTATION_FIELDS = ("file", "line", "side", "status", "body", "stage", "error")


class SQLiteStore(BaseStore):
    """Stores review passes in a local SQLite database file (default ``.prmark.db``)."""

    def __init__(self, db_path: str = ".prmark.db"):
        self._conn = sqlite3.connect(db_path)
        self._conn.row_factory = sqlite3.Row
        self._conn.executescript(_SCHEMA)
        self._conn.commit()

    def save(self, record: PassRecord) -> None:
        annotations_json = json.dumps(
            [{name: getattr(a, name) for name in _ANNOTATION_FIELDS} for a in record.annotations]
        )
        try:
            self._conn.execute(
                """
                INSERT INTO passes
                  (repo, pr_number, pr_title, reviewer_model, head_sha,
                   reviewed_at, mode, verdict, published, annotations_json)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    record.repo,
                    record.pr_number,
                    record.pr_title,
                    record.reviewer_model,
                    record.head_sha,
                    record.reviewed_at,
                    record.mode,
                    record.verdict,
                    int(record.published),
                    annotations_json,
                ),
            )
            self._conn.commit()
        except sqlite3.Error as e:
            # The review is already on GitHub; losing history must not fail the run.
            logger.warning("SQLiteStore.save() failed: %s", e)

    def list_passes(self, repo: str, pr_number: int | None = None) -> list[PassRecord]:
        query = "SELECT * FROM passes WHERE repo=?"
        params: tuple = (repo,)
        if pr_number is not None:
            query += " AND pr_number=?"
            params += (pr_number,)
        try:
            rows = self._conn.execute(query + " ORDER BY reviewed_at, id", params).fetchall()
        except sqlite3.Error as e:
            logger.warning("SQLiteStore.list_passes() failed: %s", e)
            return []
        return [self._row_to_record(r) for r in rows]

    def close(self) -> None:
        self._conn.close()

    @staticmethod
    def _row_to_record(row: sqlite3.Row) -> PassRecord:
        annotations = [
            AnnotationRecord(
                file=a.get("file", ""),
                line=a.get("line", 0),
                side=a.get("side", "revised"),
                status=a.get("status", ""),
                body=a.get("body", ""),
                stage=a.get("stage", ""),
                error=a.get("error", ""),
            )
            for a in json.loads(row["annotations_json"] or "[]")
        ]
        return PassRecord(
            repo=row["repo"],
            pr_number=row["pr_number"],
            pr_title=row["pr_title"] or "",
            reviewer_model=row["reviewer_model"] or "",
            head_sha=row["head_sha"] or "",
            reviewed_at=row["reviewed_at"] or "",
            mode=row["mode"] or "",
            verdict=row["verdict"] or "",
            published=bool(row["published"]),
            annotations=annotations,
        )

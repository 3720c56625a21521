"""Review pass history data models.

Decoupled from prmark_core so the store layer can be used independently
and prmark_core has no knowledge of persistence concerns.
"""

from __future__ import annotations

from dataclasses import dataclass, field

STATUS_PLACED = "placed"
STATUS_FAILED = "failed"
STATUS_POSTED = "posted"  # part of a single summary comment
STATUS_DRAFT = "draft"  # shadow run, never published


@dataclass
class AnnotationRecord:
    """One finding and what happened to it during the pass."""

    file: str
    line: int
    side: str  # "original" | "revised"
    status: str
    body: str
    stage: str = ""  # failing stage when status == "failed"
    error: str = ""


@dataclass
class PassRecord:
    """One completed review pass over a pull request.

    Created by the CLI layer after run_review() returns a ReviewSummary.
    """

    repo: str
    pr_number: int
    pr_title: str
    reviewer_model: str
    head_sha: str
    reviewed_at: str  # ISO-8601 UTC timestamp
    mode: str  # "comment" | "inline" | "shadow"
    verdict: str  # "approve" | "approve_with_suggestions" | "request_changes"
    published: bool
    annotations: list[AnnotationRecord] = field(default_factory=list)

    @property
    def placed(self) -> int:
        return sum(1 for a in self.annotations if a.status == STATUS_PLACED)

    @property
    def failed(self) -> list[AnnotationRecord]:
        return [a for a in self.annotations if a.status == STATUS_FAILED]

"""Value types shared by the annotation engine and the review workflow.

Everything here is plain data. The only mutable object is Session, which is
owned by a single review pass and threaded explicitly through every
placement and finalization call instead of being inferred from the page.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum


class Side(str, Enum):
    """Which half of the diff a line number refers to."""

    ORIGINAL = "original"  # left / deleted lines
    REVISED = "revised"  # right / added and context lines


class Verdict(str, Enum):
    APPROVE = "approve"
    APPROVE_WITH_SUGGESTIONS = "approve_with_suggestions"
    REQUEST_CHANGES = "request_changes"


class SessionState(str, Enum):
    CLOSED = "closed"
    OPEN = "open"


@dataclass(frozen=True)
class DiffTarget:
    """One annotatable position in a rendered diff."""

    file: str
    line: int
    side: Side = Side.REVISED

    def __post_init__(self):
        if not self.file:
            raise ValueError("DiffTarget.file must be a non-empty path")
        if isinstance(self.line, bool) or not isinstance(self.line, int) or self.line < 1:
            raise ValueError(f"DiffTarget.line must be a positive integer, got {self.line!r}")
        # Accept plain strings ("original" / "revised") from parsed model output.
        object.__setattr__(self, "side", Side(self.side))

    def __str__(self) -> str:
        return f"{self.file}:{self.line} ({self.side.value})"


@dataclass(frozen=True)
class Annotation:
    target: DiffTarget
    body: str


@dataclass(frozen=True)
class SubmissionRecord:
    verdict: Verdict
    summary: str


@dataclass
class Session:
    """Draft review state for exactly one pull request.

    ``pr`` is bound on first use; a session must never be carried over to a
    different pull request.
    """

    state: SessionState = SessionState.CLOSED
    placed_count: int = 0
    pr: str | None = None

    @property
    def is_open(self) -> bool:
        return self.state is SessionState.OPEN

    def bind(self, pr: str) -> None:
        if self.pr is not None and self.pr != pr:
            raise ValueError(f"Session belongs to {self.pr}; refusing to reuse it for {pr}")
        self.pr = pr

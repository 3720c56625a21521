"""Pending-review accumulation and final submission.

State machine (Session.state):

    Closed --place--> Open      first comment uses "Start a review"
    Open   --place--> Open      later comments use "Add review comment"
    Open   --finalize--> Closed submit the whole review once

``place`` is all-or-nothing from the caller's side: Session is only touched
after the host UI confirms the comment is pending. A failure at any stage
leaves the session exactly as it was and names the failing target.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from prmark_core.annotate.activator import AffordanceActivator
from prmark_core.annotate.editor import CommentEditor
from prmark_core.annotate.locator import LineLocator
from prmark_core.errors import STAGE_FINALIZE, AnnotationError, ConfirmationTimeout, NoOpenSession
from prmark_core.models import SessionState
from prmark_core.utils.polling import DEFAULT_INTERVAL, DEFAULT_TIMEOUT, poll_until

if TYPE_CHECKING:
    from prmark_core.annotate.base import DiffView
    from prmark_core.models import Annotation, Session, SubmissionRecord

logger = logging.getLogger(__name__)

ON_ERROR_SKIP = "skip"
ON_ERROR_ABORT = "abort"


class SessionAccumulator:
    def __init__(self, view: DiffView, timeout: float = DEFAULT_TIMEOUT, interval: float = DEFAULT_INTERVAL):
        self.view = view
        self.timeout = timeout
        self.interval = interval
        self.locator = LineLocator(view, timeout, interval)
        self.activator = AffordanceActivator(view, timeout, interval)
        self.editor = CommentEditor(view, timeout, interval)

    def place(self, session: Session, annotation: Annotation) -> None:
        """Place one annotation as a pending review comment.

        Not safe to retry blindly after a failure: text may already sit in an
        open input. The activator refuses to reuse a non-empty input, which is
        the re-verification a retry needs.
        """
        target = annotation.target
        start_review = session.state is SessionState.CLOSED

        try:
            anchor = self.locator.locate(target)
            surface = self.activator.activate(target, anchor)
            self.editor.write(target, surface, annotation.body)
            self.view.submit_annotation(target, surface, start_review=start_review)
        except AnnotationError as e:
            # View calls that only see an element handle cannot name the target.
            if e.target is None:
                raise e.with_target(target) from e
            raise

        if not poll_until(lambda: self.view.is_pending(target, annotation.body), self.timeout, self.interval):
            raise ConfirmationTimeout(f"comment was not shown as pending within {self.timeout:g}s", target)

        session.state = SessionState.OPEN
        session.placed_count += 1
        logger.debug("Placed annotation %d on %s", session.placed_count, target)


class SessionFinalizer:
    def __init__(self, view: DiffView, timeout: float = DEFAULT_TIMEOUT, interval: float = DEFAULT_INTERVAL):
        self.view = view
        self.timeout = timeout
        self.interval = interval

    def finalize(self, session: Session, record: SubmissionRecord) -> None:
        """Submit every pending annotation as one review, then close the session.

        On failure the session stays Open: the pending comments are still on
        the page and can be submitted by hand.
        """
        if session.state is not SessionState.OPEN:
            raise NoOpenSession("there is no open review session to submit")

        self.view.submit_session(record.verdict, record.summary)

        if not poll_until(self.view.is_session_submitted, self.timeout, self.interval):
            raise ConfirmationTimeout(
                f"review submission was not confirmed within {self.timeout:g}s",
                stage=STAGE_FINALIZE,
            )

        session.state = SessionState.CLOSED
        logger.debug("Submitted review with %d annotation(s) as %s", session.placed_count, record.verdict.value)


@dataclass
class PlacementReport:
    placed: list[Annotation] = field(default_factory=list)
    failed: list[tuple[Annotation, AnnotationError]] = field(default_factory=list)

    @property
    def skipped(self) -> int:
        return len(self.failed)


def place_all(
    accumulator: SessionAccumulator,
    session: Session,
    annotations: list[Annotation],
    on_error: str = ON_ERROR_SKIP,
    on_result=None,
) -> PlacementReport:
    """Place annotations one by one, in order.

    Failures never roll back earlier placements. With ``on_error="skip"`` the
    failed annotation is recorded and the loop moves on; with ``"abort"`` it
    stops at the first failure. ``on_result(annotation, error_or_None)`` is
    called after each attempt.
    """
    if on_error not in (ON_ERROR_SKIP, ON_ERROR_ABORT):
        raise ValueError(f"Unknown on_error policy: {on_error!r}. Choose 'skip' or 'abort'.")

    report = PlacementReport()
    for annotation in annotations:
        try:
            accumulator.place(session, annotation)
        except AnnotationError as e:
            logger.warning("Could not place annotation: %s", e)
            report.failed.append((annotation, e))
            if on_result is not None:
                on_result(annotation, e)
            if on_error == ON_ERROR_ABORT:
                break
            continue
        report.placed.append(annotation)
        if on_result is not None:
            on_result(annotation, None)
    return report

"""Failures raised by the diff annotation engine.

Every error carries the DiffTarget it concerns (when there is one) and the
stage that failed, so the message alone is enough for a human to place that
single annotation by hand.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from prmark_core.models import DiffTarget

STAGE_LOCATE = "locate"
STAGE_ACTIVATE = "activate"
STAGE_EDIT = "edit"
STAGE_SUBMIT = "submit"
STAGE_FINALIZE = "finalize"


class AnnotationError(Exception):
    stage: str = ""

    def __init__(self, message: str, target: DiffTarget | None = None, stage: str | None = None):
        self.target = target
        if stage is not None:
            self.stage = stage
        self.reason = message
        super().__init__(self._format(message))

    def _format(self, message: str) -> str:
        if self.target is None:
            return f"[{self.stage}] {message}"
        t = self.target
        return f"[{self.stage}] {t.file} line {t.line} ({t.side.value}): {message}"

    def with_target(self, target: DiffTarget) -> AnnotationError:
        """Return this error bound to ``target``; errors that already name one are returned as is."""
        if self.target is not None:
            return self
        return type(self)(self.reason, target, self.stage)


class TargetNotFound(AnnotationError):
    stage = STAGE_LOCATE


class AffordanceNotFound(AnnotationError):
    stage = STAGE_ACTIVATE


class EditorNotReady(AnnotationError):
    stage = STAGE_EDIT


class ConfirmationTimeout(AnnotationError):
    """A readback poll ran out of time. ``stage`` says which wait expired."""

    stage = STAGE_SUBMIT


class NoOpenSession(AnnotationError):
    stage = STAGE_FINALIZE


class FinalizationFailed(AnnotationError):
    """The review could not be submitted; pending annotations are left in place."""

    stage = STAGE_FINALIZE

"""Abstract boundary between the annotation engine and a rendered diff.

The engine (locator, activator, editor, accumulator, finalizer) only ever
talks to a DiffView. Everything that depends on a particular host UI's
markup or framework internals lives in a concrete subclass, so it can be
replaced without touching the session state machine:

    GitHubDiffView   → Playwright against github.com's "Files changed" tab
    (tests)          → an in-memory fake

Anchor and surface handles are opaque to the engine; it only passes them
back to the view that produced them.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from prmark_core.models import DiffTarget, Verdict


class ActivationHandler(ABC):
    """A framework-internal "press" entry point found behind a hover-only control."""

    #: Whether a secondary activation (e.g. a synthesized Enter key) is needed
    #: before the input surface fully opens.
    needs_confirm: bool = False

    @abstractmethod
    def press(self) -> None:
        """Invoke the handler with a synthesized minimal event."""

    def confirm(self) -> None:
        """Second activation step. Only called when ``needs_confirm`` is set."""


class DiffView(ABC):
    # ------------------------------------------------------------------ #
    # Locating                                                             #
    # ------------------------------------------------------------------ #

    @abstractmethod
    def find_anchors(self, target: DiffTarget) -> list[Any]:
        """Return every anchor element currently rendered for ``target``."""

    @abstractmethod
    def is_collapsed(self, file: str) -> bool:
        """True when the file's diff is hidden behind a "load diff" placeholder."""

    @abstractmethod
    def expand_file(self, file: str) -> None:
        """Trigger expansion of a collapsed file. Rendering may finish later."""

    @abstractmethod
    def scroll_into_view(self, anchor: Any) -> None: ...

    # ------------------------------------------------------------------ #
    # Activating & editing                                                 #
    # ------------------------------------------------------------------ #

    @abstractmethod
    def find_activation_handler(self, anchor: Any) -> ActivationHandler | None:
        """Walk outward from ``anchor`` to the first node exposing a press handler."""

    @abstractmethod
    def find_surface(self, target: DiffTarget) -> Any | None:
        """Return the open comment input anchored to ``target``, if any."""

    @abstractmethod
    def read_content(self, surface: Any) -> str: ...

    @abstractmethod
    def set_content(self, surface: Any, body: str) -> None:
        """Replace the surface's content through the UI's own state-update path."""

    # ------------------------------------------------------------------ #
    # Submitting                                                           #
    # ------------------------------------------------------------------ #

    @abstractmethod
    def submit_annotation(self, target: DiffTarget, surface: Any, start_review: bool) -> None:
        """Press "Start a review" (``start_review``) or "Add review comment"."""

    @abstractmethod
    def is_pending(self, target: DiffTarget, body: str) -> bool:
        """True once a pending comment with ``body`` is shown on ``target``."""

    @abstractmethod
    def submit_session(self, verdict: Verdict, summary: str) -> None:
        """Submit the pending review with an overall verdict and summary."""

    @abstractmethod
    def is_session_submitted(self) -> bool: ...

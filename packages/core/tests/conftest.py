"""Shared fixtures: an in-memory DiffView standing in for a rendered GitHub diff."""

from __future__ import annotations

import pytest

from prmark_core.annotate.base import ActivationHandler, DiffView
from prmark_core.errors import FinalizationFailed
from prmark_core.models import DiffTarget, Side


class FakeSurface:
    def __init__(self, content: str = ""):
        self.content = content


class FakeHandler(ActivationHandler):
    def __init__(self, view: FakeDiffView, target: DiffTarget):
        self.view = view
        self.target = target
        self.needs_confirm = target in view.needs_confirm

    def press(self) -> None:
        self.view.presses.append(self.target)
        if self.target in self.view.inert or self.needs_confirm:
            return
        self.view._open_surface(self.target)

    def confirm(self) -> None:
        self.view.confirms.append(self.target)
        self.view._open_surface(self.target)


class FakeDiffView(DiffView):
    """A rendered diff held in memory.

    ``lines`` lists the (file, line, side) cells that are rendered. Knobs
    model the host UI's failure modes: missing handlers, handlers that open
    nothing, inputs that ignore writes, comments that never go pending.
    """

    def __init__(self, lines=(), collapsed=(), expand_polls: int = 0):
        self.lines: list[DiffTarget] = [t if isinstance(t, DiffTarget) else DiffTarget(*t) for t in lines]
        self.collapsed: set[str] = set(collapsed)
        self.expand_polls = expand_polls
        self._pending_expansions: dict[str, int] = {}

        self.no_handler: set[DiffTarget] = set()
        self.inert: set[DiffTarget] = set()
        self.needs_confirm: set[DiffTarget] = set()
        self.ignores_input: set[DiffTarget] = set()
        self.never_pending: set[DiffTarget] = set()
        self.prefilled: dict[DiffTarget, str] = {}
        self.fail_submit_session = False
        self.session_never_confirms = False

        self.surfaces: dict[DiffTarget, FakeSurface] = {}
        self.surface_targets: dict[int, DiffTarget] = {}
        self.pending: list[tuple[DiffTarget, str]] = []
        self.submit_calls: list[tuple[DiffTarget, bool]] = []
        self.presses: list[DiffTarget] = []
        self.confirms: list[DiffTarget] = []
        self.expanded: list[str] = []
        self.scrolled: list = []
        self.set_content_calls = 0
        self.submitted_sessions: list[tuple] = []
        self.opened: list[tuple[str, int]] = []

    # helpers
    def _open_surface(self, target: DiffTarget) -> None:
        surface = FakeSurface(self.prefilled.get(target, ""))
        self.surfaces[target] = surface
        self.surface_targets[id(surface)] = target

    def open_pull(self, repo: str, pr_number: int) -> None:
        self.opened.append((repo, pr_number))

    # DiffView
    def find_anchors(self, target):
        if target.file in self.collapsed:
            return []
        remaining = self._pending_expansions.get(target.file, 0)
        if remaining:
            self._pending_expansions[target.file] = remaining - 1
            return []
        return [("anchor", t) for t in self.lines if t == target]

    def is_collapsed(self, file):
        return file in self.collapsed

    def expand_file(self, file):
        self.expanded.append(file)
        self.collapsed.discard(file)
        self._pending_expansions[file] = self.expand_polls

    def scroll_into_view(self, anchor):
        self.scrolled.append(anchor)

    def find_activation_handler(self, anchor):
        target = anchor[1]
        if target in self.no_handler:
            return None
        return FakeHandler(self, target)

    def find_surface(self, target):
        return self.surfaces.get(target)

    def read_content(self, surface):
        return surface.content

    def set_content(self, surface, body):
        self.set_content_calls += 1
        if self.surface_targets.get(id(surface)) in self.ignores_input:
            return
        surface.content = body

    def submit_annotation(self, target, surface, start_review):
        self.submit_calls.append((target, start_review))
        self.surfaces.pop(target, None)
        if target not in self.never_pending:
            self.pending.append((target, surface.content))

    def is_pending(self, target, body):
        return (target, body) in self.pending

    def submit_session(self, verdict, summary):
        if self.fail_submit_session:
            raise FinalizationFailed('"Submit review" button not found')
        self.submitted_sessions.append((verdict, summary, list(self.pending)))

    def is_session_submitted(self):
        return bool(self.submitted_sessions) and not self.session_never_confirms


TARGET_A = DiffTarget("src/app.py", 42, Side.REVISED)
TARGET_B = DiffTarget("src/app.py", 50, Side.REVISED)
TARGET_C = DiffTarget("src/util.py", 7, Side.ORIGINAL)


@pytest.fixture
def view():
    return FakeDiffView(lines=[TARGET_A, TARGET_B, TARGET_C])

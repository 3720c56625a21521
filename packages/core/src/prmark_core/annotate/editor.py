from __future__ import annotations

from typing import TYPE_CHECKING, Any

from prmark_core.errors import EditorNotReady
from prmark_core.utils.polling import DEFAULT_INTERVAL, DEFAULT_TIMEOUT, poll_until

if TYPE_CHECKING:
    from prmark_core.annotate.base import DiffView
    from prmark_core.models import DiffTarget


class CommentEditor:
    """Write multi-line text into an open comment input and confirm it registered."""

    def __init__(self, view: DiffView, timeout: float = DEFAULT_TIMEOUT, interval: float = DEFAULT_INTERVAL):
        self.view = view
        self.timeout = timeout
        self.interval = interval

    def write(self, target: DiffTarget, surface: Any, body: str) -> None:
        if surface is None:
            raise EditorNotReady("no open comment input for this target", target)

        # set_content replaces rather than appends, so repeating it is safe.
        self.view.set_content(surface, body)

        if not poll_until(lambda: self.view.read_content(surface) == body, self.timeout, self.interval):
            raise EditorNotReady("comment input did not take the new text", target)

"""Open the hover-only "add comment" control on a diff line.

Host UIs like GitHub only reveal the per-line "+" button on pointer hover and
wire it through the framework's own event delegation, so a synthetic DOM
click is unreliable. The view instead hands back the framework's internal
press handler for the nearest ancestor that has one; we invoke it and then
verify by readback that an empty input surface actually opened.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

from prmark_core.errors import AffordanceNotFound, EditorNotReady
from prmark_core.utils.polling import DEFAULT_INTERVAL, DEFAULT_TIMEOUT, poll_until

if TYPE_CHECKING:
    from prmark_core.annotate.base import DiffView
    from prmark_core.models import DiffTarget

logger = logging.getLogger(__name__)


class AffordanceActivator:
    def __init__(self, view: DiffView, timeout: float = DEFAULT_TIMEOUT, interval: float = DEFAULT_INTERVAL):
        self.view = view
        self.timeout = timeout
        self.interval = interval

    def activate(self, target: DiffTarget, anchor: Any) -> Any:
        """Open the comment input for ``target`` and return it, empty."""
        handler = self.view.find_activation_handler(anchor)
        if handler is None:
            # Usually means the host markup changed. Not worth retrying.
            raise AffordanceNotFound("no element in the anchor's component chain exposes a press handler", target)

        handler.press()
        if handler.needs_confirm:
            handler.confirm()

        surface = poll_until(lambda: self.view.find_surface(target), self.timeout, self.interval)
        if surface is None:
            raise AffordanceNotFound(
                f"press handler ran but no comment input opened within {self.timeout:g}s",
                target,
            )

        existing = self.view.read_content(surface)
        if existing:
            # Leftover text from an earlier partial attempt; writing now would
            # risk a duplicate.
            raise EditorNotReady(f"comment input is not empty ({len(existing)} chars already present)", target)

        logger.debug("Opened comment input for %s", target)
        return surface

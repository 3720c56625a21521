from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

from prmark_core.errors import TargetNotFound
from prmark_core.utils.polling import DEFAULT_INTERVAL, DEFAULT_TIMEOUT, poll_until

if TYPE_CHECKING:
    from prmark_core.annotate.base import DiffView
    from prmark_core.models import DiffTarget

logger = logging.getLogger(__name__)


class LineLocator:
    """Resolve a DiffTarget to exactly one rendered anchor element."""

    def __init__(self, view: DiffView, timeout: float = DEFAULT_TIMEOUT, interval: float = DEFAULT_INTERVAL):
        self.view = view
        self.timeout = timeout
        self.interval = interval

    def locate(self, target: DiffTarget) -> Any:
        anchors = self.view.find_anchors(target)

        if not anchors and self.view.is_collapsed(target.file):
            logger.debug("Expanding collapsed diff for %s", target.file)
            self.view.expand_file(target.file)
            # Expansion renders asynchronously.
            anchors = poll_until(lambda: self.view.find_anchors(target), self.timeout, self.interval) or []

        if not anchors:
            raise TargetNotFound("no rendered diff line matches this target", target)
        if len(anchors) > 1:
            raise TargetNotFound(f"{len(anchors)} diff lines match this target; expected exactly one", target)

        anchor = anchors[0]
        # The activator needs settled layout around the line.
        self.view.scroll_into_view(anchor)
        return anchor

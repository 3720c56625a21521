"""Abstract store interface.

The CLI depends on BaseStore, not on a concrete backend, so backends are
swappable without touching CLI code.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from prmark_store.models import PassRecord


class BaseStore(ABC):
    """Pluggable persistence layer for review pass history."""

    @abstractmethod
    def save(self, record: PassRecord) -> None:
        """Persist a completed review pass."""

    @abstractmethod
    def list_passes(self, repo: str, pr_number: int | None = None) -> list[PassRecord]:
        """Return passes for a repo, oldest first, optionally filtered by PR.

        Returns an empty list if none exist. Never raises.
        """

    def close(self) -> None:
        """Release any resources held by the store. Default is a no-op."""

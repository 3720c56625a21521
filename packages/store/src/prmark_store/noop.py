"""No-op store, the default when no store is configured."""

from __future__ import annotations

from typing import TYPE_CHECKING

from prmark_store.base import BaseStore

if TYPE_CHECKING:
    from prmark_store.models import PassRecord


class NoOpStore(BaseStore):
    """Discards every record. Set ``store: sqlite`` in .prmark.yml to keep history."""

    def save(self, record: PassRecord) -> None:
        pass

    def list_passes(self, repo: str, pr_number: int | None = None) -> list[PassRecord]:
        return []

from __future__ import annotations

from prmark_core.models import Side


def _hunk_starts(header: str) -> tuple[int, int] | None:
    """Parse ``@@ -a,b +c,d @@`` into (a, c)."""
    try:
        old_range, new_range = header.split(" ")[1:3]
        return int(old_range[1:].split(",")[0]), int(new_range[1:].split(",")[0])
    except (IndexError, ValueError):
        return None


def annotatable_lines(patch_text: str) -> dict[tuple[Side, int], str]:
    """
    Map every (side, line number) the diff view can annotate to its source text.

    Added and context lines are addressed on the revised side by new-file line
    number. Removed lines are addressed on the original side by old-file line
    number. Context lines are also reachable from the original side, matching
    what the split view renders.
    """
    lines: dict[tuple[Side, int], str] = {}
    old_line: int | None = None
    new_line: int | None = None

    for raw in patch_text.splitlines():
        if raw.startswith("@@"):
            starts = _hunk_starts(raw)
            old_line, new_line = starts if starts else (None, None)
            continue
        if old_line is None or new_line is None:
            continue
        if raw.startswith("\\"):
            continue  # "\ No newline at end of file"

        if raw.startswith("+") and not raw.startswith("+++"):
            lines[(Side.REVISED, new_line)] = raw[1:]
            new_line += 1
        elif raw.startswith("-") and not raw.startswith("---"):
            lines[(Side.ORIGINAL, old_line)] = raw[1:]
            old_line += 1
        else:
            text = raw[1:] if raw.startswith(" ") else raw
            lines[(Side.REVISED, new_line)] = text
            lines[(Side.ORIGINAL, old_line)] = text
            new_line += 1
            old_line += 1

    return lines

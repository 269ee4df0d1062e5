from __future__ import annotations

import difflib


def compute_diff(old: str, new: str, *, context_lines: int = 3) -> str:
    """Line-based unified diff of two versions. Advisory only."""
    lines = difflib.unified_diff(
        old.splitlines(keepends=True),
        new.splitlines(keepends=True),
        fromfile="parent",
        tofile="current",
        n=context_lines,
    )
    return "".join(lines)

"""Diff utilities for configuration documents."""

from __future__ import annotations

import difflib
from dataclasses import dataclass, field


@dataclass
class DocumentDiff:
    """Line-level difference between the live and a candidate document."""

    path: str
    lines: list[str] = field(default_factory=list)

    def has_changes(self) -> bool:
        """Return True when the candidate differs from the live text."""
        return bool(self.lines)

    def added(self) -> int:
        """Return the number of added lines."""
        return sum(1 for line in self.lines if line.startswith("+") and not line.startswith("+++"))

    def removed(self) -> int:
        """Return the number of removed lines."""
        return sum(1 for line in self.lines if line.startswith("-") and not line.startswith("---"))

    def text(self) -> str:
        return "\n".join(self.lines)


def diff_documents(live: str, candidate: str, path: str = "named.conf") -> DocumentDiff:
    """Produce a unified diff between ``live`` and ``candidate``."""
    lines = difflib.unified_diff(
        live.splitlines(),
        candidate.splitlines(),
        fromfile=f"{path} (live)",
        tofile=f"{path} (candidate)",
        lineterm="",
    )
    return DocumentDiff(path=path, lines=list(lines))

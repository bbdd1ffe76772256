"""Installation summary files.

Each workflow leaves a plain-text record of what it installed, where the
backups went, and which commands help afterwards.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path

from src.utils import fs

logger = logging.getLogger(__name__)


@dataclass
class InstallationSummary:
    """Title, ``key: value`` facts, and titled sections of free lines."""

    title: str
    created: datetime
    facts: list[tuple[str, str]] = field(default_factory=list)
    sections: list[tuple[str, list[str]]] = field(default_factory=list)

    def fact(self, key: str, value: object) -> None:
        self.facts.append((key, "" if value is None else str(value)))

    def section(self, title: str, lines: list[str]) -> None:
        self.sections.append((title, list(lines)))

    def render(self) -> str:
        out = [self.title, "=" * len(self.title), ""]
        out.append(f"Installation Date: {self.created:%Y-%m-%d %H:%M:%S}")
        out += [f"{key}: {value}" for key, value in self.facts]
        for title, lines in self.sections:
            out += ["", f"{title}:"]
            out += [f"  {line}" if line else "" for line in lines]
        return "\n".join(out) + "\n"


def write_summary(path: Path, summary: InstallationSummary) -> Path:
    fs.atomic_write_text(path, summary.render())
    logger.info("Wrote installation summary %s", path)
    return path

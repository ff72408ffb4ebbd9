"""
Stage reporting for terminal output.

Prints a short numbered line per stage instead of log spam.
"""

import sys
import time
from dataclasses import dataclass, field
from typing import TextIO


def format_time(seconds: float | None) -> str:
    """Format seconds as human-readable time."""
    if seconds is None:
        return "--:--"

    if seconds < 60:
        return f"{seconds:.0f}s"
    elif seconds < 3600:
        mins = int(seconds // 60)
        secs = int(seconds % 60)
        return f"{mins}m {secs}s"
    else:
        hours = int(seconds // 3600)
        mins = int((seconds % 3600) // 60)
        return f"{hours}h {mins}m"


def format_size(num_bytes: int) -> str:
    """Format a byte count like ``du -h``."""
    if num_bytes < 1024:
        return f"{num_bytes}B"
    size = float(num_bytes)
    for unit in ("K", "M"):
        size /= 1024
        if size < 1024:
            return f"{size:.1f}{unit}"
    return f"{size / 1024:.1f}G"


@dataclass
class StageReporter:
    """Writes numbered stage lines to a stream (stderr by default).

    Usage:
        reporter = StageReporter(total=3)
        reporter.step(1, "Extracting text")
        reporter.detail("Extracted 1200 bytes")
    """

    total: int = 3
    stream: TextIO | None = None
    start_time: float = field(default_factory=time.time)
    steps: list[str] = field(default_factory=list)

    def _write(self, text: str) -> None:
        out = self.stream or sys.stderr
        out.write(text + "\n")
        out.flush()

    @property
    def elapsed(self) -> float:
        return time.time() - self.start_time

    def step(self, num: int, name: str) -> None:
        """Announce a pipeline stage."""
        self.steps.append(name)
        self._write(f"[{num}/{self.total}] {name}")

    def detail(self, message: str) -> None:
        """Indented line under the current stage."""
        self._write(f"  {message}")

    def done(self, message: str) -> None:
        self._write(f"  ✓ {message}")

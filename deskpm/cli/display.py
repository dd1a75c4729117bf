"""Display utilities for deskpm CLI.

Output modes for plans and package lists:
- columns: aligned table (default, human-friendly)
- flat: one item per line, tab separated (parsable by scripts)
- json: JSON output (programmatic consumption)

JobProgressDisplay renders a Job as a single updating line:
    [########............]  41% Downloading org.example.Editor 2.1
"""

import json
import shutil
import sys
from enum import Enum
from typing import Any, List, Optional, Sequence

from ..core.job import Job
from ..core.models import InstallOperation
from . import colors


class DisplayMode(Enum):
    """Output display mode."""
    COLUMNS = "columns"
    FLAT = "flat"
    JSON = "json"


# Global display settings
_display_mode = DisplayMode.COLUMNS


def init(mode: str = "columns"):
    """Initialize display settings.

    Args:
        mode: Display mode ("columns", "flat", "json")
    """
    global _display_mode
    _display_mode = DisplayMode(mode) if mode else DisplayMode.COLUMNS


def get_mode() -> DisplayMode:
    return _display_mode


def get_terminal_width() -> int:
    """Get terminal width, with fallback to 80 columns."""
    try:
        return shutil.get_terminal_size().columns
    except (OSError, ValueError):
        return 80


def format_table(rows: Sequence[Sequence[str]], indent: int = 2, column_gap: int = 2,
                 mode: Optional[DisplayMode] = None) -> List[str]:
    """Format rows of cells according to display mode.

    Columns mode pads every column to its widest cell; flat mode joins
    cells with tabs; json mode returns one line with a list of lists.
    """
    if not rows:
        return []

    effective_mode = mode if mode is not None else _display_mode
    if effective_mode == DisplayMode.JSON:
        return [json.dumps([list(r) for r in rows], ensure_ascii=False)]
    if effective_mode == DisplayMode.FLAT:
        return ["\t".join(r) for r in rows]

    widths = [0] * max(len(r) for r in rows)
    for row in rows:
        for i, cell in enumerate(row):
            widths[i] = max(widths[i], len(cell))

    prefix = " " * indent
    gap = " " * column_gap
    return [prefix + gap.join(cell.ljust(widths[i]) for i, cell in enumerate(row)).rstrip()
            for row in rows]


def format_operations(ops: List[InstallOperation],
                      mode: Optional[DisplayMode] = None) -> List[str]:
    """Format a plan, one operation per line."""
    effective_mode = mode if mode is not None else _display_mode
    if effective_mode == DisplayMode.JSON:
        return [json.dumps([op.to_dict() for op in ops], ensure_ascii=False)]

    rows = [["install" if op.install else "remove", op.package, str(op.version), op.where]
            for op in ops]
    lines = format_table(rows, mode=effective_mode)
    if effective_mode == DisplayMode.COLUMNS:
        lines = [colors.operation(line, op.install) for line, op in zip(lines, ops)]
    return lines


def print_json(data: Any) -> None:
    """Print data as JSON."""
    print(json.dumps(data, ensure_ascii=False, indent=2))


def format_duration(seconds: float) -> str:
    """Format duration as human-readable string.

    Examples:
        45 -> "45s"
        90 -> "1min 30s"
    """
    if seconds < 60:
        return f"{int(seconds)}s"
    minutes, secs = divmod(int(seconds), 60)
    if secs > 0:
        return f"{minutes}min {secs}s"
    return f"{minutes}min"


class JobProgressDisplay:
    """Single-line progress display for a Job, updated in place."""

    def __init__(self, bar_width: int = 20, stream=None):
        self.bar_width = bar_width
        self.stream = stream or sys.stderr
        self._shown = False

    def render(self, job: Job) -> str:
        filled = int(job.progress * self.bar_width)
        bar = '#' * filled + '.' * (self.bar_width - filled)
        return f"[{bar}] {job.progress * 100:3.0f}% {job.get_full_hint()}"

    def update(self, job: Job):
        line = self.render(job)
        width = get_terminal_width()
        if len(line) > width - 1:
            line = line[:width - 4] + "..."
        self.stream.write(f"\r\033[K{line}")
        self.stream.flush()
        self._shown = True

    def finish(self):
        """Clear the progress line."""
        if self._shown:
            self.stream.write("\r\033[K")
            self.stream.flush()
        self._shown = False

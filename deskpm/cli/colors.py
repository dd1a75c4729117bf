"""Color output support for deskpm CLI.

Color palette:
  - Red: errors and packages being removed
  - Orange: warnings
  - Green: success and packages being installed
"""

import os
import sys

# ANSI color codes
_COLORS = {
    'reset': '\033[0m',
    'bold': '\033[1m',
    'red': '\033[91m',
    'orange': '\033[93m',   # No true orange in ANSI
    'green': '\033[92m',
    'dim': '\033[2m',
}

# Global state
_colors_enabled = True


def init(nocolor: bool = False):
    """Initialize color support.

    Args:
        nocolor: If True, disable colors unconditionally
    """
    global _colors_enabled

    if nocolor or os.environ.get('NO_COLOR'):
        # https://no-color.org/
        _colors_enabled = False
    else:
        _colors_enabled = sys.stdout.isatty()


def _wrap(text: str, color: str) -> str:
    if not _colors_enabled:
        return text
    return f"{_COLORS.get(color, '')}{text}{_COLORS['reset']}"


def error(text: str) -> str:
    return _wrap(text, 'red')


def warning(text: str) -> str:
    return _wrap(text, 'orange')


def success(text: str) -> str:
    return _wrap(text, 'green')


def dim(text: str) -> str:
    return _wrap(text, 'dim')


def bold(text: str) -> str:
    return _wrap(text, 'bold')


def operation(text: str, install: bool) -> str:
    """Green for an install, red for an uninstall."""
    return success(text) if install else error(text)


def count(n: int) -> str:
    return bold(str(n))

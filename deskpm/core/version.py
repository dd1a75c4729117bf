"""
Version numbers and version ranges

Versions are dotted sequences like "1.2.3" or "2.0b". Each component is a
number optionally followed by letters. Comparison is component-wise with
missing trailing components treated as zero, so "1.0" == "1" and
"1.0" < "1.0.1".

Ranges use interval notation:
    [1.0, 2.0)   1.0 <= v < 2.0
    (1.0, 2.0]   1.0 <  v <= 2.0
"""

import re
from dataclasses import dataclass
from functools import total_ordering
from typing import Tuple

# One version component: digits, then an optional alphabetic suffix
COMPONENT_REGEX = re.compile(r'^(\d+)([A-Za-z]*)$')

# "[1.0, 2.0)" style ranges
RANGE_REGEX = re.compile(r'^\s*([\[(])\s*([^,\s]+)\s*,\s*([^\])\s]+)\s*([\])])\s*$')

_ZERO = (0, '')


def _parse_components(text: str) -> Tuple[Tuple[int, str], ...]:
    parts = text.strip().split('.')
    components = []
    for part in parts:
        match = COMPONENT_REGEX.match(part)
        if not match:
            raise ValueError(f"Invalid version number: {text!r}")
        components.append((int(match.group(1)), match.group(2).lower()))
    return tuple(components)


@total_ordering
class Version:
    """Immutable version number."""

    __slots__ = ('_text', '_key')

    def __init__(self, text: str = "1.0"):
        if isinstance(text, Version):
            text = text._text
        parts = _parse_components(str(text))
        key = list(parts)
        while len(key) > 1 and key[-1] == _ZERO:
            key.pop()
        object.__setattr__(self, '_text', str(text).strip())
        object.__setattr__(self, '_key', tuple(key))

    def __setattr__(self, name, value):
        raise AttributeError("Version objects are immutable")

    def __reduce__(self):
        return (Version, (self._text,))

    def __copy__(self):
        return self

    def __deepcopy__(self, memo):
        return self

    @classmethod
    def parse(cls, text: str) -> 'Version':
        """Parse a version string.

        Raises:
            ValueError: If the text is not a valid version
        """
        return cls(text)

    def normalized(self) -> str:
        """Version string without trailing zero components ("1.0" -> "1")."""
        return '.'.join(f"{num}{suffix}" for num, suffix in self._key)

    def compare(self, other: 'Version') -> int:
        """Compare with another version.

        Returns:
            negative if self < other, 0 if equal, positive if self > other
        """
        a, b = self._key, other._key
        for i in range(max(len(a), len(b))):
            x = a[i] if i < len(a) else _ZERO
            y = b[i] if i < len(b) else _ZERO
            if x[0] != y[0]:
                return -1 if x[0] < y[0] else 1
            if x[1] != y[1]:
                # "2" < "2a" < "2b"
                return -1 if x[1] < y[1] else 1
        return 0

    def __eq__(self, other):
        if not isinstance(other, Version):
            return NotImplemented
        return self._key == other._key

    def __lt__(self, other):
        if not isinstance(other, Version):
            return NotImplemented
        return self.compare(other) < 0

    def __hash__(self):
        return hash(self._key)

    def __str__(self):
        return self._text

    def __repr__(self):
        return f"Version({self._text!r})"


@dataclass(frozen=True)
class Dependency:
    """A version range on another package.

    Callers must not construct inverted ranges (min > max).
    """
    package: str
    min: Version
    max: Version
    min_included: bool = True
    max_included: bool = False

    @classmethod
    def parse(cls, package: str, versions: str) -> 'Dependency':
        """Create a dependency from interval notation like "[1.0, 2.0)".

        Raises:
            ValueError: If the range cannot be parsed
        """
        match = RANGE_REGEX.match(versions)
        if not match:
            raise ValueError(f"Invalid version range for {package}: {versions!r}")
        open_br, low, high, close_br = match.groups()
        return cls(
            package=package,
            min=Version(low),
            max=Version(high),
            min_included=open_br == '[',
            max_included=close_br == ']',
        )

    def test(self, version: Version) -> bool:
        """Check whether a version lies inside this range."""
        low = version.compare(self.min)
        if low < 0 or (low == 0 and not self.min_included):
            return False
        high = version.compare(self.max)
        if high > 0 or (high == 0 and not self.max_included):
            return False
        return True

    def range_string(self) -> str:
        """Range in interval notation."""
        return (f"{'[' if self.min_included else '('}{self.min}, "
                f"{self.max}{']' if self.max_included else ')'}")

    def __str__(self):
        return f"{self.package} {self.range_string()}"

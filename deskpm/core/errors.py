"""Error taxonomy shared by planning and execution."""

from enum import Enum


class ErrorKind(Enum):
    """Category of a package management failure."""
    NOT_FOUND = "not-found"                   # Package or version absent from the catalog
    UNSATISFIABLE = "unsatisfiable"           # No candidate satisfies a range / nothing installed
    LOCKED = "locked"                         # Version locked by another in-flight batch
    DIRECTORY_CONFLICT = "directory-conflict"
    DOWNLOAD_FAILURE = "download-failure"
    SCRIPT_FAILURE = "script-failure"
    CANCELLED = "cancelled"
    INVALID = "invalid"                       # Malformed catalog data or arguments


class PackageError(Exception):
    """A failure tagged with its ErrorKind."""

    def __init__(self, kind: ErrorKind, message: str):
        super().__init__(message)
        self.kind = kind
        self.message = message

    def __str__(self):
        return self.message

    def __repr__(self):
        return f"PackageError({self.kind.name}, {self.message!r})"

    def __eq__(self, other):
        if not isinstance(other, PackageError):
            return NotImplemented
        return self.kind == other.kind and self.message == other.message

    def __hash__(self):
        return hash((self.kind, self.message))

"""
Package data model

Catalog data (Package, PackageVersion) is never mutated in place by the
planner: catalogs hand out clones and the planner works on those.

InstallOperation is the hand-off between planning and execution and can
be serialized to JSON:
    [{"package": "org.example.Editor", "version": "2.1", "install": true,
      "where": ""}]
"""

import copy
import json
import re
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Optional
from urllib.parse import urlparse

from .errors import ErrorKind, PackageError
from .version import Dependency, Version

# One segment of a full package name like "org.example.Editor"
NAME_SEGMENT_REGEX = re.compile(r'^[A-Za-z0-9_-]+$')

VALID_DOWNLOAD_SCHEMES = ('http', 'https', 'file')


def validate_full_package_name(name: str) -> str:
    """Validate a full package name.

    Returns:
        Error message, or "" if the name is valid
    """
    if not name:
        return "Empty package name"
    for segment in name.split('.'):
        if not segment:
            return f"Empty segment in package name {name}"
        if not NAME_SEGMENT_REGEX.match(segment):
            return f"Invalid character in package name {name}"
        if segment[0] in '-_' or segment[-1] in '-_':
            return f"Package name segment cannot start or end with - or _: {name}"
    return ""


def get_string_id(package: str, version: Version) -> str:
    """Identity string "package/version" with a normalized version."""
    return f"{package}/{version.normalized()}"


class PackageType(Enum):
    """How a package binary is installed."""
    ZIP = "zip"            # Archive, unpacked into the installation directory
    ONE_FILE = "one-file"  # Single file, copied as is


class HashType(Enum):
    """Hash algorithm for the download."""
    SHA1 = "sha1"
    SHA256 = "sha256"


@dataclass
class Download:
    """Where to get the binary and how to verify it."""
    url: str = ""
    hash_sum: str = ""
    hash_type: HashType = HashType.SHA1

    def is_valid(self) -> bool:
        """True if the URL is absolute and uses a supported scheme."""
        if not self.url:
            return False
        parsed = urlparse(self.url)
        return parsed.scheme in VALID_DOWNLOAD_SCHEMES and bool(parsed.netloc or parsed.path)

    @property
    def filename(self) -> str:
        """Last path segment of the URL."""
        name = urlparse(self.url).path.rstrip('/').rsplit('/', 1)[-1]
        return name or "download"


@dataclass
class ImportantFile:
    """A file that deserves a menu entry."""
    path: str
    title: str = ""


@dataclass
class DetectFile:
    """Detection hint: a file with a known hash identifies this version."""
    path: str
    sha1: str = ""


@dataclass
class Package:
    """A uniquely identified piece of installable software."""
    name: str
    title: str = ""
    url: str = ""
    description: str = ""
    license: str = ""
    icon: str = ""
    categories: List[str] = field(default_factory=list)

    def __post_init__(self):
        if not self.title:
            self.title = self.name

    def get_short_name(self) -> str:
        return self.name.rsplit('.', 1)[-1]

    def clone(self) -> 'Package':
        return copy.deepcopy(self)


@dataclass
class PackageVersion:
    """One version of a package with its dependencies and binary."""
    package: str
    version: Version
    dependencies: List[Dependency] = field(default_factory=list)
    download: Download = field(default_factory=Download)
    type: PackageType = PackageType.ZIP
    important_files: List[ImportantFile] = field(default_factory=list)
    detect_files: List[DetectFile] = field(default_factory=list)
    msi_guid: str = ""

    @property
    def string_id(self) -> str:
        return get_string_id(self.package, self.version)

    def get_short_package_name(self) -> str:
        """Last part of the package name ("org.example.Editor" -> "Editor")."""
        return self.package.rsplit('.', 1)[-1]

    def clone(self) -> 'PackageVersion':
        """Independent copy for planning use."""
        return copy.deepcopy(self)

    def __str__(self):
        return f"{self.package} {self.version}"


def index_of(pvs: List[PackageVersion], pv: PackageVersion) -> int:
    """Find a package version in a list by identity (package + version).

    Returns:
        Index of the first match or -1
    """
    sid = pv.string_id
    for i, candidate in enumerate(pvs):
        if candidate.string_id == sid:
            return i
    return -1


@dataclass
class InstalledPackageVersion:
    """Externally observed fact: this version is installed there."""
    package: str
    version: Version
    directory: str = ""

    @property
    def string_id(self) -> str:
        return get_string_id(self.package, self.version)

    def clone(self) -> 'InstalledPackageVersion':
        return copy.deepcopy(self)


@dataclass
class InstallOperation:
    """One planned install (install=True) or uninstall (install=False).

    An empty `where` lets the executor choose the directory.
    """
    package: str
    version: Version
    install: bool = True
    where: str = ""

    @property
    def string_id(self) -> str:
        return get_string_id(self.package, self.version)

    def key(self) -> tuple:
        return (self.package, self.version, self.install)

    def to_dict(self) -> Dict:
        return {
            'package': self.package,
            'version': str(self.version),
            'install': self.install,
            'where': self.where,
        }

    @classmethod
    def from_dict(cls, d: Dict) -> 'InstallOperation':
        """Operation from its JSON form.

        Raises:
            PackageError: INVALID if a field is missing or has the wrong type
        """
        install = d.get('install', True)
        if not isinstance(install, bool):
            raise PackageError(ErrorKind.INVALID,
                               f"'install' must be true or false, got {install!r}")
        try:
            package = d['package']
            version = Version(d['version'])
        except (KeyError, ValueError) as e:
            raise PackageError(ErrorKind.INVALID, f"Invalid operation {d!r}: {e}") from e
        return cls(
            package=package,
            version=version,
            install=install,
            where=d.get('where', '') or '',
        )

    def __str__(self):
        action = "install" if self.install else "uninstall"
        return f"{action} {self.package}/{self.version}"


def operations_to_json(ops: List[InstallOperation]) -> str:
    return json.dumps([op.to_dict() for op in ops])


def operations_from_json(data: str) -> List[InstallOperation]:
    return [InstallOperation.from_dict(d) for d in json.loads(data)]


def simplify(ops: List[InstallOperation]) -> List[InstallOperation]:
    """Remove duplicate operations and install-then-uninstall pairs.

    An install followed later by an uninstall of the same package version
    cancels out; both are dropped. Repeated operations keep their first
    occurrence.

    Returns:
        New list, order preserved
    """
    result = list(ops)
    i = 0
    while i < len(result):
        op = result[i]
        found = False
        for j in range(i + 1, len(result)):
            other = result[j]
            if (other.package == op.package and other.version == op.version
                    and op.install and not other.install):
                del result[j]
                del result[i]
                found = True
                break
        if not found:
            i += 1

    seen = set()
    unique = []
    for op in result:
        if op.key() in seen:
            continue
        seen.add(op.key())
        unique.append(op)
    return unique

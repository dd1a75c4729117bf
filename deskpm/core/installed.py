"""
Installed package versions

The list of installed package versions is the only state the executor
changes besides the file system. It is kept in the database when one is
given, otherwise in memory (used for dry runs and tests).
"""

import logging
import os
import threading
from pathlib import Path
from typing import Dict, List, Optional

from .models import InstalledPackageVersion
from .version import Version

logger = logging.getLogger(__name__)


def normalize_path(path: str) -> str:
    return os.path.normcase(os.path.normpath(os.path.abspath(path)))


def is_under(path: str, directory: str) -> bool:
    """True if path is directory itself or nested inside it."""
    p = normalize_path(path)
    d = normalize_path(directory)
    return p == d or p.startswith(d.rstrip(os.sep) + os.sep)


class InstalledPackages:
    """Installed-state provider."""

    def __init__(self, db=None):
        """Initialize provider.

        Args:
            db: PackageDatabase for persistent state, or None for memory only
        """
        self.db = db
        self._lock = threading.Lock()
        self._memory: Dict[str, InstalledPackageVersion] = {}

    def get_all(self) -> List[InstalledPackageVersion]:
        """All installed package versions (copies)."""
        if self.db is not None:
            return self.db.list_installed()
        with self._lock:
            return [ipv.clone() for ipv in sorted(self._memory.values(),
                                                  key=lambda i: (i.package, i.version))]

    def get_by_package(self, package: str) -> List[InstalledPackageVersion]:
        if self.db is not None:
            return self.db.list_installed_for(package)
        return [ipv for ipv in self.get_all() if ipv.package == package]

    def find(self, package: str, version: Version) -> Optional[InstalledPackageVersion]:
        for ipv in self.get_by_package(package):
            if ipv.version == version:
                return ipv
        return None

    def is_installed(self, package: str, version: Version) -> bool:
        return self.find(package, version) is not None

    def get_newest_installed(self, package: str) -> Optional[InstalledPackageVersion]:
        """Highest installed version of a package, or None."""
        res = None
        for ipv in self.get_by_package(package):
            if res is None or ipv.version > res.version:
                res = ipv
        return res

    def find_owner(self, directory: str) -> Optional[InstalledPackageVersion]:
        """Installed package version whose directory contains the given path."""
        if not directory:
            return None
        for ipv in self.get_all():
            if ipv.directory and is_under(directory, ipv.directory):
                return ipv
        return None

    def set_installed(self, package: str, version: Version, directory: str):
        """Record a package version as installed in a directory."""
        directory = str(Path(directory))
        logger.debug(f"Marking {package} {version} as installed in {directory}")
        if self.db is not None:
            self.db.add_installed(package, version, directory)
            return
        with self._lock:
            ipv = InstalledPackageVersion(package=package, version=version, directory=directory)
            self._memory[ipv.string_id] = ipv

    def set_uninstalled(self, package: str, version: Version):
        """Forget an installed package version. No-op if absent."""
        logger.debug(f"Marking {package} {version} as not installed")
        if self.db is not None:
            self.db.remove_installed(package, version)
            return
        with self._lock:
            self._memory.pop(InstalledPackageVersion(package, version).string_id, None)

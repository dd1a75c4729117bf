"""Installed package versions database operations."""

import time
from typing import List

from ..models import InstalledPackageVersion
from ..version import Version


class InstalledMixin:
    """Mixin providing the installed package version records.

    Requires:
        - self.conn: sqlite3.Connection
        - self._lock: threading.RLock for thread safety
    """

    def add_installed(self, package: str, version: Version, directory: str):
        """Record (or move) an installed package version."""
        with self._lock:
            self.conn.execute("""
                INSERT OR REPLACE INTO installed
                (package, version, version_key, directory, installed_timestamp)
                VALUES (?, ?, ?, ?, ?)
            """, (package, str(version), version.normalized(), directory, int(time.time())))
            self.conn.commit()

    def remove_installed(self, package: str, version: Version):
        """Forget an installed package version. No-op if not recorded."""
        with self._lock:
            self.conn.execute(
                "DELETE FROM installed WHERE package = ? AND version_key = ?",
                (package, version.normalized())
            )
            self.conn.commit()

    def list_installed(self) -> List[InstalledPackageVersion]:
        """All installed package versions, sorted by package name."""
        with self._lock:
            rows = self.conn.execute(
                "SELECT package, version, directory FROM installed ORDER BY package"
            ).fetchall()
        return [
            InstalledPackageVersion(package=row['package'], version=Version(row['version']),
                                    directory=row['directory'])
            for row in rows
        ]

    def list_installed_for(self, package: str) -> List[InstalledPackageVersion]:
        """Installed versions of one package."""
        with self._lock:
            rows = self.conn.execute(
                "SELECT package, version, directory FROM installed WHERE package = ?",
                (package,)
            ).fetchall()
        return [
            InstalledPackageVersion(package=row['package'], version=Version(row['version']),
                                    directory=row['directory'])
            for row in rows
        ]

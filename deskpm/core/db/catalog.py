"""Package catalog database operations."""

import json
import time
from typing import Dict, List, Optional

from ..models import (
    DetectFile, Download, HashType, ImportantFile, Package, PackageType,
    PackageVersion,
)
from ..version import Dependency, Version


def package_version_to_json(pv: PackageVersion) -> str:
    """Serialize a package version (everything but its identity columns)."""
    return json.dumps({
        'type': pv.type.value,
        'download': {
            'url': pv.download.url,
            'hash_sum': pv.download.hash_sum,
            'hash_type': pv.download.hash_type.value,
        },
        'dependencies': [
            {
                'package': d.package,
                'min': str(d.min),
                'max': str(d.max),
                'min_included': d.min_included,
                'max_included': d.max_included,
            }
            for d in pv.dependencies
        ],
        'important_files': [{'path': f.path, 'title': f.title} for f in pv.important_files],
        'detect_files': [{'path': f.path, 'sha1': f.sha1} for f in pv.detect_files],
        'msi_guid': pv.msi_guid,
    })


def package_version_from_row(row) -> PackageVersion:
    d = json.loads(row['data'])
    dl = d.get('download', {})
    return PackageVersion(
        package=row['package'],
        version=Version(row['version']),
        type=PackageType(d.get('type', 'zip')),
        download=Download(
            url=dl.get('url', ''),
            hash_sum=dl.get('hash_sum', ''),
            hash_type=HashType(dl.get('hash_type', 'sha1')),
        ),
        dependencies=[
            Dependency(
                package=dep['package'],
                min=Version(dep['min']),
                max=Version(dep['max']),
                min_included=dep['min_included'],
                max_included=dep['max_included'],
            )
            for dep in d.get('dependencies', [])
        ],
        important_files=[ImportantFile(**f) for f in d.get('important_files', [])],
        detect_files=[DetectFile(**f) for f in d.get('detect_files', [])],
        msi_guid=d.get('msi_guid', ''),
    )


def _package_from_row(row) -> Package:
    return Package(
        name=row['name'],
        title=row['title'] or '',
        url=row['url'] or '',
        description=row['description'] or '',
        license=row['license'] or '',
        icon=row['icon'] or '',
        categories=json.loads(row['categories'] or '[]'),
    )


class CatalogMixin:
    """Mixin providing package and package version storage and queries.

    Requires:
        - self.conn: sqlite3.Connection
        - self._lock: threading.RLock for thread safety
    """

    def save_package(self, package: Package, replace: bool = True):
        """Insert or update a package.

        Args:
            package: Package to store
            replace: What to do if the package exists: True = replace,
                False = keep the stored one
        """
        verb = "INSERT OR REPLACE" if replace else "INSERT OR IGNORE"
        with self._lock:
            self.conn.execute(f"""
                {verb} INTO packages
                (name, short_name, title, url, description, license, icon,
                 categories, added_timestamp)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
            """, (package.name, package.get_short_name(), package.title,
                  package.url, package.description, package.license,
                  package.icon, json.dumps(package.categories), int(time.time())))
            self.conn.commit()

    def save_package_version(self, pv: PackageVersion, replace: bool = True):
        """Insert or update a package version."""
        verb = "INSERT OR REPLACE" if replace else "INSERT OR IGNORE"
        with self._lock:
            self.conn.execute(f"""
                {verb} INTO package_versions
                (package, version, version_key, data, added_timestamp)
                VALUES (?, ?, ?, ?, ?)
            """, (pv.package, str(pv.version), pv.version.normalized(),
                  package_version_to_json(pv), int(time.time())))
            self.conn.commit()

    def save_repository(self, repository, replace: bool = True) -> int:
        """Import every package and package version of a Repository.

        Returns:
            Number of package versions stored
        """
        for package in repository.packages:
            self.save_package(package, replace)
        for pv in repository.package_versions:
            self.save_package_version(pv, replace)
        return len(repository.package_versions)

    def clear_catalog(self):
        """Remove all packages and versions (installed state is kept)."""
        with self._lock:
            self.conn.execute("DELETE FROM package_versions")
            self.conn.execute("DELETE FROM packages")
            self.conn.commit()

    def find_package(self, name: str) -> Optional[Package]:
        with self._lock:
            row = self.conn.execute(
                "SELECT * FROM packages WHERE name = ?", (name,)
            ).fetchone()
        return _package_from_row(row) if row else None

    def find_package_versions(self, package: str) -> List[PackageVersion]:
        with self._lock:
            rows = self.conn.execute(
                "SELECT * FROM package_versions WHERE package = ?", (package,)
            ).fetchall()
        pvs = [package_version_from_row(row) for row in rows]
        pvs.sort(key=lambda pv: pv.version)
        return pvs

    def find_package_version(self, package: str, version: Version) -> Optional[PackageVersion]:
        with self._lock:
            row = self.conn.execute(
                "SELECT * FROM package_versions WHERE package = ? AND version_key = ?",
                (package, version.normalized())
            ).fetchone()
        return package_version_from_row(row) if row else None

    def find_packages_by_short_name(self, short_name: str) -> List[Package]:
        with self._lock:
            rows = self.conn.execute(
                "SELECT * FROM packages WHERE short_name = ? ORDER BY name", (short_name,)
            ).fetchall()
        return [_package_from_row(row) for row in rows]

    def list_packages(self) -> List[Package]:
        """All packages sorted by name."""
        with self._lock:
            rows = self.conn.execute("SELECT * FROM packages ORDER BY name").fetchall()
        return [_package_from_row(row) for row in rows]

    def get_catalog_stats(self) -> Dict[str, int]:
        with self._lock:
            packages = self.conn.execute("SELECT COUNT(*) FROM packages").fetchone()[0]
            versions = self.conn.execute("SELECT COUNT(*) FROM package_versions").fetchone()[0]
        return {'packages': packages, 'versions': versions}

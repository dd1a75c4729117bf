"""Tests for SQLite database"""

import tempfile
from pathlib import Path

import pytest

from deskpm.core.database import PackageDatabase
from deskpm.core.installed import InstalledPackages
from deskpm.core.models import Download, HashType, Package, PackageType, PackageVersion
from deskpm.core.repository import Repository
from deskpm.core.version import Dependency, Version


@pytest.fixture
def db():
    """Create a temporary database for testing."""
    with tempfile.NamedTemporaryFile(suffix='.db', delete=False) as f:
        db_path = Path(f.name)

    database = PackageDatabase(db_path)
    yield database

    database.close()
    db_path.unlink(missing_ok=True)


def sample_version(version="2.1"):
    return PackageVersion(
        package="org.example.Editor",
        version=Version(version),
        dependencies=[Dependency.parse("org.example.Runtime", "[1.0, 2.0)")],
        download=Download(url="https://example.org/editor.zip",
                          hash_sum="ab" * 32, hash_type=HashType.SHA256),
        type=PackageType.ONE_FILE,
    )


class TestCatalog:
    """Tests for packages and package versions."""

    def test_save_and_find_package(self, db):
        db.save_package(Package(name="org.example.Editor", title="Editor",
                                categories=["Development/Editors"]))
        p = db.find_package("org.example.Editor")
        assert p.title == "Editor"
        assert p.categories == ["Development/Editors"]
        assert db.find_package("org.example.Missing") is None

    def test_package_version_round_trip(self, db):
        db.save_package_version(sample_version())
        pv = db.find_package_version("org.example.Editor", Version("2.1.0"))
        assert pv is not None
        assert str(pv.version) == "2.1"
        assert pv.type == PackageType.ONE_FILE
        assert pv.download.hash_type == HashType.SHA256
        assert pv.dependencies == [Dependency.parse("org.example.Runtime", "[1.0, 2.0)")]

    def test_versions_sorted(self, db):
        for v in ("1.10", "1.2", "1.9"):
            db.save_package_version(sample_version(v))
        versions = [str(pv.version) for pv in db.find_package_versions("org.example.Editor")]
        assert versions == ["1.2", "1.9", "1.10"]

    def test_same_version_replaced(self, db):
        db.save_package_version(sample_version("2.1"))
        db.save_package_version(sample_version("2.1.0"))
        assert len(db.find_package_versions("org.example.Editor")) == 1

    def test_keep_existing(self, db):
        db.save_package(Package(name="org.example.Editor", title="Old"))
        db.save_package(Package(name="org.example.Editor", title="New"), replace=False)
        assert db.find_package("org.example.Editor").title == "Old"

    def test_short_name(self, db):
        db.save_package(Package(name="org.a.Editor"))
        db.save_package(Package(name="org.b.Editor"))
        db.save_package(Package(name="org.b.Viewer"))
        names = [p.name for p in db.find_packages_by_short_name("Editor")]
        assert names == ["org.a.Editor", "org.b.Editor"]

    def test_save_repository_and_clear(self, db):
        repo = Repository()
        repo.add_package(Package(name="org.example.Editor"))
        repo.add_package_version(sample_version("1"))
        repo.add_package_version(sample_version("2"))
        assert db.save_repository(repo) == 2
        assert db.get_catalog_stats() == {'packages': 1, 'versions': 2}

        db.clear_catalog()
        assert db.get_catalog_stats() == {'packages': 0, 'versions': 0}


class TestInstalled:
    """Tests for installed package version records."""

    def test_add_and_remove(self, db):
        db.add_installed("A", Version("1.0"), "/opt/A")
        db.add_installed("B", Version("2"), "/opt/B")
        assert [(i.package, str(i.version)) for i in db.list_installed()] == \
            [("A", "1.0"), ("B", "2")]

        db.remove_installed("A", Version("1"))
        assert [i.package for i in db.list_installed()] == ["B"]

    def test_remove_missing_is_noop(self, db):
        db.remove_installed("A", Version("1"))
        assert db.list_installed() == []

    def test_installed_packages_provider(self, db):
        installed = InstalledPackages(db)
        installed.set_installed("A", Version("1"), "/opt/A")
        installed.set_installed("A", Version("2"), "/opt/A-2")

        assert installed.is_installed("A", Version("1.0"))
        assert installed.get_newest_installed("A").directory == "/opt/A-2"
        assert installed.find_owner("/opt/A-2/bin").version == Version("2")

        installed.set_uninstalled("A", Version("2"))
        assert installed.get_newest_installed("A").version == Version("1")

    def test_persists_across_connections(self, db):
        db.add_installed("A", Version("1"), "/opt/A")
        with PackageDatabase(db.db_path) as other:
            assert [i.package for i in other.list_installed()] == ["A"]

"""Tests for the package data model"""

import pytest

from deskpm.core.errors import ErrorKind, PackageError
from deskpm.core.models import (
    Download, InstallOperation, Package, PackageVersion, index_of,
    operations_from_json, operations_to_json, simplify, validate_full_package_name,
)
from deskpm.core.version import Dependency, Version


def op(package, version, install=True, where=""):
    return InstallOperation(package=package, version=Version(version),
                            install=install, where=where)


class TestPackageName:

    def test_valid_names(self):
        assert validate_full_package_name("org.example.Editor") == ""
        assert validate_full_package_name("com.7-zip.SevenZip_64") == ""

    def test_invalid_names(self):
        assert validate_full_package_name("") != ""
        assert validate_full_package_name("org..Editor") != ""
        assert validate_full_package_name("org.exa mple") != ""
        assert validate_full_package_name("org.-example") != ""


class TestPackageVersion:

    def test_string_id_uses_normalized_version(self):
        pv = PackageVersion(package="org.example.Editor", version=Version("2.0.0"))
        assert pv.string_id == "org.example.Editor/2"
        assert pv.get_short_package_name() == "Editor"

    def test_clone_is_independent(self):
        pv = PackageVersion(package="A", version=Version("1"),
                            dependencies=[Dependency.parse("B", "[1, 2)")])
        copy = pv.clone()
        copy.dependencies.clear()
        copy.download.url = "http://example.com/changed.zip"
        assert len(pv.dependencies) == 1
        assert pv.download.url == ""

    def test_index_of(self):
        pvs = [PackageVersion("A", Version("1")), PackageVersion("B", Version("2.0"))]
        assert index_of(pvs, PackageVersion("B", Version("2"))) == 1
        assert index_of(pvs, PackageVersion("C", Version("1"))) == -1

    def test_package_title_defaults_to_name(self):
        p = Package(name="org.example.Editor")
        assert p.title == "org.example.Editor"
        assert p.get_short_name() == "Editor"


class TestDownload:

    def test_valid_urls(self):
        assert Download(url="https://example.com/a.zip").is_valid()
        assert Download(url="file:///tmp/a.zip").is_valid()

    def test_invalid_urls(self):
        assert not Download(url="").is_valid()
        assert not Download(url="ftp://example.com/a.zip").is_valid()
        assert not Download(url="a.zip").is_valid()

    def test_filename(self):
        assert Download(url="https://example.com/dl/editor-2.1.zip").filename == "editor-2.1.zip"


class TestOperations:

    def test_json_round_trip(self):
        ops = [op("A", "1.0"), op("B", "2", install=False, where="/opt/b")]
        restored = operations_from_json(operations_to_json(ops))
        assert [o.key() for o in restored] == [o.key() for o in ops]
        assert restored[1].where == "/opt/b"

    def test_from_dict_rejects_non_bool_install(self):
        with pytest.raises(PackageError) as exc:
            InstallOperation.from_dict({"package": "A", "version": "1", "install": "false"})
        assert exc.value.kind == ErrorKind.INVALID

    def test_from_dict_rejects_bad_version(self):
        with pytest.raises(PackageError) as exc:
            InstallOperation.from_dict({"package": "A", "version": "x.y"})
        assert exc.value.kind == ErrorKind.INVALID

    def test_from_dict_defaults(self):
        restored = InstallOperation.from_dict({"package": "A", "version": "1"})
        assert restored.install is True
        assert restored.where == ""

    def test_str(self):
        assert str(op("A", "1.0")) == "install A/1.0"
        assert str(op("A", "1.0", install=False)) == "uninstall A/1.0"

    def test_simplify_removes_install_then_uninstall(self):
        ops = [op("A", "1"), op("B", "1"), op("A", "1.0", install=False)]
        assert [str(o) for o in simplify(ops)] == ["install B/1"]

    def test_simplify_keeps_uninstall_then_install(self):
        ops = [op("A", "1", install=False), op("A", "1")]
        assert len(simplify(ops)) == 2

    def test_simplify_removes_duplicates(self):
        ops = [op("A", "1"), op("B", "1"), op("A", "1.0")]
        assert [str(o) for o in simplify(ops)] == ["install A/1", "install B/1"]

    def test_simplify_does_not_modify_input(self):
        ops = [op("A", "1"), op("A", "1", install=False)]
        assert simplify(ops) == []
        assert len(ops) == 2

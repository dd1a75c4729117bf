"""
Tests for the dependency resolver

Uses an in-memory Repository and in-memory installed state.
"""

import pytest

from deskpm.core.context import PackageContext
from deskpm.core.errors import ErrorKind, PackageError
from deskpm.core.models import Download, Package, PackageVersion
from deskpm.core.repository import Repository
from deskpm.core.resolver import Planner
from deskpm.core.version import Dependency, Version


def make_pv(package, version, deps=None, url=None):
    """Package version with a valid download URL and optional dependencies.

    deps: list of (package, "[min, max)") tuples
    """
    return PackageVersion(
        package=package,
        version=Version(version),
        dependencies=[Dependency.parse(p, r) for p, r in (deps or [])],
        download=Download(url=url if url is not None else f"https://example.org/{package}-{version}.zip"),
    )


def make_planner(pvs, installed=(), packages=()):
    """Planner over a repository of pvs; installed is a list of (package, version)."""
    repo = Repository()
    for name in packages:
        repo.add_package(Package(name=name, title=name.upper()))
    for pv in pvs:
        repo.add_package(Package(name=pv.package))
        repo.add_package_version(pv)
    ctx = PackageContext(repo, install_root="/nonexistent/apps")
    for package, version in installed:
        ctx.installed.set_installed(package, Version(version), f"/nonexistent/apps/{package}-{version}")
    return Planner(ctx)


def strs(ops):
    return [str(op) for op in ops]


class TestQueries:

    def test_best_match_is_newest_in_range(self):
        planner = make_planner([make_pv("B", "1.0"), make_pv("B", "1.5"), make_pv("B", "2.0")])
        best = planner.find_best_match_to_install(Dependency.parse("B", "[1.0, 2.0)"))
        assert best.version == Version("1.5")

    def test_best_match_skips_invalid_download(self):
        planner = make_planner([make_pv("B", "1.0"), make_pv("B", "1.5", url="")])
        best = planner.find_best_match_to_install(Dependency.parse("B", "[1.0, 2.0)"))
        assert best.version == Version("1.0")

    def test_best_match_respects_avoid(self):
        planner = make_planner([make_pv("B", "1.0"), make_pv("B", "1.5")])
        best = planner.find_best_match_to_install(Dependency.parse("B", "[1.0, 2.0)"),
                                                  avoid={"B/1.5"})
        assert best.version == Version("1.0")

    def test_best_match_none(self):
        planner = make_planner([make_pv("B", "3.0")])
        assert planner.find_best_match_to_install(Dependency.parse("B", "[1.0, 2.0)")) is None

    def test_highest_installed_match(self):
        planner = make_planner([], installed=[("B", "1.0"), ("B", "1.7"), ("B", "2.1")])
        ipv = planner.find_highest_installed_match(Dependency.parse("B", "[1, 2)"))
        assert ipv.version == Version("1.7")

    def test_find_one_package(self):
        planner = make_planner([make_pv("org.example.Editor", "1")])
        assert planner.find_one_package("org.example.Editor").name == "org.example.Editor"
        assert planner.find_one_package("Editor").name == "org.example.Editor"

    def test_find_one_package_unknown(self):
        planner = make_planner([])
        with pytest.raises(PackageError) as exc:
            planner.find_one_package("Editor")
        assert exc.value.kind == ErrorKind.NOT_FOUND

    def test_find_one_package_ambiguous(self):
        planner = make_planner([make_pv("org.a.Editor", "1"), make_pv("org.b.Editor", "1")])
        with pytest.raises(PackageError) as exc:
            planner.find_one_package("Editor")
        assert exc.value.kind == ErrorKind.INVALID
        assert "More than one package" in exc.value.message

    def test_dependency_to_string(self):
        planner = make_planner([], packages=["org.example.Runtime"])
        dep = Dependency.parse("org.example.Runtime", "[1.0, 2.0)")
        assert planner.dependency_to_string(dep) == \
            "ORG.EXAMPLE.RUNTIME (org.example.Runtime) [1.0, 2.0)"
        assert planner.dependency_to_string(dep, include_full_name=False) == \
            "ORG.EXAMPLE.RUNTIME [1.0, 2.0)"

    def test_uncatalogued_installed_version_resolves(self):
        planner = make_planner([], installed=[("A", "1.0")])
        pv = planner.resolve_package_version("A", Version("1"))
        assert pv is not None
        assert pv.dependencies == []


class TestCheckInstallationDirectory:

    def test_empty(self):
        assert make_planner([]).check_installation_directory("") != ""

    def test_missing(self, tmp_path):
        assert "does not exist" in make_planner([]).check_installation_directory(
            str(tmp_path / "nope"))

    def test_free(self, tmp_path):
        assert make_planner([]).check_installation_directory(str(tmp_path)) == ""

    def test_owned_by_package(self, tmp_path):
        planner = make_planner([make_pv("A", "1")])
        planner.ctx.installed.set_installed("A", Version("1"), str(tmp_path))
        sub = tmp_path / "bin"
        sub.mkdir()
        err = planner.check_installation_directory(str(sub))
        assert "is installed there" in err


class TestPlanInstallation:

    def test_dependency_first(self):
        a = make_pv("A", "1.0", deps=[("B", "[1.0, 2.0)")])
        planner = make_planner([a, make_pv("B", "1.5"), make_pv("B", "2.0")])
        plan = planner.plan_installation(a)
        assert plan.success
        assert strs(plan.operations) == ["install B/1.5", "install A/1.0"]

    def test_satisfied_dependency_not_reinstalled(self):
        a = make_pv("A", "1.0", deps=[("B", "[1.0, 2.0)")])
        planner = make_planner([a, make_pv("B", "1.5")], installed=[("B", "1.2")])
        plan = planner.plan_installation(a)
        assert strs(plan.operations) == ["install A/1.0"]

    def test_already_installed(self):
        a = make_pv("A", "1.0")
        planner = make_planner([a], installed=[("A", "1.0")])
        plan = planner.plan_installation(a)
        assert plan.success
        assert plan.operations == []

    def test_transitive_and_shared_dependencies(self):
        a = make_pv("A", "1", deps=[("B", "[1, 2)"), ("C", "[1, 2)")])
        b = make_pv("B", "1", deps=[("C", "[1, 2)")])
        planner = make_planner([a, b, make_pv("C", "1.3")])
        plan = planner.plan_installation(a)
        assert strs(plan.operations) == ["install C/1.3", "install B/1", "install A/1"]

    def test_where_applies_to_target_only(self):
        a = make_pv("A", "1", deps=[("B", "[1, 2)")])
        planner = make_planner([a, make_pv("B", "1")])
        plan = planner.plan_installation(a, where="/opt/a")
        assert [op.where for op in plan.operations] == ["", "/opt/a"]

    def test_cycle_is_unsatisfiable(self):
        a = make_pv("A", "1", deps=[("B", "[1, 2)")])
        b = make_pv("B", "1", deps=[("A", "[1, 2)")])
        planner = make_planner([a, b])
        plan = planner.plan_installation(a)
        assert not plan.success
        assert plan.operations == []
        assert plan.error.kind == ErrorKind.UNSATISFIABLE

    def test_unsatisfied_dependency(self):
        a = make_pv("A", "1", deps=[("B", "[1, 2)")])
        planner = make_planner([a, make_pv("B", "2.5")], packages=["B"])
        plan = planner.plan_installation(a)
        assert not plan.success
        assert plan.error.kind == ErrorKind.UNSATISFIABLE
        assert "Unsatisfied dependency of A 1" in plan.error_message

    def test_avoid_argument(self):
        a = make_pv("A", "1", deps=[("B", "[1, 2)")])
        planner = make_planner([a, make_pv("B", "1")])
        plan = planner.plan_installation(a, avoid=["B/1"])
        assert not plan.success

    def test_explicit_snapshot_not_modified(self):
        a = make_pv("A", "1", deps=[("B", "[1, 2)")])
        planner = make_planner([a, make_pv("B", "1")])
        snapshot = []
        plan = planner.plan_installation(a, installed=snapshot)
        assert len(plan.operations) == 2
        assert snapshot == []

    def test_plan_installations_shares_snapshot(self):
        a = make_pv("A", "1", deps=[("C", "[1, 2)")])
        b = make_pv("B", "1", deps=[("C", "[1, 2)")])
        planner = make_planner([a, b, make_pv("C", "1")])
        plan = planner.plan_installations([a, b])
        assert strs(plan.operations) == ["install C/1", "install A/1", "install B/1"]


class TestPlanUninstallation:

    def test_dependents_removed_first(self):
        a = make_pv("A", "1", deps=[("B", "[1, 2)")])
        b = make_pv("B", "1.5")
        planner = make_planner([a, b], installed=[("A", "1"), ("B", "1.5")])
        plan = planner.plan_uninstallation(b)
        assert strs(plan.operations) == ["uninstall A/1", "uninstall B/1.5"]

    def test_dependent_with_other_provider_kept(self):
        a = make_pv("A", "1", deps=[("B", "[1, 2)")])
        planner = make_planner([a, make_pv("B", "1.2"), make_pv("B", "1.5")],
                               installed=[("A", "1"), ("B", "1.2"), ("B", "1.5")])
        plan = planner.plan_uninstallation(make_pv("B", "1.5"))
        assert strs(plan.operations) == ["uninstall B/1.5"]

    def test_not_installed_is_noop(self):
        planner = make_planner([make_pv("A", "1")])
        plan = planner.plan_uninstallation(make_pv("A", "1"))
        assert plan.success
        assert plan.operations == []

    def test_plan_removals_not_installed(self):
        planner = make_planner([make_pv("A", "1")])
        plan = planner.plan_removals([make_pv("A", "1")])
        assert not plan.success
        assert plan.error.kind == ErrorKind.NOT_FOUND

    def test_plan_removals_deduplicates(self):
        a = make_pv("A", "1", deps=[("B", "[1, 2)")])
        b = make_pv("B", "1")
        planner = make_planner([a, b], installed=[("A", "1"), ("B", "1")])
        plan = planner.plan_removals([b, a])
        assert strs(plan.operations) == ["uninstall A/1", "uninstall B/1"]


class TestPlanUpdates:

    def test_update_in_place(self):
        planner = make_planner([make_pv("A", "1.0"), make_pv("A", "2.0")],
                               installed=[("A", "1.0")])
        plan = planner.plan_updates(["A"])
        assert plan.success
        assert strs(plan.operations) == ["uninstall A/1.0", "install A/2.0"]

    def test_up_to_date(self):
        planner = make_planner([make_pv("A", "2.0")], installed=[("A", "2.0")])
        plan = planner.plan_updates(["A"])
        assert plan.success
        assert plan.operations == []

    def test_new_dependency_uses_fallback(self):
        a2 = make_pv("A", "2.0", deps=[("B", "[1, 2)")])
        planner = make_planner([make_pv("A", "1.0"), a2, make_pv("B", "1")],
                               installed=[("A", "1.0")])
        plan = planner.plan_updates(["A"])
        assert plan.success
        assert strs(plan.operations) == ["install B/1", "install A/2.0", "uninstall A/1.0"]

    def test_keep_directories(self):
        planner = make_planner([make_pv("A", "1.0"), make_pv("A", "2.0")],
                               installed=[("A", "1.0")])
        plan = planner.plan_updates(["A"], keep_directories=True)
        assert plan.operations[1].where == "/nonexistent/apps/A-1.0"

    def test_where_for_first_target(self):
        planner = make_planner([make_pv("A", "1.0"), make_pv("A", "2.0")],
                               installed=[("A", "1.0")])
        plan = planner.plan_updates(["A"], where="/opt/a")
        assert plan.operations[1].where == "/opt/a"

    def test_unknown_package(self):
        plan = make_planner([]).plan_updates(["Nope"])
        assert not plan.success
        assert plan.error.kind == ErrorKind.NOT_FOUND

    def test_not_installed(self):
        planner = make_planner([make_pv("A", "1.0")])
        plan = planner.plan_updates(["A"])
        assert not plan.success
        assert plan.error.kind == ErrorKind.UNSATISFIABLE

    def test_not_installed_with_install(self):
        planner = make_planner([make_pv("A", "1.0")])
        plan = planner.plan_updates(["A"], install=True)
        assert strs(plan.operations) == ["install A/1.0"]

    def test_range_update(self):
        planner = make_planner([make_pv("A", "1.0"), make_pv("A", "1.5"), make_pv("A", "2.0")],
                               installed=[("A", "1.0")])
        plan = planner.plan_updates(ranges=[Dependency.parse("A", "[1, 2)")])
        assert strs(plan.operations) == ["uninstall A/1.0", "install A/1.5"]

    def test_find_updates(self):
        planner = make_planner([make_pv("A", "1.0"), make_pv("A", "2.0"), make_pv("B", "1")],
                               installed=[("A", "1.0"), ("B", "1")])
        updates = planner.find_updates()
        assert len(updates) == 1
        installed, newest = updates[0]
        assert installed.version == Version("1.0")
        assert newest.version == Version("2.0")

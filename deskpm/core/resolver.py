"""
Dependency resolver

Greedy, range-first planning of install and uninstall operations. There
is no backtracking across alternatives: every dependency that is not
already satisfied by an installed version is satisfied by the newest
installable version in its range.

Working state of one planning pass:
    installed - snapshot of installed package versions, keyed by string id.
                Planning adds to and removes from it as operations are
                planned, so later steps see the effect of earlier ones.
    avoid     - string ids that must not be chosen again in this pass.
                A version is added before its dependencies are planned,
                which stops dependency cycles.

Public methods return a Plan and never a partial operation list.
"""

import logging
import os
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional, Set

from .context import PackageContext
from .errors import ErrorKind, PackageError
from .models import InstallOperation, InstalledPackageVersion, Package, PackageVersion, simplify
from .version import Dependency, Version

logger = logging.getLogger(__name__)

InstalledSnapshot = Dict[str, PackageVersion]


@dataclass
class Plan:
    """Result of planning."""
    success: bool
    operations: List[InstallOperation] = field(default_factory=list)
    error: Optional[PackageError] = None

    @property
    def error_message(self) -> str:
        return self.error.message if self.error else ""

    @classmethod
    def failed(cls, error: PackageError) -> 'Plan':
        return cls(success=False, operations=[], error=error)


def _snapshot(pvs: Optional[Iterable[PackageVersion]]) -> InstalledSnapshot:
    return {pv.string_id: pv for pv in (pvs or [])}


class Planner:
    """Computes ordered install/uninstall operation lists."""

    def __init__(self, ctx: PackageContext):
        self.ctx = ctx
        self.catalog = ctx.catalog

    # =========================================================================
    # Catalog queries
    # =========================================================================

    def find_all_matches_to_install(self, dep: Dependency,
                                    avoid: Optional[Set[str]] = None) -> List[PackageVersion]:
        """All versions in the range that can be downloaded and are not avoided."""
        avoid = avoid or set()
        return [pv for pv in self.catalog.find_package_versions(dep.package)
                if dep.test(pv.version) and pv.download.is_valid()
                and pv.string_id not in avoid]

    def find_best_match_to_install(self, dep: Dependency,
                                   avoid: Optional[Set[str]] = None) -> Optional[PackageVersion]:
        """Newest installable version in the range, or None."""
        res = None
        for pv in self.find_all_matches_to_install(dep, avoid):
            if res is None or pv.version > res.version:
                res = pv
        return res

    def find_newest_installable_package_version(self, package: str) -> Optional[PackageVersion]:
        """Newest version of a package with a valid download, or None."""
        res = None
        for pv in self.catalog.find_package_versions(package):
            if pv.download.is_valid() and (res is None or pv.version > res.version):
                res = pv
        return res

    def find_all_installed_matches(self, dep: Dependency) -> List[InstalledPackageVersion]:
        return [ipv for ipv in self.ctx.installed.get_by_package(dep.package)
                if dep.test(ipv.version)]

    def find_highest_installed_match(self, dep: Dependency) -> Optional[InstalledPackageVersion]:
        res = None
        for ipv in self.find_all_installed_matches(dep):
            if res is None or ipv.version > res.version:
                res = ipv
        return res

    def resolve_package_version(self, package: str, version: Version) -> Optional[PackageVersion]:
        """Catalog entry for a package version.

        An installed version that is no longer in the catalog is returned
        as a bare PackageVersion without dependencies or download, so that
        it can still be uninstalled.
        """
        pv = self.catalog.find_package_version(package, version)
        if pv is None and self.ctx.installed.is_installed(package, version):
            pv = PackageVersion(package=package, version=version)
        return pv

    def find_newest_installed_package_version(self, package: str) -> Optional[PackageVersion]:
        ipv = self.ctx.installed.get_newest_installed(package)
        if ipv is None:
            return None
        return self.resolve_package_version(ipv.package, ipv.version)

    def get_installed(self) -> List[PackageVersion]:
        """Installed package versions as catalog entries."""
        res = []
        for ipv in self.ctx.installed.get_all():
            pv = self.resolve_package_version(ipv.package, ipv.version)
            if pv is not None:
                res.append(pv)
        return res

    def get_installed_directory(self, pv: PackageVersion) -> str:
        ipv = self.ctx.installed.find(pv.package, pv.version)
        return ipv.directory if ipv else ""

    def find_one_package(self, name: str) -> Package:
        """Find a package by full name or by its unique short name.

        Raises:
            PackageError: NOT_FOUND if nothing matches, INVALID if the
                          short name is ambiguous
        """
        p = self.catalog.find_package(name)
        if p is not None:
            return p

        packages = self.catalog.find_packages_by_short_name(name)
        if not packages:
            raise PackageError(ErrorKind.NOT_FOUND, f"Unknown package: {name}")
        if len(packages) > 1:
            names = ", ".join(f"{p.title} ({p.name})" for p in packages)
            raise PackageError(ErrorKind.INVALID, f"More than one package was found: {names}")
        return packages[0]

    def get_package_title_and_name(self, name: str) -> str:
        p = self.catalog.find_package(name)
        return f"{p.title} ({name})" if p else name

    def dependency_to_string(self, dep: Dependency, include_full_name: bool = True) -> str:
        """Human readable dependency: "Title (package) [1.0, 2.0)"."""
        p = self.catalog.find_package(dep.package)
        res = p.title if p else dep.package
        if include_full_name:
            res += f" ({dep.package})"
        return f"{res} {dep.range_string()}"

    def check_installation_directory(self, directory: str) -> str:
        """Check a user supplied installation directory.

        Returns:
            Error message, or "" if the directory can be used
        """
        if not directory:
            return "The installation directory cannot be empty"
        if not os.path.isdir(directory):
            return "The installation directory does not exist"
        ipv = self.ctx.installed.find_owner(directory)
        if ipv is not None:
            return (f"Cannot change the installation directory to {directory}. "
                    f"{self.get_package_title_and_name(ipv.package)} {ipv.version} "
                    f"is installed there")
        return ""

    # =========================================================================
    # Planning (raising)
    # =========================================================================

    def _is_satisfied(self, dep: Dependency, installed: InstalledSnapshot) -> bool:
        return any(pv.package == dep.package and dep.test(pv.version)
                   for pv in installed.values())

    def _plan_installation(self, pv: PackageVersion, installed: InstalledSnapshot,
                           ops: List[InstallOperation], avoid: Set[str], where: str = ""):
        sid = pv.string_id
        if sid in installed:
            return

        if sid in avoid:
            raise PackageError(
                ErrorKind.UNSATISFIABLE,
                f"Circular dependency or conflict while planning {pv.package} {pv.version}")
        avoid.add(sid)

        for dep in pv.dependencies:
            if self._is_satisfied(dep, installed):
                continue
            candidate = self.find_best_match_to_install(dep, avoid)
            if candidate is None:
                raise PackageError(
                    ErrorKind.UNSATISFIABLE,
                    f"Unsatisfied dependency of {pv.package} {pv.version}: "
                    f"{self.dependency_to_string(dep)}")
            logger.debug(f"{dep} of {pv} -> {candidate}")
            self._plan_installation(candidate, installed, ops, avoid)

        ops.append(InstallOperation(package=pv.package, version=pv.version,
                                    install=True, where=where))
        installed[sid] = pv

    def _plan_uninstallation(self, pv: PackageVersion, installed: InstalledSnapshot,
                             ops: List[InstallOperation]):
        sid = pv.string_id
        if sid not in installed:
            return

        for other in list(installed.values()):
            if other.string_id == sid or other.string_id not in installed:
                continue
            for dep in other.dependencies:
                if dep.package != pv.package or not dep.test(pv.version):
                    continue
                providers = [p for p in installed.values()
                             if p.package == dep.package and dep.test(p.version)]
                if len(providers) == 1:
                    logger.debug(f"{other} depends only on {pv}, removing it first")
                    self._plan_uninstallation(other, installed, ops)
                    break

        ops.append(InstallOperation(package=pv.package, version=pv.version, install=False))
        del installed[sid]

    def _find_update_pairs(self, packages: List[str], ranges: List[Dependency],
                           install: bool) -> List[tuple]:
        pairs = []
        for name in packages:
            p = self.catalog.find_package(name)
            title = p.title if p else name
            if p is None:
                raise PackageError(ErrorKind.NOT_FOUND, f"Cannot find the package {name}")
            a = self.find_newest_installable_package_version(name)
            if a is None:
                raise PackageError(ErrorKind.UNSATISFIABLE,
                                   f"No installable version found for the package {title}")
            b = self.find_newest_installed_package_version(name)
            if b is None and not install:
                raise PackageError(ErrorKind.UNSATISFIABLE,
                                   f"No installed version found for the package {title}")
            if b is None or a.version > b.version:
                pairs.append((a, b))

        for dep in ranges:
            p = self.catalog.find_package(dep.package)
            if p is None:
                raise PackageError(ErrorKind.NOT_FOUND, f"Cannot find the package {dep.package}")
            a = self.find_best_match_to_install(dep)
            if a is None:
                raise PackageError(ErrorKind.UNSATISFIABLE,
                                   f"No installable version found for the package {p.title}")
            b = None
            ipv = self.find_highest_installed_match(dep)
            if ipv is not None:
                b = self.resolve_package_version(ipv.package, ipv.version)
            if b is None and not install:
                raise PackageError(ErrorKind.UNSATISFIABLE,
                                   f"No installed version found for the package {p.title}")
            if b is None or a.version > b.version:
                pairs.append((a, b))
        return pairs

    def _plan_updates(self, packages: List[str], ranges: List[Dependency], install: bool,
                      where: str, keep_directories: bool) -> List[InstallOperation]:
        installed = _snapshot(self.get_installed())
        pairs = self._find_update_pairs(packages, ranges, install)
        used = [False] * len(pairs)
        ops: List[InstallOperation] = []

        # Uninstall the old version first and install the new one into the
        # same slot, if that does not touch any other package.
        for i, (a, b) in enumerate(pairs):
            if b is None:
                continue
            installed_copy = dict(installed)
            ops2: List[InstallOperation] = []
            target = ""
            if i == 0 and where:
                target = where
            elif keep_directories:
                target = self.get_installed_directory(b)
            try:
                self._plan_uninstallation(b, installed_copy, ops2)
                self._plan_installation(a, installed_copy, ops2, set(), target)
            except PackageError as e:
                logger.debug(f"Cannot update {a.package} in place: {e.message}")
                continue
            if len(ops2) == 2:
                logger.debug(f"Updating {b} -> {a} in place")
                used[i] = True
                installed = installed_copy
                ops.extend(ops2)
            else:
                logger.debug(f"Updating {b} -> {a} in place affects other packages")

        for i, (a, b) in enumerate(pairs):
            if used[i]:
                continue
            target = ""
            if i == 0 and where:
                target = where
            elif keep_directories and b is not None:
                target = self.get_installed_directory(b)
            self._plan_installation(a, installed, ops, set(), target)

        for i, (a, b) in enumerate(pairs):
            if not used[i] and b is not None:
                self._plan_uninstallation(b, installed, ops)

        return simplify(ops)

    # =========================================================================
    # Planning (public)
    # =========================================================================

    def plan_installation(self, pv: PackageVersion,
                          installed: Optional[List[PackageVersion]] = None,
                          avoid: Optional[Iterable[str]] = None,
                          where: str = "") -> Plan:
        """Plan the installation of a package version and its dependencies.

        Args:
            pv: Package version to install
            installed: Installed snapshot (current installed state if None).
                       The list itself is not modified.
            avoid: String ids that must not be chosen
            where: Target directory for pv ("" = choose automatically)

        Returns:
            Plan with dependencies ordered before their dependents
        """
        snapshot = _snapshot(self.get_installed() if installed is None else installed)
        ops: List[InstallOperation] = []
        try:
            self._plan_installation(pv, snapshot, ops, set(avoid or ()), where)
        except PackageError as e:
            logger.debug(f"Planning installation of {pv} failed: {e.message}")
            return Plan.failed(e)
        return Plan(success=True, operations=ops)

    def plan_uninstallation(self, pv: PackageVersion,
                            installed: Optional[List[PackageVersion]] = None) -> Plan:
        """Plan the removal of a package version.

        Installed versions that depend on pv and have no other installed
        provider are removed first.
        """
        snapshot = _snapshot(self.get_installed() if installed is None else installed)
        ops: List[InstallOperation] = []
        self._plan_uninstallation(pv, snapshot, ops)
        return Plan(success=True, operations=ops)

    def plan_installations(self, pvs: List[PackageVersion], where: str = "") -> Plan:
        """Plan several installations against one installed snapshot."""
        snapshot = _snapshot(self.get_installed())
        ops: List[InstallOperation] = []
        try:
            for i, pv in enumerate(pvs):
                self._plan_installation(pv, snapshot, ops, set(), where if i == 0 else "")
        except PackageError as e:
            return Plan.failed(e)
        return Plan(success=True, operations=simplify(ops))

    def plan_removals(self, pvs: List[PackageVersion]) -> Plan:
        """Plan several removals against one installed snapshot."""
        snapshot = _snapshot(self.get_installed())
        ops: List[InstallOperation] = []
        for pv in pvs:
            if pv.string_id not in snapshot and not self.ctx.installed.is_installed(pv.package, pv.version):
                return Plan.failed(PackageError(
                    ErrorKind.NOT_FOUND, f"{self.get_package_title_and_name(pv.package)} "
                                         f"{pv.version} is not installed"))
            self._plan_uninstallation(pv, snapshot, ops)
        return Plan(success=True, operations=simplify(ops))

    def plan_updates(self, packages: Optional[List[str]] = None,
                     ranges: Optional[List[Dependency]] = None,
                     install: bool = False, where: str = "",
                     keep_directories: bool = False) -> Plan:
        """Plan updates of packages to their newest installable versions.

        Args:
            packages: Full package names
            ranges: Update within these ranges instead of to the newest version
            install: Accept targets with no installed version (install them)
            where: Preferred directory for the first target
            keep_directories: Install new versions into the old versions' directories

        Returns:
            Plan; targets that are already up to date contribute nothing
        """
        try:
            ops = self._plan_updates(packages or [], ranges or [], install,
                                     where, keep_directories)
        except PackageError as e:
            logger.debug(f"Planning updates failed: {e.message}")
            return Plan.failed(e)
        return Plan(success=True, operations=ops)

    def find_updates(self) -> List[tuple]:
        """(newest installed, newest installable) for every outdated package."""
        res = []
        seen = set()
        for ipv in self.ctx.installed.get_all():
            if ipv.package in seen:
                continue
            seen.add(ipv.package)
            newest_installed = self.ctx.installed.get_newest_installed(ipv.package)
            a = self.find_newest_installable_package_version(ipv.package)
            if a is not None and a.version > newest_installed.version:
                res.append((newest_installed, a))
        return res

"""Read-only catalog contract consumed by the planner and executor."""

from abc import ABC, abstractmethod
from typing import List, Optional

from .models import Package, PackageVersion
from .version import Version


class Catalog(ABC):
    """Query surface over packages and package versions.

    Every method returns copies: callers may mutate the results freely.
    """

    @abstractmethod
    def find_package(self, name: str) -> Optional[Package]:
        """Find a package by its full name."""

    @abstractmethod
    def find_package_versions(self, package: str) -> List[PackageVersion]:
        """All versions of a package, sorted by version."""

    @abstractmethod
    def find_package_version(self, package: str,
                             version: Version) -> Optional[PackageVersion]:
        """Find one package version."""

    @abstractmethod
    def find_packages_by_short_name(self, short_name: str) -> List[Package]:
        """Packages whose last name segment equals short_name."""

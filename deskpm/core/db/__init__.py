"""Database operation mixins for PackageDatabase.

Each mixin provides a group of related database operations:
- CatalogMixin: Packages and package versions
- InstalledMixin: Installed package version records
"""

from .catalog import CatalogMixin
from .installed import InstalledMixin

__all__ = [
    'CatalogMixin',
    'InstalledMixin',
]

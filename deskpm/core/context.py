"""
Shared state for planning and execution

A PackageContext bundles the collaborators the Planner and the
PackageOperations executor need. Nothing is global: two contexts are
fully independent, which is what the tests rely on.
"""

from pathlib import Path
from typing import Optional, Union

from .catalog import Catalog
from .installed import InstalledPackages
from .locks import LockRegistry


class PackageContext:
    """Catalog, installed state, lock registry and executor collaborators."""

    def __init__(self, catalog: Catalog, installed: Optional[InstalledPackages] = None,
                 locks: Optional[LockRegistry] = None, downloader=None, hooks=None,
                 install_root: Optional[Union[str, Path]] = None):
        """Initialize context.

        Args:
            catalog: Package catalog (Repository or PackageDatabase)
            installed: Installed-state provider (in-memory if None)
            locks: Lock registry (a fresh one if None)
            downloader: Downloader (created lazily if None)
            hooks: HookRunner (created lazily if None)
            install_root: Parent of installation directories
                          (config.get_install_root() if None)
        """
        self.catalog = catalog
        self.installed = installed if installed is not None else InstalledPackages()
        self.locks = locks if locks is not None else LockRegistry()
        self._downloader = downloader
        self._hooks = hooks
        self._install_root = Path(install_root) if install_root else None

    @property
    def downloader(self):
        if self._downloader is None:
            from .download import Downloader
            self._downloader = Downloader()
        return self._downloader

    @property
    def hooks(self):
        if self._hooks is None:
            from .hooks import HookRunner
            self._hooks = HookRunner()
        return self._hooks

    @property
    def install_root(self) -> Path:
        if self._install_root is None:
            from .config import get_install_root
            self._install_root = get_install_root()
        return self._install_root

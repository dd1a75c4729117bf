"""
Package version locks

A locked package version cannot be installed or uninstalled by another
batch in this process. Locking never waits: a second lock() on the same
id fails immediately. The mutex only protects the membership set.

Locks are advisory and in-process only; they do not affect file system
permissions.
"""

import logging
import threading
from typing import List, Set

logger = logging.getLogger(__name__)


class LockRegistry:
    """Set of locked package version ids ("package/version")."""

    def __init__(self):
        self._mutex = threading.Lock()
        self._locked: Set[str] = set()

    def lock(self, string_id: str) -> bool:
        """Lock a package version.

        Returns:
            True if the lock was acquired, False if it is already locked
        """
        with self._mutex:
            if string_id in self._locked:
                logger.debug(f"{string_id} is already locked")
                return False
            self._locked.add(string_id)
            return True

    def unlock(self, string_id: str):
        """Release a lock. No-op if not locked."""
        with self._mutex:
            self._locked.discard(string_id)

    def is_locked(self, string_id: str) -> bool:
        with self._mutex:
            return string_id in self._locked

    def get_locked(self) -> List[str]:
        """Currently locked ids, sorted."""
        with self._mutex:
            return sorted(self._locked)

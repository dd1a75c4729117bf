"""
Hierarchical, weighted, cancellable progress tracking

A Job is a node in a progress tree. A sub-job owns a fraction ("part")
of its parent: when the sub-job reaches progress p, the parent is at
(parent progress when the sub-job was created) + p * part. Completing a
sub-job without error accounts for its whole part.

Errors: the first error set on a job wins. A sub-job created with
update_parent_error=True forwards its error to the parent.

Cancellation is cooperative: cancel() sets a flag visible to the job and
all its descendants; the worker checks should_proceed() between steps.

Observers subscribe with a callback(job) that is called after every
change anywhere in the subtree, on the thread that made the change:

    job = Job("Installing")
    job.subscribe(lambda j: print(f"{j.progress:.0%} {j.get_full_hint()}"))
"""

import logging
import threading
from typing import Callable, List, Optional

from .errors import ErrorKind, PackageError

logger = logging.getLogger(__name__)

JobListener = Callable[['Job'], None]


class Job:
    """A node in a weighted progress tree."""

    def __init__(self, hint: str = "", parent: Optional['Job'] = None,
                 part: float = 0.0, update_parent_hint: bool = True,
                 update_parent_error: bool = False):
        self.parent = parent
        self.part = part
        self.update_parent_hint = update_parent_hint
        self.update_parent_error = update_parent_error
        self.children: List['Job'] = []

        # One lock for the whole tree
        self._lock = parent._lock if parent else threading.RLock()
        self._progress = 0.0
        self._hint = hint
        self._error: Optional[PackageError] = None
        self._cancelled = False
        self._completed = False
        self._listeners: List[JobListener] = []
        self._parent_start = parent.progress if parent else 0.0

    # =========================================================================
    # Observation
    # =========================================================================

    def subscribe(self, listener: JobListener):
        with self._lock:
            self._listeners.append(listener)

    def unsubscribe(self, listener: JobListener):
        with self._lock:
            if listener in self._listeners:
                self._listeners.remove(listener)

    def _changed(self):
        job = self
        while job is not None:
            for listener in list(job._listeners):
                listener(job)
            job = job.parent

    # =========================================================================
    # Progress
    # =========================================================================

    @property
    def progress(self) -> float:
        return self._progress

    def get_progress(self) -> float:
        return self._progress

    def set_progress(self, progress: float):
        """Set progress in [0, 1] and propagate the weighted value upwards."""
        progress = min(1.0, max(0.0, progress))
        with self._lock:
            self._progress = progress
            if self.parent is not None:
                self.parent._set_progress_from_child(self._parent_start + progress * self.part)
        self._changed()

    def _set_progress_from_child(self, progress: float):
        self._progress = min(1.0, max(0.0, progress))
        if self.parent is not None:
            self.parent._set_progress_from_child(self._parent_start + self._progress * self.part)

    def add_progress(self, delta: float):
        """Advance progress by a fraction (used for zero-work steps)."""
        self.set_progress(self._progress + delta)

    # =========================================================================
    # Hint
    # =========================================================================

    @property
    def hint(self) -> str:
        return self._hint

    def set_hint(self, hint: str):
        with self._lock:
            self._hint = hint
        self._changed()

    def get_full_hint(self) -> str:
        """Hint chain from this job down to the active sub-job: "a / b / c"."""
        with self._lock:
            parts = [self._hint] if self._hint else []
            for child in reversed(self.children):
                if not child._completed and child.update_parent_hint:
                    sub = child.get_full_hint()
                    if sub:
                        parts.append(sub)
                    break
            return " / ".join(parts)

    # =========================================================================
    # Errors and cancellation
    # =========================================================================

    @property
    def error(self) -> Optional[PackageError]:
        return self._error

    @property
    def error_message(self) -> str:
        """Error message or "" if no error occurred so far."""
        return self._error.message if self._error else ""

    def get_error_message(self) -> str:
        return self.error_message

    def set_error(self, error: PackageError):
        """Record an error. Only the first one is kept."""
        with self._lock:
            if self._error is None:
                self._error = error
                logger.debug(f"Job '{self._hint}' failed: {error.message}")
            if self.update_parent_error and self.parent is not None:
                self.parent.set_error(error)
        self._changed()

    def set_error_message(self, kind: ErrorKind, message: str):
        self.set_error(PackageError(kind, message))

    def cancel(self):
        """Request cancellation. Idempotent."""
        with self._lock:
            if self._cancelled:
                return
            self._cancelled = True
        self._changed()

    def is_cancelled(self) -> bool:
        job = self
        while job is not None:
            if job._cancelled:
                return True
            job = job.parent
        return False

    def should_proceed(self, hint: Optional[str] = None) -> bool:
        """True if neither cancelled nor failed. Sets the hint if proceeding."""
        proceed = not self.is_cancelled() and self._error is None
        if proceed and hint is not None:
            self.set_hint(hint)
        return proceed

    # =========================================================================
    # Tree
    # =========================================================================

    def new_sub_job(self, part: float, hint: str = "",
                    update_parent_hint: bool = True,
                    update_parent_error: bool = False) -> 'Job':
        """Create a child that accounts for `part` of this job's progress."""
        with self._lock:
            sub = Job(hint, parent=self, part=part,
                      update_parent_hint=update_parent_hint,
                      update_parent_error=update_parent_error)
            self.children.append(sub)
        self._changed()
        return sub

    def complete(self):
        """Mark finished. A successful sub-job accounts for its full part."""
        with self._lock:
            if self._completed:
                return
            self._completed = True
            if (self.parent is not None and self._error is None
                    and not self.is_cancelled()):
                self.parent._set_progress_from_child(self._parent_start + self.part)
        self._changed()

    def is_completed(self) -> bool:
        return self._completed

    def get_level(self) -> int:
        """Depth in the tree (root = 0)."""
        level = 0
        job = self.parent
        while job is not None:
            level += 1
            job = job.parent
        return level

    def __repr__(self):
        return (f"Job(hint={self._hint!r}, progress={self._progress:.3f}, "
                f"error={self.error_message!r}, cancelled={self._cancelled})")

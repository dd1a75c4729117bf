"""
Execution of planned operations

PackageOperations.process() runs a finalized list of InstallOperations
as one serial pipeline:

    reorder   update of one package: uninstall the old version first
    resolve   find every PackageVersion, lock all of them
    download  70%  installs are downloaded into provisional directories
    stop      10%  running instances of packages to uninstall are stopped
    apply     19%  packages are installed into their final directories
                   or uninstalled
    cleanup    1%  on failure or cancellation, provisional directories of
                   operations that were never applied are deleted
    release        every acquired lock is released, on every exit path

The batch is not transactional: operations applied before a failure stay
applied. The first error is recorded on the job; cancellation is checked
before every per-operation step.
"""

import logging
import threading
from pathlib import Path
from typing import List, Optional

from .config import APPLY_WEIGHT, CLEANUP_WEIGHT, DOWNLOAD_WEIGHT, STOP_WEIGHT
from .context import PackageContext
from .errors import ErrorKind, PackageError
from .hooks import CloseType
from .install import Installer, remove_directory
from .job import Job
from .models import InstallOperation, PackageVersion
from .resolver import Planner

logger = logging.getLogger(__name__)


def reorder(ops: List[InstallOperation]) -> List[InstallOperation]:
    """Put the uninstall first if the batch is an update of one package."""
    ops = list(ops)
    if (len(ops) == 2 and ops[0].package == ops[1].package
            and ops[0].install and not ops[1].install):
        ops.reverse()
    return ops


class PackageOperations:
    """Runs operation lists against the file system.

    Used by the CLI directly; process_in_background() runs the same
    pipeline on a worker thread while the caller watches the job.
    """

    def __init__(self, ctx: PackageContext):
        """Initialize operations.

        Args:
            ctx: Context providing catalog, installed state, locks,
                 downloader and hook runner
        """
        self.ctx = ctx
        self.planner = Planner(ctx)
        self.installer = Installer(ctx)

    # =========================================================================
    # Resolve & lock
    # =========================================================================

    def _resolve(self, job: Job, ops: List[InstallOperation]) -> List[PackageVersion]:
        pvs = []
        for op in ops:
            pv = self.planner.resolve_package_version(op.package, op.version)
            if pv is None:
                job.set_error_message(ErrorKind.NOT_FOUND,
                                      f"Cannot find the package version {op.package} {op.version}")
                return []
            pvs.append(pv)
        return pvs

    def _lock_all(self, job: Job, pvs: List[PackageVersion]) -> List[str]:
        """Lock every package version or none of them.

        Returns:
            Locked string ids (empty on failure)
        """
        locked: List[str] = []
        for pv in pvs:
            sid = pv.string_id
            if sid in locked:
                continue
            if not self.ctx.locks.lock(sid):
                logger.warning(f"{pv} is locked by another operation")
                for other in locked:
                    self.ctx.locks.unlock(other)
                job.set_error_message(ErrorKind.LOCKED,
                                      f"{pv} is locked by another operation")
                return []
            locked.append(sid)
        return locked

    # =========================================================================
    # Stages
    # =========================================================================

    def _download(self, job: Job, ops, pvs, dirs: List[Optional[Path]], binaries: List[str]):
        n = len(ops)
        for op, pv in zip(ops, pvs):
            if not job.should_proceed():
                break
            if not op.install:
                dirs.append(None)
                binaries.append("")
                job.add_progress(DOWNLOAD_WEIGHT / n)
                continue

            sub = job.new_sub_job(DOWNLOAD_WEIGHT / n, f"Downloading {pv}",
                                  update_parent_error=True)
            try:
                directory = self.installer.get_provisional_directory(pv, op.where)
            except PackageError as e:
                sub.set_error(e)
                directory = None
            if directory is not None and directory.exists():
                sub.set_error_message(ErrorKind.DIRECTORY_CONFLICT,
                                      f"Directory {directory} already exists")
                directory = None
            if directory is None:
                sub.complete()
                dirs.append(None)
                binaries.append("")
                continue

            try:
                binary = self.installer.download(sub, pv, directory)
            except Exception as e:
                logger.exception(f"Downloading {pv} failed")
                remove_directory(directory)
                sub.set_error_message(ErrorKind.DOWNLOAD_FAILURE,
                                      f"Download of {pv} failed: {e}")
                sub.complete()
                binary = ""
            # A failed download leaves nothing behind
            dirs.append(directory if sub.error is None else None)
            binaries.append(binary)

    def _stop(self, job: Job, ops, pvs, close_type: CloseType):
        n = len(ops)
        for i, (op, pv) in enumerate(zip(ops, pvs)):
            if not job.should_proceed():
                break
            if op.install:
                job.add_progress(STOP_WEIGHT / n)
                continue
            sub = job.new_sub_job(STOP_WEIGHT / n, f"Stopping the package {i + 1} of {n}",
                                  update_parent_error=True)
            try:
                self.installer.stop(sub, pv, close_type)
            except Exception as e:
                logger.exception(f"Stopping {pv} failed")
                sub.set_error_message(ErrorKind.SCRIPT_FAILURE, f"Cannot stop {pv}: {e}")
                sub.complete()

    def _apply(self, job: Job, ops, pvs, dirs: List[Optional[Path]], binaries: List[str]) -> int:
        """Install/uninstall. Returns the number of operations applied."""
        n = len(ops)
        processed = 0
        for i, (op, pv) in enumerate(zip(ops, pvs)):
            if not job.should_proceed():
                break
            action = "Installing" if op.install else "Uninstalling"
            sub = job.new_sub_job(APPLY_WEIGHT / n, f"{action} {pv}",
                                  update_parent_error=True)
            if op.install:
                try:
                    directory = self.installer.finalize_directory(pv, dirs[i], op.where)
                except PackageError as e:
                    dirs[i] = None
                    sub.set_error(e)
                    sub.complete()
                    break
                # Cleanup must see the directory where the files are now
                dirs[i] = directory
            try:
                if op.install:
                    self.installer.install(sub, pv, directory, binaries[i])
                else:
                    self.installer.uninstall(sub, pv)
            except Exception as e:
                logger.exception(f"{action} {pv} failed")
                sub.set_error_message(ErrorKind.SCRIPT_FAILURE, f"{action} {pv} failed: {e}")
                sub.complete()

            if sub.error is None:
                processed = i + 1
            if not job.should_proceed():
                break
        return processed

    def _cleanup(self, job: Job, dirs: List[Optional[Path]], processed: int):
        if not dirs:
            return
        share = CLEANUP_WEIGHT / len(dirs)
        for directory in dirs[processed:]:
            if directory is not None and directory.exists():
                logger.info(f"Deleting {directory}")
                remove_directory(directory)
            job.add_progress(share)

    # =========================================================================
    # Pipeline
    # =========================================================================

    def process(self, job: Job, ops: List[InstallOperation],
                close_type: CloseType = CloseType.CLOSE_WINDOW):
        """Execute operations in order.

        On return the job is completed: progress is 1.0 on success,
        otherwise job.error holds the first error.

        Args:
            job: Job to report progress and errors on
            ops: Planned operations
            close_type: How to stop running instances before uninstalling
        """
        ops = reorder(ops)
        n = len(ops)
        logger.debug(f"Processing {n} operation(s): {', '.join(str(op) for op in ops)}")

        pvs = self._resolve(job, ops)
        locked: List[str] = []
        if job.should_proceed():
            locked = self._lock_all(job, pvs)

        try:
            if n and job.should_proceed():
                dirs: List[Optional[Path]] = []
                binaries: List[str] = []
                processed = 0

                kind = ErrorKind.DOWNLOAD_FAILURE
                try:
                    self._download(job, ops, pvs, dirs, binaries)
                    kind = ErrorKind.SCRIPT_FAILURE
                    if job.should_proceed():
                        self._stop(job, ops, pvs, close_type)
                    if job.should_proceed():
                        processed = self._apply(job, ops, pvs, dirs, binaries)
                except Exception as e:
                    logger.exception("Processing operations failed")
                    job.set_error_message(kind, f"Unexpected error: {e}")
                if not job.should_proceed():
                    self._cleanup(job, dirs, processed)
        finally:
            for sid in locked:
                self.ctx.locks.unlock(sid)

        if job.is_cancelled() and job.error is None:
            job.set_error_message(ErrorKind.CANCELLED, "Cancelled")
        if job.should_proceed():
            job.set_progress(1)
        job.complete()

    def process_in_background(self, job: Job, ops: List[InstallOperation],
                              close_type: CloseType = CloseType.CLOSE_WINDOW) -> threading.Thread:
        """Run process() on a worker thread.

        Returns:
            The started thread; join() it or watch job.is_completed()
        """
        thread = threading.Thread(
            target=self.process, args=(job, list(ops), close_type),
            name="deskpm-process", daemon=True
        )
        thread.start()
        return thread

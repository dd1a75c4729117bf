"""
Per-package installation actions

The Installer performs the file system side of one install or uninstall:
downloading the binary into a directory, choosing the final directory,
running hook scripts, stopping running instances and removing
directories. It updates the installed state but knows nothing about
batches, ordering or locks (see operations.PackageOperations).

Directory layout under the install root:
    <root>/<ShortName>             ideal directory
    <root>/<ShortName>-<version>   secondary directory
    <dir>_2, <dir>_3, ...          numbered variants if those are taken
"""

import logging
import lzma
import os
import re
import shutil
import tarfile
import zipfile
import zlib
from pathlib import Path
from typing import Dict, Optional, Union

from .compression import extract_archive
from .config import MAX_DIRECTORY_VARIANTS
from .context import PackageContext
from .errors import ErrorKind, PackageError
from .hooks import CloseType, HookResult
from .installed import normalize_path
from .job import Job
from .models import PackageType, PackageVersion
from .resolver import Planner

logger = logging.getLogger(__name__)

# Errors raised by corrupt or truncated archives
ARCHIVE_ERRORS = (ValueError, OSError, EOFError, tarfile.TarError,
                  zipfile.BadZipFile, lzma.LZMAError, zlib.error)


def path_equals(a: Union[str, Path], b: Union[str, Path]) -> bool:
    return normalize_path(str(a)) == normalize_path(str(b))


def find_non_existing_path(path: Union[str, Path]) -> Path:
    """path itself if free, else the first free numbered variant.

    Raises:
        PackageError: DIRECTORY_CONFLICT if all variants are taken
    """
    path = Path(path)
    if not path.exists():
        return path
    for i in range(2, MAX_DIRECTORY_VARIANTS + 1):
        candidate = path.with_name(f"{path.name}_{i}")
        if not candidate.exists():
            return candidate
    raise PackageError(ErrorKind.DIRECTORY_CONFLICT,
                       f"Cannot find a free directory name for {path}")


def dependency_variable(package: str) -> str:
    """Hook variable name for a dependency ("org.example.Runtime" -> "DESKPM_DEP_ORG_EXAMPLE_RUNTIME")."""
    return 'DESKPM_DEP_' + re.sub(r'[^A-Za-z0-9]', '_', package).upper()


def remove_directory(path: Union[str, Path]) -> Optional[str]:
    """Delete a directory tree.

    Returns:
        Error message, or None on success (also if it did not exist)
    """
    path = Path(path)
    if not path.exists():
        return None
    try:
        if path.is_dir() and not path.is_symlink():
            shutil.rmtree(path)
        else:
            path.unlink()
    except OSError as e:
        logger.warning(f"Cannot delete {path}: {e}")
        return f"Cannot delete {path}: {e}"
    return None


class Installer:
    """Installs and uninstalls single package versions."""

    def __init__(self, ctx: PackageContext):
        self.ctx = ctx

    # =========================================================================
    # Directories
    # =========================================================================

    def get_ideal_directory(self, pv: PackageVersion) -> Path:
        return self.ctx.install_root / pv.get_short_package_name()

    def get_secondary_directory(self, pv: PackageVersion) -> Path:
        return self.ctx.install_root / f"{pv.get_short_package_name()}-{pv.version}"

    def get_provisional_directory(self, pv: PackageVersion, where: str = "") -> Path:
        """Free directory to download into: the target or a numbered variant."""
        return find_non_existing_path(where or self.get_ideal_directory(pv))

    @staticmethod
    def _try_move(src: Path, dest: Path) -> bool:
        if path_equals(src, dest):
            return True
        if dest.exists():
            return False
        try:
            dest.parent.mkdir(parents=True, exist_ok=True)
            os.rename(src, dest)
        except OSError as e:
            logger.debug(f"Cannot rename {src} to {dest}: {e}")
            return False
        return True

    def finalize_directory(self, pv: PackageVersion, provisional: Path, where: str = "") -> Path:
        """Move a downloaded package to its final directory.

        Without an explicit target the ideal directory is preferred, then
        the secondary one, then a numbered variant of the secondary one.
        If none can be used the provisional directory is kept.

        Raises:
            PackageError: DIRECTORY_CONFLICT if the explicit target is
                occupied or cannot be used. The provisional directory
                has been deleted in this case.
        """
        provisional = Path(provisional)
        if not where:
            ideal = self.get_ideal_directory(pv)
            if self._try_move(provisional, ideal):
                return ideal
            secondary = self.get_secondary_directory(pv)
            if self._try_move(provisional, secondary):
                return secondary
            try:
                variant = find_non_existing_path(secondary)
            except PackageError:
                return provisional
            if self._try_move(provisional, variant):
                return variant
            return provisional

        target = Path(where)
        if path_equals(target, provisional):
            return target
        if target.exists():
            logger.warning(f"Deleting temporary directory {provisional}")
            remove_directory(provisional)
            raise PackageError(ErrorKind.DIRECTORY_CONFLICT,
                               f"Cannot install {pv} into {target}. "
                               f"The directory already exists.")
        if not self._try_move(provisional, target):
            logger.warning(f"Deleting temporary directory {provisional}")
            remove_directory(provisional)
            raise PackageError(ErrorKind.DIRECTORY_CONFLICT,
                               f"Cannot install {pv} into {target}. "
                               f"Cannot rename {provisional}.")
        return target

    # =========================================================================
    # Actions
    # =========================================================================

    def hook_env(self, pv: PackageVersion, directory: Union[str, Path],
                 binary: str = "") -> Dict[str, str]:
        """Environment for hook scripts.

        Besides the package itself, every dependency with an installed
        match gets DESKPM_DEP_<NAME> pointing at the directory of the
        highest matching installed version.
        """
        env = {
            'DESKPM_PACKAGE': pv.package,
            'DESKPM_VERSION': str(pv.version),
            'DESKPM_PACKAGE_DIR': str(directory),
        }
        if binary:
            env['DESKPM_PACKAGE_BINARY'] = binary

        planner = Planner(self.ctx)
        for dep in pv.dependencies:
            ipv = planner.find_highest_installed_match(dep)
            if ipv is not None and ipv.directory:
                env[dependency_variable(dep.package)] = ipv.directory
            else:
                logger.debug(f"No installed match for {dep}, {pv} hooks get no directory for it")
        return env

    @staticmethod
    def _run_hook(pv: PackageVersion, run, package_dir, env) -> HookResult:
        """Call a hook runner method; an exception counts as a failed script."""
        try:
            return run(package_dir, env)
        except Exception as e:
            logger.exception(f"Hook script of {pv} raised")
            return HookResult(exit_code=-1, ran=True,
                              error=f"Script of {pv} failed: {e}")

    def download(self, job: Job, pv: PackageVersion, directory: Union[str, Path]) -> str:
        """Download (and for archives unpack) a package into a new directory.

        Returns:
            File name of the binary relative to the directory, "" on failure
            or for unpacked archives
        """
        directory = Path(directory)
        if not pv.download.is_valid():
            job.set_error_message(ErrorKind.DOWNLOAD_FAILURE,
                                  f"No valid download URL for {pv}")
            job.complete()
            return ""

        def on_progress(downloaded: int, total: int):
            if total > 0:
                job.set_progress(0.9 * downloaded / total)

        try:
            directory.mkdir(parents=True)
        except OSError as e:
            job.set_error_message(ErrorKind.DIRECTORY_CONFLICT,
                                  f"Cannot create directory {directory}: {e}")
            job.complete()
            return ""

        try:
            result = self.ctx.downloader.download(
                pv.download.url, directory,
                hash_sum=pv.download.hash_sum, hash_type=pv.download.hash_type,
                progress_callback=on_progress
            )
            error = result.error
        except Exception as e:
            logger.exception(f"Downloader failed for {pv}")
            result, error = None, str(e)
        if result is None or not result.success:
            remove_directory(directory)
            job.set_error_message(ErrorKind.DOWNLOAD_FAILURE,
                                  f"Download of {pv} failed: {error}")
            job.complete()
            return ""

        binary = result.path.name
        if pv.type == PackageType.ZIP:
            job.set_hint(f"Extracting {binary}")
            try:
                extract_archive(result.path, directory)
                result.path.unlink()
                binary = ""
            except ARCHIVE_ERRORS as e:
                remove_directory(directory)
                job.set_error_message(ErrorKind.DOWNLOAD_FAILURE,
                                      f"Cannot unpack {binary}: {e}")
                job.complete()
                return ""

        job.set_progress(1)
        job.complete()
        return binary

    def install(self, job: Job, pv: PackageVersion, directory: Union[str, Path],
                binary: str = ""):
        """Run the install hook and record the version as installed.

        If the hook fails the directory is deleted and nothing is recorded.
        """
        hook = self._run_hook(pv, self.ctx.hooks.run_install_hook,
                              directory, self.hook_env(pv, directory, binary))
        if not hook.success:
            remove_directory(directory)
            message = hook.error or (f"Install script of {pv} failed with exit code "
                                     f"{hook.exit_code}")
            if hook.output.strip():
                message += f"\n{hook.output.strip()}"
            job.set_error_message(ErrorKind.SCRIPT_FAILURE, message)
            job.complete()
            return

        self.ctx.installed.set_installed(pv.package, pv.version, str(directory))
        logger.info(f"Installed {pv} in {directory}")
        job.set_progress(1)
        job.complete()

    def uninstall(self, job: Job, pv: PackageVersion):
        """Run the uninstall hook, delete the directory, forget the version."""
        ipv = self.ctx.installed.find(pv.package, pv.version)
        if ipv is None:
            job.set_error_message(ErrorKind.NOT_FOUND, f"{pv} is not installed")
            job.complete()
            return

        if ipv.directory and Path(ipv.directory).is_dir():
            hook = self._run_hook(pv, self.ctx.hooks.run_uninstall_hook,
                                  ipv.directory, self.hook_env(pv, ipv.directory))
            if not hook.success:
                message = hook.error or (f"Uninstall script of {pv} failed with exit code "
                                         f"{hook.exit_code}")
                if hook.output.strip():
                    message += f"\n{hook.output.strip()}"
                job.set_error_message(ErrorKind.SCRIPT_FAILURE, message)
                job.complete()
                return
            job.set_progress(0.5)

            err = remove_directory(ipv.directory)
            if err:
                job.set_error_message(ErrorKind.SCRIPT_FAILURE, err)
                job.complete()
                return

        self.ctx.installed.set_uninstalled(pv.package, pv.version)
        logger.info(f"Uninstalled {pv}")
        job.set_progress(1)
        job.complete()

    def stop(self, job: Job, pv: PackageVersion, close_type: CloseType = CloseType.CLOSE_WINDOW):
        """Stop running instances of an installed package version."""
        ipv = self.ctx.installed.find(pv.package, pv.version)
        if ipv is not None and ipv.directory and Path(ipv.directory).is_dir():
            try:
                err = self.ctx.hooks.stop_running_instances(
                    ipv.directory, close_type, self.hook_env(pv, ipv.directory))
            except Exception as e:
                logger.exception(f"Stopping {pv} failed")
                err = str(e)
            if err:
                job.set_error_message(ErrorKind.SCRIPT_FAILURE,
                                      f"Cannot stop {pv}: {err}")
                job.complete()
                return
        job.set_progress(1)
        job.complete()

"""
Package hook scripts

A package may ship scripts in <package dir>/.deskpm/:
    Install    - run after the binary is unpacked
    Uninstall  - run before the directory is removed
    Stop       - run to stop running instances before uninstalling

On POSIX the script is run directly if executable, with sh otherwise
(".sh" extension optional). On Windows ".bat"/".cmd" scripts are run with
cmd.exe. A missing script counts as success.

Without a Stop script, running instances are found by their executable
path (/proc/<pid>/exe) and terminated according to the CloseType flags.
"""

import logging
import os
import signal
import subprocess
import time
from dataclasses import dataclass
from enum import IntFlag
from pathlib import Path
from typing import Dict, List, Optional, Union

from .config import HOOK_DIR_NAME
from .installed import is_under

logger = logging.getLogger(__name__)

INSTALL_HOOK = "Install"
UNINSTALL_HOOK = "Uninstall"
STOP_HOOK = "Stop"

# Seconds to wait for processes to exit after SIGTERM
STOP_GRACE_PERIOD = 5.0


class CloseType(IntFlag):
    """How running instances of a package are stopped."""
    CLOSE_WINDOW = 1   # Ask politely (SIGTERM)
    KILL_PROCESS = 2   # Force (SIGKILL)

    @classmethod
    def default(cls) -> 'CloseType':
        return cls.CLOSE_WINDOW


@dataclass
class HookResult:
    """Result of running a hook script."""
    exit_code: int = 0
    output: str = ""
    error: Optional[str] = None
    ran: bool = False

    @property
    def success(self) -> bool:
        return self.error is None and self.exit_code == 0


def _script_candidates(name: str) -> List[str]:
    if os.name == 'nt':
        return [f"{name}.bat", f"{name}.cmd"]
    return [name, f"{name}.sh"]


class HookRunner:
    """Runs package hook scripts and stops running package processes."""

    def __init__(self, timeout: Optional[float] = None):
        """Initialize runner.

        Args:
            timeout: Max seconds a hook may run, None for no limit
        """
        self.timeout = timeout

    def find_hook(self, package_dir: Union[str, Path], name: str) -> Optional[Path]:
        hook_dir = Path(package_dir) / HOOK_DIR_NAME
        for candidate in _script_candidates(name):
            path = hook_dir / candidate
            if path.is_file():
                return path
        return None

    def _command(self, script: Path) -> List[str]:
        if os.name == 'nt':
            return ['cmd.exe', '/c', str(script)]
        if os.access(script, os.X_OK):
            return [str(script)]
        return ['sh', str(script)]

    def run_hook(self, package_dir: Union[str, Path], name: str,
                 env: Optional[Dict[str, str]] = None) -> HookResult:
        """Run a hook script in the package directory.

        Args:
            package_dir: Package installation directory (working directory)
            name: Hook name (Install, Uninstall, Stop)
            env: Extra environment variables

        Returns:
            HookResult; exit_code 0 and ran=False if there is no such hook
        """
        script = self.find_hook(package_dir, name)
        if script is None:
            return HookResult()

        full_env = dict(os.environ)
        full_env.update(env or {})
        logger.debug(f"Running {script}")
        try:
            result = subprocess.run(
                self._command(script),
                cwd=str(package_dir), env=full_env,
                stdout=subprocess.PIPE, stderr=subprocess.STDOUT,
                text=True, errors='replace', timeout=self.timeout
            )
        except subprocess.TimeoutExpired:
            return HookResult(exit_code=-1, ran=True,
                              error=f"{name} script timed out after {self.timeout}s")
        except OSError as e:
            return HookResult(exit_code=-1, ran=True,
                              error=f"Cannot run {name} script: {e}")

        hook = HookResult(exit_code=result.returncode, output=result.stdout or "", ran=True)
        if hook.exit_code != 0:
            logger.warning(f"{script} exited with code {hook.exit_code}")
        return hook

    def run_install_hook(self, package_dir, env=None) -> HookResult:
        return self.run_hook(package_dir, INSTALL_HOOK, env)

    def run_uninstall_hook(self, package_dir, env=None) -> HookResult:
        return self.run_hook(package_dir, UNINSTALL_HOOK, env)

    def run_stop_hook(self, package_dir, env=None) -> HookResult:
        return self.run_hook(package_dir, STOP_HOOK, env)

    # =========================================================================
    # Running instances
    # =========================================================================

    def find_processes(self, package_dir: Union[str, Path]) -> List[int]:
        """PIDs whose executable lies inside the package directory."""
        proc = Path('/proc')
        if not proc.is_dir():
            return []
        pids = []
        for entry in proc.iterdir():
            if not entry.name.isdigit():
                continue
            try:
                exe = os.readlink(entry / 'exe')
            except OSError:
                continue
            if is_under(exe, str(package_dir)):
                pids.append(int(entry.name))
        return pids

    @staticmethod
    def _signal_all(pids: List[int], sig) -> List[int]:
        alive = []
        for pid in pids:
            try:
                os.kill(pid, sig)
                alive.append(pid)
            except ProcessLookupError:
                continue
            except PermissionError as e:
                logger.warning(f"Cannot signal process {pid}: {e}")
        return alive

    @staticmethod
    def _wait_for_exit(pids: List[int], timeout: float) -> List[int]:
        deadline = time.monotonic() + timeout
        alive = list(pids)
        while alive and time.monotonic() < deadline:
            time.sleep(0.1)
            alive = [pid for pid in alive if Path(f'/proc/{pid}').exists()]
        return alive

    def stop_running_instances(self, package_dir: Union[str, Path],
                               close_type: CloseType = CloseType.CLOSE_WINDOW,
                               env: Optional[Dict[str, str]] = None) -> Optional[str]:
        """Stop everything running from a package directory.

        Returns:
            Error message, or None on success
        """
        if self.find_hook(package_dir, STOP_HOOK) is not None:
            result = self.run_stop_hook(package_dir, env)
            if not result.success:
                return result.error or (f"Stop script failed with exit code "
                                        f"{result.exit_code}: {result.output.strip()}")
            return None

        pids = self.find_processes(package_dir)
        if not pids:
            return None

        logger.info(f"Stopping {len(pids)} process(es) running from {package_dir}")
        if close_type & CloseType.CLOSE_WINDOW:
            pids = self._wait_for_exit(self._signal_all(pids, signal.SIGTERM),
                                       STOP_GRACE_PERIOD)
        if pids and close_type & CloseType.KILL_PROCESS:
            pids = self._wait_for_exit(self._signal_all(pids, signal.SIGKILL),
                                       STOP_GRACE_PERIOD)
        if pids:
            return f"Processes still running from {package_dir}: {', '.join(map(str, pids))}"
        return None

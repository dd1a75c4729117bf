"""Tests for package hook scripts"""

import os

import pytest

from deskpm.core.hooks import CloseType, HookRunner

pytestmark = pytest.mark.skipif(os.name != 'posix', reason="hook scripts need sh")


def write_hook(package_dir, name, body):
    hook_dir = package_dir / ".deskpm"
    hook_dir.mkdir(exist_ok=True)
    path = hook_dir / name
    path.write_text(body)
    return path


class TestHookRunner:

    def test_missing_hook_is_success(self, tmp_path):
        result = HookRunner().run_install_hook(tmp_path)
        assert result.success
        assert not result.ran

    def test_hook_runs_in_package_dir(self, tmp_path):
        write_hook(tmp_path, "Install", 'echo "$DESKPM_PACKAGE" > marker\n')
        result = HookRunner().run_install_hook(tmp_path, {'DESKPM_PACKAGE': 'org.example.A'})
        assert result.success
        assert result.ran
        assert (tmp_path / "marker").read_text().strip() == "org.example.A"

    def test_exit_code_and_output(self, tmp_path):
        write_hook(tmp_path, "Uninstall.sh", "echo out\necho err >&2\nexit 4\n")
        result = HookRunner().run_uninstall_hook(tmp_path)
        assert not result.success
        assert result.exit_code == 4
        assert "out" in result.output
        assert "err" in result.output

    def test_timeout(self, tmp_path):
        write_hook(tmp_path, "Install", "sleep 5\n")
        result = HookRunner(timeout=0.2).run_install_hook(tmp_path)
        assert not result.success
        assert "timed out" in result.error

    def test_undecodable_output(self, tmp_path):
        write_hook(tmp_path, "Install", "printf '\\377\\376 bad bytes'\nexit 0\n")
        result = HookRunner().run_install_hook(tmp_path)
        assert result.success
        assert "bad bytes" in result.output
        assert "\ufffd" in result.output

    def test_stop_hook_used(self, tmp_path):
        write_hook(tmp_path, "Stop", "touch stopped\n")
        assert HookRunner().stop_running_instances(tmp_path) is None
        assert (tmp_path / "stopped").exists()

    def test_failing_stop_hook(self, tmp_path):
        write_hook(tmp_path, "Stop", "exit 1\n")
        err = HookRunner().stop_running_instances(tmp_path, CloseType.KILL_PROCESS)
        assert "exit code 1" in err

    def test_nothing_running(self, tmp_path):
        assert HookRunner().find_processes(tmp_path) == []
        assert HookRunner().stop_running_instances(tmp_path) is None


class TestCloseType:

    def test_flags(self):
        both = CloseType.CLOSE_WINDOW | CloseType.KILL_PROCESS
        assert both & CloseType.KILL_PROCESS
        assert CloseType.default() == CloseType.CLOSE_WINDOW

"""Tests for the project pre-launch hook."""

from __future__ import annotations

import os
import stat

import pytest

from credgate.core.errors import (
    BoundaryEscapeError,
    HookFailedError,
    SymlinkError,
    WrongOwnerError,
)
from credgate.core.hooks import run_pre_launch_hook, validate_hook

HOOK = ".claude/pre-launch.sh"


def _hook(repo_root, body: str, mode: int = 0o700):
    path = repo_root / HOOK
    path.write_text(f"#!/bin/sh\n{body}\n")
    os.chmod(path, mode)
    return path


def _mode(path) -> int:
    return stat.S_IMODE(os.stat(path).st_mode)


class TestValidateHook:
    def test_secure_hook(self, repo_root):
        path = _hook(repo_root, "exit 0")
        assert validate_hook(path, repo_root) == path

    def test_loose_mode_fixed_to_700(self, repo_root):
        path = _hook(repo_root, "exit 0", 0o755)
        validate_hook(path, repo_root)
        assert _mode(path) == 0o700

    def test_non_executable_made_executable(self, repo_root):
        path = _hook(repo_root, "exit 0", 0o600)
        validate_hook(path, repo_root)
        assert _mode(path) == 0o700

    def test_symlink_rejected(self, repo_root, tmp_path):
        target = tmp_path / "hook.sh"
        target.write_text("#!/bin/sh\n")
        (repo_root / HOOK).symlink_to(target)
        with pytest.raises(SymlinkError):
            validate_hook(repo_root / HOOK, repo_root)

    def test_escape_rejected(self, tmp_path):
        repo = tmp_path / "r"
        repo.mkdir()
        outside = tmp_path / "outside"
        outside.mkdir()
        (outside / "pre-launch.sh").write_text("#!/bin/sh\n")
        (repo / ".claude").symlink_to(outside)

        with pytest.raises(BoundaryEscapeError):
            validate_hook(repo / HOOK, repo)

    def test_foreign_owner_rejected(self, repo_root, mocker):
        path = _hook(repo_root, "exit 0")
        mocker.patch(
            "credgate.core.permissions.os.geteuid", return_value=os.stat(path).st_uid + 1
        )
        with pytest.raises(WrongOwnerError):
            validate_hook(path, repo_root)


class TestRunPreLaunchHook:
    """Tests for run_pre_launch_hook() executing real scripts."""

    def test_no_repository(self):
        assert run_pre_launch_hook(None, HOOK, {}) is None

    def test_no_hook(self, repo_root):
        assert run_pre_launch_hook(repo_root, HOOK, {}) is None

    def test_runs_in_repo_root_with_env(self, repo_root):
        _hook(repo_root, 'printf "%s" "$MARKER" > "$PWD/out.txt"')
        env = {"MARKER": "hello", "PATH": os.environ.get("PATH", "/usr/bin:/bin")}

        ran = run_pre_launch_hook(repo_root, HOOK, env)

        assert ran == repo_root / HOOK
        assert (repo_root / "out.txt").read_text() == "hello"

    def test_failure_aborts(self, repo_root):
        _hook(repo_root, "exit 3")
        with pytest.raises(HookFailedError) as exc:
            run_pre_launch_hook(repo_root, HOOK, {"PATH": "/usr/bin:/bin"})
        assert exc.value.returncode == 3

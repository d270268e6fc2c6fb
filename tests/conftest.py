# conftest.py - Shared pytest fixtures for all tests
"""Shared pytest fixtures for the credgate test suite.

Provides:
- Files created with an explicit mode
- A GatewayConfig rooted in a temporary directory
- A fake repository root and a real git repository
- A fake secret resolver that never touches a real vault

Usage:
    Import fixtures implicitly via pytest's fixture discovery.
"""

from __future__ import annotations

import os
import re
import shutil
import subprocess
from pathlib import Path
from typing import Callable

import pytest

from credgate.core.config import GatewayConfig
from credgate.vault.resolver import ResolveResult, SecretResolver

# =============================================================================
# File System Fixtures
# =============================================================================


@pytest.fixture
def make_file(tmp_path: Path) -> Callable[..., Path]:
    """Factory creating a file under tmp_path with the given content and mode.

    Example:
        def test_something(make_file):
            path = make_file("secrets.op", "KEY=op://v/i/f\\n", 0o600)
    """

    def _make(relpath: str, content: str = "", mode: int = 0o600) -> Path:
        path = tmp_path / relpath
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(content)
        os.chmod(path, mode)
        return path

    return _make


@pytest.fixture
def config_dir(tmp_path: Path) -> Path:
    path = tmp_path / "config"
    path.mkdir(mode=0o700)
    return path


@pytest.fixture
def config(tmp_path: Path, config_dir: Path) -> GatewayConfig:
    """GatewayConfig with every path inside tmp_path and no fallback dirs."""
    return GatewayConfig(
        config_dir=config_dir,
        ssh_key=tmp_path / "ssh" / "id_ed25519_claude_code",
        binary_fallback_dirs=[],
    )


@pytest.fixture
def repo_root(tmp_path: Path) -> Path:
    """A directory standing in for a repository root (no git needed)."""
    root = tmp_path / "repo"
    (root / ".claude").mkdir(parents=True)
    return Path(os.path.realpath(root))


@pytest.fixture
def git_repo(tmp_path: Path) -> Path:
    """A real git repository with an origin remote.

    WARNING: Runs actual git commands. Skipped when git is not installed.
    """
    if shutil.which("git") is None:
        pytest.skip("git not installed")

    root = tmp_path / "gitrepo"
    root.mkdir()
    subprocess.run(["git", "init", "-q"], cwd=root, check=True)
    subprocess.run(
        ["git", "remote", "add", "origin", "git@github.com:acme/widgets.git"],
        cwd=root,
        check=True,
    )
    return Path(os.path.realpath(root))


# =============================================================================
# Resolver Fixtures
# =============================================================================


class FakeResolver(SecretResolver):
    """In-process resolver replacing ``op://`` references from a dict.

    Records every call so tests can inspect the scratch files it was given.
    """

    name = "fake-vault"
    _REFERENCE = re.compile(r"op://[^\s'\"]+")

    def __init__(
        self,
        values: dict[str, str] | None = None,
        session: bool = True,
        available: bool = True,
        fail: bool = False,
        output: str | bytes | None = None,
    ):
        self.values = values or {}
        self.session = session
        self.available = available
        self.fail = fail
        self.output = output
        self.calls: list[tuple[Path, Path]] = []
        self.inputs: list[str] = []

    def is_available(self) -> bool:
        return self.available

    def has_session(self) -> bool:
        return self.session

    def resolve(self, in_file: Path, out_file: Path) -> ResolveResult:
        self.calls.append((in_file, out_file))
        self.inputs.append(in_file.read_text())
        if self.fail:
            return ResolveResult(returncode=1)

        if isinstance(self.output, bytes):
            out_file.write_bytes(self.output)
        elif self.output is not None:
            out_file.write_text(self.output)
        else:
            text = self._REFERENCE.sub(lambda m: self.values[m.group(0)], in_file.read_text())
            out_file.write_text(text)
        return ResolveResult(returncode=0)


@pytest.fixture
def fake_resolver() -> FakeResolver:
    return FakeResolver(
        values={
            "op://vault/api/token": "tok-123",
            "op://vault/db/password": "p@ss w'rd",
        }
    )


@pytest.fixture
def make_resolver() -> type[FakeResolver]:
    """The FakeResolver class, for tests that need a custom configuration."""
    return FakeResolver

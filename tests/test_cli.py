"""Tests for CLI commands.

Tests the credgate CLI using Click's CliRunner:
- run / gh: pipeline handoff and error reporting
- status: read-only report
- init: configuration directory creation
- claude-wrapper / credgate-gh script entry points
"""

from __future__ import annotations

import os
import stat
import sys
from pathlib import Path
from unittest.mock import Mock

import pytest
from click.testing import CliRunner
from rich.console import Console

from credgate import __version__
from credgate.cli import _self_path, gh_main, main, wrapper_main
from credgate.core.errors import ConfigError, InvalidOwnerNameError, WorldWritableError
from credgate.core.models import LaunchPlan, OwnerRoute, TokenSelection


@pytest.fixture
def cli_runner() -> CliRunner:
    """Create a Click CLI test runner."""
    return CliRunner()


@pytest.fixture(autouse=True)
def patched_config(mocker, config):
    """Point the CLI at the temporary config; keep root logging and line wrapping fixed."""
    mocker.patch("credgate.cli.load_config", return_value=config)
    mocker.patch("credgate.cli._configure_logging")
    mocker.patch("credgate.cli.console", Console(stderr=True, width=200))
    return config


@pytest.fixture
def plan(tmp_path) -> LaunchPlan:
    binary = tmp_path / "bin" / "claude"
    return LaunchPlan(binary=binary, argv=(str(binary), "--resume"), env={"A": "1"})


@pytest.fixture
def gateway_cls(mocker, plan):
    """Replace Gateway in the CLI with a mock whose plans never exec."""
    gateway = Mock()
    gateway.prepare.return_value = plan
    gateway.route.return_value = (plan, TokenSelection())
    return mocker.patch("credgate.cli.Gateway", return_value=gateway)


@pytest.fixture
def exec_plan(mocker):
    return mocker.patch("credgate.cli.exec_plan")


class TestVersion:
    def test_version(self, cli_runner):
        result = cli_runner.invoke(main, ["--version"])
        assert result.exit_code == 0
        assert __version__ in result.output


# =============================================================================
# run / gh
# =============================================================================


class TestRunCommand:
    """Tests for 'credgate run'."""

    def test_passes_arguments_through(self, cli_runner, gateway_cls, exec_plan, plan):
        """Options after 'run' are forwarded to the agent untouched."""
        result = cli_runner.invoke(main, ["run", "--resume", "-p", "hello world"])

        assert result.exit_code == 0
        gateway = gateway_cls.return_value
        gateway.initialize.assert_called_once()
        args, _ = gateway.prepare.call_args
        assert args[0] == ["--resume", "-p", "hello world"]
        exec_plan.assert_called_once_with(plan)

    def test_control_failure_exits_1(self, cli_runner, gateway_cls, exec_plan):
        gateway_cls.return_value.prepare.side_effect = WorldWritableError(
            "Binary is world-writable (777): /x/claude"
        )

        result = cli_runner.invoke(main, ["run"])

        assert result.exit_code == 1
        assert "Error:" in result.output
        assert "world-writable" in result.output
        exec_plan.assert_not_called()

    def test_exec_failure_exits_1(self, cli_runner, gateway_cls, exec_plan):
        exec_plan.side_effect = PermissionError(13, "Permission denied")

        result = cli_runner.invoke(main, ["run"])

        assert result.exit_code == 1
        assert "Could not execute" in result.output

    def test_config_error_exits_1(self, cli_runner, mocker, exec_plan):
        mocker.patch(
            "credgate.cli.load_config", side_effect=ConfigError("Invalid YAML in config.yaml")
        )

        result = cli_runner.invoke(main, ["run"])

        assert result.exit_code == 1
        assert "Invalid YAML" in result.output
        exec_plan.assert_not_called()

    def test_help_goes_to_agent(self, cli_runner, gateway_cls, exec_plan):
        """--help is an agent argument, not a credgate option."""
        result = cli_runner.invoke(main, ["run", "--help"])

        assert result.exit_code == 0
        args, _ = gateway_cls.return_value.prepare.call_args
        assert args[0] == ["--help"]
        exec_plan.assert_called_once()


class TestGhCommand:
    """Tests for 'credgate gh'."""

    def test_routes_and_execs(self, cli_runner, gateway_cls, exec_plan, plan):
        result = cli_runner.invoke(main, ["gh", "pr", "list", "--repo", "acme/widgets"])

        assert result.exit_code == 0
        args, _ = gateway_cls.return_value.route.call_args
        assert args[0] == ["pr", "list", "--repo", "acme/widgets"]
        exec_plan.assert_called_once_with(plan)

    def test_help_goes_to_gh(self, cli_runner, gateway_cls, exec_plan):
        result = cli_runner.invoke(main, ["gh", "pr", "--help"])

        assert result.exit_code == 0
        args, _ = gateway_cls.return_value.route.call_args
        assert args[0] == ["pr", "--help"]

    def test_logs_token_source(self, cli_runner, gateway_cls, exec_plan, plan, config, caplog):
        route = gateway_cls.return_value.route
        route.return_value = (
            plan,
            TokenSelection(
                owner="acme",
                route=OwnerRoute(owner="acme", token_file=config.config_dir / "gh-token.acme"),
                applied=True,
            ),
        )

        with caplog.at_level("DEBUG", logger="credgate.cli"):
            result = cli_runner.invoke(main, ["gh", "pr", "list"])

        assert result.exit_code == 0
        assert "owner:acme token" in caplog.text

    def test_route_failure_exits_1(self, cli_runner, gateway_cls, exec_plan):
        gateway_cls.return_value.route.side_effect = InvalidOwnerNameError("Invalid owner name")

        result = cli_runner.invoke(main, ["gh", "api", "repos/../x"])

        assert result.exit_code == 1
        exec_plan.assert_not_called()


# =============================================================================
# status
# =============================================================================


class TestStatusCommand:
    """Tests for 'credgate status'."""

    def test_reports_tiers_without_values(self, cli_runner, mocker, config, repo_root):
        mocker.patch("credgate.core.gateway.find_repository_root", return_value=repo_root)
        mocker.patch("credgate.cli.infer_owner", return_value="acme")
        secrets = repo_root / ".claude" / "secrets.op"
        secrets.write_text("API_TOKEN=op://vault/api/token\n")
        os.chmod(secrets, 0o644)

        result = cli_runner.invoke(main, ["status"])

        assert result.exit_code == 0
        assert "Secrets Tiers" in result.output
        assert "will be fixed to 400" in result.output
        assert "acme" in result.output
        assert "op://vault" not in result.output
        # Read-only: nothing is remediated
        assert stat.S_IMODE(os.stat(secrets).st_mode) == 0o644

    def test_outside_repository(self, cli_runner, mocker):
        mocker.patch("credgate.core.gateway.find_repository_root", return_value=None)
        mocker.patch("credgate.cli.infer_owner", return_value=None)

        result = cli_runner.invoke(main, ["status"])

        assert result.exit_code == 0
        assert "none" in result.output
        assert "Token route:" in result.output


# =============================================================================
# init
# =============================================================================


class TestInitCommand:
    """Tests for 'credgate init'."""

    def test_creates_config(self, cli_runner, config):
        result = cli_runner.invoke(main, ["init"])

        assert result.exit_code == 0
        assert "credgate initialized" in result.output
        config_path = config.config_dir / "config.yaml"
        assert config_path.exists()
        assert stat.S_IMODE(os.stat(config_path).st_mode) == 0o600
        assert stat.S_IMODE(os.stat(config.config_dir).st_mode) == 0o700

    def test_existing_config_untouched(self, cli_runner, config):
        config_path = config.config_dir / "config.yaml"
        config_path.write_text("git_name: Mine\n")

        result = cli_runner.invoke(main, ["init"])

        assert result.exit_code == 0
        assert "already exists" in result.output
        assert config_path.read_text() == "git_name: Mine\n"

    def test_creates_missing_directory(self, cli_runner, patched_config, tmp_path, mocker):
        missing = tmp_path / "fresh" / "claude-code"
        mocker.patch(
            "credgate.cli.load_config",
            return_value=patched_config.model_copy(update={"config_dir": missing}),
        )

        result = cli_runner.invoke(main, ["init"])

        assert result.exit_code == 0
        assert (missing / "config.yaml").exists()


# =============================================================================
# Script Entry Points
# =============================================================================


class TestScripts:
    def test_wrapper_forwards_all_arguments(self, mocker):
        """claude-wrapper passes even --help and --version to the agent."""
        launch = mocker.patch("credgate.cli.launch")
        mocker.patch.object(sys, "argv", ["claude-wrapper", "--version", "--help"])

        wrapper_main()

        launch.assert_called_once_with(["--version", "--help"])

    def test_gh_script(self, mocker):
        route = mocker.patch("credgate.cli.route")
        mocker.patch.object(sys, "argv", ["credgate-gh", "pr", "list"])

        gh_main()

        route.assert_called_once_with(["pr", "list"])

    def test_self_path_is_canonical(self, mocker, tmp_path):
        script = tmp_path / "claude"
        script.write_text("")
        mocker.patch.object(sys, "argv", [str(script)])
        assert _self_path() == Path(os.path.realpath(script))

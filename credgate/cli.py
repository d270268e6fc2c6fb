"""CLI entry points for credgate.

Commands:
- credgate run ARGS...: Launch the agent through the credential pipeline
- credgate gh ARGS...:  Run the hosting CLI with the owner-routed token
- credgate status:      Show what the pipeline would load here (no values)
- credgate init:        Create the configuration directory

Scripts:
- claude-wrapper ARGS...: Same as ``credgate run``; every argument passes through
- credgate-gh ARGS...:    Same as ``credgate gh``
"""

from __future__ import annotations

import logging
import os
import shutil
import sys
from pathlib import Path
from typing import NoReturn

import click
from rich.console import Console
from rich.logging import RichHandler
from rich.markup import escape
from rich.panel import Panel
from rich.table import Table

from credgate import __version__
from credgate.core.binary import discover_binary, validate_binary
from credgate.core.config import CONFIG_FILENAME, CONFIG_TEMPLATE, GatewayConfig, load_config
from credgate.core.errors import GatewayError, PathSecurityError, PermissionPolicyError
from credgate.core.gateway import Gateway, exec_plan
from credgate.core.models import Tier
from credgate.core.paths import canonicalize, is_under
from credgate.core.permissions import current_uid, file_status
from credgate.core.router import infer_owner, route_for
from credgate.core.secrets import candidate_paths

logger = logging.getLogger(__name__)

# stdout belongs to the wrapped process
console = Console(stderr=True)

PASSTHROUGH = {"ignore_unknown_options": True, "allow_interspersed_args": False}


def _configure_logging(debug: bool) -> None:
    handler = RichHandler(console=console, show_time=False, show_path=False, markup=False)
    logging.basicConfig(
        level=logging.DEBUG if debug else logging.WARNING,
        format="%(message)s",
        handlers=[handler],
        force=True,
    )


def _self_path() -> Path:
    """Path of the running wrapper, used to avoid exec'ing ourselves."""
    argv0 = sys.argv[0]
    if os.sep not in argv0:
        argv0 = shutil.which(argv0) or argv0
    return Path(os.path.realpath(argv0))


def _fail(error: Exception | str) -> NoReturn:
    console.print(f"[red]Error:[/red] {escape(str(error))}")
    sys.exit(1)


def _load() -> GatewayConfig:
    try:
        config = load_config()
    except GatewayError as e:
        _configure_logging(False)
        _fail(e)
    _configure_logging(config.debug)
    return config


def launch(args: list[str]) -> None:
    """Prepare and exec the agent. Exits 1 on any control failure."""
    config = _load()
    try:
        gateway = Gateway(config)
        gateway.initialize()
        plan = gateway.prepare(args, _self_path())
    except GatewayError as e:
        _fail(e)

    try:
        exec_plan(plan)
    except OSError as e:
        _fail(f"Could not execute {plan.binary}: {e.strerror}")


def route(args: list[str]) -> None:
    """Route the owner token and exec the hosting CLI."""
    config = _load()
    try:
        gateway = Gateway(config)
        plan, selection = gateway.route(args, _self_path())
    except GatewayError as e:
        _fail(e)

    logger.debug(f"Running {config.routed_binary} with {selection.source} token")

    try:
        exec_plan(plan)
    except OSError as e:
        _fail(f"Could not execute {plan.binary}: {e.strerror}")


@click.group()
@click.version_option(version=__version__)
def main() -> None:
    """credgate - credential gateway for autonomous agent CLIs.

    Loads identity, tokens and vault secrets only after every file in the
    chain has passed ownership, permission and containment checks.
    """
    pass


@main.command(context_settings=PASSTHROUGH, add_help_option=False)
@click.argument("args", nargs=-1, type=click.UNPROCESSED)
def run(args: tuple[str, ...]) -> None:
    """Launch the agent with the prepared environment.

    ARGS are passed to the agent unchanged.

    Example:
        credgate run --resume
    """
    launch(list(args))


@main.command(context_settings=PASSTHROUGH, add_help_option=False)
@click.argument("args", nargs=-1, type=click.UNPROCESSED)
def gh(args: tuple[str, ...]) -> None:
    """Run the hosting CLI with the token for the target owner.

    Example:
        credgate gh pr list --repo acme/widgets
    """
    route(list(args))


def _tier_status(path: Path, tier: Tier, root: Path | None) -> tuple[str, str]:
    """Read-only view of one secrets tier for ``status``."""
    if not (path.exists() or path.is_symlink()):
        return "-", "[dim]absent[/dim]"
    try:
        canonical = canonicalize(path)
        if tier != Tier.GLOBAL and root is not None and not is_under(canonical, root):
            return "-", "[red]escapes repository[/red]"
        status = file_status(canonical)
    except (PathSecurityError, PermissionPolicyError) as e:
        return "-", f"[red]{escape(str(e))}[/red]"

    mode = f"{status.mode:o}"
    if status.uid != current_uid():
        return mode, "[red]wrong owner[/red]"
    if not status.is_private:
        return mode, "[yellow]will be fixed to 400[/yellow]"
    return mode, "[green]ok[/green]"


@main.command()
def status() -> None:
    """Show tiers, binary and token routing for the current directory.

    Nothing is resolved and no value is printed.
    """
    config = _load()
    gateway = Gateway(config)
    gateway.initialize()
    root = gateway.repo_root

    console.print(f"\n[bold]Config dir:[/bold] {config.config_dir}")
    console.print(f"[bold]Repository:[/bold] {root or '[dim]none[/dim]'}")

    skip = gateway.vault_skip_reason()
    vault_state = f"[dim]skipped ({escape(skip)})[/dim]" if skip else "available"
    console.print(f"[bold]Vault:[/bold] {vault_state}\n")

    table = Table(title="Secrets Tiers")
    table.add_column("Tier", style="cyan")
    table.add_column("Path")
    table.add_column("Mode")
    table.add_column("Status")
    for tier, path in candidate_paths(config, root):
        mode, state = _tier_status(path, tier, root)
        table.add_row(tier.value, str(path), mode, state)
    console.print(table)

    try:
        found = discover_binary(
            config.agent_binary,
            _self_path(),
            fallbacks=config.binary_fallbacks(config.agent_binary),
        )
        trusted = validate_binary(found)
        binary_state = f"{trusted} [green](trusted)[/green]"
    except GatewayError as e:
        binary_state = f"[red]{escape(str(e))}[/red]"
    console.print(f"\n[bold]Agent binary:[/bold] {binary_state}")

    token = config.default_token_path
    console.print(f"[bold]Default token:[/bold] {token if token.exists() else '[dim]absent[/dim]'}")

    owner = infer_owner([], gateway.cwd)
    if owner is None:
        console.print("[bold]Token route:[/bold] default")
    else:
        try:
            owner_route = route_for(owner, config)
            present = owner_route.token_file.exists()
            console.print(
                f"[bold]Token route:[/bold] {owner} -> "
                f"{owner_route.token_file if present else 'default (no owner token)'}"
            )
        except GatewayError as e:
            console.print(f"[bold]Token route:[/bold] [red]{escape(str(e))}[/red]")


@main.command()
def init() -> None:
    """Create the configuration directory with owner-only permissions."""
    config = _load()
    config_dir = config.config_dir

    config_dir.mkdir(mode=0o700, parents=True, exist_ok=True)
    os.chmod(config_dir, 0o700)

    config_path = config_dir / CONFIG_FILENAME
    if config_path.exists() or config_path.is_symlink():
        console.print(f"[yellow]Config already exists:[/yellow] {config_path}")
    else:
        fd = os.open(config_path, os.O_WRONLY | os.O_CREAT | os.O_EXCL, 0o600)
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            f.write(CONFIG_TEMPLATE)

    console.print(
        Panel(
            "[green]Configuration directory ready![/green]\n\n"
            f"Config:  {config_path}\n"
            f"Token:   {config.default_token_path} (chmod 600)\n"
            f"Owner tokens: {config.default_token_path}.<owner>\n"
            f"Secrets: {config.global_secrets_path} (KEY=op://... lines)\n"
            f"Project: <repo>/{config.project_secrets}, <repo>/{config.local_secrets}",
            title="credgate initialized",
        )
    )


def wrapper_main() -> None:
    """``claude-wrapper`` script: every argument goes to the agent."""
    launch(sys.argv[1:])


def gh_main() -> None:
    """``credgate-gh`` script: every argument goes to the hosting CLI."""
    route(sys.argv[1:])


if __name__ == "__main__":
    main()

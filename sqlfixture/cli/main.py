"""Main CLI entry point for SQLFixture."""

from __future__ import annotations

from typing import Optional

import click
from rich.panel import Panel
from rich.table import Table
from rich.text import Text

from sqlfixture import __version__
from sqlfixture.cli.commands import COMMAND_GROUPS
from sqlfixture.cli.utils import console, setup_logging
from sqlfixture.config import EnvironmentSettings, get_config
from sqlfixture.exceptions import ConfigurationError


@click.group(invoke_without_command=True)
@click.option("--version", is_flag=True, help="Show version information")
@click.option("--config", type=click.Path(exists=True), help="Path to configuration file")
@click.option("--profile", help="Connection profile name")
@click.option("--verbose", "-v", is_flag=True, help="Enable verbose logging")
@click.pass_context
def cli(
    ctx: click.Context,
    version: bool,
    config: Optional[str],
    profile: Optional[str],
    verbose: bool,
) -> None:
    """SQLFixture - database test data lifecycle management."""
    ctx.ensure_object(dict)
    ctx.obj.update(
        {
            "config": config,
            "profile": profile,
            "verbose": verbose,
        }
    )

    env_settings = EnvironmentSettings()
    setup_logging("DEBUG" if verbose or env_settings.debug else env_settings.log_level)

    if version:
        console.print(f"SQLFixture v{__version__}")
        return

    if ctx.invoked_subcommand is None:
        show_dashboard(config)


for command_group in COMMAND_GROUPS:
    cli.add_command(command_group)


def show_dashboard(config_path: Optional[str] = None) -> None:
    """Show the configured profiles and the available commands."""
    body = Table.grid(padding=(0, 2))
    body.add_column(style="cyan")
    body.add_column()

    try:
        config = get_config(config_path)
    except ConfigurationError:
        body.add_row("Profiles", "[yellow]no configuration found[/yellow]")
        body.add_row("", "create one with 'sqlfixture config sample sqlfixture.yaml'")
    else:
        for name, profile in config.profiles.items():
            marker = " (default)" if name == config.default_profile else ""
            body.add_row(f"{name}{marker}", f"{profile.type.value}: {profile.host or profile.database}")

    body.add_row("", "")
    body.add_row("db", "test | status | info | describe | query")
    body.add_row("config", "validate | sample")

    console.print(
        Panel(
            body,
            title=Text("SQLFixture", style="bold blue"),
            subtitle=Text("Database test data lifecycle management", style="italic"),
            border_style="blue",
            padding=(1, 2),
        )
    )


if __name__ == "__main__":
    cli()

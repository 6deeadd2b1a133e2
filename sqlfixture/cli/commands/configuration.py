"""Configuration management CLI commands."""

from __future__ import annotations

from pathlib import Path

import click
from rich.markup import escape
from rich.table import Table

from sqlfixture.cli.utils import console
from sqlfixture.config import SQLFixtureConfig, create_sample_config, validate_config_file
from sqlfixture.exceptions import ConfigurationError


@click.group(name="config")
def config_group() -> None:
    """⚙️  Configuration management."""
    pass


@config_group.command(name="validate")
@click.argument("config_file", type=click.Path(exists=True))
def validate_command(config_file: str) -> None:
    """Validate a configuration file and list its profiles."""
    try:
        config = validate_config_file(config_file)
    except ConfigurationError as exc:
        console.print(f"[red]❌ Configuration validation failed: {escape(str(exc))}[/red]")
        raise SystemExit(1) from exc

    console.print(f"[green]✅ Configuration file '{config_file}' is valid[/green]\n")
    console.print(_profiles_table(config))
    console.print(
        f"\n{len(config.profiles)} profile(s), default: [cyan]{config.default_profile}[/cyan]; "
        f"cleanup failures {'raise' if config.fixtures.fail_on_partial_cleanup else 'are logged'}"
    )


def _profiles_table(config: SQLFixtureConfig) -> Table:
    table = Table(show_header=True, header_style="bold magenta")
    table.add_column("Profile", style="cyan", no_wrap=True)
    table.add_column("Engine", style="green", no_wrap=True)
    table.add_column("Target", overflow="fold")
    table.add_column("Auto-commit", justify="center", no_wrap=True)
    table.add_column("Read-only", justify="center", no_wrap=True)
    table.add_column("Isolation", style="yellow", no_wrap=True)

    for name, profile in config.profiles.items():
        if profile.host:
            target = f"{profile.host}:{profile.port or 'default'}/{profile.database}"
        else:
            target = profile.database or ""
        table.add_row(
            name,
            profile.type.value,
            escape(target),
            "✓" if profile.auto_commit else "",
            "✓" if profile.read_only else "",
            profile.isolation_level.value,
        )
    return table


@config_group.command(name="sample")
@click.argument("output_file", type=click.Path())
def sample_command(output_file: str) -> None:
    """Write a sample configuration file."""
    output_path = Path(output_file)
    if output_path.exists():
        click.confirm(f"File '{output_file}' exists. Overwrite?", abort=True)

    try:
        create_sample_config(output_path)
    except OSError as exc:
        console.print(f"[red]Error writing sample configuration: {escape(str(exc))}[/red]")
        raise SystemExit(1) from exc

    console.print(f"[green]✅ Sample configuration written to {output_file}[/green]")
    console.print("Profiles: hrm (mysql), reporting (postgresql, read-only), local (sqlite)")
    console.print(f"Check it with [cyan]sqlfixture config validate {output_file}[/cyan]")

"""Database connection CLI commands."""

from __future__ import annotations

from typing import Optional

import click
from rich.markup import escape
from rich.table import Table
from sqlalchemy.exc import SQLAlchemyError

from sqlfixture.cli.utils import console, create_provider, print_exception, selected_profile
from sqlfixture.db import SqlExecutor
from sqlfixture.exceptions import ConfigurationError, DatabaseError


@click.group(name="db")
@click.pass_context
def db_group(ctx: click.Context) -> None:
    """🗄️  Database connection management."""
    pass


@db_group.command(name="test")
@click.option("--profile", "-p", help="Specific profile to test (default: all)")
@click.pass_context
def test_connection_command(ctx: click.Context, profile: Optional[str]) -> None:
    """Test database connections."""
    try:
        profile = selected_profile(ctx, profile)
        with create_provider(ctx) as provider:
            console.print("[bold blue]Testing Database Connections[/bold blue]\n")

            if profile:
                results = {profile: provider.test_connection(profile)}
            else:
                results = provider.test_all_connections()

        for result in results.values():
            _show_connection_result(result)
            console.print()

        if any(result['status'] != 'success' for result in results.values()):
            raise SystemExit(1)
    except ConfigurationError as exc:
        console.print(f"[red]Configuration Error: {escape(str(exc))}[/red]")
        raise SystemExit(1) from exc


@db_group.command(name="status")
@click.pass_context
def status_command(ctx: click.Context) -> None:
    """Show configured profiles and connection status."""
    try:
        with create_provider(ctx) as provider:
            status_info = provider.get_connection_status()

        console.print("[bold blue]Database Connection Status[/bold blue]\n")
        table = Table(show_header=True, header_style="bold magenta")
        table.add_column("Profile", style="cyan")
        table.add_column("Type", style="green")
        table.add_column("Status", style="yellow")
        table.add_column("Default", style="blue")

        for name, conn_info in status_info['connections'].items():
            status_icon = "🟢 Active" if conn_info['active'] else "⚪ Inactive"
            is_default = "✓" if name == status_info['default_profile'] else ""
            table.add_row(name, conn_info['type'], status_icon, is_default)

        console.print(table)
        console.print(
            f"\nTotal: {status_info['total_active']} active / {status_info['total_configured']} configured"
        )
    except ConfigurationError as exc:
        console.print(f"[red]Configuration Error: {escape(str(exc))}[/red]")
        raise SystemExit(1) from exc


@db_group.command(name="info")
@click.option("--profile", "-p", help="Profile to inspect (default: default profile)")
@click.pass_context
def info_command(ctx: click.Context, profile: Optional[str]) -> None:
    """Show database product and driver information."""
    try:
        profile = selected_profile(ctx, profile)
        with create_provider(ctx) as provider:
            info = provider.get_database_info(profile)

        console.print(f"[bold blue]Database Information: {info['profile']}[/bold blue]\n")
        table = Table(show_header=False, box=None)
        table.add_column("Property", style="cyan", width=18)
        table.add_column("Value", style="green")
        for key, value in info.items():
            if value is not None:
                table.add_row(f"{key.replace('_', ' ').title()}:", str(value))
        console.print(table)
    except ConfigurationError as exc:
        console.print(f"[red]Configuration Error: {escape(str(exc))}[/red]")
        raise SystemExit(1) from exc
    except (DatabaseError, SQLAlchemyError) as exc:
        print_exception("Database Error", exc, ctx.obj.get('verbose', False))
        raise SystemExit(1) from exc


@db_group.command(name="describe")
@click.argument('table_name')
@click.option("--profile", "-p", help="Profile to use (default: default profile)")
@click.option("--schema", "-s", help="Schema name (database-specific)")
@click.pass_context
def describe_command(
    ctx: click.Context,
    table_name: str,
    profile: Optional[str],
    schema: Optional[str],
) -> None:
    """Describe table structure and column metadata."""
    try:
        profile = selected_profile(ctx, profile)
        with create_provider(ctx) as provider:
            columns = SqlExecutor(provider, profile).table_structure(table_name, schema)

        console.print(f"[bold blue]Table Structure: {table_name}[/bold blue]\n")
        table = Table(show_header=True, header_style="bold magenta")
        table.add_column("Name", style="cyan")
        table.add_column("Type", style="green")
        table.add_column("Size", style="white")
        table.add_column("Nullable", style="yellow")
        table.add_column("Default", style="white")

        for column in columns:
            table.add_row(
                str(column['column_name']),
                str(column['data_type']),
                str(column['size'] or ""),
                "Yes" if column['nullable'] else "No",
                str(column['default_value'] or ""),
            )

        console.print(table)
    except ConfigurationError as exc:
        console.print(f"[red]Configuration Error: {escape(str(exc))}[/red]")
        raise SystemExit(1) from exc
    except (DatabaseError, SQLAlchemyError) as exc:
        print_exception("Database Error", exc, ctx.obj.get('verbose', False))
        raise SystemExit(1) from exc


@db_group.command(name="query")
@click.argument('sql')
@click.option("--profile", "-p", help="Profile to use (default: default profile)")
@click.option("--limit", type=int, default=50, show_default=True, help="Maximum rows to display")
@click.pass_context
def query_command(ctx: click.Context, sql: str, profile: Optional[str], limit: int) -> None:
    """Run a query and show the result rows."""
    try:
        profile = selected_profile(ctx, profile)
        with create_provider(ctx) as provider:
            frame = SqlExecutor(provider, profile).query_frame(sql)

        if frame.empty:
            console.print("[yellow]No rows returned[/yellow]")
            return

        table = Table(show_header=True, header_style="bold magenta")
        for column in frame.columns:
            table.add_column(str(column), style="cyan")
        for row in frame.head(limit).itertuples(index=False):
            table.add_row(*["" if value is None else escape(str(value)) for value in row])

        console.print(table)
        console.print(f"\n[dim]Showing {min(limit, len(frame))} of {len(frame)} row(s)[/dim]")
    except ConfigurationError as exc:
        console.print(f"[red]Configuration Error: {escape(str(exc))}[/red]")
        raise SystemExit(1) from exc
    except (DatabaseError, SQLAlchemyError) as exc:
        print_exception("Database Error", exc, ctx.obj.get('verbose', False))
        raise SystemExit(1) from exc


def _show_connection_result(result: dict) -> None:
    status_color = "green" if result['status'] == 'success' else "red"
    console.print(f"Profile: [cyan]{result['profile']}[/cyan]")
    console.print(f"Status: [{status_color}]{result['status'].upper()}[/{status_color}]")
    console.print(f"Message: {escape(str(result.get('message', 'No message provided')))}")
    console.print(f"Response Time: {result.get('response_time', 0)} ms")
    if result.get('driver'):
        console.print(f"Driver: {result['driver']}")

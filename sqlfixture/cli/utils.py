"""Shared CLI utilities for SQLFixture."""

from __future__ import annotations

import logging
import traceback
from typing import Optional

import click
from rich.console import Console
from rich.markup import escape

from sqlfixture.config import SQLFixtureConfig, get_config
from sqlfixture.db import ConnectionProvider

# Single console instance reused across CLI modules
console = Console()


def setup_logging(level: str = "INFO") -> None:
    """Configure library logging on stderr."""
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        force=True,
    )


def print_exception(message: str, error: Exception, verbose: bool = False) -> None:
    """Render a formatted exception message.

    Args:
        message: Friendly context message to display before the exception.
        error: Original exception instance.
        verbose: When True, render the full traceback for debugging.
    """
    console.print(f"[red]{message}: {escape(str(error))}[/red]")
    if verbose:
        console.print(f"[dim]{escape(traceback.format_exc())}[/dim]")


def load_config(ctx: click.Context) -> SQLFixtureConfig:
    """Load the configuration selected by the root ``--config`` option."""
    return get_config(ctx.obj.get('config'))


def selected_profile(ctx: click.Context, profile: Optional[str]) -> Optional[str]:
    """Command-level profile, else the root ``--profile`` option, else None (default profile)."""
    return profile or ctx.obj.get('profile')


def create_provider(ctx: click.Context) -> ConnectionProvider:
    return ConnectionProvider(load_config(ctx))

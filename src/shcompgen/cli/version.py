"""CLI command reporting the installed shcompgen version."""

from __future__ import annotations

import click

from shcompgen import __version__


@click.command()
def version() -> None:
    """Print version and exit."""
    print(__version__)

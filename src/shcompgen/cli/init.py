"""CLI command that prepares completion directories and the shell loader."""

from __future__ import annotations

import sys

import click

from shcompgen.constants import EXIT_FAILURE
from shcompgen.services import CompletionService

from .common import settings_from_context


@click.command()
@click.pass_context
def init(ctx: click.Context) -> None:
    """Create completion directories and write the loader for the selected shell."""
    service = CompletionService(settings_from_context(ctx))
    try:
        report = service.init()
    except OSError as e:
        print(f"Initialization failed: {e}", file=sys.stderr)
        raise SystemExit(EXIT_FAILURE) from e

    for directory in report.created_dirs:
        print(f"Directory '{directory}' created.")
    if report.loader is not None:
        print(f"Wrote {report.loader}")
    print()
    print(report.instructions, end="")

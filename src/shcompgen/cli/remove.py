"""CLI command that removes generated completion scripts."""

from __future__ import annotations

from pathlib import Path

import click

from shcompgen.services import CompletionService

from .common import finish_batch, format_option, settings_from_context


@click.command()
@click.argument("programs", nargs=-1)
@click.option(
    "--from",
    "from_file",
    type=click.Path(path_type=Path, dir_okay=False),
    help="Remove fragments from this file instead of per-program scripts",
)
@format_option()
@click.pass_context
def remove(ctx: click.Context, *, programs: tuple[str, ...], from_file: Path | None, fmt: str) -> None:
    """Remove completion scripts we generated for PROGRAMS (default: every program on $PATH).

    Scripts without our ownership marker are never deleted.
    """
    service = CompletionService(settings_from_context(ctx))
    finish_batch(service.remove(programs or None, from_file=from_file), fmt)

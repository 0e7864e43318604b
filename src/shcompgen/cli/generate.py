"""CLI command that generates completion scripts."""

from __future__ import annotations

from pathlib import Path

import click

from shcompgen.constants import CommentStyle
from shcompgen.services import CompletionService

from .common import finish_batch, format_option, settings_from_context


@click.command()
@click.argument("programs", nargs=-1)
@click.option("--replace", is_flag=True, help="Overwrite existing completion scripts")
@click.option(
    "--into",
    type=click.Path(path_type=Path, dir_okay=False),
    help="Store scripts as fragments of this single file instead of one file per program",
)
@click.option(
    "--comment-style",
    type=click.Choice([c.value for c in CommentStyle], case_sensitive=False),
    default=CommentStyle.SHELL.value,
    show_default=True,
    help="Comment syntax of fragment markers (with --into)",
)
@format_option()
@click.pass_context
def generate(
    ctx: click.Context,
    *,
    programs: tuple[str, ...],
    replace: bool,
    into: Path | None,
    comment_style: str,
    fmt: str,
) -> None:
    """Generate completion scripts for PROGRAMS (default: every program on $PATH).

    A PROGRAM is a path or a name looked up in $PATH.
    """
    service = CompletionService(settings_from_context(ctx))
    batch = service.generate(
        programs or None,
        replace=replace,
        into=into,
        comment_style=CommentStyle(comment_style.lower()),
    )
    finish_batch(batch, fmt)

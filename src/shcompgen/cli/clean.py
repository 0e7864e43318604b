"""CLI command removing scripts of programs that are gone."""

from __future__ import annotations

import click

from shcompgen.services import CompletionService

from .common import finish_batch, format_option, settings_from_context


@click.command()
@format_option()
@click.pass_context
def clean(ctx: click.Context, *, fmt: str) -> None:
    """Remove our completion scripts for programs no longer found in $PATH."""
    service = CompletionService(settings_from_context(ctx))
    finish_batch(service.clean(), fmt)

"""CLI command listing installed completion scripts."""

from __future__ import annotations

import click

from shcompgen.constants import OutputFormat
from shcompgen.services import CompletionService

from .common import format_option, print_json, render_rows, settings_from_context


@click.command("list")
@click.option("--detail", is_flag=True, help="Also show the note and path of each script")
@format_option()
@click.pass_context
def list_(ctx: click.Context, *, detail: bool, fmt: str) -> None:
    """List programs that have a completion script generated by us."""
    scripts = CompletionService(settings_from_context(ctx)).list_installed()
    if OutputFormat(fmt.lower()) is OutputFormat.JSON:
        if detail:
            print_json([{"program": s.program, "note": s.note, "path": str(s.path)} for s in scripts])
        else:
            print_json([s.program for s in scripts])
        return
    if not detail:
        for script in scripts:
            print(script.program)
        return
    render_rows(("program", "note", "path"), [(s.program, s.note, str(s.path)) for s in scripts])

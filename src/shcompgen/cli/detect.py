"""CLI command reporting how programs would be completed."""

from __future__ import annotations

import click

from shcompgen.constants import EXIT_FAILURE, OutputFormat
from shcompgen.services import CompletionService

from .common import format_option, print_json, render_rows, settings_from_context


@click.command()
@click.argument("programs", nargs=-1, required=True)
@format_option()
@click.pass_context
def detect(ctx: click.Context, *, programs: tuple[str, ...], fmt: str) -> None:
    """Show the detection verdict for PROGRAMS without writing anything."""
    reports = CompletionService(settings_from_context(ctx)).detect(programs)
    if OutputFormat(fmt.lower()) is OutputFormat.JSON:
        print_json([r.to_dict() for r in reports])
    else:
        rows: list[tuple[str, ...]] = []
        for report in reports:
            data = report.to_dict()
            detail = data.get("reason") or " ".join(
                part
                for part in (
                    f"kind={data['kind']}",
                    f"completer={data['completer']}",
                    f"args={' '.join(data['args'])}" if data["args"] else "",
                    f"completee={data['completee']}" if data["completee"] else "",
                    f"note={data['note']}",
                )
                if part
            )
            rows.append((report.item, report.status, detail))
        render_rows(("program", "status", "detail"), rows)
    if any(r.error is not None for r in reports):
        raise SystemExit(EXIT_FAILURE)

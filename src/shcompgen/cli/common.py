"""Shared CLI helpers used by multiple subcommands."""

from __future__ import annotations

import json
import sys
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

import click
from rich.console import Console
from rich.markup import escape
from rich.table import Table

from shcompgen.config import load_settings
from shcompgen.constants import (
    EXIT_CONFIG,
    EXIT_FAILURE,
    EXIT_OK,
    EXIT_PARTIAL,
    EXIT_PATH,
    EXIT_USAGE,
    BatchOutcome,
    ItemStatus,
    OutputFormat,
    Scope,
)
from shcompgen.errors import ConfigLoadError, ValidationError

if TYPE_CHECKING:
    from collections.abc import Callable
    from pathlib import Path

    from shcompgen.config import Settings
    from shcompgen.services import BatchResult

STATUS_STYLES: dict[ItemStatus, str] = {
    ItemStatus.CREATED: "green",
    ItemStatus.REPLACED: "green",
    ItemStatus.REMOVED: "green",
    ItemStatus.NOT_FOUND: "red",
    ItemStatus.FAILED: "red",
    ItemStatus.UNSUPPORTED: "yellow",
}


@dataclass(frozen=True, slots=True)
class CliState:
    """Root options, turned into :class:`Settings` on first use."""

    shell: str | None
    scope: Scope | None
    config_path: Path | None
    dirs: tuple[Path, ...]


def exit_on_broken_pipe() -> None:
    """Exit quietly when stdout is closed early (e.g. piped into ``head``)."""
    try:
        sys.stdout.close()
    finally:
        raise SystemExit(EXIT_OK)  # noqa: B012


def settings_from_context(ctx: click.Context) -> Settings:
    """Build settings from the root options or exit with the matching code."""
    state = ctx.find_object(CliState)
    if state is None:
        state = CliState(shell=None, scope=None, config_path=None, dirs=())
    try:
        return load_settings(
            explicit_config=state.config_path,
            shell=state.shell,
            scope=state.scope,
            dir_override=state.dirs,
        )
    except ConfigLoadError as err:
        print(err, file=sys.stderr)
        raise SystemExit(EXIT_CONFIG) from err
    except ValidationError as err:
        print(err, file=sys.stderr)
        raise SystemExit(EXIT_USAGE) from err


def format_option() -> Callable[[Callable[..., Any]], Callable[..., Any]]:
    return click.option(
        "--format",
        "fmt",
        type=click.Choice([f.value for f in OutputFormat], case_sensitive=False),
        default=OutputFormat.HUMAN.value,
        show_default=True,
        help="Output format",
    )


def print_json(data: object) -> None:
    print(json.dumps(data, sort_keys=True, indent=2))


def _table(*columns: str) -> Table:
    table = Table(show_edge=False, box=None, pad_edge=False, expand=False)
    for column in columns:
        table.add_column(column, overflow="fold")
    return table


def render_batch(batch: BatchResult, fmt: OutputFormat, *, console: Console | None = None) -> None:
    """Print one row per item plus the overall outcome."""
    if fmt is OutputFormat.JSON:
        print_json(batch.to_dict())
        return
    console = console or Console(highlight=False)
    if not batch.items:
        console.print("Nothing to do.")
        return
    table = _table("program", "status", "detail")
    for item in batch.items:
        style = STATUS_STYLES.get(item.status, "default")
        detail = item.message
        if item.path is not None and item.status in {ItemStatus.CREATED, ItemStatus.REPLACED, ItemStatus.REMOVED}:
            detail = f"{item.path}" if not detail else f"{detail} ({item.path})"
        table.add_row(escape(item.item), f"[{style}]{item.status.value}[/{style}]", escape(detail))
    console.print(table)
    console.print(f"outcome: {batch.outcome.value}")


def render_rows(columns: tuple[str, ...], rows: list[tuple[str, ...]], *, console: Console | None = None) -> None:
    console = console or Console(highlight=False)
    table = _table(*columns)
    for row in rows:
        table.add_row(*(escape(cell) for cell in row))
    console.print(table)


def exit_code_for(batch: BatchResult) -> int:
    """Map a batch outcome to the process exit code."""
    outcome = batch.outcome
    if outcome is BatchOutcome.PARTIAL:
        return EXIT_PARTIAL
    if outcome is BatchOutcome.FAILED:
        if all(item.status is ItemStatus.NOT_FOUND for item in batch.items):
            return EXIT_PATH
        return EXIT_FAILURE
    return EXIT_OK


def finish_batch(batch: BatchResult, fmt: str) -> None:
    render_batch(batch, OutputFormat(fmt.lower()))
    code = exit_code_for(batch)
    if code != EXIT_OK:
        raise SystemExit(code)

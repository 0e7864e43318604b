"""CLI commands giving direct access to a fragment file."""

from __future__ import annotations

import sys
from pathlib import Path
from typing import NoReturn

import click

from shcompgen.constants import EXIT_FAILURE, EXIT_USAGE, CommentStyle, OutputFormat
from shcompgen.errors import FragmentFormatError, ValidationError
from shcompgen.fragments import FragmentRegistry
from shcompgen.markup import format_attrs, parse_attrs

from .common import format_option, print_json, render_rows

_file_argument = click.argument("file", type=click.Path(path_type=Path, dir_okay=False))
_style_option = click.option(
    "--comment-style",
    type=click.Choice([c.value for c in CommentStyle], case_sensitive=False),
    default=CommentStyle.SHELL.value,
    show_default=True,
    help="Comment syntax of the fragment markers",
)


def _registry(file: Path, comment_style: str) -> FragmentRegistry:
    return FragmentRegistry(file, comment_style=CommentStyle(comment_style.lower()))


def _fail(err: Exception, code: int) -> NoReturn:
    print(err, file=sys.stderr)
    raise SystemExit(code) from err


@click.group()
def fragment() -> None:
    """Inspect and edit fragments stored in a single file."""


@fragment.command("list")
@_file_argument
@_style_option
@format_option()
def list_fragments(*, file: Path, comment_style: str, fmt: str) -> None:
    """List the fragments of FILE."""
    try:
        entries = _registry(file, comment_style).list()
    except (FragmentFormatError, OSError) as err:
        _fail(err, EXIT_FAILURE)
    if OutputFormat(fmt.lower()) is OutputFormat.JSON:
        print_json([{"id": e.id, "attrs": e.attrs, "payload": e.payload} for e in entries])
        return
    rows = [(e.id, format_attrs(e.attrs), str(len(e.payload.splitlines()))) for e in entries]
    render_rows(("id", "attrs", "lines"), rows)


@fragment.command("insert")
@_file_argument
@click.argument("fragment_id")
@click.option("--payload", help="Fragment content (default: read from stdin)")
@click.option("--attrs", "attrs_text", default="", help='Marker attributes, e.g. \'note="hand written"\'')
@click.option("--replace", is_flag=True, help="Replace an existing fragment with the same id")
@click.option("--top", is_flag=True, help="Put a new fragment at the top of the file")
@_style_option
def insert_fragment(
    *,
    file: Path,
    fragment_id: str,
    payload: str | None,
    attrs_text: str,
    replace: bool,
    top: bool,
    comment_style: str,
) -> None:
    """Insert fragment FRAGMENT_ID into FILE."""
    if payload is None:
        payload = sys.stdin.read()
    try:
        attrs = parse_attrs(attrs_text)
        status = _registry(file, comment_style).insert(fragment_id, payload, attrs, replace=replace, at_top=top)
    except ValidationError as err:
        _fail(err, EXIT_USAGE)
    except (FragmentFormatError, OSError) as err:
        _fail(err, EXIT_FAILURE)
    print(f"{fragment_id}: {status.value}")


@fragment.command("delete")
@_file_argument
@click.argument("fragment_id")
@_style_option
def delete_fragment(*, file: Path, fragment_id: str, comment_style: str) -> None:
    """Delete fragment FRAGMENT_ID from FILE."""
    try:
        status = _registry(file, comment_style).delete(fragment_id)
    except (FragmentFormatError, OSError) as err:
        _fail(err, EXIT_FAILURE)
    print(f"{fragment_id}: {status.value}")

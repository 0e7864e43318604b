"""CLI entrypoint for emitting shcompgen's own shell completion script."""

from __future__ import annotations

import sys
from typing import Final

import click

from shcompgen.constants import EXIT_USAGE

COMPLETION_TEMPLATES: Final[dict[str, str]] = {
    "bash": (
        '_shcompgen_completion() {{ eval "$(env {var}=bash_source {prog} "$@")"; }}\n'
        "complete -F _shcompgen_completion {prog}"
    ),
    "zsh": 'autoload -U compinit; compinit\neval "$(env {var}=zsh_source {prog})"',
    "fish": "eval (env {var}=fish_source {prog})",
}


@click.command()
@click.option(
    "--shell",
    type=click.Choice(sorted(COMPLETION_TEMPLATES), case_sensitive=False),
    required=True,
    help="Target shell to generate completion script for",
)
def completions(shell: str) -> None:
    """Print the completion script for shcompgen itself."""
    prog = "shcompgen"
    var = "_SHCOMPGEN_COMPLETE"
    try:
        template = COMPLETION_TEMPLATES[shell.lower()]
    except KeyError as err:  # pragma: no cover - click validates the choice
        print(f"Unsupported shell: {shell}", file=sys.stderr)
        raise SystemExit(EXIT_USAGE) from err
    print(template.format(var=var, prog=prog))

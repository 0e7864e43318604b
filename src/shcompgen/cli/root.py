"""Top-level Click group wiring together all shcompgen commands."""

from __future__ import annotations

import io
import sys
from pathlib import Path

import click
from rich.console import Console
from rich.table import Table

from shcompgen import __version__
from shcompgen.constants import EXIT_INTERRUPT, Scope, Shell
from shcompgen.logging_utils import configure_logging

from .common import CliState, exit_on_broken_pipe

CLI_CONTEXT_SETTINGS = {
    "help_option_names": ["-h", "--help"],
}


def _options_table(ctx: click.Context, params: list[click.Parameter]) -> Table:
    table = Table(show_header=False, show_edge=False, box=None, pad_edge=False, expand=False)
    table.add_column(style="cyan", no_wrap=True)
    table.add_column(style="default")
    for param in params:
        if not isinstance(param, click.Option):
            continue
        record = param.get_help_record(ctx)
        if not record:
            continue
        opts, help_text = record
        table.add_row(opts, help_text or "")
    return table


class _RichHelpGroup(click.Group):
    """Click group whose help is laid out with rich tables."""

    def get_help(self, ctx: click.Context) -> str:  # type: ignore[override]
        """Return rich-formatted help for the root command.

        Layout:
          - Usage line and short description
          - Global options
          - Commands list
        """
        console = Console(record=True, file=io.StringIO())
        console.print("[bold]Usage:[/bold] shcompgen [GLOBAL OPTIONS] COMMAND [ARGS...]")
        console.print()
        console.print("  shcompgen detects, generates, lists and removes shell completion scripts.")
        console.print()

        console.print("[bold]Global Options:[/bold]")
        console.print(_options_table(ctx, self.params))
        console.print()

        console.print("[bold]Commands:[/bold]")
        cmd_table = Table(show_header=False, show_edge=False, box=None, pad_edge=False, expand=False)
        cmd_table.add_column(style="cyan", no_wrap=True)
        cmd_table.add_column(style="default")
        for name in sorted(self.commands):
            command = self.commands[name]
            help_text = (command.short_help or command.help or "").strip().splitlines()
            cmd_table.add_row(name, help_text[0] if help_text else "")
        console.print(cmd_table)

        return console.export_text()


@click.group(cls=_RichHelpGroup, context_settings=CLI_CONTEXT_SETTINGS)
@click.option("-v", "--verbose", count=True, help="Increase verbosity (use -vv for debug)")
@click.option(
    "--log-level",
    type=click.Choice(["CRITICAL", "ERROR", "WARNING", "INFO", "DEBUG"], case_sensitive=False),
    help="Set log level explicitly",
)
@click.option(
    "--shell",
    type=click.Choice([s.value for s in Shell], case_sensitive=False),
    help="Target shell (default: basename of $SHELL, then config default_shell)",
)
@click.option("--global", "scope", flag_value=Scope.GLOBAL.value, help="Use system-wide directories")
@click.option("--per-user", "scope", flag_value=Scope.PER_USER.value, help="Use per-user directories")
@click.option(
    "--config",
    "config_path",
    type=click.Path(path_type=Path, dir_okay=False),
    help="Explicit config file (highest precedence)",
)
@click.option(
    "--dir",
    "dirs",
    multiple=True,
    type=click.Path(path_type=Path, file_okay=False),
    help="Completion directory to use instead of the configured ones (repeatable; last is written)",
)
@click.version_option(__version__, "-V", "--version", message="%(version)s")
@click.pass_context
def cli(
    ctx: click.Context,
    *,
    verbose: int,
    log_level: str | None,
    shell: str | None,
    scope: str | None,
    config_path: Path | None,
    dirs: tuple[Path, ...],
) -> None:
    """Detect, generate, list and remove shell completion scripts."""
    configure_logging(verbose=verbose, log_level=log_level)
    ctx.obj = CliState(
        shell=shell,
        scope=Scope(scope) if scope else None,
        config_path=config_path,
        dirs=tuple(dirs),
    )


# Import subcommands and register them
from .clean import clean  # noqa: E402
from .completions import completions  # noqa: E402
from .detect import detect  # noqa: E402
from .fragment import fragment  # noqa: E402
from .generate import generate  # noqa: E402
from .init import init  # noqa: E402
from .listing import list_  # noqa: E402
from .remove import remove  # noqa: E402
from .version import version  # noqa: E402

cli.add_command(generate)
cli.add_command(remove)
cli.add_command(list_)
cli.add_command(clean)
cli.add_command(detect)
cli.add_command(init)
cli.add_command(fragment)
cli.add_command(completions)
cli.add_command(version)


def main(argv: list[str] | None = None) -> None:
    """Console entry point: run the Click group with the provided argv."""
    argv = list(sys.argv[1:] if argv is None else argv)
    try:
        cli.main(args=argv, prog_name="shcompgen", standalone_mode=False)
    except click.ClickException as err:
        err.show()
        raise SystemExit(err.exit_code) from err
    except (click.exceptions.Abort, KeyboardInterrupt) as err:
        print("Interrupted.", file=sys.stderr)
        raise SystemExit(EXIT_INTERRUPT) from err
    except BrokenPipeError:
        exit_on_broken_pipe()

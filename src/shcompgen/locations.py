"""Map (shell, scope) to directories and (shell, program) to file names."""

from __future__ import annotations

from typing import TYPE_CHECKING

from .constants import AGGREGATE_BASENAME, FISH_SUFFIX, ZSH_PREFIX, Scope, Shell, is_valid_program_name
from .errors import InvalidProgramNameError

if TYPE_CHECKING:
    from pathlib import Path

    from .config import Settings


def script_filename(shell: Shell, program: str) -> str:
    """Return the completion file name for ``program`` under ``shell``'s convention."""
    if not is_valid_program_name(program):
        msg = f"not a valid program name: {program}"
        raise InvalidProgramNameError(msg)
    if shell is Shell.FISH:
        return f"{program}{FISH_SUFFIX}"
    if shell is Shell.ZSH:
        return f"{ZSH_PREFIX}{program}"
    return program


def program_from_filename(shell: Shell, filename: str) -> str | None:
    """Inverse of :func:`script_filename`; ``None`` for names we never produce."""
    name = filename
    if shell is Shell.FISH:
        if not name.endswith(FISH_SUFFIX):
            return None
        name = name.removesuffix(FISH_SUFFIX)
    elif shell is Shell.ZSH:
        if not name.startswith(ZSH_PREFIX):
            return None
        name = name.removeprefix(ZSH_PREFIX)
    return name if is_valid_program_name(name) else None


def completion_script_path(
    settings: Settings,
    program: str,
    *,
    shell: Shell | None = None,
    scope: Scope | None = None,
    directory: Path | None = None,
) -> Path:
    """Return where ``program``'s completion script lives (default: the write target)."""
    shell = shell or settings.shell
    base = directory if directory is not None else settings.write_dir(shell, scope)
    return base / script_filename(shell, program)


def aggregate_path(settings: Settings, *, scope: Scope | None = None) -> Path:
    """Return the tcsh aggregate file for ``scope``."""
    return settings.loader_dir(scope) / AGGREGATE_BASENAME


def loader_path(settings: Settings, *, shell: Shell | None = None, scope: Scope | None = None) -> Path:
    """Return the loader script ``init`` writes for ``shell``."""
    shell = shell or settings.shell
    if shell is Shell.TCSH:
        return aggregate_path(settings, scope=scope)
    return settings.loader_dir(scope) / f"shcompgen.{shell.value}rc"

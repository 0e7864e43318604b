"""Helper utilities shared by tests that need settings and fake programs."""

from __future__ import annotations

from typing import TYPE_CHECKING

from shcompgen.config import Settings
from shcompgen.constants import Scope, Shell

if TYPE_CHECKING:
    from pathlib import Path

PERL_SHEBANG = "#!/usr/bin/perl\n"


def make_settings(
    root: Path,
    *,
    shell: Shell = Shell.BASH,
    scope: Scope = Scope.PER_USER,
    tool_id: str = "shcompgen",
    exclude_programs: tuple[str, ...] = (),
) -> Settings:
    """Return settings whose directories all live under ``root``."""
    directories = {(sh, sc): (root / "dirs" / sh.value / sc.value,) for sh in Shell for sc in Scope}
    loader_dirs = {sc: root / "loader" / sc.value for sc in Scope}
    return Settings(
        shell=shell,
        scope=scope,
        directories=directories,
        loader_dirs=loader_dirs,
        tool_id=tool_id,
        exclude_programs=exclude_programs,
    )


def write_program(directory: Path, name: str, content: str, *, executable: bool = True) -> Path:
    """Write a program file and mark it executable."""
    directory.mkdir(parents=True, exist_ok=True)
    path = directory / name
    path.write_text(content, encoding="utf-8")
    path.chmod(0o755 if executable else 0o644)
    return path

"""Shell startup snippets written by ``init``."""

from __future__ import annotations

import importlib.resources
import shlex
from typing import TYPE_CHECKING

from . import __version__
from .constants import Scope, Shell, shell_identifier
from .errors import ConfigLoadError

if TYPE_CHECKING:
    from pathlib import Path

    from .config import Settings

_TEMPLATES: dict[Shell, str] = {
    Shell.BASH: "bash.sh",
    Shell.ZSH: "zsh.zsh",
}

STARTUP_FILES: dict[tuple[Shell, Scope], str] = {
    (Shell.BASH, Scope.GLOBAL): "/etc/bash.bashrc",
    (Shell.BASH, Scope.PER_USER): "~/.bashrc",
    (Shell.ZSH, Scope.GLOBAL): "/etc/zsh/zshrc",
    (Shell.ZSH, Scope.PER_USER): "~/.zshrc",
    (Shell.TCSH, Scope.GLOBAL): "/etc/csh.cshrc",
    (Shell.TCSH, Scope.PER_USER): "~/.tcshrc",
    (Shell.FISH, Scope.GLOBAL): "/etc/fish/config.fish",
    (Shell.FISH, Scope.PER_USER): "~/.config/fish/config.fish",
}


def has_loader_template(shell: Shell) -> bool:
    return shell in _TEMPLATES


def load_template(shell: Shell) -> str:
    """Return the bundled loader template for ``shell``."""
    name = _TEMPLATES.get(shell)
    if name is None:
        msg = f"no loader template for {shell}"
        raise ValueError(msg)
    try:
        res = importlib.resources.files("shcompgen.resources.loaders").joinpath(name)
        return res.read_text(encoding="utf-8")
    except OSError as err:  # pragma: no cover - packaging problem
        msg = f"Error loading loader template {name}: {err}"
        raise ConfigLoadError(msg) from err


def _quoted(dirs: tuple[Path, ...]) -> str:
    return " ".join(shlex.quote(str(d)) for d in dirs)


def render_loader(settings: Settings, *, shell: Shell | None = None, scope: Scope | None = None) -> str:
    """Fill the loader template with the configured directories.

    The write target is searched first. For a per-user bash loader the
    global directories are added when bash-completion is active.
    """
    shell = shell or settings.shell
    scope = scope or settings.scope
    own = tuple(reversed(settings.dirs(shell, scope)))
    system: tuple[Path, ...] = ()
    if scope is Scope.PER_USER:
        system = tuple(reversed(settings.directories.get((shell, Scope.GLOBAL), ())))
    replacements = {
        "@TOOL_ID@": settings.tool_id,
        "@FUNC_ID@": shell_identifier(settings.tool_id),
        "@VERSION@": __version__,
        "@DIRS@": _quoted(own),
        "@SYSTEM_DIRS@": _quoted(system),
    }
    text = load_template(shell)
    for placeholder, value in replacements.items():
        text = text.replace(placeholder, value)
    return text


def startup_file(shell: Shell, scope: Scope) -> str:
    return STARTUP_FILES[shell, scope]


def instructions(shell: Shell, scope: Scope, loader: Path | None, directories: tuple[Path, ...]) -> str:
    """Tell the user what to add to their shell startup file."""
    target = startup_file(shell, scope)
    if shell is Shell.FISH:
        dirs = " ".join(shlex.quote(str(d)) for d in directories)
        return (
            f"Make sure fish searches the completion directories, e.g. in {target}:\n\n"
            f"    set -p fish_complete_path {dirs}\n"
        )
    assert loader is not None  # noqa: S101 - every other shell has a loader
    verb = "source" if shell is Shell.TCSH else "."
    return f"Please put this into your {target}:\n\n    {verb} {shlex.quote(str(loader))}\n"

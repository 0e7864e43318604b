"""Utilities for loading configuration and turning it into :class:`Settings`."""

from __future__ import annotations

import importlib.resources
import os
from collections.abc import Mapping
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import tomlkit
from tomlkit.exceptions import TOMLKitError

from shcompgen.constants import TOOL_ID, Scope, Shell
from shcompgen.errors import ConfigLoadError, UnsupportedShellError, ValidationError

CONFIG_FILENAME = "config.toml"
ENV_CONFIG_PATH = "SHCOMPGEN_CONFIG_PATH"


def load_default_config_text() -> str:
    """Return the bundled default configuration text."""
    try:
        cfg_path = importlib.resources.files("shcompgen.resources").joinpath("default_config.toml")
        with cfg_path.open("r", encoding="utf-8") as f:  # type: ignore[attr-defined]
            return f.read()
    except OSError as err:  # pragma: no cover - packaging problem
        msg = f"Error loading default configuration: {err}"
        raise ConfigLoadError(msg) from err


def load_default_config() -> dict[str, Any]:
    """Return the bundled default configuration as a Python dict."""
    return _parse_toml(load_default_config_text(), source="default_config.toml")


def _parse_toml(raw: str, *, source: str) -> dict[str, Any]:
    try:
        return tomlkit.loads(raw).unwrap()
    except TOMLKitError as e:
        msg = f"Error parsing {source}: {e}"
        raise ConfigLoadError(msg) from e


def merge_config(base: Mapping[str, Any], override: Mapping[str, Any]) -> dict[str, Any]:
    """Return ``base`` updated with ``override``, merging nested tables."""
    merged = dict(base)
    for key, value in override.items():
        current = merged.get(key)
        if isinstance(current, Mapping) and isinstance(value, Mapping):
            merged[key] = merge_config(current, value)
        else:
            merged[key] = value
    return merged


def _load_with_extends(path: Path, *, _visited: set[Path] | None = None) -> dict[str, Any]:
    """Load a TOML file supporting an optional 'extends' key for inheritance.

    Later files override earlier ones. Relative paths in 'extends' are resolved
    relative to the parent of ``path``.
    """
    if _visited is None:
        _visited = set()
    real = path.resolve()
    if real in _visited:
        # Prevent cycles; later file wins so just stop here.
        return {}
    _visited.add(real)

    try:
        raw = path.read_text(encoding="utf-8")
    except OSError as e:
        msg = f"Error reading {path}: {e}"
        raise ConfigLoadError(msg) from e
    data = _parse_toml(raw, source=path.name)

    base_cfg: dict[str, Any] = {}
    ext = data.get("extends")
    if isinstance(ext, str):
        ext_list = [ext]
    elif isinstance(ext, list):
        ext_list = [e for e in ext if isinstance(e, str)]
    else:
        ext_list = []
    for entry in ext_list:
        ext_path = Path(entry).expanduser()
        if not ext_path.is_absolute():
            ext_path = (path.parent / ext_path).resolve()
        if ext_path.exists():
            base_cfg = merge_config(base_cfg, _load_with_extends(ext_path, _visited=_visited))

    return merge_config(base_cfg, {k: v for k, v in data.items() if k != "extends"})


def load_toml_config(path: Path) -> dict[str, Any]:
    """Load configuration from a TOML file (supports 'extends')."""
    return _load_with_extends(path)


def _xdg_config_path() -> Path:
    xdg_home = os.environ.get("XDG_CONFIG_HOME")
    xdg_dir = Path(xdg_home) if xdg_home else Path.home() / ".config"
    return xdg_dir / "shcompgen" / CONFIG_FILENAME


def read_config(*, explicit_config: Path | None = None, ignore_default: bool = False) -> dict[str, Any]:
    """Read configuration merging multiple sources with clear precedence.

    Precedence (low -> high):
      1. bundled defaults (unless ``ignore_default``)
      2. XDG config: $XDG_CONFIG_HOME/shcompgen/config.toml
      3. $SHCOMPGEN_CONFIG_PATH (if set and present)
      4. ``explicit_config`` (from --config)
    """
    cfg: dict[str, Any] = {} if ignore_default else load_default_config()

    xdg = _xdg_config_path()
    if xdg.exists():
        cfg = merge_config(cfg, load_toml_config(xdg))

    env_path = os.environ.get(ENV_CONFIG_PATH)
    if env_path:
        p = Path(env_path)
        if p.exists():
            cfg = merge_config(cfg, load_toml_config(p))

    if explicit_config:
        if not explicit_config.exists():
            msg = f"Explicit config file not found: {explicit_config}"
            raise ConfigLoadError(msg)
        cfg = merge_config(cfg, load_toml_config(explicit_config))

    return cfg


def expand_dir(entry: str) -> Path:
    """Expand ``~`` and environment variables in a configured directory."""
    return Path(os.path.expandvars(os.path.expanduser(entry)))


@dataclass(frozen=True, slots=True)
class Settings:
    """Resolved configuration threaded through every operation."""

    shell: Shell
    scope: Scope
    directories: Mapping[tuple[Shell, Scope], tuple[Path, ...]]
    loader_dirs: Mapping[Scope, Path]
    tool_id: str = TOOL_ID
    exclude_programs: tuple[str, ...] = field(default_factory=tuple)

    def dirs(self, shell: Shell | None = None, scope: Scope | None = None) -> tuple[Path, ...]:
        """Return the DirectorySet for ``shell``/``scope`` (defaults: the selected ones)."""
        key = (shell or self.shell, scope or self.scope)
        dirs = self.directories.get(key, ())
        if not dirs:
            msg = f"no completion directory configured for {key[0]} ({key[1]})"
            raise ValidationError(msg)
        return dirs

    def write_dir(self, shell: Shell | None = None, scope: Scope | None = None) -> Path:
        """Return the default write target (last entry of the DirectorySet)."""
        return self.dirs(shell, scope)[-1]

    def loader_dir(self, scope: Scope | None = None) -> Path:
        return self.loader_dirs[scope or self.scope]


def parse_shell(name: str) -> Shell:
    """Return the :class:`Shell` for ``name`` or raise :class:`UnsupportedShellError`."""
    try:
        return Shell(name.strip().lower())
    except ValueError as err:
        supported = ", ".join(s.value for s in Shell)
        msg = f"Unsupported shell '{name}' (supported: {supported})"
        raise UnsupportedShellError(msg) from err


def detect_shell(explicit: str | None, *, env: Mapping[str, str], default: str) -> Shell:
    """Pick the shell: explicit choice, else basename of $SHELL, else ``default``."""
    if explicit:
        return parse_shell(explicit)
    from_env = env.get("SHELL", "").rstrip("/").rpartition("/")[2]
    return parse_shell(from_env or default)


def default_scope(*, is_root: bool) -> Scope:
    return Scope.GLOBAL if is_root else Scope.PER_USER


def _string_list(value: object, *, key: str) -> list[str]:
    if isinstance(value, str):
        return [value]
    if isinstance(value, list) and all(isinstance(v, str) for v in value):
        return list(value)
    msg = f"config key '{key}' must be a string or a list of strings"
    raise ConfigLoadError(msg)


def _directory_table(cfg: Mapping[str, Any]) -> dict[tuple[Shell, Scope], tuple[Path, ...]]:
    table: dict[tuple[Shell, Scope], tuple[Path, ...]] = {}
    dirs_cfg = cfg.get("dirs", {})
    if not isinstance(dirs_cfg, Mapping):
        msg = "config key 'dirs' must be a table"
        raise ConfigLoadError(msg)
    for shell in Shell:
        per_shell = dirs_cfg.get(shell.value, {})
        if not isinstance(per_shell, Mapping):
            msg = f"config key 'dirs.{shell.value}' must be a table"
            raise ConfigLoadError(msg)
        for scope in Scope:
            entries = _string_list(per_shell.get(scope.value, []), key=f"dirs.{shell.value}.{scope.value}")
            table[shell, scope] = tuple(expand_dir(e) for e in entries)
    return table


def _loader_table(cfg: Mapping[str, Any]) -> dict[Scope, Path]:
    loader_cfg = cfg.get("loader", {})
    if not isinstance(loader_cfg, Mapping):
        msg = "config key 'loader' must be a table"
        raise ConfigLoadError(msg)
    defaults = {Scope.GLOBAL: "/etc", Scope.PER_USER: "~/.config"}
    out: dict[Scope, Path] = {}
    for scope in Scope:
        value = loader_cfg.get(scope.value, defaults[scope])
        if not isinstance(value, str):
            msg = f"config key 'loader.{scope.value}' must be a string"
            raise ConfigLoadError(msg)
        out[scope] = expand_dir(value)
    return out


def build_settings(
    cfg: Mapping[str, Any],
    *,
    shell: str | None = None,
    scope: Scope | None = None,
    dir_override: tuple[Path, ...] = (),
    env: Mapping[str, str] | None = None,
    is_root: bool | None = None,
) -> Settings:
    """Turn a loaded config mapping plus CLI choices into :class:`Settings`."""
    env = os.environ if env is None else env
    if is_root is None:
        is_root = os.geteuid() == 0
    selected_shell = detect_shell(shell, env=env, default=str(cfg.get("default_shell", "bash")))
    selected_scope = scope or default_scope(is_root=is_root)

    directories = _directory_table(cfg)
    if dir_override:
        directories[selected_shell, selected_scope] = tuple(dir_override)

    tool_id = cfg.get("tool_id", TOOL_ID)
    if not isinstance(tool_id, str) or not tool_id:
        msg = "config key 'tool_id' must be a non-empty string"
        raise ConfigLoadError(msg)

    return Settings(
        shell=selected_shell,
        scope=selected_scope,
        directories=directories,
        loader_dirs=_loader_table(cfg),
        tool_id=tool_id,
        exclude_programs=tuple(_string_list(cfg.get("exclude_programs", []), key="exclude_programs")),
    )


def load_settings(
    *,
    explicit_config: Path | None = None,
    shell: str | None = None,
    scope: Scope | None = None,
    dir_override: tuple[Path, ...] = (),
) -> Settings:
    """Read config files and build settings for one CLI invocation."""
    cfg = read_config(explicit_config=explicit_config)
    return build_settings(cfg, shell=shell, scope=scope, dir_override=dir_override)

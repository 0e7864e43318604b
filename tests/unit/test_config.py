from __future__ import annotations

from pathlib import Path

import pytest

from shcompgen.config import (
    build_settings,
    default_scope,
    detect_shell,
    load_default_config,
    load_settings,
    merge_config,
    read_config,
)
from shcompgen.constants import Scope, Shell
from shcompgen.errors import ConfigLoadError, UnsupportedShellError, ValidationError

pytestmark = pytest.mark.small


def write_toml(p: Path, content: str) -> None:
    p.parent.mkdir(parents=True, exist_ok=True)
    p.write_text(content, encoding="utf-8")


def test_bundled_defaults_cover_every_shell_and_scope() -> None:
    cfg = load_default_config()
    assert cfg["tool_id"] == "shcompgen"
    for shell in Shell:
        for scope in Scope:
            assert cfg["dirs"][shell.value][scope.value]


def test_merge_config_merges_nested_tables() -> None:
    base = {"dirs": {"bash": {"global": ["/a"], "per_user": ["/b"]}}, "x": 1}
    merged = merge_config(base, {"dirs": {"bash": {"per_user": ["/c"]}}, "x": 2})
    assert merged == {"dirs": {"bash": {"global": ["/a"], "per_user": ["/c"]}}, "x": 2}


def test_config_precedence_explicit_overrides_env_and_xdg(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    xdg = tmp_path / "xdg"
    monkeypatch.setenv("XDG_CONFIG_HOME", str(xdg))
    write_toml(xdg / "shcompgen" / "config.toml", "tool_id = 'from-xdg'\ndefault_shell = 'zsh'\n")

    env_cfg = tmp_path / "env.toml"
    write_toml(env_cfg, "tool_id = 'from-env'\n")
    monkeypatch.setenv("SHCOMPGEN_CONFIG_PATH", str(env_cfg))

    explicit = tmp_path / "explicit.toml"
    write_toml(explicit, "tool_id = 'from-explicit'\n")

    cfg = read_config(explicit_config=explicit)
    assert cfg["tool_id"] == "from-explicit"
    assert cfg["default_shell"] == "zsh"
    assert "dirs" in cfg


def test_missing_explicit_config_is_an_error(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("XDG_CONFIG_HOME", str(tmp_path))
    monkeypatch.delenv("SHCOMPGEN_CONFIG_PATH", raising=False)
    with pytest.raises(ConfigLoadError, match="not found"):
        read_config(explicit_config=tmp_path / "nope.toml")


def test_invalid_toml_is_an_error(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("XDG_CONFIG_HOME", str(tmp_path))
    monkeypatch.delenv("SHCOMPGEN_CONFIG_PATH", raising=False)
    bad = tmp_path / "bad.toml"
    write_toml(bad, "tool_id = \n")
    with pytest.raises(ConfigLoadError, match="Error parsing bad.toml"):
        read_config(explicit_config=bad)


def test_extends_is_resolved_relative_to_the_file(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("XDG_CONFIG_HOME", str(tmp_path / "xdg"))
    monkeypatch.delenv("SHCOMPGEN_CONFIG_PATH", raising=False)
    write_toml(tmp_path / "base.toml", "tool_id = 'base'\ndefault_shell = 'fish'\n")
    child = tmp_path / "conf" / "child.toml"
    write_toml(child, "extends = '../base.toml'\ntool_id = 'child'\n")
    cfg = read_config(explicit_config=child, ignore_default=True)
    assert cfg == {"tool_id": "child", "default_shell": "fish"}


def test_detect_shell_order() -> None:
    assert detect_shell("ZSH", env={"SHELL": "/bin/bash"}, default="fish") is Shell.ZSH
    assert detect_shell(None, env={"SHELL": "/usr/local/bin/tcsh"}, default="fish") is Shell.TCSH
    assert detect_shell(None, env={}, default="fish") is Shell.FISH
    with pytest.raises(UnsupportedShellError, match="Unsupported shell 'ksh'"):
        detect_shell(None, env={"SHELL": "/bin/ksh"}, default="bash")


def test_default_scope() -> None:
    assert default_scope(is_root=True) is Scope.GLOBAL
    assert default_scope(is_root=False) is Scope.PER_USER


def test_build_settings_expands_dirs_and_applies_override(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("HOME", str(tmp_path))
    cfg = {
        "dirs": {"bash": {"global": ["/g1", "/g2"], "per_user": ["$HOME/bc"]}},
        "exclude_programs": "*~",
    }
    env = {"SHELL": "/bin/bash"}
    settings = build_settings(cfg, env=env, is_root=True)
    assert settings.shell is Shell.BASH
    assert settings.scope is Scope.GLOBAL
    assert settings.dirs() == (Path("/g1"), Path("/g2"))
    assert settings.write_dir() == Path("/g2")
    assert settings.exclude_programs == ("*~",)

    per_user = build_settings(cfg, env=env, is_root=False)
    assert per_user.dirs() == (tmp_path / "bc",)

    overridden = build_settings(cfg, env=env, is_root=False, dir_override=(tmp_path,))
    assert overridden.dirs() == (tmp_path,)
    with pytest.raises(ValidationError):
        overridden.dirs(Shell.ZSH)


@pytest.mark.parametrize(
    "cfg",
    [
        {"dirs": "nope"},
        {"dirs": {"bash": {"global": [1]}}},
        {"tool_id": ""},
        {"loader": {"global": 3}},
        {"exclude_programs": 5},
    ],
)
def test_build_settings_rejects_bad_values(cfg: dict[str, object]) -> None:
    with pytest.raises(ConfigLoadError):
        build_settings(cfg, env={"SHELL": "bash"}, is_root=False)


def test_load_settings_uses_bundled_defaults(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("XDG_CONFIG_HOME", str(tmp_path))
    monkeypatch.delenv("SHCOMPGEN_CONFIG_PATH", raising=False)
    monkeypatch.setenv("HOME", str(tmp_path / "home"))
    settings = load_settings(shell="fish", scope=Scope.PER_USER)
    assert settings.write_dir() == tmp_path / "home" / ".config" / "fish" / "completions"
    assert settings.loader_dir() == tmp_path / "home" / ".config"

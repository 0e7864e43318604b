from __future__ import annotations

from typing import TYPE_CHECKING

import pytest
from hypothesis import given
from hypothesis import strategies as st

from shcompgen.constants import Scope, Shell
from shcompgen.errors import InvalidProgramNameError, ValidationError
from shcompgen.locations import (
    aggregate_path,
    completion_script_path,
    loader_path,
    program_from_filename,
    script_filename,
)
from tests.support import make_settings

if TYPE_CHECKING:
    from pathlib import Path

pytestmark = pytest.mark.small


@pytest.mark.parametrize(
    ("shell", "filename"),
    [(Shell.BASH, "foo"), (Shell.TCSH, "foo"), (Shell.ZSH, "_foo"), (Shell.FISH, "foo.fish")],
)
def test_script_filename_conventions(shell: Shell, filename: str) -> None:
    assert script_filename(shell, "foo") == filename
    assert program_from_filename(shell, filename) == "foo"


@given(st.from_regex(r"[A-Za-z0-9_.,:-]+", fullmatch=True), st.sampled_from(list(Shell)))
def test_filename_convention_is_reversible(program: str, shell: Shell) -> None:
    assert program_from_filename(shell, script_filename(shell, program)) == program


@pytest.mark.parametrize("name", ["", "foo bar", "../foo", "a/b"])
def test_script_filename_rejects_invalid_names(name: str) -> None:
    with pytest.raises(InvalidProgramNameError):
        script_filename(Shell.BASH, name)


def test_program_from_filename_ignores_foreign_names() -> None:
    assert program_from_filename(Shell.ZSH, "foo") is None
    assert program_from_filename(Shell.FISH, "foo.sh") is None
    assert program_from_filename(Shell.BASH, "foo bar") is None


def test_completion_paths_use_the_last_directory(tmp_path: Path) -> None:
    settings = make_settings(tmp_path, shell=Shell.ZSH)
    assert settings.dirs() == (tmp_path / "dirs" / "zsh" / "per_user",)
    assert completion_script_path(settings, "foo") == tmp_path / "dirs" / "zsh" / "per_user" / "_foo"
    assert (
        completion_script_path(settings, "foo", shell=Shell.FISH, scope=Scope.GLOBAL)
        == tmp_path / "dirs" / "fish" / "global" / "foo.fish"
    )
    assert completion_script_path(settings, "foo", directory=tmp_path) == tmp_path / "_foo"


def test_missing_directory_set_is_a_validation_error(tmp_path: Path) -> None:
    settings = make_settings(tmp_path)
    empty = type(settings)(
        shell=settings.shell,
        scope=settings.scope,
        directories={},
        loader_dirs=settings.loader_dirs,
    )
    with pytest.raises(ValidationError):
        empty.dirs()


def test_loader_and_aggregate_paths(tmp_path: Path) -> None:
    settings = make_settings(tmp_path, shell=Shell.BASH)
    assert loader_path(settings) == tmp_path / "loader" / "per_user" / "shcompgen.bashrc"
    assert aggregate_path(settings, scope=Scope.GLOBAL) == tmp_path / "loader" / "global" / "shcompgen.tcshrc"
    assert loader_path(settings, shell=Shell.TCSH) == aggregate_path(settings)

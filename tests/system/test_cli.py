from __future__ import annotations

import json
from typing import TYPE_CHECKING

import pytest
from click.testing import CliRunner

from shcompgen import __version__
from shcompgen.cli import cli
from shcompgen.constants import EXIT_CONFIG, EXIT_FAILURE, EXIT_PARTIAL, EXIT_PATH, EXIT_USAGE
from tests.support import write_program

if TYPE_CHECKING:
    from pathlib import Path

pytestmark = pytest.mark.medium

GETOPT_PROGRAM = "#!/usr/bin/perl\nuse Getopt::Long::Complete;\nGetOptions('help|h' => sub {}, 'name=s' => \\$n);\n"


def _run(args: list[str], stdin: str | None = None) -> tuple[int, str, str]:
    runner = CliRunner()
    res = runner.invoke(cli, args, input=stdin)
    return res.exit_code, res.stdout, res.stderr


@pytest.fixture
def workspace(tmp_path: Path, monkeypatch: pytest.MonkeyPatch, isolated_config: Path) -> Path:
    """A search path with one completable and one plain program."""
    del isolated_config
    bin_dir = tmp_path / "bin"
    write_program(bin_dir, "foo", GETOPT_PROGRAM)
    write_program(bin_dir, "plain", "#!/bin/sh\necho plain\n")
    monkeypatch.setenv("PATH", str(bin_dir))
    monkeypatch.setenv("HOME", str(tmp_path / "home"))
    (tmp_path / "comp").mkdir()
    return tmp_path


def _base(tmp_path: Path, shell: str = "bash") -> list[str]:
    return ["--shell", shell, "--per-user", "--dir", str(tmp_path / "comp")]


def test_generate_list_remove_round_trip(workspace: Path) -> None:
    base = _base(workspace)

    code, out, _ = _run([*base, "generate", "foo", "--format", "json"])
    assert code == 0
    payload = json.loads(out)
    assert payload["outcome"] == "ok"
    assert payload["items"] == [
        {
            "item": "foo",
            "status": "created",
            "message": "Getopt::Long::Complete",
            "path": str(workspace / "comp" / "foo"),
        },
    ]
    assert (workspace / "comp" / "foo").read_text(encoding="utf-8").endswith("complete -C foo foo\n")

    code, out, _ = _run([*base, "list"])
    assert code == 0
    assert out == "foo\n"

    code, out, _ = _run([*base, "generate", "foo"])
    assert code == 0
    assert "skipped-exists" in out
    assert "outcome: nothing" in out

    code, out, _ = _run([*base, "remove", "foo"])
    assert code == 0
    assert "removed" in out
    assert not (workspace / "comp" / "foo").exists()

    code, out, _ = _run([*base, "list"])
    assert code == 0
    assert out == ""


def test_generate_everything_on_path(workspace: Path) -> None:
    code, out, _ = _run([*_base(workspace, "zsh"), "generate", "--format", "json"])
    assert code == 0
    assert [item["item"] for item in json.loads(out)["items"]] == ["foo"]
    assert (workspace / "comp" / "_foo").exists()


def test_partial_and_not_found_exit_codes(workspace: Path) -> None:
    code, out, _ = _run([*_base(workspace), "generate", "foo", "missing"])
    assert code == EXIT_PARTIAL
    assert "not-found" in out
    assert "outcome: partial" in out

    code, out, _ = _run([*_base(workspace), "generate", "missing", "--format", "json"])
    assert code == EXIT_PATH
    assert json.loads(out)["items"][0]["message"] == "Not in PATH"


def test_remove_leaves_foreign_scripts(workspace: Path) -> None:
    foreign = workspace / "comp" / "plain"
    foreign.write_text("complete -F _plain plain\n", encoding="utf-8")
    code, out, _ = _run([*_base(workspace), "remove", "plain", "--format", "json"])
    assert code == 0
    assert json.loads(out)["items"][0]["status"] == "skipped-not-owned"
    assert foreign.exists()


def test_clean_removes_scripts_for_vanished_programs(workspace: Path) -> None:
    base = _base(workspace)
    _run([*base, "generate", "foo"])
    (workspace / "bin" / "foo").unlink()
    code, out, _ = _run([*base, "clean", "--format", "json"])
    assert code == 0
    assert json.loads(out)["items"][0]["status"] == "removed"


def test_list_detail_json(workspace: Path) -> None:
    base = _base(workspace)
    _run([*base, "generate", "foo"])
    code, out, _ = _run([*base, "list", "--detail", "--format", "json"])
    assert code == 0
    assert json.loads(out) == [
        {"program": "foo", "note": "Getopt::Long::Complete", "path": str(workspace / "comp" / "foo")},
    ]


def test_detect_reports_without_writing(workspace: Path) -> None:
    code, out, _ = _run([*_base(workspace), "detect", "foo", "plain", "--format", "json"])
    assert code == 0
    reports = json.loads(out)
    assert [r["status"] for r in reports] == ["completable", "not-completable"]
    assert reports[0]["kind"] == "getopt-long"
    assert not list((workspace / "comp").iterdir())

    code, _, _ = _run([*_base(workspace), "detect", "missing"])
    assert code == EXIT_FAILURE


def test_fish_generation_is_static(workspace: Path) -> None:
    code, _, _ = _run([*_base(workspace, "fish"), "generate", "foo"])
    assert code == 0
    text = (workspace / "comp" / "foo.fish").read_text(encoding="utf-8")
    assert "complete -c 'foo' -l 'name' -r" in text


def test_tcsh_generation_writes_aggregate(workspace: Path) -> None:
    code, _, _ = _run([*_base(workspace, "tcsh"), "generate", "foo"])
    assert code == 0
    aggregate = workspace / "home" / ".config" / "shcompgen.tcshrc"
    assert aggregate.read_text(encoding="utf-8").splitlines()[1] == "complete foo 'p/*/`foo`/'"


def test_generate_into_fragment_file(workspace: Path) -> None:
    target = workspace / "all.bash"
    code, _, _ = _run([*_base(workspace), "generate", "foo", "--into", str(target)])
    assert code == 0
    assert target.read_text(encoding="utf-8") == (
        "# BEGIN FRAGMENT id=foo note=Getopt::Long::Complete\ncomplete -C foo foo\n# END FRAGMENT id=foo\n"
    )
    code, _, _ = _run([*_base(workspace), "remove", "foo", "--from", str(target)])
    assert code == 0
    assert target.read_text(encoding="utf-8") == ""


def test_init_writes_loader_and_prints_instructions(workspace: Path) -> None:
    comp = workspace / "fresh"
    code, out, _ = _run(["--shell", "bash", "--per-user", "--dir", str(comp), "init"])
    assert code == 0
    loader = workspace / "home" / ".config" / "shcompgen.bashrc"
    assert f"Directory '{comp}' created." in out
    assert f"Wrote {loader}" in out
    assert f". {loader}" in out
    assert str(comp) in loader.read_text(encoding="utf-8")


def test_fragment_commands(workspace: Path) -> None:
    target = workspace / "notes.ini"
    code, out, _ = _run(
        ["fragment", "insert", str(target), "greeting", "--attrs", "lang=en", "--comment-style", "ini"],
        stdin="hello\n",
    )
    assert code == 0
    assert out == "greeting: inserted\n"
    assert target.read_text(encoding="utf-8").startswith("; BEGIN FRAGMENT id=greeting lang=en\n")

    code, out, _ = _run(["fragment", "list", str(target), "--comment-style", "ini", "--format", "json"])
    assert code == 0
    assert json.loads(out) == [{"id": "greeting", "attrs": {"lang": "en"}, "payload": "hello"}]

    code, out, _ = _run(["fragment", "insert", str(target), "greeting", "--payload", "x", "--comment-style", "ini"])
    assert out == "greeting: noop\n"

    code, out, _ = _run(["fragment", "delete", str(target), "greeting", "--comment-style", "ini"])
    assert code == 0
    assert out == "greeting: deleted\n"


def test_fragment_errors(workspace: Path) -> None:
    target = workspace / "rc"
    code, _, err = _run(["fragment", "insert", str(target), "bad id", "--payload", "x"])
    assert code == EXIT_USAGE
    assert "not a valid fragment id" in err

    code, _, err = _run(["fragment", "insert", str(target), "x"], stdin="# END FRAGMENT id=x\n")
    assert code == EXIT_USAGE
    assert "contains a fragment marker" in err
    assert not target.exists()

    target.write_text("# BEGIN FRAGMENT id=a\n", encoding="utf-8")
    code, _, err = _run(["fragment", "list", str(target)])
    assert code == EXIT_FAILURE
    assert "not terminated" in err


def test_missing_explicit_config_exits_with_config_code(workspace: Path) -> None:
    code, _, err = _run(["--config", str(workspace / "nope.toml"), "list"])
    assert code == EXIT_CONFIG
    assert "Explicit config file not found" in err


def test_config_file_supplies_directories(workspace: Path) -> None:
    cfg = workspace / "cfg.toml"
    cfg.write_text(f"[dirs.bash]\nper_user = ['{workspace / 'comp'}']\n", encoding="utf-8")
    code, _, _ = _run(["--config", str(cfg), "--per-user", "generate", "foo"])
    assert code == 0
    assert (workspace / "comp" / "foo").exists()


def test_unknown_shell_choice_is_usage_error(workspace: Path) -> None:
    code, _, _ = _run(["--shell", "ksh", "list"])
    assert code == EXIT_USAGE


def test_root_help_lists_commands() -> None:
    code, out, _ = _run(["--help"])
    assert code == 0
    assert out.count("Usage: ") == 1
    assert "Commands:" in out
    for name in ("generate", "remove", "list", "clean", "detect", "init", "fragment"):
        assert name in out


@pytest.mark.parametrize("args", [["--version"], ["-V"], ["version"]])
def test_version_outputs_only_the_version(args: list[str]) -> None:
    code, out, _ = _run(args)
    assert code == 0
    assert out == f"{__version__}\n"


def test_completions_script_for_bash() -> None:
    code, out, _ = _run(["completions", "--shell", "bash"])
    assert code == 0
    assert "_SHCOMPGEN_COMPLETE=bash_source shcompgen" in out

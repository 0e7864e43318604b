from __future__ import annotations

from pathlib import Path

import pytest
from hypothesis import given
from hypothesis import strategies as st

from shcompgen.constants import FrameworkKind
from shcompgen.detector import (
    REASON_INLINE,
    REASON_NO_MATCH,
    REASON_NOT_A_SCRIPT,
    REASON_OPTED_OUT,
    CompleterSource,
    CompletionBinding,
    Detector,
    DetectorDependencies,
    NotCompletable,
    Unsupported,
    detect,
)
from shcompgen.errors import ERROR_MSG_NOT_IN_PATH, InvalidProgramNameError, ProgramNotFoundError, ValidationError
from shcompgen.resolver import ProgramRef

pytestmark = pytest.mark.small

NOHINT = "# FRAGMENT id=shcompgen-nohint\n"
COMMAND_HINT = "# FRAGMENT id=shcompgen-hint command=foo-complete\n"
COMPLETER_HINT = "# FRAGMENT id=shcompgen-hint completer=1 for=foo\n"
USE_PERICMD = "use Perinci::CmdLine::Any;\n"
USE_GETOPT = "use Getopt::Long::Complete;\n"


def test_non_script_is_never_completable() -> None:
    result = detect(USE_PERICMD, "foo")
    assert result == NotCompletable(program="foo", reason=REASON_NOT_A_SCRIPT)


def test_plain_script_has_no_mechanism() -> None:
    assert detect("#!/bin/sh\necho hi\n", "foo") == NotCompletable(program="foo", reason=REASON_NO_MATCH)


def test_perinci_cmdline_program_completes_itself() -> None:
    result = detect(f"#!/usr/bin/perl\n{USE_PERICMD}", "foo", command="/opt/bin/foo")
    assert result == CompletionBinding(
        program="foo",
        completer_command="/opt/bin/foo",
        framework_kind=FrameworkKind.PERINCI_CMDLINE,
        note="Perinci::CmdLine::Any",
    )


@pytest.mark.parametrize(
    ("line", "kind", "note"),
    [
        ("use Perinci::CmdLine::Lite 1.0;", FrameworkKind.PERINCI_CMDLINE, "Perinci::CmdLine::Lite"),
        ("require Perinci::CmdLine;", FrameworkKind.PERINCI_CMDLINE, "Perinci::CmdLine"),
        ("use Getopt::Long::Subcommand;", FrameworkKind.GETOPT_LONG, "Getopt::Long::Subcommand"),
        ("  use Getopt::Long::Complete qw(GetOptions);", FrameworkKind.GETOPT_LONG, "Getopt::Long::Complete"),
    ],
)
def test_framework_use_lines(line: str, kind: FrameworkKind, note: str) -> None:
    result = detect(f"#!/usr/bin/env perl\n{line}\n", "foo")
    assert isinstance(result, CompletionBinding)
    assert result.framework_kind is kind
    assert result.note == note


@pytest.mark.parametrize(
    "content",
    [
        "#!/bin/sh\nuse Perinci::CmdLine::Any;\n",
        "#!/usr/bin/perl\nuse Perinci::CmdLine::Gen;\n",
        "#!/usr/bin/perl\n# use Perinci::CmdLine::Any;\n",
        "#!/usr/bin/perl\n__END__\nuse Getopt::Long::Complete;\n",
    ],
)
def test_framework_look_alikes_do_not_match(content: str) -> None:
    assert isinstance(detect(content, "foo"), NotCompletable)


def test_command_hint_with_args() -> None:
    content = '#!/bin/sh\n# FRAGMENT id=shcompgen-hint command=foo-complete command_args="-x"\n'
    result = detect(content, "foo")
    assert result == CompletionBinding(
        program="foo",
        completer_command="foo-complete",
        completer_args=("-x",),
        framework_kind=FrameworkKind.HINT_COMMAND,
        note="hint(command)",
    )


def test_command_args_are_split_like_a_shell() -> None:
    content = '#!/bin/sh\n# FRAGMENT id=shcompgen-hint command=c command_args="--profile \'a b\' -q"\n'
    result = detect(content, "foo")
    assert isinstance(result, CompletionBinding)
    assert result.completer_args == ("--profile", "a b", "-q")


@pytest.mark.parametrize(
    ("hint", "command", "args"),
    [
        ("command=foo --complete", "foo", ("--complete",)),
        ("command=foo-complete --mode 'a b'  ", "foo-complete", ("--mode", "a b")),
        ('command=foo --complete command_args="-x -y"', "foo", ("--complete", "-x", "-y")),
    ],
)
def test_unquoted_multi_word_command_hint(hint: str, command: str, args: tuple[str, ...]) -> None:
    result = detect(f"#!/bin/sh\n# FRAGMENT id=shcompgen-hint {hint}\n", "foo")
    assert isinstance(result, CompletionBinding)
    assert result.completer_command == command
    assert result.completer_args == args
    assert result.framework_kind is FrameworkKind.HINT_COMMAND


def test_quoted_command_keeps_its_spaces() -> None:
    result = detect('#!/bin/sh\n# FRAGMENT id=shcompgen-hint command="/opt/my tools/foo"\n', "foo")
    assert isinstance(result, CompletionBinding)
    assert result.completer_command == "/opt/my tools/foo"
    assert result.completer_args == ()


def test_completer_hint_targets_completee() -> None:
    result = detect(f"#!/bin/sh\n{COMPLETER_HINT}", "_foo", command="/usr/bin/_foo")
    assert result == CompletionBinding(
        program="_foo",
        completer_command="/usr/bin/_foo",
        completee="foo",
        framework_kind=FrameworkKind.HINT_COMPLETER,
        note="hint(completer)",
    )
    assert isinstance(result, CompletionBinding)
    assert result.target == "foo"


def test_completer_hint_rejects_invalid_name() -> None:
    with pytest.raises(InvalidProgramNameError):
        detect("#!/bin/sh\n# FRAGMENT id=shcompgen-hint completer=1 for=\"foo bar\"\n", "_foo")


def test_malformed_hint_is_a_validation_error() -> None:
    with pytest.raises(ValidationError):
        detect('#!/bin/sh\n# FRAGMENT id=shcompgen-hint command="unterminated\n', "foo")


def test_other_tool_markers_are_ignored() -> None:
    content = "#!/bin/sh\n# FRAGMENT id=mytool-hint command=foo-complete\n"
    assert isinstance(detect(content, "foo"), NotCompletable)
    assert isinstance(detect(content, "foo", tool_id="mytool"), CompletionBinding)


RULE_LINES = st.lists(
    st.sampled_from([NOHINT, COMMAND_HINT, COMPLETER_HINT, USE_PERICMD, USE_GETOPT]),
    min_size=1,
    max_size=5,
)


@given(RULE_LINES)
def test_rule_priority_is_fixed(lines: list[str]) -> None:
    result = detect("#!/usr/bin/perl\n" + "".join(lines), "foo")
    if NOHINT in lines:
        assert result == NotCompletable(program="foo", reason=REASON_OPTED_OUT)
    elif COMMAND_HINT in lines:
        assert isinstance(result, CompletionBinding)
        assert result.framework_kind is FrameworkKind.HINT_COMMAND
    elif COMPLETER_HINT in lines:
        assert isinstance(result, CompletionBinding)
        assert result.framework_kind is FrameworkKind.HINT_COMPLETER
    elif USE_PERICMD in lines:
        assert isinstance(result, CompletionBinding)
        assert result.framework_kind is FrameworkKind.PERINCI_CMDLINE
    else:
        assert isinstance(result, CompletionBinding)
        assert result.framework_kind is FrameworkKind.GETOPT_LONG


@pytest.mark.parametrize(
    ("content", "note"),
    [
        ("$fatpacked{'Perinci/CmdLine/Lite.pm'} = '...';\n", "embedded(Perinci::CmdLine::Lite)"),
        ("### Getopt/Long/Complete.pm ###\npackage X;\n", "embedded(Getopt::Long::Complete)"),
        ("package Getopt::Long::Subcommand;\nsub x {}\n", "embedded(Getopt::Long::Subcommand)"),
    ],
)
def test_embedded_framework(content: str, note: str) -> None:
    result = detect(f"#!/usr/bin/perl\n{content}", "foo")
    assert isinstance(result, CompletionBinding)
    assert result.note == note


def test_inline_script_is_not_completable() -> None:
    content = "#!/usr/bin/perl\n# PERICMD_INLINE_SCRIPT: {}\npackage Perinci::CmdLine::Lite;\n"
    assert detect(content, "foo") == NotCompletable(program="foo", reason=REASON_INLINE)


# --- static (introspectable) detection ------------------------------------


def _detector(files: dict[str, str]) -> Detector:
    def reader(path: Path) -> str:
        try:
            return files[path.name]
        except KeyError:
            raise FileNotFoundError(path) from None

    def resolver(name: str) -> ProgramRef:
        if name not in files:
            raise ProgramNotFoundError(name, ERROR_MSG_NOT_IN_PATH)
        return ProgramRef(reference=name, name=name, path=Path("/bin") / name, via_search_path=True)

    return Detector(dependencies=DetectorDependencies(text_reader=reader, program_resolver=resolver))


def _ref(name: str) -> ProgramRef:
    return ProgramRef(reference=name, name=name, path=Path("/bin") / name, via_search_path=True)


def test_detect_program_reads_through_gateway() -> None:
    detector = _detector({"foo": f"#!/usr/bin/perl\n{USE_GETOPT}"})
    result = detector.detect_program(_ref("foo"))
    assert isinstance(result, CompletionBinding)
    assert result.source is None
    assert result.completer_command == "foo"


def test_static_detection_points_at_own_file() -> None:
    detector = _detector({"foo": f"#!/usr/bin/perl\n{USE_GETOPT}"})
    result = detector.detect_program(_ref("foo"), static=True)
    assert isinstance(result, CompletionBinding)
    assert result.source == CompleterSource(path=Path("/bin/foo"), kind=FrameworkKind.GETOPT_LONG)


def test_static_detection_follows_command_hint() -> None:
    detector = _detector(
        {
            "foo": f"#!/bin/sh\n{COMMAND_HINT}",
            "foo-complete": f"#!/usr/bin/perl\n{USE_PERICMD}",
        },
    )
    result = detector.detect_program(_ref("foo"), static=True)
    assert isinstance(result, CompletionBinding)
    assert result.source == CompleterSource(path=Path("/bin/foo-complete"), kind=FrameworkKind.PERINCI_CMDLINE)


@pytest.mark.parametrize(
    ("files", "reason"),
    [
        ({"foo": f"#!/bin/sh\n{COMMAND_HINT}"}, "not found"),
        ({"foo": f"#!/bin/sh\n{COMMAND_HINT}", "foo-complete": "#!/bin/sh\necho\n"}, "not a supported framework"),
        (
            {"foo": f"#!/bin/sh\n{COMMAND_HINT}", "foo-complete": "#!/bin/sh\n# FRAGMENT id=shcompgen-hint command=x\n"},
            "yet another completer",
        ),
        ({"_foo": f"#!/bin/sh\n{COMPLETER_HINT}"}, "does not use a supported framework"),
    ],
)
def test_static_detection_unsupported(files: dict[str, str], reason: str) -> None:
    detector = _detector(files)
    program = next(iter(files))
    result = detector.detect_program(_ref(program), static=True)
    assert isinstance(result, Unsupported)
    assert reason in result.reason
    assert result.binding.program == program


def test_static_detection_of_completer_with_framework() -> None:
    detector = _detector({"_foo": f"#!/usr/bin/perl\n{COMPLETER_HINT}{USE_GETOPT}"})
    result = detector.detect_program(_ref("_foo"), static=True)
    assert isinstance(result, CompletionBinding)
    assert result.target == "foo"
    assert result.source == CompleterSource(path=Path("/bin/_foo"), kind=FrameworkKind.GETOPT_LONG)


def test_detect_program_propagates_read_errors() -> None:
    with pytest.raises(OSError):
        _detector({}).detect_program(_ref("gone"))

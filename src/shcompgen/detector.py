"""Classify a program's completion capability from its file contents.

Rules run in a fixed priority order and the first one that matches wins:

1. ``# FRAGMENT id=<tool>-nohint`` opts the program out.
2. ``# FRAGMENT id=<tool>-hint command=<cmd> [command_args="..."]`` names a
   completer command.
3. ``# FRAGMENT id=<tool>-hint completer=1 for=<name>`` marks the file as
   the completer of another program.
4. ``use Perinci::CmdLine...`` (framework family A).
5. ``use Getopt::Long::Complete`` / ``Getopt::Long::Subcommand`` (family B).
6. A family module embedded by a packer (fatpack, datapack, inline package).

Files that do not start with ``#!`` are never completable.
"""

from __future__ import annotations

import re
import shlex
from collections.abc import Callable
from dataclasses import dataclass, field, replace
from functools import cached_property
from typing import TYPE_CHECKING, TypeAlias

from .constants import TOOL_ID, FrameworkKind, is_valid_program_name
from .errors import InvalidProgramNameError, ProgramNotFoundError, ValidationError
from .fileio import read_text
from .markup import HINT, NOHINT, has_marker, iter_markers, marker_id, parse_attrs
from .perl_source import program_code
from .resolver import ProgramRef, resolve_program

if TYPE_CHECKING:
    from pathlib import Path

REASON_NOT_A_SCRIPT = "Not a script"
REASON_OPTED_OUT = "Opted out via nohint marker"
REASON_NO_MATCH = "No supported completion mechanism detected"
REASON_INLINE = "Perinci::CmdLine::Inline script, self-completion unsupported"

NOTE_HINT_COMMAND = "hint(command)"
NOTE_HINT_COMPLETER = "hint(completer)"

FRAMEWORK_KINDS = frozenset({FrameworkKind.PERINCI_CMDLINE, FrameworkKind.GETOPT_LONG})

_FAMILY_A = r"Perinci::CmdLine(?:::Any|::Lite|::Classic)?"
_FAMILY_B = r"Getopt::Long::(?:Complete|Subcommand)"
_FAMILY_A_PATH = r"Perinci/CmdLine(?:/Any|/Lite|/Classic)?\.pm"
_FAMILY_B_PATH = r"Getopt/Long/(?:Complete|Subcommand)\.pm"

_FAMILY_A_USE_RE = re.compile(rf"^\s*(?:use|require)\s+({_FAMILY_A})\b(?!::)", re.MULTILINE)
_FAMILY_B_USE_RE = re.compile(rf"^\s*(?:use|require)\s+({_FAMILY_B})\b(?!::)", re.MULTILINE)
_INLINE_SCRIPT_RE = re.compile(r"^# PERICMD_INLINE_SCRIPT\b", re.MULTILINE)
_COMMAND_ARGS_TAIL_RE = re.compile(r'[ \t]+(command_args=(?:"(?:[^"\\]|\\.)*"|[^\s"\\]*))[ \t]*$')
_EMBEDDED_RES = (
    re.compile(rf"""\$fatpacked\{{\s*["']({_FAMILY_A_PATH}|{_FAMILY_B_PATH})["']\s*\}}"""),
    re.compile(rf"^### ({_FAMILY_A_PATH}|{_FAMILY_B_PATH}) ###\s*$", re.MULTILINE),
    re.compile(rf"^\s*package\s+({_FAMILY_A}|{_FAMILY_B})\s*;", re.MULTILINE),
)


@dataclass(frozen=True, slots=True)
class CompleterSource:
    """The file whose declared options describe a static completion."""

    path: Path
    kind: FrameworkKind


@dataclass(frozen=True, slots=True)
class CompletionBinding:
    """How to complete one program."""

    program: str
    completer_command: str
    framework_kind: FrameworkKind
    note: str
    completer_args: tuple[str, ...] = ()
    completee: str | None = None
    source: CompleterSource | None = None

    @property
    def target(self) -> str:
        """Name of the program being completed."""
        return self.completee or self.program


@dataclass(frozen=True, slots=True)
class NotCompletable:
    program: str
    reason: str


@dataclass(frozen=True, slots=True)
class Unsupported:
    """Detection succeeded but the selected shell cannot use the binding."""

    program: str
    reason: str
    binding: CompletionBinding


DetectionResult: TypeAlias = "CompletionBinding | NotCompletable | Unsupported"


def module_kind(module: str) -> FrameworkKind:
    if module.startswith("Perinci"):
        return FrameworkKind.PERINCI_CMDLINE
    return FrameworkKind.GETOPT_LONG


def parse_hint_attrs(text: str) -> dict[str, str]:
    """Parse the attributes of a hint marker.

    Besides the marker grammar, an unquoted ``command=`` value may run to
    the end of the line (``command=foo --complete``). Its first word is the
    command and the rest go in front of any trailing ``command_args=``.
    """
    try:
        return parse_attrs(text)
    except ValidationError:
        head, sep, rest = text.partition("command=")
        if not sep or rest.startswith('"') or head[-1:].strip():
            raise
    attrs = parse_attrs(head)
    m = _COMMAND_ARGS_TAIL_RE.search(rest)
    if m:
        attrs |= parse_attrs(m.group(1))
        rest = rest[: m.start()]
    try:
        words = shlex.split(rest)
        extra = shlex.split(attrs.get("command_args", ""))
    except ValueError as err:
        msg = f"malformed hint command {rest.strip()!r}: {err}"
        raise ValidationError(msg) from err
    if words:
        attrs["command"] = words[0]
        attrs["command_args"] = shlex.join([*words[1:], *extra])
    return attrs


@dataclass(frozen=True)
class DetectionContext:
    """Everything a rule may look at for one file."""

    content: str
    program: str
    command: str
    tool_id: str = TOOL_ID

    @cached_property
    def interpreter(self) -> str:
        return self.content.partition("\n")[0]

    @cached_property
    def is_script(self) -> bool:
        return self.content.startswith("#!")

    @cached_property
    def is_perl(self) -> bool:
        return "perl" in self.interpreter

    @cached_property
    def code(self) -> str:
        """Program text before any ``__END__``/``__DATA__`` section."""
        return program_code(self.content)

    def hints(self) -> list[dict[str, str]]:
        return list(iter_markers(self.content, marker_id(HINT, tool_id=self.tool_id), parse=parse_hint_attrs))


class DetectionRule:
    """One entry of the ordered rule set: a predicate plus a handler."""

    name = "rule"

    def match(self, ctx: DetectionContext) -> object | None:
        raise NotImplementedError

    def build(self, ctx: DetectionContext, found: object) -> DetectionResult:
        raise NotImplementedError


class OptOutRule(DetectionRule):
    name = "nohint"

    def match(self, ctx: DetectionContext) -> object | None:
        return True if has_marker(ctx.content, marker_id(NOHINT, tool_id=ctx.tool_id)) else None

    def build(self, ctx: DetectionContext, found: object) -> DetectionResult:
        del found
        return NotCompletable(program=ctx.program, reason=REASON_OPTED_OUT)


class CommandHintRule(DetectionRule):
    name = "hint-command"

    def match(self, ctx: DetectionContext) -> object | None:
        return next((attrs for attrs in ctx.hints() if "command" in attrs), None)

    def build(self, ctx: DetectionContext, found: object) -> DetectionResult:
        attrs: dict[str, str] = found  # type: ignore[assignment]
        command = attrs["command"]
        if not command:
            msg = f"empty completer command in hint of '{ctx.program}'"
            raise ValidationError(msg)
        try:
            args = tuple(shlex.split(attrs.get("command_args", "")))
        except ValueError as err:
            msg = f"malformed command_args in hint of '{ctx.program}': {err}"
            raise ValidationError(msg) from err
        return CompletionBinding(
            program=ctx.program,
            completer_command=command,
            completer_args=args,
            framework_kind=FrameworkKind.HINT_COMMAND,
            note=NOTE_HINT_COMMAND,
        )


class CompleterHintRule(DetectionRule):
    name = "hint-completer"

    def match(self, ctx: DetectionContext) -> object | None:
        return next(
            (attrs for attrs in ctx.hints() if attrs.get("completer") == "1" and "for" in attrs),
            None,
        )

    def build(self, ctx: DetectionContext, found: object) -> DetectionResult:
        attrs: dict[str, str] = found  # type: ignore[assignment]
        completee = attrs["for"]
        if not is_valid_program_name(completee):
            msg = f"completee specified in '{ctx.program}' is not a valid program name: {completee}"
            raise InvalidProgramNameError(msg)
        return CompletionBinding(
            program=ctx.program,
            completer_command=ctx.command,
            completee=completee,
            framework_kind=FrameworkKind.HINT_COMPLETER,
            note=NOTE_HINT_COMPLETER,
        )


@dataclass(frozen=True)
class FrameworkUseRule(DetectionRule):
    """A ``use``/``require`` of a framework module in the program's code."""

    pattern: re.Pattern[str]
    kind: FrameworkKind
    name: str = "framework"

    def match(self, ctx: DetectionContext) -> object | None:
        if not ctx.is_perl:
            return None
        m = self.pattern.search(ctx.code)
        return m.group(1) if m else None

    def build(self, ctx: DetectionContext, found: object) -> DetectionResult:
        return CompletionBinding(
            program=ctx.program,
            completer_command=ctx.command,
            framework_kind=self.kind,
            note=str(found),
        )


class EmbeddedFrameworkRule(DetectionRule):
    """Framework code packed into the script instead of loaded with ``use``."""

    name = "embedded"

    def match(self, ctx: DetectionContext) -> object | None:
        if not ctx.is_perl:
            return None
        if _INLINE_SCRIPT_RE.search(ctx.content):
            return REASON_INLINE
        for pattern in _EMBEDDED_RES:
            m = pattern.search(ctx.content)
            if m:
                return m.group(1).removesuffix(".pm").replace("/", "::")
        return None

    def build(self, ctx: DetectionContext, found: object) -> DetectionResult:
        if found == REASON_INLINE:
            return NotCompletable(program=ctx.program, reason=REASON_INLINE)
        module = str(found)
        return CompletionBinding(
            program=ctx.program,
            completer_command=ctx.command,
            framework_kind=module_kind(module),
            note=f"embedded({module})",
        )


FRAMEWORK_RULES: tuple[DetectionRule, ...] = (
    FrameworkUseRule(name="perinci-cmdline", pattern=_FAMILY_A_USE_RE, kind=FrameworkKind.PERINCI_CMDLINE),
    FrameworkUseRule(name="getopt-long", pattern=_FAMILY_B_USE_RE, kind=FrameworkKind.GETOPT_LONG),
    EmbeddedFrameworkRule(),
)


@dataclass(slots=True)
class RuleSet:
    """Ordered rules; the order is the priority."""

    rules: tuple[DetectionRule, ...]

    @classmethod
    def default(cls) -> RuleSet:
        return cls(rules=(OptOutRule(), CommandHintRule(), CompleterHintRule(), *FRAMEWORK_RULES))

    @classmethod
    def frameworks_only(cls) -> RuleSet:
        return cls(rules=FRAMEWORK_RULES)

    def evaluate(self, ctx: DetectionContext) -> DetectionResult:
        if not ctx.is_script:
            return NotCompletable(program=ctx.program, reason=REASON_NOT_A_SCRIPT)
        for rule in self.rules:
            found = rule.match(ctx)
            if found is not None:
                return rule.build(ctx, found)
        return NotCompletable(program=ctx.program, reason=REASON_NO_MATCH)


@dataclass(frozen=True, slots=True)
class DetectorDependencies:
    """Gateway used by the detector to perform I/O."""

    text_reader: Callable[[Path], str]
    program_resolver: Callable[[str], ProgramRef]

    @classmethod
    def default(cls) -> DetectorDependencies:
        return cls(text_reader=read_text, program_resolver=resolve_program)


@dataclass(slots=True)
class Detector:
    tool_id: str = TOOL_ID
    rules: RuleSet = field(default_factory=RuleSet.default)
    dependencies: DetectorDependencies = field(default_factory=DetectorDependencies.default)

    def detect(self, content: str, program: str, *, command: str | None = None) -> DetectionResult:
        """Classify ``content`` of ``program``.

        ``command`` is how the program is invoked (defaults to its name).
        Raises :class:`ValidationError` for malformed hints.
        """
        ctx = DetectionContext(content=content, program=program, command=command or program, tool_id=self.tool_id)
        return self.rules.evaluate(ctx)

    def detect_program(self, program: ProgramRef, *, static: bool = False) -> DetectionResult:
        """Read and classify ``program``.

        With ``static`` the binding must also point at a completer whose
        options can be introspected; otherwise the result is
        :class:`Unsupported`. ``OSError`` propagates.
        """
        content = self.dependencies.text_reader(program.path)
        result = self.detect(content, program.name, command=program.command)
        if static and isinstance(result, CompletionBinding):
            return self._with_static_source(result, program, content)
        return result

    def _with_static_source(self, binding: CompletionBinding, program: ProgramRef, content: str) -> DetectionResult:
        kind = binding.framework_kind
        if kind in FRAMEWORK_KINDS:
            return replace(binding, source=CompleterSource(path=program.path, kind=kind))

        if kind is FrameworkKind.HINT_COMPLETER:
            ctx = DetectionContext(content=content, program=program.name, command=program.command, tool_id=self.tool_id)
            own = RuleSet.frameworks_only().evaluate(ctx)
            if isinstance(own, CompletionBinding):
                return replace(binding, source=CompleterSource(path=program.path, kind=own.framework_kind))
            return self._unsupported(binding, f"completer '{program.name}' does not use a supported framework")

        completer = binding.completer_command
        try:
            ref = self.dependencies.program_resolver(completer)
            inner = self.detect(self.dependencies.text_reader(ref.path), ref.name, command=ref.command)
        except ProgramNotFoundError as err:
            return self._unsupported(binding, f"completer command not found: {err}")
        except OSError as err:
            return self._unsupported(binding, f"cannot read completer '{completer}': {err}")
        except ValidationError as err:
            return self._unsupported(binding, f"completer '{completer}' has a malformed hint: {err}")

        if isinstance(inner, CompletionBinding) and inner.framework_kind in FRAMEWORK_KINDS:
            return replace(binding, source=CompleterSource(path=ref.path, kind=inner.framework_kind))
        if isinstance(inner, CompletionBinding):
            return self._unsupported(binding, f"completer '{completer}' points to yet another completer")
        if isinstance(inner, NotCompletable):
            return self._unsupported(binding, f"completer '{completer}' is not a supported framework: {inner.reason}")
        return self._unsupported(binding, inner.reason)

    @staticmethod
    def _unsupported(binding: CompletionBinding, reason: str) -> Unsupported:
        return Unsupported(program=binding.program, reason=reason, binding=binding)


def detect(content: str, program: str, *, command: str | None = None, tool_id: str = TOOL_ID) -> DetectionResult:
    """Classify ``content`` with the default rule set."""
    return Detector(tool_id=tool_id).detect(content, program, command=command)

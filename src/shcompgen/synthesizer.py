"""Turn a :class:`CompletionBinding` into shell code.

bash, zsh and tcsh call the completer at keystroke time through the
``COMP_LINE``/``COMP_POINT`` (tcsh: ``COMMAND_LINE``) protocol. fish gets a
static list of ``complete`` definitions recovered by
:mod:`shcompgen.introspect`.
"""

from __future__ import annotations

import logging
import re
import shlex
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Protocol

from .constants import TOOL_ID, ZSH_PREFIX, Shell, shell_identifier
from .errors import IntrospectionError, SynthesisError, UnsupportedShellError
from .introspect import Arity, OptionIntrospector, OptionSet, OptionSpec, ValueType
from .logging_utils import StructuredLogEvent, log_event
from .markup import header_line

if TYPE_CHECKING:
    from .detector import CompletionBinding

logger = logging.getLogger(__name__)

_TCSH_BARE_RE = re.compile(r"[A-Za-z0-9_./:,=+@%-]+")
_TCSH_FORBIDDEN = frozenset("'\"`!\n")
_TCSH_SEPARATORS = "/@|^%#"


@dataclass(frozen=True, slots=True)
class RenderContext:
    """What every shell strategy needs besides the binding."""

    tool_id: str
    header: str

    def function_name(self, program: str) -> str:
        return f"_{shell_identifier(self.tool_id)}_{shell_identifier(program)}"


class ShellStrategy(Protocol):
    def render(self, binding: CompletionBinding, ctx: RenderContext) -> list[str]: ...


def _joined_args(binding: CompletionBinding) -> str:
    return shlex.join(binding.completer_args)


@dataclass(slots=True)
class BashStrategy:
    """``complete -C`` when possible, a wrapper function when args must be spliced."""

    def render(self, binding: CompletionBinding, ctx: RenderContext) -> list[str]:  # noqa: PLR6301
        prog = binding.target
        command = shlex.quote(binding.completer_command)
        if not binding.completer_args:
            return [ctx.header, f"complete -C {command} {shlex.quote(prog)}"]

        func = ctx.function_name(prog)
        extra = shlex.quote(_joined_args(binding))
        return [
            ctx.header,
            f"{func}() {{",
            f"    local extra={extra}",
            '    local first="${COMP_LINE%%[[:blank:]]*}"',
            '    local line="$first $extra${COMP_LINE:${#first}}"',
            "    local point=$COMP_POINT",
            "    (( point > ${#first} )) && point=$(( point + ${#extra} + 1 ))",
            "    local IFS=$'\\n'",
            f'    COMPREPLY=( $(COMP_LINE="$line" COMP_POINT="$point" {command} "$1" "$2" "$3") )',
            "}",
            f"complete -F {func} {shlex.quote(prog)}",
        ]


@dataclass(slots=True)
class ZshStrategy:
    """A ``#compdef`` function speaking the same protocol; marker goes last."""

    def render(self, binding: CompletionBinding, ctx: RenderContext) -> list[str]:  # noqa: PLR6301
        prog = binding.target
        func = ctx.function_name(prog)
        command = shlex.quote(binding.completer_command)
        lines = [
            f"#compdef {prog}",
            f"{func}() {{",
            "    local -a reply",
            '    local line="$BUFFER" point="$CURSOR"',
        ]
        if binding.completer_args:
            lines += [
                f"    local extra={shlex.quote(_joined_args(binding))}",
                '    local first="${line%%[[:blank:]]*}"',
                '    line="$first $extra${line:${#first}}"',
                "    (( point > ${#first} )) && point=$(( point + ${#extra} + 1 ))",
            ]
        lines += [
            f'    reply=( ${{(f)"$(COMP_LINE="$line" COMP_POINT="$point" {command})"}} )',
            "    compadd -- $reply",
            "}",
            f'if [[ "$funcstack[1]" = {shlex.quote(ZSH_PREFIX + prog)} ]]; then',
            f'    {func} "$@"',
            "else",
            f"    compdef {func} {shlex.quote(prog)}",
            "fi",
            ctx.header,
        ]
        return lines


def _tcsh_word(word: str) -> str:
    if _TCSH_FORBIDDEN.intersection(word):
        msg = f"cannot quote {word!r} for tcsh"
        raise SynthesisError(msg)
    return word if _TCSH_BARE_RE.fullmatch(word) else f'"{word}"'


@dataclass(slots=True)
class TcshStrategy:
    """One ``complete`` directive; it must be the first line for the aggregate."""

    def render(self, binding: CompletionBinding, ctx: RenderContext) -> list[str]:  # noqa: PLR6301
        prog = binding.target
        invoke = " ".join(_tcsh_word(w) for w in (binding.completer_command, *binding.completer_args))
        sep = next((s for s in _TCSH_SEPARATORS if s not in invoke), None)
        if sep is None:
            msg = f"no usable separator for tcsh completion of {prog!r}"
            raise SynthesisError(msg)
        return [f"complete {_tcsh_word(prog)} 'p{sep}*{sep}`{invoke}`{sep}'", ctx.header]


def fish_quote(value: str) -> str:
    """Quote ``value`` as a fish single-quoted string."""
    return "'" + value.replace("\\", "\\\\").replace("'", "\\'") + "'"


@dataclass(slots=True)
class FishStrategy:
    """Static ``complete -c`` definitions from the completer's declared options."""

    introspector: OptionIntrospector

    def render(self, binding: CompletionBinding, ctx: RenderContext) -> list[str]:
        prog = binding.target
        if binding.source is None:
            msg = f"fish needs a static completer source for {prog!r}"
            raise SynthesisError(msg)
        try:
            option_set = self.introspector.introspect(binding.source.path, binding.source.kind)
        except IntrospectionError as err:
            log_event(
                logger,
                StructuredLogEvent(
                    name="synthesize.placeholder",
                    message="introspection failed, writing placeholder",
                    context={"program": prog, "reason": err.reason},
                    level=logging.WARNING,
                ),
            )
            return [
                ctx.header,
                f"# {ctx.tool_id}: cannot generate fish completion for {prog}",
                f"# {ctx.tool_id}: {err}",
            ]
        return [ctx.header, *fish_definitions(prog, option_set)]


def _fish_option_line(prog: str, opt: OptionSpec, condition: str | None) -> list[str]:
    parts = ["complete", "-c", fish_quote(prog)]
    if condition:
        parts += ["-n", fish_quote(condition)]
    for name in opt.long_names:
        parts += ["-l", fish_quote(name)]
    for name in opt.short_names:
        parts += ["-s" if len(name) == 1 else "-o", fish_quote(name)]
    if opt.arity is Arity.REQUIRED:
        parts.append("-r" if opt.value_type in {None, ValueType.STRING} else "-x")
    if opt.summary:
        parts += ["-d", fish_quote(opt.summary)]
    lines = [" ".join(parts)]
    if opt.negatable:
        negated = ["complete", "-c", fish_quote(prog)]
        if condition:
            negated += ["-n", fish_quote(condition)]
        for name in opt.long_names:
            negated += ["-l", fish_quote(f"no-{name}")]
        lines.append(" ".join(negated))
    return lines


def fish_definitions(prog: str, option_set: OptionSet, *, parent: str | None = None) -> list[str]:
    """Render ``option_set`` as fish ``complete`` lines."""
    lines: list[str] = []
    condition = None if parent is None else f"__fish_seen_subcommand_from {parent}"
    for opt in option_set.options:
        lines += _fish_option_line(prog, opt, condition)
    list_condition = "__fish_use_subcommand" if parent is None else f"__fish_seen_subcommand_from {parent}"
    for sub in option_set.subcommands:
        parts = ["complete", "-c", fish_quote(prog), "-n", fish_quote(list_condition), "-f", "-a", fish_quote(sub.name)]
        if sub.summary:
            parts += ["-d", fish_quote(sub.summary)]
        lines.append(" ".join(parts))
    for sub in option_set.subcommands:
        lines += fish_definitions(prog, sub.options, parent=sub.name)
    return lines


StrategySource = ShellStrategy | Callable[["ScriptSynthesizer"], ShellStrategy]

_SHELL_STRATEGIES: dict[Shell, StrategySource] = {
    Shell.BASH: BashStrategy(),
    Shell.ZSH: ZshStrategy(),
    Shell.TCSH: TcshStrategy(),
    Shell.FISH: lambda synth: FishStrategy(synth.introspector),
}


@dataclass(slots=True)
class ScriptSynthesizer:
    """Application service rendering completion scripts for every supported shell."""

    tool_id: str = TOOL_ID
    introspector: OptionIntrospector = field(default_factory=OptionIntrospector)
    _strategies: dict[Shell, ShellStrategy] = field(init=False, repr=False)

    def __post_init__(self) -> None:
        self._strategies = {}
        for shell, source in _SHELL_STRATEGIES.items():
            if hasattr(source, "render"):
                self._strategies[shell] = source  # type: ignore[assignment]
            else:
                factory = source  # type: ignore[assignment]
                self._strategies[shell] = factory(self)

    def synthesize(self, binding: CompletionBinding, shell: Shell, *, header: bool = True) -> str:
        """Return the script text (newline terminated) with its ownership marker.

        Without ``header`` the marker line is left out; fragments carry the
        note in their own attributes.
        """
        strategy = self._strategies.get(shell)
        if strategy is None:
            msg = f"Unsupported shell '{shell}'"
            raise UnsupportedShellError(msg)
        ctx = RenderContext(tool_id=self.tool_id, header=header_line(binding.note, tool_id=self.tool_id))
        lines = strategy.render(binding, ctx)
        if not header:
            lines = [line for line in lines if line != ctx.header]
        return "\n".join(lines) + "\n"


def synthesize(binding: CompletionBinding, shell: Shell, *, tool_id: str = TOOL_ID) -> str:
    return ScriptSynthesizer(tool_id=tool_id).synthesize(binding, shell)

"""Recover a completer program's declared options from its Perl source.

Shells such as fish cannot ask the completer at keystroke time, so the
options have to be known when the script is generated. Two declaration
conventions are understood:

- ``Perinci::CmdLine`` programs: the ``->new(url => ..., subcommands => ...)``
  call plus the ``$SPEC{func}`` metadata of the functions it points to;
- ``Getopt::Long::Complete`` / ``Getopt::Long::Subcommand`` programs: the
  option specs passed to ``GetOptions``.
"""

from __future__ import annotations

import logging
import re
from collections.abc import Callable, Mapping
from dataclasses import dataclass, field
from enum import StrEnum
from typing import TYPE_CHECKING, TypeAlias

from .constants import FrameworkKind
from .errors import IntrospectionError
from .fileio import read_text
from .logging_utils import StructuredLogEvent, log_event
from .perl_source import Opaque, PerlValue, find_spec_assignment, pairs, parse_arguments_at, program_code

if TYPE_CHECKING:
    from pathlib import Path

logger = logging.getLogger(__name__)


class Arity(StrEnum):
    """Whether an option takes a value."""

    NONE = "none"
    REQUIRED = "required"
    OPTIONAL = "optional"


class ValueType(StrEnum):
    STRING = "string"
    INTEGER = "integer"
    NUMBER = "number"


@dataclass(frozen=True, slots=True)
class OptionSpec:
    """One command-line option with all of its spellings."""

    long_names: tuple[str, ...] = ()
    short_names: tuple[str, ...] = ()
    arity: Arity = Arity.NONE
    value_type: ValueType | None = None
    repeatable: bool = False
    negatable: bool = False
    summary: str | None = None

    @property
    def names(self) -> tuple[str, ...]:
        return self.long_names + self.short_names


@dataclass(frozen=True, slots=True)
class Subcommand:
    name: str
    options: OptionSet
    summary: str | None = None


@dataclass(frozen=True, slots=True)
class OptionSet:
    """Options and subcommands of one program (or one subcommand level)."""

    options: tuple[OptionSpec, ...] = ()
    subcommands: tuple[Subcommand, ...] = ()
    summary: str | None = None


# --- Getopt::Long -----------------------------------------------------------

_GETOPT_SPEC_RE = re.compile(
    r"""
    ^(?P<names>[\w?-]+(?:\|[\w?-]+)*)
    (?:
        (?P<negatable>!)
      | (?P<increment>\+)
      | (?P<mode>[=:])(?P<type>[sifo])(?P<dest>[@%])?(?P<repeat>\{\d*,?\d*\})?
      | :(?P<default>-?\d+|\+)
    )?$
    """,
    re.VERBOSE,
)
_GETOPT_TYPES = {"s": ValueType.STRING, "i": ValueType.INTEGER, "o": ValueType.INTEGER, "f": ValueType.NUMBER}
_GETOPT_CALL_RE = re.compile(r"(?<!sub )\bGetOptions(?:WithCompletion)?\s*(?=\()")


def parse_getopt_spec(spec: str, *, summary: str | None = None) -> OptionSpec:
    """Parse one ``Getopt::Long`` option spec such as ``name|n=s@``.

    Raises :class:`ValueError` for strings that are not option specs.
    """
    m = _GETOPT_SPEC_RE.match(spec.strip())
    if m is None:
        msg = f"not a Getopt::Long option spec: {spec!r}"
        raise ValueError(msg)
    names = m.group("names").split("|")
    long_names = tuple(n for n in names if len(n) > 1)
    short_names = tuple(n for n in names if len(n) == 1)
    if m.group("mode"):
        arity = Arity.REQUIRED if m.group("mode") == "=" else Arity.OPTIONAL
        return OptionSpec(
            long_names=long_names,
            short_names=short_names,
            arity=arity,
            value_type=_GETOPT_TYPES[m.group("type")],
            repeatable=bool(m.group("dest") or m.group("repeat")),
            summary=summary,
        )
    if m.group("default"):
        return OptionSpec(
            long_names=long_names,
            short_names=short_names,
            arity=Arity.OPTIONAL,
            value_type=ValueType.INTEGER,
            summary=summary,
        )
    return OptionSpec(
        long_names=long_names,
        short_names=short_names,
        repeatable=bool(m.group("increment")),
        negatable=bool(m.group("negatable")),
        summary=summary,
    )


def _summary(value: PerlValue) -> str | None:
    if isinstance(value, Mapping):
        summary = value.get("summary")
        return summary if isinstance(summary, str) else None
    return None


def _subcommand_optionset(spec: Mapping[str, PerlValue]) -> OptionSet:
    options: list[OptionSpec] = []
    raw_options = spec.get("options")
    if isinstance(raw_options, Mapping):
        options.extend(parse_getopt_spec(key, summary=_summary(value)) for key, value in raw_options.items())
    subcommands: list[Subcommand] = []
    raw_subcommands = spec.get("subcommands")
    if isinstance(raw_subcommands, Mapping):
        for name, sub in raw_subcommands.items():
            if not isinstance(sub, Mapping):
                continue
            subcommands.append(Subcommand(name=name, options=_subcommand_optionset(sub), summary=_summary(sub)))
    return OptionSet(options=tuple(options), subcommands=tuple(subcommands), summary=_summary(spec))


def _last_call_args(pattern: re.Pattern[str], code: str, what: str) -> list[PerlValue]:
    matches = list(pattern.finditer(code))
    if not matches:
        msg = f"no {what} call found"
        raise ValueError(msg)
    # Embedded copies of the framework come before the program's own code.
    return parse_arguments_at(code, matches[-1].end())


def introspect_getopt_long(code: str) -> OptionSet:
    """Read the ``GetOptions`` call of a Getopt::Long::Complete/Subcommand program."""
    args = _last_call_args(_GETOPT_CALL_RE, code, "GetOptions")
    if len(args) % 2 == 0:
        as_hash = pairs(args)
        if isinstance(as_hash.get("options"), Mapping) or isinstance(as_hash.get("subcommands"), Mapping):
            return _subcommand_optionset(as_hash)
    options: list[OptionSpec] = []
    for item in args:
        # Destinations (\$var, sub {...}, \%opts) are opaque; specs are strings.
        if not isinstance(item, str):
            continue
        try:
            options.append(parse_getopt_spec(item))
        except ValueError:
            logger.debug("ignoring non-spec argument %r", item)
    if not options:
        msg = "GetOptions call declares no options"
        raise ValueError(msg)
    return OptionSet(options=tuple(options))


# --- Perinci::CmdLine -------------------------------------------------------

_PERICMD_NEW_RE = re.compile(r"\bPerinci::CmdLine(?:::\w+)*\s*->\s*new\s*(?=\()")
_NUMERIC_TYPES = {"int": ValueType.INTEGER, "float": ValueType.NUMBER, "num": ValueType.NUMBER}
_REPEATABLE_TYPES = frozenset({"array", "hash"})

PERICMD_COMMON_OPTIONS: tuple[OptionSpec, ...] = (
    OptionSpec(long_names=("help",), short_names=("h", "?"), summary="Display help message and exit"),
    OptionSpec(long_names=("version",), short_names=("v",), summary="Display program's version and exit"),
    OptionSpec(
        long_names=("format",),
        arity=Arity.REQUIRED,
        value_type=ValueType.STRING,
        summary="Choose output format, e.g. json, text",
    ),
    OptionSpec(long_names=("json",), summary="Set output format to json"),
    OptionSpec(long_names=("naked-res",), summary="When outputting as JSON, strip result envelope"),
)
PERICMD_SUBCOMMAND_OPTIONS: tuple[OptionSpec, ...] = (
    OptionSpec(long_names=("subcommands",), summary="List available subcommands"),
    OptionSpec(long_names=("cmd",), arity=Arity.REQUIRED, value_type=ValueType.STRING, summary="Select subcommand"),
)


def _schema_type(schema: PerlValue) -> str:
    head = schema[0] if isinstance(schema, list) and schema else schema
    return head.rstrip("*") if isinstance(head, str) else "str"


def _option_from_arg(name: str, spec: Mapping[str, PerlValue]) -> list[OptionSpec]:
    """Map one ``args`` entry of function metadata to its option(s)."""
    opt_name = name.replace("_", "-")
    summary = _summary(spec)
    schema_type = _schema_type(spec.get("schema", "str"))
    aliases = spec.get("cmdline_aliases")

    extra_long: list[str] = []
    extra_short: list[str] = []
    standalone: list[OptionSpec] = []
    if isinstance(aliases, Mapping):
        for alias, alias_spec in aliases.items():
            alias_name = alias.replace("_", "-")
            own = alias_spec if isinstance(alias_spec, Mapping) else {}
            if own.get("is_flag") or "schema" in own or "code" in own:
                standalone.append(_alias_option(alias_name, own, fallback_summary=summary))
            elif len(alias_name) == 1:
                extra_short.append(alias_name)
            else:
                extra_long.append(alias_name)

    if schema_type == "bool":
        main = OptionSpec(
            long_names=(opt_name, *extra_long),
            short_names=tuple(extra_short),
            negatable=True,
            summary=summary,
        )
    else:
        main = OptionSpec(
            long_names=(opt_name, *extra_long),
            short_names=tuple(extra_short),
            arity=Arity.REQUIRED,
            value_type=_NUMERIC_TYPES.get(schema_type, ValueType.STRING),
            repeatable=schema_type in _REPEATABLE_TYPES,
            summary=summary,
        )
    return [main, *standalone]


def _alias_option(name: str, spec: Mapping[str, PerlValue], *, fallback_summary: str | None) -> OptionSpec:
    summary = _summary(spec) or fallback_summary
    long_names = (name,) if len(name) > 1 else ()
    short_names = (name,) if len(name) == 1 else ()
    if spec.get("is_flag") or "schema" not in spec:
        return OptionSpec(long_names=long_names, short_names=short_names, summary=summary)
    schema_type = _schema_type(spec["schema"])
    if schema_type == "bool":
        return OptionSpec(long_names=long_names, short_names=short_names, summary=summary)
    return OptionSpec(
        long_names=long_names,
        short_names=short_names,
        arity=Arity.REQUIRED,
        value_type=_NUMERIC_TYPES.get(schema_type, ValueType.STRING),
        summary=summary,
    )


def _function_options(code: str, url: PerlValue) -> tuple[list[OptionSpec], str | None]:
    if not isinstance(url, str) or not url.strip("/"):
        msg = f"unsupported url {url!r}"
        raise ValueError(msg)
    func = url.rstrip("/").rpartition("/")[2]
    meta = find_spec_assignment(code, func)
    if not isinstance(meta, Mapping):
        msg = f"no metadata found for function '{func}'"
        raise ValueError(msg)
    options: list[OptionSpec] = []
    args = meta.get("args")
    if isinstance(args, Mapping):
        for name in sorted(args):
            spec = args[name]
            options.extend(_option_from_arg(name, spec if isinstance(spec, Mapping) else {}))
    return options, _summary(meta)


def _with_common(options: list[OptionSpec], common: tuple[OptionSpec, ...]) -> tuple[OptionSpec, ...]:
    taken = {name for opt in options for name in opt.names}
    extra = [opt for opt in common if not taken.intersection(opt.names)]
    return tuple(extra + options)


def introspect_perinci_cmdline(code: str) -> OptionSet:
    """Read the ``Perinci::CmdLine->new(...)`` call and referenced metadata."""
    new_args = pairs(_last_call_args(_PERICMD_NEW_RE, code, "Perinci::CmdLine->new"))
    raw_subcommands = new_args.get("subcommands")
    if isinstance(raw_subcommands, Mapping) and raw_subcommands:
        subcommands: list[Subcommand] = []
        for name in sorted(raw_subcommands):
            sub = raw_subcommands[name]
            if not isinstance(sub, Mapping):
                logger.debug("subcommand %s is computed at run time; skipped", name)
                continue
            try:
                options, meta_summary = _function_options(code, sub.get("url"))
            except ValueError as err:
                logger.debug("subcommand %s: %s", name, err)
                options, meta_summary = [], None
            subcommands.append(
                Subcommand(
                    name=name,
                    options=OptionSet(options=tuple(options), summary=meta_summary),
                    summary=_summary(sub) or meta_summary,
                ),
            )
        common = PERICMD_COMMON_OPTIONS + PERICMD_SUBCOMMAND_OPTIONS
        return OptionSet(options=_with_common([], common), subcommands=tuple(subcommands))
    if isinstance(raw_subcommands, Opaque):
        msg = "subcommands are computed at run time"
        raise ValueError(msg)

    options, summary = _function_options(code, new_args.get("url"))
    return OptionSet(options=_with_common(options, PERICMD_COMMON_OPTIONS), summary=summary)


# --- dispatch ---------------------------------------------------------------

Introspector: TypeAlias = "Callable[[str], OptionSet]"

_INTROSPECTORS: dict[FrameworkKind, Introspector] = {
    FrameworkKind.PERINCI_CMDLINE: introspect_perinci_cmdline,
    FrameworkKind.GETOPT_LONG: introspect_getopt_long,
}


@dataclass(slots=True)
class OptionIntrospector:
    """Turns a completer file plus its framework kind into an :class:`OptionSet`."""

    text_reader: Callable[[Path], str] = read_text
    introspectors: dict[FrameworkKind, Introspector] = field(default_factory=lambda: dict(_INTROSPECTORS))

    def introspect(self, path: Path, kind: FrameworkKind) -> OptionSet:
        """Return the options ``path`` declares; raise :class:`IntrospectionError` otherwise."""
        handler = self.introspectors.get(kind)
        if handler is None:
            raise IntrospectionError(path, f"no introspector for framework kind '{kind}'")
        try:
            content = self.text_reader(path)
        except OSError as err:
            raise IntrospectionError(path, str(err)) from err
        try:
            result = handler(program_code(content))
        except ValueError as err:  # PerlSourceError included
            raise IntrospectionError(path, str(err)) from err
        log_event(
            logger,
            StructuredLogEvent(
                name="introspect.done",
                message="recovered declared options",
                context={
                    "path": path,
                    "kind": kind,
                    "options": len(result.options),
                    "subcommands": len(result.subcommands),
                },
                level=logging.DEBUG,
            ),
        )
        return result


def introspect(path: Path, kind: FrameworkKind) -> OptionSet:
    """Introspect ``path`` with the default introspectors."""
    return OptionIntrospector().introspect(path, kind)

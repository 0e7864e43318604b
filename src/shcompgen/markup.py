"""Marker comment grammar shared by hints, ownership headers and fragments.

A marker carries ``key=value`` attributes separated by whitespace. Values
are bare words or double-quoted strings with backslash escapes::

    # FRAGMENT id=shcompgen-hint command=foo command_args="--profile \\"a b\\""
"""

from __future__ import annotations

import re
from collections.abc import Callable, Iterator, Mapping

from .constants import TOOL_ID
from .errors import ValidationError

_KEY = r"[A-Za-z_][A-Za-z0-9_.-]*"
_ATTR_RE = re.compile(rf'({_KEY})=("(?:[^"\\]|\\.)*"|[^\s"\\]*)')
_BARE_VALUE_RE = re.compile(r'[^\s"\\]+')
_KEY_RE = re.compile(_KEY)
_ESCAPE_RE = re.compile(r"\\(.)")

MARKER_PREFIX = "# FRAGMENT "
_MARKER_LINE_RE = re.compile(r"^[ \t]*# FRAGMENT[ \t]+id=(\S+)[ \t]*(.*?)[ \t]*$", re.MULTILINE)

HINT = "hint"
NOHINT = "nohint"
HEADER = "header"


def _unquote(raw: str) -> str:
    if raw.startswith('"'):
        return _ESCAPE_RE.sub(r"\1", raw[1:-1])
    return raw


def parse_attrs(text: str) -> dict[str, str]:
    """Parse ``key=value`` pairs from ``text``.

    Raises :class:`ValidationError` on anything that is not an attribute.
    """
    attrs: dict[str, str] = {}
    pos = 0
    end = len(text)
    while True:
        while pos < end and text[pos].isspace():
            pos += 1
        if pos >= end:
            return attrs
        m = _ATTR_RE.match(text, pos)
        if m is None or (m.end() < end and not text[m.end()].isspace()):
            msg = f"malformed attribute near {text[pos:]!r}"
            raise ValidationError(msg)
        attrs[m.group(1)] = _unquote(m.group(2))
        pos = m.end()


def format_value(value: str) -> str:
    """Return ``value`` as a bare word when possible, otherwise quoted."""
    if _BARE_VALUE_RE.fullmatch(value):
        return value
    escaped = value.replace("\\", "\\\\").replace('"', '\\"')
    return f'"{escaped}"'


def format_attrs(attrs: Mapping[str, str]) -> str:
    """Render ``attrs`` in marker syntax, preserving mapping order."""
    parts: list[str] = []
    for key, value in attrs.items():
        if not _KEY_RE.fullmatch(key):
            msg = f"invalid attribute name: {key!r}"
            raise ValidationError(msg)
        parts.append(f"{key}={format_value(str(value))}")
    return " ".join(parts)


def marker_id(kind: str, *, tool_id: str = TOOL_ID) -> str:
    return f"{tool_id}-{kind}"


def iter_markers(
    text: str,
    marker: str,
    *,
    parse: Callable[[str], dict[str, str]] = parse_attrs,
) -> Iterator[dict[str, str]]:
    """Yield the attributes of every ``# FRAGMENT id=<marker>`` line in ``text``.

    Only lines with the requested id are parsed; markers of other tools
    are left alone even when they do not follow our grammar.
    """
    for m in _MARKER_LINE_RE.finditer(text):
        if m.group(1) != marker:
            continue
        yield parse(m.group(2))


def has_marker(text: str, marker: str) -> bool:
    return any(m.group(1) == marker for m in _MARKER_LINE_RE.finditer(text))


def header_line(note: str, *, tool_id: str = TOOL_ID) -> str:
    """Return the ownership marker line embedded in generated artifacts."""
    return f"{MARKER_PREFIX}{format_attrs({'id': marker_id(HEADER, tool_id=tool_id), 'note': note})}"


def find_header_note(text: str, *, tool_id: str = TOOL_ID) -> str | None:
    """Return the ``note`` of our ownership marker in ``text``, or ``None``.

    The marker must start its line; indented look-alikes inside generated
    code do not count.
    """
    wanted = marker_id(HEADER, tool_id=tool_id)
    for m in _MARKER_LINE_RE.finditer(text):
        if m.group(1) != wanted or not m.group(0).startswith(MARKER_PREFIX):
            continue
        rest = m.group(2)
        try:
            attrs = parse_attrs(rest)
        except ValidationError:
            # Hand-edited header: keep whatever follows "note=".
            return rest.partition("note=")[2] or rest
        return attrs.get("note", "")
    return None

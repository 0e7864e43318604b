"""Named, delimited entries stored inside one shared text file.

A fragment looks like this (shell comment style)::

    # BEGIN FRAGMENT id=foo note=Getopt::Long::Complete
    complete -C foo foo
    # END FRAGMENT id=foo

Everything outside the fragment being changed is preserved byte for byte.
Mutations hold an advisory lock on a sidecar file and commit through an
atomic rename, so a failed write never leaves a truncated file behind.
"""

from __future__ import annotations

import logging
import re
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from .constants import CommentStyle, FragmentStatus, is_valid_program_name
from .errors import FragmentFormatError, InvalidProgramNameError, ValidationError
from .fileio import LOSSLESS_ERRORS, atomic_write_text, file_lock, read_text_exact
from .logging_utils import StructuredLogEvent, log_event
from .markup import format_attrs, parse_attrs

if TYPE_CHECKING:
    from pathlib import Path

logger = logging.getLogger(__name__)

_CHANGED = frozenset({FragmentStatus.INSERTED, FragmentStatus.REPLACED, FragmentStatus.DELETED})
_LINE_RE = re.compile(r"[^\n]*\n|[^\n]+")

COMMENT_DELIMITERS: dict[CommentStyle, tuple[str, str]] = {
    CommentStyle.SHELL: ("#", ""),
    CommentStyle.CPP: ("//", ""),
    CommentStyle.C: ("/*", "*/"),
    CommentStyle.INI: (";", ""),
    CommentStyle.HTML: ("<!--", "-->"),
}


@dataclass(frozen=True, slots=True)
class FragmentEntry:
    id: str
    payload: str
    attrs: dict[str, str] = field(default_factory=dict)


@dataclass(frozen=True, slots=True)
class _Block:
    entry: FragmentEntry
    start: int  # index of the begin line
    stop: int  # index after the end line


def _marker_re(style: CommentStyle, word: str) -> re.Pattern[str]:
    opener, closer = COMMENT_DELIMITERS[style]
    tail = rf"\s*{re.escape(closer)}" if closer else ""
    return re.compile(rf"^[ \t]*{re.escape(opener)}[ \t]*{word} FRAGMENT id=(\S+?)(?:[ \t]+(.*?))?{tail}[ \t]*\r?\n?$")


def _split_payload(payload: str) -> str:
    return payload.removesuffix("\n")


def _split_lines(text: str) -> list[str]:
    """Split on ``\\n`` only, keeping line ends; ``\\r`` and other breaks stay inside lines."""
    return _LINE_RE.findall(text)


class FragmentRegistry:
    """Read and mutate the fragments of one file."""

    def __init__(self, path: Path, *, comment_style: CommentStyle = CommentStyle.SHELL) -> None:
        self.path = path
        self.comment_style = comment_style
        self._begin_re = _marker_re(comment_style, "BEGIN")
        self._end_re = _marker_re(comment_style, "END")

    # --- parsing ---------------------------------------------------------

    def _read(self) -> str:
        if not self.path.exists():
            return ""
        return read_text_exact(self.path)

    def _parse(self, lines: list[str]) -> list[_Block]:
        blocks: list[_Block] = []
        seen: set[str] = set()
        open_id: str | None = None
        open_attrs: dict[str, str] = {}
        open_at = 0
        for idx, line in enumerate(lines):
            begin = self._begin_re.match(line)
            if begin:
                if open_id is not None:
                    msg = f"{self.path}:{open_at + 1}: fragment '{open_id}' is not terminated"
                    raise FragmentFormatError(msg)
                open_id, open_at = begin.group(1), idx
                try:
                    open_attrs = parse_attrs(begin.group(2) or "")
                except ValidationError as err:
                    msg = f"{self.path}:{idx + 1}: {err}"
                    raise FragmentFormatError(msg) from err
                if open_id in seen:
                    msg = f"{self.path}:{idx + 1}: duplicate fragment id '{open_id}'"
                    raise FragmentFormatError(msg)
                seen.add(open_id)
                continue
            end = self._end_re.match(line)
            if end is None:
                continue
            if open_id is None:
                msg = f"{self.path}:{idx + 1}: end marker for '{end.group(1)}' without begin marker"
                raise FragmentFormatError(msg)
            if end.group(1) != open_id:
                msg = f"{self.path}:{idx + 1}: end marker '{end.group(1)}' does not match fragment '{open_id}'"
                raise FragmentFormatError(msg)
            payload = _split_payload("".join(lines[open_at + 1 : idx]))
            blocks.append(_Block(FragmentEntry(open_id, payload, open_attrs), start=open_at, stop=idx + 1))
            open_id = None
        if open_id is not None:
            msg = f"{self.path}:{open_at + 1}: fragment '{open_id}' is not terminated"
            raise FragmentFormatError(msg)
        return blocks

    def render(self, entry_id: str, payload: str, attrs: Mapping[str, str] | None = None) -> str:
        """Return the full text of one fragment block."""
        opener, closer = COMMENT_DELIMITERS[self.comment_style]
        close = f" {closer}" if closer else ""
        attr_text = format_attrs(attrs or {})
        begin = f"{opener} BEGIN FRAGMENT id={entry_id}{' ' + attr_text if attr_text else ''}{close}"
        end = f"{opener} END FRAGMENT id={entry_id}{close}"
        return f"{begin}\n{_split_payload(payload)}\n{end}\n"

    # --- queries ---------------------------------------------------------

    def list(self) -> list[FragmentEntry]:
        """Return every fragment in file order (empty when the file is missing)."""
        return [block.entry for block in self._parse(_split_lines(self._read()))]

    def get(self, entry_id: str) -> FragmentEntry | None:
        return next((entry for entry in self.list() if entry.id == entry_id), None)

    # --- mutations -------------------------------------------------------

    def _log(self, status: FragmentStatus, entry_id: str) -> None:
        log_event(
            logger,
            StructuredLogEvent(
                name=f"fragment.{status.value}",
                message="fragment registry update",
                context={"path": self.path, "id": entry_id, "status": status},
                level=logging.INFO if status in _CHANGED else logging.DEBUG,
            ),
        )

    def insert(
        self,
        entry_id: str,
        payload: str,
        attrs: Mapping[str, str] | None = None,
        *,
        replace: bool = False,
        at_top: bool = False,
    ) -> FragmentStatus:
        """Add (or with ``replace`` overwrite) the fragment ``entry_id``.

        An existing fragment without ``replace`` is a no-op. Replacement
        happens in place; new fragments are appended or, with ``at_top``,
        prepended.
        """
        if not is_valid_program_name(entry_id):
            msg = f"not a valid fragment id: {entry_id}"
            raise InvalidProgramNameError(msg)
        for line in _split_lines(_split_payload(payload)):
            if self._begin_re.match(line) or self._end_re.match(line):
                msg = f"payload of fragment '{entry_id}' contains a fragment marker: {line.rstrip()!r}"
                raise ValidationError(msg)
        block_text = self.render(entry_id, payload, attrs)
        with file_lock(self.path):
            text = self._read()
            lines = _split_lines(text)
            existing = next((b for b in self._parse(lines) if b.entry.id == entry_id), None)
            if existing is not None:
                if not replace:
                    status = FragmentStatus.NOOP
                    self._log(status, entry_id)
                    return status
                new_text = "".join([*lines[: existing.start], block_text, *lines[existing.stop :]])
                status = FragmentStatus.UNCHANGED if new_text == text else FragmentStatus.REPLACED
            elif at_top:
                new_text = block_text + text
                status = FragmentStatus.INSERTED
            else:
                sep = "\n" if text and not text.endswith("\n") else ""
                new_text = f"{text}{sep}{block_text}"
                status = FragmentStatus.INSERTED
            if status is not FragmentStatus.UNCHANGED:
                atomic_write_text(self.path, new_text, errors=LOSSLESS_ERRORS)
        self._log(status, entry_id)
        return status

    def delete(self, entry_id: str) -> FragmentStatus:
        """Remove the fragment ``entry_id``; absent ids are a no-op."""
        with file_lock(self.path):
            text = self._read()
            lines = _split_lines(text)
            existing = next((b for b in self._parse(lines) if b.entry.id == entry_id), None)
            if existing is None:
                status = FragmentStatus.NOOP
            else:
                atomic_write_text(
                    self.path,
                    "".join(lines[: existing.start] + lines[existing.stop :]),
                    errors=LOSSLESS_ERRORS,
                )
                status = FragmentStatus.DELETED
        self._log(status, entry_id)
        return status

"""Resolve program references and enumerate executables on the search path."""

from __future__ import annotations

import logging
import os
import shutil
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING

from pathspec import PathSpec

from .errors import ERROR_MSG_NO_SUCH_FILE, ERROR_MSG_NOT_IN_PATH, ProgramNotFoundError

if TYPE_CHECKING:
    from collections.abc import Iterable, Iterator

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class ProgramRef:
    """A program reference resolved to a readable file."""

    reference: str
    name: str
    path: Path
    via_search_path: bool

    @property
    def command(self) -> str:
        """How a shell should invoke the program."""
        return self.name if self.via_search_path else str(self.path)


def program_name(reference: str) -> str:
    """Return the bare program name of ``reference`` (basename for paths)."""
    return reference.rstrip("/").rpartition("/")[2] if "/" in reference else reference


def split_search_path(search_path: str | None = None) -> list[Path]:
    raw = os.environ.get("PATH", os.defpath) if search_path is None else search_path
    return [Path(p) for p in raw.split(os.pathsep) if p]


def resolve_program(reference: str, *, search_path: str | None = None) -> ProgramRef:
    """Resolve ``reference`` (a path or a bare name) to a :class:`ProgramRef`.

    References containing ``/`` are taken as paths; anything else is looked
    up in ``search_path`` (``$PATH`` by default).
    """
    if "/" in reference:
        path = Path(reference)
        if not path.is_file():
            raise ProgramNotFoundError(reference, ERROR_MSG_NO_SUCH_FILE)
        return ProgramRef(reference=reference, name=path.name, path=path.absolute(), via_search_path=False)

    found = shutil.which(reference, path=search_path)
    if found is None:
        raise ProgramNotFoundError(reference, ERROR_MSG_NOT_IN_PATH)
    return ProgramRef(reference=reference, name=reference, path=Path(found), via_search_path=True)


def _is_executable_file(entry: os.DirEntry[str]) -> bool:
    try:
        return entry.is_file() and os.access(entry.path, os.X_OK)
    except OSError:
        return False


def iter_search_path_programs(
    search_path: str | None = None,
    *,
    exclude: Iterable[str] = (),
) -> Iterator[ProgramRef]:
    """Yield every executable on the search path, first occurrence of a name wins.

    Names matching the gitignore-style ``exclude`` patterns (editor backups
    and the like) are skipped. Unreadable directories are skipped.
    """
    spec = PathSpec.from_lines("gitwildmatch", exclude)
    seen: set[str] = set()
    for directory in split_search_path(search_path):
        try:
            entries = sorted(os.scandir(directory), key=lambda e: e.name)
        except OSError as err:
            logger.debug("skipping search path entry %s: %s", directory, err)
            continue
        for entry in entries:
            if entry.name in seen or spec.match_file(entry.name):
                continue
            if not _is_executable_file(entry):
                continue
            seen.add(entry.name)
            yield ProgramRef(
                reference=entry.name,
                name=entry.name,
                path=Path(entry.path),
                via_search_path=True,
            )


def is_on_search_path(name: str, *, search_path: str | None = None) -> bool:
    return shutil.which(name, path=search_path) is not None

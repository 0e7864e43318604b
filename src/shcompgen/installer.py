"""One completion script per program inside a completion directory."""

from __future__ import annotations

import datetime as dt
import logging
import os
from dataclasses import dataclass
from pathlib import Path

from . import __version__
from .constants import TOOL_ID, ItemStatus, Shell
from .fileio import atomic_write_text, read_text
from .locations import program_from_filename
from .logging_utils import StructuredLogEvent, log_event
from .markup import find_header_note

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class CompletionArtifact:
    """Generated script text plus where it goes."""

    program: str
    shell: Shell
    path: Path
    text: str
    note: str


@dataclass(frozen=True, slots=True)
class InstalledScript:
    """A script in a completion directory that carries our ownership marker."""

    program: str
    path: Path
    note: str


def _sorted_files(directory: Path) -> list[os.DirEntry[str]]:
    with os.scandir(directory) as it:
        entries = [e for e in it if e.is_file()]
    return sorted(entries, key=lambda e: e.name)


@dataclass(slots=True)
class DirectoryInstaller:
    tool_id: str = TOOL_ID

    def owner_note(self, path: Path) -> str | None:
        """Return the note of our ownership marker in ``path`` (``None`` if not ours)."""
        return find_header_note(read_text(path), tool_id=self.tool_id)

    def install(self, artifact: CompletionArtifact, *, replace: bool = False) -> ItemStatus:
        """Write ``artifact`` unless it exists and ``replace`` is false.

        The parent directory must exist. ``OSError`` propagates.
        """
        existed = artifact.path.exists()
        if existed and not replace:
            return ItemStatus.SKIPPED_EXISTS
        atomic_write_text(artifact.path, artifact.text)
        status = ItemStatus.REPLACED if existed else ItemStatus.CREATED
        log_event(
            logger,
            StructuredLogEvent(
                name="installer.write",
                message="wrote completion script",
                context={"program": artifact.program, "path": artifact.path, "status": status},
            ),
        )
        return status

    def uninstall(self, path: Path) -> ItemStatus:
        """Delete ``path`` only if it carries our ownership marker."""
        if not path.exists():
            return ItemStatus.SKIPPED_MISSING
        if self.owner_note(path) is None:
            return ItemStatus.SKIPPED_NOT_OWNED
        path.unlink()
        log_event(
            logger,
            StructuredLogEvent(name="installer.remove", message="removed completion script", context={"path": path}),
        )
        return ItemStatus.REMOVED

    def list_scripts(self, directories: tuple[Path, ...], shell: Shell) -> list[InstalledScript]:
        """Return our scripts in ``directories``, sorted by file name per directory.

        Missing directories are skipped; files named against the shell's
        convention and files without our marker are ignored.
        """
        found: list[InstalledScript] = []
        for directory in directories:
            if not directory.is_dir():
                logger.debug("completion directory %s does not exist", directory)
                continue
            for entry in _sorted_files(directory):
                program = program_from_filename(shell, entry.name)
                if program is None:
                    continue
                path = Path(entry.path)
                try:
                    note = self.owner_note(path)
                except OSError as err:
                    logger.warning("cannot read %s: %s", path, err)
                    continue
                if note is not None:
                    found.append(InstalledScript(program=program, path=path, note=note))
        return found

    def aggregate_text(self, directory: Path, *, now: dt.datetime | None = None) -> str:
        """Header plus the first line of every file in ``directory``."""
        now = now or dt.datetime.now(dt.UTC)
        lines = [f"# generated by {self.tool_id} {__version__} on {now.isoformat(timespec='seconds')}"]
        if directory.is_dir():
            for entry in _sorted_files(directory):
                first = read_text(Path(entry.path)).partition("\n")[0].rstrip("\r")
                if first:
                    lines.append(first)
        return "\n".join(lines) + "\n"

    def regenerate_aggregate(self, directory: Path, aggregate: Path, *, now: dt.datetime | None = None) -> Path:
        """Rewrite ``aggregate`` from the scripts currently in ``directory``."""
        atomic_write_text(aggregate, self.aggregate_text(directory, now=now))
        log_event(
            logger,
            StructuredLogEvent(
                name="installer.aggregate",
                message="regenerated aggregate file",
                context={"directory": directory, "aggregate": aggregate},
            ),
        )
        return aggregate

"""File helpers: lenient reads, lossless reads, atomic rewrites and advisory locks."""

from __future__ import annotations

import contextlib
import fcntl
import os
import stat
import tempfile
from contextlib import contextmanager
from pathlib import Path
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import Iterator

NEW_FILE_MODE = 0o644
# Undecodable bytes survive a decode/encode round trip under this handler.
LOSSLESS_ERRORS = "surrogateescape"


def read_text(file_path: Path) -> str:
    """Read text from ``file_path`` using UTF-8 with ignore errors."""
    return file_path.read_text(encoding="utf-8", errors="ignore")


def read_text_exact(file_path: Path) -> str:
    """Read ``file_path`` keeping line endings and undecodable bytes as they are.

    Write the result back with ``atomic_write_text(..., errors=LOSSLESS_ERRORS)``.
    """
    return file_path.read_bytes().decode("utf-8", errors=LOSSLESS_ERRORS)


def atomic_write_text(path: Path, text: str, *, errors: str = "strict") -> None:
    """Replace ``path`` with ``text`` without ever exposing a partial file.

    The content goes to a temporary file in the same directory which is
    then renamed over ``path``. The permission bits of an existing file are
    kept. On failure the previous content is left untouched.
    """
    data = text.encode("utf-8", errors=errors)
    try:
        mode = stat.S_IMODE(path.stat().st_mode)
    except FileNotFoundError:
        mode = NEW_FILE_MODE
    fd, tmp_name = tempfile.mkstemp(prefix=f".{path.name}.", suffix=".tmp", dir=path.parent)
    tmp = Path(tmp_name)
    try:
        with os.fdopen(fd, "wb") as fh:
            fh.write(data)
            fh.flush()
            os.fsync(fh.fileno())
        tmp.chmod(mode)
        tmp.replace(path)
    except BaseException:
        with contextlib.suppress(OSError):
            tmp.unlink()
        raise


def lock_path_for(path: Path) -> Path:
    return path.with_name(f".{path.name}.lock")


@contextmanager
def file_lock(path: Path) -> Iterator[Path]:
    """Hold an exclusive advisory lock guarding read-modify-write of ``path``.

    The lock lives on a sidecar file because the guarded file itself is
    swapped out by :func:`atomic_write_text`.
    """
    lock_path = lock_path_for(path)
    with lock_path.open("a", encoding="utf-8") as fh:
        fcntl.flock(fh.fileno(), fcntl.LOCK_EX)
        try:
            yield lock_path
        finally:
            fcntl.flock(fh.fileno(), fcntl.LOCK_UN)

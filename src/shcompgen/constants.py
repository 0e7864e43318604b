"""Project-wide constants, enums, and small helpers."""

from __future__ import annotations

import re
from enum import StrEnum


class Shell(StrEnum):
    """Shells we can generate completion scripts for."""

    BASH = "bash"
    ZSH = "zsh"
    FISH = "fish"
    TCSH = "tcsh"


class Scope(StrEnum):
    """Install location: system-wide or for the invoking user."""

    GLOBAL = "global"
    PER_USER = "per_user"


class FrameworkKind(StrEnum):
    """Which detection rule produced a binding."""

    HINT_COMMAND = "hint-command"
    HINT_COMPLETER = "hint-completer"
    PERINCI_CMDLINE = "perinci-cmdline"
    GETOPT_LONG = "getopt-long"


class ItemStatus(StrEnum):
    """Per-item result of a batch operation."""

    CREATED = "created"
    REPLACED = "replaced"
    REMOVED = "removed"
    SKIPPED_EXISTS = "skipped-exists"
    SKIPPED_MISSING = "skipped-missing"
    SKIPPED_NOT_OWNED = "skipped-not-owned"
    NOT_COMPLETABLE = "not-completable"
    UNSUPPORTED = "unsupported"
    NOT_FOUND = "not-found"
    FAILED = "failed"


class BatchOutcome(StrEnum):
    """Overall outcome of a batch operation."""

    OK = "ok"
    NOTHING = "nothing"
    PARTIAL = "partial"
    FAILED = "failed"


class CommentStyle(StrEnum):
    """Comment syntax used for fragment marker lines."""

    SHELL = "shell"
    CPP = "cpp"
    C = "c"
    INI = "ini"
    HTML = "html"


class FragmentStatus(StrEnum):
    """Result of a fragment registry mutation."""

    INSERTED = "inserted"
    REPLACED = "replaced"
    UNCHANGED = "unchanged"
    NOOP = "noop"
    DELETED = "deleted"


class OutputFormat(StrEnum):
    HUMAN = "human"
    JSON = "json"


TOOL_ID = "shcompgen"

# Valid program (and completee) names.
PROGNAME_RE = re.compile(r"[A-Za-z0-9_.,:-]+")
_IDENT_UNSAFE_RE = re.compile(r"[^A-Za-z0-9_]")

# Statuses that mean the item failed rather than "nothing to do".
FAILURE_STATUSES = frozenset({ItemStatus.NOT_FOUND, ItemStatus.FAILED})
# Statuses that changed something on disk.
CHANGE_STATUSES = frozenset({ItemStatus.CREATED, ItemStatus.REPLACED, ItemStatus.REMOVED})

# Shells whose completion cannot call a completer at keystroke time.
STATIC_SHELLS = frozenset({Shell.FISH})
# Shells that also need the concatenated aggregate file.
AGGREGATE_SHELLS = frozenset({Shell.TCSH})

FISH_SUFFIX = ".fish"
ZSH_PREFIX = "_"
AGGREGATE_BASENAME = "shcompgen.tcshrc"

# CLI exit codes
EXIT_OK = 0
EXIT_FAILURE = 1
EXIT_USAGE = 2
EXIT_CONFIG = 3
EXIT_PATH = 4
EXIT_PARTIAL = 5
EXIT_INTERRUPT = 130


def is_valid_program_name(name: str) -> bool:
    """Return ``True`` if ``name`` matches the program-name grammar."""
    return PROGNAME_RE.fullmatch(name) is not None


def shell_identifier(text: str) -> str:
    """Return ``text`` with every character a shell function name cannot hold replaced by ``_``."""
    return _IDENT_UNSAFE_RE.sub("_", text)

"""Custom exception classes and error messages."""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from pathlib import Path

ERROR_MSG_NOT_IN_PATH = "Not in PATH"
ERROR_MSG_NO_SUCH_FILE = "No such file"


class ShcompgenError(Exception):
    """Base class for errors raised by shcompgen."""


class ProgramNotFoundError(ShcompgenError):
    """Raised when a program file is missing or not on the search path."""

    def __init__(self, program: str, reason: str) -> None:
        super().__init__(f"{program}: {reason}")
        self.program = program
        self.reason = reason


class ValidationError(ShcompgenError, ValueError):
    """Raised when an input fails validation."""


class InvalidProgramNameError(ValidationError):
    """Raised when a completee name does not match the program-name grammar."""


class UnsupportedShellError(ValidationError):
    """Raised when the selected shell is not one we generate scripts for."""


class ConfigLoadError(ShcompgenError):
    """Raised when a configuration file cannot be loaded."""


class IntrospectionError(ShcompgenError):
    """Raised when a completer's declared options cannot be recovered."""

    def __init__(self, path: Path, reason: str) -> None:
        super().__init__(f"cannot introspect '{path}': {reason}")
        self.path = path
        self.reason = reason


class SynthesisError(ShcompgenError):
    """Raised when a binding cannot be rendered for a shell."""


class FragmentFormatError(ShcompgenError):
    """Raised when a fragment file cannot be parsed."""

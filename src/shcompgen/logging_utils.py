"""Utilities for structured logging with sanitized context payloads."""

from __future__ import annotations

import logging
from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import TypeAlias

LogValue: TypeAlias = "str | int | float | bool | list[LogValue] | dict[str, LogValue] | None"

# Threshold for -vv to map to DEBUG
VERBOSE_DEBUG_THRESHOLD = 2


def _serialise_value(value: object) -> LogValue:
    """Convert ``value`` into a JSON/log-friendly representation."""
    if isinstance(value, Enum):
        return _serialise_value(value.value)
    if isinstance(value, Path):
        return value.as_posix()
    if isinstance(value, (set, frozenset)):
        return sorted((_serialise_value(v) for v in value), key=str)
    if isinstance(value, Sequence) and not isinstance(value, (str, bytes, bytearray)):
        return [_serialise_value(v) for v in value]
    if isinstance(value, Mapping):
        return {str(k): _serialise_value(v) for k, v in value.items()}
    if isinstance(value, (str, int, float, bool)) or value is None:
        return value
    return str(value)


def _mask_if_secret(key: str, value: object) -> LogValue:
    """Return ``value`` unless ``key`` appears to reference a secret."""
    lowered = key.lower()
    if any(token in lowered for token in ("secret", "token", "password")):
        return "***"
    return _serialise_value(value)


@dataclass(frozen=True, slots=True)
class StructuredLogEvent:
    """Represents a structured log event for downstream handlers."""

    name: str
    message: str
    context: dict[str, object] = field(default_factory=dict)
    level: int = logging.INFO

    def sanitised_context(self) -> dict[str, LogValue]:
        """Return a sanitized copy safe for logging."""
        return {str(k): _mask_if_secret(str(k), v) for k, v in self.context.items()}


def get_logger(name: str) -> logging.Logger:
    """Return the configured logger for ``name``."""
    return logging.getLogger(name)


def log_event(logger: logging.Logger, event: StructuredLogEvent) -> None:
    """Emit ``event`` to ``logger`` with structured metadata.

    The context is appended to the message as ``key=value`` pairs so it is
    visible with the plain ``basicConfig`` formatter as well.
    """
    context = event.sanitised_context()
    suffix = " ".join(f"{k}={v}" for k, v in context.items())
    message = f"{event.message} ({suffix})" if suffix else event.message
    logger.log(event.level, message, extra={"event": event.name, "context": context})


def resolve_log_level(*, verbose: int, log_level: str | None) -> int:
    """Map ``-v`` counts and an explicit level name to a logging level."""
    if log_level:
        return getattr(logging, log_level.upper())
    if verbose >= VERBOSE_DEBUG_THRESHOLD:
        return logging.DEBUG
    if verbose == 1:
        return logging.INFO
    return logging.WARNING


def configure_logging(*, verbose: int = 0, log_level: str | None = None) -> int:
    """Configure root logging once per CLI invocation; return the level used."""
    level = resolve_log_level(verbose=verbose, log_level=log_level)
    logging.basicConfig(level=level, format="%(levelname)s %(name)s: %(message)s", force=True)
    return level


__all__ = [
    "StructuredLogEvent",
    "configure_logging",
    "get_logger",
    "log_event",
    "resolve_log_level",
]

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

import pytest

from shcompgen.constants import Shell
from shcompgen.logging_utils import (
    StructuredLogEvent,
    configure_logging,
    get_logger,
    log_event,
    resolve_log_level,
)

if TYPE_CHECKING:
    from pathlib import Path

pytestmark = pytest.mark.small


def test_sanitised_context_serialises_and_masks(tmp_path: Path) -> None:
    secret_key = "token"  # noqa: S105
    event = StructuredLogEvent(
        name="x",
        message="m",
        context={"path": tmp_path / "a", "shell": Shell.ZSH, "names": {"b", "a"}, secret_key: "shh"},
    )
    ctx = event.sanitised_context()
    assert ctx["path"] == (tmp_path / "a").as_posix()
    assert ctx["shell"] == "zsh"
    assert ctx["names"] == ["a", "b"]
    assert ctx["token"] == "***"  # noqa: S105


def test_log_event_adds_extra_fields(caplog: pytest.LogCaptureFixture) -> None:
    logger = get_logger("shcompgen.tests.logging")
    with caplog.at_level(logging.INFO):
        log_event(logger, StructuredLogEvent(name="evt", message="hello", context={"k": "v"}))

    rec = caplog.records[-1]
    event = getattr(rec, "event", None)
    ctx: Any = getattr(rec, "context", None)
    assert event == "evt"
    assert ctx == {"k": "v"}
    assert rec.getMessage() == "hello (k=v)"


def test_debug_events_are_filtered_at_info(caplog: pytest.LogCaptureFixture) -> None:
    logger = get_logger("shcompgen.tests.logging")
    with caplog.at_level(logging.INFO):
        log_event(logger, StructuredLogEvent(name="quiet", message="q", level=logging.DEBUG))
    assert not [r for r in caplog.records if getattr(r, "event", None) == "quiet"]


@pytest.mark.parametrize(
    ("verbose", "level_name", "expected"),
    [
        (0, None, logging.WARNING),
        (1, None, logging.INFO),
        (2, None, logging.DEBUG),
        (5, None, logging.DEBUG),
        (2, "error", logging.ERROR),
    ],
)
def test_resolve_log_level(verbose: int, level_name: str | None, expected: int) -> None:
    assert resolve_log_level(verbose=verbose, log_level=level_name) == expected


def test_configure_logging_forces_basic_config(monkeypatch: pytest.MonkeyPatch) -> None:
    seen: dict[str, Any] = {}
    monkeypatch.setattr(logging, "basicConfig", lambda **kwargs: seen.update(kwargs))
    assert configure_logging(verbose=1) == logging.INFO
    assert seen["level"] == logging.INFO
    assert seen["force"] is True

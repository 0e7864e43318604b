from __future__ import annotations

from typing import TYPE_CHECKING

import pytest

from ._workspace_path import ensure_workspace_packages_importable

if TYPE_CHECKING:
    from pathlib import Path

ensure_workspace_packages_importable()


@pytest.fixture
def isolated_config(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    """Keep user config files and $SHELL out of the test run; return the XDG home."""
    xdg = tmp_path / "xdg"
    xdg.mkdir()
    monkeypatch.setenv("XDG_CONFIG_HOME", str(xdg))
    monkeypatch.delenv("SHCOMPGEN_CONFIG_PATH", raising=False)
    monkeypatch.setenv("SHELL", "/bin/bash")
    return xdg

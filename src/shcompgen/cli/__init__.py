"""CLI exports.

This package exposes `cli` and `main` from `root.py` so that
`python -m shcompgen` and the console entry point work.
"""

from .common import exit_on_broken_pipe
from .root import cli, main

__all__ = [
    "cli",
    "exit_on_broken_pipe",
    "main",
]

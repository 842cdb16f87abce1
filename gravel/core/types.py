# gravel/core/types.py
# -*- coding: utf-8 -*-

"""
Shared type aliases.

Importable from anywhere without creating circular dependencies.

Contents
--------
- StrPath: str or pathlib.Path
- Clock / Sleeper: injectable time sources used by the fetch pipeline
"""

from __future__ import annotations

from pathlib import Path
from typing import Callable, Union


# ────────────────────────────────────────────────────────────────────────────────
# Path-like
# ────────────────────────────────────────────────────────────────────────────────

StrPath = Union[str, Path]
"""Path representation accepted by the IO helpers (string or Path)."""


# ────────────────────────────────────────────────────────────────────────────────
# Time
# ────────────────────────────────────────────────────────────────────────────────

Clock = Callable[[], float]
"""Monotonic seconds, e.g. time.monotonic."""

Sleeper = Callable[[float], None]
"""Blocking sleep in seconds, e.g. time.sleep."""

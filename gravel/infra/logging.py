# gravel/infra/logging.py
# -*- coding: utf-8 -*-

"""
Central logging configuration for the gravel route engine.

Usage
-----
    from gravel.infra.logging import init_logging, get_logger

    init_logging(level="INFO", write_output=True)
    log = get_logger(__name__)
    log.info("Hello from my module")

Library modules only fetch a logger; entry points (CLI, scripts) call
init_logging() once.

Environment
-----------
- GRAVEL_LOG_LEVEL, if set, overrides the `level` parameter.
"""

from __future__ import annotations

import logging
import os
import sys
from datetime import datetime
from pathlib import Path
from typing import Iterable, Optional

# ────────────────────────────────────────────────────────────────────────────────
# Globals
# ────────────────────────────────────────────────────────────────────────────────

_DEFAULT_LOGS_DIR = Path("logs")

_current_logs_dir: Path = _DEFAULT_LOGS_DIR
_current_log_file: Optional[Path] = None


# ────────────────────────────────────────────────────────────────────────────────
# Public helpers
# ────────────────────────────────────────────────────────────────────────────────

def get_logs_dir() -> Path:
    """Directory configured by the last `init_logging()` call."""
    return _current_logs_dir


def get_current_log_path() -> Optional[Path]:
    """
    Return the path to the current log file, if any.

    Falls back to inspecting the root handlers in case logging was configured
    somewhere else.
    """
    global _current_log_file

    if _current_log_file is not None:
        return _current_log_file

    root = logging.getLogger()
    for handler in root.handlers:
        if isinstance(handler, logging.FileHandler):
            fp = Path(handler.baseFilename)
            _current_log_file = fp
            return fp
    return None


def build_formatter() -> logging.Formatter:
    """
    `[YYYY-MM-DD HH:MM:SS][LEVEL][thread][logger.name] message`

    The thread column tells the interactive thread apart from fetch chains
    (`gravel-worker-fetch`), response decoding (`gravel-worker-extract_polylines`)
    and the debounce timer (`gravel-viewport-debounce`).
    """
    return logging.Formatter(
          fmt="[{asctime}][{levelname}][{threadName}][{name}] {message}"
        , datefmt="%Y-%m-%d %H:%M:%S"
        , style="{"
    )


def init_logging(
      level: str = "INFO"
    , *
    , force: bool = True
    , write_output: bool = False
    , log_file: Optional[Path] = None
    , logs_dir: Optional[Path] = None
    , quiet: Iterable[str] = ("urllib3",)
) -> None:
    """
    Configure root logging.

    Parameters
    ----------
    level : str, default "INFO"
        Logging level name. GRAVEL_LOG_LEVEL overrides it when set.
    force : bool, default True
        Remove existing root handlers before installing ours.
    write_output : bool, default False
        If True and `log_file` is not given, a per-run file is created under
        `logs/` (or `logs_dir`).
    log_file : Optional[Path]
        Explicit log file, written in addition to stdout.
    logs_dir : Optional[Path]
        Base directory for per-run log files.
    quiet : Iterable[str]
        Third-party loggers raised to WARNING so they do not drown ours.
    """
    global _current_logs_dir
    global _current_log_file

    env_level = os.getenv("GRAVEL_LOG_LEVEL")
    if env_level:
        level = env_level

    numeric_level = getattr(logging, str(level).upper(), logging.INFO)

    root = logging.getLogger()
    if force:
        for handler in list(root.handlers):
            root.removeHandler(handler)

    root.setLevel(numeric_level)

    formatter = build_formatter()

    stream_handler = logging.StreamHandler(stream=sys.stdout)
    stream_handler.setFormatter(formatter)
    root.addHandler(stream_handler)

    _current_log_file = None

    if write_output or log_file is not None:
        if log_file is None:
            base_dir = Path(logs_dir) if logs_dir is not None else _DEFAULT_LOGS_DIR
            base_dir.mkdir(parents=True, exist_ok=True)

            script_name = Path(sys.argv[0] or "gravel").stem or "gravel"
            if script_name in {"-m", ""}:
                script_name = "gravel"
            ts = datetime.now().strftime("%Y%m%d-%H%M%S")
            log_file = base_dir / f"{script_name}__{ts}.log"
        else:
            log_file = Path(log_file)
            log_file.parent.mkdir(parents=True, exist_ok=True)
            base_dir = log_file.parent

        file_handler = logging.FileHandler(log_file, encoding="utf-8")
        file_handler.setFormatter(formatter)
        root.addHandler(file_handler)

        _current_logs_dir = base_dir
        _current_log_file = log_file.resolve()

    for name in quiet:
        noisy = logging.getLogger(name)
        if noisy.getEffectiveLevel() < logging.WARNING:
            noisy.setLevel(logging.WARNING)

    get_logger(__name__).info("Logging configured (level=%s)", logging.getLevelName(numeric_level))


def log_banner(
      log: logging.Logger
    , msg: str
    , *
    , char: str = "="
    , width: int = 60
) -> None:
    """Print a bar, the message, and another bar."""
    bar = char * width
    log.info(bar)
    log.info(msg)
    log.info(bar)


def get_logger(
    name: Optional[str] = None
) -> logging.Logger:
    """
    Thin wrapper around logging.getLogger so the backend can change in one place.
    """
    return logging.getLogger(name if name is not None else __name__)

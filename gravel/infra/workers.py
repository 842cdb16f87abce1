# gravel/infra/workers.py
# -*- coding: utf-8 -*-
"""
Fire-and-forget background workers.

Heavy work (response decoding, large-route decimation) runs on a dedicated
daemon thread per task so the interactive thread never blocks on it. There
is no persistent pool.

- offload(fn, *args)   → Future, runs fn on a fresh daemon thread
- run_inline(fn, *args) → Future, runs fn on the calling thread (CLI, tests)
- TaskSlot             → at most one in-flight task per kind
"""

from __future__ import annotations

import threading
from concurrent.futures import Future
from typing import Any, Callable, Optional

from gravel.infra.logging import get_logger

_log = get_logger(__name__)

Spawner = Callable[..., "Future[Any]"]


def _complete(fut: "Future[Any]", fn: Callable[..., Any], args: tuple, kwargs: dict) -> None:
    if not fut.set_running_or_notify_cancel():
        return
    try:
        result = fn(*args, **kwargs)
    except BaseException as exc:  # noqa: BLE001 - surfaced through the Future
        fut.set_exception(exc)
    else:
        fut.set_result(result)


def offload(fn: Callable[..., Any], *args: Any, **kwargs: Any) -> "Future[Any]":
    """Run `fn(*args, **kwargs)` on a new daemon thread."""
    fut: "Future[Any]" = Future()
    name = f"gravel-worker-{getattr(fn, '__name__', 'task')}"
    threading.Thread(
          target=_complete
        , args=(fut, fn, args, kwargs)
        , name=name
        , daemon=True
    ).start()
    return fut


def run_inline(fn: Callable[..., Any], *args: Any, **kwargs: Any) -> "Future[Any]":
    """Run `fn` synchronously and return an already-completed Future."""
    fut: "Future[Any]" = Future()
    _complete(fut, fn, args, kwargs)
    return fut


class TaskSlot:
    """
    Single-task-in-flight discipline for one kind of work.

    submit() returns None, without starting anything, while a previous task
    of the same slot is still running.
    """

    def __init__(self, kind: str, spawn: Spawner = offload) -> None:
        self.kind = kind
        self._spawn = spawn
        self._lock = threading.RLock()
        self._current: Optional["Future[Any]"] = None

    @property
    def busy(self) -> bool:
        with self._lock:
            return self._current is not None and not self._current.done()

    def submit(self, fn: Callable[..., Any], *args: Any, **kwargs: Any) -> Optional["Future[Any]"]:
        with self._lock:
            if self.busy:
                _log.debug("TaskSlot[%s] busy; not starting another task", self.kind)
                return None
            fut = self._spawn(fn, *args, **kwargs)
            self._current = fut
            return fut

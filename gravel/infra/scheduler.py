# gravel/infra/scheduler.py
# -*- coding: utf-8 -*-
"""
Single-shot alarm with cancel-and-reschedule semantics.

schedule() always supersedes the previously scheduled callback; a callback
whose timer already fired but lost the race to a newer schedule() is
dropped. This is the only cancellation primitive of the fetch pipeline.
"""

from __future__ import annotations

import threading
from typing import Callable, Optional, Protocol

from gravel.infra.logging import get_logger

_log = get_logger(__name__)


class AlarmLike(Protocol):
    def schedule(self, delay_s: float, callback: Callable[[], None]) -> None: ...
    def cancel(self) -> None: ...

    @property
    def pending(self) -> bool: ...


class Alarm:
    """threading.Timer-backed alarm; callbacks run on the timer thread."""

    def __init__(self, name: str = "alarm") -> None:
        self.name = name
        self._lock = threading.Lock()
        self._timer: Optional[threading.Timer] = None
        self._generation = 0

    @property
    def pending(self) -> bool:
        with self._lock:
            return self._timer is not None

    def schedule(self, delay_s: float, callback: Callable[[], None]) -> None:
        if delay_s < 0:
            raise ValueError(f"delay_s must be >= 0, got {delay_s}")
        with self._lock:
            if self._timer is not None:
                self._timer.cancel()
            self._generation += 1
            timer = threading.Timer(delay_s, self._fire, args=(self._generation, callback))
            timer.daemon = True
            timer.name = f"gravel-{self.name}"
            self._timer = timer
            timer.start()

    def cancel(self) -> None:
        with self._lock:
            if self._timer is not None:
                self._timer.cancel()
                self._timer = None
            self._generation += 1

    def _fire(self, generation: int, callback: Callable[[], None]) -> None:
        with self._lock:
            if generation != self._generation:
                _log.debug("Alarm[%s] superseded; dropping callback", self.name)
                return
            self._timer = None
        callback()

# gravel/fetch/coordinator.py
# -*- coding: utf-8 -*-
"""
Viewport fetch coordinator
==========================

Turns a stream of viewport changes into at most one road-geometry fetch at a
time and republishes the result.

    on_viewport_changed(bounds)
        └─ debounce alarm (cancel-and-reschedule, 0.5 s)
             └─ dedup vs last fetched bounds ── hit → nothing happens
                  └─ one chain on a worker: client.fetch(bounds)
                       ├─ ok      → baseline := bounds, geometry replaced, listeners
                       └─ failure → geometry kept, FetchOutcome to failure listeners

Rules
-----
- Only one chain is in flight. A debounce expiry during a chain marks the
  latest bounds for re-evaluation once the chain finishes.
- Each result is tagged with the bounds it was requested for. It is applied
  only when those bounds still cover the latest requested bounds; otherwise
  it is dropped and the latest bounds are evaluated again.
- The baseline and the current geometry are owned here; nothing else
  mutates them.
- Listeners run on the thread that completes the chain (a worker thread by
  default). They receive immutable values.
"""

from __future__ import annotations

import threading
from concurrent.futures import Future
from dataclasses import dataclass
from typing import Callable, List, Optional, Protocol

from gravel.core.config import FetchDefaults, get_fetch_defaults
from gravel.core.models import FetchState, FetchStateKind, RoadGeometry, ViewportBounds
from gravel.infra.logging import get_logger
from gravel.infra.scheduler import Alarm, AlarmLike
from gravel.infra.workers import Spawner, TaskSlot, offload
from gravel.overpass.overpass_common import (
      OverpassError
    , RateLimited
    , CooldownActive
    , UpstreamTimeout
    , UpstreamHTTPError
    , DecodeError
)

_log = get_logger(__name__)


class RoadSource(Protocol):
    """What the coordinator needs from a network client."""

    def fetch(self, bounds: ViewportBounds) -> RoadGeometry: ...

    @property
    def state(self) -> FetchState: ...


# ────────────────────────────────────────────────────────────────────────────────
# Outcomes
# ────────────────────────────────────────────────────────────────────────────────

@dataclass(frozen=True)
class FetchOutcome:
    """
    A terminal fetch failure as reported to the presentation layer.

    The previously published geometry is still current when this is emitted.
    """

    bounds: ViewportBounds
    error: OverpassError
    notice: str


def user_notice(error: OverpassError) -> str:
    """Short user-facing text for a fetch failure."""
    if isinstance(error, CooldownActive):
        return f"Too many requests. Gravel roads will load again in {error.remaining_s:.0f} s."
    if isinstance(error, RateLimited):
        return "The road server is busy. Pausing gravel road updates for a minute."
    if isinstance(error, UpstreamTimeout):
        return "Loading gravel roads timed out. Try zooming in to a smaller area."
    if isinstance(error, UpstreamHTTPError):
        return f"The road server returned an error (HTTP {error.status})."
    if isinstance(error, DecodeError):
        return "Road data from the server could not be read."
    return "Could not load gravel roads. Check your connection."


# ────────────────────────────────────────────────────────────────────────────────
# Dedup rule
# ────────────────────────────────────────────────────────────────────────────────

def is_duplicate(
      new: ViewportBounds
    , last: Optional[ViewportBounds]
    , epsilon: float
    , margin: float
) -> bool:
    """
    True when `new` needs no fetch given data already fetched for `last`.

    Either every edge is within `epsilon` of `last`, or `new` lies inside
    `last` grown by `margin`.
    """
    if last is None:
        return False
    return new.is_close_to(last, epsilon) or new.contained_in(last, margin)


# ────────────────────────────────────────────────────────────────────────────────
# Coordinator
# ────────────────────────────────────────────────────────────────────────────────

GeometryListener = Callable[[RoadGeometry], None]
FailureListener = Callable[[FetchOutcome], None]


class ViewportFetchCoordinator:
    """
    Debounced, de-duplicated, single-chain driver of a RoadSource.

    Parameters
    ----------
    client : RoadSource
        Usually an OverpassClient; owns the retry/cooldown policy.
    alarm : AlarmLike | None
        Debounce timer; a threading-based Alarm by default.
    spawn : callable
        How a fetch chain is started (default: a fresh worker thread).
    defaults : FetchDefaults | None
        Debounce delay and dedup tolerances.
    """

    def __init__(
        self,
        client: RoadSource,
        *,
        alarm: Optional[AlarmLike] = None,
        spawn: Spawner = offload,
        defaults: Optional[FetchDefaults] = None,
    ) -> None:
        self._client = client
        self._alarm = alarm if alarm is not None else Alarm("viewport-debounce")
        self._defaults = defaults or get_fetch_defaults()
        self._slot = TaskSlot("road-fetch", spawn)

        self._lock = threading.RLock()
        self._latest: Optional[ViewportBounds] = None
        self._last_fetched: Optional[ViewportBounds] = None
        self._in_flight: Optional[ViewportBounds] = None
        self._reevaluate = False
        self._geometry = RoadGeometry()
        self._closed = False

        self._geometry_listeners: List[GeometryListener] = []
        self._failure_listeners: List[FailureListener] = []

    # ── read-only views ─────────────────────────────────────────────────────────
    @property
    def geometry(self) -> RoadGeometry:
        with self._lock:
            return self._geometry

    @property
    def last_fetched_bounds(self) -> Optional[ViewportBounds]:
        with self._lock:
            return self._last_fetched

    @property
    def latest_requested_bounds(self) -> Optional[ViewportBounds]:
        with self._lock:
            return self._latest

    @property
    def state(self) -> FetchState:
        with self._lock:
            if self._in_flight is not None:
                return FetchState.pending(self._in_flight)
        client_state = self._client.state
        if client_state.kind is FetchStateKind.COOLDOWN:
            return client_state
        return FetchState.idle()

    # ── listeners ───────────────────────────────────────────────────────────────
    def add_geometry_listener(self, fn: GeometryListener) -> None:
        with self._lock:
            self._geometry_listeners.append(fn)

    def remove_geometry_listener(self, fn: GeometryListener) -> None:
        with self._lock:
            if fn in self._geometry_listeners:
                self._geometry_listeners.remove(fn)

    def add_failure_listener(self, fn: FailureListener) -> None:
        with self._lock:
            self._failure_listeners.append(fn)

    def remove_failure_listener(self, fn: FailureListener) -> None:
        with self._lock:
            if fn in self._failure_listeners:
                self._failure_listeners.remove(fn)

    # ── events ──────────────────────────────────────────────────────────────────
    def on_viewport_changed(self, bounds: ViewportBounds) -> None:
        """
        Record `bounds` as the latest request and restart the debounce delay.

        Raises
        ------
        ValueError
            If `bounds` is None.
        """
        if bounds is None:
            raise ValueError("bounds must not be None")

        with self._lock:
            if self._closed:
                _log.debug("Viewport change ignored; coordinator closed")
                return
            self._latest = bounds
        self._alarm.schedule(self._defaults.debounce_s, self._on_debounce_expired)

    def close(self) -> None:
        """Stop reacting to viewport changes; an in-flight chain is left to finish."""
        with self._lock:
            self._closed = True
        self._alarm.cancel()

    # ── internals ───────────────────────────────────────────────────────────────
    def _on_debounce_expired(self) -> None:
        with self._lock:
            if self._closed or self._latest is None:
                return
            target = self._latest

            if self._in_flight is not None:
                self._reevaluate = True
                _log.debug(
                    "Fetch in flight for %s; %s queued for re-evaluation",
                      self._in_flight.describe()
                    , target.describe()
                )
                return

            if is_duplicate(
                  target
                , self._last_fetched
                , self._defaults.equality_epsilon_deg
                , self._defaults.containment_margin_deg
            ):
                _log.debug("Cache hit for %s; no fetch", target.describe())
                return

            fut = self._slot.submit(self._client.fetch, target)
            if fut is None:
                self._reevaluate = True
                return
            self._in_flight = target

        _log.info("Fetch chain started for %s", target.describe())
        fut.add_done_callback(lambda f, b=target: self._on_chain_done(b, f))

    def _on_chain_done(self, bounds: ViewportBounds, fut: "Future[RoadGeometry]") -> None:
        geometry: Optional[RoadGeometry] = None
        outcome: Optional[FetchOutcome] = None
        try:
            geometry = fut.result()
        except OverpassError as e:
            outcome = FetchOutcome(bounds, e, user_notice(e))
        except Exception as e:
            _log.exception("Road source failed unexpectedly for %s", bounds.describe())
            err = OverpassError(f"{type(e).__name__}: {e}")
            outcome = FetchOutcome(bounds, err, user_notice(err))
        finally:
            with self._lock:
                self._in_flight = None
                rerun = self._reevaluate
                self._reevaluate = False

        with self._lock:
            latest = self._latest
            if geometry is not None:
                if latest is not None and not is_duplicate(
                      latest
                    , bounds
                    , self._defaults.equality_epsilon_deg
                    , self._defaults.containment_margin_deg
                ):
                    _log.info(
                        "Discarding stale result for %s; latest request is %s",
                          bounds.describe()
                        , latest.describe()
                    )
                    geometry = None
                else:
                    self._geometry = geometry
                    self._last_fetched = bounds
            geometry_listeners = list(self._geometry_listeners)
            failure_listeners = list(self._failure_listeners)
            closed = self._closed

        if geometry is not None:
            _log.info(
                "Road geometry replaced: %d polylines, %d points for %s",
                  len(geometry)
                , geometry.point_count
                , bounds.describe()
            )
            for fn in geometry_listeners:
                fn(geometry)
        elif outcome is not None:
            _log.warning(
                "Fetch failed for %s (%s); keeping previous geometry",
                  bounds.describe()
                , type(outcome.error).__name__
            )
            for fn in failure_listeners:
                fn(outcome)

        if rerun and not closed:
            self._on_debounce_expired()


__all__ = [
      "ViewportFetchCoordinator"
    , "FetchOutcome"
    , "RoadSource"
    , "is_duplicate"
    , "user_notice"
]

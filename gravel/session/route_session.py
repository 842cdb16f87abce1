# gravel/session/route_session.py
# -*- coding: utf-8 -*-
"""
Route editing session
=====================

Single owner of the Route being edited and of everything derived from it
(segment distances, distance markers). Callers never mutate state: they
call an operation, the session builds a new Route, recomputes derived data
with the pure processor functions and publishes a new immutable
RouteSnapshot to its listeners.

Operations
----------
- add(point) / insert_between(before, after, point) / move(index, point)
- delete(index) / undo_last() / toggle_loop() / clear()
- load(points, loop_closed) / load_imported(imported) / on_route_edited(points, loop_closed)
- set_interval(m) / show_markers(flag) / generate_markers(interval_m=None)
- decimate(min_spacing_m=None) → runs on a worker, one at a time
- undo() → restore the state before the last edit

Notes
-----
- Routes above the chunking threshold (1000 points) are recomputed slice by
  slice; `on_yield` runs between slices. Listeners only ever see complete
  snapshots.
- Index-based edits with an index out of range are no-ops returning False.
"""

from __future__ import annotations

import threading
from collections import deque
from concurrent.futures import Future
from dataclasses import dataclass
from typing import Callable, Deque, Iterable, List, Optional, Tuple

from gravel.core.config import GeometryDefaults, get_geometry_defaults
from gravel.core.models import DistanceMarker, GeoPoint, Route
from gravel.formats.common import ImportedRoute
from gravel.geometry.processor import (
      compute_segments
    , compute_segments_chunked
    , decimate as decimate_points
    , dynamic_point_size
    , format_distance
    , generate_distance_markers
)
from gravel.infra.logging import get_logger
from gravel.infra.workers import Spawner, TaskSlot, offload

_log = get_logger(__name__)


@dataclass(frozen=True)
class RouteSnapshot:
    """Read-only view of the session after an edit."""

    route: Route
    segments: Tuple[float, ...]
    markers: Tuple[DistanceMarker, ...]
    show_markers: bool
    marker_interval_m: float
    version: int

    @property
    def total_m(self) -> float:
        return sum(self.segments)

    @property
    def total_label(self) -> str:
        return format_distance(self.total_m)

    @property
    def point_size(self) -> float:
        return dynamic_point_size(self.route.points)


@dataclass(frozen=True)
class _UndoEntry:
    route: Route
    show_markers: bool


SnapshotListener = Callable[[RouteSnapshot], None]


class RouteSession:
    """
    Parameters
    ----------
    defaults : GeometryDefaults | None
        Interval, chunking and decimation knobs.
    spawn : callable
        How decimation is offloaded (default: a fresh worker thread).
    max_undo : int
        Depth of the undo stack; the oldest entries fall off.
    on_yield : callable | None
        Called between slices of a chunked recomputation.
    """

    def __init__(
        self,
        *,
        defaults: Optional[GeometryDefaults] = None,
        spawn: Spawner = offload,
        max_undo: int = 50,
        on_yield: Optional[Callable[[], None]] = None,
    ) -> None:
        self._defaults = defaults or get_geometry_defaults()
        self._on_yield = on_yield
        self._decimate_slot = TaskSlot("decimate", spawn)

        self._lock = threading.RLock()
        self._undo: Deque[_UndoEntry] = deque(maxlen=max_undo)
        self._listeners: List[SnapshotListener] = []
        self._snapshot = RouteSnapshot(
              route=Route()
            , segments=()
            , markers=()
            , show_markers=False
            , marker_interval_m=self._defaults.marker_interval_m
            , version=0
        )

    # ── read side ───────────────────────────────────────────────────────────────
    @property
    def snapshot(self) -> RouteSnapshot:
        with self._lock:
            return self._snapshot

    @property
    def route(self) -> Route:
        return self.snapshot.route

    @property
    def can_undo(self) -> bool:
        with self._lock:
            return bool(self._undo)

    def add_listener(self, fn: SnapshotListener) -> None:
        with self._lock:
            self._listeners.append(fn)

    def remove_listener(self, fn: SnapshotListener) -> None:
        with self._lock:
            if fn in self._listeners:
                self._listeners.remove(fn)

    # ── core transition ─────────────────────────────────────────────────────────
    def _segments_for(self, route: Route) -> Tuple[float, ...]:
        if len(route) > self._defaults.chunking_threshold:
            return compute_segments_chunked(
                  route.points
                , route.loop_closed
                , self._defaults.chunk_size
                , on_yield=self._on_yield
            )
        return compute_segments(route.points, route.loop_closed)

    def _commit(
        self,
        route: Route,
        *,
        show_markers: Optional[bool] = None,
        interval_m: Optional[float] = None,
        record_undo: bool = True,
    ) -> RouteSnapshot:
        with self._lock:
            prev = self._snapshot
            show = prev.show_markers if show_markers is None else show_markers
            interval = prev.marker_interval_m if interval_m is None else interval_m

            segments = prev.segments if route == prev.route else self._segments_for(route)
            markers: Tuple[DistanceMarker, ...] = ()
            if show and len(route) >= 2:
                markers = tuple(generate_distance_markers(route.points, route.loop_closed, interval))

            if record_undo:
                self._undo.append(_UndoEntry(prev.route, prev.show_markers))

            snap = RouteSnapshot(route, segments, markers, show, interval, prev.version + 1)
            self._snapshot = snap
            listeners = list(self._listeners)

        for fn in listeners:
            fn(snap)
        return snap

    # ── edits ───────────────────────────────────────────────────────────────────
    def add(self, point: GeoPoint) -> RouteSnapshot:
        """Append a point; a closed loop is reopened."""
        route = self.route
        return self._commit(Route(route.points + (point,), False))

    def insert_between(self, before: int, after: int, point: GeoPoint) -> bool:
        """
        Insert `point` on the edge before→after.

        `after == before + 1` inserts between consecutive points;
        `before == last, after == 0` inserts on the closing edge (appended).
        """
        pts = list(self.route.points)
        n = len(pts)
        if after == before + 1 and 0 <= before and after < n:
            pts.insert(after, point)
        elif self.route.loop_closed and before == n - 1 and after == 0:
            pts.append(point)
        else:
            _log.debug("insert_between(%d, %d) is not an edge of a %d-point route", before, after, n)
            return False
        self._commit(self.route.with_points(pts))
        return True

    def move(self, index: int, point: GeoPoint) -> bool:
        pts = list(self.route.points)
        if not 0 <= index < len(pts):
            return False
        pts[index] = point
        self._commit(self.route.with_points(pts))
        return True

    def delete(self, index: int) -> bool:
        """Remove one point; the loop opens when fewer than 3 points remain."""
        pts = list(self.route.points)
        if not 0 <= index < len(pts):
            return False
        del pts[index]
        self._commit(self.route.with_points(pts))
        return True

    def undo_last(self) -> bool:
        """Remove the last point."""
        if len(self.route) == 0:
            return False
        return self.delete(len(self.route) - 1)

    def toggle_loop(self) -> bool:
        route = self.route
        if len(route) < 3:
            return False
        self._commit(route.with_loop(not route.loop_closed))
        return True

    def clear(self) -> RouteSnapshot:
        return self._commit(Route(), show_markers=False)

    def load(self, points: Iterable[GeoPoint], loop_closed: bool = False) -> RouteSnapshot:
        """Replace the whole route (import, saved route)."""
        return self._commit(Route(tuple(points), loop_closed))

    def load_imported(self, imported: ImportedRoute) -> RouteSnapshot:
        if imported.decimated:
            _log.info(
                "Loading imported route: %d of %d points kept after decimation",
                  len(imported.route)
                , imported.original_count
            )
        return self._commit(imported.route)

    def on_route_edited(self, points: Iterable[GeoPoint], loop_closed: bool) -> RouteSnapshot:
        """Entry point for hosts that edit points themselves and hand over the result."""
        return self.load(points, loop_closed)

    # ── markers ─────────────────────────────────────────────────────────────────
    def set_interval(self, interval_m: float) -> RouteSnapshot:
        if interval_m is None or not interval_m > 0:
            raise ValueError(f"interval_m must be positive, got {interval_m!r}")
        return self._commit(self.route, interval_m=float(interval_m), record_undo=False)

    def show_markers(self, show: bool) -> RouteSnapshot:
        return self._commit(self.route, show_markers=bool(show), record_undo=False)

    def generate_markers(self, interval_m: Optional[float] = None) -> Tuple[DistanceMarker, ...]:
        """Show markers (optionally at a new interval) and return them."""
        if interval_m is not None and not interval_m > 0:
            raise ValueError(f"interval_m must be positive, got {interval_m!r}")
        snap = self._commit(
              self.route
            , show_markers=True
            , interval_m=float(interval_m) if interval_m is not None else None
            , record_undo=False
        )
        return snap.markers

    # ── heavy work ──────────────────────────────────────────────────────────────
    def decimate(self, min_spacing_m: Optional[float] = None) -> Optional["Future[List[GeoPoint]]"]:
        """
        Thin the current route on a worker.

        Returns the worker's Future, or None when a decimation is already
        running. The result is applied only if the route did not change
        in the meantime.
        """
        spacing = self._defaults.min_spacing_m if min_spacing_m is None else min_spacing_m
        if spacing < 0:
            raise ValueError(f"min_spacing_m must be >= 0, got {spacing}")

        snap = self.snapshot
        fut = self._decimate_slot.submit(decimate_points, snap.route.points, spacing)
        if fut is None:
            return None
        fut.add_done_callback(lambda f, s=snap: self._apply_decimation(s, f))
        return fut

    def _apply_decimation(self, origin: RouteSnapshot, fut: "Future[List[GeoPoint]]") -> None:
        kept = fut.result()
        with self._lock:
            if self._snapshot.version != origin.version:
                _log.info("Route changed during decimation; result dropped")
                return
            if len(kept) == len(origin.route):
                return
            _log.info("Decimated route from %d to %d points", len(origin.route), len(kept))
            self._commit(origin.route.with_points(kept))

    # ── undo ────────────────────────────────────────────────────────────────────
    def undo(self) -> bool:
        """
        Restore the route before the last recorded edit.

        The marker interval is a setting, not an edit, and is left as is.
        """
        with self._lock:
            if not self._undo:
                return False
            entry = self._undo.pop()
        self._commit(
              entry.route
            , show_markers=entry.show_markers
            , record_undo=False
        )
        return True

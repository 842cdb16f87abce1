# gravel/geometry/processor.py
# -*- coding: utf-8 -*-
"""
Route geometry processor
========================

Pure functions over an ordered point sequence. Callers own the route and
replace derived state wholesale with what these functions return.

Public API
----------
- compute_segments(points, loop_closed) -> tuple[float, ...]
- iter_segment_chunks(points, loop_closed, chunk_size) -> Iterator[tuple[float, ...]]
- compute_segments_chunked(points, loop_closed, chunk_size, on_yield) -> tuple[float, ...]
- decimate(points, min_spacing_m=15.0) -> list[GeoPoint]
- maybe_decimate(points, threshold=2000, min_spacing_m=15.0) -> (list[GeoPoint], int)
- generate_distance_markers(points, loop_closed, interval_m) -> list[DistanceMarker]
- dynamic_point_size(points) -> float
- distance_to_point(points, index) -> float
- format_distance(meters) -> str

Notes
-----
- Every function is total over well-formed input: too few points gives an
  empty or unchanged result, never an error. Point validation happens at
  the import boundary (gravel.formats).
- Decimation is a greedy single-pass spacing filter, not a shape-preserving
  simplification: a sharp turn closer than the spacing to the last kept
  point can be dropped. Accepted for tracks above the size threshold.
"""

from __future__ import annotations

from typing import Callable, Iterator, List, Optional, Sequence, Tuple

from gravel.core.config import get_geometry_defaults
from gravel.core.models import DistanceMarker, GeoPoint
from gravel.geometry.geomath import haversine_m, interpolate
from gravel.infra.logging import get_logger

_log = get_logger(__name__)

_DEFAULTS = get_geometry_defaults()


# ────────────────────────────────────────────────────────────────────────────────
# Segment distances
# ────────────────────────────────────────────────────────────────────────────────

def compute_segments(
      points: Sequence[GeoPoint]
    , loop_closed: bool = False
) -> Tuple[float, ...]:
    """
    Geodesic length of every consecutive edge, plus last→first when closed.

    Returns
    -------
    tuple[float, ...]
        len(points) - 1 distances (+1 for a closed loop of 3+ points);
        empty for fewer than 2 points.
    """
    n = len(points)
    if n < 2:
        return ()

    segs = [haversine_m(points[i - 1], points[i]) for i in range(1, n)]
    if loop_closed and n >= 3:
        segs.append(haversine_m(points[-1], points[0]))
    return tuple(segs)


def iter_segment_chunks(
      points: Sequence[GeoPoint]
    , loop_closed: bool = False
    , chunk_size: int = _DEFAULTS.chunk_size
) -> Iterator[Tuple[float, ...]]:
    """
    Yield segment distances slice by slice (`chunk_size` edges per slice).

    The closing edge, when present, is part of the last slice. Concatenating
    every slice equals compute_segments(points, loop_closed).
    """
    if chunk_size <= 0:
        raise ValueError(f"chunk_size must be positive, got {chunk_size}")

    n = len(points)
    if n < 2:
        return

    for start in range(1, n, chunk_size):
        end = min(start + chunk_size, n)
        chunk = [haversine_m(points[i - 1], points[i]) for i in range(start, end)]
        if end == n and loop_closed and n >= 3:
            chunk.append(haversine_m(points[-1], points[0]))
        yield tuple(chunk)


def compute_segments_chunked(
      points: Sequence[GeoPoint]
    , loop_closed: bool = False
    , chunk_size: int = _DEFAULTS.chunk_size
    , on_yield: Optional[Callable[[], None]] = None
) -> Tuple[float, ...]:
    """
    Cooperative variant of compute_segments for large routes.

    `on_yield` runs between slices so the caller can service input or other
    work; the result is only returned once complete, so observers never see
    a partial list.
    """
    out: List[float] = []
    slices = 0
    for chunk in iter_segment_chunks(points, loop_closed, chunk_size):
        if slices and on_yield is not None:
            on_yield()
        out.extend(chunk)
        slices += 1

    _log.debug(
        "compute_segments_chunked: points=%d slices=%d segments=%d",
          len(points)
        , slices
        , len(out)
    )
    return tuple(out)


# ────────────────────────────────────────────────────────────────────────────────
# Decimation
# ────────────────────────────────────────────────────────────────────────────────

def decimate(
      points: Sequence[GeoPoint]
    , min_spacing_m: float = _DEFAULTS.min_spacing_m
) -> List[GeoPoint]:
    """
    Drop points closer than `min_spacing_m` to the previously kept point.

    First and last points are always kept. The last kept interior point may
    sit closer than the spacing to the final point.
    """
    if min_spacing_m < 0:
        raise ValueError(f"min_spacing_m must be >= 0, got {min_spacing_m}")

    if len(points) <= 3:
        return list(points)

    kept: List[GeoPoint] = [points[0]]
    for p in points[1:-1]:
        if haversine_m(kept[-1], p) >= min_spacing_m:
            kept.append(p)

    kept.append(points[-1])
    return kept


def maybe_decimate(
      points: Sequence[GeoPoint]
    , threshold: int = _DEFAULTS.decimation_threshold
    , min_spacing_m: float = _DEFAULTS.min_spacing_m
) -> Tuple[List[GeoPoint], int]:
    """
    Decimate only tracks longer than `threshold` points.

    Returns
    -------
    (points, original_count)
    """
    original = len(points)
    if original <= threshold:
        return list(points), original

    kept = decimate(points, min_spacing_m)
    _log.info(
        "Decimated track from %d to %d points (min spacing %.1f m)",
          original
        , len(kept)
        , min_spacing_m
    )
    return kept, original


# ────────────────────────────────────────────────────────────────────────────────
# Distance markers
# ────────────────────────────────────────────────────────────────────────────────

def generate_distance_markers(
      points: Sequence[GeoPoint]
    , loop_closed: bool
    , interval_m: float
) -> List[DistanceMarker]:
    """
    Place a marker every `interval_m` along the route.

    Walks cumulative distance over each edge (closing edge included for a
    closed loop) and interpolates every threshold that falls inside an edge.
    Several markers may land on one long edge.

    Raises
    ------
    ValueError
        If `interval_m` is not positive.
    """
    if interval_m is None or not interval_m > 0:
        raise ValueError(f"interval_m must be positive, got {interval_m!r}")

    n = len(points)
    if n < 2:
        return []

    edges: List[Tuple[GeoPoint, GeoPoint]] = [(points[i - 1], points[i]) for i in range(1, n)]
    if loop_closed and n >= 3:
        edges.append((points[-1], points[0]))

    markers: List[DistanceMarker] = []
    walked = 0.0
    k = 1
    for a, b in edges:
        seg = haversine_m(a, b)
        seg_end = walked + seg
        while seg > 0 and k * interval_m <= seg_end:
            target = k * interval_m
            markers.append(DistanceMarker(interpolate(a, b, (target - walked) / seg), target, k))
            k += 1
        walked = seg_end

    return markers


# ────────────────────────────────────────────────────────────────────────────────
# Presentation hints
# ────────────────────────────────────────────────────────────────────────────────

_SIZE_STEPS: Tuple[Tuple[float, float], ...] = (
      (1000.0, 20.0)
    , (500.0, 18.0)
    , (200.0, 16.0)
    , (100.0, 14.0)
    , (50.0, 12.0)
)


def dynamic_point_size(points: Sequence[GeoPoint]) -> float:
    """
    Marker size for route vertices from the mean spacing of non-zero edges.

    Coarser spacing gives a larger size; 18.0 when density is undefined.
    """
    if len(points) < 2:
        return 18.0

    total = 0.0
    valid = 0
    for i in range(1, len(points)):
        d = haversine_m(points[i - 1], points[i])
        if d > 0:
            total += d
            valid += 1

    if valid == 0:
        return 18.0

    mean = total / valid
    for floor_m, size in _SIZE_STEPS:
        if mean > floor_m:
            return size
    return 10.0


def distance_to_point(points: Sequence[GeoPoint], index: int) -> float:
    """Along-route distance from the start to `points[index]` (0.0 if out of range)."""
    if index < 0 or index >= len(points):
        return 0.0
    return sum(haversine_m(points[i], points[i + 1]) for i in range(index))


def format_distance(meters: float) -> str:
    """'420 m' below 950 m, else kilometers with 2 (<10 km) or 1 decimals."""
    if meters < 950:
        return f"{meters:.0f} m"
    km = meters / 1000.0
    return f"{km:.2f} km" if km < 10 else f"{km:.1f} km"

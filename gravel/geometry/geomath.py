# gravel/geometry/geomath.py
# -*- coding: utf-8 -*-
"""
Geodesic primitives
===================

Stateless helpers shared by the geometry processor, the importers and the
session layer.

Public API
----------
- haversine_m(a, b) -> float
- interpolate(a, b, ratio) -> GeoPoint
- path_length_m(points, loop_closed) -> float
- bounds_of(points, padding_ratio=0.1) -> ViewportBounds | None

Notes
-----
- Distances are great-circle on a spherical Earth (mean radius), in meters.
- Interpolation is linear in lat/lon; markers sit on the drawn straight edge.
"""

from __future__ import annotations

import math
from typing import Optional, Sequence

from gravel.core.models import GeoPoint, ViewportBounds

EARTH_RADIUS_M = 6371008.8  # mean Earth radius (m)


def haversine_m(a: GeoPoint, b: GeoPoint) -> float:
    """
    Great-circle distance between two points, in meters.
    """
    p1, p2 = math.radians(a.lat), math.radians(b.lat)
    dphi = math.radians(b.lat - a.lat)
    dl = math.radians(b.lon - a.lon)
    h = math.sin(dphi / 2) ** 2 + math.cos(p1) * math.cos(p2) * math.sin(dl / 2) ** 2
    return 2 * EARTH_RADIUS_M * math.asin(min(1.0, math.sqrt(h)))  # guard for rounding


def interpolate(a: GeoPoint, b: GeoPoint, ratio: float) -> GeoPoint:
    """
    Point at `ratio` (0 → a, 1 → b) along the straight lat/lon edge a→b.
    """
    return GeoPoint(
          a.lat + (b.lat - a.lat) * ratio
        , a.lon + (b.lon - a.lon) * ratio
    )


def path_length_m(points: Sequence[GeoPoint], loop_closed: bool = False) -> float:
    """Total length, including the closing edge for a closed loop of 3+ points."""
    total = 0.0
    for i in range(1, len(points)):
        total += haversine_m(points[i - 1], points[i])
    if loop_closed and len(points) >= 3:
        total += haversine_m(points[-1], points[0])
    return total


def bounds_of(
      points: Sequence[GeoPoint]
    , padding_ratio: float = 0.1
) -> Optional[ViewportBounds]:
    """
    Bounding box of `points` grown by `padding_ratio` of its span on each side.

    Used to frame a route on the map. Returns None for an empty sequence.
    """
    if not points:
        return None

    min_lat = min(p.lat for p in points)
    max_lat = max(p.lat for p in points)
    min_lon = min(p.lon for p in points)
    max_lon = max(p.lon for p in points)

    lat_pad = (max_lat - min_lat) * padding_ratio
    lon_pad = (max_lon - min_lon) * padding_ratio

    return ViewportBounds(
          south=max(-90.0, min_lat - lat_pad)
        , west=max(-180.0, min_lon - lon_pad)
        , north=min(90.0, max_lat + lat_pad)
        , east=min(180.0, max_lon + lon_pad)
    )

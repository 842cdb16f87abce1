# gravel/overpass/decoder.py
# -*- coding: utf-8 -*-
"""
Overpass response decoding.

Turns an `out geom` JSON body into RoadGeometry. Runs on a worker thread
(see OverpassClient) because large viewports carry thousands of
coordinates.

Expected shape
--------------
    {"elements": [{"type": "way", "geometry": [{"lat": .., "lon": ..}, ...]}, ...]}

- Non-way elements and ways without a geometry list are skipped.
- Nodes with missing, non-numeric or out-of-range lat/lon are skipped.
- Ways left with fewer than 2 coordinates are discarded.
"""

from __future__ import annotations

import json
import math
from typing import Any, List, Optional, Union

from gravel.core.models import GeoPoint, Polyline, RoadGeometry, ViewportBounds
from gravel.infra.logging import get_logger
from .overpass_common import DecodeError

_log = get_logger(__name__)


def _is_number(v: Any) -> bool:
    return isinstance(v, (int, float)) and not isinstance(v, bool) and math.isfinite(v)


def _way_points(element: Any) -> Optional[Polyline]:
    if not isinstance(element, dict) or element.get("type") != "way":
        return None
    geometry = element.get("geometry")
    if not isinstance(geometry, list):
        return None

    pts: List[GeoPoint] = []
    for node in geometry:
        if not isinstance(node, dict):
            continue
        lat, lon = node.get("lat"), node.get("lon")
        if not (_is_number(lat) and _is_number(lon)):
            continue
        if not (-90 <= lat <= 90 and -180 <= lon <= 180):
            continue
        pts.append(GeoPoint(lat, lon))

    return tuple(pts) if len(pts) >= 2 else None


def extract_polylines(
      body: Union[str, bytes]
    , bounds: Optional[ViewportBounds] = None
) -> RoadGeometry:
    """
    Parse an Overpass JSON body into RoadGeometry.

    Raises
    ------
    DecodeError
        Invalid JSON, or a document without an `elements` list.
    """
    try:
        data = json.loads(body)
    except (ValueError, TypeError) as exc:
        raise DecodeError(f"invalid JSON payload: {exc}") from exc

    if not isinstance(data, dict) or not isinstance(data.get("elements"), list):
        raise DecodeError("payload has no 'elements' list")

    elements = data["elements"]
    lines = []
    for element in elements:
        pts = _way_points(element)
        if pts is not None:
            lines.append(pts)

    geometry = RoadGeometry(tuple(lines), bounds)
    _log.debug(
        "extract_polylines: elements=%d polylines=%d points=%d",
          len(elements)
        , len(geometry)
        , geometry.point_count
    )
    return geometry

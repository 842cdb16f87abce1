# gravel/formats/geojson_io.py
# -*- coding: utf-8 -*-
"""
GeoJSON import/export.

Export writes a FeatureCollection with one LineString Feature:

    {"type": "FeatureCollection",
     "features": [{"type": "Feature",
                   "properties": {"name": .., "loopClosed": .., "exportedAt": ..},
                   "geometry": {"type": "LineString", "coordinates": [[lon, lat], ...]}}]}

A closed loop repeats its first coordinate at the end.

Import accepts a FeatureCollection, a Feature, a bare LineString or a
MultiLineString (first line only). `properties.loopClosed` sets the loop
flag; the repeated closing coordinate is dropped again.
"""

from __future__ import annotations

import json
from datetime import datetime
from typing import Any, List, Optional, Tuple, Union

from gravel.core.models import GeoPoint, Route
from gravel.infra.logging import get_logger
from .common import (
      ImportRejected
    , ImportedRoute
    , closing_sequence
    , decoded_text
    , validated_point
)

_log = get_logger(__name__)

DEFAULT_NAME = "Gravel route"


# ────────────────────────────────────────────────────────────────────────────────
# Export
# ────────────────────────────────────────────────────────────────────────────────

def to_feature_collection(
      route: Route
    , name: str = DEFAULT_NAME
    , exported_at: Optional[datetime] = None
) -> dict:
    coords = [[p.lon, p.lat] for p in closing_sequence(route)]
    feature = {
          "type": "Feature"
        , "properties": {
              "name": name
            , "loopClosed": route.loop_closed
            , "exportedAt": (exported_at or datetime.now()).isoformat()
        }
        , "geometry": {"type": "LineString", "coordinates": coords}
    }
    return {"type": "FeatureCollection", "features": [feature]}


def dumps_geojson(
      route: Route
    , name: str = DEFAULT_NAME
    , exported_at: Optional[datetime] = None
) -> str:
    """
    Serialize `route` as an indented GeoJSON FeatureCollection.

    Raises
    ------
    ValueError
        If the route has no points.
    """
    if len(route) == 0:
        raise ValueError("Cannot export an empty route")
    return json.dumps(to_feature_collection(route, name, exported_at), indent=2, ensure_ascii=False)


# ────────────────────────────────────────────────────────────────────────────────
# Import
# ────────────────────────────────────────────────────────────────────────────────

def _first_line(node: Any) -> Optional[Tuple[list, dict]]:
    """(coordinates, properties) of the first line geometry under `node`."""
    if not isinstance(node, dict):
        return None

    kind = node.get("type")
    if kind == "FeatureCollection" and isinstance(node.get("features"), list):
        for feature in node["features"]:
            found = _first_line(feature)
            if found is not None:
                return found
    elif kind == "Feature" and isinstance(node.get("geometry"), dict):
        found = _first_line(node["geometry"])
        if found is not None:
            props = node.get("properties")
            return found[0], props if isinstance(props, dict) else {}
    elif kind == "LineString" and isinstance(node.get("coordinates"), list):
        return node["coordinates"], {}
    elif kind == "MultiLineString" and isinstance(node.get("coordinates"), list):
        lines = node["coordinates"]
        if lines and isinstance(lines[0], list):
            return lines[0], {}
    return None


def loads_geojson(text: Union[str, bytes]) -> ImportedRoute:
    """
    Parse GeoJSON text into an ImportedRoute.

    Raises
    ------
    ImportRejected
        Empty input, invalid JSON, no line geometry, or a bad coordinate.
    """
    text = decoded_text(text)
    if not text or not text.strip():
        raise ImportRejected("file is empty")

    try:
        doc = json.loads(text)
    except ValueError as exc:
        raise ImportRejected(f"not valid JSON ({exc})") from exc

    found = _first_line(doc)
    if found is None:
        kind = doc.get("type") if isinstance(doc, dict) else type(doc).__name__
        raise ImportRejected(f"no LineString found in GeoJSON (type {kind!r})")

    coords, props = found
    if not coords:
        raise ImportRejected("LineString has no coordinates")

    points: List[GeoPoint] = []
    for i, c in enumerate(coords):
        if not isinstance(c, (list, tuple)) or len(c) < 2:
            raise ImportRejected(f"coordinate #{i} is not a [lon, lat] pair")
        points.append(validated_point(c[1], c[0], f"coordinate #{i}"))

    loop_closed = props.get("loopClosed") is True
    if loop_closed and len(points) >= 2 and points[0] == points[-1]:
        points = points[:-1]

    name = props.get("name") if isinstance(props.get("name"), str) else None
    route = Route(tuple(points), loop_closed)
    _log.info(
        "Imported %d points from GeoJSON (loop_closed=%s)",
          len(route)
        , route.loop_closed
    )
    return ImportedRoute(route, name, len(route))

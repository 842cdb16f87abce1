# gravel/formats/gpx_io.py
# -*- coding: utf-8 -*-
"""
GPX import/export (gpxpy).

Export: GPX 1.1, creator "Gravel First", one track with one segment. A
closed loop repeats its first point at the end since GPX has no loop flag.

Import:
- Reads every <trkpt> of every track segment, in order; files with no
  track points fall back to <rtept> route points.
- Loop closure is inferred: first point == last point exactly → the
  duplicate is dropped and the route is marked closed.
- Tracks above the decimation threshold (2000 points) are thinned to the
  minimum spacing (15 m). The caller decides which thread this runs on.
"""

from __future__ import annotations

from typing import List, Optional, Union

import gpxpy
import gpxpy.gpx

from gravel.core.config import get_geometry_defaults
from gravel.core.models import GeoPoint, Route
from gravel.geometry.processor import maybe_decimate
from gravel.infra.logging import get_logger
from .common import (
      ImportRejected
    , ImportedRoute
    , closing_sequence
    , decoded_text
    , infer_closed_loop
    , validated_point
)

_log = get_logger(__name__)

_DEFAULTS = get_geometry_defaults()

CREATOR = "Gravel First"
DEFAULT_NAME = "Gravel route"


# ────────────────────────────────────────────────────────────────────────────────
# Export
# ────────────────────────────────────────────────────────────────────────────────

def to_gpx(route: Route, name: str = DEFAULT_NAME) -> gpxpy.gpx.GPX:
    gpx = gpxpy.gpx.GPX()
    gpx.creator = CREATOR

    track = gpxpy.gpx.GPXTrack(name=name)
    gpx.tracks.append(track)

    segment = gpxpy.gpx.GPXTrackSegment()
    track.segments.append(segment)

    for p in closing_sequence(route):
        segment.points.append(gpxpy.gpx.GPXTrackPoint(p.lat, p.lon))
    return gpx


def dumps_gpx(route: Route, name: str = DEFAULT_NAME) -> str:
    """
    Serialize `route` as a GPX 1.1 document.

    Raises
    ------
    ValueError
        If the route has no points.
    """
    if len(route) == 0:
        raise ValueError("Cannot export an empty route")
    return to_gpx(route, name).to_xml(version="1.1")


# ────────────────────────────────────────────────────────────────────────────────
# Import
# ────────────────────────────────────────────────────────────────────────────────

def _collect_points(gpx: gpxpy.gpx.GPX) -> List[GeoPoint]:
    pts: List[GeoPoint] = []
    for t, track in enumerate(gpx.tracks):
        for s, seg in enumerate(track.segments):
            for i, p in enumerate(seg.points):
                pts.append(validated_point(p.latitude, p.longitude, f"track {t} segment {s} point #{i}"))

    if pts:
        return pts

    for r, rte in enumerate(gpx.routes):
        for i, p in enumerate(rte.points):
            pts.append(validated_point(p.latitude, p.longitude, f"route {r} point #{i}"))
    return pts


def loads_gpx(
      text: Union[str, bytes]
    , decimation_threshold: Optional[int] = None
    , min_spacing_m: Optional[float] = None
) -> ImportedRoute:
    """
    Parse GPX text into an ImportedRoute.

    Raises
    ------
    ImportRejected
        Empty input, unparsable XML, no points, or a bad coordinate.
    """
    text = decoded_text(text)
    if not text or not text.strip():
        raise ImportRejected("file is empty")

    try:
        gpx = gpxpy.parse(text)
    except (gpxpy.gpx.GPXException, ValueError) as exc:
        raise ImportRejected(f"not a readable GPX file ({exc})") from exc

    points = _collect_points(gpx)
    if not points:
        raise ImportRejected("no track points found in GPX")

    threshold = _DEFAULTS.decimation_threshold if decimation_threshold is None else decimation_threshold
    spacing = _DEFAULTS.min_spacing_m if min_spacing_m is None else min_spacing_m
    kept, original = maybe_decimate(points, threshold, spacing)

    kept, loop_closed = infer_closed_loop(kept)
    name = gpx.tracks[0].name if gpx.tracks and gpx.tracks[0].name else gpx.name

    route = Route(tuple(kept), loop_closed)
    _log.info(
        "Imported %d points from GPX (read %d, loop_closed=%s)",
          len(route)
        , original
        , route.loop_closed
    )
    return ImportedRoute(route, name, original)

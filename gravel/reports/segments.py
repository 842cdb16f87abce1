# gravel/reports/segments.py
# -*- coding: utf-8 -*-
"""
Tabular route reports (pandas).

- segments_frame(route) → one row per edge (closing edge flagged)
- markers_frame(markers) → one row per distance marker
- route_summary(route) → small dict for logs/CLI output
- write_segment_report(route, path) → CSV on disk
"""

from __future__ import annotations

from pathlib import Path
from typing import Any, Dict, Sequence

import pandas as pd

from gravel.core.models import DistanceMarker, Route
from gravel.core.types import StrPath
from gravel.geometry.processor import compute_segments, dynamic_point_size, format_distance
from gravel.infra.logging import get_logger

_log = get_logger(__name__)

SEGMENT_COLUMNS = [
      "segment"
    , "from_index"
    , "to_index"
    , "from_lat"
    , "from_lon"
    , "to_lat"
    , "to_lon"
    , "distance_m"
    , "cumulative_m"
    , "is_closing"
]

MARKER_COLUMNS = ["index", "distance_m", "lat", "lon", "label"]


def segments_frame(route: Route) -> pd.DataFrame:
    """
    Edge-by-edge breakdown of `route`.

    Returns
    -------
    pd.DataFrame
        Columns SEGMENT_COLUMNS; empty (with columns) for fewer than 2 points.
    """
    segs = compute_segments(route.points, route.loop_closed)
    if not segs:
        return pd.DataFrame(columns=SEGMENT_COLUMNS)

    n = len(route.points)
    rows = []
    for i, d in enumerate(segs):
        a, b = i, (i + 1) % n
        pa, pb = route.points[a], route.points[b]
        rows.append(
            {
                  "segment": i + 1
                , "from_index": a
                , "to_index": b
                , "from_lat": pa.lat
                , "from_lon": pa.lon
                , "to_lat": pb.lat
                , "to_lon": pb.lon
                , "distance_m": d
                , "is_closing": b == 0
            }
        )

    df = pd.DataFrame(rows)
    df["cumulative_m"] = df["distance_m"].cumsum()
    return df[SEGMENT_COLUMNS]


def markers_frame(markers: Sequence[DistanceMarker]) -> pd.DataFrame:
    if not markers:
        return pd.DataFrame(columns=MARKER_COLUMNS)
    return pd.DataFrame(
        {
              "index": [m.index for m in markers]
            , "distance_m": [m.distance_m for m in markers]
            , "lat": [m.point.lat for m in markers]
            , "lon": [m.point.lon for m in markers]
            , "label": [format_distance(m.distance_m) for m in markers]
        }
    )


def route_summary(route: Route) -> Dict[str, Any]:
    df = segments_frame(route)
    if df.empty:
        total, mean = 0.0, 0.0
    else:
        total = float(df["distance_m"].sum())
        nonzero = df.loc[df["distance_m"] > 0, "distance_m"]
        mean = float(nonzero.mean()) if len(nonzero) else 0.0

    return {
          "points": len(route)
        , "segments": len(df)
        , "loop_closed": route.loop_closed
        , "total_m": total
        , "total_label": format_distance(total)
        , "mean_spacing_m": mean
        , "point_size": dynamic_point_size(route.points)
    }


def write_segment_report(route: Route, path: StrPath) -> Path:
    """Write segments_frame(route) as CSV; returns the path written."""
    out = Path(path)
    out.parent.mkdir(parents=True, exist_ok=True)
    df = segments_frame(route)
    df.to_csv(out, index=False)
    _log.info("Segment report: %d rows → %s", len(df), out)
    return out

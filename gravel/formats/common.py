# gravel/formats/common.py
# -*- coding: utf-8 -*-
"""
Shared pieces of the import/export boundary.

- ImportRejected: the single error raised for unusable input files
- ImportedRoute: what every importer returns
- decoded_text(): bytes → text, rejecting files that are not UTF-8
- validated_point(): coordinate checks applied to every imported vertex
- infer_closed_loop(): explicit closing vertex → loop flag

Geometry code downstream assumes well-formed points; everything malformed
is stopped here.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Any, List, Optional, Sequence, Tuple, Union

from gravel.core.models import GeoPoint, Route


class ImportRejected(Exception):
    """
    An import file cannot be turned into a Route.

    `reason` is short and user-facing; the Route being edited is untouched.
    """

    def __init__(self, reason: str) -> None:
        super().__init__(reason)
        self.reason = reason


@dataclass(frozen=True)
class ImportedRoute:
    """
    Result of an import.

    Attributes
    ----------
    route : Route
        Points in file order (closing duplicate removed) and the loop flag.
    name : Optional[str]
        Name carried by the file, if any.
    original_count : int
        Number of points read before decimation.
    """

    route: Route
    name: Optional[str] = None
    original_count: int = 0

    @property
    def decimated(self) -> bool:
        return self.original_count > len(self.route)


def _as_float(v: Any) -> Optional[float]:
    if isinstance(v, bool):
        return None
    if isinstance(v, (int, float)):
        return float(v)
    if isinstance(v, str):
        try:
            return float(v.strip())
        except ValueError:
            return None
    return None


def decoded_text(data: Union[str, bytes]) -> str:
    """Text of an import file; undecodable bytes are an ImportRejected."""
    if isinstance(data, str):
        return data
    try:
        return data.decode("utf-8-sig")
    except UnicodeDecodeError as exc:
        raise ImportRejected("file is not UTF-8 text") from exc


def validated_point(lat: Any, lon: Any, where: str) -> GeoPoint:
    """
    Build a GeoPoint or raise ImportRejected naming the offending vertex.
    """
    la, lo = _as_float(lat), _as_float(lon)
    if la is None or lo is None:
        raise ImportRejected(f"{where}: coordinate is not a number ({lat!r}, {lon!r})")
    if not (math.isfinite(la) and math.isfinite(lo)):
        raise ImportRejected(f"{where}: coordinate is not finite ({lat!r}, {lon!r})")
    if not (-90.0 <= la <= 90.0 and -180.0 <= lo <= 180.0):
        raise ImportRejected(f"{where}: coordinate out of range ({la}, {lo})")
    return GeoPoint(la, lo)


def infer_closed_loop(points: Sequence[GeoPoint]) -> Tuple[List[GeoPoint], bool]:
    """
    Drop an explicit closing vertex.

    A sequence of 4+ points whose last point equals the first exactly is a
    closed loop of the remaining points. Anything else is returned as is.
    """
    pts = list(points)
    if len(pts) >= 4 and pts[0] == pts[-1]:
        return pts[:-1], True
    return pts, False


def closing_sequence(route: Route) -> List[GeoPoint]:
    """Points as written by formats that need an explicit closing vertex."""
    pts = list(route.points)
    if route.loop_closed:
        pts.append(pts[0])
    return pts

# gravel/core/models.py
# -*- coding: utf-8 -*-

"""
Core domain models (pure dataclasses).

    - GeoPoint: an immutable geographic coordinate
    - Route: ordered points plus the loop-closure flag
    - DistanceMarker: a point at a fixed along-route distance
    - ViewportBounds: the visible map rectangle (south/west/north/east)
    - RoadGeometry: decoded road polylines for one viewport
    - FetchState: Idle / Pending(bounds) / Cooldown(until)
    - SavedRoute: a completed route as stored by the persistence layer

This module has no database, HTTP or geometry imports. It is safe to import
from anywhere.
"""

from __future__ import annotations

import math
from dataclasses import dataclass, field, replace
from datetime import datetime
from enum import Enum
from typing import Any, Dict, Iterable, Optional, Tuple


# ────────────────────────────────────────────────────────────────────────────────
# Basic geographic point
# ────────────────────────────────────────────────────────────────────────────────

@dataclass(frozen=True)
class GeoPoint:
    """
    A geographic coordinate in decimal degrees.

    Equality is exact-coordinate equality; GPX loop inference relies on it.

    Raises
    ------
    ValueError
        If a coordinate is non-finite or outside lat [-90, 90] / lon [-180, 180].
    """

    lat: float
    lon: float

    def __post_init__(self) -> None:
        lat = float(self.lat)
        lon = float(self.lon)
        if not (math.isfinite(lat) and math.isfinite(lon)):
            raise ValueError(f"Non-finite coordinate ({self.lat!r}, {self.lon!r})")
        if not (-90.0 <= lat <= 90.0 and -180.0 <= lon <= 180.0):
            raise ValueError(f"Coordinate out of range ({lat}, {lon})")
        object.__setattr__(self, "lat", lat)
        object.__setattr__(self, "lon", lon)


# ────────────────────────────────────────────────────────────────────────────────
# Route
# ────────────────────────────────────────────────────────────────────────────────

@dataclass(frozen=True)
class Route:
    """
    An ordered sequence of points and a loop flag.

    The closing edge is a flag, never a stored duplicate of the first point.
    A loop needs at least three points; `loop_closed=True` on a shorter route
    is normalized to False.
    """

    points: Tuple[GeoPoint, ...] = ()
    loop_closed: bool = False

    def __post_init__(self) -> None:
        pts = tuple(self.points)
        object.__setattr__(self, "points", pts)
        object.__setattr__(self, "loop_closed", bool(self.loop_closed) and len(pts) >= 3)

    def __len__(self) -> int:
        return len(self.points)

    @classmethod
    def from_pairs(
          cls
        , pairs: Iterable[Tuple[float, float]]
        , loop_closed: bool = False
    ) -> "Route":
        return cls(tuple(GeoPoint(lat, lon) for lat, lon in pairs), loop_closed)

    def with_points(self, points: Iterable[GeoPoint]) -> "Route":
        return Route(tuple(points), self.loop_closed)

    def with_loop(self, loop_closed: bool) -> "Route":
        return Route(self.points, loop_closed)


# ────────────────────────────────────────────────────────────────────────────────
# Distance markers
# ────────────────────────────────────────────────────────────────────────────────

@dataclass(frozen=True)
class DistanceMarker:
    """
    A point placed at `distance_m` from the route start (index is 1-based).
    """

    point: GeoPoint
    distance_m: float
    index: int


# ────────────────────────────────────────────────────────────────────────────────
# Viewport bounds
# ────────────────────────────────────────────────────────────────────────────────

@dataclass(frozen=True)
class ViewportBounds:
    """
    A south/west/north/east rectangle in degrees.

    Raises
    ------
    ValueError
        If any edge is non-finite or the rectangle is inverted.
    """

    south: float
    west: float
    north: float
    east: float

    def __post_init__(self) -> None:
        edges = (self.south, self.west, self.north, self.east)
        if any(e is None for e in edges):
            raise ValueError("ViewportBounds edges must not be None")
        if not all(math.isfinite(float(e)) for e in edges):
            raise ValueError(f"Non-finite bounds {edges!r}")
        if self.south > self.north or self.west > self.east:
            raise ValueError(f"Inverted bounds {edges!r}")

    def is_close_to(self, other: "ViewportBounds", epsilon: float) -> bool:
        """True when every edge differs from `other` by less than `epsilon`."""
        return (
                abs(self.south - other.south) < epsilon
            and abs(self.west - other.west) < epsilon
            and abs(self.north - other.north) < epsilon
            and abs(self.east - other.east) < epsilon
        )

    def contained_in(self, other: "ViewportBounds", margin: float) -> bool:
        """True when this rectangle fits inside `other` grown by `margin`."""
        return (
                self.north <= other.north + margin
            and self.south >= other.south - margin
            and self.east <= other.east + margin
            and self.west >= other.west - margin
        )

    @property
    def approx_area_km2(self) -> float:
        # ~110 km per degree on both axes; only used for logging.
        return (self.north - self.south) * (self.east - self.west) * 12100.0

    def describe(self) -> str:
        return f"{self.south:.4f},{self.west:.4f} to {self.north:.4f},{self.east:.4f}"


# ────────────────────────────────────────────────────────────────────────────────
# Decoded road network
# ────────────────────────────────────────────────────────────────────────────────

Polyline = Tuple[GeoPoint, ...]


@dataclass(frozen=True)
class RoadGeometry:
    """
    Road polylines for one viewport; every polyline has at least 2 points.
    Replaced wholesale on each successful fetch.
    """

    polylines: Tuple[Polyline, ...] = ()
    bounds: Optional[ViewportBounds] = None

    def __len__(self) -> int:
        return len(self.polylines)

    @property
    def point_count(self) -> int:
        return sum(len(p) for p in self.polylines)


# ────────────────────────────────────────────────────────────────────────────────
# Fetch state machine
# ────────────────────────────────────────────────────────────────────────────────

class FetchStateKind(str, Enum):
    IDLE = "idle"
    PENDING = "pending"
    COOLDOWN = "cooldown"


@dataclass(frozen=True)
class FetchState:
    """
    Idle, Pending(bounds) or Cooldown(until).

    `until` is a monotonic timestamp in the clock used by the network client.
    """

    kind: FetchStateKind = FetchStateKind.IDLE
    bounds: Optional[ViewportBounds] = None
    until: Optional[float] = None

    @classmethod
    def idle(cls) -> "FetchState":
        return cls(FetchStateKind.IDLE)

    @classmethod
    def pending(cls, bounds: ViewportBounds) -> "FetchState":
        return cls(FetchStateKind.PENDING, bounds=bounds)

    @classmethod
    def cooldown(cls, until: float) -> "FetchState":
        return cls(FetchStateKind.COOLDOWN, until=until)


# ────────────────────────────────────────────────────────────────────────────────
# Persisted route
# ────────────────────────────────────────────────────────────────────────────────

@dataclass(frozen=True)
class SavedRoute:
    """
    A completed route as held by local or cloud storage.

    Attributes
    ----------
    name : str
        User-facing name.
    route : Route
        Points and loop flag.
    saved_at : datetime
        Creation time; storage lists newest first.
    description : Optional[str]
        Free text.
    distance_m : Optional[float]
        Total length at save time, including the closing edge.
    is_public : bool
        Cloud visibility flag.
    owner_id : Optional[str]
        Authenticated owner, when synced to the cloud.
    remote_id : Optional[str]
        Cloud document id.
    last_synced : Optional[datetime]
        Last successful cloud write.
    key : Optional[int]
        Local row id; None until stored locally.
    """

    name: str
    route: Route
    saved_at: datetime = field(default_factory=datetime.now)
    description: Optional[str] = None
    distance_m: Optional[float] = None
    is_public: bool = False
    owner_id: Optional[str] = None
    remote_id: Optional[str] = None
    last_synced: Optional[datetime] = None
    key: Optional[int] = None

    def copy_with(self, **changes: Any) -> "SavedRoute":
        return replace(self, **changes)

    def to_dict(self) -> Dict[str, Any]:
        return {
              "name": self.name
            , "points": [{"lat": p.lat, "lng": p.lon} for p in self.route.points]
            , "loopClosed": self.route.loop_closed
            , "savedAt": self.saved_at.isoformat()
            , "description": self.description
            , "distance": self.distance_m
            , "isPublic": self.is_public
            , "userId": self.owner_id
            , "firestoreId": self.remote_id
            , "lastSynced": self.last_synced.isoformat() if self.last_synced else None
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any], *, key: Optional[int] = None) -> "SavedRoute":
        points = tuple(GeoPoint(p["lat"], p["lng"]) for p in data.get("points") or [])
        distance = data.get("distance")
        last_synced = data.get("lastSynced")
        return cls(
              name=str(data.get("name") or "")
            , route=Route(points, bool(data.get("loopClosed", False)))
            , saved_at=datetime.fromisoformat(data["savedAt"])
            , description=data.get("description")
            , distance_m=float(distance) if distance is not None else None
            , is_public=bool(data.get("isPublic", False))
            , owner_id=data.get("userId")
            , remote_id=data.get("firestoreId")
            , last_synced=datetime.fromisoformat(last_synced) if last_synced else None
            , key=key
        )

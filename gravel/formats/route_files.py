# gravel/formats/route_files.py
# -*- coding: utf-8 -*-
"""
File-level helpers: pick the format from the extension.

    .geojson / .json → GeoJSON
    .gpx             → GPX
"""

from __future__ import annotations

from pathlib import Path

from gravel.core.models import Route
from gravel.core.types import StrPath
from gravel.infra.logging import get_logger
from .common import ImportRejected, ImportedRoute
from .geojson_io import dumps_geojson, loads_geojson
from .gpx_io import dumps_gpx, loads_gpx

_log = get_logger(__name__)

GEOJSON_SUFFIXES = (".geojson", ".json")
GPX_SUFFIXES = (".gpx",)


def _format_of(path: Path) -> str:
    suffix = path.suffix.lower()
    if suffix in GEOJSON_SUFFIXES:
        return "geojson"
    if suffix in GPX_SUFFIXES:
        return "gpx"
    raise ImportRejected(f"unsupported file type {suffix or '(none)'!r}; expected .geojson or .gpx")


def read_route_file(path: StrPath) -> ImportedRoute:
    """
    Import a route from a .geojson/.json or .gpx file.

    Raises
    ------
    ImportRejected
        Unsupported extension or unusable content.
    FileNotFoundError
        If `path` does not exist.
    """
    p = Path(path)
    fmt = _format_of(p)
    data = p.read_bytes()
    if not data:
        raise ImportRejected("file is empty")

    _log.debug("Reading %s route from %s (%d B)", fmt, p, len(data))
    return loads_geojson(data) if fmt == "geojson" else loads_gpx(data)


def write_route_file(path: StrPath, route: Route, name: str = "Gravel route") -> Path:
    """Export `route` to `path`; the format follows the extension."""
    p = Path(path)
    fmt = _format_of(p)
    text = dumps_geojson(route, name) if fmt == "geojson" else dumps_gpx(route, name)

    p.parent.mkdir(parents=True, exist_ok=True)
    p.write_text(text, encoding="utf-8")
    _log.info("Wrote %d points as %s → %s", len(route), fmt, p)
    return p

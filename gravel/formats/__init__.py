# gravel/formats/__init__.py
# -*- coding: utf-8 -*-
"""
Route import/export.

from gravel.formats import dumps_geojson, loads_gpx, ImportRejected
"""

from __future__ import annotations

from .common import ImportRejected, ImportedRoute
from .geojson_io import dumps_geojson, loads_geojson
from .gpx_io import dumps_gpx, loads_gpx
from .route_files import read_route_file, write_route_file

__all__ = [
      "ImportRejected", "ImportedRoute",
      "dumps_geojson", "loads_geojson",
      "dumps_gpx", "loads_gpx",
      "read_route_file", "write_route_file",
]

# gravel/core/config.py
# -*- coding: utf-8 -*-

"""
Core configuration models and globals.

Pure configuration structures, independent of HTTP or storage, safe to
import from anywhere. Network settings live next to the client in
gravel.overpass.overpass_common.OverpassConfig.

Current contents
----------------
- GeometryDefaults: decimation, marker and chunking knobs
- FetchDefaults: debounce and bounds de-duplication tolerances
- StorageDefaults: local route store location and capacity
"""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path


# ────────────────────────────────────────────────────────────────────────────────
# Geometry
# ────────────────────────────────────────────────────────────────────────────────

@dataclass(frozen=True)
class GeometryDefaults:
    """
    Defaults for the geometry processor.

    Attributes
    ----------
    min_spacing_m : float
        Minimum spacing kept between consecutive points by decimation.
    decimation_threshold : int
        Imported tracks with more points than this are decimated.
    marker_interval_m : float
        Default spacing between distance markers.
    chunk_size : int
        Points per slice when recomputing segments cooperatively.
    chunking_threshold : int
        Routes with more points than this use the chunked recomputation.
    """

    min_spacing_m: float = 15.0
    decimation_threshold: int = 2000
    marker_interval_m: float = 1000.0
    chunk_size: int = 200
    chunking_threshold: int = 1000


# ────────────────────────────────────────────────────────────────────────────────
# Viewport fetching
# ────────────────────────────────────────────────────────────────────────────────

@dataclass(frozen=True)
class FetchDefaults:
    """
    Defaults for the viewport fetch coordinator.

    Attributes
    ----------
    debounce_s : float
        Quiet period after the last viewport change before evaluating.
    equality_epsilon_deg : float
        Per-edge tolerance under which two bounds are the same viewport.
    containment_margin_deg : float
        Margin added to the cached bounds for the containment test.
    """

    debounce_s: float = 0.5
    equality_epsilon_deg: float = 0.0005
    containment_margin_deg: float = 0.001


# ────────────────────────────────────────────────────────────────────────────────
# Storage
# ────────────────────────────────────────────────────────────────────────────────

@dataclass(frozen=True)
class StorageDefaults:
    db_path: Path = Path("data/gravel_routes.sqlite")
    table_name: str = "saved_routes"
    max_saved_routes: int = 50


# ────────────────────────────────────────────────────────────────────────────────
# Singleton-style instances
# ────────────────────────────────────────────────────────────────────────────────

GEOMETRY_DEFAULTS = GeometryDefaults()
FETCH_DEFAULTS = FetchDefaults()
STORAGE_DEFAULTS = StorageDefaults()


def get_geometry_defaults() -> GeometryDefaults:
    """
    Return the global geometry defaults.

    A function rather than a constant so it can later be loaded from a file
    without changing call sites.
    """
    return GEOMETRY_DEFAULTS


def get_fetch_defaults() -> FetchDefaults:
    return FETCH_DEFAULTS


def get_storage_defaults() -> StorageDefaults:
    return STORAGE_DEFAULTS

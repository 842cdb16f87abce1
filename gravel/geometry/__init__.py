from __future__ import annotations

# ── geodesic primitives ─────────────────────────────────────────────────────────
from .geomath import haversine_m, interpolate, path_length_m, bounds_of

# ── processor (public API) ──────────────────────────────────────────────────────
from .processor import (
      compute_segments
    , compute_segments_chunked
    , iter_segment_chunks
    , decimate
    , maybe_decimate
    , generate_distance_markers
    , dynamic_point_size
    , distance_to_point
    , format_distance
)

__all__ = [
    # geomath
      "haversine_m", "interpolate", "path_length_m", "bounds_of",
    # processor
      "compute_segments", "compute_segments_chunked", "iter_segment_chunks",
      "decimate", "maybe_decimate", "generate_distance_markers",
      "dynamic_point_size", "distance_to_point", "format_distance",
]

# gravel/app/route_cli.py
# -*- coding: utf-8 -*-
"""
gravel-route command-line front end
===================================

Subcommands
-----------
  fetch     --bbox S,W,N,E [--geojson OUT]   unpaved roads inside a bounding box
  measure   FILE                              distance summary of a route file
  convert   IN OUT [--name NAME]              GeoJSON ⇄ GPX (format from extension)
  decimate  IN OUT [--min-spacing M]          thin a track to a minimum spacing
  markers   FILE [--interval M] [--csv OUT]   distance markers every M meters
  report    FILE --out CSV                    per-segment breakdown (pandas CSV)
  routes    list | save FILE --name N | delete --key K   local saved routes

Exit codes: 0 ok, 2 rejected input or fetch failure, 3 storage unavailable.

Examples
--------
  gravel-route fetch --bbox 59.30,18.00,59.33,18.06 --geojson roads.geojson
  gravel-route measure ride.gpx --pretty
  gravel-route routes save ride.gpx --name "Sunday loop"
"""

from __future__ import annotations

import argparse
import json
import sys
from pathlib import Path
from typing import Any, List, Optional

from gravel.core.config import get_geometry_defaults, get_storage_defaults
from gravel.core.models import RoadGeometry, ViewportBounds
from gravel.fetch.coordinator import user_notice
from gravel.formats import ImportRejected, read_route_file, write_route_file
from gravel.geometry.processor import compute_segments, decimate, generate_distance_markers
from gravel.infra.logging import get_logger, init_logging, log_banner
from gravel.infra.workers import run_inline
from gravel.overpass.overpass_client import OverpassClient, OverpassConfig
from gravel.overpass.overpass_common import OverpassError
from gravel.reports.segments import markers_frame, route_summary, write_segment_report
from gravel.storage.route_store import LocalRouteStore, RouteNotFound, StorageUnavailable

log = get_logger(__name__)

EXIT_OK = 0
EXIT_REJECTED = 2
EXIT_STORAGE = 3


# ────────────────────────────────────────────────────────────────────────────────
# Helpers
# ────────────────────────────────────────────────────────────────────────────────

def _parse_bbox(text: str) -> ViewportBounds:
    parts = [p.strip() for p in text.split(",")]
    if len(parts) != 4:
        raise argparse.ArgumentTypeError("expected S,W,N,E")
    try:
        south, west, north, east = (float(p) for p in parts)
        return ViewportBounds(south, west, north, east)
    except ValueError as e:
        raise argparse.ArgumentTypeError(f"invalid bbox {text!r}: {e}") from e


def _positive_float(text: str) -> float:
    v = float(text)
    if not v > 0:
        raise argparse.ArgumentTypeError(f"must be > 0, got {text}")
    return v


def _emit(payload: Any, pretty: bool) -> None:
    if pretty:
        print(json.dumps(payload, ensure_ascii=False, indent=2))
    else:
        print(json.dumps(payload, ensure_ascii=False, separators=(",", ":")))


def _roads_feature_collection(geometry: RoadGeometry) -> dict:
    return {
          "type": "FeatureCollection"
        , "features": [
            {
                  "type": "Feature"
                , "properties": {"kind": "unpaved_roads"}
                , "geometry": {
                      "type": "MultiLineString"
                    , "coordinates": [[[p.lon, p.lat] for p in line] for line in geometry.polylines]
                }
            }
        ]
    }


def _open_store(db_path: Path) -> LocalRouteStore:
    store = LocalRouteStore(db_path)
    store.initialize()
    return store


# ────────────────────────────────────────────────────────────────────────────────
# Subcommands
# ────────────────────────────────────────────────────────────────────────────────

def _cmd_fetch(args: argparse.Namespace) -> int:
    client = OverpassClient(OverpassConfig(base_url=args.url), decode_spawn=run_inline)
    try:
        geometry = client.fetch(args.bbox)
    except OverpassError as e:
        log.error("Fetch failed: %s", e)
        print(user_notice(e), file=sys.stderr)
        return EXIT_REJECTED
    finally:
        client.close()

    if args.geojson is not None:
        args.geojson.parent.mkdir(parents=True, exist_ok=True)
        args.geojson.write_text(json.dumps(_roads_feature_collection(geometry)), encoding="utf-8")
        log.info("Road geometry written → %s", args.geojson)

    _emit(
        {
              "bounds": [args.bbox.south, args.bbox.west, args.bbox.north, args.bbox.east]
            , "polylines": len(geometry)
            , "points": geometry.point_count
            , "geojson": str(args.geojson) if args.geojson is not None else None
        }
        , args.pretty
    )
    return EXIT_OK


def _cmd_measure(args: argparse.Namespace) -> int:
    imported = read_route_file(args.file)
    summary = route_summary(imported.route)
    summary["name"] = imported.name
    summary["original_points"] = imported.original_count
    _emit(summary, args.pretty)
    return EXIT_OK


def _cmd_convert(args: argparse.Namespace) -> int:
    imported = read_route_file(args.src)
    name = args.name or imported.name or "Gravel route"
    write_route_file(args.dst, imported.route, name)
    _emit({"points": len(imported.route), "loop_closed": imported.route.loop_closed, "out": str(args.dst)}, args.pretty)
    return EXIT_OK


def _cmd_decimate(args: argparse.Namespace) -> int:
    imported = read_route_file(args.src)
    route = imported.route
    kept = decimate(route.points, args.min_spacing)
    write_route_file(args.dst, route.with_points(kept), imported.name or "Gravel route")
    _emit({"before": len(route), "after": len(kept), "out": str(args.dst)}, args.pretty)
    return EXIT_OK


def _cmd_markers(args: argparse.Namespace) -> int:
    route = read_route_file(args.file).route
    markers = generate_distance_markers(route.points, route.loop_closed, args.interval)
    df = markers_frame(markers)
    if args.csv is not None:
        args.csv.parent.mkdir(parents=True, exist_ok=True)
        df.to_csv(args.csv, index=False)
        log.info("%d markers written → %s", len(df), args.csv)
    _emit(df.to_dict(orient="records"), args.pretty)
    return EXIT_OK


def _cmd_report(args: argparse.Namespace) -> int:
    route = read_route_file(args.file).route
    out = write_segment_report(route, args.out)
    _emit({"segments": len(compute_segments(route.points, route.loop_closed)), "out": str(out)}, args.pretty)
    return EXIT_OK


def _cmd_routes(args: argparse.Namespace) -> int:
    store = _open_store(args.db_path)

    if args.action == "list":
        rows = [
            {
                  "key": r.key
                , "name": r.name
                , "saved_at": r.saved_at.isoformat()
                , "points": len(r.route)
                , "loop_closed": r.route.loop_closed
                , "distance_m": r.distance_m
            }
            for r in store.search(args.query or "")
        ]
        _emit(rows, args.pretty)
        return EXIT_OK

    if args.action == "save":
        if args.file is None or not args.name:
            log.error("routes save needs FILE and --name")
            return EXIT_REJECTED
        imported = read_route_file(args.file)
        saved = store.save(imported.route, args.name, args.description)
        _emit({"key": saved.key, "name": saved.name, "distance_m": saved.distance_m}, args.pretty)
        return EXIT_OK

    # delete
    if args.key is None:
        log.error("routes delete needs --key")
        return EXIT_REJECTED
    try:
        saved = store.get(args.key)
        store.delete(saved)
    except RouteNotFound as e:
        log.error("%s", e)
        return EXIT_REJECTED
    _emit({"deleted": args.key, "name": saved.name}, args.pretty)
    return EXIT_OK


# ────────────────────────────────────────────────────────────────────────────────
# CLI parser
# ────────────────────────────────────────────────────────────────────────────────

def _build_parser() -> argparse.ArgumentParser:
    """
    Build and return the CLI argument parser.
    """
    geo = get_geometry_defaults()

    parser = argparse.ArgumentParser(
          prog="gravel-route"
        , description="Gravel road fetching and route geometry tools."
    )
    parser.add_argument(
          "--log-level"
        , default="INFO"
        , choices=["DEBUG", "INFO", "WARNING", "ERROR"]
    )
    parser.add_argument(
          "--pretty"
        , action="store_true"
        , help="Pretty-print JSON."
    )
    sub = parser.add_subparsers(dest="command", required=True)

    p = sub.add_parser("fetch", help="Fetch unpaved roads inside a bounding box.")
    p.add_argument("--bbox", type=_parse_bbox, required=True, help="S,W,N,E in degrees.")
    p.add_argument("--geojson", type=Path, default=None, help="Write roads as GeoJSON here.")
    p.add_argument("--url", default=None, help="Overpass endpoint (default: GRAVEL_OVERPASS_URL or public instance).")
    p.set_defaults(func=_cmd_fetch)

    p = sub.add_parser("measure", help="Distance summary of a .geojson/.gpx route.")
    p.add_argument("file", type=Path)
    p.set_defaults(func=_cmd_measure)

    p = sub.add_parser("convert", help="Convert between GeoJSON and GPX.")
    p.add_argument("src", type=Path)
    p.add_argument("dst", type=Path)
    p.add_argument("--name", default=None)
    p.set_defaults(func=_cmd_convert)

    p = sub.add_parser("decimate", help="Thin a track to a minimum point spacing.")
    p.add_argument("src", type=Path)
    p.add_argument("dst", type=Path)
    p.add_argument(
          "--min-spacing"
        , type=float
        , default=geo.min_spacing_m
        , help=f"Minimum spacing in meters. Default: {geo.min_spacing_m}"
    )
    p.set_defaults(func=_cmd_decimate)

    p = sub.add_parser("markers", help="Distance markers along a route.")
    p.add_argument("file", type=Path)
    p.add_argument(
          "--interval"
        , type=_positive_float
        , default=geo.marker_interval_m
        , help=f"Marker spacing in meters. Default: {geo.marker_interval_m}"
    )
    p.add_argument("--csv", type=Path, default=None)
    p.set_defaults(func=_cmd_markers)

    p = sub.add_parser("report", help="Per-segment CSV report.")
    p.add_argument("file", type=Path)
    p.add_argument("--out", type=Path, required=True)
    p.set_defaults(func=_cmd_report)

    p = sub.add_parser("routes", help="Manage locally saved routes.")
    p.add_argument("action", choices=["list", "save", "delete"])
    p.add_argument("file", type=Path, nargs="?", default=None, help="Route file (save).")
    p.add_argument("--name", default=None)
    p.add_argument("--description", default=None)
    p.add_argument("--key", type=int, default=None, help="Route key (delete).")
    p.add_argument("--query", default=None, help="Filter by name/description (list).")
    p.add_argument(
          "--db-path"
        , type=Path
        , default=get_storage_defaults().db_path
        , help=f"SQLite path. Default: {get_storage_defaults().db_path}"
    )
    p.set_defaults(func=_cmd_routes)

    return parser


# ────────────────────────────────────────────────────────────────────────────────
# Main
# ────────────────────────────────────────────────────────────────────────────────

def main(argv: Optional[List[str]] = None) -> int:
    args = _build_parser().parse_args(argv)

    init_logging(level=args.log_level, force=True, write_output=False)
    log_banner(log, f"gravel-route {args.command}", char="-", width=40)

    try:
        return args.func(args)
    except ImportRejected as e:
        log.error("Import rejected: %s", e.reason)
        print(f"Import rejected: {e.reason}", file=sys.stderr)
        return EXIT_REJECTED
    except StorageUnavailable as e:
        log.error("Storage unavailable: %s", e)
        print(f"Storage unavailable: {e}", file=sys.stderr)
        return EXIT_STORAGE


if __name__ == "__main__":
    raise SystemExit(main())

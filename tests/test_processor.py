import math

import pytest

from gravel.core.models import GeoPoint
from gravel.geometry import (
      compute_segments
    , compute_segments_chunked
    , decimate
    , distance_to_point
    , dynamic_point_size
    , format_distance
    , generate_distance_markers
    , haversine_m
    , iter_segment_chunks
    , maybe_decimate
)


def meridian(n, step_deg=0.01, lat0=59.0, lon=18.0):
    """n points due north along one meridian; lat/lon interpolation is exact there."""
    return [GeoPoint(lat0 + i * step_deg, lon) for i in range(n)]


TRIANGLE = [GeoPoint(59.30, 18.00), GeoPoint(59.31, 18.00), GeoPoint(59.31, 18.02)]


# ── segments ────────────────────────────────────────────────────────────────────

def test_segments_open_route_has_n_minus_one_entries():
    pts = meridian(5)
    segs = compute_segments(pts, loop_closed=False)
    assert len(segs) == 4
    assert all(d >= 0 for d in segs)


def test_closed_loop_appends_closing_edge():
    open_segs = compute_segments(TRIANGLE, loop_closed=False)
    closed_segs = compute_segments(TRIANGLE, loop_closed=True)
    assert closed_segs[:-1] == open_segs
    assert closed_segs[-1] == pytest.approx(haversine_m(TRIANGLE[-1], TRIANGLE[0]))


def test_closed_flag_ignored_below_three_points():
    assert len(compute_segments(TRIANGLE[:2], loop_closed=True)) == 1


@pytest.mark.parametrize("pts", [[], [GeoPoint(59.0, 18.0)]])
def test_segments_empty_for_fewer_than_two_points(pts):
    assert compute_segments(pts, loop_closed=True) == ()


def test_two_point_example_route():
    segs = compute_segments([GeoPoint(59.30, 18.00), GeoPoint(59.30, 18.01)], False)
    assert len(segs) == 1
    assert 560.0 < segs[0] < 575.0


def test_chunked_matches_plain_and_yields_between_slices():
    pts = meridian(2500, step_deg=0.0001)
    calls = []
    chunked = compute_segments_chunked(pts, True, chunk_size=200, on_yield=lambda: calls.append(1))
    assert chunked == compute_segments(pts, True)
    # 2499 open edges in slices of 200 → 13 slices, 12 yields in between
    assert len(calls) == 12


def test_segment_chunks_put_closing_edge_in_last_slice():
    chunks = list(iter_segment_chunks(TRIANGLE, True, chunk_size=1))
    assert [len(c) for c in chunks] == [1, 2]


def test_chunk_size_must_be_positive():
    with pytest.raises(ValueError):
        list(iter_segment_chunks(TRIANGLE, False, chunk_size=0))


# ── decimation ──────────────────────────────────────────────────────────────────

def test_decimate_keeps_endpoints_and_spacing():
    pts = meridian(500, step_deg=0.00005)  # ~5.6 m apart
    kept = decimate(pts, 15.0)
    assert kept[0] == pts[0]
    assert kept[-1] == pts[-1]
    assert len(kept) < len(pts)
    for a, b in zip(kept[:-2], kept[1:-1]):
        assert haversine_m(a, b) >= 15.0


def test_decimate_sparse_route_is_unchanged():
    pts = meridian(20, step_deg=0.001)  # ~111 m apart
    assert decimate(pts, 15.0) == pts


def test_decimate_short_routes_unchanged_regardless_of_threshold():
    two = [GeoPoint(59.30, 18.00), GeoPoint(59.30, 18.01)]
    assert decimate(two, 10_000.0) == two
    assert decimate(TRIANGLE, 10_000_000.0) == TRIANGLE


def test_decimate_rejects_negative_spacing():
    with pytest.raises(ValueError):
        decimate(meridian(10), -1.0)


def test_maybe_decimate_only_above_threshold():
    pts = meridian(100, step_deg=0.00001)
    same, n = maybe_decimate(pts, threshold=100)
    assert same == pts and n == 100

    thinned, n = maybe_decimate(pts, threshold=99)
    assert n == 100
    assert len(thinned) < 100


# ── markers ─────────────────────────────────────────────────────────────────────

def test_marker_count_is_floor_of_length_over_interval():
    pts = meridian(11)  # ~11.1 km
    total = sum(compute_segments(pts, False))
    markers = generate_distance_markers(pts, False, 1000.0)
    assert len(markers) == math.floor(total / 1000.0)


def test_marker_positions_match_cumulative_distance():
    pts = meridian(6)
    markers = generate_distance_markers(pts, False, 500.0)
    assert markers
    for m in markers:
        assert m.distance_m == pytest.approx(m.index * 500.0)
        assert haversine_m(pts[0], m.point) == pytest.approx(m.distance_m, abs=0.01)


def test_several_markers_on_one_long_segment():
    pts = [GeoPoint(59.0, 18.0), GeoPoint(59.05, 18.0)]  # ~5.6 km
    markers = generate_distance_markers(pts, False, 1000.0)
    assert [m.index for m in markers] == [1, 2, 3, 4, 5]


def test_closed_loop_markers_cover_closing_edge():
    open_m = generate_distance_markers(TRIANGLE, False, 250.0)
    closed_m = generate_distance_markers(TRIANGLE, True, 250.0)
    total_closed = sum(compute_segments(TRIANGLE, True))
    assert len(closed_m) == math.floor(total_closed / 250.0)
    assert len(closed_m) > len(open_m)


def test_no_markers_below_one_interval():
    assert generate_distance_markers(meridian(2, 0.001), False, 1000.0) == []


@pytest.mark.parametrize("interval", [0, -5.0, None])
def test_markers_reject_non_positive_interval(interval):
    with pytest.raises(ValueError):
        generate_distance_markers(meridian(3), False, interval)


def test_markers_skip_zero_length_segments():
    p = GeoPoint(59.0, 18.0)
    pts = [p, p, GeoPoint(59.02, 18.0)]
    markers = generate_distance_markers(pts, False, 1000.0)
    assert [m.index for m in markers] == [1, 2]


# ── presentation helpers ────────────────────────────────────────────────────────

def test_dynamic_point_size_steps():
    assert dynamic_point_size([]) == 18.0
    assert dynamic_point_size([GeoPoint(59.0, 18.0)] * 3) == 18.0
    assert dynamic_point_size(meridian(3, step_deg=0.01)) == 20.0      # ~1.1 km
    assert dynamic_point_size(meridian(3, step_deg=0.006)) == 18.0     # ~670 m
    assert dynamic_point_size(meridian(3, step_deg=0.003)) == 16.0     # ~330 m
    assert dynamic_point_size(meridian(3, step_deg=0.0015)) == 14.0    # ~167 m
    assert dynamic_point_size(meridian(3, step_deg=0.0007)) == 12.0    # ~78 m
    assert dynamic_point_size(meridian(3, step_deg=0.0001)) == 10.0    # ~11 m


def test_distance_to_point():
    pts = meridian(4)
    assert distance_to_point(pts, 0) == 0.0
    assert distance_to_point(pts, 3) == pytest.approx(sum(compute_segments(pts, False)))
    assert distance_to_point(pts, 9) == 0.0


@pytest.mark.parametrize(
    "meters, text",
    [(420, "420 m"), (949, "949 m"), (950, "0.95 km"), (1234, "1.23 km"), (12345, "12.3 km")],
)
def test_format_distance(meters, text):
    assert format_distance(meters) == text

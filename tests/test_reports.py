import pandas as pd
import pytest

from gravel.core.models import GeoPoint, Route
from gravel.geometry.processor import compute_segments, generate_distance_markers
from gravel.reports.segments import (
      MARKER_COLUMNS
    , SEGMENT_COLUMNS
    , markers_frame
    , route_summary
    , segments_frame
    , write_segment_report
)

LOOP = Route.from_pairs([(59.30, 18.00), (59.31, 18.00), (59.31, 18.02)], loop_closed=True)


def test_segments_frame_flags_the_closing_edge():
    df = segments_frame(LOOP)

    assert list(df.columns) == SEGMENT_COLUMNS
    assert df["segment"].tolist() == [1, 2, 3]
    assert df["is_closing"].tolist() == [False, False, True]
    assert df.iloc[-1]["to_index"] == 0
    assert df["distance_m"].tolist() == pytest.approx(list(compute_segments(LOOP.points, True)))
    assert df["cumulative_m"].iloc[-1] == pytest.approx(sum(compute_segments(LOOP.points, True)))


def test_empty_frames_keep_their_columns():
    assert list(segments_frame(Route.from_pairs([(59.3, 18.0)])).columns) == SEGMENT_COLUMNS
    assert list(markers_frame([]).columns) == MARKER_COLUMNS


def test_markers_frame_labels():
    markers = generate_distance_markers(LOOP.points, True, 1000)
    df = markers_frame(markers)
    assert df["index"].tolist() == [1, 2, 3]
    assert df["label"].tolist() == ["1.00 km", "2.00 km", "3.00 km"]


def test_route_summary():
    summary = route_summary(LOOP)
    assert summary["points"] == 3
    assert summary["segments"] == 3
    assert summary["loop_closed"] is True
    assert summary["total_m"] == pytest.approx(3836, rel=0.01)
    assert summary["total_label"] == "3.84 km"
    assert summary["point_size"] == 20.0

    empty = route_summary(Route())
    assert empty["total_m"] == 0.0
    assert empty["total_label"] == "0 m"


def test_write_segment_report(tmp_path):
    out = write_segment_report(LOOP, tmp_path / "reports" / "loop.csv")
    df = pd.read_csv(out)
    assert len(df) == 3
    assert list(df.columns) == SEGMENT_COLUMNS

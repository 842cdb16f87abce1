import pytest

from gravel.core.config import GeometryDefaults
from gravel.core.models import GeoPoint, Route
from gravel.formats.common import ImportedRoute
from gravel.geometry.processor import compute_segments
from gravel.infra.workers import run_inline
from gravel.session.route_session import RouteSession

A = GeoPoint(59.30, 18.00)
B = GeoPoint(59.31, 18.00)
C = GeoPoint(59.31, 18.02)
D = GeoPoint(59.30, 18.02)
X = GeoPoint(59.305, 18.01)


@pytest.fixture()
def session():
    return RouteSession(spawn=run_inline)


def dense_line(n=30):
    return [GeoPoint(59.0 + i * 0.00001, 18.0) for i in range(n)]


def test_edits_publish_snapshots(session):
    seen = []
    session.add_listener(seen.append)

    for p in (A, B, C):
        session.add(p)

    snap = session.snapshot
    assert snap.route.points == (A, B, C)
    assert snap.segments == compute_segments([A, B, C])
    assert snap.version == 3
    assert [s.version for s in seen] == [1, 2, 3]
    assert snap.total_label.endswith("km")

    session.remove_listener(seen.append)
    session.add(D)
    assert len(seen) == 3


def test_loop_toggle_and_reopen_on_add(session):
    session.load([A, B])
    assert not session.toggle_loop()

    session.add(C)
    assert session.toggle_loop()
    assert session.route.loop_closed
    assert len(session.snapshot.segments) == 3

    session.add(D)
    assert not session.route.loop_closed
    assert len(session.snapshot.segments) == 3


def test_insert_between(session):
    session.load([A, B, C], loop_closed=True)

    assert session.insert_between(0, 1, X)
    assert session.route.points == (A, X, B, C)

    assert session.insert_between(3, 0, D)
    assert session.route.points == (A, X, B, C, D)
    assert session.route.loop_closed

    assert not session.insert_between(0, 2, X)
    assert not session.insert_between(4, 5, X)


def test_closing_edge_insert_needs_a_loop(session):
    session.load([A, B, C])
    assert not session.insert_between(2, 0, D)
    assert session.snapshot.version == 1


def test_move_and_delete(session):
    session.load([A, B, C], loop_closed=True)

    assert session.move(1, X)
    assert session.route.points == (A, X, C)
    assert not session.move(3, X)

    assert session.delete(0)
    assert session.route.points == (X, C)
    assert not session.route.loop_closed
    assert not session.delete(5)


def test_undo_last_and_clear(session):
    assert not session.undo_last()
    session.load([A, B, C])
    session.show_markers(True)

    assert session.undo_last()
    assert session.route.points == (A, B)

    snap = session.clear()
    assert len(snap.route) == 0
    assert snap.segments == ()
    assert not snap.show_markers
    assert snap.total_m == 0.0


def test_markers_follow_the_route(session):
    session.load([A, B, C])
    markers = session.generate_markers(500)

    assert session.snapshot.show_markers
    assert session.snapshot.marker_interval_m == 500
    assert [m.index for m in markers] == [1, 2, 3, 4]
    assert [m.distance_m for m in markers] == [500, 1000, 1500, 2000]

    session.toggle_loop()
    assert len(session.snapshot.markers) > 4

    session.show_markers(False)
    assert session.snapshot.markers == ()


def test_interval_must_be_positive(session):
    session.load([A, B])
    for bad in (0, -5):
        with pytest.raises(ValueError):
            session.set_interval(bad)
        with pytest.raises(ValueError):
            session.generate_markers(bad)

    session.set_interval(250)
    assert session.snapshot.marker_interval_m == 250


def test_undo_restores_previous_state(session):
    assert not session.undo()
    session.add(A)
    session.add(B)
    session.set_interval(100)

    assert session.can_undo
    assert session.undo()
    assert session.route.points == (A,)
    assert session.snapshot.marker_interval_m == 100

    assert session.undo()
    assert session.undo() is False
    assert len(session.route) == 0


def test_undo_depth_is_bounded():
    s = RouteSession(spawn=run_inline, max_undo=2)
    for p in (A, B, C, D):
        s.add(p)
    assert s.undo() and s.undo()
    assert not s.undo()
    assert s.route.points == (A, B)


def test_load_imported(session):
    imported = ImportedRoute(Route((A, B, C), True), "loop", original_count=2500)
    snap = session.load_imported(imported)
    assert snap.route.loop_closed
    assert len(snap.segments) == 3


def test_on_route_edited_replaces_the_route(session):
    session.load([A])
    snap = session.on_route_edited([C, D, A], True)
    assert snap.route == Route((C, D, A), True)


def test_large_routes_are_recomputed_in_slices():
    yields = []
    s = RouteSession(
          defaults=GeometryDefaults(chunking_threshold=3, chunk_size=2)
        , spawn=run_inline
        , on_yield=lambda: yields.append(1)
    )
    pts = [A, B, C, D, X, GeoPoint(59.32, 18.03)]

    snap = s.load(pts)

    assert snap.segments == compute_segments(pts)
    assert len(yields) == 2


def test_decimate_inline(session):
    session.load(dense_line())

    fut = session.decimate(15)

    assert fut is not None and fut.done()
    pts = session.route.points
    assert pts[0] == dense_line()[0]
    assert pts[-1] == dense_line()[-1]
    assert len(pts) < 30


def test_decimate_without_change_keeps_version(session):
    session.load([A, B, C])
    session.decimate(15)
    assert session.snapshot.version == 1


def test_decimate_result_dropped_after_edit(deferred):
    s = RouteSession(spawn=deferred)
    s.load(dense_line())

    fut = s.decimate()
    assert fut is not None
    assert s.decimate() is None

    s.add(A)
    deferred.run_next()

    assert fut.done()
    assert len(s.route) == 31


def test_decimate_applies_when_untouched(deferred):
    s = RouteSession(spawn=deferred)
    s.load(dense_line())
    s.decimate()
    deferred.run_next()

    assert len(s.route) < 30
    assert s.can_undo
    s.undo()
    assert len(s.route) == 30


def test_decimate_rejects_negative_spacing(session):
    with pytest.raises(ValueError):
        session.decimate(-1)

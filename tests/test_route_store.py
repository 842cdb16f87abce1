from datetime import datetime, timedelta

import pytest

from gravel.core.models import Route, SavedRoute
from gravel.infra import database_manager as dbm
from gravel.storage.route_store import LocalRouteStore, RouteNotFound, StorageUnavailable

LOOP = Route.from_pairs([(59.30, 18.00), (59.31, 18.00), (59.31, 18.02)], loop_closed=True)
LINE = Route.from_pairs([(59.30, 18.00), (59.31, 18.00)])
T0 = datetime(2024, 6, 1, 8, 0, 0)


@pytest.fixture()
def store(tmp_path):
    s = LocalRouteStore(tmp_path / "routes.sqlite", max_routes=3)
    s.initialize()
    return s


def test_use_before_initialize_is_refused(tmp_path):
    s = LocalRouteStore(tmp_path / "routes.sqlite")
    assert not s.is_available()
    with pytest.raises(StorageUnavailable):
        s.load()
    with pytest.raises(StorageUnavailable):
        s.save(LINE, "x")


def test_initialize_failure_is_reported(tmp_path):
    blocker = tmp_path / "not_a_dir"
    blocker.write_text("x")
    s = LocalRouteStore(blocker / "routes.sqlite")
    with pytest.raises(StorageUnavailable):
        s.initialize()
    assert not s.is_available()


def test_save_and_load_newest_first(store):
    store.save(LINE, "older", saved_at=T0)
    saved = store.save(LOOP, "  newer  ", "hills", saved_at=T0 + timedelta(hours=1))

    assert saved.key is not None
    assert saved.name == "newer"
    assert saved.distance_m == pytest.approx(3836, rel=0.01)

    loaded = store.load()
    assert [r.name for r in loaded] == ["newer", "older"]
    assert loaded[0].route == LOOP
    assert loaded[0].description == "hills"
    assert loaded[0].saved_at == T0 + timedelta(hours=1)
    assert store.get(saved.key) == loaded[0]


def test_save_validates_input(store):
    with pytest.raises(ValueError):
        store.save(Route(), "empty")
    with pytest.raises(ValueError):
        store.save(LINE, "   ")


def test_oldest_routes_are_evicted_past_the_cap(store):
    for i in range(5):
        store.save(LINE, f"r{i}", saved_at=T0 + timedelta(minutes=i))

    assert store.count() == 3
    assert [r.name for r in store.load()] == ["r4", "r3", "r2"]


def test_update_keeps_the_key(store):
    saved = store.save(LINE, "draft", saved_at=T0)
    new = SavedRoute(name="final", route=LOOP, saved_at=T0, is_public=True)

    updated = store.update(saved, new)

    assert updated.key == saved.key
    (only,) = store.load()
    assert only.name == "final"
    assert only.route.loop_closed
    assert only.is_public


def test_delete_and_missing_routes(store):
    saved = store.save(LINE, "gone", saved_at=T0)
    store.delete(saved)
    assert store.count() == 0

    with pytest.raises(RouteNotFound):
        store.delete(saved)
    with pytest.raises(RouteNotFound):
        store.get(saved.key)
    with pytest.raises(RouteNotFound):
        store.update(SavedRoute(name="never stored", route=LINE), saved)


def test_search_and_clear(store):
    store.save(LINE, "Forest loop", saved_at=T0)
    store.save(LINE, "Coast", "windy gravel by the sea", saved_at=T0 + timedelta(minutes=1))
    store.save(LINE, "City", saved_at=T0 + timedelta(minutes=2))

    assert [r.name for r in store.search("LOOP")] == ["Forest loop"]
    assert [r.name for r in store.search("gravel")] == ["Coast"]
    assert len(store.search("  ")) == 3

    assert store.clear() == 3
    assert store.load() == []


def test_records_survive_a_new_store_instance(store):
    store.save(LOOP, "persisted", saved_at=T0)

    again = LocalRouteStore(store.db_path, max_routes=3)
    again.initialize()
    assert [r.name for r in again.load()] == ["persisted"]


def test_initialize_creates_the_table(tmp_path):
    s = LocalRouteStore(tmp_path / "nested" / "routes.sqlite", table_name="my_routes")
    s.initialize()

    with dbm.db_session(s.db_path) as conn:
        assert dbm.table_exists(conn, "my_routes")
        assert not dbm.table_exists(conn, "saved_routes")


def test_database_failure_after_initialize_is_reported(store):
    saved = store.save(LINE, "kept", saved_at=T0)
    store.db_path.write_bytes(b"not a sqlite database" * 200)

    with pytest.raises(StorageUnavailable):
        store.load()
    with pytest.raises(StorageUnavailable):
        store.save(LINE, "new", saved_at=T0)
    with pytest.raises(StorageUnavailable):
        store.delete(saved)
    with pytest.raises(StorageUnavailable):
        store.clear()

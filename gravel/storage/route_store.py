# gravel/storage/route_store.py
# -*- coding: utf-8 -*-
"""
Local route store
=================

Device-local persistence of completed routes on top of
gravel.infra.database_manager (SQLite).

Public API
----------
- LocalRouteStore(db_path=None, table_name=None, max_routes=None)
    .initialize()            → must be called first
    .is_available()          → bool
    .load()                  → list[SavedRoute], newest first
    .save(route, name, ...)  → SavedRoute (distance computed, oldest evicted past the cap)
    .add(saved)              → SavedRoute (store an existing record, e.g. pulled from the cloud)
    .get(key)                → SavedRoute
    .update(old, new)        → SavedRoute (keeps the old key)
    .delete(saved)
    .search(query)           → case-insensitive match on name/description
    .count() / .clear()

Errors
------
- StorageUnavailable: used before initialize(), or the database cannot be
  opened, or a database call fails later. Independent of any network
  error type.
- RouteNotFound: delete/update/get on a record that is not stored here.
"""

from __future__ import annotations

import sqlite3
from contextlib import contextmanager
from datetime import datetime
from pathlib import Path
from typing import Iterator, List, Optional

from gravel.core.config import get_storage_defaults
from gravel.core.models import Route, SavedRoute
from gravel.core.types import StrPath
from gravel.geometry.geomath import path_length_m
from gravel.infra import database_manager as dbm
from gravel.infra.logging import get_logger

_log = get_logger(__name__)


class StorageUnavailable(Exception):
    """The local store cannot be used (not initialized, or the DB failed to open)."""


class RouteNotFound(Exception):
    """The referenced route is not in the local store."""


class LocalRouteStore:
    """
    SQLite-backed store capped at `max_routes` records (oldest evicted).
    """

    def __init__(
        self,
        db_path: Optional[StrPath] = None,
        *,
        table_name: Optional[str] = None,
        max_routes: Optional[int] = None,
    ) -> None:
        defaults = get_storage_defaults()
        self.db_path = Path(db_path) if db_path is not None else defaults.db_path
        self.table_name = table_name or defaults.table_name
        self.max_routes = int(max_routes if max_routes is not None else defaults.max_saved_routes)
        if self.max_routes < 1:
            raise ValueError(f"max_routes must be >= 1, got {self.max_routes}")
        self._ready = False

    # ────────────────────────────────────────────────────────────────────────
    # Lifecycle
    # ────────────────────────────────────────────────────────────────────────
    def initialize(self) -> None:
        """
        Open (or create) the database and the routes table.

        Raises
        ------
        StorageUnavailable
            If the database file cannot be created or opened.
        """
        try:
            with dbm.db_session(self.db_path) as conn:
                created = not dbm.table_exists(conn, self.table_name)
                dbm.ensure_routes_table(conn, table_name=self.table_name)
                n = dbm.count_routes(conn, table_name=self.table_name)
        except (sqlite3.Error, OSError) as e:
            _log.error("Local route store unavailable at %s: %s", self.db_path, e)
            raise StorageUnavailable(f"cannot open {self.db_path}: {e}") from e

        self._ready = True
        _log.info(
            "Local route store ready at %s (table=%s%s, %d/%d routes)",
              self.db_path
            , self.table_name
            , " created" if created else ""
            , n
            , self.max_routes
        )

    def is_available(self) -> bool:
        return self._ready

    def _require(self) -> None:
        if not self._ready:
            raise StorageUnavailable("local route store used before initialize()")

    @contextmanager
    def _session(self) -> Iterator[sqlite3.Connection]:
        """db_session() with database failures reported as StorageUnavailable."""
        try:
            with dbm.db_session(self.db_path) as conn:
                yield conn
        except (sqlite3.Error, OSError) as e:
            _log.error("Local route store failed at %s: %s", self.db_path, e)
            raise StorageUnavailable(f"database error at {self.db_path}: {e}") from e

    # ────────────────────────────────────────────────────────────────────────
    # Reads
    # ────────────────────────────────────────────────────────────────────────
    def load(self) -> List[SavedRoute]:
        """All stored routes, newest first."""
        self._require()
        with self._session() as conn:
            rows = dbm.fetch_routes(conn, table_name=self.table_name)
        return [SavedRoute.from_dict(payload, key=rid) for rid, payload in rows]

    def get(self, key: int) -> SavedRoute:
        self._require()
        with self._session() as conn:
            rows = dbm.fetch_routes(conn, table_name=self.table_name, route_id=key)
        if not rows:
            raise RouteNotFound(f"no local route with key {key}")
        rid, payload = rows[0]
        return SavedRoute.from_dict(payload, key=rid)

    def count(self) -> int:
        self._require()
        with self._session() as conn:
            return dbm.count_routes(conn, table_name=self.table_name)

    def search(self, query: str) -> List[SavedRoute]:
        """
        Routes whose name or description contains `query` (case-insensitive).
        An empty query returns everything.
        """
        q = (query or "").strip().lower()
        routes = self.load()
        if not q:
            return routes
        return [
            r for r in routes
            if q in r.name.lower() or (r.description is not None and q in r.description.lower())
        ]

    # ────────────────────────────────────────────────────────────────────────
    # Writes
    # ────────────────────────────────────────────────────────────────────────
    def save(
        self,
        route: Route,
        name: str,
        description: Optional[str] = None,
        *,
        saved_at: Optional[datetime] = None,
        is_public: bool = False,
        owner_id: Optional[str] = None,
    ) -> SavedRoute:
        """
        Store `route` under `name`, recording its total length.

        Raises
        ------
        ValueError
            If the route has no points or the name is blank.
        """
        if len(route) == 0:
            raise ValueError("Cannot save an empty route")
        if not name or not name.strip():
            raise ValueError("Route name must not be blank")

        saved = SavedRoute(
              name=name.strip()
            , route=route
            , saved_at=saved_at or datetime.now()
            , description=description
            , distance_m=path_length_m(route.points, route.loop_closed)
            , is_public=is_public
            , owner_id=owner_id
        )
        return self.add(saved)

    def add(self, saved: SavedRoute) -> SavedRoute:
        """Insert `saved` as a new local record, then enforce the cap."""
        self._require()
        with self._session() as conn:
            key = dbm.insert_route(conn, payload=saved.to_dict(), table_name=self.table_name)
            evicted = dbm.evict_oldest(conn, keep=self.max_routes, table_name=self.table_name)

        if evicted:
            _log.info("Evicted %d oldest route(s) to stay within %d", evicted, self.max_routes)
        _log.info(
            "Saved route %r (%d points, %.0f m, key=%d)",
              saved.name
            , len(saved.route)
            , saved.distance_m or 0.0
            , key
        )
        return saved.copy_with(key=key)

    def update(self, old: SavedRoute, new: SavedRoute) -> SavedRoute:
        """
        Replace the stored record of `old` with `new`.

        Raises
        ------
        RouteNotFound
            If `old` has no key or is no longer stored.
        """
        self._require()
        if old.key is None:
            raise RouteNotFound(f"route {old.name!r} is not stored locally")

        updated = new.copy_with(key=old.key)
        with self._session() as conn:
            ok = dbm.update_route(
                  conn
                , route_id=old.key
                , payload=updated.to_dict()
                , table_name=self.table_name
            )
        if not ok:
            raise RouteNotFound(f"no local route with key {old.key}")

        _log.info("Updated route key=%d (%r → %r)", old.key, old.name, updated.name)
        return updated

    def delete(self, saved: SavedRoute) -> None:
        """
        Raises
        ------
        RouteNotFound
            If `saved` has no key or is no longer stored.
        """
        self._require()
        if saved.key is None:
            raise RouteNotFound(f"route {saved.name!r} is not stored locally")

        with self._session() as conn:
            ok = dbm.delete_route(conn, route_id=saved.key, table_name=self.table_name)
        if not ok:
            raise RouteNotFound(f"no local route with key {saved.key}")
        _log.info("Deleted route %r (key=%d)", saved.name, saved.key)

    def clear(self) -> int:
        self._require()
        with self._session() as conn:
            n = dbm.delete_all_routes(conn, table_name=self.table_name)
        _log.info("Cleared %d local route(s)", n)
        return n

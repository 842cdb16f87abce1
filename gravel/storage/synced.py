# gravel/storage/synced.py
# -*- coding: utf-8 -*-
"""
Offline-first route sync
========================

SyncedRouteService composes the LocalRouteStore with an optional remote
RouteRepository (a cloud document store behind an authenticated owner id).

- save: local first; then remote when an owner is signed in. A remote
  failure is logged and the local record is returned.
- load: local + the owner's remote routes, newest first. A remote route is
  dropped as a duplicate when a local route has the same name and a
  saved_at within one minute.
- delete / overwrite: applied locally, then remotely for synced records.
- set_visibility: remote only; needs an owner and a synced record.

Remote implementations signal connectivity problems with RemoteUnavailable
(or any OSError); those are the failures that degrade to local-only.
"""

from __future__ import annotations

from datetime import datetime, timedelta
from typing import List, Optional, Protocol

from gravel.core.models import Route, SavedRoute
from gravel.geometry.geomath import path_length_m
from gravel.infra.logging import get_logger
from .route_store import LocalRouteStore, RouteNotFound

_log = get_logger(__name__)

DUPLICATE_WINDOW = timedelta(minutes=1)


class RemoteUnavailable(Exception):
    """The remote repository could not be reached or refused the call."""


class RouteRepository(Protocol):
    """Cloud CRUD surface. `remote_id` identifies a stored document."""

    def list_routes(self, owner_id: str) -> List[SavedRoute]: ...

    def list_public(self) -> List[SavedRoute]: ...

    def save_route(self, saved: SavedRoute) -> SavedRoute: ...

    def delete_route(self, remote_id: str) -> None: ...

    def set_visibility(self, remote_id: str, is_public: bool) -> None: ...


_REMOTE_ERRORS = (RemoteUnavailable, OSError)


def _same_route(a: SavedRoute, b: SavedRoute) -> bool:
    return a.name == b.name and abs(a.saved_at - b.saved_at) < DUPLICATE_WINDOW


class SyncedRouteService:
    """
    Local store + optional remote repository.

    Parameters
    ----------
    local : LocalRouteStore
        Must be initialized before use.
    remote : RouteRepository | None
        Cloud repository; None means local-only.
    owner_id : str | None
        Authenticated owner; remote calls are made only when set.
    """

    def __init__(
        self,
        local: LocalRouteStore,
        remote: Optional[RouteRepository] = None,
        *,
        owner_id: Optional[str] = None,
    ) -> None:
        self.local = local
        self.remote = remote
        self.owner_id = owner_id

    @property
    def cloud_enabled(self) -> bool:
        return self.remote is not None and bool(self.owner_id)

    # ── writes ──────────────────────────────────────────────────────────────────
    def save(
        self,
        route: Route,
        name: str,
        description: Optional[str] = None,
        *,
        is_public: bool = False,
    ) -> SavedRoute:
        """Save locally, then to the cloud when signed in. Returns the freshest record."""
        saved = self.local.save(
              route
            , name
            , description
            , is_public=is_public
            , owner_id=self.owner_id
        )
        if not self.cloud_enabled:
            _log.info("No owner signed in; route %r saved locally only", saved.name)
            return saved

        try:
            remote_saved = self.remote.save_route(saved)
        except _REMOTE_ERRORS as e:
            _log.warning("Cloud sync failed for %r (%s); saved locally only", saved.name, e)
            return saved

        synced = saved.copy_with(remote_id=remote_saved.remote_id, last_synced=datetime.now())
        _log.info("Route %r synced to cloud id=%s", saved.name, synced.remote_id)
        return self.local.update(saved, synced)

    def overwrite(
        self,
        existing: SavedRoute,
        route: Route,
        description: Optional[str] = None,
        *,
        is_public: Optional[bool] = None,
    ) -> SavedRoute:
        """Replace points/loop/description, keeping name, saved_at and ids."""
        updated = existing.copy_with(
              route=route
            , description=description
            , distance_m=path_length_m(route.points, route.loop_closed)
            , is_public=existing.is_public if is_public is None else is_public
        )
        if existing.key is not None:
            updated = self.local.update(existing, updated)

        if existing.remote_id is None or not self.cloud_enabled:
            return updated

        try:
            self.remote.save_route(updated)
        except _REMOTE_ERRORS as e:
            _log.warning("Cloud overwrite failed for %r (%s); updated locally only", existing.name, e)
            return updated

        synced = updated.copy_with(last_synced=datetime.now())
        if synced.key is not None:
            synced = self.local.update(updated, synced)
        return synced

    def delete(self, saved: SavedRoute) -> None:
        """Delete everywhere the record lives; missing copies are not an error."""
        if saved.key is not None:
            try:
                self.local.delete(saved)
            except RouteNotFound:
                _log.info("Route %r already gone locally", saved.name)

        if saved.remote_id is not None and self.remote is not None:
            try:
                self.remote.delete_route(saved.remote_id)
            except _REMOTE_ERRORS as e:
                _log.warning("Cloud delete failed for %r (%s)", saved.name, e)

    def set_visibility(self, saved: SavedRoute, is_public: bool) -> SavedRoute:
        """
        Raises
        ------
        PermissionError
            No owner signed in, or the route was never synced.
        RemoteUnavailable
            The remote call failed.
        """
        if not self.cloud_enabled or saved.remote_id is None:
            raise PermissionError("visibility can only be changed for synced routes of a signed-in owner")

        self.remote.set_visibility(saved.remote_id, is_public)
        updated = saved.copy_with(is_public=is_public)
        if saved.key is not None:
            updated = self.local.update(saved, updated)
        _log.info("Route %r is now %s", saved.name, "public" if is_public else "private")
        return updated

    # ── reads ───────────────────────────────────────────────────────────────────
    def load(self) -> List[SavedRoute]:
        """Local routes plus the owner's cloud routes not already held locally."""
        local_routes = self.local.load()
        remote_routes: List[SavedRoute] = []
        if self.cloud_enabled:
            try:
                remote_routes = self.remote.list_routes(self.owner_id)
            except _REMOTE_ERRORS as e:
                _log.warning("Loading cloud routes failed (%s); showing local routes only", e)

        merged = list(local_routes)
        for r in remote_routes:
            if r.remote_id is not None and any(_same_route(r, loc) for loc in local_routes):
                continue
            merged.append(r)

        merged.sort(key=lambda r: r.saved_at, reverse=True)
        _log.debug(
            "Loaded %d routes (%d local, %d cloud)",
              len(merged)
            , len(local_routes)
            , len(remote_routes)
        )
        return merged

    def load_public(self) -> List[SavedRoute]:
        if self.remote is None:
            return []
        try:
            return self.remote.list_public()
        except _REMOTE_ERRORS as e:
            _log.warning("Loading public routes failed (%s)", e)
            return []

    def search(self, query: str) -> List[SavedRoute]:
        q = (query or "").strip().lower()
        routes = self.load()
        if not q:
            return routes
        return [
            r for r in routes
            if q in r.name.lower() or (r.description is not None and q in r.description.lower())
        ]

    def find_by_name(self, name: str) -> Optional[SavedRoute]:
        """First route whose name matches case-insensitively, ignoring outer whitespace."""
        wanted = (name or "").strip().lower()
        for r in self.load():
            if r.name.strip().lower() == wanted:
                return r
        return None

# gravel/infra/database_manager.py
# -*- coding: utf-8 -*-
"""
SQLite manager for saved routes
===============================

One table family: completed routes kept on this device.

    CREATE TABLE IF NOT EXISTS {table} (
          id            INTEGER PRIMARY KEY AUTOINCREMENT
        , name          TEXT      NOT NULL
        , saved_at      TEXT      NOT NULL   -- %Y-%m-%dT%H:%M:%S.%f, sortable
        , loop_closed   INTEGER   NOT NULL   -- 1 = closed loop, 0 = open
        , point_count   INTEGER   NOT NULL
        , distance_m    REAL
        , payload_json  TEXT      NOT NULL   -- SavedRoute.to_dict()
        , inserted_at   TIMESTAMP NOT NULL DEFAULT (datetime('now'))
    );

Index on saved_at (listing is newest first).

The scalar columns duplicate a few payload fields so listing, counting and
eviction never have to parse JSON. The payload stays the source of truth.

Style
-----
• 4-space indentation
• comma-at-beginning for multi-line argument lists
"""

from __future__ import annotations

import json
import sqlite3
from contextlib import contextmanager
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, Iterator, List, Mapping, Optional, Tuple

from gravel.core.config import get_storage_defaults
from gravel.infra.logging import get_logger

# ────────────────────────────────────────────────────────────────────────────────
# Defaults & logger
# ────────────────────────────────────────────────────────────────────────────────

DEFAULT_DB_PATH = get_storage_defaults().db_path
DEFAULT_TABLE   = get_storage_defaults().table_name

SAVED_AT_FMT = "%Y-%m-%dT%H:%M:%S.%f"

log = get_logger(__name__)


# ────────────────────────────────────────────────────────────────────────────────
# Small helpers
# ────────────────────────────────────────────────────────────────────────────────

def _bool_to_int(
    v: Optional[bool]
) -> int:
    return 1 if bool(v) else 0


def _to_float_or_none(
    v: Any
) -> Optional[float]:
    """
    Safely convert to float, keeping None (and "") as None.
    """
    if v is None or v == "":
        return None
    return float(v)


def _saved_at_key(
    saved_at: str
) -> str:
    """ISO timestamp from a payload → fixed-width sortable column value."""
    return datetime.fromisoformat(saved_at).strftime(SAVED_AT_FMT)


# ────────────────────────────────────────────────────────────────────────────────
# Connection helpers
# ────────────────────────────────────────────────────────────────────────────────

def _ensure_parent_dir(
    db_path: Path
) -> None:
    db_path.parent.mkdir(parents=True, exist_ok=True)


def _configure_pragmas(
    conn: sqlite3.Connection
) -> None:
    """
    Pragmatic defaults for a small single-user local DB.
    """
    conn.execute("PRAGMA journal_mode=WAL;")
    conn.execute("PRAGMA synchronous=NORMAL;")
    conn.execute("PRAGMA busy_timeout=5000;")


def connect(
    db_path: Path | str = DEFAULT_DB_PATH
) -> sqlite3.Connection:
    """
    Open a SQLite connection with parent folder + PRAGMAs taken care of.
    """
    path = Path(db_path)
    _ensure_parent_dir(path)
    conn = sqlite3.connect(path.as_posix())
    _configure_pragmas(conn)
    return conn


@contextmanager
def db_session(db_path: Path | str) -> Iterator[sqlite3.Connection]:
    conn = connect(db_path)
    try:
        yield conn
        conn.commit()
    except Exception:
        log.error("SQLite transaction rolled back due to an error.", exc_info=True)
        conn.rollback()
        raise
    finally:
        conn.close()


# ────────────────────────────────────────────────────────────────────────────────
# DDL
# ────────────────────────────────────────────────────────────────────────────────

_CREATE_TABLE_SQL = """
CREATE TABLE IF NOT EXISTS {table} (
      id            INTEGER   PRIMARY KEY AUTOINCREMENT
    , name          TEXT      NOT NULL
    , saved_at      TEXT      NOT NULL
    , loop_closed   INTEGER   NOT NULL
    , point_count   INTEGER   NOT NULL
    , distance_m    REAL
    , payload_json  TEXT      NOT NULL
    , inserted_at   TIMESTAMP NOT NULL DEFAULT (datetime('now'))
);
""".strip()

_CREATE_IDX_SAVED_AT_SQL = """
CREATE INDEX IF NOT EXISTS idx_{table}_saved_at
    ON {table} (saved_at);
""".strip()


def ensure_routes_table(
    conn: sqlite3.Connection
    , *
    , table_name: str = DEFAULT_TABLE
) -> None:
    """
    Create the saved-routes table + index if not present.
    """
    conn.execute(_CREATE_TABLE_SQL.format(table=table_name))
    conn.execute(_CREATE_IDX_SAVED_AT_SQL.format(table=table_name))


def table_exists(
    conn: sqlite3.Connection
    , table_name: str
) -> bool:
    row = conn.execute(
          "SELECT 1 FROM sqlite_master WHERE type='table' AND name=?;"
        , (table_name,)
    ).fetchone()
    return row is not None


# ────────────────────────────────────────────────────────────────────────────────
# DML
# ────────────────────────────────────────────────────────────────────────────────

def _payload_params(
    payload: Mapping[str, Any]
) -> Tuple[Any, ...]:
    return (
          str(payload["name"])
        , _saved_at_key(payload["savedAt"])
        , _bool_to_int(payload.get("loopClosed"))
        , len(payload.get("points") or [])
        , _to_float_or_none(payload.get("distance"))
        , json.dumps(payload, ensure_ascii=False)
    )


def insert_route(
    conn: sqlite3.Connection
    , *
    , payload: Mapping[str, Any]
    , table_name: str = DEFAULT_TABLE
) -> int:
    """
    Insert one SavedRoute payload.

    Returns
    -------
    int
        The new row id.
    """
    sql = f"""
    INSERT INTO {table_name} (
          name
        , saved_at
        , loop_closed
        , point_count
        , distance_m
        , payload_json
    )
    VALUES (?, ?, ?, ?, ?, ?);
    """.strip()

    cur = conn.execute(sql, _payload_params(payload))
    return int(cur.lastrowid)


def update_route(
    conn: sqlite3.Connection
    , *
    , route_id: int
    , payload: Mapping[str, Any]
    , table_name: str = DEFAULT_TABLE
) -> bool:
    """
    Replace the payload of row `route_id`.

    Returns
    -------
    bool
        True if a row was updated, False if the id does not exist.
    """
    sql = f"""
    UPDATE {table_name} SET
          name         = ?
        , saved_at     = ?
        , loop_closed  = ?
        , point_count  = ?
        , distance_m   = ?
        , payload_json = ?
    WHERE id = ?;
    """.strip()

    cur = conn.execute(sql, _payload_params(payload) + (int(route_id),))
    return cur.rowcount == 1


def delete_route(
    conn: sqlite3.Connection
    , *
    , route_id: int
    , table_name: str = DEFAULT_TABLE
) -> bool:
    cur = conn.execute(f"DELETE FROM {table_name} WHERE id = ?;", (int(route_id),))
    return cur.rowcount == 1


def delete_all_routes(
    conn: sqlite3.Connection
    , *
    , table_name: str = DEFAULT_TABLE
) -> int:
    cur = conn.execute(f"DELETE FROM {table_name};")
    return cur.rowcount


def evict_oldest(
    conn: sqlite3.Connection
    , *
    , keep: int
    , table_name: str = DEFAULT_TABLE
) -> int:
    """
    Delete every row except the `keep` newest (by saved_at, then id).

    Returns
    -------
    int
        Rows deleted.
    """
    sql = f"""
    DELETE FROM {table_name}
    WHERE id NOT IN (
        SELECT id FROM {table_name}
        ORDER BY saved_at DESC, id DESC
        LIMIT ?
    );
    """.strip()

    cur = conn.execute(sql, (max(0, int(keep)),))
    return cur.rowcount


def count_routes(
    conn: sqlite3.Connection
    , *
    , table_name: str = DEFAULT_TABLE
) -> int:
    row = conn.execute(f"SELECT COUNT(*) FROM {table_name};").fetchone()
    return int(row[0]) if row else 0


def fetch_routes(
    conn: sqlite3.Connection
    , *
    , table_name: str = DEFAULT_TABLE
    , route_id: Optional[int] = None
) -> List[Tuple[int, Dict[str, Any]]]:
    """
    Read (id, payload) pairs, newest first.

    Parameters
    ----------
    route_id
        If given, only that row (empty list when absent).
    """
    sql = f"SELECT id, payload_json FROM {table_name}"
    params: Tuple[Any, ...] = ()
    if route_id is not None:
        sql += " WHERE id = ?"
        params = (int(route_id),)
    sql += " ORDER BY saved_at DESC, id DESC;"

    return [(int(rid), json.loads(raw)) for rid, raw in conn.execute(sql, params).fetchall()]

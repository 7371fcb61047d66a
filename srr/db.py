from __future__ import annotations

import json
import os
import sqlite3
from datetime import datetime, timezone
from typing import Any

from .models import ServiceRoute, ServiceRouteSpec, spec_from_dict
from .settings import settings
from .status import ServiceRouteStatus


def utc_now() -> str:
    return datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")


def _resolve_db_path() -> str:
    """Return a file path usable by sqlite.

    If the configured path is a directory (Docker creates one for a missing
    bind-mounted file), the DB file is placed inside it.
    """

    p = os.path.abspath(settings.db_path)

    if os.path.isdir(p):
        p = os.path.join(p, "srr.db")

    parent = os.path.dirname(p)
    if parent and not os.path.exists(parent):
        os.makedirs(parent, exist_ok=True)

    return p


def connect() -> sqlite3.Connection:
    conn = sqlite3.connect(_resolve_db_path(), check_same_thread=False)
    conn.row_factory = sqlite3.Row
    return conn


def init_db() -> None:
    """Create tables if they do not exist."""
    with connect() as conn:
        conn.executescript(
            """
            CREATE TABLE IF NOT EXISTS routes (
              id INTEGER PRIMARY KEY AUTOINCREMENT,
              namespace TEXT NOT NULL,
              name TEXT NOT NULL,
              uid TEXT NOT NULL,
              spec TEXT NOT NULL,   -- JSON, owned by the caller
              status TEXT NOT NULL, -- JSON, owned by the reconciler
              deleted_at TEXT,
              created_at TEXT NOT NULL,
              updated_at TEXT NOT NULL,
              UNIQUE(namespace, name)
            );

            CREATE TABLE IF NOT EXISTS events (
              id INTEGER PRIMARY KEY AUTOINCREMENT,
              ts TEXT NOT NULL,
              level TEXT NOT NULL,
              namespace TEXT,
              route TEXT,
              message TEXT NOT NULL
            );

            CREATE INDEX IF NOT EXISTS idx_events_ts ON events(ts);
            """
        )


def log_event(level: str, message: str, namespace: str | None = None, route: str | None = None) -> None:
    with connect() as conn:
        conn.execute(
            "INSERT INTO events (ts, level, namespace, route, message) VALUES (?, ?, ?, ?, ?)",
            (utc_now(), level.upper(), namespace, route, message),
        )


def _row_to_route(row: sqlite3.Row) -> ServiceRoute:
    return ServiceRoute(
        namespace=row["namespace"],
        name=row["name"],
        spec=spec_from_dict(json.loads(row["spec"])),
        status=ServiceRouteStatus.from_dict(json.loads(row["status"])),
        uid=row["uid"],
        deleted_at=row["deleted_at"],
    )


def upsert_route(namespace: str, name: str, spec: ServiceRouteSpec) -> ServiceRoute:
    """Create a route or replace the spec of an existing one; status and uid are kept."""
    spec_json = json.dumps(ServiceRoute(namespace, name, spec=spec).spec_dict())
    with connect() as conn:
        row = conn.execute("SELECT * FROM routes WHERE namespace=? AND name=?", (namespace, name)).fetchone()
        if row is None or row["deleted_at"] is not None:
            if row is not None:
                # Re-creating over a tombstone yields a new object with a new uid.
                conn.execute("DELETE FROM routes WHERE id=?", (row["id"],))
            fresh = ServiceRoute(namespace, name, spec=spec)
            conn.execute(
                """
                INSERT INTO routes (namespace, name, uid, spec, status, created_at, updated_at)
                VALUES (?, ?, ?, ?, ?, ?, ?)
                """,
                (namespace, name, fresh.uid, spec_json, json.dumps(fresh.status.to_dict()), utc_now(), utc_now()),
            )
        else:
            conn.execute("UPDATE routes SET spec=?, updated_at=? WHERE id=?", (spec_json, utc_now(), row["id"]))
        row = conn.execute("SELECT * FROM routes WHERE namespace=? AND name=?", (namespace, name)).fetchone()
        return _row_to_route(row)


def get_route(namespace: str, name: str) -> ServiceRoute | None:
    with connect() as conn:
        row = conn.execute("SELECT * FROM routes WHERE namespace=? AND name=?", (namespace, name)).fetchone()
        return _row_to_route(row) if row else None


def list_routes(namespace: str | None = None) -> list[ServiceRoute]:
    with connect() as conn:
        if namespace:
            rows = conn.execute("SELECT * FROM routes WHERE namespace=? ORDER BY name", (namespace,)).fetchall()
        else:
            rows = conn.execute("SELECT * FROM routes ORDER BY namespace, name").fetchall()
        return [_row_to_route(r) for r in rows]


def update_route_status(route: ServiceRoute) -> None:
    # Keyed on uid so a pass over a since-replaced route cannot clobber the new one.
    with connect() as conn:
        conn.execute(
            "UPDATE routes SET status=?, updated_at=? WHERE namespace=? AND name=? AND uid=?",
            (json.dumps(route.status.to_dict()), utc_now(), route.namespace, route.name, route.uid),
        )


def mark_route_deleted(namespace: str, name: str) -> bool:
    with connect() as conn:
        cur = conn.execute(
            "UPDATE routes SET deleted_at=?, updated_at=? WHERE namespace=? AND name=? AND deleted_at IS NULL",
            (utc_now(), utc_now(), namespace, name),
        )
        return cur.rowcount > 0


def latest_events(limit: int = 100) -> list[dict[str, Any]]:
    with connect() as conn:
        rows = conn.execute("SELECT * FROM events ORDER BY id DESC LIMIT ?", (limit,)).fetchall()
        return [dict(r) for r in rows]

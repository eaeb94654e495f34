"""Database helpers for the worker."""

import logging
from contextlib import contextmanager
from typing import Any, Dict, Iterator, List, Optional, Sequence

import psycopg2
from psycopg2 import extras, pool

from places_sync.core.config import ConfigError, get_settings
from places_sync.core.store import (
    SYNC_LOCK_NAME,
    PlaceFilter,
    PlaceStore,
    SyncRunInProgress,
    check_external_id_field,
)
from places_sync.models import MATCHABLE_STATUSES, PLACE_COLUMNS, STATUS_ACTIVE, STATUS_MERGED, Place

logger = logging.getLogger(__name__)

_connection_pool: Optional[pool.SimpleConnectionPool] = None


def init_pool(minconn: int = 1, maxconn: int = 5) -> pool.SimpleConnectionPool:
    """Initialise and return the shared connection pool."""
    global _connection_pool
    if _connection_pool is None:
        settings = get_settings()
        if not settings.database_url:
            raise ConfigError("DATABASE_URL is required for database connections")
        _connection_pool = pool.SimpleConnectionPool(
            minconn,
            maxconn,
            dsn=settings.database_url,
            connect_timeout=10,
        )
        logger.info("Database connection pool initialised")
    return _connection_pool


@contextmanager
def get_connection():
    """Context manager yielding a pooled connection."""
    pg_pool = init_pool()
    conn = pg_pool.getconn()
    try:
        yield conn
    finally:
        pg_pool.putconn(conn)


_SCHEMA = """
CREATE EXTENSION IF NOT EXISTS pgcrypto;

CREATE TABLE IF NOT EXISTS places (
    id uuid PRIMARY KEY DEFAULT gen_random_uuid(),
    name text NOT NULL,
    type text NOT NULL DEFAULT 'other',
    address text,
    city text,
    country text,
    neighborhood text,
    lat double precision,
    lng double precision,
    tags text[] NOT NULL DEFAULT '{}',
    google_place_id text,
    yelp_id text,
    website_url text,
    rating double precision,
    rating_count integer,
    image_url text,
    photo_source text,
    google_photo_ref text,
    business_status text,
    status text NOT NULL DEFAULT 'active',
    merged_into uuid REFERENCES places (id),
    featured boolean NOT NULL DEFAULT false,
    last_verified_at timestamptz,
    created_at timestamptz NOT NULL DEFAULT now(),
    updated_at timestamptz NOT NULL DEFAULT now()
);

CREATE UNIQUE INDEX IF NOT EXISTS places_google_place_id_live_key
    ON places (google_place_id) WHERE google_place_id IS NOT NULL AND status <> 'merged';
CREATE UNIQUE INDEX IF NOT EXISTS places_yelp_id_live_key
    ON places (yelp_id) WHERE yelp_id IS NOT NULL AND status <> 'merged';
CREATE INDEX IF NOT EXISTS idx_places_status ON places (status);
CREATE INDEX IF NOT EXISTS idx_places_city ON places (city);
CREATE INDEX IF NOT EXISTS idx_places_lower_name ON places (lower(name));
CREATE INDEX IF NOT EXISTS idx_places_coordinates ON places (lat, lng);
"""

_SELECT_COLUMNS = ", ".join(PLACE_COLUMNS)
_WRITE_COLUMNS = tuple(c for c in PLACE_COLUMNS if c not in {"id", "created_at", "updated_at"})
_INSERT_COLUMNS = ", ".join(_WRITE_COLUMNS)
_INSERT_VALUES = ", ".join("%({})s".format(c) for c in _WRITE_COLUMNS)
_UPDATE_ASSIGNMENTS = ", ".join("{0} = EXCLUDED.{0}".format(c) for c in _WRITE_COLUMNS)

_UPSERT_WITH_ID = f"""
INSERT INTO places (id, {_INSERT_COLUMNS}, updated_at)
VALUES (%(id)s, {_INSERT_VALUES}, NOW())
ON CONFLICT (id) DO UPDATE SET
    {_UPDATE_ASSIGNMENTS},
    updated_at = NOW()
RETURNING {_SELECT_COLUMNS};
"""

_INSERT_WITHOUT_ID = f"""
INSERT INTO places ({_INSERT_COLUMNS}, updated_at)
VALUES ({_INSERT_VALUES}, NOW())
RETURNING {_SELECT_COLUMNS};
"""

_SELECT_BY_ID = f"SELECT {_SELECT_COLUMNS} FROM places WHERE id = %(id)s::uuid"

_SELECT_BY_EXTERNAL_ID = {
    column: f"""
SELECT {_SELECT_COLUMNS} FROM places
WHERE {column} = %(value)s
  AND status = ANY(%(statuses)s)
  AND (%(exclude_id)s::uuid IS NULL OR id <> %(exclude_id)s::uuid)
ORDER BY created_at, id
LIMIT 1
"""
    for column in ("google_place_id", "yelp_id")
}

_SELECT_BY_NAME = f"""
SELECT {_SELECT_COLUMNS} FROM places
WHERE lower(name) = lower(%(name)s) AND status <> '{STATUS_MERGED}'
ORDER BY created_at, id
"""

_SELECT_MISSING_EXTERNAL_IDS = f"""
SELECT {_SELECT_COLUMNS} FROM places
WHERE (google_place_id IS NULL OR yelp_id IS NULL)
  AND status = ANY(%(statuses)s)
ORDER BY created_at, id
LIMIT %(limit)s
"""

_SELECT_WITH_GOOGLE_ID = f"""
SELECT {_SELECT_COLUMNS} FROM places
WHERE google_place_id IS NOT NULL AND status <> '{STATUS_MERGED}'
ORDER BY created_at, id
"""

_SELECT_ALL = f"SELECT {_SELECT_COLUMNS} FROM places ORDER BY created_at, id"
_SELECT_ACTIVE = f"SELECT {_SELECT_COLUMNS} FROM places WHERE status = '{STATUS_ACTIVE}' ORDER BY created_at, id"


def init_schema() -> None:
    """Create the places table and its indexes when missing."""
    with get_connection() as conn:
        with conn.cursor() as cur:
            cur.execute(_SCHEMA)
        conn.commit()
        logger.info("Places schema ensured")


def _prepare_params(place: Place) -> Dict[str, Any]:
    row = place.to_row()
    params = {column: row.get(column) for column in _WRITE_COLUMNS}
    params["id"] = row.get("id")
    params["tags"] = list(row.get("tags") or [])
    if not params["name"]:
        raise ValueError("name is required for upsert")
    return params


def _build_bulk_update(where: PlaceFilter, values: Dict[str, Any]):
    clauses: List[str] = []
    params: Dict[str, Any] = {}
    if where.missing_google_place_id:
        clauses.append("google_place_id IS NULL")
    if where.verified_before is not None:
        clauses.append("COALESCE(last_verified_at, created_at) < %(verified_before)s")
        params["verified_before"] = where.verified_before
    if where.status_not_in:
        clauses.append("status <> ALL(%(status_not_in)s)")
        params["status_not_in"] = list(where.status_not_in)
    if not clauses:
        raise ValueError("Refusing to bulk update places without a filter")

    assignments = []
    for column, value in values.items():
        if column not in _WRITE_COLUMNS:
            raise ValueError(f"Unknown or read-only column: {column}")
        assignments.append(f"{column} = %(set_{column})s")
        params[f"set_{column}"] = value
    if not assignments:
        raise ValueError("No values supplied for bulk update")
    assignments.append("updated_at = NOW()")

    statement = f"UPDATE places SET {', '.join(assignments)} WHERE {' AND '.join(clauses)} RETURNING id"
    return statement, params


class PostgresPlaceStore(PlaceStore):
    """PlaceStore backed by the shared psycopg2 connection pool."""

    def _fetch_all(self, statement: str, params: Optional[Dict[str, Any]] = None) -> List[Place]:
        with get_connection() as conn:
            with conn.cursor(cursor_factory=extras.RealDictCursor) as cur:
                cur.execute(statement, params or {})
                rows = cur.fetchall()
            conn.commit()
        return [Place.from_row(dict(row)) for row in rows]

    def _fetch_one(self, statement: str, params: Dict[str, Any]) -> Optional[Place]:
        places = self._fetch_all(statement, params)
        return places[0] if places else None

    def find_by_id(self, place_id: str) -> Optional[Place]:
        return self._fetch_one(_SELECT_BY_ID, {"id": place_id})

    def find_by_external_id(
        self,
        column: str,
        value: str,
        *,
        exclude_id: Optional[str] = None,
        statuses: Sequence[str] = MATCHABLE_STATUSES,
    ) -> Optional[Place]:
        statement = _SELECT_BY_EXTERNAL_ID[check_external_id_field(column)]
        return self._fetch_one(statement, {"value": value, "exclude_id": exclude_id, "statuses": list(statuses)})

    def find_by_name(self, name: str) -> List[Place]:
        return self._fetch_all(_SELECT_BY_NAME, {"name": name})

    def select_missing_external_ids(self, limit: int) -> List[Place]:
        return self._fetch_all(_SELECT_MISSING_EXTERNAL_IDS, {"limit": limit, "statuses": list(MATCHABLE_STATUSES)})

    def select_with_google_id(self) -> List[Place]:
        return self._fetch_all(_SELECT_WITH_GOOGLE_ID)

    def list_places(self) -> List[Place]:
        return self._fetch_all(_SELECT_ALL)

    def list_active(self) -> List[Place]:
        return self._fetch_all(_SELECT_ACTIVE)

    def upsert(self, place: Place) -> Place:
        """Persist a place, performing an idempotent upsert keyed by id."""
        params = _prepare_params(place)
        statement = _UPSERT_WITH_ID if params["id"] else _INSERT_WITHOUT_ID
        stored = self._fetch_one(statement, params)
        logger.debug("Upserted place %s (%s)", place.name, stored.id if stored else None)
        return stored

    def merge(self, loser: Place, winner: Place) -> Place:
        """Tombstone ``loser`` and write ``winner`` in a single transaction."""
        if not loser.id or not winner.id:
            raise ValueError("merge requires both places to be stored")
        loser_params = _prepare_params(loser)
        winner_params = _prepare_params(winner)
        with get_connection() as conn:
            try:
                with conn.cursor(cursor_factory=extras.RealDictCursor) as cur:
                    # Tombstone first: the live-id unique indexes ignore merged rows.
                    cur.execute(_UPSERT_WITH_ID, loser_params)
                    cur.execute(_UPSERT_WITH_ID, winner_params)
                    row = cur.fetchone()
                conn.commit()
            except Exception:
                conn.rollback()
                raise
        logger.debug("Merged place %s into %s", loser.id, winner.id)
        return Place.from_row(dict(row))

    def bulk_update_where(self, where: PlaceFilter, values: Dict[str, Any]) -> List[str]:
        statement, params = _build_bulk_update(where, values)
        with get_connection() as conn:
            with conn.cursor() as cur:
                cur.execute(statement, params)
                rows = cur.fetchall()
            conn.commit()
        return [str(row[0]) for row in rows]

    @contextmanager
    def run_lock(self, name: str = SYNC_LOCK_NAME) -> Iterator[None]:
        """Hold a session-level advisory lock on a dedicated connection."""
        with get_connection() as conn:
            with conn.cursor() as cur:
                cur.execute("SELECT pg_try_advisory_lock(hashtext(%s))", (name,))
                acquired = bool(cur.fetchone()[0])
            conn.commit()
            if not acquired:
                raise SyncRunInProgress(f"Another {name} run is in progress")
            logger.info("Acquired run lock %s", name)
            try:
                yield
            finally:
                try:
                    with conn.cursor() as cur:
                        cur.execute("SELECT pg_advisory_unlock(hashtext(%s))", (name,))
                    conn.commit()
                    logger.info("Released run lock %s", name)
                except psycopg2.Error as exc:
                    logger.error("Failed to release run lock %s: %s", name, exc)

"""HTTP entrypoint that triggers places sync jobs (Cloud Run friendly)."""

from __future__ import annotations

import hmac
import logging
import os
from typing import Any, Callable, Dict, List, Optional, Tuple

from flask import Flask, jsonify, request

from places_sync.core.config import get_settings
from places_sync.core.db import PostgresPlaceStore, init_pool
from places_sync.core.store import PlaceStore, SyncRunInProgress
from places_sync.jobs.match_places import match_and_enrich_places
from places_sync.jobs.sweep_places import (
    get_place_matching_stats,
    inactivate_unmatched_places,
    reclassify_worship_places,
    reverify_all_places,
)
from places_sync.jobs.sync_places import import_from_google, import_from_yelp

# ---------- Logging ----------
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s %(levelname)s %(name)s - %(message)s",
)
logger = logging.getLogger(__name__)

# ---------- App ----------
app = Flask(__name__)


def get_store() -> PlaceStore:
    init_pool()
    return PostgresPlaceStore()


# ---------- Routes ----------


@app.before_request
def require_admin_key() -> Any:
    """Reject /admin requests without the configured X-Admin-Key."""
    if request.path.startswith("/admin/") and not _authorized():
        return jsonify({"error": "unauthorized - invalid or missing admin key"}), 401
    return None


@app.get("/")
def root() -> Any:
    """Simple root to avoid 404 on GET /"""
    return "ok", 200


@app.get("/healthz")
def healthcheck() -> Any:
    """Lightweight health endpoint; reads settings only, no database round trip."""
    settings = get_settings()
    return (
        jsonify(
            {
                "status": "ok",
                "worker_port_config": getattr(settings, "worker_port", None),
                "yelp_enabled": bool(settings.yelp_api_key),
                "revision": os.getenv("K_REVISION", "unknown"),
            }
        ),
        200,
    )


@app.post("/admin/places/import/google")
def import_google() -> Any:
    cities, error = _cities_from_payload()
    if error:
        return jsonify({"error": error}), 400
    return _run_admin_job("google import", lambda store: import_from_google(cities, store=store).to_dict())


@app.post("/admin/places/import/yelp")
def import_yelp() -> Any:
    cities, error = _cities_from_payload()
    if error:
        return jsonify({"error": error}), 400
    return _run_admin_job("yelp import", lambda store: import_from_yelp(cities, store=store).to_dict())


@app.post("/admin/places/match")
def match_and_enrich() -> Any:
    payload: Dict[str, Any] = request.get_json(silent=True) or {}

    # limit (optional -> int)
    limit_raw = payload.get("limit")
    limit = None
    if limit_raw is not None:
        try:
            limit = int(limit_raw)
            if limit <= 0:
                return jsonify({"error": "limit must be positive"}), 400
        except (TypeError, ValueError):
            return jsonify({"error": "limit must be numeric"}), 400

    return _run_admin_job("match", lambda store: match_and_enrich_places(limit, store=store).to_dict())


@app.post("/admin/places/reverify")
def reverify_places() -> Any:
    return _run_admin_job("reverify", lambda store: reverify_all_places(store=store).to_dict())


@app.post("/admin/places/inactivate-unmatched")
def inactivate_unmatched() -> Any:
    return _run_admin_job("inactivate unmatched", lambda store: inactivate_unmatched_places(store=store).to_dict())


@app.post("/admin/places/reclassify-worship")
def reclassify_worship() -> Any:
    return _run_admin_job("reclassify worship", lambda store: reclassify_worship_places(store=store).to_dict())


@app.get("/admin/places/stats")
def place_stats() -> Any:
    return _run_admin_job("stats", lambda store: get_place_matching_stats(store=store).to_dict())


# ---------- Internals ----------


def _authorized() -> bool:
    expected = get_settings().admin_key
    provided = request.headers.get("X-Admin-Key", "")
    return bool(expected) and hmac.compare_digest(provided.encode(), expected.encode())


def _cities_from_payload() -> Tuple[Optional[List[str]], Optional[str]]:
    payload: Dict[str, Any] = request.get_json(silent=True) or {}
    cities_raw = payload.get("cities")
    if cities_raw is None:
        return None, None
    if not isinstance(cities_raw, list) or not all(isinstance(c, str) and c.strip() for c in cities_raw):
        return None, "cities must be a list of city names"
    return [c.strip() for c in cities_raw], None


def _run_admin_job(label: str, job: Callable[[PlaceStore], Dict[str, Any]]) -> Any:
    logger.info("Running %s job", label)
    try:
        result = job(get_store())
    except SyncRunInProgress as exc:
        return jsonify({"error": str(exc)}), 409
    except Exception as exc:  # noqa: BLE001
        logger.exception("%s job failed: %s", label, exc)
        return jsonify({"error": f"{label} failed"}), 500

    return jsonify({"data": result}), 200


def main() -> None:
    """Bind on PORT when the platform injects it, else WORKER_PORT."""
    env_port = os.getenv("PORT")
    logger.info("[BOOT] ENV PORT=%s", env_port)

    port = int(env_port or get_settings().worker_port)
    logger.info("[BOOT] Binding on 0.0.0.0:%d", port)

    app.run(host="0.0.0.0", port=port)


if __name__ == "__main__":
    main()

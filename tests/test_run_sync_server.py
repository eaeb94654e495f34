from dataclasses import replace

import pytest

from places_sync.core.store import SyncRunInProgress
from places_sync.jobs import run_sync_server
from places_sync.models import ImportSummary, MatchSummary, PlaceStats

ADMIN = {"X-Admin-Key": "secret"}


@pytest.fixture(autouse=True)
def wired(monkeypatch, store, settings):
    calls = {}

    def fake_match(limit=None, *, store):
        calls["match"] = limit
        return MatchSummary(matched=2, merged=1)

    def fake_import(cities=None, *, store):
        calls["import"] = cities
        return ImportSummary(imported=3)

    monkeypatch.setattr(run_sync_server, "get_settings", lambda: settings)
    monkeypatch.setattr(run_sync_server, "get_store", lambda: store)
    monkeypatch.setattr(run_sync_server, "match_and_enrich_places", fake_match)
    monkeypatch.setattr(run_sync_server, "import_from_google", fake_import)
    monkeypatch.setattr(run_sync_server, "import_from_yelp", fake_import)
    monkeypatch.setattr(run_sync_server, "get_place_matching_stats", lambda *, store: PlaceStats(total=7))
    return calls


@pytest.fixture
def client():
    return run_sync_server.app.test_client()


def test_health_endpoint(client):
    response = client.get("/healthz")
    assert response.status_code == 200
    body = response.get_json()
    assert body["status"] == "ok"
    assert body["yelp_enabled"] is True


def test_root(client):
    assert client.get("/").status_code == 200


@pytest.mark.parametrize("headers", [{}, {"X-Admin-Key": "wrong"}])
def test_admin_routes_require_key(client, wired, headers):
    assert client.post("/admin/places/match", headers=headers).status_code == 401
    assert client.post("/admin/places/import/google", json={"cities": "bad"}, headers=headers).status_code == 401
    assert client.get("/admin/places/stats", headers=headers).status_code == 401
    assert "match" not in wired


def test_admin_routes_reject_when_key_unset(client, monkeypatch, settings):
    monkeypatch.setattr(run_sync_server, "get_settings", lambda: replace(settings, admin_key=""))
    assert client.post("/admin/places/match", headers={"X-Admin-Key": ""}).status_code == 401


def test_match_returns_summary(client, wired):
    response = client.post("/admin/places/match", json={"limit": 25}, headers=ADMIN)

    assert response.status_code == 200
    assert response.get_json()["data"]["matched"] == 2
    assert response.get_json()["data"]["merged"] == 1
    assert wired["match"] == 25


def test_match_validates_limit(client):
    assert client.post("/admin/places/match", json={"limit": "many"}, headers=ADMIN).status_code == 400
    assert client.post("/admin/places/match", json={"limit": 0}, headers=ADMIN).status_code == 400


def test_import_passes_cities(client, wired):
    response = client.post("/admin/places/import/yelp", json={"cities": [" Surrey ", "Burnaby"]}, headers=ADMIN)

    assert response.status_code == 200
    assert response.get_json() == {"data": {"imported": 3, "updated": 0, "skipped": 0, "errors": []}}
    assert wired["import"] == ["Surrey", "Burnaby"]


def test_import_validates_cities(client):
    response = client.post("/admin/places/import/google", json={"cities": "Surrey"}, headers=ADMIN)
    assert response.status_code == 400


def test_stats(client):
    response = client.get("/admin/places/stats", headers=ADMIN)
    assert response.status_code == 200
    assert response.get_json()["data"]["total"] == 7


def test_run_in_progress_maps_to_conflict(client, monkeypatch):
    def busy(*, store):
        raise SyncRunInProgress("Another places-sync run is in progress")

    monkeypatch.setattr(run_sync_server, "reverify_all_places", busy)

    response = client.post("/admin/places/reverify", headers=ADMIN)

    assert response.status_code == 409
    assert "in progress" in response.get_json()["error"]


def test_unexpected_failure_is_500(client, monkeypatch):
    def broken(*, store):
        raise RuntimeError("database unreachable")

    monkeypatch.setattr(run_sync_server, "reclassify_worship_places", broken)

    response = client.post("/admin/places/reclassify-worship", headers=ADMIN)

    assert response.status_code == 500
    assert response.get_json() == {"error": "reclassify worship failed"}


def test_inactivate_unmatched_route_runs_job(client, store, make_place, monkeypatch, settings):
    monkeypatch.setattr("places_sync.jobs.sweep_places.get_settings", lambda: settings)
    store.upsert(make_place("Chaat House"))

    response = client.post("/admin/places/inactivate-unmatched", headers=ADMIN)

    assert response.status_code == 200
    assert response.get_json()["data"]["deactivated"] == 1

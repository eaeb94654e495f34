from dataclasses import replace

import pytest

from places_sync.core.store import SyncRunInProgress
from places_sync.jobs import sync_places
from places_sync.vendors.google_places import GooglePlacesError

BC_COMPONENTS = [
    {"long_name": "Vancouver", "short_name": "Vancouver", "types": ["locality"]},
    {"long_name": "British Columbia", "short_name": "BC", "types": ["administrative_area_level_1"]},
    {"long_name": "Canada", "short_name": "CA", "types": ["country"]},
]


def google_details(place_id, name, lat=49.2601, lng=-123.1001, **extra):
    details = {
        "place_id": place_id,
        "name": name,
        "formatted_address": "123 Main St, Vancouver, BC V5K 0A1, Canada",
        "geometry": {"location": {"lat": lat, "lng": lng}},
        "address_components": BC_COMPONENTS,
        "types": ["restaurant", "food"],
        "rating": 4.3,
        "user_ratings_total": 12,
        "business_status": "OPERATIONAL",
    }
    details.update(extra)
    return details


def yelp_business(business_id, name, lat=49.26009, lng=-123.1, **extra):
    business = {
        "id": business_id,
        "name": name,
        "rating": 4.6,
        "review_count": 200,
        "image_url": f"https://img.yelp.com/{business_id}.jpg",
        "is_closed": False,
        "coordinates": {"latitude": lat, "longitude": lng},
        "categories": [{"alias": "indpak", "title": "Indian"}],
        "location": {
            "city": "Vancouver",
            "country": "CA",
            "state": "BC",
            "display_address": ["123 Main Street", "Vancouver, BC V5K 0A1"],
        },
    }
    business.update(extra)
    return business


@pytest.fixture
def one_city(settings):
    return replace(settings, cities=("Vancouver",))


@pytest.fixture
def google_api(monkeypatch):
    state = {"search": {}, "details": {}, "queries": [], "fail_terms": set()}

    def text_search(query, api_key, pagetoken=None, location_bias=None, region=None, timeout=10):
        state["queries"].append((query, pagetoken, location_bias, region))
        term = query.split(" in ")[0]
        if term in state["fail_terms"]:
            raise GooglePlacesError("OVER_QUERY_LIMIT")
        return {"status": "OK", "results": state["search"].get(term, [])}

    def place_details(place_id, api_key, timeout=10):
        return state["details"].get(place_id, {})

    monkeypatch.setattr(sync_places.google_places, "text_search", text_search)
    monkeypatch.setattr(sync_places.google_places, "place_details", place_details)
    return state


@pytest.fixture
def yelp_api(monkeypatch):
    state = {"search": {}, "calls": []}

    def search_businesses(term, location, api_key, limit=50, timeout=10):
        state["calls"].append((term, location, limit))
        return list(state["search"].get(term, []))

    monkeypatch.setattr(sync_places.yelp, "search_businesses", search_businesses)
    return state


def test_location_bias_uses_city_centre():
    assert sync_places.location_bias("Surrey") == "circle:5000@49.1913,-122.849"
    assert sync_places.location_bias("Atlantis") is None


def test_google_import_inserts_relevant_places(store, one_city, google_api):
    google_api["search"]["indian restaurant"] = [
        {"place_id": "G1", "geometry": {"location": {"lat": 49.26, "lng": -123.1}}},
        {"place_id": "G2", "geometry": {"location": {"lat": 49.26, "lng": -123.1}}},
        {"place_id": "G-SEA", "geometry": {"location": {"lat": 47.61, "lng": -122.33}}},
    ]
    google_api["details"]["G1"] = google_details("G1", "Taj Indian Restaurant")
    google_api["details"]["G2"] = google_details("G2", "Joe's Pizza")

    summary = sync_places.import_from_google(store=store, settings=one_city)

    places = store.list_places()
    assert [p.google_place_id for p in places] == ["G1"]
    assert places[0].type == "restaurant"
    assert places[0].city == "Vancouver"
    assert summary.imported == 1
    assert summary.skipped == 1
    assert summary.errors == []
    query, pagetoken, bias, region = google_api["queries"][0]
    assert query == "indian restaurant in Vancouver"
    assert bias == "circle:5000@49.2827,-123.1207"
    assert region == "CA"
    assert len(google_api["queries"]) == len(sync_places.GOOGLE_SEARCH_TERMS)


def test_google_import_updates_existing_place(store, one_city, google_api, make_place):
    existing = store.upsert(make_place("Taj Indian Restaurant", google_place_id="G1", status="inactive"))
    google_api["search"]["indian restaurant"] = [{"place_id": "G1"}]
    google_api["search"]["halal restaurant"] = [{"place_id": "G1"}]
    google_api["details"]["G1"] = google_details("G1", "Taj Indian Restaurant")

    # Results without coordinates never pass the region filter.
    summary = sync_places.import_from_google(store=store, settings=one_city)
    assert summary.updated == 0

    google_api["search"]["indian restaurant"] = [
        {"place_id": "G1", "geometry": {"location": {"lat": 49.26, "lng": -123.1}}}
    ]
    summary = sync_places.import_from_google(store=store, settings=one_city)

    stored = store.find_by_id(existing.id)
    assert summary.updated == 1
    assert summary.imported == 0
    assert stored.status == "active"
    assert stored.rating_count == 12
    assert len(store.list_places()) == 1


def test_google_import_records_term_failures(store, one_city, google_api):
    google_api["fail_terms"].add("mosque")

    summary = sync_places.import_from_google(store=store, settings=one_city)

    assert summary.errors == ['Failed search "mosque" in Vancouver: OVER_QUERY_LIMIT']


def test_google_import_without_key(store, settings, google_api):
    summary = sync_places.import_from_google(store=store, settings=replace(settings, google_places_key=""))

    assert summary.errors == ["Google import skipped: GOOGLE_PLACES_KEY is not configured"]
    assert google_api["queries"] == []


def test_yelp_import_merges_into_google_place(store, one_city, yelp_api, make_place):
    google_place = store.upsert(
        make_place(
            "Taj Restaurant",
            address="123 Main St, Vancouver",
            google_place_id="G1",
            rating=4.3,
            rating_count=12,
            lat=49.2600,
            lng=-123.1000,
        )
    )
    yelp_api["search"]["indian"] = [yelp_business("taj-vancouver", "Taj Restaurant")]

    summary = sync_places.import_from_yelp(store=store, settings=one_city)

    places = store.list_places()
    assert len(places) == 1
    stored = store.find_by_id(google_place.id)
    assert stored.google_place_id == "G1"
    assert stored.yelp_id == "taj-vancouver"
    assert (stored.rating, stored.rating_count) == (4.6, 200)
    assert stored.image_url == "https://img.yelp.com/taj-vancouver.jpg"
    assert stored.photo_source == "yelp"
    assert summary.updated == 1
    assert summary.imported == 0
    assert yelp_api["calls"][0] == ("indian", "Vancouver, BC", 50)


def test_yelp_import_keeps_distant_namesakes_apart(store, one_city, yelp_api, make_place):
    store.upsert(make_place("Taj Restaurant", google_place_id="G1", lat=49.2600, lng=-123.1000))
    # Same name and street number, roughly 150 m away.
    yelp_api["search"]["indian"] = [yelp_business("taj-two", "Taj Restaurant", lat=49.26135, lng=-123.1)]

    summary = sync_places.import_from_yelp(store=store, settings=one_city)

    assert summary.imported == 1
    assert sorted(p.yelp_id or "" for p in store.list_places()) == ["", "taj-two"]


def test_yelp_import_is_idempotent(store, one_city, yelp_api):
    yelp_api["search"]["indian"] = [yelp_business("taj-vancouver", "Taj Restaurant")]

    first = sync_places.import_from_yelp(store=store, settings=one_city)
    second = sync_places.import_from_yelp(store=store, settings=one_city)

    assert (first.imported, second.imported, second.updated) == (1, 0, 1)
    assert len(store.list_places()) == 1


def test_yelp_import_without_key(store, settings, yelp_api):
    summary = sync_places.import_from_yelp(store=store, settings=replace(settings, yelp_api_key=""))

    assert summary.errors == ["Yelp import skipped: YELP_API_KEY is not configured"]
    assert yelp_api["calls"] == []


def test_import_respects_run_lock(store, one_city, yelp_api):
    with store.run_lock():
        with pytest.raises(SyncRunInProgress):
            sync_places.import_from_yelp(store=store, settings=one_city)

from places_sync.core.config import METRO_VANCOUVER, Settings
from places_sync.etl import geofence

SETTINGS = Settings(google_places_key="g", database_url="")
PROVINCE_NAMES = {"BC": "British Columbia", "AB": "Alberta", "WA": "Washington"}


def _google(lat, lng, country="CA", province="BC", name="Taj Indian Restaurant", types=("restaurant",)):
    return {
        "name": name,
        "types": list(types),
        "geometry": {"location": {"lat": lat, "lng": lng}},
        "address_components": [
            {"long_name": "Vancouver", "short_name": "Vancouver", "types": ["locality"]},
            {"long_name": PROVINCE_NAMES.get(province, province), "short_name": province, "types": ["administrative_area_level_1"]},
            {"long_name": "Canada", "short_name": country, "types": ["country"]},
        ],
    }


def test_bounds_are_inclusive():
    box = METRO_VANCOUVER
    assert geofence.is_within_bounds(box.north, box.west, box)
    assert geofence.is_within_bounds(box.south, box.east, box)
    assert not geofence.is_within_bounds(box.north + 0.01, -123.0, box)
    assert not geofence.is_within_bounds(None, -123.0, box)


def test_google_result_inside_region():
    assert geofence.is_valid_google_result(_google(49.28, -123.12), SETTINGS)


def test_google_result_outside_bounds():
    # Seattle
    assert not geofence.is_valid_google_result(_google(47.61, -122.33), SETTINGS)


def test_google_result_wrong_country_or_province():
    # Inside the box but tagged as Washington state.
    assert not geofence.is_valid_google_result(_google(49.01, -122.75, country="US", province="WA"), SETTINGS)
    assert not geofence.is_valid_google_result(_google(49.2, -123.0, province="AB"), SETTINGS)


def test_google_result_without_components_uses_bounds_only():
    result = {"geometry": {"location": {"lat": 49.2, "lng": -123.0}}}
    assert geofence.is_valid_google_result(result, SETTINGS)


def test_yelp_result_region_checks():
    business = {
        "coordinates": {"latitude": 49.2, "longitude": -123.0},
        "location": {"country": "CA", "state": "BC"},
    }
    assert geofence.is_valid_yelp_result(business, SETTINGS)
    business["location"]["state"] = "WA"
    assert not geofence.is_valid_yelp_result(business, SETTINGS)
    assert not geofence.is_valid_yelp_result({"coordinates": {}}, SETTINGS)


def test_relevance_uses_name_and_labels():
    keywords = SETTINGS.relevance_keywords
    assert geofence.is_relevant("Punjabi Dhaba", [], keywords)
    assert geofence.is_relevant("Shree Ganesh", ["hindu_temple"], keywords)
    assert geofence.is_relevant("Spice Hut", ["indpak", "Indian"], keywords)
    assert not geofence.is_relevant("Joe's Pizza", ["pizza"], keywords)


def test_accept_google_result_can_skip_relevance():
    pizza = _google(49.28, -123.12, name="Joe's Pizza", types=("restaurant",))
    assert not geofence.accept_google_result(pizza, SETTINGS)
    assert geofence.accept_google_result(pizza, SETTINGS, require_relevance=False)


def test_accept_yelp_result_uses_category_labels():
    business = {
        "name": "Spice Route",
        "coordinates": {"latitude": 49.2, "longitude": -123.0},
        "location": {"country": "CA", "state": "BC"},
        "categories": [{"alias": "indpak", "title": "Indian"}],
    }
    assert geofence.accept_yelp_result(business, SETTINGS)

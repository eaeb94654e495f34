"""Import jobs that pull South Asian places from Google Places and Yelp."""

import logging
import time
from typing import Any, Dict, Iterable, List, Optional

from places_sync.core.config import Settings, get_settings
from places_sync.core.store import PlaceStore
from places_sync.etl.geofence import accept_google_result, accept_yelp_result
from places_sync.etl.merge import apply_provider_fields, pick_best
from places_sync.etl.transform import (
    google_to_match,
    google_to_place,
    status_for_business,
    yelp_to_match,
    yelp_to_place,
)
from places_sync.jobs.match_places import OUTCOME_BLOCKED, attach_match, utcnow
from places_sync.models import (
    MATCHABLE_STATUSES,
    PROVIDER_GOOGLE,
    STATUS_ACTIVE,
    STATUS_INACTIVE,
    Candidate,
    ImportSummary,
    Place,
    ProviderMatch,
)
from places_sync.vendors import google_places, yelp

logger = logging.getLogger(__name__)

GOOGLE_SEARCH_TERMS = (
    "indian restaurant",
    "pakistani restaurant",
    "bangladeshi restaurant",
    "south asian restaurant",
    "punjabi restaurant",
    "gujarati restaurant",
    "tamil restaurant",
    "afghan restaurant",
    "halal restaurant",
    "indian grocery",
    "south asian grocery",
    "desi grocery",
    "indian clothing",
    "south asian clothing",
    "sari shop",
    "gurdwara",
    "sikh temple",
    "hindu temple",
    "indian temple",
    "mosque",
)
YELP_SEARCH_TERMS = ("indian", "pakistani", "bangladeshi", "sri_lankan", "afghani", "halal")

CITY_CENTRES = {
    "Vancouver": (49.2827, -123.1207),
    "Burnaby": (49.2488, -122.9805),
    "Richmond": (49.1666, -123.1336),
    "Surrey": (49.1913, -122.8490),
    "North Vancouver": (49.3181, -123.0680),
    "West Vancouver": (49.3289, -123.1645),
    "Coquitlam": (49.2838, -122.7932),
}
LOCATION_BIAS_RADIUS_METERS = 5000
NEXT_PAGE_DELAY_SECONDS = 2.5
YELP_SEARCH_LIMIT = 50


def location_bias(city: str) -> Optional[str]:
    centre = CITY_CENTRES.get(city)
    if centre is None:
        return None
    return f"circle:{LOCATION_BIAS_RADIUS_METERS}@{centre[0]},{centre[1]}"


def find_same_place(
    store: PlaceStore,
    match: ProviderMatch,
    settings: Settings,
    max_distance_meters: Optional[float] = None,
) -> Optional[Place]:
    """Best existing same-name place that could take ``match``'s id."""
    options = [
        (Candidate.from_place(place), place)
        for place in store.find_by_name(match.name)
        if place.status in MATCHABLE_STATUSES and not getattr(place, match.id_field)
    ]
    best = pick_best(match.as_candidate(), options, settings.match_threshold, max_distance_meters)
    if best is None:
        return None
    place, score = best
    logger.debug("Import candidate %r matches existing place %s with score %.3f", match.name, place.id, score)
    return place


def _refresh_existing(store: PlaceStore, existing: Place, match: ProviderMatch) -> None:
    updated = apply_provider_fields(existing, match, utcnow())
    if updated.status == STATUS_INACTIVE and status_for_business(match.business_status) == STATUS_ACTIVE:
        # Yelp cannot reopen a place Google tracks.
        if match.provider == PROVIDER_GOOGLE or not updated.google_place_id:
            updated.status = STATUS_ACTIVE
    store.upsert(updated)


def _store_result(
    store: PlaceStore,
    match: ProviderMatch,
    new_place: Place,
    settings: Settings,
    summary: ImportSummary,
    max_distance_meters: Optional[float] = None,
) -> None:
    existing = store.find_by_external_id(
        match.id_field, match.external_id, statuses=MATCHABLE_STATUSES + (STATUS_INACTIVE,)
    )
    if existing is not None:
        _refresh_existing(store, existing, match)
        summary.updated += 1
        return

    same = find_same_place(store, match, settings, max_distance_meters)
    if same is not None:
        outcome = attach_match(store, same, match, utcnow())
        if outcome.kind == OUTCOME_BLOCKED:
            summary.skipped += 1
        else:
            summary.updated += 1
        return

    store.upsert(new_place)
    summary.imported += 1
    logger.info("Imported new place %r from %s", new_place.name, match.provider)


def search_google(term: str, city: str, settings: Settings) -> List[Dict[str, Any]]:
    """Text Search results for one term in one city, restricted to the target region."""
    query = f"{term} in {city}"
    results: List[Dict[str, Any]] = []
    page_token = None
    processed_pages = 0

    while processed_pages < settings.max_pages:
        response = google_places.text_search(
            query=query,
            api_key=settings.google_places_key,
            pagetoken=page_token,
            location_bias=location_bias(city),
            region=settings.target_country,
            timeout=settings.request_timeout_seconds,
        )
        page = response.get("results", [])
        logger.info("Fetched %d results for %r on page %d", len(page), query, processed_pages + 1)
        results.extend(r for r in page if r.get("place_id") and accept_google_result(r, settings, require_relevance=False))

        processed_pages += 1
        page_token = response.get("next_page_token")
        if not page_token or processed_pages >= settings.max_pages:
            break
        time.sleep(NEXT_PAGE_DELAY_SECONDS)

    return results


def _import_google_result(
    result: Dict[str, Any], city: str, store: PlaceStore, settings: Settings, summary: ImportSummary
) -> None:
    place_id = result["place_id"]
    try:
        details = google_places.place_details(
            place_id=place_id, api_key=settings.google_places_key, timeout=settings.request_timeout_seconds
        )
    finally:
        time.sleep(settings.google_delay_seconds)

    if not details or not accept_google_result(details, settings):
        logger.debug("Skipping Google place %s after details check", place_id)
        summary.skipped += 1
        return

    match = google_to_match(details)
    _store_result(store, match, google_to_place(details, city, utcnow()), settings, summary)


def import_from_google(
    cities: Optional[Iterable[str]] = None,
    *,
    store: PlaceStore,
    settings: Optional[Settings] = None,
) -> ImportSummary:
    settings = settings or get_settings()
    cities = list(cities or settings.cities)
    summary = ImportSummary()
    if not settings.google_places_key:
        summary.errors.append("Google import skipped: GOOGLE_PLACES_KEY is not configured")
        return summary

    with store.run_lock():
        for city in cities:
            for term in GOOGLE_SEARCH_TERMS:
                try:
                    results = search_google(term, city, settings)
                except Exception as exc:  # noqa: BLE001
                    logger.error("Google search for %r in %s failed: %s", term, city, exc)
                    summary.errors.append(f'Failed search "{term}" in {city}: {exc}')
                    continue
                finally:
                    time.sleep(settings.google_delay_seconds)

                for result in results:
                    try:
                        _import_google_result(result, city, store, settings, summary)
                    except Exception as exc:  # noqa: BLE001
                        logger.error("Failed to import Google place %s: %s", result.get("place_id"), exc)
                        summary.errors.append(f"Failed to process {result.get('name')}: {exc}")

    logger.info(
        "Google import finished: imported=%d updated=%d skipped=%d errors=%d",
        summary.imported,
        summary.updated,
        summary.skipped,
        len(summary.errors),
    )
    return summary


def import_from_yelp(
    cities: Optional[Iterable[str]] = None,
    *,
    store: PlaceStore,
    settings: Optional[Settings] = None,
) -> ImportSummary:
    settings = settings or get_settings()
    cities = list(cities or settings.cities)
    summary = ImportSummary()
    if not settings.yelp_api_key:
        summary.errors.append("Yelp import skipped: YELP_API_KEY is not configured")
        return summary

    with store.run_lock():
        for city in cities:
            location = f"{city}, {settings.target_regions[0]}"
            for term in YELP_SEARCH_TERMS:
                try:
                    businesses = yelp.search_businesses(
                        term=term,
                        location=location,
                        api_key=settings.yelp_api_key,
                        limit=YELP_SEARCH_LIMIT,
                        timeout=settings.request_timeout_seconds,
                    )
                except Exception as exc:  # noqa: BLE001
                    logger.error("Yelp search for %r in %s failed: %s", term, city, exc)
                    summary.errors.append(f'Failed Yelp search "{term}" in {city}: {exc}')
                    continue
                finally:
                    time.sleep(settings.yelp_delay_seconds)

                for business in businesses:
                    if not business.get("id") or not accept_yelp_result(business, settings):
                        summary.skipped += 1
                        continue
                    try:
                        match = yelp_to_match(business)
                        new_place = yelp_to_place(business, city, utcnow())
                        _store_result(store, match, new_place, settings, summary, settings.merge_distance_meters)
                    except Exception as exc:  # noqa: BLE001
                        logger.error("Failed to import Yelp business %s: %s", business.get("id"), exc)
                        summary.errors.append(f"Failed to process {business.get('name')}: {exc}")

    logger.info(
        "Yelp import finished: imported=%d updated=%d skipped=%d errors=%d",
        summary.imported,
        summary.updated,
        summary.skipped,
        len(summary.errors),
    )
    return summary

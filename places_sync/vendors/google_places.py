"""Client utilities for the Google Places API."""

import logging
from typing import Any, Dict, Optional

from places_sync.vendors.http import build_session

logger = logging.getLogger(__name__)
_SESSION = build_session()
_BASE_URL = "https://maps.googleapis.com/maps/api/place"

DETAILS_FIELDS = (
    "place_id,name,business_status,formatted_address,address_components,geometry,"
    "rating,user_ratings_total,website,types,photos"
)
_EMPTY_STATUSES = {"ZERO_RESULTS", "NOT_FOUND"}


class GooglePlacesError(RuntimeError):
    """Raised when the Places API returns a non-successful response."""


def _get(endpoint: str, params: Dict[str, Any], timeout: float) -> Dict[str, Any]:
    response = _SESSION.get(f"{_BASE_URL}/{endpoint}/json", params=params, timeout=timeout)
    response.raise_for_status()
    try:
        payload = response.json()
    except ValueError as exc:
        raise GooglePlacesError(f"{endpoint} returned malformed JSON") from exc
    if not isinstance(payload, dict):
        raise GooglePlacesError(f"{endpoint} returned an unexpected payload")
    return payload


def text_search(
    query: str,
    api_key: str,
    pagetoken: Optional[str] = None,
    location_bias: Optional[str] = None,
    region: Optional[str] = None,
    timeout: float = 10,
) -> Dict[str, Any]:
    params = {"query": query, "key": api_key}
    if pagetoken:
        params["pagetoken"] = pagetoken
    if location_bias:
        params["locationbias"] = location_bias
    if region:
        params["region"] = region.lower()
    payload = _get("textsearch", params, timeout)
    status = payload.get("status")
    if status not in {"OK", "ZERO_RESULTS"}:
        logger.error("text_search failed: status=%s, error_message=%s", status, payload.get("error_message"))
        raise GooglePlacesError(payload.get("error_message") or status)
    return payload


def place_details(place_id: str, api_key: str, timeout: float = 10) -> Dict[str, Any]:
    """Return the details result, or an empty dict when the place no longer resolves."""
    params = {"place_id": place_id, "key": api_key, "fields": DETAILS_FIELDS}
    payload = _get("details", params, timeout)
    status = payload.get("status")
    if status in _EMPTY_STATUSES:
        logger.info("place_details returned %s for %s", status, place_id)
        return {}
    if status != "OK":
        logger.error("place_details failed: status=%s, error_message=%s", status, payload.get("error_message"))
        raise GooglePlacesError(payload.get("error_message") or status)
    return payload.get("result") or {}

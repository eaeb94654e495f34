"""Region and relevance predicates applied to raw provider results."""

import logging
from typing import Any, Dict, Iterable, Optional

from places_sync.core.config import BoundingBox, Settings

logger = logging.getLogger(__name__)


def is_within_bounds(lat: Optional[float], lng: Optional[float], box: BoundingBox) -> bool:
    if lat is None or lng is None:
        return False
    try:
        lat_f, lng_f = float(lat), float(lng)
    except (TypeError, ValueError):
        return False
    return box.south <= lat_f <= box.north and box.west <= lng_f <= box.east


def _matches_region(value: Optional[str], regions: Iterable[str]) -> bool:
    wanted = {region.strip().lower() for region in regions}
    return value.strip().lower() in wanted


def _component(address_components: Iterable[Dict[str, Any]], component_type: str) -> Optional[Dict[str, Any]]:
    for component in address_components or []:
        if component_type in component.get("types", []):
            return component
    return None


def is_valid_google_result(result: Dict[str, Any], settings: Settings) -> bool:
    location = (result.get("geometry") or {}).get("location") or {}
    if not is_within_bounds(location.get("lat"), location.get("lng"), settings.geofence):
        return False

    components = result.get("address_components")
    if components:
        country = _component(components, "country")
        if country and (country.get("short_name") or "").upper() != settings.target_country:
            return False
        province = _component(components, "administrative_area_level_1")
        if province:
            names = (province.get("short_name") or "", province.get("long_name") or "")
            if not any(_matches_region(name, settings.target_regions) for name in names if name):
                return False
    return True


def is_valid_yelp_result(business: Dict[str, Any], settings: Settings) -> bool:
    coordinates = business.get("coordinates") or {}
    if not is_within_bounds(coordinates.get("latitude"), coordinates.get("longitude"), settings.geofence):
        return False

    location = business.get("location") or {}
    country = location.get("country")
    if country and country.upper() != settings.target_country:
        return False
    state = location.get("state")
    if state and not _matches_region(state, settings.target_regions):
        return False
    return True


def is_relevant(name: Optional[str], labels: Iterable[str], keywords: Iterable[str]) -> bool:
    """Substring keyword scan over the name and provider category labels."""
    haystacks = [(name or "").lower()]
    haystacks.extend(label.lower().replace("_", " ") for label in labels or [] if label)
    return any(keyword in haystack for keyword in keywords for haystack in haystacks)


def google_labels(result: Dict[str, Any]) -> list:
    return list(result.get("types") or [])


def yelp_labels(business: Dict[str, Any]) -> list:
    labels = []
    for category in business.get("categories") or []:
        labels.extend(value for value in (category.get("alias"), category.get("title")) if value)
    return labels


def accept_google_result(result: Dict[str, Any], settings: Settings, require_relevance: bool = True) -> bool:
    if not is_valid_google_result(result, settings):
        logger.debug("Rejected Google result outside target region: %s", result.get("name"))
        return False
    if require_relevance and not is_relevant(result.get("name"), google_labels(result), settings.relevance_keywords):
        logger.debug("Rejected irrelevant Google result: %s", result.get("name"))
        return False
    return True


def accept_yelp_result(business: Dict[str, Any], settings: Settings, require_relevance: bool = True) -> bool:
    if not is_valid_yelp_result(business, settings):
        logger.debug("Rejected Yelp result outside target region: %s", business.get("name"))
        return False
    if require_relevance and not is_relevant(business.get("name"), yelp_labels(business), settings.relevance_keywords):
        logger.debug("Rejected irrelevant Yelp result: %s", business.get("name"))
        return False
    return True

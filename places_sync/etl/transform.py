"""Utilities for transforming Google Places and Yelp responses into place records."""

import logging
from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional, Tuple

from places_sync.etl.classifier import classify_place
from places_sync.models import (
    BUSINESS_CLOSED_PERMANENTLY,
    BUSINESS_OPERATIONAL,
    PHOTO_SOURCE_GOOGLE,
    PHOTO_SOURCE_YELP,
    PROVIDER_GOOGLE,
    PROVIDER_YELP,
    STATUS_ACTIVE,
    STATUS_INACTIVE,
    Place,
    ProviderMatch,
)

logger = logging.getLogger(__name__)

TAG_KEYWORDS = (
    "indian",
    "pakistani",
    "bangladeshi",
    "nepali",
    "sri lankan",
    "afghan",
    "punjabi",
    "gujarati",
    "tamil",
    "kerala",
    "kashmiri",
    "desi",
    "biryani",
    "dosa",
    "chaat",
    "mithai",
    "halal",
    "bollywood",
)
CATEGORY_TAGS = ("indian", "pakistani", "bangladeshi", "halal", "vegetarian")
METRO_CITIES = (
    "North Vancouver",
    "West Vancouver",
    "New Westminster",
    "Port Coquitlam",
    "Port Moody",
    "White Rock",
    "Maple Ridge",
    "Pitt Meadows",
    "Vancouver",
    "Surrey",
    "Burnaby",
    "Richmond",
    "Delta",
    "Coquitlam",
    "Langley",
)


def parse_city_country(address_components: Iterable[Dict[str, Any]]) -> Tuple[Optional[str], Optional[str]]:
    city = None
    country = None
    for component in address_components or []:
        types = set(component.get("types", []))
        if "locality" in types or (city is None and "administrative_area_level_2" in types):
            city = component.get("long_name")
        if "country" in types:
            country = component.get("short_name")
    return city, country


def parse_city(address: Optional[str], fallback_city: Optional[str] = None) -> Optional[str]:
    """Pick the first known metro city mentioned in a free-text address."""
    for part in (p.strip() for p in (address or "").split(",")):
        for city in METRO_CITIES:
            if city.lower() in part.lower():
                return city
    return fallback_city


def normalize_url(url: Optional[str]) -> Optional[str]:
    if not url:
        return None
    trimmed = url.strip()
    if not trimmed:
        return None
    if trimmed.startswith(("http://", "https://")):
        return trimmed
    return f"https://{trimmed}"


def extract_tags(name: Optional[str], yelp_categories: Optional[Iterable[Dict[str, Any]]] = None) -> List[str]:
    tags: List[str] = []
    lowered = (name or "").lower()
    for keyword in TAG_KEYWORDS:
        if keyword in lowered and keyword not in tags:
            tags.append(keyword)
    for category in yelp_categories or []:
        text = f"{category.get('alias') or ''} {category.get('title') or ''}".lower()
        for tag in CATEGORY_TAGS:
            if tag in text and tag not in tags:
                tags.append(tag)
    return tags


def _safe_float(value: Any) -> Optional[float]:
    try:
        if value is None:
            return None
        return float(value)
    except (TypeError, ValueError):
        return None


def _safe_int(value: Any) -> Optional[int]:
    try:
        if value is None:
            return None
        return int(value)
    except (TypeError, ValueError):
        return None


def yelp_address(business: Dict[str, Any]) -> Optional[str]:
    parts = (business.get("location") or {}).get("display_address") or []
    joined = ", ".join(str(p) for p in parts if p)
    return joined or None


def google_to_match(result: Dict[str, Any]) -> ProviderMatch:
    location = (result.get("geometry") or {}).get("location") or {}
    photos = result.get("photos") or []
    return ProviderMatch(
        provider=PROVIDER_GOOGLE,
        external_id=result.get("place_id"),
        name=result.get("name") or "",
        address=result.get("formatted_address"),
        lat=_safe_float(location.get("lat")),
        lng=_safe_float(location.get("lng")),
        rating=_safe_float(result.get("rating")),
        rating_count=_safe_int(result.get("user_ratings_total")),
        website_url=normalize_url(result.get("website")),
        google_photo_ref=photos[0].get("photo_reference") if photos else None,
        business_status=result.get("business_status") or BUSINESS_OPERATIONAL,
        raw_snapshot=result,
    )


def yelp_to_match(business: Dict[str, Any]) -> ProviderMatch:
    coordinates = business.get("coordinates") or {}
    return ProviderMatch(
        provider=PROVIDER_YELP,
        external_id=business.get("id"),
        name=business.get("name") or "",
        address=yelp_address(business),
        lat=_safe_float(coordinates.get("latitude")),
        lng=_safe_float(coordinates.get("longitude")),
        rating=_safe_float(business.get("rating")),
        rating_count=_safe_int(business.get("review_count")),
        image_url=business.get("image_url") or None,
        business_status=BUSINESS_CLOSED_PERMANENTLY if business.get("is_closed") else BUSINESS_OPERATIONAL,
        raw_snapshot=business,
    )


def status_for_business(business_status: Optional[str]) -> str:
    if business_status and business_status.startswith("CLOSED"):
        return STATUS_INACTIVE
    return STATUS_ACTIVE


def google_to_place(details: Dict[str, Any], fallback_city: Optional[str], verified_at: datetime) -> Place:
    match = google_to_match(details)
    city, country = parse_city_country(details.get("address_components", []))
    return Place(
        name=match.name,
        type=classify_place(match.name, [], details.get("types") or []),
        address=match.address,
        city=city or fallback_city,
        country=country,
        lat=match.lat,
        lng=match.lng,
        tags=extract_tags(match.name),
        google_place_id=match.external_id,
        website_url=match.website_url,
        rating=match.rating,
        rating_count=match.rating_count,
        google_photo_ref=match.google_photo_ref,
        photo_source=PHOTO_SOURCE_GOOGLE if match.google_photo_ref else None,
        business_status=match.business_status,
        status=status_for_business(match.business_status),
        last_verified_at=verified_at,
    )


def yelp_to_place(business: Dict[str, Any], fallback_city: Optional[str], verified_at: datetime) -> Place:
    match = yelp_to_match(business)
    categories = business.get("categories") or []
    location = business.get("location") or {}
    return Place(
        name=match.name,
        type=classify_place(match.name, categories, []),
        address=match.address,
        city=location.get("city") or parse_city(match.address, fallback_city),
        country=location.get("country"),
        lat=match.lat,
        lng=match.lng,
        tags=extract_tags(match.name, categories),
        yelp_id=match.external_id,
        rating=match.rating,
        rating_count=match.rating_count,
        image_url=match.image_url,
        photo_source=PHOTO_SOURCE_YELP if match.image_url else None,
        business_status=match.business_status,
        status=status_for_business(match.business_status),
        last_verified_at=verified_at,
    )

"""Client utilities for the Yelp Fusion business search API."""

import logging
from typing import Any, Dict, List, Optional

from places_sync.vendors.http import build_session

logger = logging.getLogger(__name__)
_SESSION = build_session()
_BASE_URL = "https://api.yelp.com/v3"


class YelpError(RuntimeError):
    """Raised when Yelp answers with an error payload or an unusable body."""


def search_businesses(
    term: str,
    location: str,
    api_key: Optional[str],
    limit: int = 50,
    timeout: float = 10,
) -> List[Dict[str, Any]]:
    """Search businesses; an unconfigured key yields no results rather than an error."""
    if not api_key:
        logger.debug("Yelp API key missing; skipping search for %s", term)
        return []

    params = {"term": term, "location": location, "limit": limit}
    headers = {"Authorization": f"Bearer {api_key}", "Accept": "application/json"}
    response = _SESSION.get(f"{_BASE_URL}/businesses/search", params=params, headers=headers, timeout=timeout)
    try:
        payload = response.json()
    except ValueError as exc:
        raise YelpError(f"Yelp search returned malformed JSON (HTTP {response.status_code})") from exc

    error = payload.get("error") if isinstance(payload, dict) else None
    if error:
        description = (error.get("description") or error.get("code")) if isinstance(error, dict) else error
        logger.warning("Yelp search failed: status=%s, error=%s", response.status_code, description)
        raise YelpError(f"Yelp API error: {description}")
    if response.status_code >= 400:
        raise YelpError(f"Yelp search failed with HTTP {response.status_code}")

    businesses = payload.get("businesses") or []
    return [business for business in businesses if isinstance(business, dict)]

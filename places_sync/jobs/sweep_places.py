"""Lifecycle sweeps: re-verification, retention and maintenance reports."""

import logging
import time
from collections import Counter
from dataclasses import replace
from datetime import datetime, timedelta
from typing import Any, Dict, Optional

from places_sync.core.config import Settings, get_settings
from places_sync.core.store import PlaceFilter, PlaceStore
from places_sync.etl.classifier import RESTAURANT, is_worship_place_misclassified, worship_category_for_name
from places_sync.etl.similarity import canonical_key
from places_sync.jobs.match_places import utcnow
from places_sync.models import (
    BUSINESS_OPERATIONAL,
    BUSINESS_UNKNOWN,
    STATUS_ACTIVE,
    STATUS_INACTIVE,
    STATUS_MERGED,
    STATUS_PENDING,
    DeactivateSummary,
    Place,
    PlaceStats,
    ReclassifySummary,
    VerifySummary,
)
from places_sync.vendors import google_places

logger = logging.getLogger(__name__)


def apply_verification(place: Place, details: Dict[str, Any], now: datetime) -> Place:
    """Place as it should look after Google answered a details request.

    An empty ``details`` means Google no longer resolves the id. A result
    without ``business_status`` is stored as UNKNOWN and deactivated.
    """
    if not details:
        return replace(place, status=STATUS_INACTIVE, business_status=BUSINESS_UNKNOWN, last_verified_at=now, updated_at=now)

    business_status = details.get("business_status") or BUSINESS_UNKNOWN
    if business_status != BUSINESS_OPERATIONAL:
        return replace(place, status=STATUS_INACTIVE, business_status=business_status, last_verified_at=now, updated_at=now)

    updated = replace(place, status=STATUS_ACTIVE, business_status=BUSINESS_OPERATIONAL, last_verified_at=now, updated_at=now)
    rating = details.get("rating")
    rating_count = details.get("user_ratings_total")
    # A larger Yelp sample adopted during matching is kept.
    if rating is not None and (rating_count or 0) >= (place.rating_count or 0):
        updated.rating = float(rating)
        updated.rating_count = int(rating_count) if rating_count is not None else None
    return updated


def reverify_all_places(*, store: PlaceStore, settings: Optional[Settings] = None) -> VerifySummary:
    settings = settings or get_settings()
    summary = VerifySummary()
    if not settings.google_places_key:
        summary.errors.append("Re-verification skipped: GOOGLE_PLACES_KEY is not configured")
        return summary

    with store.run_lock():
        places = store.select_with_google_id()
        logger.info("Re-verifying %d places against Google", len(places))
        for place in places:
            try:
                details = google_places.place_details(
                    place_id=place.google_place_id,
                    api_key=settings.google_places_key,
                    timeout=settings.request_timeout_seconds,
                )
            except Exception as exc:  # noqa: BLE001
                logger.error("Failed to reverify %s (%s): %s", place.name, place.google_place_id, exc)
                summary.errors.append(f"Failed to reverify {place.name}: {exc}")
                continue
            finally:
                time.sleep(settings.google_delay_seconds)

            updated = apply_verification(place, details, utcnow())
            try:
                store.upsert(updated)
            except Exception as exc:  # noqa: BLE001
                logger.error("Failed to save verification for %s: %s", place.id, exc)
                summary.errors.append(f"Failed to update {place.name}: {exc}")
                continue

            if updated.status == STATUS_ACTIVE:
                summary.verified += 1
            else:
                logger.info("Deactivated %s: business_status=%s", place.name, updated.business_status)
                summary.deactivated += 1

    logger.info(
        "Re-verification finished: verified=%d deactivated=%d errors=%d",
        summary.verified,
        summary.deactivated,
        len(summary.errors),
    )
    return summary


def inactivate_unmatched_places(
    *,
    store: PlaceStore,
    settings: Optional[Settings] = None,
    now: Optional[datetime] = None,
) -> DeactivateSummary:
    """Deactivate places still lacking a Google id after the retention window."""
    settings = settings or get_settings()
    now = now or utcnow()
    cutoff = now - timedelta(days=settings.retention_days)
    summary = DeactivateSummary()

    where = PlaceFilter(
        missing_google_place_id=True,
        verified_before=cutoff,
        status_not_in=(STATUS_INACTIVE, STATUS_MERGED),
    )
    with store.run_lock():
        try:
            updated_ids = store.bulk_update_where(where, {"status": STATUS_INACTIVE})
        except Exception as exc:  # noqa: BLE001
            logger.error("Failed to inactivate unmatched places: %s", exc)
            summary.errors.append(f"Failed to inactivate unmatched places: {exc}")
            return summary

    summary.deactivated = len(updated_ids)
    logger.info("Inactivated %d places unmatched since %s", summary.deactivated, cutoff.isoformat())
    return summary


def reclassify_worship_places(*, store: PlaceStore) -> ReclassifySummary:
    """Move restaurants whose name marks them as a place of worship to the worship type."""
    summary = ReclassifySummary()
    with store.run_lock():
        for place in store.list_places():
            if place.status == STATUS_MERGED or place.type != RESTAURANT:
                continue
            if not is_worship_place_misclassified(place.name, place.type):
                continue
            category = worship_category_for_name(place.name)
            try:
                store.upsert(replace(place, type=category, updated_at=utcnow()))
            except Exception as exc:  # noqa: BLE001
                logger.error("Failed to reclassify %s: %s", place.name, exc)
                summary.errors.append(f"{place.name}: {exc}")
                summary.skipped += 1
                continue
            logger.info("Reclassified %s: %s -> %s", place.name, place.type, category)
            summary.reclassified += 1
    return summary


def get_place_matching_stats(*, store: PlaceStore) -> PlaceStats:
    places = store.list_places()
    statuses = Counter(place.status for place in places)
    live = [place for place in places if place.status != STATUS_MERGED]
    keys = Counter(canonical_key(place.name, place.address) for place in live)
    return PlaceStats(
        total=len(places),
        active=statuses[STATUS_ACTIVE],
        inactive=statuses[STATUS_INACTIVE],
        pending=statuses[STATUS_PENDING],
        merged=statuses[STATUS_MERGED],
        without_google_id=sum(1 for place in live if not place.google_place_id),
        without_yelp_id=sum(1 for place in live if not place.yelp_id),
        potential_duplicates=sum(count - 1 for count in keys.values() if count > 1),
    )

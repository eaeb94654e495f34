"""Job that attaches missing Google/Yelp ids to local places and merges duplicates."""

import logging
import time
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import List, Optional

from places_sync.core.config import Settings, get_settings
from places_sync.core.store import PlaceStore
from places_sync.etl.geofence import accept_google_result, accept_yelp_result
from places_sync.etl.merge import absorb_loser, apply_provider_fields, pick_best, select_winner, tombstone
from places_sync.etl.transform import google_to_match, yelp_to_match
from places_sync.models import (
    MATCHABLE_STATUSES,
    STATUS_INACTIVE,
    Candidate,
    MatchSummary,
    Place,
    ProviderMatch,
)
from places_sync.vendors import google_places, yelp

logger = logging.getLogger(__name__)

OUTCOME_ENRICHED = "enriched"
OUTCOME_MERGED = "merged"
OUTCOME_BLOCKED = "blocked"

YELP_MATCH_LIMIT = 5


@dataclass
class AttachOutcome:
    kind: str
    place: Place
    loser: Optional[Place] = None


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def attach_match(store: PlaceStore, place: Place, match: ProviderMatch, now: datetime) -> AttachOutcome:
    """Give ``place`` the provider id in ``match``, merging with any live holder of that id.

    The holder lookup reads the store, not a snapshot, so merges made earlier
    in the same run are honoured.
    """
    holder = store.find_by_external_id(match.id_field, match.external_id, exclude_id=place.id)
    if holder is not None:
        winner, loser = select_winner(place, holder)
        merged = apply_provider_fields(absorb_loser(winner, loser), match, now)
        stored = store.merge(tombstone(loser, winner.id, now), merged)
        logger.info(
            "Merged duplicate places via %s=%s: kept %s (%s), merged %s (%s)",
            match.id_field,
            match.external_id,
            winner.name,
            winner.id,
            loser.name,
            loser.id,
        )
        return AttachOutcome(OUTCOME_MERGED, stored, loser)

    inactive_holder = store.find_by_external_id(
        match.id_field, match.external_id, exclude_id=place.id, statuses=(STATUS_INACTIVE,)
    )
    if inactive_holder is not None:
        logger.info(
            "Not attaching %s=%s to %s: already held by inactive place %s",
            match.id_field,
            match.external_id,
            place.name,
            inactive_holder.id,
        )
        return AttachOutcome(OUTCOME_BLOCKED, place)

    stored = store.upsert(apply_provider_fields(place, match, now))
    return AttachOutcome(OUTCOME_ENRICHED, stored)


def google_candidates(place: Place, settings: Settings) -> List[ProviderMatch]:
    query = " ".join(part for part in (place.name, place.address, place.city) if part)
    payload = google_places.text_search(
        query=query,
        api_key=settings.google_places_key,
        timeout=settings.request_timeout_seconds,
    )
    results = payload.get("results", [])
    return [
        google_to_match(result)
        for result in results
        if result.get("place_id") and accept_google_result(result, settings, require_relevance=False)
    ]


def yelp_candidates(place: Place, settings: Settings) -> List[ProviderMatch]:
    city = place.city or settings.cities[0]
    location = f"{city}, {settings.target_regions[0]}, Canada"
    businesses = yelp.search_businesses(
        term=place.name,
        location=location,
        api_key=settings.yelp_api_key,
        limit=YELP_MATCH_LIMIT,
        timeout=settings.request_timeout_seconds,
    )
    return [
        yelp_to_match(business)
        for business in businesses
        if business.get("id") and accept_yelp_result(business, settings, require_relevance=False)
    ]


def _best_match(place: Place, matches: List[ProviderMatch], threshold: float) -> Optional[ProviderMatch]:
    best = pick_best(Candidate.from_place(place), ((m.as_candidate(), m) for m in matches), threshold)
    if best is None:
        return None
    match, score = best
    logger.info("Found %s match for %r with score %.3f", match.provider, place.name, score)
    return match


class _PlaceProgress:
    """What happened to one selected place across both providers."""

    def __init__(self, place: Place) -> None:
        self.place = place
        self.gained_id = False
        self.enriched = False
        self.tombstoned = False

    def record(self, outcome: AttachOutcome, summary: MatchSummary) -> None:
        if outcome.kind == OUTCOME_BLOCKED:
            return
        self.gained_id = True
        if outcome.kind == OUTCOME_MERGED:
            summary.merged += 1
            if outcome.loser is not None and outcome.loser.id == self.place.id:
                self.tombstoned = True
                return
        else:
            self.enriched = True
        self.place = outcome.place


def _attach(progress: _PlaceProgress, match: ProviderMatch, store: PlaceStore, summary: MatchSummary) -> None:
    place = progress.place
    try:
        outcome = attach_match(store, place, match, utcnow())
    except Exception as exc:  # noqa: BLE001
        logger.error("Failed to save %s match for %r: %s", match.provider, place.name, exc)
        summary.errors.append(f'Failed to update "{place.name}": {exc}')
        return
    progress.record(outcome, summary)


def _match_google(progress: _PlaceProgress, store: PlaceStore, settings: Settings, summary: MatchSummary) -> None:
    place = progress.place
    try:
        candidates = google_candidates(place, settings)
    except Exception as exc:  # noqa: BLE001
        logger.error("Google matching failed for %r: %s", place.name, exc)
        summary.errors.append(f'Google search failed for "{place.name}": {exc}')
        return
    finally:
        time.sleep(settings.google_delay_seconds)

    match = _best_match(place, candidates, settings.match_threshold)
    if match is not None:
        _attach(progress, match, store, summary)


def _match_yelp(progress: _PlaceProgress, store: PlaceStore, settings: Settings, summary: MatchSummary) -> None:
    place = progress.place
    try:
        candidates = yelp_candidates(place, settings)
    except Exception as exc:  # noqa: BLE001
        # Yelp enrichment is optional; failures are not run errors.
        logger.warning("Yelp matching failed for %r: %s", place.name, exc)
        return
    finally:
        time.sleep(settings.yelp_delay_seconds)

    match = _best_match(place, candidates, settings.match_threshold)
    if match is not None:
        _attach(progress, match, store, summary)


def _process_place(selected: Place, store: PlaceStore, settings: Settings, summary: MatchSummary) -> None:
    place = store.find_by_id(selected.id)
    if place is None or place.status not in MATCHABLE_STATUSES:
        logger.debug("Skipping %s: no longer matchable", selected.id)
        summary.skipped += 1
        return
    if place.google_place_id and place.yelp_id:
        summary.skipped += 1
        return

    progress = _PlaceProgress(place)
    if not progress.place.google_place_id and settings.google_places_key:
        _match_google(progress, store, settings, summary)
    if not progress.tombstoned and not progress.place.yelp_id and settings.yelp_api_key:
        _match_yelp(progress, store, settings, summary)

    if progress.gained_id:
        summary.matched += 1
    else:
        summary.skipped += 1
    if progress.enriched:
        summary.enriched += 1


def match_and_enrich_places(
    limit: Optional[int] = None,
    *,
    store: PlaceStore,
    settings: Optional[Settings] = None,
) -> MatchSummary:
    settings = settings or get_settings()
    limit = limit or settings.match_batch_limit
    summary = MatchSummary()

    with store.run_lock():
        places = store.select_missing_external_ids(limit)
        logger.info("Processing %d places for ID matching", len(places))
        if not places:
            return summary

        if not settings.google_places_key:
            summary.errors.append("Google matching skipped: GOOGLE_PLACES_KEY is not configured")
        if not settings.yelp_api_key:
            logger.info("YELP_API_KEY not configured; Yelp matching disabled for this run")

        for selected in places:
            try:
                _process_place(selected, store, settings, summary)
            except Exception as exc:  # noqa: BLE001
                logger.exception("Error processing place %s", selected.id)
                summary.errors.append(f'Failed to process "{selected.name}": {exc}')
                summary.skipped += 1

    logger.info(
        "Matching finished: matched=%d enriched=%d merged=%d skipped=%d errors=%d",
        summary.matched,
        summary.enriched,
        summary.merged,
        summary.skipped,
        len(summary.errors),
    )
    return summary

"""Pure rules for enriching and merging place records.

Provider data never replaces better local data: rating figures move only to
a sample with more reviews, and website or image fields are only filled when
empty. Google is the source of truth for operational status and
coordinates; Yelp only fills them for places Google has not matched.
"""

from dataclasses import replace
from datetime import datetime
from typing import Iterable, List, Optional, Tuple, TypeVar

from places_sync.etl.similarity import candidate_distance, place_score
from places_sync.etl.transform import status_for_business
from places_sync.models import (
    PHOTO_SOURCE_GOOGLE,
    PHOTO_SOURCE_YELP,
    PROVIDER_GOOGLE,
    STATUS_INACTIVE,
    STATUS_MERGED,
    Candidate,
    Place,
    ProviderMatch,
)

T = TypeVar("T")

IMAGE_POINTS = 3
WEBSITE_POINTS = 2
RATING_POINTS = 1
GOOGLE_ID_POINTS = 1
YELP_ID_POINTS = 1


def pick_best(
    local: Candidate,
    options: Iterable[Tuple[Candidate, T]],
    threshold: float,
    max_distance_meters: Optional[float] = None,
) -> Optional[Tuple[T, float]]:
    """Highest score at or above ``threshold`` as (item, score); the first seen wins ties."""
    best: Optional[Tuple[T, float]] = None
    for candidate, item in options:
        if max_distance_meters is not None:
            distance = candidate_distance(local, candidate)
            if distance is not None and distance > max_distance_meters:
                continue
        score = place_score(local, candidate)
        if score < threshold:
            continue
        if best is None or score > best[1]:
            best = (item, score)
    return best


def completeness_score(place: Place) -> int:
    score = 0
    if place.image_url:
        score += IMAGE_POINTS
    if place.website_url:
        score += WEBSITE_POINTS
    if place.rating_count:
        score += RATING_POINTS
    if place.google_place_id:
        score += GOOGLE_ID_POINTS
    if place.yelp_id:
        score += YELP_ID_POINTS
    return score


def select_winner(first: Place, second: Place) -> Tuple[Place, Place]:
    """Return (winner, loser): completeness, then rating_count, then smaller id."""

    def rank(place: Place):
        return (-completeness_score(place), -(place.rating_count or 0), place.id or "")

    ordered: List[Place] = sorted((first, second), key=rank)
    return ordered[0], ordered[1]


def absorb_loser(winner: Place, loser: Place) -> Place:
    updated = replace(winner, tags=list(winner.tags))
    if not updated.image_url and loser.image_url:
        updated.image_url = loser.image_url
        updated.photo_source = loser.photo_source
    if not updated.google_photo_ref and loser.google_photo_ref:
        updated.google_photo_ref = loser.google_photo_ref
    if not updated.website_url and loser.website_url:
        updated.website_url = loser.website_url
    if not updated.google_place_id and loser.google_place_id:
        updated.google_place_id = loser.google_place_id
    if not updated.yelp_id and loser.yelp_id:
        updated.yelp_id = loser.yelp_id
    if (loser.rating_count or 0) > (updated.rating_count or 0) and loser.rating is not None:
        updated.rating = loser.rating
        updated.rating_count = loser.rating_count
    if not updated.has_coordinates and loser.has_coordinates:
        updated.lat, updated.lng = loser.lat, loser.lng
    for tag in loser.tags:
        if tag not in updated.tags:
            updated.tags.append(tag)
    return updated


def tombstone(loser: Place, winner_id: str, now: datetime) -> Place:
    return replace(loser, status=STATUS_MERGED, merged_into=winner_id, featured=False, updated_at=now)


def apply_provider_fields(place: Place, match: ProviderMatch, now: datetime) -> Place:
    """Copy of ``place`` carrying the provider's id and any better data it offers."""
    updated = replace(place, tags=list(place.tags))
    if not getattr(updated, match.id_field):
        setattr(updated, match.id_field, match.external_id)

    authoritative = match.provider == PROVIDER_GOOGLE or not updated.google_place_id
    if authoritative and match.business_status:
        updated.business_status = match.business_status
        # Closure demotes; promotion back to active is left to re-verification.
        if updated.status != STATUS_MERGED and status_for_business(match.business_status) == STATUS_INACTIVE:
            updated.status = STATUS_INACTIVE

    if match.lat is not None and match.lng is not None:
        if match.provider == PROVIDER_GOOGLE or not updated.has_coordinates:
            updated.lat, updated.lng = match.lat, match.lng

    if match.rating is not None and (
        updated.rating is None or (match.rating_count or 0) > (updated.rating_count or 0)
    ):
        updated.rating = match.rating
        updated.rating_count = match.rating_count

    if match.website_url and not updated.website_url:
        updated.website_url = match.website_url
    if match.image_url and not updated.image_url:
        updated.image_url = match.image_url
        updated.photo_source = PHOTO_SOURCE_YELP
    if match.google_photo_ref and not updated.google_photo_ref:
        updated.google_photo_ref = match.google_photo_ref
        if not updated.photo_source:
            updated.photo_source = PHOTO_SOURCE_GOOGLE
    if not updated.address and match.address:
        updated.address = match.address

    updated.last_verified_at = now
    updated.updated_at = now
    return updated

"""String and geographic similarity scoring for place matching.

Scores are pure functions of their inputs. The composite combines name,
address and distance signals with the weights below; when either side lacks
coordinates the distance term is dropped and name/address are re-weighted so
an exact name+address pair still reaches 1.0.
"""

import math
import re
import unicodedata
from typing import Optional, Tuple

from rapidfuzz.distance import JaroWinkler

from places_sync.models import Candidate

MATCH_THRESHOLD = 0.85

NAME_WEIGHT = 0.40
ADDRESS_WEIGHT = 0.35
DISTANCE_WEIGHT = 0.25

NO_COORDINATE_NAME_WEIGHT = 0.55
NO_COORDINATE_ADDRESS_WEIGHT = 0.45

FULL_CONFIDENCE_METERS = 50.0
ZERO_CONFIDENCE_METERS = 200.0
FAR_PENALTY_SPAN_METERS = 1000.0
FAR_PENALTY_FLOOR = 0.5

STREET_NUMBER_MISMATCH_SCORE = 0.2
STREET_NUMBER_BONUS = 0.2
MISSING_ADDRESS_SCORE = 0.5

EARTH_RADIUS_METERS = 6_371_000.0

_NON_WORD = re.compile(r"[^\w\s]", re.UNICODE)
_WHITESPACE = re.compile(r"\s+")
_STREET_LINE = re.compile(r"^(\d+[a-z]?)\s+(.+?)(?:,|$)")
_STREET_SUFFIX = re.compile(
    r"\s+(street|st|avenue|ave|road|rd|boulevard|blvd|drive|dr|lane|ln|way|place|pl|highway|hwy|crescent|cres)\b.*$"
)


def normalize_for_comparison(value: Optional[str]) -> str:
    """Lowercase, strip accents and punctuation, collapse whitespace."""
    if not value:
        return ""
    decomposed = unicodedata.normalize("NFKD", value)
    stripped = "".join(ch for ch in decomposed if not unicodedata.combining(ch))
    cleaned = _NON_WORD.sub(" ", stripped.lower()).replace("_", " ")
    return _WHITESPACE.sub(" ", cleaned).strip()


def jaro_winkler(a: str, b: str) -> float:
    if a == b:
        return 1.0
    if not a or not b:
        return 0.0
    return float(JaroWinkler.similarity(a, b))


def name_similarity(name_a: Optional[str], name_b: Optional[str]) -> float:
    return jaro_winkler(normalize_for_comparison(name_a), normalize_for_comparison(name_b))


def extract_street_info(address: Optional[str]) -> Tuple[str, str]:
    """Split the first address line into (street number, street name without type)."""
    normalized = (address or "").lower().strip()
    match = _STREET_LINE.match(normalized)
    if match:
        street_name = _STREET_SUFFIX.sub("", match.group(2))
        return match.group(1), normalize_for_comparison(street_name)
    first_line = normalized.split(",")[0]
    return "", normalize_for_comparison(first_line)


def address_similarity(address_a: Optional[str], address_b: Optional[str]) -> float:
    if not (address_a or "").strip() or not (address_b or "").strip():
        return MISSING_ADDRESS_SCORE

    number_a, street_a = extract_street_info(address_a)
    number_b, street_b = extract_street_info(address_b)
    if number_a and number_b and number_a != number_b:
        return STREET_NUMBER_MISMATCH_SCORE

    score = jaro_winkler(street_a, street_b)
    if number_a and number_a == number_b:
        return min(1.0, score + STREET_NUMBER_BONUS)
    return score


def haversine_distance(lat1: float, lng1: float, lat2: float, lng2: float) -> float:
    """Great-circle distance in metres."""
    phi1 = math.radians(lat1)
    phi2 = math.radians(lat2)
    d_phi = math.radians(lat2 - lat1)
    d_lambda = math.radians(lng2 - lng1)
    a = math.sin(d_phi / 2) ** 2 + math.cos(phi1) * math.cos(phi2) * math.sin(d_lambda / 2) ** 2
    return EARTH_RADIUS_METERS * 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))


def distance_score(distance_meters: float) -> float:
    if distance_meters <= FULL_CONFIDENCE_METERS:
        return 1.0
    span = ZERO_CONFIDENCE_METERS - FULL_CONFIDENCE_METERS
    return max(0.0, (ZERO_CONFIDENCE_METERS - distance_meters) / span)


def far_distance_penalty(distance_meters: float) -> float:
    if distance_meters <= ZERO_CONFIDENCE_METERS:
        return 1.0
    return max(FAR_PENALTY_FLOOR, 1.0 - (distance_meters - ZERO_CONFIDENCE_METERS) / FAR_PENALTY_SPAN_METERS)


def candidate_distance(a: Candidate, b: Candidate) -> Optional[float]:
    if a.lat is None or a.lng is None or b.lat is None or b.lng is None:
        return None
    return haversine_distance(a.lat, a.lng, b.lat, b.lng)


def place_score(a: Candidate, b: Candidate) -> float:
    """Composite match confidence in [0, 1]; symmetric in its arguments."""
    name_score = name_similarity(a.name, b.name)
    address_score = address_similarity(a.address, b.address)

    distance = candidate_distance(a, b)
    if distance is None:
        score = NO_COORDINATE_NAME_WEIGHT * name_score + NO_COORDINATE_ADDRESS_WEIGHT * address_score
    else:
        score = NAME_WEIGHT * name_score + ADDRESS_WEIGHT * address_score + DISTANCE_WEIGHT * distance_score(distance)
        score *= far_distance_penalty(distance)
    return min(1.0, max(0.0, score))


def is_match(a: Candidate, b: Candidate, threshold: float = MATCH_THRESHOLD) -> bool:
    return place_score(a, b) >= threshold


def canonical_key(name: Optional[str], address: Optional[str]) -> str:
    return f"{normalize_for_comparison(name)}|{normalize_for_comparison(address)}"

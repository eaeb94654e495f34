"""Map provider category data onto the directory's place taxonomy.

Classification walks ``CLASSIFICATION_RULES`` in order and returns the
category of the first rule that matches. New providers or categories are
added by extending the table.
"""

import re
from dataclasses import dataclass
from typing import Any, Dict, FrozenSet, Iterable, Optional, Pattern

RESTAURANT = "restaurant"
CAFE = "cafe"
GROCERY = "grocery"
CLOTHING = "clothing"
BEAUTY = "beauty"
TEMPLE = "temple"
GURDWARA = "gurdwara"
MOSQUE = "mosque"
OTHER = "other"

PLACE_TYPES = (RESTAURANT, CAFE, GROCERY, CLOTHING, BEAUTY, TEMPLE, GURDWARA, MOSQUE, OTHER)
WORSHIP_TYPES = (TEMPLE, GURDWARA, MOSQUE)

_TEMPLE_NAME = re.compile(r"\b(mandir|temple|iskcon|shiv|krishna|sai|hindu)\b", re.IGNORECASE)
_GURDWARA_NAME = re.compile(r"\b(gurdwara|gurudwara|sikh)\b", re.IGNORECASE)
_MOSQUE_NAME = re.compile(r"\b(mosque|masjid|islamic\s+cent(?:re|er)|jamia)\b", re.IGNORECASE)
_RELIGIOUS_TITLE = re.compile(r"religious", re.IGNORECASE)


@dataclass(frozen=True)
class ClassificationRule:
    category: str
    name_pattern: Optional[Pattern] = None
    yelp_aliases: FrozenSet[str] = frozenset()
    yelp_title_pattern: Optional[Pattern] = None
    google_types: FrozenSet[str] = frozenset()

    def matches(self, name: str, aliases: FrozenSet[str], titles: Iterable[str], types: FrozenSet[str]) -> bool:
        if self.name_pattern is not None and self.name_pattern.search(name):
            return True
        if self.yelp_aliases & aliases:
            return True
        if self.yelp_title_pattern is not None and any(self.yelp_title_pattern.search(t) for t in titles):
            return True
        if self.google_types & types:
            return True
        return False


CLASSIFICATION_RULES = (
    ClassificationRule(TEMPLE, name_pattern=_TEMPLE_NAME),
    ClassificationRule(GURDWARA, name_pattern=_GURDWARA_NAME),
    ClassificationRule(MOSQUE, name_pattern=_MOSQUE_NAME),
    ClassificationRule(TEMPLE, google_types=frozenset({"hindu_temple"})),
    ClassificationRule(MOSQUE, google_types=frozenset({"mosque"})),
    # Religious organisations whose name gives no hint stay generic.
    ClassificationRule(
        OTHER,
        yelp_aliases=frozenset({"religiousorgs", "churches"}),
        yelp_title_pattern=_RELIGIOUS_TITLE,
        google_types=frozenset({"place_of_worship"}),
    ),
    ClassificationRule(
        RESTAURANT,
        yelp_aliases=frozenset(
            {"indpak", "indian", "pakistani", "srilankan", "bangladeshi", "afghani", "halal", "restaurants", "food"}
        ),
    ),
    ClassificationRule(
        CAFE,
        yelp_aliases=frozenset({"desserts", "coffee", "tea", "bubbletea", "bakeries", "bakery", "cafes", "icecream"}),
    ),
    ClassificationRule(
        GROCERY,
        yelp_aliases=frozenset({"grocery", "internationalgrocery", "markets", "ethnic_grocery"}),
    ),
    ClassificationRule(
        CLOTHING,
        yelp_aliases=frozenset({"fashion", "clothing", "jewelry", "accessories", "shoes"}),
    ),
    ClassificationRule(
        BEAUTY,
        yelp_aliases=frozenset({"beautysvc", "hair", "skincare", "makeupartists", "massage", "spas", "cosmetics"}),
    ),
    ClassificationRule(CAFE, google_types=frozenset({"bakery", "cafe"})),
    ClassificationRule(GROCERY, google_types=frozenset({"grocery_or_supermarket", "supermarket"})),
    ClassificationRule(RESTAURANT, google_types=frozenset({"restaurant", "food", "meal_takeaway", "meal_delivery"})),
    ClassificationRule(CLOTHING, google_types=frozenset({"clothing_store", "jewelry_store", "shoe_store"})),
    ClassificationRule(BEAUTY, google_types=frozenset({"beauty_salon", "hair_care", "spa"})),
)


def classify_place(
    name: str,
    yelp_categories: Optional[Iterable[Dict[str, Any]]] = None,
    google_types: Optional[Iterable[str]] = None,
) -> str:
    aliases = frozenset((c.get("alias") or "").lower() for c in yelp_categories or [])
    titles = [c.get("title") or "" for c in yelp_categories or []]
    types = frozenset(t.lower() for t in google_types or [])
    for rule in CLASSIFICATION_RULES:
        if rule.matches(name or "", aliases, titles, types):
            return rule.category
    return OTHER


def worship_category_for_name(name: str) -> Optional[str]:
    for rule in CLASSIFICATION_RULES:
        if rule.category in WORSHIP_TYPES and rule.name_pattern is not None and rule.name_pattern.search(name or ""):
            return rule.category
    return None


def is_worship_place_misclassified(name: str, current_category: str) -> bool:
    category = worship_category_for_name(name)
    return category is not None and current_category not in WORSHIP_TYPES

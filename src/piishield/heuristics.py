"""Heuristic detectors for person names and UK postal addresses.

These do not fit the single-pattern catalog model: names need an exclusion
list and look-behind context, addresses need a street-suffix vocabulary
and an embedded postcode. Both are heuristics and are expected to miss
some names and flag some phrases that are not names.
"""

import logging
import re

from piishield.validators import uk_postcode

logger = logging.getLogger(__name__)

# Two consecutive capitalized tokens of length >= 3
_NAME = re.compile(r"\b([A-Z][a-z]{2,})\s+([A-Z][a-z]{2,})\b")

_PLACE_PREPOSITION = re.compile(r"\b(?:at|in|near|from|to)\s*$", re.IGNORECASE)
_LOOKBEHIND_WINDOW = 10

EXCLUDED_BIGRAMS = frozenset(
    {
        # Places
        "United Kingdom",
        "United States",
        "European Union",
        "New York",
        "New Jersey",
        "New Zealand",
        "San Francisco",
        "San Diego",
        "Los Angeles",
        "Las Vegas",
        "Hong Kong",
        "Great Britain",
        "Northern Ireland",
        "South Africa",
        # Roles and departments
        "Data Protection",
        "Human Resources",
        "Chief Executive",
        "Chief Financial",
        "Chief Operating",
        "Chief Technology",
        "Managing Director",
        "Vice President",
        "Line Manager",
        "General Counsel",
        "Customer Service",
        # Salutations and sign-offs
        "Dear Sir",
        "Dear Madam",
        "Kind Regards",
        "Best Regards",
        "Yours Sincerely",
        "Yours Faithfully",
    }
)

# A first token from this set is never the start of a name; scanning
# resumes at the second token so "Contact John Smith" still yields "John Smith".
LEADING_WORDS = frozenset(
    {
        "Dear",
        "Hello",
        "Thanks",
        "Thank",
        "Please",
        "Contact",
        "Visit",
        "Call",
        "Email",
        "Ask",
        "Tell",
        "Meet",
        "Met",
        "When",
        "Then",
        "The",
        "This",
        "That",
        "Our",
        "Your",
        "His",
        "Her",
        "Their",
        "And",
        "But",
        "Mrs",
        "Miss",
        "Today",
        "Yesterday",
        "Tomorrow",
        "Monday",
        "Tuesday",
        "Wednesday",
        "Thursday",
        "Friday",
        "Saturday",
        "Sunday",
    }
)

STREET_SUFFIXES = (
    "Street",
    "Road",
    "Avenue",
    "Lane",
    "Drive",
    "Close",
    "Way",
    "Court",
    "Place",
    "Square",
    "Gardens",
    "Terrace",
    "Hill",
    "Park",
    "Crescent",
)

# Every run is bounded so a scan stays linear in the input length
_ADDRESS_SPAN = 60
_ADDRESS = re.compile(
    r"\b\d{1,5}[ \w,]{1,%d}?\b(?i:" % _ADDRESS_SPAN
    + "|".join(STREET_SUFFIXES)
    + r")\b[^.\n]{0,%d}?\b(?P<postcode>[A-Z]{1,2}\d{1,2}[A-Z]?\s?\d[A-Z]{2})\b" % _ADDRESS_SPAN
)


def _after_place_preposition(text: str, start: int) -> bool:
    before = text[max(0, start - _LOOKBEHIND_WINDOW) : start]
    return _PLACE_PREPOSITION.search(before) is not None


def detect_names(text: str) -> list[str]:
    """Return capitalized bigrams that look like person names, in text order."""
    names: list[str] = []
    pos = 0
    while True:
        match = _NAME.search(text, pos)
        if match is None:
            break

        if match.group(1) in LEADING_WORDS:
            pos = match.start(2)
            continue
        pos = match.end()

        full_name = match.group(0)
        if full_name in EXCLUDED_BIGRAMS or match.group(2) in STREET_SUFFIXES:
            continue
        if _after_place_preposition(text, match.start()):
            continue
        names.append(full_name)

    logger.debug(f"Name heuristic proposed {len(names)} candidates")
    return names


def detect_addresses(text: str) -> list[str]:
    """Return '<number> ... <street suffix> ... <UK postcode>' spans, in text order."""
    addresses: list[str] = []
    for match in _ADDRESS.finditer(text):
        if not uk_postcode(match.group("postcode")):
            continue
        addresses.append(match.group(0).strip())

    logger.debug(f"Address heuristic proposed {len(addresses)} candidates")
    return addresses

"""
Geography Resolver

Maps a member's ZIP code to candidate rating counties and picks a single
county with a fixed priority:

    1. county explicitly supplied by the caller
    2. county already stored on the member record
    3. the only candidate, when the ZIP maps to exactly one county

Anything else is unresolved and must be disambiguated by the caller.
ZIP codes are always handled as five-digit, zero-padded strings.
"""

import logging
from dataclasses import dataclass
from typing import Iterable, List, Optional

from constants import (
    COUNTY_SOURCE_OVERRIDE,
    COUNTY_SOURCE_MEMBER,
    COUNTY_SOURCE_UNIQUE,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CountyChoice:
    """A resolved rating county and where the choice came from."""
    county_id: str
    source: str


def normalize_zip(value) -> Optional[str]:
    """
    Canonicalize a ZIP code to a five-digit, zero-padded string.

    Handles ints (2134 -> "02134"), surrounding whitespace, and ZIP+4
    ("29654-7352" -> "29654").

    Returns:
        Five-digit ZIP string, or None if the value is empty or not numeric
    """
    if value is None:
        return None
    if isinstance(value, float):
        if value != value:  # NaN from pandas
            return None
        value = int(value)
    text = str(value).strip().split('-')[0].strip()
    if not text or not text.isdigit() or len(text) > 5:
        return None
    return text.zfill(5)


def unique_sorted(county_ids: Iterable) -> List[str]:
    """Deduplicate county ids and sort ascending."""
    return sorted({str(c).strip() for c in county_ids if c is not None and str(c).strip()})


def counties_for_zip(reference, zip_code) -> List[str]:
    """
    Candidate rating counties for a ZIP code.

    Args:
        reference: ReferenceData source
        zip_code: ZIP in any accepted form

    Returns:
        Sorted, deduplicated list of county ids (empty if the ZIP is unknown)
    """
    zip5 = normalize_zip(zip_code)
    if zip5 is None:
        return []
    candidates = unique_sorted(reference.county_ids_for_zip(zip5))
    logger.debug(f"ZIP LOOKUP: {zip5} -> {candidates}")
    return candidates


def resolve_county(candidates: List[str], explicit: Optional[str] = None,
                   stored: Optional[str] = None) -> Optional[CountyChoice]:
    """
    Pick one county using the resolution priority.

    Never guesses among several candidates: returns None in that case.
    """
    if explicit:
        return CountyChoice(str(explicit), COUNTY_SOURCE_OVERRIDE)
    if stored:
        return CountyChoice(str(stored), COUNTY_SOURCE_MEMBER)
    if len(candidates) == 1:
        return CountyChoice(candidates[0], COUNTY_SOURCE_UNIQUE)
    return None

"""
Address Matching Rules

Reduces free-text addresses to comparable token sets and scores their
similarity. No geocoding is performed: the distance figure derived from the
similarity score is a textual proxy, not a geographic measurement.

Normalisation:
- case-fold
- strip punctuation
- drop street-type words (street, st, road, rd, avenue, ave, drive, dr,
  lane, ln, court, ct)
- collapse whitespace

Similarity:
- 1.0 when the normalised strings are identical
- otherwise shared tokens (length > 2) over the larger token set
"""

import re
from dataclasses import dataclass
from typing import FrozenSet, Optional


PUNCTUATION_PATTERN = re.compile(r"[^\w\s]")
STREET_SUFFIX_PATTERN = re.compile(
    r"\b(street|st|road|rd|avenue|ave|drive|dr|lane|ln|court|ct)\b"
)
WHITESPACE_PATTERN = re.compile(r"\s+")

MIN_TOKEN_LENGTH = 3

# Distance proxy (km)
NEAR_MATCH_SCORE = 0.8
NEAR_MATCH_DISTANCE_KM = 0.1
DISTANCE_SCALE_KM = 5.0


@dataclass(frozen=True)
class AddressComparison:
    """
    Result of comparing two addresses.
    """
    score: float
    distance_km: Optional[float]
    exact: bool


def normalize_address(address: Optional[str]) -> str:
    """Normalise an address for comparison; idempotent."""
    if not address:
        return ""

    normalized = address.lower()
    normalized = PUNCTUATION_PATTERN.sub("", normalized)
    normalized = STREET_SUFFIX_PATTERN.sub("", normalized)
    normalized = WHITESPACE_PATTERN.sub(" ", normalized)
    return normalized.strip()


def address_tokens(address: Optional[str]) -> FrozenSet[str]:
    """Significant tokens (length > 2) of the normalised address."""
    return frozenset(
        token for token in normalize_address(address).split(" ")
        if len(token) >= MIN_TOKEN_LENGTH
    )


def address_similarity(first: Optional[str], second: Optional[str]) -> float:
    """
    Score two addresses between 0 and 1.

    Empty addresses never match anything, including each other.
    """
    normalized_first = normalize_address(first)
    normalized_second = normalize_address(second)

    if not normalized_first or not normalized_second:
        return 0.0

    if normalized_first == normalized_second:
        return 1.0

    tokens_first = address_tokens(normalized_first)
    tokens_second = address_tokens(normalized_second)
    if not tokens_first or not tokens_second:
        return 0.0

    shared = tokens_first & tokens_second
    return len(shared) / max(len(tokens_first), len(tokens_second))


def estimate_distance_km(score: float, exact: bool = False) -> float:
    """Textual distance proxy derived from the similarity complement."""
    if exact:
        return 0.0
    if score > NEAR_MATCH_SCORE:
        return NEAR_MATCH_DISTANCE_KM
    return (1 - score) * DISTANCE_SCALE_KM


def compare_addresses(first: Optional[str], second: Optional[str]) -> AddressComparison:
    """
    Compare two addresses.

    A missing address on either side scores 0 with no distance estimate.
    """
    if not first or not second:
        return AddressComparison(score=0.0, distance_km=None, exact=False)

    exact = normalize_address(first) == normalize_address(second) != ""
    score = address_similarity(first, second)
    return AddressComparison(
        score=score,
        distance_km=estimate_distance_km(score, exact=exact),
        exact=exact,
    )

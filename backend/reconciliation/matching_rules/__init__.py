"""
Matching Rules Module
"""

from .address_rules import (
    AddressComparison,
    normalize_address,
    address_tokens,
    address_similarity,
    estimate_distance_km,
    compare_addresses,
)
from .job_match_rules import JobMatchScorer, MatchScore

__all__ = [
    "AddressComparison",
    "normalize_address",
    "address_tokens",
    "address_similarity",
    "estimate_distance_km",
    "compare_addresses",
    "JobMatchScorer",
    "MatchScore",
]

"""
Trip Ingestion Module

Parses telematics trip exports into Trip records.
"""

from .trip_csv_parser import (
    TripCsvError,
    TripCsvResult,
    parse_trip_csv,
    parse_trip_rows,
    identify_home_address,
    get_csv_stats,
)

__all__ = [
    "TripCsvError",
    "TripCsvResult",
    "parse_trip_csv",
    "parse_trip_rows",
    "identify_home_address",
    "get_csv_stats",
]

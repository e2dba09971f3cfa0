"""
Telematics Trip CSV Ingestion

Parses vehicle trip exports into Trip records.

Expected columns:
- Started, date / Started, time / Address from
- Finish, date / Finish, time / Address to
- Distance (km) or Distance
- Driving Time (HH:MM:SS) or Driving Time
- Number Plate, Driver (optional)

Rows missing a required value, with an unparseable date or time, or with a
distance outside 0-1000 km are skipped and reported as warnings.
"""

import csv
import logging
import os
from collections import Counter
from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Dict, Any, Iterable, List, Optional, Sequence

from reconciliation.models import Trip
from reconciliation.time_utils import duration_to_minutes, parse_time_of_day

logger = logging.getLogger(__name__)

REQUIRED_COLUMNS = [
    "Started, date",
    "Started, time",
    "Address from",
    "Finish, date",
    "Finish, time",
    "Address to",
]

DATE_FORMATS = ["%Y-%m-%d", "%d/%m/%Y"]

MIN_DISTANCE_KM = 0
MAX_DISTANCE_KM = 1000

# Warnings logged individually; the rest are summarised
MAX_LOGGED_WARNINGS = 5


class TripCsvError(Exception):
    """Raised when a trip export cannot be read at all."""
    pass


@dataclass
class TripCsvResult:
    trips: List[Trip]
    row_count: int
    warnings: List[str] = field(default_factory=list)

    @property
    def valid_rows(self) -> int:
        return len(self.trips)


def normalize_date(value: Optional[str]) -> Optional[date]:
    """Parse ISO (YYYY-MM-DD, optionally with a time part) or DD/MM/YYYY."""
    if not value:
        return None

    value = value.strip()
    for fmt in DATE_FORMATS:
        try:
            return datetime.strptime(value, fmt).date()
        except ValueError:
            continue

    try:
        return datetime.fromisoformat(value).date()
    except ValueError:
        return None


def clean_numeric(value: Any, default: float = 0.0) -> float:
    if value is None or value == "":
        return default
    try:
        return float(value)
    except (TypeError, ValueError):
        return default


def validate_row(row: Dict[str, Any]) -> bool:
    """True when every required column carries a non-blank value."""
    return all(
        row.get(column) is not None and str(row.get(column)).strip() != ""
        for column in REQUIRED_COLUMNS
    )


def _first_value(row: Dict[str, Any], *columns: str) -> Optional[str]:
    for column in columns:
        value = row.get(column)
        if value not in (None, ""):
            return value
    return None


def row_to_trip(row: Dict[str, Any], staff_id: str) -> Trip:
    """
    Convert one export row into a Trip.

    Raises:
        ValueError: date, time or distance is unusable
    """
    start_date = normalize_date(row.get("Started, date"))
    if start_date is None:
        raise ValueError(f"Invalid start date {row.get('Started, date')!r}")

    start_time = parse_time_of_day(row.get("Started, time"))
    end_time = parse_time_of_day(row.get("Finish, time"))
    if start_time is None or end_time is None:
        raise ValueError(
            f"Invalid time {row.get('Started, time')!r} - {row.get('Finish, time')!r}"
        )

    distance = clean_numeric(_first_value(row, "Distance (km)", "Distance"))
    if distance < MIN_DISTANCE_KM or distance > MAX_DISTANCE_KM:
        raise ValueError(f"Invalid distance {distance}km")

    driving_time = _first_value(row, "Driving Time (HH:MM:SS)", "Driving Time") or "00:00:00"

    return Trip(
        staff_id=staff_id,
        trip_date=start_date,
        start_time=start_time.replace(second=0),
        end_time=end_time.replace(second=0),
        origin=str(row.get("Address from", "")).strip(),
        destination=str(row.get("Address to", "")).strip(),
        distance_km=distance,
        driving_time=str(driving_time).strip(),
        driver=(row.get("Driver") or "Unknown").strip(),
        number_plate=(row.get("Number Plate") or "").strip() or None,
    )


def parse_trip_rows(rows: Iterable[Dict[str, Any]], staff_id: str) -> TripCsvResult:
    """Convert export rows into trips sorted by start date and time."""
    trips = []
    warnings = []
    row_count = 0

    for row_number, row in enumerate(rows, start=1):
        row_count += 1
        if not validate_row(row):
            warnings.append(f"Row {row_number}: Missing required data")
            continue
        try:
            trips.append(row_to_trip(row, staff_id))
        except ValueError as e:
            warnings.append(f"Row {row_number}: {e}")

    trips.sort(key=lambda t: (t.trip_date, t.start_time))

    logger.info(f"Trip CSV processing: {len(trips)}/{row_count} valid rows processed")
    for warning in warnings[:MAX_LOGGED_WARNINGS]:
        logger.warning(warning)
    if len(warnings) > MAX_LOGGED_WARNINGS:
        logger.warning(f"{len(warnings) - MAX_LOGGED_WARNINGS} further rows skipped")

    return TripCsvResult(trips=trips, row_count=row_count, warnings=warnings)


def parse_trip_csv(file_path: str, staff_id: str) -> TripCsvResult:
    """
    Parse a telematics CSV export.

    Raises:
        FileNotFoundError: the file does not exist
        TripCsvError: the header is missing or lacks required columns
    """
    if not os.path.exists(file_path):
        raise FileNotFoundError(f"Trip CSV not found: {file_path}")

    with open(file_path, "r", encoding="utf-8-sig", newline="") as f:
        reader = csv.DictReader(f, skipinitialspace=True)
        columns = [c.strip() for c in (reader.fieldnames or [])]
        if not columns:
            raise TripCsvError(f"Trip CSV has no header row: {file_path}")

        missing = [c for c in REQUIRED_COLUMNS if c not in columns]
        if missing:
            raise TripCsvError(f"Trip CSV is missing columns: {', '.join(missing)}")

        rows = (
            {(key or "").strip(): (value.strip() if isinstance(value, str) else value)
             for key, value in row.items()}
            for row in reader
        )
        return parse_trip_rows(rows, staff_id)


def identify_home_address(trips: Optional[Sequence[Trip]]) -> Optional[str]:
    """
    Most frequent origin/destination address across the trips.

    Ties go to the address seen first.
    """
    if not trips:
        return None

    frequency: Counter = Counter()
    for trip in trips:
        if trip.origin:
            frequency[trip.origin] += 1
        if trip.destination:
            frequency[trip.destination] += 1

    if not frequency:
        return None

    # Counter preserves insertion order, max() keeps the first maximum
    return max(frequency, key=lambda address: frequency[address])


def get_csv_stats(trips: Sequence[Trip]) -> Dict[str, Any]:
    """Headline statistics for a parsed export."""
    if not trips:
        return {
            "total_trips": 0,
            "date_range": None,
            "total_distance_km": 0,
            "total_driving_minutes": 0,
            "unique_dates": 0,
        }

    dates = sorted({trip.trip_date for trip in trips})
    total_distance = sum(trip.distance_km or 0 for trip in trips)
    total_driving = sum(duration_to_minutes(trip.driving_time) for trip in trips)

    return {
        "total_trips": len(trips),
        "date_range": {
            "start": dates[0].isoformat(),
            "end": dates[-1].isoformat(),
        },
        "total_distance_km": round(total_distance, 2),
        "total_driving_minutes": round(total_driving),
        "unique_dates": len(dates),
    }

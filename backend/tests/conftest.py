"""
Shared fixtures for reconciliation tests.
"""

import pytest
from datetime import date
from typing import List, Optional

from reconciliation.matching_config import MatchingConfig
from reconciliation.models import (
    DailyTimesheetSummary,
    DailyTripSummary,
    TimesheetEntry,
    Trip,
    TripClassification,
)
from reconciliation.services.trip_classifier import TripClassifier
from reconciliation.staff_registry import StaffProfile
from reconciliation.time_utils import duration_to_minutes, parse_time_of_day

DAY = date(2024, 1, 15)


@pytest.fixture
def day():
    return DAY


@pytest.fixture
def config():
    return MatchingConfig()


@pytest.fixture
def profile():
    """Staff member whose home is easy to tell apart from job sites."""
    return StaffProfile(
        staff_id="Test_S",
        full_name="Test Staff",
        home_address="1 Homestead Close, Leafyville",
        wfx_staff_id="WFX-TEST",
        default_hourly_rate=40.0,
        vehicle_id="VEH900",
    )


@pytest.fixture
def make_trip():
    """Build an unclassified trip."""
    def _make(
        start: str = "09:00",
        end: str = "10:00",
        destination: str = "123 Main St, Parramatta NSW",
        origin: str = "10 Depot Rd, Milperra NSW",
        driving_time: str = "01:00:00",
        distance_km: float = 12.0,
        trip_date: date = DAY,
        staff_id: str = "Test_S",
    ) -> Trip:
        return Trip(
            staff_id=staff_id,
            trip_date=trip_date,
            start_time=parse_time_of_day(start),
            end_time=parse_time_of_day(end),
            origin=origin,
            destination=destination,
            distance_km=distance_km,
            driving_time=driving_time,
        )
    return _make


@pytest.fixture
def make_work_trip(make_trip):
    """Build a trip already classified as work travel."""
    def _make(*args, **kwargs) -> Trip:
        trip = make_trip(*args, **kwargs)
        return trip.classified(TripClassification.WORK, duration_to_minutes(trip.driving_time))
    return _make


@pytest.fixture
def make_entry():
    """Build a timesheet entry."""
    counter = {"n": 0}

    def _make(
        job_id: Optional[str] = "J1",
        minutes: int = 60,
        start: Optional[str] = None,
        entry_date: date = DAY,
        entry_id: Optional[str] = None,
    ) -> TimesheetEntry:
        counter["n"] += 1
        return TimesheetEntry(
            entry_id=entry_id or f"E{counter['n']}",
            staff_id="Test_S",
            entry_date=entry_date,
            job_id=job_id,
            minutes=minutes,
            start_time=parse_time_of_day(start) if start else None,
        )
    return _make


@pytest.fixture
def trip_summary():
    """Summarise already-classified trips for one day."""
    def _make(trips: List[Trip], summary_date: date = DAY) -> DailyTripSummary:
        return TripClassifier().summarize_day("Test_S", summary_date, trips)
    return _make


@pytest.fixture
def timesheet_summary():
    def _make(entries: List[TimesheetEntry], summary_date: date = DAY) -> DailyTimesheetSummary:
        return DailyTimesheetSummary(staff_id="Test_S", summary_date=summary_date, entries=tuple(entries))
    return _make

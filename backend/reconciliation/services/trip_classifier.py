"""
Trip Classifier

Labels each GPS trip of a day as personal (home-bound) or work travel and
builds the per-day DailyTripSummary.

Rules, evaluated in order:
1. Starts at home and is the day's first trip -> personal_morning
2. Ends at home and is the day's last trip -> personal_evening
3. Touches home at either end -> personal_mixed
4. Otherwise -> work

An address is home when a word (length > 3) of the configured home address
occurs in it, or when it is the most frequent address across the full trip
set. Results are cached per (staff, address) for the run.
"""

import logging
import re
from collections import defaultdict
from datetime import date
from typing import Dict, Iterable, List, Optional, Sequence, Tuple

from ingestion.trip_csv_parser import identify_home_address
from reconciliation.matching_config import MatchingConfig
from reconciliation.models import DailyTripSummary, Trip, TripClassification
from reconciliation.staff_registry import StaffProfile
from reconciliation.time_utils import duration_to_minutes, minutes_of_day

logger = logging.getLogger(__name__)

HOME_WORD_SEPARATOR = re.compile(r"[\s,]+")
MIN_HOME_WORD_LENGTH = 4


class AddressClassificationCache:
    """
    Run-scoped cache of home/not-home decisions keyed by (staff, address).

    Entries are written once and never invalidated; start a new cache for
    fresh data.
    """

    def __init__(self):
        self._entries: Dict[Tuple[str, str], bool] = {}

    def get(self, staff_id: str, address: str) -> Optional[bool]:
        return self._entries.get((staff_id, address))

    def record(self, staff_id: str, address: str, is_home: bool) -> bool:
        """Store a decision; an existing decision wins."""
        return self._entries.setdefault((staff_id, address), is_home)

    def __contains__(self, key: Tuple[str, str]) -> bool:
        return key in self._entries

    def __len__(self) -> int:
        return len(self._entries)


class TripClassifier:
    """
    Classifies trips and aggregates them into daily summaries.
    """

    def __init__(
        self,
        config: Optional[MatchingConfig] = None,
        cache: Optional[AddressClassificationCache] = None
    ):
        self.config = config or MatchingConfig()
        self.cache = cache if cache is not None else AddressClassificationCache()

    def is_home_address(
        self,
        address: Optional[str],
        profile: StaffProfile,
        all_trips: Optional[Sequence[Trip]] = None
    ) -> bool:
        """
        Decide whether an address is the staff member's home.

        Args:
            address: Candidate address
            profile: Staff profile carrying the configured home address
            all_trips: Full trip set used for frequency inference
        """
        frequent_home = identify_home_address(all_trips) if all_trips else None
        return self._is_home(address, profile, frequent_home)

    def _is_home(
        self,
        address: Optional[str],
        profile: StaffProfile,
        frequent_home: Optional[str]
    ) -> bool:
        if not address:
            return False

        cached = self.cache.get(profile.staff_id, address)
        if cached is not None:
            return cached

        lower_address = address.lower()
        home_words = HOME_WORD_SEPARATOR.split((profile.home_address or "").lower())
        is_configured_home = any(
            len(word) >= MIN_HOME_WORD_LENGTH and word in lower_address
            for word in home_words
        )

        is_frequent = not is_configured_home and frequent_home is not None and address == frequent_home

        return self.cache.record(profile.staff_id, address, is_configured_home or is_frequent)

    def classify_day(
        self,
        trips: Sequence[Trip],
        profile: StaffProfile,
        frequent_home: Optional[str] = None
    ) -> List[Trip]:
        """
        Classify one day's trips, ordered by start time.

        Returns new Trip instances; the input trips are left untouched.
        """
        ordered = sorted(trips, key=lambda t: t.start_time)
        last_index = len(ordered) - 1
        classified = []

        for index, trip in enumerate(ordered):
            from_home = self._is_home(trip.origin, profile, frequent_home)
            to_home = self._is_home(trip.destination, profile, frequent_home)

            if from_home and index == 0:
                classification = TripClassification.PERSONAL_MORNING
            elif to_home and index == last_index:
                classification = TripClassification.PERSONAL_EVENING
            elif from_home or to_home:
                classification = TripClassification.PERSONAL_MIXED
            else:
                classification = TripClassification.WORK

            classified.append(
                trip.classified(classification, duration_to_minutes(trip.driving_time))
            )

        return classified

    def summarize_day(
        self,
        staff_id: str,
        summary_date: date,
        classified_trips: Sequence[Trip]
    ) -> DailyTripSummary:
        """Aggregate one day's classified trips."""
        total_distance = 0.0
        total_driving = 0.0
        work_travel = 0.0
        personal_travel = 0.0
        job_sites: Dict[str, None] = {}

        for trip in classified_trips:
            minutes = trip.driving_minutes or 0.0
            total_distance += trip.distance_km or 0.0
            total_driving += minutes

            if trip.is_work:
                work_travel += minutes
                if trip.destination:
                    job_sites.setdefault(trip.destination, None)
            else:
                personal_travel += minutes

        first_arrival = min((t.start_time for t in classified_trips), default=None)
        last_departure = max((t.end_time for t in classified_trips), default=None)

        total_work_minutes = 0.0
        if first_arrival is not None and last_departure is not None:
            total_work_minutes = max(0.0, minutes_of_day(last_departure) - minutes_of_day(first_arrival))

        break_deduction = 0.0
        if total_work_minutes / 60 > self.config.break_after_hours:
            break_deduction = float(self.config.break_duration_minutes)

        return DailyTripSummary(
            staff_id=staff_id,
            summary_date=summary_date,
            trips=tuple(classified_trips),
            first_arrival=first_arrival,
            last_departure=last_departure,
            total_distance_km=round(total_distance, 2),
            total_driving_minutes=total_driving,
            work_travel_minutes=work_travel,
            personal_travel_minutes=personal_travel,
            total_work_minutes=total_work_minutes,
            break_deduction_minutes=break_deduction,
            net_work_minutes=total_work_minutes - break_deduction,
            job_sites=tuple(job_sites),
        )

    def build_daily_summaries(
        self,
        trips: Iterable[Trip],
        profile: StaffProfile
    ) -> Dict[date, DailyTripSummary]:
        """
        Group raw trips by date, classify them and build one summary per day.

        Frequency-based home inference looks at the whole trip set, not a
        single day.
        """
        all_trips = list(trips)
        frequent_home = identify_home_address(all_trips)

        trips_by_date: Dict[date, List[Trip]] = defaultdict(list)
        for trip in all_trips:
            trips_by_date[trip.trip_date].append(trip)

        summaries = {}
        for trip_date in sorted(trips_by_date):
            classified = self.classify_day(trips_by_date[trip_date], profile, frequent_home)
            summaries[trip_date] = self.summarize_day(profile.staff_id, trip_date, classified)

        logger.info(
            f"Built {len(summaries)} daily trip summaries for {profile.staff_id} "
            f"({len(all_trips)} trips, inferred home: {frequent_home})"
        )
        return summaries

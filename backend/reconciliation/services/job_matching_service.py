"""
Job Matching Engine

Pairs a day's work trips with its timesheet entries in two passes:

1. Confident pass: every scoreable (trip, entry) pair is scored once; pairs
   above the minimum confidence are assigned greedily by descending
   confidence (ties: most recent trip first, then entry order). Committed
   matches are checked against the time and distance tolerances.
2. Fuzzy pass: remaining trips, most recent first, take the first remaining
   entry whose confidence clears the fuzzy threshold.

Items are never removed from their source lists; the engine tracks the
remaining trip and entry indexes and builds fresh result lists.
"""

import logging
from datetime import date
from typing import Dict, List, Optional, Set, Tuple

from reconciliation.matching_config import MatchingConfig
from reconciliation.matching_rules.job_match_rules import JobMatchScorer, MatchScore
from reconciliation.models import (
    DailyTimesheetSummary,
    DailyTripSummary,
    DayComparison,
    Discrepancy,
    DiscrepancyKind,
    JobDetails,
    JobMatch,
    MatchCriterion,
    MatchPass,
    Severity,
    TimesheetEntry,
    Trip,
)
from reconciliation.services.job_details_cache import JobDetailsCache
from reconciliation.time_utils import minutes_of_day

logger = logging.getLogger(__name__)

# Severity escalates to high beyond this multiple of the tolerance
HIGH_SEVERITY_FACTOR = 2


class JobMatchingEngine:
    """
    Per-day trip/timesheet matcher.

    Job details are read from the run's JobDetailsCache, which the caller
    fills before matching a day.
    """

    def __init__(
        self,
        config: Optional[MatchingConfig] = None,
        job_cache: Optional[JobDetailsCache] = None,
        scorer: Optional[JobMatchScorer] = None
    ):
        self.config = config or MatchingConfig()
        self.job_cache = job_cache if job_cache is not None else JobDetailsCache()
        self.scorer = scorer or JobMatchScorer(self.config)

    def match_day(
        self,
        comparison_date: date,
        trips_summary: Optional[DailyTripSummary],
        timesheet_summary: Optional[DailyTimesheetSummary]
    ) -> DayComparison:
        """
        Match one day's work trips against its timesheet entries.

        Every work trip and every entry ends up either in a JobMatch or in
        the unmatched list for its type.
        """
        trips = list(trips_summary.trips) if trips_summary else []
        entries = list(timesheet_summary.entries) if timesheet_summary else []

        work_trips = [t for t in trips if t.is_work]
        personal_trips = [t for t in trips if not t.is_work]

        day = DayComparison(
            comparison_date=comparison_date,
            personal_trips=personal_trips,
            csv_hours=trips_summary.net_work_hours if trips_summary else 0.0,
            wfx_hours=timesheet_summary.total_hours if timesheet_summary else 0.0,
        )

        remaining_trips: Set[int] = set(range(len(work_trips)))
        remaining_entries: Set[int] = set(range(len(entries)))

        jobs = self._scoreable_jobs(entries)
        scores = self._score_matrix(work_trips, entries, jobs)

        matches: List[Tuple[int, int, JobMatch]] = []

        # Confident pass
        for trip_index, entry_index in self._rank_confident(work_trips, scores):
            if trip_index not in remaining_trips or entry_index not in remaining_entries:
                continue

            match = self._build_match(
                work_trips[trip_index], entries[entry_index],
                jobs[entry_index], scores[(trip_index, entry_index)], MatchPass.CONFIDENT
            )
            matches.append((trip_index, entry_index, match))
            remaining_trips.discard(trip_index)
            remaining_entries.discard(entry_index)
            self._classify_discrepancies(match, day)

        # Fuzzy pass
        entry_order = self._entry_order(entries)
        for trip_index in self._recent_first(work_trips, remaining_trips):
            for entry_index in entry_order:
                if entry_index not in remaining_entries:
                    continue
                score = scores.get((trip_index, entry_index))
                if score is None or score.confidence <= self.config.fuzzy_match_threshold:
                    continue

                match = self._build_match(
                    work_trips[trip_index], entries[entry_index],
                    jobs[entry_index], score, MatchPass.FUZZY
                )
                matches.append((trip_index, entry_index, match))
                remaining_trips.discard(trip_index)
                remaining_entries.discard(entry_index)
                break

        day.job_matches = [match for _, _, match in matches]
        day.unmatched_trips = [t for i, t in enumerate(work_trips) if i in remaining_trips]
        day.unmatched_entries = [e for i, e in enumerate(entries) if i in remaining_entries]

        logger.debug(
            f"{comparison_date}: {len(day.job_matches)} matches, "
            f"{len(day.unmatched_trips)} unmatched trips, "
            f"{len(day.unmatched_entries)} unmatched entries"
        )
        return day

    def unmatched_day(
        self,
        comparison_date: date,
        trips_summary: Optional[DailyTripSummary],
        timesheet_summary: Optional[DailyTimesheetSummary],
        error: str
    ) -> DayComparison:
        """Degraded result: nothing matched, everything reported unmatched."""
        trips = list(trips_summary.trips) if trips_summary else []
        entries = list(timesheet_summary.entries) if timesheet_summary else []
        return DayComparison(
            comparison_date=comparison_date,
            unmatched_trips=[t for t in trips if t.is_work],
            unmatched_entries=entries,
            personal_trips=[t for t in trips if not t.is_work],
            csv_hours=trips_summary.net_work_hours if trips_summary else 0.0,
            wfx_hours=timesheet_summary.total_hours if timesheet_summary else 0.0,
            error=error,
        )

    def _scoreable_jobs(self, entries: List[TimesheetEntry]) -> Dict[int, JobDetails]:
        """Entries with resolved, available job details, by entry index."""
        jobs = {}
        for index, entry in enumerate(entries):
            if not entry.job_id:
                continue
            details = self.job_cache.get(entry.job_id)
            if details is not None and details.available:
                jobs[index] = details
        return jobs

    def _score_matrix(
        self,
        work_trips: List[Trip],
        entries: List[TimesheetEntry],
        jobs: Dict[int, JobDetails]
    ) -> Dict[Tuple[int, int], MatchScore]:
        """Score every trip against every scoreable entry, once."""
        scores = {}
        for trip_index, trip in enumerate(work_trips):
            for entry_index, job in jobs.items():
                scores[(trip_index, entry_index)] = self.scorer.score(trip, entries[entry_index], job)
        return scores

    def _rank_confident(
        self,
        work_trips: List[Trip],
        scores: Dict[Tuple[int, int], MatchScore]
    ) -> List[Tuple[int, int]]:
        candidates = [
            pair for pair, score in scores.items()
            if score.confidence > self.config.min_match_confidence
        ]
        candidates.sort(key=lambda pair: (
            -scores[pair].confidence,
            -work_trips[pair[0]].start_minutes,
            -pair[0],
            pair[1],
        ))
        return candidates

    def _recent_first(self, work_trips: List[Trip], indexes: Set[int]) -> List[int]:
        return sorted(indexes, key=lambda i: (-work_trips[i].start_minutes, -i))

    def _entry_order(self, entries: List[TimesheetEntry]) -> List[int]:
        default_start = self.config.default_start
        return sorted(
            range(len(entries)),
            key=lambda i: (minutes_of_day(entries[i].start_time or default_start), i)
        )

    def _build_match(
        self,
        trip: Trip,
        entry: TimesheetEntry,
        job: JobDetails,
        score: MatchScore,
        match_pass: MatchPass
    ) -> JobMatch:
        criteria = score.criteria
        if match_pass == MatchPass.FUZZY:
            criteria = criteria + (MatchCriterion.FUZZY_MATCH,)

        return JobMatch(
            trip=trip,
            entry=entry,
            job=job,
            confidence=score.confidence,
            criteria=criteria,
            location_score=score.location_score,
            time_score=score.time_score,
            distance_km=score.distance_km,
            time_offset_minutes=score.time_offset_minutes,
            match_pass=match_pass,
        )

    def _classify_discrepancies(self, match: JobMatch, day: DayComparison):
        max_offset = self.config.max_time_offset_minutes
        if match.time_offset_minutes > max_offset:
            day.time_discrepancies.append(Discrepancy(
                kind=DiscrepancyKind.TIME,
                trip=match.trip,
                entry=match.entry,
                magnitude=match.time_offset_minutes,
                threshold=max_offset,
                severity=self._severity(match.time_offset_minutes, max_offset),
            ))

        max_distance = self.config.max_location_distance_km
        if match.distance_km is not None and match.distance_km > max_distance:
            day.location_discrepancies.append(Discrepancy(
                kind=DiscrepancyKind.LOCATION,
                trip=match.trip,
                entry=match.entry,
                magnitude=match.distance_km,
                threshold=max_distance,
                severity=self._severity(match.distance_km, max_distance),
            ))

    @staticmethod
    def _severity(magnitude: float, threshold: float) -> Severity:
        if magnitude > threshold * HIGH_SEVERITY_FACTOR:
            return Severity.HIGH
        return Severity.MEDIUM

"""
Job Matching Rules

Scores how well one GPS work trip corresponds to one WFX timesheet entry.

Dimensions (weights from MatchingConfig):
- location: trip destination vs job address
- time: overlap of trip and entry intervals over their combined span
- duration: driving minutes vs billed minutes
- job type: neutral placeholder until a job taxonomy exists

Confidence Scoring:
- location > 0.8: full weight (exact_location); (0.6, 0.8]: 0.6x (approximate_location)
- time > 0.8: full weight (time_overlap); (0.5, 0.8]: 0.5x (approximate_time)
- duration ratio > 0.7: full weight (duration_match)
- job type > 0.5: full weight (job_type_match)
"""

from dataclasses import dataclass
from typing import Dict, Any, Optional, Tuple

from reconciliation.matching_config import MatchingConfig
from reconciliation.matching_rules.address_rules import compare_addresses
from reconciliation.models import JobDetails, MatchCriterion, TimesheetEntry, Trip
from reconciliation.time_utils import duration_to_minutes, minutes_of_day


@dataclass(frozen=True)
class MatchScore:
    """
    Scored pairing of a trip and a timesheet entry.
    """
    confidence: float
    criteria: Tuple[MatchCriterion, ...]
    location_score: float
    time_score: float
    duration_score: float
    job_type_score: float
    distance_km: Optional[float]
    time_offset_minutes: float

    def to_dict(self) -> Dict[str, Any]:
        return {
            "confidence": self.confidence,
            "criteria": [c.value for c in self.criteria],
            "scoring_breakdown": {
                "location": round(self.location_score, 4),
                "time": round(self.time_score, 4),
                "duration": round(self.duration_score, 4),
                "job_type": self.job_type_score,
            },
            "distance_km": self.distance_km,
            "time_offset_minutes": self.time_offset_minutes,
        }


class JobMatchScorer:
    """
    Multi-criteria scorer for trip/timesheet-entry pairs.
    """

    # Location bands
    EXACT_LOCATION_SCORE = 0.8
    APPROXIMATE_LOCATION_SCORE = 0.6
    APPROXIMATE_LOCATION_FACTOR = 0.6

    # Time bands
    TIME_OVERLAP_SCORE = 0.8
    APPROXIMATE_TIME_SCORE = 0.5
    APPROXIMATE_TIME_FACTOR = 0.5

    DURATION_MATCH_RATIO = 0.7

    JOB_TYPE_NEUTRAL_SCORE = 0.5
    JOB_TYPE_MATCH_SCORE = 0.5

    # Entries with no billed minutes still occupy an hour on the clock
    FALLBACK_ENTRY_MINUTES = 60

    def __init__(self, config: Optional[MatchingConfig] = None):
        self.config = config or MatchingConfig()

    def score(self, trip: Trip, entry: TimesheetEntry, job: JobDetails) -> MatchScore:
        """
        Score the match between a work trip and a timesheet entry.

        Args:
            trip: Classified work trip
            entry: Timesheet entry
            job: Resolved details of the entry's job

        Returns:
            MatchScore with confidence in [0, 1]
        """
        criteria = []
        confidence = 0.0

        # Location
        location = compare_addresses(trip.destination, job.address)
        if location.score > self.EXACT_LOCATION_SCORE:
            confidence += self.config.location_weight
            criteria.append(MatchCriterion.EXACT_LOCATION)
        elif location.score > self.APPROXIMATE_LOCATION_SCORE:
            confidence += self.config.location_weight * self.APPROXIMATE_LOCATION_FACTOR
            criteria.append(MatchCriterion.APPROXIMATE_LOCATION)

        # Time
        time_score, time_offset = self._score_time(trip, entry)
        if time_score > self.TIME_OVERLAP_SCORE:
            confidence += self.config.time_weight
            criteria.append(MatchCriterion.TIME_OVERLAP)
        elif time_score > self.APPROXIMATE_TIME_SCORE:
            confidence += self.config.time_weight * self.APPROXIMATE_TIME_FACTOR
            criteria.append(MatchCriterion.APPROXIMATE_TIME)

        # Duration
        duration_score = self._score_duration(trip, entry)
        if duration_score > self.DURATION_MATCH_RATIO:
            confidence += self.config.duration_weight
            criteria.append(MatchCriterion.DURATION_MATCH)

        # Job type
        job_type_score = self._score_job_type(trip, job)
        if job_type_score > self.JOB_TYPE_MATCH_SCORE:
            confidence += self.config.job_type_weight
            criteria.append(MatchCriterion.JOB_TYPE_MATCH)

        return MatchScore(
            confidence=round(min(max(confidence, 0.0), 1.0), 4),
            criteria=tuple(criteria),
            location_score=location.score,
            time_score=time_score,
            duration_score=duration_score,
            job_type_score=job_type_score,
            distance_km=location.distance_km,
            time_offset_minutes=time_offset,
        )

    def entry_window(self, entry: TimesheetEntry) -> Tuple[float, float]:
        """Inferred [start, end] of an entry in minutes since midnight."""
        start_time = entry.start_time or self.config.default_start
        start = minutes_of_day(start_time)
        minutes = entry.minutes if entry.minutes > 0 else self.FALLBACK_ENTRY_MINUTES
        return start, start + minutes

    def _score_time(self, trip: Trip, entry: TimesheetEntry) -> Tuple[float, float]:
        """
        Overlap of the two intervals normalised by their combined span.

        Returns:
            Tuple of (time_score, start_offset_minutes)
        """
        trip_start, trip_end = trip.start_minutes, trip.end_minutes
        entry_start, entry_end = self.entry_window(entry)

        offset = abs(trip_start - entry_start)

        overlap = max(0.0, min(trip_end, entry_end) - max(trip_start, entry_start))
        span = max(trip_end, entry_end) - min(trip_start, entry_start)
        if span <= 0:
            return 0.0, offset

        return min(overlap / span, 1.0), offset

    def _score_duration(self, trip: Trip, entry: TimesheetEntry) -> float:
        """Ratio of the shorter to the longer of driving and billed minutes."""
        trip_minutes = trip.driving_minutes
        if trip_minutes is None:
            trip_minutes = duration_to_minutes(trip.driving_time)
        entry_minutes = entry.minutes

        if trip_minutes <= 0 or entry_minutes <= 0:
            return 0.0

        return min(trip_minutes, entry_minutes) / max(trip_minutes, entry_minutes)

    def _score_job_type(self, trip: Trip, job: JobDetails) -> float:
        """Neutral until trips can be typed against a job taxonomy."""
        return self.JOB_TYPE_NEUTRAL_SCORE

"""
Matching Configuration

Weights and thresholds consumed by the match scorer, the job matching
engine and the reconciliation aggregator. Fixed for the lifetime of a run.

Defaults:
- Weights: location 0.5, time 0.3, duration 0.1, job type 0.1
- Confident pass: confidence > 0.7
- Fuzzy pass: confidence > 0.4
- Discrepancy tolerance: 30 minutes / 2 km
"""

from dataclasses import dataclass, asdict
from datetime import time
from typing import Dict, Any, List, Optional

from reconciliation.time_utils import parse_time_of_day


@dataclass(frozen=True)
class MatchingConfig:
    """
    Configuration for one reconciliation run.
    """
    location_weight: float = 0.5
    time_weight: float = 0.3
    duration_weight: float = 0.1
    job_type_weight: float = 0.1

    min_match_confidence: float = 0.7
    fuzzy_match_threshold: float = 0.4
    max_time_offset_minutes: float = 30
    max_location_distance_km: float = 2.0
    default_entry_start_time: str = "09:00"

    break_after_hours: float = 4
    break_duration_minutes: int = 30

    timesheet_discrepancy_hours: float = 0.5
    unaccounted_travel_minutes: float = 30
    daily_distance_threshold_km: float = 200
    missing_timesheet_alert: bool = True

    @property
    def weight_total(self) -> float:
        return (
            self.location_weight +
            self.time_weight +
            self.duration_weight +
            self.job_type_weight
        )

    @property
    def default_start(self) -> time:
        parsed = parse_time_of_day(self.default_entry_start_time)
        return parsed if parsed is not None else time(9, 0)

    def validate(self) -> List[str]:
        """
        Check weights and thresholds.
        Returns list of validation errors (empty when valid).
        """
        errors = []

        for name in ("location_weight", "time_weight", "duration_weight", "job_type_weight"):
            value = getattr(self, name)
            if not 0 <= value <= 1:
                errors.append(f"{name} must be between 0 and 1")

        if self.weight_total > 1 + 1e-9:
            errors.append("Weights must sum to at most 1")

        for name in ("min_match_confidence", "fuzzy_match_threshold"):
            value = getattr(self, name)
            if not 0 <= value <= 1:
                errors.append(f"{name} must be between 0 and 1")

        if self.fuzzy_match_threshold > self.min_match_confidence:
            errors.append("fuzzy_match_threshold cannot exceed min_match_confidence")

        if self.max_time_offset_minutes <= 0:
            errors.append("max_time_offset_minutes must be positive")
        if self.max_location_distance_km <= 0:
            errors.append("max_location_distance_km must be positive")
        if self.timesheet_discrepancy_hours < 0:
            errors.append("timesheet_discrepancy_hours cannot be negative")

        if parse_time_of_day(self.default_entry_start_time) is None:
            errors.append("default_entry_start_time must be formatted HH:MM")

        return errors

    @classmethod
    def from_settings(cls, settings: Optional[Any] = None) -> "MatchingConfig":
        """Build the run configuration from application settings."""
        if settings is None:
            from config import get_settings
            settings = get_settings()

        return cls(
            location_weight=settings.MATCH_LOCATION_WEIGHT,
            time_weight=settings.MATCH_TIME_WEIGHT,
            duration_weight=settings.MATCH_DURATION_WEIGHT,
            job_type_weight=settings.MATCH_JOB_TYPE_WEIGHT,
            min_match_confidence=settings.MIN_MATCH_CONFIDENCE,
            fuzzy_match_threshold=settings.FUZZY_MATCH_THRESHOLD,
            max_time_offset_minutes=settings.MAX_TIME_OFFSET_MINUTES,
            max_location_distance_km=settings.MAX_LOCATION_DISTANCE_KM,
            default_entry_start_time=settings.DEFAULT_ENTRY_START_TIME,
            break_after_hours=settings.BREAK_AFTER_HOURS,
            break_duration_minutes=settings.BREAK_DURATION_MINUTES,
            timesheet_discrepancy_hours=settings.TIMESHEET_DISCREPANCY_HOURS,
            unaccounted_travel_minutes=settings.UNACCOUNTED_TRAVEL_MINUTES,
            daily_distance_threshold_km=settings.DAILY_DISTANCE_THRESHOLD_KM,
            missing_timesheet_alert=settings.MISSING_TIMESHEET_ALERT,
        )

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

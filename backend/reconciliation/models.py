"""
Reconciliation Domain Model

Dataclasses shared by the trip classifier, the job matching engine and the
reconciliation aggregator:
- Trip / DailyTripSummary: GPS side (telematics export)
- TimesheetEntry / DailyTimesheetSummary: WFX side
- JobDetails: job metadata fetched once per job id per run
- JobMatch / Discrepancy / DayComparison: per-day matching output
- DayLevelComparison / Alert / ReconciliationSummary: run-level rollup
"""

from dataclasses import dataclass, field, replace
from datetime import date, time
from enum import Enum
from typing import Dict, Any, List, Optional, Tuple

from reconciliation.time_utils import MINUTES_PER_DAY, format_time_of_day, minutes_of_day


class TripClassification(str, Enum):
    """How a GPS trip is treated for billing purposes."""
    PERSONAL_MORNING = "personal_morning"   # Home -> first site
    PERSONAL_EVENING = "personal_evening"   # Last site -> home
    PERSONAL_MIXED = "personal_mixed"       # Touches home mid-day
    WORK = "work"


class Severity(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class MatchCriterion(str, Enum):
    """Criteria that contributed to a match confidence."""
    EXACT_LOCATION = "exact_location"
    APPROXIMATE_LOCATION = "approximate_location"
    TIME_OVERLAP = "time_overlap"
    APPROXIMATE_TIME = "approximate_time"
    DURATION_MATCH = "duration_match"
    JOB_TYPE_MATCH = "job_type_match"
    FUZZY_MATCH = "fuzzy_match"


class MatchPass(str, Enum):
    CONFIDENT = "confident"
    FUZZY = "fuzzy"


class DiscrepancyKind(str, Enum):
    TIME = "time"
    LOCATION = "location"


class DayStatus(str, Enum):
    """Outcome of the day-level hours comparison."""
    MATCHED = "matched"
    DISCREPANCY = "discrepancy"
    MISSING_WFX = "missing_wfx"


# ==================== GPS SIDE ====================

@dataclass(frozen=True)
class Trip:
    """
    One GPS-tracked vehicle movement.

    Raw trips come out of ingestion unclassified; ``classified`` returns the
    single classified copy with derived driving minutes filled in.
    """
    staff_id: str
    trip_date: date
    start_time: time
    end_time: time
    origin: str
    destination: str
    distance_km: float = 0.0
    driving_time: str = "00:00:00"
    driver: Optional[str] = None
    number_plate: Optional[str] = None
    classification: Optional[TripClassification] = None
    driving_minutes: Optional[float] = None

    @property
    def is_classified(self) -> bool:
        return self.classification is not None

    @property
    def is_work(self) -> bool:
        return self.classification == TripClassification.WORK

    @property
    def start_minutes(self) -> float:
        return minutes_of_day(self.start_time)

    @property
    def end_minutes(self) -> float:
        """End of the trip in minutes; trips running past midnight end on the next day."""
        end = minutes_of_day(self.end_time)
        if end < self.start_minutes:
            end += MINUTES_PER_DAY
        return end

    def classified(self, classification: TripClassification, driving_minutes: float) -> "Trip":
        if self.is_classified:
            raise ValueError(
                f"Trip {self.trip_date} {self.start_time} is already classified as {self.classification.value}"
            )
        return replace(self, classification=classification, driving_minutes=driving_minutes)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "staff_id": self.staff_id,
            "date": self.trip_date.isoformat(),
            "start_time": format_time_of_day(self.start_time),
            "end_time": format_time_of_day(self.end_time),
            "origin": self.origin,
            "destination": self.destination,
            "distance_km": self.distance_km,
            "driving_minutes": self.driving_minutes,
            "classification": self.classification.value if self.classification else None,
        }


@dataclass(frozen=True)
class DailyTripSummary:
    """All trips of one staff member on one date, classified."""
    staff_id: str
    summary_date: date
    trips: Tuple[Trip, ...]
    first_arrival: Optional[time]
    last_departure: Optional[time]
    total_distance_km: float
    total_driving_minutes: float
    work_travel_minutes: float
    personal_travel_minutes: float
    total_work_minutes: float
    break_deduction_minutes: float
    net_work_minutes: float
    job_sites: Tuple[str, ...]

    @property
    def net_work_hours(self) -> float:
        return round(self.net_work_minutes / 60, 2)

    @property
    def work_trips(self) -> List[Trip]:
        return [trip for trip in self.trips if trip.is_work]

    @property
    def personal_trips(self) -> List[Trip]:
        return [trip for trip in self.trips if not trip.is_work]


# ==================== WFX SIDE ====================

@dataclass(frozen=True)
class TimesheetEntry:
    """One unit of billed time recorded in WFX."""
    entry_id: str
    staff_id: str
    entry_date: date
    job_id: Optional[str]
    minutes: int
    start_time: Optional[time] = None
    note: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "entry_id": self.entry_id,
            "staff_id": self.staff_id,
            "date": self.entry_date.isoformat(),
            "job_id": self.job_id,
            "minutes": self.minutes,
            "start_time": format_time_of_day(self.start_time),
        }


@dataclass(frozen=True)
class DailyTimesheetSummary:
    """All timesheet entries of one staff member on one date."""
    staff_id: str
    summary_date: date
    entries: Tuple[TimesheetEntry, ...] = ()

    @property
    def total_minutes(self) -> int:
        return sum(entry.minutes for entry in self.entries)

    @property
    def total_hours(self) -> float:
        return round(self.total_minutes / 60, 2)

    @property
    def job_ids(self) -> List[str]:
        """Distinct job references touched that day, in entry order."""
        seen: Dict[str, None] = {}
        for entry in self.entries:
            if entry.job_id:
                seen.setdefault(entry.job_id, None)
        return list(seen)


@dataclass(frozen=True)
class JobDetails:
    """Descriptive metadata for a WFX job."""
    job_id: str
    name: str
    address: Optional[str]
    client: str
    category: Optional[str] = None
    description: str = ""
    status: Optional[str] = None
    available: bool = True

    @classmethod
    def placeholder(cls, job_id: str) -> "JobDetails":
        """Stand-in used when the job cannot be fetched."""
        return cls(
            job_id=job_id,
            name=f"Job {job_id}",
            address=None,
            client="Unknown Client",
            description="Job details unavailable",
            available=False,
        )

    @classmethod
    def from_mapping(cls, job_id: str, data: Dict[str, Any]) -> "JobDetails":
        """
        Normalise a WFX job record.

        Accepts address or location, a nested client object or a flat
        clientName, and description or notes.
        """
        client = data.get("client")
        client_name = client.get("name") if isinstance(client, dict) else client
        return cls(
            job_id=job_id,
            name=data.get("name") or f"Job {job_id}",
            address=data.get("address") or data.get("location") or None,
            client=client_name or data.get("clientName") or "Unknown Client",
            category=data.get("category") or None,
            description=data.get("description") or data.get("notes") or "",
            status=data.get("status") or None,
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "job_id": self.job_id,
            "name": self.name,
            "address": self.address,
            "client": self.client,
            "category": self.category,
            "available": self.available,
        }


# ==================== MATCHING OUTPUT ====================

@dataclass(frozen=True)
class JobMatch:
    """A committed pairing of one work trip with one timesheet entry."""
    trip: Trip
    entry: TimesheetEntry
    job: JobDetails
    confidence: float
    criteria: Tuple[MatchCriterion, ...]
    location_score: float
    time_score: float
    distance_km: Optional[float]
    time_offset_minutes: float
    match_pass: MatchPass = MatchPass.CONFIDENT

    def to_dict(self) -> Dict[str, Any]:
        return {
            "trip": self.trip.to_dict(),
            "entry": self.entry.to_dict(),
            "job": self.job.to_dict(),
            "confidence": self.confidence,
            "criteria": [c.value for c in self.criteria],
            "location_score": self.location_score,
            "time_score": self.time_score,
            "distance_km": self.distance_km,
            "time_offset_minutes": self.time_offset_minutes,
            "match_pass": self.match_pass.value,
        }


@dataclass(frozen=True)
class Discrepancy:
    """A committed match whose time or location offset exceeds tolerance."""
    kind: DiscrepancyKind
    trip: Trip
    entry: TimesheetEntry
    magnitude: float  # minutes for TIME, km for LOCATION
    threshold: float
    severity: Severity

    def to_dict(self) -> Dict[str, Any]:
        return {
            "kind": self.kind.value,
            "trip_start": format_time_of_day(self.trip.start_time),
            "entry_id": self.entry.entry_id,
            "magnitude": round(self.magnitude, 2),
            "threshold": self.threshold,
            "severity": self.severity.value,
        }


@dataclass
class DayMatchSummary:
    matched_minutes: int = 0
    average_location_score: Optional[float] = None
    average_time_score: Optional[float] = None

    @property
    def matched_hours(self) -> float:
        return round(self.matched_minutes / 60, 2)


@dataclass
class DayComparison:
    """
    Job-level matching result for one date.

    Every work trip and every timesheet entry of the day ends up in exactly
    one of ``job_matches`` or its unmatched list.
    """
    comparison_date: date
    job_matches: List[JobMatch] = field(default_factory=list)
    unmatched_trips: List[Trip] = field(default_factory=list)
    unmatched_entries: List[TimesheetEntry] = field(default_factory=list)
    time_discrepancies: List[Discrepancy] = field(default_factory=list)
    location_discrepancies: List[Discrepancy] = field(default_factory=list)
    personal_trips: List[Trip] = field(default_factory=list)
    csv_hours: float = 0.0
    wfx_hours: float = 0.0
    summary: DayMatchSummary = field(default_factory=DayMatchSummary)
    error: Optional[str] = None

    @property
    def degraded(self) -> bool:
        return self.error is not None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "date": self.comparison_date.isoformat(),
            "job_matches": [m.to_dict() for m in self.job_matches],
            "unmatched_trips": [t.to_dict() for t in self.unmatched_trips],
            "unmatched_entries": [e.to_dict() for e in self.unmatched_entries],
            "time_discrepancies": [d.to_dict() for d in self.time_discrepancies],
            "location_discrepancies": [d.to_dict() for d in self.location_discrepancies],
            "csv_hours": self.csv_hours,
            "wfx_hours": self.wfx_hours,
            "matched_hours": self.summary.matched_hours,
            "average_location_score": self.summary.average_location_score,
            "average_time_score": self.summary.average_time_score,
            "error": self.error,
        }


# ==================== ROLLUP ====================

@dataclass(frozen=True)
class Alert:
    alert_type: str
    message: str
    severity: Severity
    alert_date: Optional[date] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "type": self.alert_type,
            "message": self.message,
            "severity": self.severity.value,
            "date": self.alert_date.isoformat() if self.alert_date else None,
        }


@dataclass
class DayLevelComparison:
    """Hours-only comparison of one date, independent of job matching."""
    comparison_date: date
    csv_hours: float
    wfx_hours: float
    discrepancy: float
    work_travel_minutes: float
    personal_travel_minutes: float
    total_distance_km: float
    status: DayStatus
    severity: Optional[Severity] = None
    alerts: List[Alert] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "date": self.comparison_date.isoformat(),
            "csv_hours": self.csv_hours,
            "wfx_hours": self.wfx_hours,
            "discrepancy": round(self.discrepancy, 2),
            "work_travel_minutes": self.work_travel_minutes,
            "personal_travel_minutes": self.personal_travel_minutes,
            "total_distance_km": round(self.total_distance_km, 1),
            "status": self.status.value,
            "severity": self.severity.value if self.severity else None,
            "alerts": [a.to_dict() for a in self.alerts],
        }


@dataclass
class ReconciliationSummary:
    """
    Run-level rollup, accumulated day by day and finalised once.

    ``location_match_accuracy`` and ``time_match_accuracy`` are completion
    rates (share of entries / trips that found a partner), not averaged
    sub-scores.
    """
    staff_id: str
    total_days: int = 0
    matched_jobs: int = 0
    unmatched_trips: int = 0
    unmatched_entries: int = 0
    location_match_accuracy: float = 0.0
    time_match_accuracy: float = 0.0
    alerts: List[Alert] = field(default_factory=list)
    day_comparisons: Dict[date, DayComparison] = field(default_factory=dict)

    # Day-level (hours) comparison, reported side by side
    day_level_comparisons: Dict[date, DayLevelComparison] = field(default_factory=dict)
    matched_days: int = 0
    discrepancy_days: int = 0
    missing_wfx_days: int = 0
    total_csv_hours: float = 0.0
    total_wfx_hours: float = 0.0
    total_discrepancy_hours: float = 0.0
    total_unaccounted_travel_minutes: float = 0.0
    day_level_accuracy: float = 0.0

    finalized: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return {
            "staff_id": self.staff_id,
            "total_days": self.total_days,
            "matched_jobs": self.matched_jobs,
            "unmatched_trips": self.unmatched_trips,
            "unmatched_entries": self.unmatched_entries,
            "location_match_accuracy": self.location_match_accuracy,
            "time_match_accuracy": self.time_match_accuracy,
            "alerts": [a.to_dict() for a in self.alerts],
            "day_comparisons": {
                d.isoformat(): day.to_dict() for d, day in self.day_comparisons.items()
            },
            "day_level": {
                "matched_days": self.matched_days,
                "discrepancy_days": self.discrepancy_days,
                "missing_wfx_days": self.missing_wfx_days,
                "total_csv_hours": round(self.total_csv_hours, 2),
                "total_wfx_hours": round(self.total_wfx_hours, 2),
                "total_discrepancy_hours": round(self.total_discrepancy_hours, 2),
                "total_unaccounted_travel_minutes": self.total_unaccounted_travel_minutes,
                "accuracy": self.day_level_accuracy,
                "days": {
                    d.isoformat(): day.to_dict() for d, day in self.day_level_comparisons.items()
                },
            },
        }

"""
Reconciliation Service

Core business logic for reconciling GPS trips against WFX timesheets:
- Per-day job matching (JobMatchingEngine) with run-scoped job details
- Day-level hours comparison, independent of job matching
- Run-level accuracy metrics and alert derivation
- Audit logging

A run always completes: a day that fails to match is logged, reported as a
degraded DayComparison and surfaced as an alert.
"""

import time as timer
import uuid
import logging
from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from typing import Dict, Any, List, Mapping, Optional, Tuple

import httpx

from logging_config import clear_run_context, set_run_context
from ingestion.trip_csv_parser import get_csv_stats, parse_trip_csv
from reconciliation.matching_config import MatchingConfig
from reconciliation.models import (
    Alert,
    DailyTimesheetSummary,
    DailyTripSummary,
    DayComparison,
    DayLevelComparison,
    DayMatchSummary,
    DayStatus,
    ReconciliationSummary,
    Severity,
)
from reconciliation.services.job_details_cache import JobDetailsCache, JobDetailsFetcher
from reconciliation.services.job_matching_service import JobMatchingEngine
from reconciliation.services.trip_classifier import TripClassifier
from reconciliation.staff_registry import StaffProfile, StaffRegistry, staff_registry
from wfx_integration.client import WFXApiClient, WFXApiError, WFXAuthenticationError
from wfx_integration.timesheets import group_timesheets_by_date

logger = logging.getLogger(__name__)

# Job-level accuracy alert thresholds (percent)
LOW_LOCATION_ACCURACY = 70
LOW_TIME_ACCURACY = 60

# Day-level discrepancies at or above this many hours are high severity
HIGH_HOURS_DISCREPANCY = 2


class ReconciliationAuditEvent:
    """Audit event types for reconciliation runs."""
    RUN_STARTED = "reconciliation.run_started"
    DAY_MATCHED = "reconciliation.day_matched"
    DAY_FAILED = "reconciliation.day_failed"
    RUN_COMPLETED = "reconciliation.run_completed"


def log_reconciliation_event(
    event_type: str,
    staff_id: str,
    details: Dict[str, Any],
    run_id: Optional[str] = None,
    actor: str = "system"
):
    """Log reconciliation event for audit trail."""
    log_entry = {
        "event": event_type,
        "staff": staff_id,
        "run": run_id,
        "details": details,
        "actor": actor,
        "timestamp": datetime.now(timezone.utc).isoformat()
    }
    logger.info(f"Reconciliation event: {event_type}", extra=log_entry)


# ==================== DAY-LEVEL COMPARISON ====================

def classify_hours_discrepancy(
    csv_hours: float,
    wfx_hours: float,
    has_timesheet: bool,
    threshold_hours: float
) -> Tuple[DayStatus, Optional[Severity], float]:
    """
    Status of one day's hours comparison.

    Returns:
        Tuple of (status, severity, discrepancy) where discrepancy is
        csv_hours - wfx_hours
    """
    discrepancy = round(csv_hours - wfx_hours, 2)

    if not has_timesheet:
        return DayStatus.MISSING_WFX, None, discrepancy

    if abs(discrepancy) > threshold_hours:
        severity = Severity.HIGH if abs(discrepancy) >= HIGH_HOURS_DISCREPANCY else Severity.MEDIUM
        return DayStatus.DISCREPANCY, severity, discrepancy

    return DayStatus.MATCHED, None, discrepancy


def compare_day_hours(
    comparison_date: date,
    trips_summary: DailyTripSummary,
    timesheet_summary: Optional[DailyTimesheetSummary],
    config: Optional[MatchingConfig] = None
) -> DayLevelComparison:
    """Compare GPS-derived net work hours with WFX hours for one day."""
    config = config or MatchingConfig()

    csv_hours = trips_summary.net_work_hours
    has_timesheet = timesheet_summary is not None and timesheet_summary.total_minutes > 0
    wfx_hours = timesheet_summary.total_hours if timesheet_summary else 0.0

    status, severity, discrepancy = classify_hours_discrepancy(
        csv_hours, wfx_hours, has_timesheet, config.timesheet_discrepancy_hours
    )

    comparison = DayLevelComparison(
        comparison_date=comparison_date,
        csv_hours=csv_hours,
        wfx_hours=wfx_hours,
        discrepancy=discrepancy,
        work_travel_minutes=trips_summary.work_travel_minutes,
        personal_travel_minutes=trips_summary.personal_travel_minutes,
        total_distance_km=trips_summary.total_distance_km,
        status=status,
        severity=severity,
    )

    if status == DayStatus.MISSING_WFX and config.missing_timesheet_alert:
        comparison.alerts.append(Alert(
            alert_type="missing_timesheet",
            message="No WFX timesheet entry found for this day",
            severity=Severity.MEDIUM,
            alert_date=comparison_date,
        ))
    elif status == DayStatus.DISCREPANCY:
        comparison.alerts.append(Alert(
            alert_type="hours_discrepancy",
            message=f"Hours differ by {abs(discrepancy):.2f} hours",
            severity=severity,
            alert_date=comparison_date,
        ))

    if trips_summary.work_travel_minutes > config.unaccounted_travel_minutes:
        comparison.alerts.append(Alert(
            alert_type="unaccounted_travel",
            message=f"{round(trips_summary.work_travel_minutes)} minutes of work travel time",
            severity=Severity.MEDIUM,
            alert_date=comparison_date,
        ))

    if trips_summary.total_distance_km > config.daily_distance_threshold_km:
        comparison.alerts.append(Alert(
            alert_type="high_distance",
            message=f"Daily distance of {trips_summary.total_distance_km:.1f}km exceeds threshold",
            severity=Severity.LOW,
            alert_date=comparison_date,
        ))

    return comparison


# ==================== AGGREGATION ====================

def summarize_day(day: DayComparison) -> DayMatchSummary:
    """Matched minutes and mean sub-scores across a day's matches."""
    matches = day.job_matches
    summary = DayMatchSummary(matched_minutes=sum(m.entry.minutes for m in matches))
    if matches:
        summary.average_location_score = round(
            sum(m.location_score for m in matches) / len(matches), 4
        )
        summary.average_time_score = round(
            sum(m.time_score for m in matches) / len(matches), 4
        )
    return summary


def match_accuracy(matched: int, unmatched: int) -> float:
    """Share of one side that found a partner, as a percentage."""
    total = matched + unmatched
    if total <= 0:
        return 0.0
    return round(matched / total * 100, 1)


class ReconciliationAggregator:
    """
    Folds DayComparisons and DayLevelComparisons into a ReconciliationSummary.
    """

    def __init__(self, staff_id: str, config: Optional[MatchingConfig] = None):
        self.config = config or MatchingConfig()
        self.summary = ReconciliationSummary(staff_id=staff_id)

    def add_day(self, day: DayComparison):
        if self.summary.finalized:
            raise RuntimeError("Summary already finalized")

        day.summary = summarize_day(day)
        self.summary.day_comparisons[day.comparison_date] = day
        self.summary.matched_jobs += len(day.job_matches)
        self.summary.unmatched_trips += len(day.unmatched_trips)
        self.summary.unmatched_entries += len(day.unmatched_entries)

        if day.degraded:
            self.summary.alerts.append(Alert(
                alert_type="day_processing_failed",
                message=f"{day.comparison_date.isoformat()}: job matching failed ({day.error})",
                severity=Severity.HIGH,
                alert_date=day.comparison_date,
            ))

    def add_day_level(self, comparison: DayLevelComparison):
        if self.summary.finalized:
            raise RuntimeError("Summary already finalized")

        summary = self.summary
        summary.day_level_comparisons[comparison.comparison_date] = comparison
        summary.total_csv_hours += comparison.csv_hours
        summary.total_wfx_hours += comparison.wfx_hours
        summary.total_discrepancy_hours += abs(comparison.discrepancy)

        if comparison.status == DayStatus.MISSING_WFX:
            summary.missing_wfx_days += 1
        elif comparison.status == DayStatus.DISCREPANCY:
            summary.discrepancy_days += 1
        else:
            summary.matched_days += 1

        if comparison.work_travel_minutes > self.config.unaccounted_travel_minutes:
            summary.total_unaccounted_travel_minutes += comparison.work_travel_minutes

    def finalize(self) -> ReconciliationSummary:
        """Compute accuracy metrics and derive alerts; idempotent."""
        summary = self.summary
        if summary.finalized:
            return summary

        summary.total_days = len(summary.day_comparisons)
        summary.location_match_accuracy = match_accuracy(summary.matched_jobs, summary.unmatched_entries)
        summary.time_match_accuracy = match_accuracy(summary.matched_jobs, summary.unmatched_trips)

        day_level_days = len(summary.day_level_comparisons)
        summary.day_level_accuracy = (
            round(summary.matched_days / day_level_days * 100, 1) if day_level_days else 0.0
        )

        summary.alerts.extend(self._derive_alerts())
        summary.finalized = True
        return summary

    def _derive_alerts(self) -> List[Alert]:
        summary = self.summary
        alerts = []

        has_entries = summary.matched_jobs + summary.unmatched_entries > 0
        has_trips = summary.matched_jobs + summary.unmatched_trips > 0

        if has_entries and summary.location_match_accuracy < LOW_LOCATION_ACCURACY:
            alerts.append(Alert(
                alert_type="low_location_accuracy",
                message=(
                    f"Poor location matching ({summary.location_match_accuracy}%) - "
                    "jobs may not be correctly matched to trip destinations"
                ),
                severity=Severity.HIGH,
            ))

        if has_trips and summary.time_match_accuracy < LOW_TIME_ACCURACY:
            alerts.append(Alert(
                alert_type="low_time_accuracy",
                message=(
                    f"Poor time matching ({summary.time_match_accuracy}%) - "
                    "job times may not align with trip times"
                ),
                severity=Severity.MEDIUM,
            ))

        if summary.unmatched_trips > 0:
            alerts.append(Alert(
                alert_type="unmatched_work_trips",
                message=f"{summary.unmatched_trips} work trips could not be matched to WFX jobs",
                severity=Severity.MEDIUM,
            ))

        if summary.unmatched_entries > 0:
            alerts.append(Alert(
                alert_type="unmatched_wfx_jobs",
                message=f"{summary.unmatched_entries} WFX job entries have no corresponding trips",
                severity=Severity.MEDIUM,
            ))

        for day_date, day in summary.day_comparisons.items():
            high_time = [d for d in day.time_discrepancies if d.severity == Severity.HIGH]
            if high_time:
                alerts.append(Alert(
                    alert_type="significant_time_discrepancy",
                    message=(
                        f"{day_date.isoformat()}: {len(high_time)} jobs have "
                        "significant time discrepancies (>1 hour)"
                    ),
                    severity=Severity.HIGH,
                    alert_date=day_date,
                ))

            high_location = [d for d in day.location_discrepancies if d.severity == Severity.HIGH]
            if high_location:
                alerts.append(Alert(
                    alert_type="significant_location_discrepancy",
                    message=(
                        f"{day_date.isoformat()}: {len(high_location)} jobs have "
                        "significant location discrepancies (>2km)"
                    ),
                    severity=Severity.HIGH,
                    alert_date=day_date,
                ))

        return alerts


# ==================== SERVICE ====================

class ReconciliationService:
    """
    Entry point for reconciling one staff member's trips against timesheets.

    Each call to perform_enhanced_comparison is an independent run with its
    own job details cache.
    """

    def __init__(
        self,
        config: Optional[MatchingConfig] = None,
        job_fetcher: Optional[JobDetailsFetcher] = None
    ):
        self.config = config or MatchingConfig()
        self.job_fetcher = job_fetcher

    async def perform_enhanced_comparison(
        self,
        trips_by_date: Mapping[date, DailyTripSummary],
        entries_by_date: Mapping[date, DailyTimesheetSummary],
        staff_profile: StaffProfile
    ) -> ReconciliationSummary:
        """
        Reconcile a staff member's classified trips against their timesheets.

        Days are processed in the order of ``entries_by_date``, followed by
        dates that only have trips.

        Args:
            trips_by_date: Daily trip summaries keyed by date
            entries_by_date: Daily timesheet summaries keyed by date
            staff_profile: Staff member being reconciled

        Returns:
            Finalised ReconciliationSummary
        """
        run_id = str(uuid.uuid4())
        staff_id = staff_profile.staff_id
        context_token = set_run_context(run_id=run_id, staff_id=staff_id)

        try:
            job_cache = JobDetailsCache(self.job_fetcher)
            engine = JobMatchingEngine(self.config, job_cache)
            aggregator = ReconciliationAggregator(staff_id, self.config)

            dates = list(entries_by_date)
            dates.extend(d for d in trips_by_date if d not in entries_by_date)

            log_reconciliation_event(
                ReconciliationAuditEvent.RUN_STARTED,
                staff_id,
                {"days": len(dates), "trip_days": len(trips_by_date), "timesheet_days": len(entries_by_date)},
                run_id=run_id
            )

            for comparison_date in dates:
                day = await self._match_day(
                    engine, job_cache, comparison_date,
                    trips_by_date.get(comparison_date),
                    entries_by_date.get(comparison_date),
                    staff_id, run_id
                )
                aggregator.add_day(day)

            self.perform_day_level_comparison(trips_by_date, entries_by_date, aggregator)

            summary = aggregator.finalize()

            log_reconciliation_event(
                ReconciliationAuditEvent.RUN_COMPLETED,
                staff_id,
                {
                    "total_days": summary.total_days,
                    "matched_jobs": summary.matched_jobs,
                    "unmatched_trips": summary.unmatched_trips,
                    "unmatched_entries": summary.unmatched_entries,
                    "location_match_accuracy": summary.location_match_accuracy,
                    "time_match_accuracy": summary.time_match_accuracy,
                    "day_level_accuracy": summary.day_level_accuracy,
                    "alerts": len(summary.alerts),
                    "job_cache": job_cache.get_stats(),
                },
                run_id=run_id
            )
            return summary
        finally:
            clear_run_context(context_token)

    async def _match_day(
        self,
        engine: JobMatchingEngine,
        job_cache: JobDetailsCache,
        comparison_date: date,
        trips_summary: Optional[DailyTripSummary],
        timesheet_summary: Optional[DailyTimesheetSummary],
        staff_id: str,
        run_id: str
    ) -> DayComparison:
        try:
            if timesheet_summary is not None:
                await job_cache.resolve_many(e.job_id for e in timesheet_summary.entries)

            day = engine.match_day(comparison_date, trips_summary, timesheet_summary)

            log_reconciliation_event(
                ReconciliationAuditEvent.DAY_MATCHED,
                staff_id,
                {
                    "date": comparison_date.isoformat(),
                    "matches": len(day.job_matches),
                    "unmatched_trips": len(day.unmatched_trips),
                    "unmatched_entries": len(day.unmatched_entries),
                },
                run_id=run_id
            )
            return day

        except Exception as e:
            logger.exception(f"Job matching failed for {comparison_date}: {e}")
            log_reconciliation_event(
                ReconciliationAuditEvent.DAY_FAILED,
                staff_id,
                {"date": comparison_date.isoformat(), "error": str(e)},
                run_id=run_id
            )
            return engine.unmatched_day(comparison_date, trips_summary, timesheet_summary, error=str(e))

    def perform_day_level_comparison(
        self,
        trips_by_date: Mapping[date, DailyTripSummary],
        entries_by_date: Mapping[date, DailyTimesheetSummary],
        aggregator: ReconciliationAggregator
    ) -> List[DayLevelComparison]:
        """Hours-only comparison over every date that has trips."""
        comparisons = []
        for comparison_date, trips_summary in trips_by_date.items():
            comparison = compare_day_hours(
                comparison_date,
                trips_summary,
                entries_by_date.get(comparison_date),
                self.config
            )
            aggregator.add_day_level(comparison)
            comparisons.append(comparison)
        return comparisons


# ==================== END-TO-END COMPARISON ====================

@dataclass
class TimesheetComparisonResult:
    """Result of an end-to-end comparison for one staff member."""
    staff: StaffProfile
    summary: ReconciliationSummary
    csv_stats: Dict[str, Any]
    csv_warnings: List[str] = field(default_factory=list)
    wfx_available: bool = False
    processing_time_ms: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "staff": self.staff.to_dict(),
            "summary": self.summary.to_dict(),
            "csv_stats": self.csv_stats,
            "csv_warnings": self.csv_warnings,
            "wfx_available": self.wfx_available,
            "processing_time_ms": self.processing_time_ms,
        }


class TimesheetComparisonService:
    """
    Parses a trip export, fetches WFX timesheets and runs the reconciliation.
    """

    def __init__(
        self,
        wfx_client: Optional[WFXApiClient] = None,
        config: Optional[MatchingConfig] = None,
        registry: Optional[StaffRegistry] = None
    ):
        self.wfx_client = wfx_client
        self.config = config or MatchingConfig()
        self.registry = registry or staff_registry

    async def compare_timesheet(
        self,
        staff_id: str,
        csv_path: str,
        start_date: date,
        end_date: date
    ) -> TimesheetComparisonResult:
        """
        Compare a staff member's trip export with their WFX timesheets.

        Raises:
            KeyError: staff member is not configured
            FileNotFoundError / TripCsvError: the export cannot be read
        """
        started = timer.monotonic()
        profile = self.registry.require_profile(staff_id)

        logger.info(f"Comparing timesheet for {staff_id} ({start_date} to {end_date})")

        csv_result = parse_trip_csv(csv_path, staff_id)
        csv_stats = get_csv_stats(csv_result.trips)
        logger.info(
            f"Loaded {csv_stats['total_trips']} trips ({csv_stats['total_distance_km']}km total)"
        )

        trips_by_date = TripClassifier(self.config).build_daily_summaries(csv_result.trips, profile)

        entries_by_date: Dict[date, DailyTimesheetSummary] = {}
        wfx_available = False
        job_fetcher = None

        if self.wfx_client is not None and self.wfx_client.is_authenticated():
            job_fetcher = self.wfx_client.fetch_job_details
            try:
                records = await self.wfx_client.get_timesheets(start_date, end_date)
                entries_by_date = group_timesheets_by_date(
                    records, profile.wfx_staff_id or staff_id, staff_id
                )
                wfx_available = True
            except (WFXApiError, WFXAuthenticationError, httpx.HTTPError) as e:
                logger.warning(f"WFX fetch failed: {e}")
        else:
            logger.warning("WFX not authenticated - comparison will show missing entries")

        service = ReconciliationService(self.config, job_fetcher=job_fetcher)
        summary = await service.perform_enhanced_comparison(trips_by_date, entries_by_date, profile)

        return TimesheetComparisonResult(
            staff=profile,
            summary=summary,
            csv_stats=csv_stats,
            csv_warnings=csv_result.warnings,
            wfx_available=wfx_available,
            processing_time_ms=int((timer.monotonic() - started) * 1000),
        )

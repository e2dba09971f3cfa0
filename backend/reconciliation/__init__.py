"""
Reconciliation Engine Module

Reconciles GPS vehicle trips against WFX timesheet entries:
- Trip classification (home-bound vs work travel)
- Multi-criteria trip/entry scoring
- Two-pass job matching (confident, then fuzzy)
- Day-level hours comparison and run-level alerts
"""

from reconciliation.models import (
    TripClassification,
    Severity,
    MatchCriterion,
    MatchPass,
    DayStatus,
    Trip,
    DailyTripSummary,
    TimesheetEntry,
    DailyTimesheetSummary,
    JobDetails,
    JobMatch,
    Discrepancy,
    DayComparison,
    DayLevelComparison,
    Alert,
    ReconciliationSummary,
)
from reconciliation.matching_config import MatchingConfig
from reconciliation.staff_registry import StaffProfile, StaffRegistry, staff_registry
from reconciliation.matching_rules.job_match_rules import JobMatchScorer, MatchScore

__all__ = [
    # Models
    'TripClassification',
    'Severity',
    'MatchCriterion',
    'MatchPass',
    'DayStatus',
    'Trip',
    'DailyTripSummary',
    'TimesheetEntry',
    'DailyTimesheetSummary',
    'JobDetails',
    'JobMatch',
    'Discrepancy',
    'DayComparison',
    'DayLevelComparison',
    'Alert',
    'ReconciliationSummary',
    # Configuration
    'MatchingConfig',
    'StaffProfile',
    'StaffRegistry',
    'staff_registry',
    # Matching Rules
    'JobMatchScorer',
    'MatchScore',
]

"""
Reconciliation API Endpoints

REST API for the timesheet reconciliation engine:
- GET /api/reconciliation/status - Module status
- GET /api/reconciliation/config - Active matching configuration
- GET /api/reconciliation/staff - Configured staff roster
- POST /api/reconciliation/compare - Reconcile trips against timesheet entries
"""

import logging
import datetime as dt
from typing import Dict, List, Optional

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, Field

from reconciliation.matching_config import MatchingConfig
from reconciliation.models import DailyTimesheetSummary, JobDetails, TimesheetEntry, Trip
from reconciliation.services.reconciliation_service import ReconciliationService
from reconciliation.services.trip_classifier import TripClassifier
from reconciliation.staff_registry import StaffRegistry, staff_registry

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/reconciliation", tags=["Reconciliation"])


# ==================== Request/Response Models ====================

class TripIn(BaseModel):
    """One GPS trip."""
    date: dt.date
    start_time: dt.time
    end_time: dt.time
    origin: str
    destination: str
    distance_km: float = Field(default=0.0, ge=0, le=1000)
    driving_time: str = Field(default="00:00:00", description="HH:MM:SS")


class TimesheetEntryIn(BaseModel):
    """One WFX timesheet entry."""
    entry_id: str
    date: dt.date
    job_id: Optional[str] = None
    minutes: int = Field(default=0, ge=0)
    start_time: Optional[dt.time] = None


class JobIn(BaseModel):
    """Job metadata supplied with the request."""
    name: Optional[str] = None
    address: Optional[str] = None
    client: Optional[str] = None
    category: Optional[str] = None


class CompareRequest(BaseModel):
    """Request to reconcile one staff member's trips and timesheets."""
    staff_id: str = Field(..., description="Configured staff identifier")
    trips: List[TripIn] = Field(default_factory=list)
    entries: List[TimesheetEntryIn] = Field(default_factory=list)
    jobs: Dict[str, JobIn] = Field(default_factory=dict, description="Job details keyed by job id")


# ==================== Dependencies ====================

def get_matching_config() -> MatchingConfig:
    return MatchingConfig.from_settings()


def get_staff_registry() -> StaffRegistry:
    return staff_registry


# ==================== Endpoints ====================

@router.get("/status", summary="Module status")
async def get_module_status():
    """
    Get reconciliation module status.
    """
    return {
        "module": "reconciliation",
        "status": "operational",
        "version": "1.0.0",
        "features": {
            "trip_classification": True,
            "job_matching": True,
            "fuzzy_matching": True,
            "day_level_comparison": True
        },
        "timestamp": dt.datetime.now(dt.timezone.utc).isoformat()
    }


@router.get("/config", summary="Active matching configuration")
async def get_config(config: MatchingConfig = Depends(get_matching_config)):
    return {"config": config.to_dict()}


@router.get("/staff", summary="List configured staff")
async def list_staff(registry: StaffRegistry = Depends(get_staff_registry)):
    profiles = registry.get_all_profiles()
    return {
        "staff": [p.to_dict() for p in profiles],
        "count": len(profiles)
    }


@router.post("/compare", summary="Reconcile trips against timesheets")
async def compare(
    request: CompareRequest,
    config: MatchingConfig = Depends(get_matching_config),
    registry: StaffRegistry = Depends(get_staff_registry)
):
    """
    Reconcile trips against timesheet entries for a configured staff member.

    Trips are classified against the staff member's home address, then
    matched day by day against the entries. Jobs missing from ``jobs`` are
    reported as unavailable and their entries stay unmatched.
    """
    try:
        profile = registry.require_profile(request.staff_id)
    except KeyError:
        raise HTTPException(status_code=404, detail=f"Staff member not found: {request.staff_id}")

    try:
        trips = [
            Trip(
                staff_id=profile.staff_id,
                trip_date=t.date,
                start_time=t.start_time,
                end_time=t.end_time,
                origin=t.origin,
                destination=t.destination,
                distance_km=t.distance_km,
                driving_time=t.driving_time,
            )
            for t in request.trips
        ]
        trips_by_date = TripClassifier(config).build_daily_summaries(trips, profile)

        grouped: Dict[dt.date, List[TimesheetEntry]] = {}
        for e in request.entries:
            grouped.setdefault(e.date, []).append(TimesheetEntry(
                entry_id=e.entry_id,
                staff_id=profile.staff_id,
                entry_date=e.date,
                job_id=e.job_id,
                minutes=e.minutes,
                start_time=e.start_time,
            ))
        entries_by_date = {
            d: DailyTimesheetSummary(staff_id=profile.staff_id, summary_date=d, entries=tuple(entries))
            for d, entries in grouped.items()
        }

        jobs = request.jobs

        async def fetch_job(job_id: str) -> JobDetails:
            job = jobs[job_id]
            return JobDetails.from_mapping(job_id, job.model_dump(exclude_none=True))

        service = ReconciliationService(config, job_fetcher=fetch_job)
        summary = await service.perform_enhanced_comparison(trips_by_date, entries_by_date, profile)

        return summary.to_dict()

    except HTTPException:
        raise
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except Exception as e:
        logger.error(f"Reconciliation compare failed: {e}")
        raise HTTPException(status_code=500, detail="Reconciliation compare failed")

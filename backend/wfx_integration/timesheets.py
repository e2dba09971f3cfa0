"""
WFX Timesheet Normalisation

Turns raw WFX time records into TimesheetEntry objects and groups one staff
member's entries into DailyTimesheetSummary objects keyed by date.
"""

import logging
from datetime import date, datetime
from typing import Any, Dict, Iterable, List, Optional

from reconciliation.models import DailyTimesheetSummary, TimesheetEntry
from reconciliation.time_utils import parse_time_of_day

logger = logging.getLogger(__name__)


def _record_staff_id(record: Dict[str, Any]) -> Optional[str]:
    staff = record.get("staff")
    if isinstance(staff, dict) and staff.get("id") is not None:
        return str(staff["id"])
    value = record.get("staffId", record.get("staff_id"))
    return str(value) if value is not None else None


def _record_job_id(record: Dict[str, Any]) -> Optional[str]:
    job = record.get("job")
    if isinstance(job, dict) and job.get("id") is not None:
        return str(job["id"])
    value = record.get("jobId", record.get("job_id"))
    return str(value) if value not in (None, "") else None


def _record_date(value: Any) -> Optional[date]:
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if not value:
        return None
    try:
        return datetime.fromisoformat(str(value).strip()).date()
    except ValueError:
        return None


def normalize_time_record(record: Dict[str, Any], staff_id: str, index: int = 0) -> Optional[TimesheetEntry]:
    """
    Convert one WFX time record; None when it has no usable date.

    Args:
        record: Raw WFX time record
        staff_id: Staff identifier to stamp on the entry
        index: Position of the record, used when it carries no id
    """
    entry_date = _record_date(record.get("date"))
    if entry_date is None:
        logger.warning(f"Skipping WFX time record without a valid date: {record.get('id')}")
        return None

    try:
        minutes = int(float(record.get("minutes") or 0))
    except (TypeError, ValueError):
        minutes = 0

    entry_id = record.get("id") or record.get("uuid") or f"{entry_date.isoformat()}-{index}"

    return TimesheetEntry(
        entry_id=str(entry_id),
        staff_id=staff_id,
        entry_date=entry_date,
        job_id=_record_job_id(record),
        minutes=max(minutes, 0),
        start_time=parse_time_of_day(record.get("startTime") or record.get("start_time")),
        note=record.get("note") or record.get("notes"),
    )


def group_timesheets_by_date(
    records: Iterable[Dict[str, Any]],
    wfx_staff_id: str,
    staff_id: Optional[str] = None
) -> Dict[date, DailyTimesheetSummary]:
    """
    Filter time records to one WFX staff id (case-insensitive) and group by date.

    Dates keep the order in which they first appear in ``records``.
    """
    target = (wfx_staff_id or "").lower()
    staff_id = staff_id or wfx_staff_id

    grouped: Dict[date, List[TimesheetEntry]] = {}
    for index, record in enumerate(records):
        record_staff = _record_staff_id(record)
        if record_staff is None or record_staff.lower() != target:
            continue

        entry = normalize_time_record(record, staff_id, index)
        if entry is None:
            continue
        grouped.setdefault(entry.entry_date, []).append(entry)

    summaries = {
        entry_date: DailyTimesheetSummary(
            staff_id=staff_id,
            summary_date=entry_date,
            entries=tuple(entries),
        )
        for entry_date, entries in grouped.items()
    }

    logger.info(
        f"Grouped {sum(len(e) for e in grouped.values())} WFX time entries "
        f"for {wfx_staff_id} into {len(summaries)} days"
    )
    return summaries

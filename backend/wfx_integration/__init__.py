"""
WorkflowMax (WFX) Integration Module

API client and timesheet normalisation for WorkflowMax.
"""

from .client import (
    WFXApiClient,
    WFXApiError,
    WFXAuthenticationError,
    get_wfx_client,
)
from .timesheets import group_timesheets_by_date, normalize_time_record

__all__ = [
    "WFXApiClient",
    "WFXApiError",
    "WFXAuthenticationError",
    "get_wfx_client",
    "group_timesheets_by_date",
    "normalize_time_record",
]

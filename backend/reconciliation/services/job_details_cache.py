"""
Job Details Cache

Run-scoped cache of WFX job metadata. Each distinct job id is fetched at most
once per run; a failed fetch is recorded as a placeholder and never retried
within the same run.
"""

import logging
from typing import Any, Awaitable, Callable, Dict, Iterable, Mapping, Optional, Union

from reconciliation.models import JobDetails

logger = logging.getLogger(__name__)

JobDetailsFetcher = Callable[[str], Awaitable[Union[JobDetails, Mapping[str, Any]]]]


class JobDetailsCache:
    """
    Append-only job id -> JobDetails cache.
    """

    def __init__(self, fetcher: Optional[JobDetailsFetcher] = None):
        self._fetcher = fetcher
        self._entries: Dict[str, JobDetails] = {}
        self.fetch_count = 0
        self.failure_count = 0

    def get(self, job_id: str) -> Optional[JobDetails]:
        """Cached details, without fetching."""
        return self._entries.get(job_id)

    def __contains__(self, job_id: str) -> bool:
        return job_id in self._entries

    def __len__(self) -> int:
        return len(self._entries)

    async def resolve(self, job_id: str) -> JobDetails:
        """
        Details for a job id, fetching on first use.

        Never raises: fetch failures yield a placeholder.
        """
        cached = self._entries.get(job_id)
        if cached is not None:
            return cached

        if self._fetcher is None:
            details = JobDetails.placeholder(job_id)
        else:
            self.fetch_count += 1
            try:
                raw = await self._fetcher(job_id)
                if isinstance(raw, JobDetails):
                    details = raw
                else:
                    details = JobDetails.from_mapping(job_id, dict(raw or {}))
            except Exception as e:
                self.failure_count += 1
                logger.warning(f"Could not fetch job details for {job_id}: {e}")
                details = JobDetails.placeholder(job_id)

        self._entries[job_id] = details
        return details

    async def resolve_many(self, job_ids: Iterable[Optional[str]]) -> Dict[str, JobDetails]:
        """Resolve each distinct, non-empty job id in order of first appearance."""
        resolved: Dict[str, JobDetails] = {}
        for job_id in job_ids:
            if not job_id or job_id in resolved:
                continue
            resolved[job_id] = await self.resolve(job_id)
        return resolved

    def get_stats(self) -> Dict[str, Any]:
        return {
            "size": len(self._entries),
            "fetches": self.fetch_count,
            "failures": self.failure_count,
            "unavailable": sum(1 for d in self._entries.values() if not d.available),
        }

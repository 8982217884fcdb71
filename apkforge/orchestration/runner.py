"""
Background job execution.

Each accepted job runs as its own asyncio task. An optional semaphore caps how
many pipelines run at once; jobs beyond the cap wait in ``accepted``.
Finished records stay visible for a while and are evicted by age and count
when new jobs arrive.
"""

from __future__ import annotations

import asyncio

from ..core.exceptions import ValidationError
from ..core.logging import get_logger
from ..core.types import JobRecord, utcnow
from ..models.job import Job
from .pipeline import BuildOrchestrator

logger = get_logger(__name__)


class JobRunner:
    """Registry and task launcher for build jobs."""

    def __init__(
        self,
        orchestrator: BuildOrchestrator,
        max_concurrent_jobs: int | None = None,
        record_ttl_seconds: float = 3600.0,
        max_records: int = 1000,
    ) -> None:
        self.orchestrator = orchestrator
        self.record_ttl_seconds = record_ttl_seconds
        self.max_records = max_records
        self._semaphore = asyncio.Semaphore(max_concurrent_jobs) if max_concurrent_jobs else None
        self._records: dict[str, JobRecord] = {}
        self._tasks: dict[str, asyncio.Task[JobRecord]] = {}

    def submit(self, job: Job) -> JobRecord:
        """Accept a job and start it in the background.

        Raises:
            ValidationError: If a task for the same id has not finished yet,
                including its cleanup; both would share one working tree.
        """
        running = self._tasks.get(job.job_id)
        if running is not None and not running.done():
            raise ValidationError(
                message=f"Job {job.job_id} is already running",
                field_name="uuid",
            )

        self._records.pop(job.job_id, None)
        self._evict()
        record = JobRecord(job_id=job.job_id)
        self._records[job.job_id] = record
        task = asyncio.create_task(self._execute(job, record), name=f"build-{job.job_id}")
        self._tasks[job.job_id] = task
        task.add_done_callback(lambda t, job_id=job.job_id: self._on_done(job_id, t))
        logger.info("Job accepted", job_id=job.job_id, running=len(self._tasks))
        return record

    async def _execute(self, job: Job, record: JobRecord) -> JobRecord:
        if self._semaphore is None:
            return await self.orchestrator.run(job, record)
        async with self._semaphore:
            return await self.orchestrator.run(job, record)

    def _on_done(self, job_id: str, task: asyncio.Task[JobRecord]) -> None:
        if self._tasks.get(job_id) is task:
            del self._tasks[job_id]
        if not task.cancelled() and task.exception() is not None:
            logger.error("Job task crashed", job_id=job_id, error=str(task.exception()))

    def _evict(self) -> None:
        """Drop finished records past their TTL, then the oldest beyond the cap.

        Records of jobs whose task is still alive are never dropped.
        """
        now = utcnow()
        finished = [
            job_id
            for job_id, record in self._records.items()
            if record.completed_at is not None and job_id not in self._tasks
        ]
        for job_id in list(finished):
            completed_at = self._records[job_id].completed_at
            if completed_at is not None and (now - completed_at).total_seconds() > self.record_ttl_seconds:
                del self._records[job_id]
                finished.remove(job_id)

        # Leave room for the record about to be added
        overflow = len(self._records) + 1 - self.max_records
        for job_id in finished[: max(overflow, 0)]:
            del self._records[job_id]

    def get(self, job_id: str) -> JobRecord | None:
        return self._records.get(job_id)

    @property
    def active_jobs(self) -> int:
        return len(self._tasks)

    async def wait(self, job_id: str) -> JobRecord | None:
        """Wait for a job to reach a terminal state."""
        task = self._tasks.get(job_id)
        if task is not None:
            await asyncio.gather(task, return_exceptions=True)
        return self._records.get(job_id)

    async def drain(self) -> None:
        """Wait for every running job."""
        if self._tasks:
            await asyncio.gather(*self._tasks.values(), return_exceptions=True)

"""
Notification Service.

Posts job progress to the caller's callback URL. Delivery is best-effort:
failures are logged and never retried or raised, so a dead callback endpoint
cannot fail a build.
"""

from __future__ import annotations

from typing import Any

import httpx

from ...core.logging import get_logger
from ...models.job import DeliveryResult, Job

logger = get_logger(__name__)

EVENT_PROGRESS = "apk_progress"
EVENT_READY = "apk_ready"
EVENT_ERROR = "apk_error"


class ProgressReporter:
    """Sends ``{uuid, event, data}`` callbacks over a shared HTTP client."""

    def __init__(self, client: httpx.AsyncClient, timeout: float = 10.0) -> None:
        self.client = client
        self.timeout = timeout

    async def send(self, callback_url: str | None, job_id: str, event: str, data: dict[str, Any]) -> bool:
        """Post one event.

        Returns:
            True if the endpoint accepted it; False if there is no callback or delivery failed.
        """
        if not callback_url:
            return False

        body = {"uuid": job_id, "event": event, "data": data}
        try:
            response = await self.client.post(callback_url, json=body, timeout=self.timeout)
            response.raise_for_status()
        except (httpx.HTTPError, httpx.InvalidURL) as e:
            logger.warning("Callback failed", event=event, error=str(e))
            return False
        return True

    def for_job(self, job: Job) -> JobNotifier:
        return JobNotifier(self, job)


class JobNotifier:
    """Per-job view of the reporter.

    Keeps reported percentages non-decreasing and emits at most one terminal
    event (ready or error).
    """

    def __init__(self, reporter: ProgressReporter, job: Job) -> None:
        self.reporter = reporter
        self.job = job
        self.last_percent = 0
        self.terminal_sent = False

    async def progress(self, step: str, percent: int) -> None:
        self.last_percent = max(self.last_percent, min(percent, 100))
        logger.info("Progress", step=step, progress=self.last_percent)
        await self.reporter.send(
            self.job.callback_url,
            self.job.job_id,
            EVENT_PROGRESS,
            {"step": step, "progress": self.last_percent},
        )

    async def ready(self, delivery: DeliveryResult, warnings: list[str]) -> None:
        if self.terminal_sent:
            return
        self.terminal_sent = True
        await self.reporter.send(
            self.job.callback_url,
            self.job.job_id,
            EVENT_READY,
            {"url": delivery.url, "filename": delivery.filename, "warnings": warnings},
        )

    async def error(self, message: str) -> None:
        if self.terminal_sent:
            return
        self.terminal_sent = True
        await self.reporter.send(self.job.callback_url, self.job.job_id, EVENT_ERROR, {"message": message})

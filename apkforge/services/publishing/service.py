"""
Publishing Service.

Turns a signed APK into a download URL. Strategies are tried in a fixed
order (webhook relay, object storage, local download) and the first one to
return a URL wins; the rest are not attempted.
"""

from __future__ import annotations

import asyncio
import shutil
import time
from abc import ABC, abstractmethod
from pathlib import Path
from urllib.parse import quote

import aiofiles
import cloudinary.uploader
import httpx
from tenacity import AsyncRetrying, retry_if_exception_type, stop_after_attempt, wait_exponential

from ...core.config import DeliveryConfig
from ...core.exceptions import PublishError
from ...core.logging import get_logger
from ...core.types import ServiceResult
from ...models.job import DeliveryResult, Job
from ...storage import ScratchArea

logger = get_logger(__name__)

APK_MEDIA_TYPE = "application/vnd.android.package-archive"


class DeliveryStrategy(ABC):
    """One way of making an artifact downloadable."""

    name: str = "strategy"

    @property
    def enabled(self) -> bool:
        return True

    @abstractmethod
    async def deliver(self, job: Job, artifact: Path, filename: str) -> str | None:
        """Upload or host the artifact.

        Returns:
            The download URL, or None if this strategy produced nothing.
        """


class WebhookRelayStrategy(DeliveryStrategy):
    """Uploads the artifact to a chat webhook that hosts attachments."""

    name = "webhook_relay"

    def __init__(
        self,
        webhook_url: str | None,
        client: httpx.AsyncClient,
        attempts: int = 2,
        timeout: float = 300.0,
    ) -> None:
        self.webhook_url = webhook_url
        self.client = client
        self.attempts = attempts
        self.timeout = timeout

    @property
    def enabled(self) -> bool:
        return bool(self.webhook_url)

    async def deliver(self, job: Job, artifact: Path, filename: str) -> str | None:
        async with aiofiles.open(artifact, "rb") as f:
            content = await f.read()

        response: httpx.Response | None = None
        async for attempt in AsyncRetrying(
            stop=stop_after_attempt(self.attempts),
            wait=wait_exponential(multiplier=0.5, max=4),
            retry=retry_if_exception_type(httpx.TransportError),
            reraise=True,
        ):
            with attempt:
                response = await self.client.post(
                    self.webhook_url,  # type: ignore[arg-type]
                    files={"file": (filename, content, APK_MEDIA_TYPE)},
                    timeout=self.timeout,
                )

        if response is None:
            return None
        response.raise_for_status()
        attachments = response.json().get("attachments") or []
        if not attachments:
            return None
        return attachments[0].get("url")


class ObjectStorageStrategy(DeliveryStrategy):
    """Uploads the artifact as a raw object to Cloudinary."""

    name = "object_storage"

    def __init__(self, config: DeliveryConfig) -> None:
        self.config = config

    @property
    def enabled(self) -> bool:
        return bool(self.config.cloudinary_cloud_name)

    def _upload(self, path: Path, public_id: str) -> dict:
        api_key = self.config.cloudinary_api_key
        api_secret = self.config.cloudinary_api_secret
        return cloudinary.uploader.upload(
            str(path),
            resource_type="raw",
            folder=self.config.upload_folder,
            public_id=public_id,
            use_filename=True,
            unique_filename=False,
            overwrite=True,
            cloud_name=self.config.cloudinary_cloud_name,
            api_key=api_key.get_secret_value() if api_key else None,
            api_secret=api_secret.get_secret_value() if api_secret else None,
        )

    async def deliver(self, job: Job, artifact: Path, filename: str) -> str | None:
        # Some hosts reject .apk uploads; the raw copy is renamed on download anyway
        staged = artifact.with_suffix(".bin")
        stem = Path(filename).stem
        await asyncio.to_thread(shutil.copyfile, artifact, staged)
        try:
            result = await asyncio.to_thread(self._upload, staged, f"{stem}_{job.job_id}")
        finally:
            staged.unlink(missing_ok=True)
        return result.get("secure_url")


class LocalDownloadStrategy(DeliveryStrategy):
    """Serves the artifact from this process's download route."""

    name = "local_download"

    def __init__(self, scratch: ScratchArea, default_base_url: str) -> None:
        self.scratch = scratch
        self.default_base_url = default_base_url

    async def deliver(self, job: Job, artifact: Path, filename: str) -> str | None:
        name = await self.scratch.publish(artifact)
        base = (job.public_base_url or self.default_base_url).rstrip("/")
        return f"{base}/download/{quote(name)}?filename={quote(filename)}"


class Publisher:
    """Runs delivery strategies in order until one returns a URL."""

    def __init__(self, strategies: list[DeliveryStrategy]) -> None:
        self.strategies = strategies

    @classmethod
    def from_config(
        cls,
        config: DeliveryConfig,
        scratch: ScratchArea,
        client: httpx.AsyncClient,
        default_base_url: str,
    ) -> Publisher:
        webhook_url = config.webhook_url.get_secret_value() if config.webhook_url else None
        return cls(
            [
                WebhookRelayStrategy(
                    webhook_url,
                    client,
                    attempts=config.relay_attempts,
                    timeout=config.http_timeout_seconds,
                ),
                ObjectStorageStrategy(config),
                LocalDownloadStrategy(scratch, default_base_url),
            ]
        )

    async def publish(self, job: Job, artifact: Path, filename: str) -> ServiceResult[DeliveryResult]:
        """Deliver a signed APK.

        Args:
            job: The job the artifact belongs to
            artifact: Signed APK
            filename: Suggested save name for the user

        Returns:
            ServiceResult with the DeliveryResult and warnings from failed strategies

        Raises:
            PublishError: If no strategy produced a URL
        """
        start_time = time.perf_counter()
        warnings: list[str] = []
        delivered: DeliveryResult | None = None

        for strategy in self.strategies:
            if not strategy.enabled:
                continue
            logger.info("Attempting delivery", strategy=strategy.name)
            try:
                url = await strategy.deliver(job, artifact, filename)
            except Exception as e:
                logger.warning("Delivery strategy failed", strategy=strategy.name, error=str(e))
                warnings.append(f"{strategy.name} failed: {e}")
                continue
            if url:
                delivered = DeliveryResult(url=url, filename=filename, strategy=strategy.name)
                break
            warnings.append(f"{strategy.name} returned no URL")

        if delivered is None:
            raise PublishError(
                message="No delivery strategy produced a download URL",
                operation="publish",
                context={"warnings": warnings},
            )

        # Remote uploads leave the signed file behind; the local strategy moved it
        if artifact.exists():
            try:
                artifact.unlink()
            except OSError as e:
                logger.warning("Failed to remove delivered artifact", path=str(artifact), error=str(e))

        logger.info("APK delivered", strategy=delivered.strategy, url=delivered.url)
        duration_ms = (time.perf_counter() - start_time) * 1000
        return ServiceResult.with_warnings(delivered, warnings, duration_ms=duration_ms)

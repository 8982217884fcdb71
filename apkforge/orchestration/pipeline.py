"""
Build pipeline orchestration for apkforge.

Drives one job through the state machine

    accepted -> preparing -> mutating -> (icon_injecting) -> packaging
             -> signing -> publishing -> ready | failed

emitting progress callbacks along the way and cleaning up scratch data when
the job ends.
"""

from __future__ import annotations

import random

import httpx

from ..core.config import Config, TemplateConfig
from ..core.logging import bind_context, clear_context, get_logger
from ..core.types import JobRecord, JobState
from ..models.job import Job
from ..services.icons import IconInjector
from ..services.mutation import Mutator
from ..services.notifications import ProgressReporter
from ..services.packaging import Packager
from ..services.publishing import Publisher
from ..services.signing import Signer
from ..services.template_cache import TemplateCache
from ..services.toolchain import ApktoolToolchain, CommandRunner
from ..storage import ScratchArea

logger = get_logger(__name__)


def default_base_url(config: Config) -> str:
    """Base URL for download links when a job carries none."""
    if config.server.public_url:
        return config.server.public_url.rstrip("/")
    return f"http://localhost:{config.server.port}"


class BuildOrchestrator:
    """Runs the per-job pipeline over the stage services."""

    def __init__(
        self,
        scratch: ScratchArea,
        template_cache: TemplateCache,
        mutator: Mutator,
        icons: IconInjector,
        packager: Packager,
        signer: Signer,
        publisher: Publisher,
        reporter: ProgressReporter,
        template: TemplateConfig,
        keep_failed_artifacts: bool = False,
    ) -> None:
        self.scratch = scratch
        self.template_cache = template_cache
        self.mutator = mutator
        self.icons = icons
        self.packager = packager
        self.signer = signer
        self.publisher = publisher
        self.reporter = reporter
        self.template = template
        self.keep_failed_artifacts = keep_failed_artifacts

    @classmethod
    def from_config(
        cls,
        config: Config,
        client: httpx.AsyncClient,
        runner: CommandRunner | None = None,
        rng: random.Random | None = None,
    ) -> BuildOrchestrator:
        """Wire up all stage services from configuration.

        Args:
            config: Application configuration
            client: Shared HTTP client for relay uploads and callbacks
            runner: Command runner for external tools
            rng: Random source for identities
        """
        runner = runner or CommandRunner()
        scratch = ScratchArea(config.scratch.root)
        scratch.ensure_layout()
        toolchain = ApktoolToolchain(runner, config.tools)

        return cls(
            scratch=scratch,
            template_cache=TemplateCache(config.scratch.base_apk, scratch, toolchain),
            mutator=Mutator(config.template, scratch, rng=rng),
            icons=IconInjector(),
            packager=Packager(toolchain),
            signer=Signer(runner, config.tools, config.signing, rng=rng),
            publisher=Publisher.from_config(config.delivery, scratch, client, default_base_url(config)),
            reporter=ProgressReporter(client, timeout=config.notifications.timeout_seconds),
            template=config.template,
            keep_failed_artifacts=config.pipeline.keep_failed_artifacts,
        )

    async def run(self, job: Job, record: JobRecord | None = None) -> JobRecord:
        """Execute the pipeline for one job.

        Never raises: any fatal error moves the record to ``failed`` and is
        reported through exactly one error callback.

        Args:
            job: The accepted job
            record: Status record to update; created if omitted

        Returns:
            The record in a terminal state
        """
        record = record or JobRecord(job_id=job.job_id)
        bind_context(job_id=job.job_id)
        notifier = self.reporter.for_job(job)
        warnings: list[str] = []
        job_id = job.job_id

        logger.info("Job started", app_name=job.app_name, has_icon=job.icon is not None)
        try:
            record.advance(JobState.PREPARING)
            await notifier.progress("Initializing...", 10)
            if await self.template_cache.ensure_ready():
                await notifier.progress("Initializing environment...", 15)
            else:
                await notifier.progress("Decompiling base APK...", 15)
            work_dir = self.scratch.work_dir(job_id)
            await self.template_cache.materialize(work_dir)

            record.advance(JobState.MUTATING)
            mutation = await self.mutator.mutate(job, work_dir, on_step=notifier.progress)
            warnings.extend(mutation.warnings)

            if job.icon:
                record.advance(JobState.ICON_INJECTING)
                await notifier.progress("Optimizing and replacing app icons...", 60)
                icon_result = await self.icons.inject(work_dir, job.icon)
                warnings.extend(icon_result.warnings)

            record.advance(JobState.PACKAGING)
            await notifier.progress("Compiling APK resources...", 70)
            unsigned = await self.packager.package(work_dir, self.scratch.unsigned_apk(job_id))

            record.advance(JobState.SIGNING)
            await notifier.progress("Generating unique signing key...", 80)
            identity = await self.signer.acquire_identity(job.app_name, self.scratch.keystore(job_id))
            warnings.extend(identity.warnings)
            aligned = await self.signer.align(unsigned, self.scratch.aligned_apk(job_id))
            warnings.extend(aligned.warnings)

            await notifier.progress("Signing application...", 90)
            signed = await self.signer.sign(
                aligned.data,  # type: ignore[arg-type]
                identity.data,  # type: ignore[arg-type]
                self.scratch.signed_apk(job_id),
            )
            await self.scratch.discard_intermediates(job_id)

            record.advance(JobState.PUBLISHING)
            await notifier.progress("Uploading to secure cloud storage...", 95)
            filename = job.download_filename(self.template.default_file_stem)
            delivery = await self.publisher.publish(job, signed, filename)
            warnings.extend(delivery.warnings)

            record.mark_ready(
                delivery.data.url,  # type: ignore[union-attr]
                delivery.data.filename,  # type: ignore[union-attr]
                delivery.data.strategy,  # type: ignore[union-attr]
                warnings,
            )
            logger.info(
                "Job ready",
                url=record.download_url,
                strategy=record.strategy,
                warnings=len(warnings),
                duration_seconds=round(record.duration_seconds, 2),
            )
            await notifier.ready(delivery.data, warnings)  # type: ignore[arg-type]

        except Exception as e:
            message = str(e)
            logger.error("Job failed", stage=record.state.value, error=message, exc_info=True)
            record.mark_failed(message, warnings)
            await notifier.error(message)
            if not self.keep_failed_artifacts:
                await self.scratch.discard_intermediates(job_id)
                await self.scratch.remove(self.scratch.signed_apk(job_id))

        finally:
            await self.scratch.remove(self.scratch.keystore(job_id))
            clear_context()

        return record

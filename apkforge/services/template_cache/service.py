"""
Template Cache Service.

Keeps one decoded copy of the template APK that every job copies from, so the
slow decode runs once per process instead of once per job.
"""

from __future__ import annotations

import asyncio
import shutil
from pathlib import Path

from ...core.exceptions import ForgeError, ServiceError
from ...core.logging import get_logger
from ...storage import ScratchArea
from ..toolchain import ApktoolToolchain

logger = get_logger(__name__)

# apktool writes this descriptor last; its presence marks a complete decode
MARKER_FILE = "apktool.yml"


class TemplateCache:
    """Single-initialization cache of the decoded template.

    The readiness flag is only set after a decode has finished and the marker
    has been verified. ``ensure_ready`` serializes decodes behind a lock, so a
    job either waits for an in-flight decode or falls back to decoding on its
    own; it never copies a half-written cache.
    """

    def __init__(self, base_apk: Path, scratch: ScratchArea, toolchain: ApktoolToolchain) -> None:
        self.base_apk = base_apk
        self.scratch = scratch
        self.toolchain = toolchain
        self._ready = False
        self._lock = asyncio.Lock()

    @property
    def cache_dir(self) -> Path:
        return self.scratch.template_dir

    @property
    def is_ready(self) -> bool:
        return self._ready

    def _marker_present(self) -> bool:
        return (self.cache_dir / MARKER_FILE).is_file()

    async def ensure_ready(self) -> bool:
        """Make sure the decoded template exists.

        Idempotent. A failed decode leaves the cache invalid (and empty); jobs
        then decode the template directly into their own working trees.

        Returns:
            True if the cache can be used.
        """
        if self._ready:
            return True

        async with self._lock:
            if self._ready:
                return True

            if self._marker_present():
                logger.info("Template already decoded and valid", cache_dir=str(self.cache_dir))
                self._ready = True
                return True

            if not self.base_apk.exists():
                logger.warning("Template APK not found, cache stays invalid", base_apk=str(self.base_apk))
                return False

            logger.info("Pre-decoding template APK", base_apk=str(self.base_apk))
            await self.scratch.remove(self.cache_dir)
            try:
                await self.toolchain.decode(self.base_apk, self.cache_dir)
            except ForgeError as e:
                logger.error("Template pre-decode failed", error=str(e))
                await self.scratch.remove(self.cache_dir)
                return False

            if not self._marker_present():
                logger.error("Template decode produced no marker", marker=MARKER_FILE)
                await self.scratch.remove(self.cache_dir)
                return False

            self._ready = True
            logger.info("Template pre-decoded", cache_dir=str(self.cache_dir))
            return True

    async def materialize(self, dest: Path) -> bool:
        """Create a job's working tree.

        Copies the cached snapshot when it is ready, otherwise decodes the
        template straight into ``dest``.

        Returns:
            True if the cache was used, False if a direct decode ran.

        Raises:
            ServiceError: If there is neither a valid cache nor a template to decode.
            ToolExecutionError: If the direct decode fails.
        """
        await self.scratch.remove(dest)
        dest.parent.mkdir(parents=True, exist_ok=True)

        if await self.ensure_ready():
            await asyncio.to_thread(shutil.copytree, self.cache_dir, dest, symlinks=True)
            return True

        if not self.base_apk.exists():
            raise ServiceError(
                message=f"Template APK not found: {self.base_apk}",
                service_name="template_cache",
                operation="materialize",
            )

        logger.info("Decoding template directly into working tree", dest=str(dest))
        await self.toolchain.decode(self.base_apk, dest)
        return False

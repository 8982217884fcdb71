"""
Packaging Service.

Compiles a mutated working tree back into an unsigned APK.
"""

from __future__ import annotations

from pathlib import Path

from ...core.exceptions import ServiceError
from ...core.logging import get_logger
from ..toolchain import ApktoolToolchain

logger = get_logger(__name__)


class Packager:
    """Thin wrapper around the apktool build step."""

    def __init__(self, toolchain: ApktoolToolchain) -> None:
        self.toolchain = toolchain

    async def package(self, work_dir: Path, output_apk: Path) -> Path:
        """Compile ``work_dir`` into ``output_apk``.

        No timeout is applied; large templates can take minutes on a slow host.

        Raises:
            ToolExecutionError: If apktool exits non-zero.
            ResourceExhaustionError: If apktool is killed by a signal.
            ServiceError: If apktool reported success but wrote nothing.
        """
        await self.toolchain.build(work_dir, output_apk)
        if not output_apk.is_file():
            raise ServiceError(
                message=f"Build reported success but {output_apk.name} is missing",
                service_name="packaging",
                operation="package",
            )
        logger.info("Unsigned APK built", apk=str(output_apk), size=output_apk.stat().st_size)
        return output_apk

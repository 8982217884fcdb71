"""
Icon Injection Service.

Replaces the template's launcher icons with a caller-supplied image rendered
at every density bucket.
"""

from __future__ import annotations

import asyncio
import io
import shutil
import time
from pathlib import Path

from PIL import Image

from ...core.logging import get_logger
from ...core.types import ServiceResult

logger = get_logger(__name__)

# Density bucket -> edge length in pixels
ICON_BUCKETS: dict[str, int] = {
    "mipmap-mdpi": 48,
    "mipmap-hdpi": 72,
    "mipmap-xhdpi": 96,
    "mipmap-xxhdpi": 144,
    "mipmap-xxxhdpi": 192,
}

ADAPTIVE_ICON_DIR = "mipmap-anydpi-v26"
ICON_FILES = ("ic_launcher.png", "ic_launcher_round.png")


class IconInjector:
    """Writes launcher icons into a working tree."""

    def __init__(self, buckets: dict[str, int] | None = None) -> None:
        self.buckets = buckets or ICON_BUCKETS

    @staticmethod
    def _decode(image_data: bytes) -> Image.Image:
        source = Image.open(io.BytesIO(image_data))
        source.load()
        if source.mode not in ("RGB", "RGBA"):
            source = source.convert("RGBA")
        return source

    def _render(self, res_dir: Path, source: Image.Image) -> tuple[int, list[str]]:
        # Adaptive icon XML would take precedence over the PNGs on API 26+
        adaptive = res_dir / ADAPTIVE_ICON_DIR
        if adaptive.exists():
            shutil.rmtree(adaptive)

        written = 0
        warnings: list[str] = []
        for bucket, size in self.buckets.items():
            bucket_dir = res_dir / bucket
            try:
                bucket_dir.mkdir(parents=True, exist_ok=True)
                for stale in bucket_dir.glob("ic_launcher*"):
                    stale.unlink()
                resized = source.resize((size, size), Image.Resampling.LANCZOS)
                for name in ICON_FILES:
                    resized.save(bucket_dir / name, format="PNG")
                written += 1
            except Exception as e:
                logger.warning("Icon bucket failed", bucket=bucket, error=str(e))
                warnings.append(f"icon bucket {bucket} skipped: {e}")
        return written, warnings

    async def inject(self, work_dir: Path, image_data: bytes) -> ServiceResult[int]:
        """Render the icon into every density bucket.

        Args:
            work_dir: Decoded working tree
            image_data: Raw bytes of the source image (any Pillow-readable format)

        Returns:
            ServiceResult with the number of buckets written. An undecodable
            image produces a single warning and writes nothing.
        """
        start_time = time.perf_counter()
        try:
            source = await asyncio.to_thread(self._decode, image_data)
        except Exception as e:
            # Includes oversized images rejected by Pillow's decompression bomb check
            logger.warning("Icon image could not be decoded", error=str(e))
            return ServiceResult.with_warnings(0, [f"icon image could not be decoded: {e}"])

        written, warnings = await asyncio.to_thread(self._render, work_dir / "res", source)
        logger.info("Icons injected", buckets=written, skipped=len(warnings))

        duration_ms = (time.perf_counter() - start_time) * 1000
        return ServiceResult.with_warnings(written, warnings, duration_ms=duration_ms)

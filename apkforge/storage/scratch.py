"""
Process-wide scratch area.

Every transient file the pipeline produces lives under one root directory:

    template/                 decoded template shared by all jobs
    work/<job_id>/            per-job working tree
    build/unsigned-<id>.apk   compiler output
    build/aligned-<id>.apk    zipalign output
    keys/keystore_<id>.jks    ephemeral signing identity
    signed/signed-<id>.apk    signer output
    public/                   artifacts served by the download route
"""

from __future__ import annotations

import asyncio
import shutil
from pathlib import Path

import aiofiles
import aiofiles.os

from ..core.logging import get_logger

logger = get_logger(__name__)


class ScratchArea:
    """Filesystem layout for templates, working trees and artifacts."""

    def __init__(self, root: Path) -> None:
        """Initialize the scratch area.

        Args:
            root: Base directory for all scratch data
        """
        self.root = root.resolve()

    def ensure_layout(self) -> None:
        """Create the top-level directories."""
        for sub in ("work", "build", "keys", "signed", "public"):
            (self.root / sub).mkdir(parents=True, exist_ok=True)

    @property
    def template_dir(self) -> Path:
        return self.root / "template"

    @property
    def public_dir(self) -> Path:
        return self.root / "public"

    def work_dir(self, job_id: str) -> Path:
        return self.root / "work" / job_id

    def unsigned_apk(self, job_id: str) -> Path:
        return self.root / "build" / f"unsigned-{job_id}.apk"

    def aligned_apk(self, job_id: str) -> Path:
        return self.root / "build" / f"aligned-{job_id}.apk"

    def keystore(self, job_id: str) -> Path:
        return self.root / "keys" / f"keystore_{job_id}.jks"

    def signed_apk(self, job_id: str) -> Path:
        return self.root / "signed" / f"signed-{job_id}.apk"

    def public_path(self, name: str) -> Path | None:
        """Resolve a download name to an existing file inside ``public/``.

        Names containing path separators or parent references never resolve,
        so the download route cannot be used to read arbitrary files.

        Args:
            name: File name as it appears in a download URL.

        Returns:
            The file path if it exists within the public directory, None otherwise.
        """
        if not name or name != Path(name).name or name in (".", ".."):
            return None
        candidate = (self.public_dir / name).resolve()
        try:
            candidate.relative_to(self.public_dir.resolve())
        except ValueError:
            return None
        return candidate if candidate.is_file() else None

    async def publish(self, artifact: Path) -> str:
        """Move an artifact into the public directory.

        Returns:
            The name under which the artifact can be downloaded.
        """
        self.public_dir.mkdir(parents=True, exist_ok=True)
        target = self.public_dir / artifact.name
        await aiofiles.os.rename(artifact, target)
        return target.name

    async def write_text(self, path: Path, content: str) -> None:
        """Write UTF-8 text, creating parent directories."""
        path.parent.mkdir(parents=True, exist_ok=True)
        async with aiofiles.open(path, "w", encoding="utf-8") as f:
            await f.write(content)

    async def write_bytes(self, path: Path, data: bytes) -> None:
        """Write raw bytes, creating parent directories."""
        path.parent.mkdir(parents=True, exist_ok=True)
        async with aiofiles.open(path, "wb") as f:
            await f.write(data)

    async def remove(self, path: Path) -> bool:
        """Remove a file or directory tree if present.

        Returns:
            True if something was removed, False if nothing existed or removal failed.
        """
        try:
            if path.is_dir():
                await asyncio.to_thread(shutil.rmtree, path)
                return True
            if path.exists():
                await aiofiles.os.remove(path)
                return True
        except OSError as e:
            logger.warning("Failed to remove scratch path", path=str(path), error=str(e))
        return False

    async def discard_intermediates(self, job_id: str) -> None:
        """Remove the working tree and compiler outputs of a job."""
        for path in (self.work_dir(job_id), self.unsigned_apk(job_id), self.aligned_apk(job_id)):
            await self.remove(path)

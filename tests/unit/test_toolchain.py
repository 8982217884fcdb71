"""Unit tests for external command execution and the template cache."""

import asyncio
import sys

import pytest

from apkforge.core.config import ToolsConfig
from apkforge.core.exceptions import (
    ResourceExhaustionError,
    ServiceError,
    ToolExecutionError,
    ToolNotFoundError,
    ToolTimeoutError,
)
from apkforge.services.template_cache import MARKER_FILE, TemplateCache
from apkforge.services.toolchain import ApktoolToolchain, CommandRunner
from apkforge.storage import ScratchArea


@pytest.mark.asyncio
class TestCommandRunner:
    """Tests for subprocess execution and failure classification."""

    async def test_successful_command_captures_output(self):
        """Test that stdout is collected for a zero exit status."""
        outcome = await CommandRunner().run([sys.executable, "-c", "print('hello')"])
        assert outcome.returncode == 0
        assert outcome.stdout == "hello"

    async def test_non_zero_exit(self):
        """Test that a non-zero exit raises with the code and stderr."""
        with pytest.raises(ToolExecutionError) as exc_info:
            await CommandRunner().run(
                [sys.executable, "-c", "import sys; sys.stderr.write('broken\\n'); sys.exit(3)"]
            )
        assert exc_info.value.returncode == 3
        assert "broken" in exc_info.value.stderr_tail
        assert "failed with code 3" in exc_info.value.message

    @pytest.mark.skipif(sys.platform == "win32", reason="POSIX signals")
    async def test_killed_by_signal_is_resource_exhaustion(self):
        """Test that a signal kill is reported as likely OOM."""
        code = "import os, signal; os.kill(os.getpid(), signal.SIGKILL)"
        with pytest.raises(ResourceExhaustionError) as exc_info:
            await CommandRunner().run([sys.executable, "-c", code])
        assert exc_info.value.signal_name == "SIGKILL"
        assert "Likely OOM" in str(exc_info.value)

    async def test_timeout(self):
        """Test that a command exceeding its timeout is killed."""
        with pytest.raises(ToolTimeoutError) as exc_info:
            await CommandRunner().run([sys.executable, "-c", "import time; time.sleep(10)"], timeout=0.3)
        assert exc_info.value.timeout_seconds == 0.3

    async def test_missing_program(self):
        """Test that a missing executable raises ToolNotFoundError."""
        with pytest.raises(ToolNotFoundError):
            await CommandRunner().run(["apkforge-no-such-tool-xyz", "--help"])


@pytest.mark.asyncio
class TestTemplateCache:
    """Tests for the shared decoded template."""

    def _cache(self, config, fake_runner):
        scratch = ScratchArea(config.scratch.root)
        scratch.ensure_layout()
        toolchain = ApktoolToolchain(fake_runner, ToolsConfig())
        return TemplateCache(config.scratch.base_apk, scratch, toolchain)

    async def test_decodes_once(self, config, fake_runner):
        """Test that concurrent warmups run a single decode."""
        cache = self._cache(config, fake_runner)

        results = await asyncio.gather(*(cache.ensure_ready() for _ in range(5)))

        assert all(results)
        assert fake_runner.count("apktool d") == 1
        assert (cache.cache_dir / MARKER_FILE).is_file()

    async def test_existing_valid_cache_is_reused(self, config, fake_runner):
        """Test that a cache left by an earlier process is adopted."""
        cache = self._cache(config, fake_runner)
        await cache.ensure_ready()

        fresh = self._cache(config, fake_runner)
        assert await fresh.ensure_ready()
        assert fake_runner.count("apktool d") == 1

    async def test_materialize_gives_independent_trees(self, config, fake_runner):
        """Test that each job gets its own copy of the template."""
        cache = self._cache(config, fake_runner)
        first = cache.scratch.work_dir("a1")
        second = cache.scratch.work_dir("b2")

        assert await cache.materialize(first)
        assert await cache.materialize(second)
        (first / "AndroidManifest.xml").write_text("changed")

        assert (second / "AndroidManifest.xml").read_text() != "changed"
        assert (cache.cache_dir / "AndroidManifest.xml").read_text() != "changed"

    async def test_missing_template_apk(self, config, fake_runner):
        """Test that a missing template leaves the cache invalid and fails jobs."""
        config.scratch.base_apk.unlink()
        cache = self._cache(config, fake_runner)

        assert not await cache.ensure_ready()
        with pytest.raises(ServiceError):
            await cache.materialize(cache.scratch.work_dir("a1"))

    async def test_decode_without_marker_falls_back_to_direct_decode(self, config, fake_runner):
        """Test that an incomplete cache is discarded and jobs decode directly."""
        fake_runner.decode_with_marker = False
        cache = self._cache(config, fake_runner)
        dest = cache.scratch.work_dir("a1")

        used_cache = await cache.materialize(dest)

        assert not used_cache
        assert not cache.is_ready
        assert not cache.cache_dir.exists()
        assert (dest / "AndroidManifest.xml").is_file()

    async def test_failed_decode_propagates_for_direct_path(self, config, fake_runner):
        """Test that a failing direct decode is fatal for the job."""
        fake_runner.failures["apktool d"] = ToolExecutionError(message="bad apk", tool_name="apktool")
        cache = self._cache(config, fake_runner)

        assert not await cache.ensure_ready()
        with pytest.raises(ToolExecutionError):
            await cache.materialize(cache.scratch.work_dir("a1"))

"""Unit tests for the scratch area."""

import pytest

from apkforge.storage import ScratchArea


@pytest.mark.asyncio
class TestScratchArea:
    """Tests for scratch layout and file operations."""

    async def test_paths_are_job_scoped(self, temp_dir):
        """Test that every per-job path embeds the job id."""
        scratch = ScratchArea(temp_dir)
        paths = [
            scratch.work_dir("a1"),
            scratch.unsigned_apk("a1"),
            scratch.aligned_apk("a1"),
            scratch.keystore("a1"),
            scratch.signed_apk("a1"),
        ]
        assert all("a1" in p.name for p in paths)
        assert scratch.work_dir("a1") != scratch.work_dir("b2")
        assert scratch.signed_apk("a1").name == "signed-a1.apk"

    async def test_write_text_creates_parents(self, temp_dir):
        """Test writing into a directory that does not exist yet."""
        scratch = ScratchArea(temp_dir)
        target = temp_dir / "work" / "a1" / "assets" / "uuid.txt"

        await scratch.write_text(target, "a1")

        assert target.read_text() == "a1"

    async def test_publish_moves_into_public(self, temp_dir):
        """Test that publishing moves the artifact and returns its name."""
        scratch = ScratchArea(temp_dir)
        scratch.ensure_layout()
        artifact = scratch.signed_apk("a1")
        artifact.write_bytes(b"apk")

        name = await scratch.publish(artifact)

        assert name == "signed-a1.apk"
        assert not artifact.exists()
        assert scratch.public_path(name).read_bytes() == b"apk"

    @pytest.mark.parametrize("name", ["../secret.txt", "..", "", "sub/file.apk", "missing.apk"])
    async def test_public_path_rejects_unknown_or_escaping_names(self, temp_dir, name):
        """Test that download names cannot reach outside ``public/``."""
        scratch = ScratchArea(temp_dir / "scratch")
        scratch.ensure_layout()
        (temp_dir / "scratch" / "secret.txt").write_text("secret")

        assert scratch.public_path(name) is None

    async def test_remove_files_and_directories(self, temp_dir):
        """Test removing trees, files and missing paths."""
        scratch = ScratchArea(temp_dir)
        tree = temp_dir / "work" / "a1"
        (tree / "res").mkdir(parents=True)
        (tree / "res" / "x.xml").write_text("x")
        single = temp_dir / "file.bin"
        single.write_bytes(b"1")

        assert await scratch.remove(tree)
        assert await scratch.remove(single)
        assert not await scratch.remove(temp_dir / "nothing")
        assert not tree.exists()
        assert not single.exists()

    async def test_discard_intermediates(self, temp_dir):
        """Test that intermediates are removed but other jobs are not touched."""
        scratch = ScratchArea(temp_dir)
        scratch.ensure_layout()
        for job_id in ("a1", "b2"):
            scratch.work_dir(job_id).mkdir(parents=True)
            scratch.unsigned_apk(job_id).write_bytes(b"u")
        scratch.signed_apk("a1").write_bytes(b"s")

        await scratch.discard_intermediates("a1")

        assert not scratch.work_dir("a1").exists()
        assert not scratch.unsigned_apk("a1").exists()
        assert scratch.signed_apk("a1").exists()
        assert scratch.work_dir("b2").exists()
        assert scratch.unsigned_apk("b2").exists()

"""Unit tests for configuration, job models and records."""

import json
from pathlib import Path

import pytest
from pydantic import ValidationError

from apkforge.core.config import Config
from apkforge.core.exceptions import ResourceExhaustionError, ServiceError, SigningError, ToolExecutionError
from apkforge.core.types import JobRecord, JobState
from apkforge.models.job import Job, PayloadConfig


class TestJob:
    """Tests for the accepted-job model."""

    def test_download_filename_replaces_non_alphanumerics(self):
        """Test that the suggested filename is derived from the app name."""
        job = Job(job_id="abc123", app_name="My Cam")
        assert job.download_filename() == "My-Cam.apk"

    def test_download_filename_default(self):
        """Test the fallback filename when no app name is given."""
        job = Job(job_id="abc123")
        assert job.download_filename() == "GalleryEye.apk"

    def test_blank_strings_become_none(self):
        """Test that blank app names and callback URLs are treated as absent."""
        job = Job(job_id="abc123", app_name="   ", callback_url="")
        assert job.app_name is None
        assert job.callback_url is None

    @pytest.mark.parametrize("job_id", ["", "../etc", "a/b", "x" * 129, "has space"])
    def test_rejects_unsafe_job_ids(self, job_id):
        """Test that ids unusable as path components are rejected."""
        with pytest.raises(ValidationError):
            Job(job_id=job_id)

    def test_job_is_immutable(self):
        """Test that accepted jobs cannot be modified."""
        job = Job(job_id="abc123")
        with pytest.raises(ValidationError):
            job.app_name = "Other"

    def test_icon_not_in_repr(self):
        """Test that raw icon bytes stay out of log output."""
        job = Job(job_id="abc123", icon=b"\x89PNG" * 100)
        assert "PNG" not in repr(job)


class TestPayloadConfig:
    """Tests for the embedded runtime configuration."""

    def test_uses_camel_case_keys(self):
        """Test that the JSON keys match what the app reads."""
        job = Job(
            job_id="abc123",
            app_name="My Cam",
            hide_app=True,
            web_link="https://example.test",
            enable_sms_permission=True,
        )
        payload = json.loads(PayloadConfig.from_job(job, "Gallery Eye").to_json())

        assert payload == {
            "hideApp": True,
            "webLink": "https://example.test",
            "appName": "My Cam",
            "enableSmsPermission": True,
            "enableContactsPermission": False,
        }

    def test_default_app_name(self):
        """Test that the default label is used when no name is given."""
        payload = PayloadConfig.from_job(Job(job_id="abc123"), "Gallery Eye")
        assert payload.app_name == "Gallery Eye"
        assert payload.web_link == ""


class TestJobRecord:
    """Tests for job status records."""

    def test_transitions_are_recorded(self):
        """Test that each state change is appended in order."""
        record = JobRecord(job_id="abc123")
        record.advance(JobState.PREPARING)
        record.advance(JobState.MUTATING)
        record.mark_ready("http://x/download/a.apk", "a.apk", "local_download", ["w"])

        assert [t.state for t in record.transitions] == [
            JobState.PREPARING,
            JobState.MUTATING,
            JobState.READY,
        ]
        assert record.state.is_terminal
        assert record.completed_at is not None
        assert record.warnings == ["w"]

    def test_mark_failed(self):
        """Test that failures keep the message and end the job."""
        record = JobRecord(job_id="abc123")
        record.mark_failed("boom")
        assert record.state == JobState.FAILED
        assert record.error_message == "boom"
        assert record.duration_seconds >= 0


class TestConfig:
    """Tests for environment-driven configuration."""

    def test_defaults(self):
        """Test that defaults match the documented service behavior."""
        config = Config()
        assert config.server.port == 4000
        assert config.template.stock_package == "com.h4k3r.galleryeye"
        assert config.signing.keygen_timeout_seconds == 60
        assert config.signing.sign_timeout_seconds == 120
        assert config.pipeline.max_concurrent_jobs is None
        assert config.pipeline.keep_failed_artifacts is False
        assert config.pipeline.record_ttl_seconds == 3600
        assert config.pipeline.max_records == 1000

    def test_from_env(self, monkeypatch):
        """Test that environment variables override defaults."""
        monkeypatch.setenv("PORT", "5000")
        monkeypatch.setenv("PUBLIC_URL", "https://apk.example.test")
        monkeypatch.setenv("APKFORGE_SCRATCH_DIR", "/tmp/forge")
        monkeypatch.setenv("DISCORD_WEBHOOK_URL", "https://discord.test/hook")
        monkeypatch.setenv("CLOUDINARY_CLOUD_NAME", "demo")
        monkeypatch.setenv("APKFORGE_MAX_CONCURRENT_JOBS", "2")
        monkeypatch.setenv("APKFORGE_KEEP_FAILED_ARTIFACTS", "true")
        monkeypatch.setenv("APKFORGE_JOB_RECORD_TTL", "120")
        monkeypatch.setenv("APKFORGE_MAX_JOB_RECORDS", "50")
        monkeypatch.setenv("APKFORGE_CORS_ORIGINS", "https://a.test, https://b.test")

        config = Config.from_env()

        assert config.server.port == 5000
        assert config.server.public_url == "https://apk.example.test"
        assert config.server.cors_origins == ["https://a.test", "https://b.test"]
        assert config.scratch.root == Path("/tmp/forge")
        assert config.delivery.webhook_url.get_secret_value() == "https://discord.test/hook"
        assert config.delivery.cloudinary_cloud_name == "demo"
        assert config.pipeline.max_concurrent_jobs == 2
        assert config.pipeline.keep_failed_artifacts is True
        assert config.pipeline.record_ttl_seconds == 120
        assert config.pipeline.max_records == 50

    def test_secrets_are_masked(self, monkeypatch):
        """Test that credentials do not leak through repr."""
        monkeypatch.setenv("CLOUDINARY_API_SECRET", "s3cr3t")
        config = Config.from_env()
        assert "s3cr3t" not in repr(config)


class TestExceptions:
    """Tests for the exception hierarchy."""

    def test_oom_message(self):
        """Test that signal kills are reported as likely OOM."""
        error = ResourceExhaustionError(message="killed", tool_name="apktool", signal_name="SIGKILL")
        assert str(error) == "Command apktool was killed by signal: SIGKILL (Likely OOM)"
        assert isinstance(error, ToolExecutionError)

    def test_service_names(self):
        """Test that service-specific errors carry their service name."""
        assert ToolExecutionError(message="x").service_name == "toolchain"
        error = SigningError(message="bad key", operation="sign")
        assert str(error).startswith("[signing.sign]")
        assert isinstance(error, ServiceError)

    def test_tool_errors_default_operation(self):
        """Test that tool errors raised without an operation still name one."""
        error = ToolExecutionError(message="boom", tool_name="apktool")
        assert str(error) == "[toolchain.run]: boom"
        assert ToolExecutionError(message="x", operation="decode").operation == "decode"

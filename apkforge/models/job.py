"""
Job-related data models.

These models describe one build request and the values that flow between
pipeline stages: the payload embedded into the APK, the signing identity and
the final delivery result.
"""

from __future__ import annotations

import re
from pathlib import Path

from pydantic import BaseModel, ConfigDict, Field, SecretStr, field_validator

_JOB_ID_RE = re.compile(r"^[A-Za-z0-9_-]{1,128}$")
_FILE_STEM_RE = re.compile(r"[^a-zA-Z0-9]")


class Job(BaseModel):
    """A single accepted build request.

    The identifier is used verbatim in scratch paths, so it is restricted to
    a filesystem-safe alphabet.
    """

    model_config = ConfigDict(frozen=True)

    job_id: str = Field(description="Caller-supplied unique identifier")
    app_name: str | None = Field(default=None, description="Launcher label for the generated app")
    hide_app: bool = Field(default=False, description="Hide launcher entry after first run")
    web_link: str = Field(default="", description="Auxiliary link handed to the app")
    callback_url: str | None = Field(default=None, description="Progress notification endpoint")
    enable_sms_permission: bool = Field(default=False)
    enable_contacts_permission: bool = Field(default=False)
    icon: bytes | None = Field(default=None, repr=False, description="Raw source image for launcher icons")
    public_base_url: str | None = Field(
        default=None, description="Base URL for direct downloads, captured at acceptance"
    )

    @field_validator("job_id")
    @classmethod
    def _check_job_id(cls, value: str) -> str:
        if not _JOB_ID_RE.match(value):
            raise ValueError("job_id must be 1-128 characters of letters, digits, '-' or '_'")
        return value

    @field_validator("app_name", "callback_url")
    @classmethod
    def _blank_to_none(cls, value: str | None) -> str | None:
        if value is None:
            return None
        value = value.strip()
        return value or None

    def download_filename(self, default_stem: str = "GalleryEye") -> str:
        """Suggested save name, e.g. ``My-Cam.apk`` for ``My Cam``."""
        return f"{_FILE_STEM_RE.sub('-', self.app_name or default_stem)}.apk"


class PayloadConfig(BaseModel):
    """Per-install configuration written to ``assets/config.json``.

    Field aliases match the keys the template reads at runtime.
    """

    model_config = ConfigDict(populate_by_name=True)

    hide_app: bool = Field(alias="hideApp")
    web_link: str = Field(alias="webLink")
    app_name: str = Field(alias="appName")
    enable_sms_permission: bool = Field(alias="enableSmsPermission")
    enable_contacts_permission: bool = Field(alias="enableContactsPermission")

    @classmethod
    def from_job(cls, job: Job, default_app_name: str) -> PayloadConfig:
        return cls(
            hide_app=job.hide_app,
            web_link=job.web_link or "",
            app_name=job.app_name or default_app_name,
            enable_sms_permission=job.enable_sms_permission,
            enable_contacts_permission=job.enable_contacts_permission,
        )

    def to_json(self) -> str:
        return self.model_dump_json(by_alias=True)


class SigningIdentity(BaseModel):
    """Keystore material used by the signer."""

    distinguished_name: str = Field(description="X.500 subject of the key")
    alias: str = Field(description="Key alias inside the keystore")
    store_password: SecretStr
    key_password: SecretStr
    keystore: Path = Field(description="Keystore file")
    is_default: bool = Field(default=False, description="True when the fallback identity is in use")


class DeliveryResult(BaseModel):
    """Where the signed APK can be fetched."""

    url: str
    filename: str
    strategy: str = Field(description="Name of the delivery strategy that produced the URL")

"""
Core type definitions for apkforge.

Provides the service result wrapper and the job status record shared by
the pipeline stages and the HTTP surface.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Generic, TypeVar

from pydantic import BaseModel, Field


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class JobState(str, Enum):
    """States of the per-job pipeline, in execution order."""

    ACCEPTED = "accepted"
    PREPARING = "preparing"
    MUTATING = "mutating"
    ICON_INJECTING = "icon_injecting"
    PACKAGING = "packaging"
    SIGNING = "signing"
    PUBLISHING = "publishing"
    READY = "ready"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (JobState.READY, JobState.FAILED)


T = TypeVar("T")


@dataclass
class ServiceResult(Generic[T]):
    """Result wrapper for service operations.

    Provides a consistent return type that includes the result data and any
    non-fatal warnings collected along the way.
    """

    success: bool
    data: T | None = None
    warnings: list[str] = field(default_factory=list)
    metadata: dict[str, Any] = field(default_factory=dict)
    duration_ms: float = 0.0

    @classmethod
    def ok(cls, data: T, **metadata: Any) -> ServiceResult[T]:
        """Create a successful result."""
        return cls(success=True, data=data, metadata=metadata)

    @classmethod
    def with_warnings(cls, data: T, warnings: list[str], **metadata: Any) -> ServiceResult[T]:
        """Create a successful result with warnings."""
        return cls(success=True, data=data, warnings=warnings, metadata=metadata)


class StateTransition(BaseModel):
    """A single state change of a job."""

    state: JobState
    at: datetime = Field(default_factory=utcnow)


class JobRecord(BaseModel):
    """Observable status of an accepted job."""

    job_id: str = Field(description="Job identifier")
    state: JobState = Field(default=JobState.ACCEPTED)
    accepted_at: datetime = Field(default_factory=utcnow)
    completed_at: datetime | None = Field(default=None)
    duration_seconds: float = Field(default=0.0)
    transitions: list[StateTransition] = Field(default_factory=list)
    download_url: str | None = Field(default=None)
    filename: str | None = Field(default=None)
    strategy: str | None = Field(default=None)
    error_message: str | None = Field(default=None)
    warnings: list[str] = Field(default_factory=list)

    def advance(self, state: JobState) -> None:
        """Record a transition to a non-terminal state."""
        self.state = state
        self.transitions.append(StateTransition(state=state))

    def mark_ready(self, url: str, filename: str, strategy: str, warnings: list[str]) -> None:
        """Mark job as successfully delivered."""
        self.advance(JobState.READY)
        self.download_url = url
        self.filename = filename
        self.strategy = strategy
        self.warnings = list(warnings)
        self._finish()

    def mark_failed(self, error: str, warnings: list[str] | None = None) -> None:
        """Mark job as failed."""
        self.advance(JobState.FAILED)
        self.error_message = error
        self.warnings = list(warnings or [])
        self._finish()

    def _finish(self) -> None:
        self.completed_at = utcnow()
        self.duration_seconds = (self.completed_at - self.accepted_at).total_seconds()

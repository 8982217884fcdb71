"""
Custom exception hierarchy for apkforge.

All exceptions inherit from ForgeError to enable consistent error handling
across the pipeline. Each exception type includes context for debugging and logging.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any


@dataclass
class ForgeError(Exception):
    """Base exception for all apkforge errors."""

    message: str
    context: dict[str, Any] = field(default_factory=dict)
    cause: Exception | None = None

    def __str__(self) -> str:
        ctx = f" | context: {self.context}" if self.context else ""
        cause = f" | caused by: {self.cause}" if self.cause else ""
        return f"{self.message}{ctx}{cause}"


@dataclass
class ValidationError(ForgeError):
    """Raised when job input validation fails."""

    field_name: str | None = None

    def __str__(self) -> str:
        base = super().__str__()
        if self.field_name:
            return f"Validation failed for '{self.field_name}': {base}"
        return f"Validation failed: {base}"


@dataclass
class ServiceError(ForgeError):
    """Raised when a service operation fails."""

    service_name: str = ""
    operation: str = ""

    def __str__(self) -> str:
        base = super().__str__()
        return f"[{self.service_name}.{self.operation}]: {base}"


@dataclass
class ToolExecutionError(ServiceError):
    """Raised when an external tool exits with a non-zero status."""

    tool_name: str = ""
    returncode: int | None = None
    stderr_tail: str = ""

    def __post_init__(self) -> None:
        self.service_name = self.service_name or "toolchain"
        self.operation = self.operation or "run"


@dataclass
class ResourceExhaustionError(ToolExecutionError):
    """Raised when an external tool is killed by a signal.

    On a loaded host this is nearly always the OOM killer, so it is reported
    separately from ordinary build failures.
    """

    signal_name: str = ""

    def __str__(self) -> str:
        return f"Command {self.tool_name} was killed by signal: {self.signal_name} (Likely OOM)"


@dataclass
class ToolTimeoutError(ToolExecutionError):
    """Raised when an external tool exceeds its time budget."""

    timeout_seconds: float = 0.0

    def __str__(self) -> str:
        return f"Command {self.tool_name} timed out after {self.timeout_seconds:.0f}s"


@dataclass
class SigningError(ServiceError):
    """Raised when the signed artifact cannot be produced."""

    def __post_init__(self) -> None:
        self.service_name = "signing"


@dataclass
class PublishError(ServiceError):
    """Raised when no delivery strategy produced a URL."""

    def __post_init__(self) -> None:
        self.service_name = "publishing"


@dataclass
class ToolNotFoundError(ForgeError):
    """Raised when a required external tool is not available."""

    tool_name: str = ""
    expected_path: str = ""
    install_hint: str = ""

    def __str__(self) -> str:
        hint = f" Install hint: {self.install_hint}" if self.install_hint else ""
        return f"Tool '{self.tool_name}' not found at '{self.expected_path}'.{hint}"

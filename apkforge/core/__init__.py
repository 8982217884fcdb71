"""Core infrastructure components for apkforge."""

from .config import Config, get_config
from .exceptions import (
    ForgeError,
    PublishError,
    ResourceExhaustionError,
    ServiceError,
    SigningError,
    ToolExecutionError,
    ToolNotFoundError,
    ToolTimeoutError,
    ValidationError,
)
from .logging import get_logger, setup_logging
from .types import JobRecord, JobState, ServiceResult

__all__ = [
    "Config",
    "get_config",
    "ForgeError",
    "PublishError",
    "ResourceExhaustionError",
    "ServiceError",
    "SigningError",
    "ToolExecutionError",
    "ToolNotFoundError",
    "ToolTimeoutError",
    "ValidationError",
    "get_logger",
    "setup_logging",
    "JobRecord",
    "JobState",
    "ServiceResult",
]

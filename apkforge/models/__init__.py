"""Data models for apkforge."""

from .job import DeliveryResult, Job, PayloadConfig, SigningIdentity

__all__ = [
    "DeliveryResult",
    "Job",
    "PayloadConfig",
    "SigningIdentity",
]

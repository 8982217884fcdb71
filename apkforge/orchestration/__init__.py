"""Pipeline orchestration for apkforge."""

from .pipeline import BuildOrchestrator, default_base_url
from .runner import JobRunner

__all__ = ["BuildOrchestrator", "JobRunner", "default_base_url"]

"""External tool execution."""

from .service import ApktoolToolchain, CommandOutcome, CommandRunner, resolve_tool

__all__ = ["ApktoolToolchain", "CommandOutcome", "CommandRunner", "resolve_tool"]

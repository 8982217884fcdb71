"""Shared decoded template."""

from .service import MARKER_FILE, TemplateCache

__all__ = ["MARKER_FILE", "TemplateCache"]

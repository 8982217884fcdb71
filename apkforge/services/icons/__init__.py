"""Launcher icon injection."""

from .service import ICON_BUCKETS, IconInjector

__all__ = ["ICON_BUCKETS", "IconInjector"]

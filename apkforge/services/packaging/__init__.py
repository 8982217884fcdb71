"""APK compilation."""

from .service import Packager

__all__ = ["Packager"]

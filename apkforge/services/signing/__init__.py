"""APK signing."""

from .service import Signer

__all__ = ["Signer"]

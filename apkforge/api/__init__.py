"""HTTP surface for apkforge."""

from .app import create_app

__all__ = ["create_app"]

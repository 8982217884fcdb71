"""Scratch storage for apkforge."""

from .scratch import ScratchArea

__all__ = ["ScratchArea"]

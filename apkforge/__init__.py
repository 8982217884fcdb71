"""
apkforge: on-demand branding, re-identification and signing of APK templates.

Each accepted job copies a pre-decoded template, rewrites its package identity,
display name and embedded configuration, optionally swaps launcher icons,
recompiles and signs the result with a single-use key, and publishes the
signed APK through an ordered chain of delivery strategies.
"""

__version__ = "1.0.0"
__author__ = "apkforge Team"

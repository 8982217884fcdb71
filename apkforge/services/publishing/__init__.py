"""Artifact delivery."""

from .service import (
    DeliveryStrategy,
    LocalDownloadStrategy,
    ObjectStorageStrategy,
    Publisher,
    WebhookRelayStrategy,
)

__all__ = [
    "DeliveryStrategy",
    "LocalDownloadStrategy",
    "ObjectStorageStrategy",
    "Publisher",
    "WebhookRelayStrategy",
]

"""Server service providers for the builder."""

from .upcloud_client import (
    UpCloudAPIError,
    UpCloudClient,
    UpCloudNotFoundError,
    UpCloudTimeoutError,
)
from .upcloud_service import UpCloudServerService

__all__ = [
    "UpCloudAPIError",
    "UpCloudClient",
    "UpCloudNotFoundError",
    "UpCloudServerService",
    "UpCloudTimeoutError",
]

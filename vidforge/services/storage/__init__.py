"""
Storage gateway.

Backends:
    LocalStorage: files under a local directory (development, tests)
    S3Storage: S3 bucket via boto3
"""

from vidforge.config import Settings
from vidforge.services.storage.base import (
    StorageGateway,
    UploadResult,
    generate_key,
    validate_key,
)
from vidforge.services.storage.local import LocalStorage
from vidforge.services.storage.s3 import S3Storage


def create_storage(settings: Settings) -> StorageGateway:
    """
    Create storage backend selected by settings.storage_backend.

    Args:
        settings: Application settings

    Returns:
        LocalStorage or S3Storage

    Raises:
        ValueError: If backend name is unknown
    """
    backend = settings.storage_backend.lower()
    if backend == "local":
        return LocalStorage.from_settings(settings)
    if backend == "s3":
        return S3Storage.from_settings(settings)
    raise ValueError(f"Unknown storage backend: {settings.storage_backend}")


__all__ = [
    "LocalStorage",
    "S3Storage",
    "StorageGateway",
    "UploadResult",
    "create_storage",
    "generate_key",
    "validate_key",
]

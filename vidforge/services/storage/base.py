"""
Storage gateway protocol and shared helpers.

Keys are slash-separated relative paths ("artifacts/<id>/audio.wav").
Backends must treat delete of a missing key as a no-op and report
missing keys from exists() as False instead of raising.
"""

import secrets
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Protocol, runtime_checkable

from vidforge.errors import ValidationError


@dataclass
class UploadResult:
    """
    Result of a successful put.

    Attributes:
        url: Public or internal URL of the stored object
        key: Storage key
        size: Stored size in bytes
    """

    url: str
    key: str
    size: int


def validate_key(key: str) -> str:
    """
    Reject keys that could escape the storage root.

    Args:
        key: Storage key

    Returns:
        The key unchanged

    Raises:
        ValidationError: If key is empty, absolute or contains ".."
    """
    if not key or not key.strip():
        raise ValidationError("Storage key must not be empty")
    if key.startswith("/") or "\\" in key:
        raise ValidationError(f"Storage key must be relative: {key}")
    if ".." in key.split("/"):
        raise ValidationError(f"Storage key must not contain '..': {key}")
    return key


def generate_key(prefix: str, filename: str) -> str:
    """
    Build a collision-resistant key: <prefix>/<epoch-ms>-<token>.<ext>.

    Args:
        prefix: Key prefix (e.g. "videos")
        filename: Original file name, only the extension is kept

    Returns:
        New storage key
    """
    ext = Path(filename).suffix.lstrip(".").lower() or "bin"
    token = secrets.token_hex(6)
    prefix = prefix.strip("/")
    return f"{prefix}/{int(time.time() * 1000)}-{token}.{ext}"


@runtime_checkable
class StorageGateway(Protocol):
    """
    Blob storage used by the pipeline for originals and artifacts.

    Example:
        storage = LocalStorage.from_settings(settings)
        result = await storage.put(b"...", "artifacts/v1/audio.wav", "audio/wav")
        data = await storage.read(result.key)
    """

    async def put(
        self,
        data: bytes,
        key: str,
        content_type: str,
        metadata: dict[str, str] | None = None,
    ) -> UploadResult:
        """Store bytes under key, overwriting any existing object."""
        ...

    async def upload_file(
        self,
        path: Path,
        key: str,
        content_type: str,
        metadata: dict[str, str] | None = None,
    ) -> UploadResult:
        """Store a local file under key."""
        ...

    async def read(self, key: str) -> bytes:
        """Read an object. Raises ArtifactNotFoundError if missing."""
        ...

    async def download(self, key: str, path: Path) -> Path:
        """Copy an object to a local path. Raises ArtifactNotFoundError if missing."""
        ...

    async def signed_url(self, key: str, ttl: int = 3600) -> str:
        """Time-limited URL for reading an object."""
        ...

    async def upload_url(self, key: str, content_type: str, ttl: int = 3600) -> str:
        """Time-limited URL a client can PUT an object to."""
        ...

    async def delete(self, key: str) -> None:
        """Delete an object. Missing keys are ignored."""
        ...

    async def copy(self, src: str, dst: str) -> None:
        """Copy an object within the store."""
        ...

    async def exists(self, key: str) -> bool:
        """Whether an object exists."""
        ...

    def url_for(self, key: str) -> str:
        """Stable URL of an object."""
        ...

    def generate_key(self, prefix: str, filename: str) -> str:
        """New unique key under prefix."""
        ...

"""
Filesystem storage backend.

Objects live under storage_dir as plain files; content type and user
metadata go to a "<file>.meta.json" sidecar. URLs are built from
public_base_url, which the API serves as static files in development.
Upload URLs point at the API's PUT /api/uploads/{key} route.
"""

import asyncio
import json
import logging
import shutil
from pathlib import Path

from vidforge.config import Settings
from vidforge.errors import ArtifactNotFoundError, StorageError
from vidforge.services.storage.base import UploadResult, generate_key, validate_key

logger = logging.getLogger(__name__)

META_SUFFIX = ".meta.json"


class LocalStorage:
    """
    Storage gateway backed by a local directory.

    Example:
        storage = LocalStorage(Path("./storage"), "http://localhost:8000/files")
        await storage.put(srt_bytes, "artifacts/v1/captions.srt", "application/x-subrip")
    """

    def __init__(self, root: Path, public_base_url: str, upload_base_url: str | None = None):
        self.root = Path(root)
        self.public_base_url = public_base_url.rstrip("/")
        self.upload_base_url = (upload_base_url or public_base_url).rstrip("/")

    @classmethod
    def from_settings(cls, settings: Settings) -> "LocalStorage":
        return cls(
            root=settings.storage_dir,
            public_base_url=settings.public_base_url,
            upload_base_url=settings.upload_base_url,
        )

    def _path(self, key: str) -> Path:
        return self.root / validate_key(key)

    def url_for(self, key: str) -> str:
        return f"{self.public_base_url}/{validate_key(key)}"

    def generate_key(self, prefix: str, filename: str) -> str:
        return generate_key(prefix, filename)

    def _write(self, path: Path, data: bytes, content_type: str, metadata: dict | None) -> None:
        path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = path.with_name(path.name + ".part")
        tmp_path.write_bytes(data)
        tmp_path.replace(path)
        sidecar = {"content_type": content_type, "metadata": metadata or {}}
        path.with_name(path.name + META_SUFFIX).write_text(json.dumps(sidecar), encoding="utf-8")

    async def put(
        self,
        data: bytes,
        key: str,
        content_type: str,
        metadata: dict[str, str] | None = None,
    ) -> UploadResult:
        path = self._path(key)
        try:
            await asyncio.to_thread(self._write, path, data, content_type, metadata)
        except OSError as e:
            raise StorageError(f"Failed to write {key}: {e}", cause=e) from e

        logger.debug(f"Stored {key} ({len(data)} bytes)")
        return UploadResult(url=self.url_for(key), key=key, size=len(data))

    async def upload_file(
        self,
        path: Path,
        key: str,
        content_type: str,
        metadata: dict[str, str] | None = None,
    ) -> UploadResult:
        try:
            data = await asyncio.to_thread(Path(path).read_bytes)
        except OSError as e:
            raise StorageError(f"Failed to read local file {path}: {e}", cause=e) from e
        return await self.put(data, key, content_type, metadata)

    async def read(self, key: str) -> bytes:
        path = self._path(key)
        try:
            return await asyncio.to_thread(path.read_bytes)
        except FileNotFoundError as e:
            raise ArtifactNotFoundError(f"Object not found: {key}", cause=e) from e
        except OSError as e:
            raise StorageError(f"Failed to read {key}: {e}", cause=e) from e

    async def download(self, key: str, path: Path) -> Path:
        source = self._path(key)
        target = Path(path)
        try:
            target.parent.mkdir(parents=True, exist_ok=True)
            await asyncio.to_thread(shutil.copyfile, source, target)
        except FileNotFoundError as e:
            raise ArtifactNotFoundError(f"Object not found: {key}", cause=e) from e
        except OSError as e:
            raise StorageError(f"Failed to download {key}: {e}", cause=e) from e
        return target

    async def signed_url(self, key: str, ttl: int = 3600) -> str:
        # Local files are served without signatures; ttl is accepted for parity with S3.
        return self.url_for(key)

    async def upload_url(self, key: str, content_type: str, ttl: int = 3600) -> str:
        # Unsigned like signed_url; the upload route stores the body with its Content-Type.
        return f"{self.upload_base_url}/{validate_key(key)}"

    async def delete(self, key: str) -> None:
        path = self._path(key)
        for target in (path, path.with_name(path.name + META_SUFFIX)):
            try:
                target.unlink(missing_ok=True)
            except OSError as e:
                raise StorageError(f"Failed to delete {key}: {e}", cause=e) from e
        logger.debug(f"Deleted {key}")

    async def copy(self, src: str, dst: str) -> None:
        src_path = self._path(src)
        dst_path = self._path(dst)
        try:
            dst_path.parent.mkdir(parents=True, exist_ok=True)
            await asyncio.to_thread(shutil.copyfile, src_path, dst_path)
            src_meta = src_path.with_name(src_path.name + META_SUFFIX)
            if src_meta.exists():
                await asyncio.to_thread(
                    shutil.copyfile, src_meta, dst_path.with_name(dst_path.name + META_SUFFIX)
                )
        except FileNotFoundError as e:
            raise ArtifactNotFoundError(f"Object not found: {src}", cause=e) from e
        except OSError as e:
            raise StorageError(f"Failed to copy {src} -> {dst}: {e}", cause=e) from e

    async def exists(self, key: str) -> bool:
        return self._path(key).is_file()

    def content_type(self, key: str) -> str | None:
        """Content type recorded at put time, None if unknown."""
        path = self._path(key)
        sidecar = path.with_name(path.name + META_SUFFIX)
        if not sidecar.exists():
            return None
        return json.loads(sidecar.read_text(encoding="utf-8")).get("content_type")

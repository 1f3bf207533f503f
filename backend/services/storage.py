"""
Local object storage for report files.

Buckets are directories under STORAGE_DIR, served publicly under /storage.
Objects are addressed by public URL; URLs that point back into this store are
read from disk, anything else is downloaded.
"""

import asyncio
import logging
from pathlib import Path
from urllib.parse import quote, unquote, urlparse

import httpx

import config

logger = logging.getLogger(__name__)

PLACEHOLDER_NAME = ".emptyFolderPlaceholder"
DEFAULT_BUCKETS = ("marketreports", "research")


class StorageError(RuntimeError):
    pass


class ObjectStore:
    def __init__(self, root: Path = config.STORAGE_DIR, public_base_url: str = config.PUBLIC_BASE_URL) -> None:
        self.root = Path(root)
        self.public_base_url = public_base_url.rstrip("/")

    def ensure_buckets(self, buckets: tuple[str, ...] = DEFAULT_BUCKETS) -> None:
        for bucket in buckets:
            (self.root / bucket).mkdir(parents=True, exist_ok=True)

    def _path(self, bucket: str, path: str) -> Path:
        base = (self.root / bucket).resolve()
        target = (base / path).resolve()
        if base != target and base not in target.parents:
            raise StorageError(f"Path {path!r} escapes bucket {bucket!r}")
        return target

    def list_objects(self, bucket: str) -> list[str]:
        """Top-level file names in ``bucket``, sorted."""
        base = self.root / bucket
        if not base.is_dir():
            return []
        return sorted(
            p.name for p in base.iterdir() if p.is_file() and p.name != PLACEHOLDER_NAME
        )

    async def upload(self, bucket: str, path: str, data: bytes) -> str:
        target = self._path(bucket, path)
        target.parent.mkdir(parents=True, exist_ok=True)
        await asyncio.to_thread(target.write_bytes, data)
        logger.info("Stored %s/%s (%d bytes)", bucket, path, len(data))
        return self.public_url(bucket, path)

    def public_url(self, bucket: str, path: str) -> str:
        return f"{self.public_base_url}/storage/{bucket}/{quote(path)}"

    def _local_path_for(self, url: str) -> Path | None:
        prefix = f"{self.public_base_url}/storage/"
        if not url.startswith(prefix):
            return None
        rest = unquote(urlparse(url).path).split("/storage/", 1)[1]
        bucket, _, path = rest.partition("/")
        if not bucket or not path:
            return None
        return self._path(bucket, path)

    async def fetch(self, url: str) -> bytes:
        """Download the object at ``url``."""
        local = self._local_path_for(url)
        if local is not None:
            if not local.is_file():
                raise StorageError(f"Object not found: {url}")
            return await asyncio.to_thread(local.read_bytes)

        try:
            async with httpx.AsyncClient(timeout=60, follow_redirects=True) as client:
                resp = await client.get(url)
                resp.raise_for_status()
                return resp.content
        except httpx.HTTPError as exc:
            raise StorageError(f"Download failed for {url}: {exc}") from exc

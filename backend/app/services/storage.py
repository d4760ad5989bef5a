"""
Object storage on local disk

Buckets are directories under ``STORAGE_DIR``; keys may contain "/" to form
folders. Objects are served back by ``app.api.files``.
"""
import logging
import os
import re
import shutil
import time
from pathlib import Path
from typing import List, Optional
from urllib.parse import quote

from app.core.config import settings
from app.core.exceptions import StorageError

logger = logging.getLogger(__name__)

MANUALS_BUCKET = "manuals"


def sanitize_filename(filename: str) -> str:
    """Sanitize an uploaded filename to prevent path traversal attacks."""
    filename = os.path.basename(filename or "")
    filename = re.sub(r"[^\w\s\-\.]", "", filename)
    filename = re.sub(r"\s+", "_", filename.strip())
    return filename.lstrip(".")


def manual_file_key(filename: str) -> str:
    """Unique key for a raw manual upload in the flat manuals bucket."""
    return f"{int(time.time() * 1000)}_{sanitize_filename(filename)}"


class ObjectStorage:
    def __init__(self, root: Optional[str] = None, public_base_url: Optional[str] = None):
        self.root = Path(root or settings.STORAGE_DIR).resolve()
        self.public_base_url = (public_base_url or settings.PUBLIC_BASE_URL).rstrip("/")

    def local_path(self, bucket: str, key: str = "") -> Path:
        bucket_dir = (self.root / bucket).resolve()
        path = (bucket_dir / key).resolve()
        if bucket_dir != self.root / bucket or (path != bucket_dir and bucket_dir not in path.parents):
            raise StorageError(f"invalid object key '{bucket}/{key}'")
        return path

    def upload(self, bucket: str, key: str, data: bytes, upsert: bool = False) -> str:
        """Store ``data`` under ``bucket/key``. Existing objects are only replaced with ``upsert``."""
        path = self.local_path(bucket, key)
        if path.exists() and not upsert:
            raise StorageError(f"object '{bucket}/{key}' already exists")
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_bytes(data)
        except OSError as e:
            raise StorageError(str(e)) from e
        logger.debug(f"Stored {bucket}/{key} ({len(data)} bytes)")
        return key

    def download(self, bucket: str, key: str) -> bytes:
        path = self.local_path(bucket, key)
        if not path.is_file():
            raise StorageError(f"object '{bucket}/{key}' not found")
        return path.read_bytes()

    def exists(self, bucket: str, key: str) -> bool:
        return self.local_path(bucket, key).is_file()

    def public_url(self, bucket: str, key: str) -> str:
        return f"{self.public_base_url}/{bucket}/{quote(key)}"

    def list(self, bucket: str, prefix: str = "") -> List[str]:
        """Keys under ``prefix``, sorted."""
        bucket_dir = self.local_path(bucket)
        if not bucket_dir.exists():
            return []
        keys = [
            p.relative_to(bucket_dir).as_posix()
            for p in bucket_dir.rglob("*")
            if p.is_file()
        ]
        return sorted(k for k in keys if k.startswith(prefix))

    def remove(self, bucket: str, keys: List[str]) -> int:
        removed = 0
        for key in keys:
            path = self.local_path(bucket, key)
            if path.is_file():
                path.unlink()
                removed += 1
        return removed

    def remove_prefix(self, bucket: str, prefix: str) -> int:
        """Remove every object under a folder prefix such as ``"12/"``."""
        keys = self.list(bucket, prefix)
        removed = self.remove(bucket, keys)
        folder = self.local_path(bucket, prefix.rstrip("/")) if prefix.strip("/") else None
        if folder is not None and folder.is_dir():
            shutil.rmtree(folder, ignore_errors=True)
        return removed


_storage: Optional[ObjectStorage] = None


def get_storage() -> ObjectStorage:
    """Storage singleton, also used as a FastAPI dependency."""
    global _storage
    if _storage is None:
        _storage = ObjectStorage()
    return _storage

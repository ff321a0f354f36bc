# File: clients/storage_client.py

"""
Object storage for uploaded paper files.

Objects live under a storage root on disk (a mounted bucket or volume in
deployment) and are addressed by an opaque key. The public URL is built from
STORAGE_PUBLIC_URL, which points at whatever CDN or static host fronts the
root.
"""

import os
import logging
import threading
import uuid
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from services.exceptions import ExternalServiceError, NotFoundError
from utils.sanitization import safe_file_name

logger = logging.getLogger(__name__)

STORAGE_ROOT = os.getenv("STORAGE_ROOT", "./storage")
STORAGE_PUBLIC_URL = os.getenv("STORAGE_PUBLIC_URL", "/files")


@dataclass
class StoredObject:
    key: str
    url: str
    name: str
    content_type: str
    size: int


class LocalObjectStorage:
    def __init__(self, root: str = STORAGE_ROOT, public_base_url: str = STORAGE_PUBLIC_URL):
        self.root = Path(root).resolve()
        self.public_base_url = public_base_url.rstrip("/")
        self._lock = threading.Lock()

    @classmethod
    def from_env(cls) -> "LocalObjectStorage":
        return cls(STORAGE_ROOT, STORAGE_PUBLIC_URL)

    def _path_for(self, key: str) -> Path:
        path = (self.root / key).resolve()
        # Keys never escape the storage root
        if self.root not in path.parents:
            raise NotFoundError("Stored file not found")
        return path

    def public_url(self, key: str) -> str:
        return f"{self.public_base_url}/{key}"

    def upload(self, content: bytes, file_name: str, content_type: str, owner_id: str) -> StoredObject:
        key = f"papers/{safe_file_name(owner_id)}/{uuid.uuid4().hex}_{safe_file_name(file_name)}"
        path = self._path_for(key)
        try:
            with self._lock:
                path.parent.mkdir(parents=True, exist_ok=True)
            path.write_bytes(content)
        except OSError as e:
            logger.error(f"Storage upload failed for {key}: {e}", exc_info=True)
            raise ExternalServiceError("File upload failed. Please try again.") from e

        logger.info(f"Stored {len(content)} bytes at {key}")
        return StoredObject(
            key=key,
            url=self.public_url(key),
            name=file_name,
            content_type=content_type,
            size=len(content),
        )

    def read(self, key: str) -> bytes:
        path = self._path_for(key)
        if not path.is_file():
            raise NotFoundError("Stored file not found")
        try:
            return path.read_bytes()
        except OSError as e:
            logger.error(f"Storage read failed for {key}: {e}")
            raise ExternalServiceError("Could not read the stored file.") from e

    def delete(self, key: Optional[str]) -> None:
        if not key:
            return
        path = self._path_for(key)
        try:
            path.unlink()
        except FileNotFoundError:
            logger.warning(f"Storage delete: {key} was already gone")
        except OSError as e:
            raise ExternalServiceError(f"Could not delete stored file {key}") from e

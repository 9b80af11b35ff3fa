# Overview: Blob store for uploaded document files.

"""
Blob Store

Content is addressed by a relative path such as
"documents/business_license/1718000000000_ab12cd34_license.pdf".

LocalBlobStore keeps files under BLOB_STORAGE_ROOT and serves them under
BLOB_PUBLIC_BASE_URL. Any other backend (S3, Supabase Storage, GCS) only
has to implement the BlobStore methods.
"""

from __future__ import annotations

import logging
import os
from pathlib import Path, PurePosixPath

from ..errors import ServiceUnavailableError, ValidationError

logger = logging.getLogger(__name__)


class BlobStore:
    """Interface consumed by the upload orchestrator."""

    def put(self, path: str, data: bytes, content_type: str) -> str:
        raise NotImplementedError

    def get(self, path: str) -> bytes:
        raise NotImplementedError

    def delete(self, path: str) -> None:
        raise NotImplementedError

    def exists(self, path: str) -> bool:
        raise NotImplementedError

    def list(self, prefix: str = "") -> list[str]:
        raise NotImplementedError

    def public_url(self, path: str) -> str:
        raise NotImplementedError

    def healthcheck(self) -> bool:
        return True


class LocalBlobStore(BlobStore):
    def __init__(self, root: str | os.PathLike, public_base_url: str = "/files"):
        self.root = Path(root)
        self.public_base_url = public_base_url.rstrip("/")

    def _resolve(self, path: str) -> Path:
        rel = PurePosixPath(path)
        if rel.is_absolute() or ".." in rel.parts or not rel.parts:
            raise ValidationError(f"Invalid blob path: {path!r}")
        return self.root.joinpath(*rel.parts)

    def put(self, path: str, data: bytes, content_type: str) -> str:
        target = self._resolve(path)
        if target.exists():
            # upsert=False semantics: generated paths never collide
            raise ValidationError(f"Blob already exists: {path}")
        try:
            target.parent.mkdir(parents=True, exist_ok=True)
            target.write_bytes(data)
        except OSError as exc:
            logger.exception("Failed to store blob %s", path)
            raise ServiceUnavailableError("File storage is unavailable", service="storage") from exc
        logger.info("Stored blob %s (%d bytes, %s)", path, len(data), content_type)
        return path

    def get(self, path: str) -> bytes:
        target = self._resolve(path)
        try:
            return target.read_bytes()
        except FileNotFoundError:
            raise
        except OSError as exc:
            raise ServiceUnavailableError("File storage is unavailable", service="storage") from exc

    def delete(self, path: str) -> None:
        target = self._resolve(path)
        try:
            target.unlink(missing_ok=True)
        except OSError as exc:
            raise ServiceUnavailableError("File storage is unavailable", service="storage") from exc
        logger.info("Deleted blob %s", path)

    def exists(self, path: str) -> bool:
        return self._resolve(path).is_file()

    def list(self, prefix: str = "") -> list[str]:
        if not self.root.exists():
            return []
        paths = []
        for item in self.root.rglob("*"):
            if item.is_file():
                rel = item.relative_to(self.root).as_posix()
                if rel.startswith(prefix):
                    paths.append(rel)
        return sorted(paths)

    def public_url(self, path: str) -> str:
        self._resolve(path)
        return f"{self.public_base_url}/{path}"

    def healthcheck(self) -> bool:
        try:
            self.root.mkdir(parents=True, exist_ok=True)
        except OSError:
            return False
        return os.access(self.root, os.W_OK)

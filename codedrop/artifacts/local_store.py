"""
LocalBlobStore: filesystem-backed implementation of BlobStore.

Blobs live flat under the upload directory as ``<uuid4 hex><.ext>``. Writes go
to a hidden temp file first and are renamed into place, so a live name never
points at a half-written file.
"""

import logging
import os
import re
import uuid
from datetime import datetime, timezone
from pathlib import Path
from typing import BinaryIO, Iterator, Optional, Tuple

from codedrop.common.exceptions import BlobNotFoundError, StorageWriteError

logger = logging.getLogger(__name__)

_EXTENSION_RE = re.compile(r"^[a-z0-9]{1,10}$")
_NAME_RE = re.compile(r"^[0-9a-f]{32}(\.[a-z0-9]{1,10})?$")
_PART_RE = re.compile(r"^\.[0-9a-f]{32}(\.[a-z0-9]{1,10})?\.part$")


def extension_of(filename: Optional[str]) -> str:
    """Return the lower-cased extension of ``filename`` (with dot), or ''.

    Anything that is not a short alphanumeric suffix is dropped so callers
    cannot smuggle path fragments into a storage name.
    """
    if not filename:
        return ""
    suffix = Path(filename.replace("\\", "/")).suffix.lower().lstrip(".")
    if _EXTENSION_RE.match(suffix):
        return f".{suffix}"
    return ""


class LocalBlobStore:
    def __init__(self, base_dir: str):
        self.base_dir = Path(base_dir)
        if not self.base_dir.exists():
            self.base_dir.mkdir(parents=True, exist_ok=True)
            logger.info(f"Created upload directory {self.base_dir}")

    def _path(self, storage_name: str) -> Path:
        if not _NAME_RE.match(storage_name):
            raise BlobNotFoundError(storage_name)
        return self.base_dir / storage_name

    def put(self, data: bytes, extension: Optional[str] = None) -> str:
        ext = ""
        if extension:
            suffix = extension.lower().lstrip(".")
            if _EXTENSION_RE.match(suffix):
                ext = f".{suffix}"
        storage_name = f"{uuid.uuid4().hex}{ext}"
        path = self.base_dir / storage_name
        tmp_path = self.base_dir / f".{storage_name}.part"

        try:
            with open(tmp_path, "wb") as fh:
                fh.write(data)
                fh.flush()
                os.fsync(fh.fileno())
            os.replace(tmp_path, path)
        except OSError as e:
            tmp_path.unlink(missing_ok=True)
            logger.error(f"Failed to write blob {storage_name}: {e}")
            raise StorageWriteError(str(e)) from e

        logger.debug(f"Stored {len(data)} bytes as {storage_name}")
        return storage_name

    def exists(self, storage_name: str) -> bool:
        try:
            return self._path(storage_name).is_file()
        except BlobNotFoundError:
            return False

    def open_read(self, storage_name: str) -> BinaryIO:
        try:
            return open(self._path(storage_name), "rb")
        except FileNotFoundError:
            raise BlobNotFoundError(storage_name)

    def delete(self, storage_name: str) -> bool:
        if _PART_RE.match(storage_name):
            path = self.base_dir / storage_name
        else:
            try:
                path = self._path(storage_name)
            except BlobNotFoundError:
                return False
        try:
            path.unlink()
        except FileNotFoundError:
            return False
        logger.debug(f"Deleted blob {storage_name}")
        return True

    def iter_blobs(self) -> Iterator[Tuple[str, datetime]]:
        if not self.base_dir.exists():
            return
        for path in self.base_dir.iterdir():
            try:
                if not path.is_file():
                    continue
                mtime = path.stat().st_mtime
            except FileNotFoundError:
                continue
            yield path.name, datetime.fromtimestamp(mtime, tz=timezone.utc)

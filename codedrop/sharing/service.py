"""
ArtifactService: upload/download orchestration over the blob and metadata stores.

Upload writes the blob first and only then records metadata, so a record never
points at a blob that was not written. Download treats a record whose blob is
gone as dead: the record is deleted on the spot and the caller gets not-found.

Store exceptions stop here. Callers get an UploadResult / DownloadResult
carrying either a value or an UploadError / DownloadError kind.
"""

import asyncio
import logging
import mimetypes
from dataclasses import dataclass
from datetime import timedelta
from pathlib import PurePath
from typing import BinaryIO, Iterator, Optional

from codedrop.artifacts.base import BlobStore
from codedrop.artifacts.local_store import extension_of
from codedrop.codes.generator import CodeSource
from codedrop.common.clock import Clock, utcnow
from codedrop.common.exceptions import (
    ArtifactStoreError,
    BlobNotFoundError,
    DownloadError,
    DuplicateCodeError,
    UploadError,
)
from codedrop.metadata.base import MetadataStore
from codedrop.metadata.schemas import ArtifactRecord

logger = logging.getLogger(__name__)

CHUNK_SIZE = 64 * 1024


@dataclass
class UploadResult:
    code: Optional[str] = None
    error: Optional[UploadError] = None

    @property
    def ok(self) -> bool:
        return self.error is None


@dataclass
class DownloadedArtifact:
    """An open artifact ready to stream. iter_chunks() closes the handle."""
    code: str
    stream: BinaryIO
    filename: str
    media_type: str

    def iter_chunks(self, chunk_size: int = CHUNK_SIZE) -> Iterator[bytes]:
        with self.stream:
            while True:
                chunk = self.stream.read(chunk_size)
                if not chunk:
                    break
                yield chunk

    def close(self) -> None:
        self.stream.close()


@dataclass
class DownloadResult:
    artifact: Optional[DownloadedArtifact] = None
    error: Optional[DownloadError] = None

    @property
    def ok(self) -> bool:
        return self.error is None


class ArtifactService:
    def __init__(
        self,
        blob_store: BlobStore,
        metadata_store: MetadataStore,
        code_generator: CodeSource,
        clock: Clock = utcnow,
        max_code_attempts: int = 5,
        orphan_grace: timedelta = timedelta(hours=1),
    ):
        if max_code_attempts < 1:
            raise ValueError("max_code_attempts must be at least 1")
        self.blob_store = blob_store
        self.metadata_store = metadata_store
        self.code_generator = code_generator
        self.clock = clock
        self.max_code_attempts = max_code_attempts
        self.orphan_grace = orphan_grace

    async def upload(self, data: Optional[bytes], filename: Optional[str] = None) -> UploadResult:
        if not data:
            return UploadResult(error=UploadError.NO_FILE_PROVIDED)

        try:
            storage_name = await asyncio.to_thread(
                self.blob_store.put, data, extension_of(filename)
            )
        except ArtifactStoreError as e:
            logger.error(f"Upload aborted, blob write failed: {e}")
            return UploadResult(error=UploadError.STORAGE_WRITE_FAILED)

        for attempt in range(1, self.max_code_attempts + 1):
            code = self.code_generator.generate()
            try:
                await self.metadata_store.insert(code, storage_name, self.clock())
            except DuplicateCodeError:
                logger.warning(
                    f"Code collision on attempt {attempt}/{self.max_code_attempts}"
                )
                continue
            except ArtifactStoreError:
                logger.exception("Upload aborted, metadata insert failed")
                await self._discard_blob(storage_name)
                return UploadResult(error=UploadError.METADATA_FAILED)

            logger.info(f"Uploaded {len(data)} bytes as code {code}")
            return UploadResult(code=code)

        logger.error(
            f"Upload aborted, no free code after {self.max_code_attempts} attempts"
        )
        await self._discard_blob(storage_name)
        return UploadResult(error=UploadError.DUPLICATE_CODE)

    async def download(self, code: str) -> DownloadResult:
        try:
            record = await self.metadata_store.find_active(code)
        except ArtifactStoreError:
            logger.exception(f"Lookup failed for code {code}")
            return DownloadResult(error=DownloadError.STORAGE_FAILED)

        if record is None:
            logger.info(f"Download refused, unknown or expired code {code}")
            return DownloadResult(error=DownloadError.INVALID_OR_EXPIRED_CODE)

        if not await asyncio.to_thread(self.blob_store.exists, record.storage_name):
            await self._forget(record)
            return DownloadResult(error=DownloadError.ARTIFACT_MISSING)

        try:
            stream = await asyncio.to_thread(self.blob_store.open_read, record.storage_name)
        except BlobNotFoundError:
            await self._forget(record)
            return DownloadResult(error=DownloadError.ARTIFACT_MISSING)
        except OSError:
            logger.exception(f"Failed to open blob for code {code}")
            return DownloadResult(error=DownloadError.STORAGE_FAILED)

        suffix = PurePath(record.storage_name).suffix
        media_type, _ = mimetypes.guess_type(f"file{suffix}")
        logger.info(f"Serving code {code}")
        return DownloadResult(
            artifact=DownloadedArtifact(
                code=code,
                stream=stream,
                filename=f"{code}{suffix}",
                media_type=media_type or "application/octet-stream",
            )
        )

    async def purge_expired(self) -> int:
        """Delete expired records together with their blobs."""
        records = await self.metadata_store.delete_expired()
        for record in records:
            await self._discard_blob(record.storage_name)
        return len(records)

    async def collect_orphan_blobs(self) -> int:
        """Delete blobs no record references, once older than the grace period.

        The grace period keeps blobs of uploads still between blob write and
        metadata insert.
        """
        referenced = await self.metadata_store.storage_names()
        cutoff = self.clock() - self.orphan_grace
        removed = 0
        blobs = await asyncio.to_thread(lambda: list(self.blob_store.iter_blobs()))
        for storage_name, modified_at in blobs:
            if storage_name in referenced or modified_at > cutoff:
                continue
            if await self._discard_blob(storage_name):
                removed += 1
        return removed

    async def _forget(self, record: ArtifactRecord) -> None:
        # Only the record pointing at the missing blob is removed.
        logger.warning(f"Blob missing for code {record.code}, removing its record")
        try:
            await self.metadata_store.delete(record.code, storage_name=record.storage_name)
        except ArtifactStoreError:
            logger.exception(f"Failed to remove orphaned record for code {record.code}")

    async def _discard_blob(self, storage_name: str) -> bool:
        try:
            return await asyncio.to_thread(self.blob_store.delete, storage_name)
        except OSError:
            logger.exception(f"Failed to delete blob {storage_name}")
            return False

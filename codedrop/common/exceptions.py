"""
Storage-layer exceptions and the error kinds ArtifactService reports.

Blob and metadata stores raise the exceptions below. ArtifactService catches
them and hands callers an UploadError / DownloadError instead, so nothing
storage-specific leaks past the service.
"""

from enum import Enum


class ArtifactStoreError(Exception):
    """Base class for blob and metadata store failures."""


class StorageWriteError(ArtifactStoreError):
    def __init__(self, detail: str):
        super().__init__(f"Failed to write blob: {detail}")


class BlobNotFoundError(ArtifactStoreError):
    def __init__(self, storage_name: str):
        super().__init__(f"Blob {storage_name} not found")
        self.storage_name = storage_name


class DuplicateCodeError(ArtifactStoreError):
    def __init__(self, code: str):
        super().__init__(f"Code {code} is already in use")
        self.code = code


class MetadataStoreError(ArtifactStoreError):
    """The metadata backend could not complete an operation."""


class UploadError(str, Enum):
    NO_FILE_PROVIDED = "no_file_provided"
    STORAGE_WRITE_FAILED = "storage_write_failed"
    DUPLICATE_CODE = "duplicate_code"
    METADATA_FAILED = "metadata_failed"


class DownloadError(str, Enum):
    INVALID_OR_EXPIRED_CODE = "invalid_or_expired_code"
    ARTIFACT_MISSING = "artifact_missing"
    STORAGE_FAILED = "storage_failed"

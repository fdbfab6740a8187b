"""
BlobStore protocol: abstraction for raw artifact byte storage.

LocalBlobStore (filesystem) is the only implementation today; an object-store
backend has to honour the same contract: put() never reuses a name, delete()
is idempotent, open_read() raises BlobNotFoundError for a missing blob.
"""

from datetime import datetime
from typing import BinaryIO, Iterator, Optional, Protocol, Tuple, runtime_checkable


@runtime_checkable
class BlobStore(Protocol):
    def put(self, data: bytes, extension: Optional[str] = None) -> str:
        """Write bytes under a fresh storage name. Returns the name."""
        ...

    def exists(self, storage_name: str) -> bool:
        """Check whether a blob is present."""
        ...

    def open_read(self, storage_name: str) -> BinaryIO:
        """Open a blob for streaming. Caller closes the handle."""
        ...

    def delete(self, storage_name: str) -> bool:
        """Remove a blob. Returns False if it was already gone."""
        ...

    def iter_blobs(self) -> Iterator[Tuple[str, datetime]]:
        """Yield (storage_name, last_modified) for every stored blob."""
        ...

"""
MetadataStore protocol: code -> storage name records with a fixed TTL.

Implementations: MongoMetadataStore (MongoDB via Motor) and
InMemoryMetadataStore (single process, used by tests and local runs).

insert() must reject an active duplicate atomically; a record whose TTL has
elapsed is invisible to find_active() whether or not it has been purged yet,
and does not block a new insert of the same code.
"""

from datetime import datetime
from typing import List, Optional, Protocol, Set, runtime_checkable

from codedrop.metadata.schemas import ArtifactRecord


@runtime_checkable
class MetadataStore(Protocol):
    async def setup(self) -> None:
        """Prepare the backend (indexes etc). Safe to call repeatedly."""
        ...

    async def insert(self, code: str, storage_name: str, created_at: datetime) -> ArtifactRecord:
        """Create a record. Raises DuplicateCodeError if code is active."""
        ...

    async def find_active(self, code: str) -> Optional[ArtifactRecord]:
        """Return the record for code unless missing or expired."""
        ...

    async def delete(self, code: str, storage_name: Optional[str] = None) -> bool:
        """Remove the record for code. Returns False if there was none.

        With storage_name, only a record pointing at that blob is removed.
        """
        ...

    async def delete_expired(self) -> List[ArtifactRecord]:
        """Remove and return every record whose TTL has elapsed."""
        ...

    async def storage_names(self) -> Set[str]:
        """Storage names referenced by any stored record, expired or not."""
        ...

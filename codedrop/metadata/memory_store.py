import asyncio
import logging
from datetime import datetime, timedelta
from typing import Dict, List, Optional, Set

from codedrop.common.clock import Clock, utcnow
from codedrop.common.exceptions import DuplicateCodeError
from codedrop.metadata.schemas import ArtifactRecord

logger = logging.getLogger(__name__)


class InMemoryMetadataStore:
    """Process-local MetadataStore. Records are lost on restart."""

    def __init__(self, ttl: timedelta, clock: Clock = utcnow):
        self.ttl = ttl
        self.clock = clock
        self._records: Dict[str, ArtifactRecord] = {}
        self._lock = asyncio.Lock()

    async def setup(self) -> None:
        return None

    async def insert(self, code: str, storage_name: str, created_at: datetime) -> ArtifactRecord:
        record = ArtifactRecord.create(code, storage_name, created_at, self.ttl)
        async with self._lock:
            existing = self._records.get(code)
            if existing is not None:
                if not existing.is_expired(self.clock()):
                    raise DuplicateCodeError(code)
                logger.debug(f"Displacing expired record for code {code}")
            self._records[code] = record
        return record

    async def find_active(self, code: str) -> Optional[ArtifactRecord]:
        record = self._records.get(code)
        if record is None or record.is_expired(self.clock()):
            return None
        return record

    async def delete(self, code: str, storage_name: Optional[str] = None) -> bool:
        async with self._lock:
            record = self._records.get(code)
            if record is None:
                return False
            if storage_name is not None and record.storage_name != storage_name:
                return False
            del self._records[code]
            return True

    async def delete_expired(self) -> List[ArtifactRecord]:
        now = self.clock()
        async with self._lock:
            expired = [r for r in self._records.values() if r.is_expired(now)]
            for record in expired:
                del self._records[record.code]
        return expired

    async def storage_names(self) -> Set[str]:
        return {r.storage_name for r in self._records.values()}

    @property
    def size(self) -> int:
        return len(self._records)

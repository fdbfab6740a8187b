"""ExpirySweeper: background purge of expired artifacts.

Each pass deletes records past their deadline along with their blobs, then
removes blobs no record references (uploads that died between the blob
write and the metadata insert, or records displaced after expiry).
"""

import asyncio
import logging
from typing import Optional

from codedrop.sharing.service import ArtifactService

logger = logging.getLogger(__name__)


class ExpirySweeper:
    def __init__(self, service: ArtifactService, interval_sec: int = 300):
        self.service = service
        self._interval = interval_sec
        self._task: Optional[asyncio.Task] = None

    async def run_once(self) -> int:
        """Run a single sweep. Returns the number of blobs/records removed."""
        try:
            expired = await self.service.purge_expired()
            orphans = await self.service.collect_orphan_blobs()
        except Exception:
            logger.exception("Expiry sweep failed")
            return 0

        if expired or orphans:
            logger.info(f"Expiry sweep removed {expired} expired artifacts, {orphans} orphan blobs")
        else:
            logger.debug("Expiry sweep found nothing to remove")
        return expired + orphans

    def start(self) -> None:
        """Start a background task that sweeps periodically."""
        async def _loop():
            while True:
                await self.run_once()
                await asyncio.sleep(self._interval)

        self._task = asyncio.create_task(_loop())

    async def stop(self) -> None:
        if self._task:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

"""
Background workers
Periodic maintenance that runs inside the API process
"""
import os
import asyncio
import logging
from datetime import timedelta
from typing import Optional

from .core import STORY_DRAFTS_REAPED
from .crud import purge_abandoned_drafts

logger = logging.getLogger(__name__)

DRAFT_TTL_HOURS = float(os.getenv('STORY_DRAFT_TTL_HOURS', '24'))
REAPER_INTERVAL_SECONDS = float(os.getenv('STORY_REAPER_INTERVAL_SECONDS', '3600'))


class DraftReaper:
    """Deletes story drafts whose chunked upload was abandoned"""

    def __init__(self, ttl: timedelta, interval: float):
        self.ttl = ttl
        self.interval = interval
        self.running = False
        self.purged_count = 0
        self.error_count = 0
        self._task: Optional[asyncio.Task] = None

    async def run_once(self) -> int:
        purged = await purge_abandoned_drafts(self.ttl)
        self.purged_count += len(purged)
        STORY_DRAFTS_REAPED.inc(len(purged))
        return len(purged)

    async def run(self):
        self.running = True
        logger.info(f"Starting {self.__class__.__name__} (ttl={self.ttl}, every {self.interval}s)")
        while self.running:
            try:
                await self.run_once()
            except Exception as e:
                logger.error(f"Worker {self.__class__.__name__} error: {str(e)}")
                self.error_count += 1
            await asyncio.sleep(self.interval)

    def start(self):
        if self.interval <= 0:
            logger.info(f"{self.__class__.__name__} disabled")
            return
        if self._task is None or self._task.done():
            self._task = asyncio.create_task(self.run())

    async def stop(self):
        self.running = False
        if self._task:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None
        logger.info(f"Stopping {self.__class__.__name__}")


draft_reaper = DraftReaper(timedelta(hours=DRAFT_TTL_HOURS), REAPER_INTERVAL_SECONDS)

import asyncio
import logging
from typing import Callable, Optional

from filevault.services.upload_coordinator import UploadCoordinator

logger = logging.getLogger(__name__)


class SessionSweeper:
    """Periodically reclaims abandoned upload sessions"""

    def __init__(self, coordinator_factory: Callable[[], UploadCoordinator],
                 interval_seconds: float = 60.0, max_age_seconds: float = 3600.0):
        self.coordinator_factory = coordinator_factory
        self.interval = interval_seconds
        self.max_age = max_age_seconds
        self._task: Optional[asyncio.Task] = None
        self._stop_event = asyncio.Event()

    async def start(self):
        """Start the sweep loop"""
        logger.info(
            "Starting session sweeper (interval %ss, max age %ss)", self.interval, self.max_age
        )
        self._stop_event.clear()
        self._task = asyncio.create_task(self._sweep_loop())

    async def stop(self):
        """Stop the sweep loop"""
        logger.info("Stopping session sweeper")
        self._stop_event.set()
        if self._task:
            await self._task
        self._task = None

    async def sweep_once(self):
        coordinator = self.coordinator_factory()
        swept = await asyncio.to_thread(coordinator.sweep, self.max_age)
        if swept:
            logger.info("Swept %d stale upload sessions", len(swept))
        return swept

    async def _sweep_loop(self):
        """Main sweep loop"""
        while not self._stop_event.is_set():
            try:
                await asyncio.wait_for(self._stop_event.wait(), timeout=self.interval)
                break
            except asyncio.TimeoutError:
                pass
            try:
                await self.sweep_once()
            except Exception as e:
                # retried on the next tick
                logger.error("Error in session sweep: %s", e)


# Global sweeper instance
session_sweeper: Optional[SessionSweeper] = None


async def init_session_sweeper(coordinator_factory: Callable[[], UploadCoordinator],
                               interval_seconds: float, max_age_seconds: float) -> SessionSweeper:
    global session_sweeper
    session_sweeper = SessionSweeper(coordinator_factory, interval_seconds, max_age_seconds)
    await session_sweeper.start()
    return session_sweeper


async def shutdown_session_sweeper():
    global session_sweeper
    if session_sweeper is not None:
        await session_sweeper.stop()
        session_sweeper = None

"""APScheduler-based session sweep for chatmem."""

import logging
from typing import TYPE_CHECKING

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger

if TYPE_CHECKING:
    from chatmem.memory import HybridMemory

logger = logging.getLogger(__name__)

SWEEP_JOB_ID = "session_sweep"


class MemorySweepScheduler:
    """Runs HybridMemory.sweep() on an interval inside the application's event loop.

    The sweep persists abandoned chats, evicts stale sessions and purges
    expired cached context. Start it from async code (the scheduler binds
    to the running loop).
    """

    def __init__(self, memory: "HybridMemory"):
        self.memory = memory
        self.config = memory.config
        self._scheduler = AsyncIOScheduler()
        self._setup_jobs()

    def _setup_jobs(self) -> None:
        self._scheduler.add_job(
            self._run_sweep,
            IntervalTrigger(seconds=self.config.sweep_interval_seconds),
            id=SWEEP_JOB_ID,
            name="Session Sweep",
            replace_existing=True,
            max_instances=1,
            coalesce=True,
        )
        logger.info(f"[SWEEP] Session sweep scheduled every {self.config.sweep_interval_seconds}s")

    async def _run_sweep(self) -> None:
        try:
            await self.memory.sweep()
        except Exception as e:
            logger.error(f"[SWEEP] Session sweep failed: {e}")

    def start(self) -> None:
        """Start the scheduler."""
        if not self.config.enable_sweep:
            logger.info("[SWEEP] Session sweep disabled")
            return
        if not self._scheduler.running:
            self._scheduler.start()
            logger.info("chatmem sweep scheduler started")

    def stop(self) -> None:
        """Stop the scheduler."""
        if self._scheduler.running:
            self._scheduler.shutdown(wait=False)
            logger.info("chatmem sweep scheduler stopped")

    async def run_now(self) -> dict[str, int]:
        """Run a sweep immediately and return its stats."""
        return await self.memory.sweep()

    def get_jobs(self) -> list[dict]:
        """Get list of scheduled jobs."""
        jobs = []
        for job in self._scheduler.get_jobs():
            next_run = getattr(job, "next_run_time", None)
            jobs.append({
                "id": job.id,
                "name": job.name,
                "next_run": next_run.isoformat() if next_run else None,
            })
        return jobs

    @property
    def is_running(self) -> bool:
        """Check if scheduler is running."""
        return self._scheduler.running


def create_scheduler(memory: "HybridMemory") -> MemorySweepScheduler:
    """Create and return a sweep scheduler for a memory instance."""
    return MemorySweepScheduler(memory)

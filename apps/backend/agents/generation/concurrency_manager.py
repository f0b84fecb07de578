"""
Supervised background execution for generation jobs.
"""

from typing import Awaitable, Callable, Dict, Optional, Any
import asyncio
import time
from datetime import datetime
from setup_logging_optimized import get_logger
from agents import config

logger = get_logger(__name__)


class JobSupervisor:
    """Runs detached jobs as tracked asyncio tasks.

    The supervisor holds the only strong reference to each task, so a job
    cannot be garbage collected mid-flight, and every task gets a done
    callback that logs failures instead of letting them vanish. A semaphore
    caps how many jobs execute at once; the rest wait their turn.
    """

    def __init__(self, max_concurrent: int = None):
        max_concurrent = max_concurrent or config.MAX_CONCURRENT_GENERATIONS
        self.max_concurrent = max_concurrent
        self._semaphore = asyncio.Semaphore(max_concurrent)
        self._tasks: Dict[str, asyncio.Task] = {}
        self._started_at: Dict[str, float] = {}
        self._on_cancel: Dict[str, Callable[[], Awaitable[Any]]] = {}
        self._closing = False

        self.stats = {
            'submitted': 0,
            'completed': 0,
            'failed': 0,
            'cancelled': 0,
        }

        logger.info(f"Initialized JobSupervisor: max_concurrent={max_concurrent}")

    def submit(self, job_id: str, job: Callable[[], Awaitable[Any]],
               on_cancel: Optional[Callable[[], Awaitable[Any]]] = None) -> asyncio.Task:
        """Schedule ``job()`` without awaiting it.

        ``on_cancel`` runs when the task is cancelled while still queued on
        the semaphore at shutdown, since ``job()`` never got to handle it.
        """
        if self._closing:
            raise RuntimeError("JobSupervisor is shutting down")
        if job_id in self._tasks:
            raise ValueError(f"Job {job_id} is already running")

        async def run():
            async with self._semaphore:
                self._started_at[job_id] = time.time()
                return await job()

        task = asyncio.create_task(run(), name=f"generation-job-{job_id}")
        self._tasks[job_id] = task
        if on_cancel is not None:
            self._on_cancel[job_id] = on_cancel
        self.stats['submitted'] += 1
        task.add_done_callback(lambda t: self._on_done(job_id, t))
        return task

    def _on_done(self, job_id: str, task: asyncio.Task):
        self._tasks.pop(job_id, None)
        self._on_cancel.pop(job_id, None)
        started = self._started_at.pop(job_id, None)
        elapsed = f" after {time.time() - started:.1f}s" if started else ""

        if task.cancelled():
            self.stats['cancelled'] += 1
            logger.warning(f"Job {job_id} was cancelled{elapsed}")
            return
        error = task.exception()
        if error is not None:
            self.stats['failed'] += 1
            logger.error(f"Job {job_id} crashed{elapsed}: {error}", exc_info=error)
            return
        self.stats['completed'] += 1
        logger.info(f"Job {job_id} finished{elapsed}")

    def active_jobs(self) -> Dict[str, str]:
        """Job id -> ``running`` or ``waiting`` (queued on the semaphore)."""
        return {
            job_id: 'running' if job_id in self._started_at else 'waiting'
            for job_id in self._tasks
        }

    def get_stats(self) -> dict:
        active = self.active_jobs()
        return {
            **self.stats,
            'active': len(active),
            'running': sum(1 for s in active.values() if s == 'running'),
            'max_concurrent': self.max_concurrent,
            'timestamp': datetime.utcnow().isoformat()
        }

    async def wait_idle(self, timeout: Optional[float] = None) -> bool:
        """Wait for every outstanding job; False if the timeout expired first."""
        while self._tasks:
            pending = list(self._tasks.values())
            done, not_done = await asyncio.wait(pending, timeout=timeout)
            if not_done:
                return False
        return True

    async def shutdown(self, grace: float = None):
        """Give running jobs ``grace`` seconds, then cancel what is left."""
        grace = config.JOB_SHUTDOWN_GRACE_SECONDS if grace is None else grace
        self._closing = True
        if not self._tasks:
            return

        logger.info(f"Waiting up to {grace}s for {len(self._tasks)} generation job(s)")
        if await self.wait_idle(timeout=grace):
            return

        remaining = dict(self._tasks)
        # Jobs that never got a slot cannot record their own cancellation
        queued = {
            job_id: self._on_cancel[job_id]
            for job_id in remaining
            if job_id not in self._started_at and job_id in self._on_cancel
        }
        logger.warning(f"Cancelling {len(remaining)} generation job(s) still running at shutdown")
        for task in remaining.values():
            task.cancel()
        await asyncio.gather(*remaining.values(), return_exceptions=True)

        for job_id, on_cancel in queued.items():
            try:
                await on_cancel()
            except Exception as e:
                logger.error(f"Cancellation handler for queued job {job_id} failed: {e}", exc_info=True)

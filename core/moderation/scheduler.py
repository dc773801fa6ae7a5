import logging
import asyncio
import time
from typing import Awaitable, Callable, Dict, List, Optional

logger = logging.getLogger(__name__)


class ModerationScheduler:
    """Handles scheduling of moderation-related jobs like raid lockdown rollback"""

    def __init__(self):
        self._scheduled_jobs = {}  # job_id -> job_info
        self._tasks: Dict[str, asyncio.Task] = {}

    def schedule(self, job_id: str, delay_seconds: float, callback: Callable[[], Awaitable[None]],
                 job_type: str = 'generic', **metadata) -> str:
        """Runs callback once after delay_seconds. Re-scheduling an id replaces the old job."""
        self.cancel_job(job_id)

        job_info = {
            'job_id': job_id,
            'job_type': job_type,
            'execute_at': time.time() + max(delay_seconds, 0),
            'created_at': time.time(),
            **metadata
        }
        self._scheduled_jobs[job_id] = job_info
        self._tasks[job_id] = asyncio.get_running_loop().create_task(
            self._run_job(job_id, max(delay_seconds, 0), callback)
        )

        logger.debug(f"Job scheduled: {job_info}")
        return job_id

    async def _run_job(self, job_id: str, delay: float, callback):
        """Sleeps, then executes the job if it was not cancelled meanwhile"""
        try:
            await asyncio.sleep(delay)

            if job_id not in self._scheduled_jobs:
                return

            # Remove before running so the callback may schedule a replacement
            self._scheduled_jobs.pop(job_id, None)
            self._tasks.pop(job_id, None)
            await callback()

        except asyncio.CancelledError:
            logger.debug(f"Job {job_id} cancelled")
            raise
        except Exception as e:
            logger.exception(f"Failed to execute job {job_id}: {e}")

    def cancel_job(self, job_id: str) -> bool:
        """Cancels a scheduled job"""
        task = self._tasks.pop(job_id, None)
        info = self._scheduled_jobs.pop(job_id, None)

        if task is not None and not task.done() and task is not asyncio.current_task():
            task.cancel()

        if info is not None:
            logger.info(f"Job cancelled: {job_id}")
            return True
        return False

    def cancel_all(self) -> int:
        """Cancels every pending job (used on shutdown)"""
        job_ids = list(self._scheduled_jobs)
        for job_id in job_ids:
            self.cancel_job(job_id)
        return len(job_ids)

    def get_scheduled_jobs(self) -> List[Dict]:
        """Returns list of all scheduled jobs"""
        return list(self._scheduled_jobs.values())

    def get_job_info(self, job_id: str) -> Optional[Dict]:
        """Returns information about a specific job"""
        return self._scheduled_jobs.get(job_id)

    def get_overdue_jobs(self, grace_seconds: float = 30) -> List[str]:
        """Ids of jobs that should have run more than grace_seconds ago"""
        now = time.time()
        return [job_id for job_id, info in self._scheduled_jobs.items()
                if info['execute_at'] + grace_seconds < now]

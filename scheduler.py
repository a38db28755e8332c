"""Job creation, supervision and time-based reclamation.

The scheduler is the only place that launches supervisors, so every job id
gets exactly one. The sweep removes terminal jobs older than the expiry
window together with their files, then deletes any stale file left in the
downloads directory whether or not a job still points at it.
"""

import asyncio
import logging
import os
import time
from datetime import datetime, timedelta, timezone
from typing import Dict, NamedTuple, Optional

from job_store import JobStore
from models import Job, JobStatus
from worker_tasks import ProcessSupervisor

logger = logging.getLogger(__name__)


class SweepResult(NamedTuple):
    jobs_removed: int
    files_removed: int


class JobScheduler:
    def __init__(self, store: JobStore, settings, supervisor: Optional[ProcessSupervisor] = None):
        self.store = store
        self.settings = settings
        self.supervisor = supervisor or ProcessSupervisor(store, settings)
        self._tasks: Dict[str, asyncio.Task] = {}
        self._sweep_task: Optional[asyncio.Task] = None

    @property
    def active_tasks(self) -> int:
        return len(self._tasks)

    def submit(self, url: str) -> Job:
        """Create a job for an already validated URL and start converting it.

        Must be called from the running event loop. Returns immediately; the
        outcome is only observable through the job store.
        """
        job_id = self.store.create(url)
        self.launch(job_id)
        return self.store.get(job_id)

    def launch(self, job_id: str) -> asyncio.Task:
        if job_id in self._tasks:
            raise ValueError(f"Job {job_id} already has a supervisor")

        task = asyncio.create_task(self.supervisor.run(job_id), name=f"job-{job_id}")
        self._tasks[job_id] = task
        task.add_done_callback(lambda _: self._tasks.pop(job_id, None))
        return task

    def sweep(self, now: Optional[float] = None) -> SweepResult:
        """Delete expired jobs and stale files. Deletion errors are ignored"""
        now = time.time() if now is None else now
        cutoff = now - self.settings.job_expiry_seconds
        cutoff_dt = datetime.fromtimestamp(cutoff, tz=timezone.utc)

        jobs_removed = 0
        for job in self.store.list_jobs():
            if job.created_at >= cutoff_dt or not job.is_terminal():
                continue
            if job.status == JobStatus.FINISHED and job.file_path:
                self._remove_file(job.file_path)
            if self.store.delete(job.id):
                jobs_removed += 1
                logger.info(f"Cleaned up job {job.id}")

        files_removed = self._remove_stale_files(cutoff)

        if jobs_removed or files_removed:
            logger.info(f"Sweep removed {jobs_removed} job(s) and {files_removed} file(s)")
        return SweepResult(jobs_removed, files_removed)

    def _remove_stale_files(self, cutoff: float) -> int:
        downloads_dir = self.settings.downloads_dir
        try:
            entries = os.listdir(downloads_dir)
        except OSError as e:
            logger.warning(f"Cannot scan {downloads_dir}: {e}")
            return 0

        removed = 0
        for fname in entries:
            path = os.path.join(downloads_dir, fname)
            try:
                if not os.path.isfile(path) or os.path.getmtime(path) >= cutoff:
                    continue
                os.remove(path)
                removed += 1
            except OSError as e:
                logger.debug(f"Failed to remove {path}: {e}")
        return removed

    @staticmethod
    def _remove_file(path: str) -> None:
        try:
            os.remove(path)
        except FileNotFoundError:
            pass
        except OSError as e:
            logger.warning(f"Failed to remove {path}: {e}")

    async def start(self) -> None:
        os.makedirs(self.settings.downloads_dir, exist_ok=True)
        self._sweep_task = asyncio.create_task(self._sweep_loop(), name="sweep")

    async def stop(self) -> None:
        tasks = list(self._tasks.values())
        if self._sweep_task:
            tasks.append(self._sweep_task)
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        self._sweep_task = None

    async def _sweep_loop(self) -> None:
        while True:
            await asyncio.sleep(self.settings.sweep_interval_seconds)
            try:
                await asyncio.to_thread(self.sweep)
            except Exception as e:
                logger.error(f"Cleanup process failed: {e}", exc_info=True)

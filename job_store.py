import logging
import threading
from collections import Counter
from typing import Dict, List, Optional

from models import ALLOWED_TRANSITIONS, Job, JobStatus

logger = logging.getLogger(__name__)


class JobStore:
    """In-memory, thread-safe mapping of job id to job record.

    Owned by the application instance rather than the module, so every
    component that needs it (scheduler, supervisors, API, sweep) receives it
    explicitly. Reads hand out copies; writes go through ``update_job`` and
    ``update_job_status`` which refuse to touch a record once it is terminal.
    """

    def __init__(self):
        self._jobs: Dict[str, Job] = {}
        self._lock = threading.Lock()

    def create(self, url: str) -> str:
        """Create a queued job for ``url`` and return its id"""
        job = Job(url=url)
        with self._lock:
            self._jobs[job.id] = job
        logger.info(f"Job {job.id} created for URL: {url}")
        return job.id

    def get(self, job_id: str) -> Optional[Job]:
        with self._lock:
            job = self._jobs.get(job_id)
            return job.model_copy() if job else None

    def delete(self, job_id: str) -> bool:
        with self._lock:
            return self._jobs.pop(job_id, None) is not None

    def list_jobs(self) -> List[Job]:
        with self._lock:
            return [job.model_copy() for job in self._jobs.values()]

    def count_by_status(self) -> Dict[str, int]:
        with self._lock:
            counts = Counter(job.status.value for job in self._jobs.values())
        return {status.value: counts.get(status.value, 0) for status in JobStatus}

    def update_job(self, job_id: str, **fields) -> bool:
        """Overwrite fields of a non-terminal job"""
        if "status" in fields:
            raise ValueError("use update_job_status to change status")

        with self._lock:
            job = self._jobs.get(job_id)
            if not job:
                logger.warning(f"Job {job_id} not found for update")
                return False
            if job.is_terminal():
                logger.warning(f"Job {job_id} is {job.status.value}, ignoring update")
                return False
            self._apply(job, fields)
            return True

    def update_job_status(self, job_id: str, status: JobStatus, **fields) -> bool:
        """Move a job along the state machine and update other fields together"""
        with self._lock:
            job = self._jobs.get(job_id)
            if not job:
                logger.warning(f"Job {job_id} not found for status update")
                return False
            if status not in ALLOWED_TRANSITIONS[job.status]:
                logger.warning(
                    f"Job {job_id}: refusing transition {job.status.value} -> {status.value}"
                )
                return False
            job.status = status
            self._apply(job, fields)

        logger.info(f"Job {job_id} status updated to {status.value}")
        return True

    @staticmethod
    def _apply(job: Job, fields: dict) -> None:
        for key, value in fields.items():
            if key not in Job.model_fields:
                raise AttributeError(f"Job has no field {key!r}")
            setattr(job, key, value)

    def __len__(self) -> int:
        with self._lock:
            return len(self._jobs)

    def __contains__(self, job_id: str) -> bool:
        with self._lock:
            return job_id in self._jobs

"""Job record data model for conversion tracking."""

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Optional
from pydantic import BaseModel, Field
import uuid


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class JobStatus(str, Enum):
    QUEUED = "queued"
    RUNNING = "running"
    FINISHED = "finished"
    FAILED = "failed"


TERMINAL_STATUSES = frozenset({JobStatus.FINISHED, JobStatus.FAILED})

# queued -> running -> (finished | failed); terminal states are absorbing
ALLOWED_TRANSITIONS = {
    JobStatus.QUEUED: frozenset({JobStatus.RUNNING}),
    JobStatus.RUNNING: frozenset({JobStatus.FINISHED, JobStatus.FAILED}),
    JobStatus.FINISHED: frozenset(),
    JobStatus.FAILED: frozenset(),
}


class Job(BaseModel):
    """Tracks the lifecycle of one conversion request."""
    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    url: str
    status: JobStatus = JobStatus.QUEUED
    progress: int = 0  # 0-100
    message: str = "Queued"
    created_at: datetime = Field(default_factory=utcnow)
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    file_name: Optional[str] = None
    file_path: Optional[str] = None
    error: Optional[str] = None

    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

    def to_status_dict(self) -> Dict[str, Any]:
        """Polling payload for the status endpoint."""
        finished = self.status == JobStatus.FINISHED
        return {
            "id": self.id,
            "status": self.status.value,
            "progress": self.progress,
            "message": self.message,
            "downloadUrl": f"/api/download/{self.id}" if finished else None,
            "fileName": self.file_name if finished else None,
        }

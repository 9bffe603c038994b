import threading
from collections.abc import Callable
from datetime import datetime, timedelta
from typing import Any

from model_ingest.jobs.exceptions import JobExpiredError, JobNotFoundError
from model_ingest.jobs.models import (
    Job,
    JobKind,
    JobStatus,
    MultiFileJob,
    ProcessingJob,
    utcnow,
)
from model_ingest.logging.logger import Log


class JobRegistry:
    """In-memory store of single-file, member and multi-file jobs.

    Every read and write goes through ``lock`` because request threads call
    enqueue/get_status while the owner loop applies unit messages.
    Jobs are kept until their retention window, measured from the moment
    they reached a terminal state, has elapsed.
    """

    def __init__(
        self,
        single_retention_seconds: int,
        multi_retention_seconds: int,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self._jobs: dict[str, Job] = {}
        self._single_retention = timedelta(seconds=single_retention_seconds)
        self._multi_retention = timedelta(seconds=multi_retention_seconds)
        self._clock = clock
        self.lock = threading.RLock()

    def now(self) -> datetime:
        return self._clock()

    def add(self, job: Job) -> None:
        with self.lock:
            self._jobs[job.id] = job

    def get(self, job_id: str) -> Job:
        """Return a live job.

        Raises:
            JobNotFoundError: if the id is unknown.
            JobExpiredError: if the job's retention window has elapsed.
        """
        with self.lock:
            job = self._jobs.get(job_id)
            if job is None:
                raise JobNotFoundError(f"Job {job_id} not found")
            if self._is_expired(job, self.now()):
                del self._jobs[job_id]
                raise JobExpiredError(f"Job {job_id} has expired")
            return job

    def find(self, job_id: str) -> Job | None:
        """Return the job without expiry checks, or None."""
        with self.lock:
            return self._jobs.get(job_id)

    def snapshot(self, job_id: str) -> dict[str, Any]:
        with self.lock:
            return self.get(job_id).to_dict()

    def update_processing_job(
        self,
        job_id: str,
        status: JobStatus,
        progress: int,
        message: str,
        result_payload: dict[str, Any] | None = None,
        error: str | None = None,
    ) -> ProcessingJob | None:
        """Apply a status transition to a processing job.

        Updates after a terminal state are ignored. Progress never decreases
        except when entering ``failed``, which resets it to the reported value.
        Returns the job, or None when the update was not applied.
        """
        with self.lock:
            job = self._jobs.get(job_id)
            if not isinstance(job, ProcessingJob):
                Log.warning(f"Processing job {job_id} not found for status update")
                return None
            if job.status.is_terminal:
                Log.debug(f"Ignoring update for finished job {job_id}: {status}")
                return None

            if status == JobStatus.FAILED:
                job.progress = max(0, min(100, progress))
                job.error = error or message or "Unknown error occurred"
            elif status == JobStatus.COMPLETED:
                job.progress = 100
                job.result_payload = result_payload
            else:
                job.progress = max(job.progress, min(100, progress))
            job.status = status
            job.message = message
            self.touch(job)
            return job

    def touch(self, job: Job) -> None:
        """Refresh timestamps after a mutation. Caller holds ``lock``."""
        job.updated_at = self.now()
        if job.status.is_terminal and job.finished_at is None:
            job.finished_at = job.updated_at

    def evict_expired(self) -> list[str]:
        """Drop every job past its retention window; returns the evicted ids."""
        now = self.now()
        with self.lock:
            expired = [job_id for job_id, job in self._jobs.items() if self._is_expired(job, now)]
            for job_id in expired:
                del self._jobs[job_id]
        if expired:
            Log.info(f"Evicted {len(expired)} expired jobs")
        return expired

    def __len__(self) -> int:
        with self.lock:
            return len(self._jobs)

    def _retention(self, job: Job) -> timedelta:
        match job:
            case MultiFileJob():
                return self._multi_retention
            case ProcessingJob(kind=JobKind.MULTI_FILE_MEMBER):
                return self._multi_retention
            case _:
                return self._single_retention

    def _is_expired(self, job: Job, now: datetime) -> bool:
        if job.finished_at is None:
            return False
        return now - job.finished_at > self._retention(job)

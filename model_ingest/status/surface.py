import time
from collections.abc import Callable, Iterator
from typing import Any

from model_ingest.jobs.exceptions import JobNotFoundError
from model_ingest.jobs.registry import JobRegistry
from model_ingest.logging.logger import Log
from model_ingest.status.channel import BaseStatusChannel

_TERMINAL_STATUSES = frozenset({"completed", "failed"})


class StatusSurface:
    """Read-only view of job state: snapshots, streams and channel pushes."""

    def __init__(
        self,
        registry: JobRegistry,
        channel: BaseStatusChannel,
        stream_interval_seconds: float,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self._registry = registry
        self._channel = channel
        self._stream_interval = stream_interval_seconds
        self._sleep = sleep

    def get_status(self, job_id: str) -> dict[str, Any]:
        """Return the current snapshot.

        Raises:
            JobNotFoundError: unknown job, or JobExpiredError past retention.
        """
        return self._registry.snapshot(job_id)

    def publish(self, job_id: str) -> None:
        """Push the current snapshot to the channel; unknown jobs are skipped."""
        try:
            snapshot = self._registry.snapshot(job_id)
        except JobNotFoundError:
            return
        try:
            self._channel.publish(job_id, snapshot)
        except Exception as exc:
            Log.warning(f"Failed to publish status for job {job_id}: {exc}")

    def stream(
        self,
        job_id: str,
        interval: float | None = None,
        is_disconnected: Callable[[], bool] | None = None,
    ) -> Iterator[dict[str, Any]]:
        """Yield snapshots until the job is terminal, gone, or the client leaves."""
        delay = self._stream_interval if interval is None else interval
        try:
            snapshot = self.get_status(job_id)
        except JobNotFoundError:
            return
        while True:
            self._channel.publish(job_id, snapshot)
            yield snapshot
            if snapshot.get("status") in _TERMINAL_STATUSES:
                return
            if is_disconnected is not None and is_disconnected():
                return
            self._sleep(delay)
            if is_disconnected is not None and is_disconnected():
                return
            try:
                snapshot = self.get_status(job_id)
            except JobNotFoundError:
                return

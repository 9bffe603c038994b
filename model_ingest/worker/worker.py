import queue
import time
from collections.abc import Callable

from model_ingest.config.settings import Settings
from model_ingest.jobs.models import FileStatus
from model_ingest.logging.logger import Log
from model_ingest.service import IngestionService
from model_ingest.worker.messages import (
    FinalizationOutcome,
    InboxMessage,
    LogMessage,
    MultiStatusUpdate,
    ProgressMessage,
    StatusUpdate,
)


class Worker:
    """Owner loop: drain inbox -> apply messages -> reap exited units -> sweep."""

    def __init__(
        self,
        service: IngestionService,
        settings: Settings,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._service = service
        self._settings = settings
        self._clock = clock
        self._last_sweep = clock()

    def run(self, max_iterations: int | None = None) -> None:
        """Main loop. Runs forever until interrupted.

        If max_iterations is set, stop after that many iterations (for testing).
        """
        Log.info("Worker started, waiting for unit messages")
        iterations = 0
        try:
            while max_iterations is None or iterations < max_iterations:
                self.run_once(timeout=self._settings.message_poll_interval_seconds)
                iterations += 1
        except KeyboardInterrupt:
            Log.info("Worker shutting down gracefully")

    def run_once(self, timeout: float = 0.0) -> int:
        """One iteration of the loop. Returns the number of messages applied."""
        applied = self._drain(timeout)
        applied += self._reap_units()
        self._sweep_if_due()
        return applied

    def _drain(self, timeout: float) -> int:
        applied = 0
        block = timeout > 0
        while True:
            try:
                message = self._service.inbox.get(block=block, timeout=timeout if block else None)
            except queue.Empty:
                return applied
            block = False
            self._apply(message)
            applied += 1

    def _apply(self, message: InboxMessage) -> None:
        try:
            match message:
                case LogMessage(unit_id=unit_id, level=level, message=text):
                    Log.unit(unit_id, level, text)
                case ProgressMessage(parent_job_id=None):
                    self._service.on_file_status_update(
                        message.unit_id, None, FileStatus.PROCESSING, message.progress, message.message
                    )
                case ProgressMessage():
                    self._service.on_file_status_update(
                        message.parent_job_id,
                        message.file_index,
                        FileStatus.PROCESSING,
                        message.progress,
                        message.message,
                    )
                case StatusUpdate():
                    self._service.on_file_status_update(
                        message.unit_id,
                        None,
                        message.status,
                        message.progress,
                        message.message,
                        result_payload=message.artifact,
                        error=message.error,
                    )
                case MultiStatusUpdate():
                    self._service.on_file_status_update(
                        message.job_id,
                        message.file_index,
                        message.status,
                        message.progress,
                        message.message,
                        result_payload=message.artifact,
                        error=message.error,
                    )
                case FinalizationOutcome():
                    self._service.apply_outcome(message)
                case _:
                    Log.warning(f"Ignoring unknown inbox message: {message!r}")
        except Exception as exc:
            Log.error(f"Failed to apply inbox message {message!r}: {exc}")

    def _reap_units(self) -> int:
        exited = [
            (job_id, handle)
            for job_id, handle in self._service.pool.active_items()
            if not handle.is_alive()
        ]
        if not exited:
            return 0
        # An exited unit's last messages are already in the queue; apply them first.
        applied = self._drain(0.0)
        for job_id, handle in exited:
            Log.debug(f"Execution unit for job {job_id} exited with code {handle.exitcode}")
            self._service.on_unit_exited(job_id, handle.exitcode)
        return applied

    def _sweep_if_due(self) -> None:
        now = self._clock()
        if now - self._last_sweep < self._settings.retention_sweep_interval_seconds:
            return
        self._last_sweep = now
        self._service.sweep_expired()

import math
from collections.abc import Callable
from pathlib import Path

from model_ingest.jobs.models import (
    ConvertedArtifact,
    FileSlot,
    FileStatus,
    JobStatus,
    MultiFileJob,
)
from model_ingest.jobs.registry import JobRegistry
from model_ingest.logging.logger import Log

ALL_FILES_PROCESSED_MESSAGE = "All files processed. Creating project..."


def round_half_up(value: float) -> int:
    return math.floor(value + 0.5)


class MultiFileCoordinator:
    """Applies per-file updates to a multi-file job and recomputes its aggregate.

    When every file is completed, ``on_all_completed`` is called exactly once
    (outside the registry lock). When the job fails because some files
    failed, the temporary artifacts of the completed files are removed.
    """

    def __init__(
        self,
        registry: JobRegistry,
        on_all_completed: Callable[[MultiFileJob], None],
    ) -> None:
        self._registry = registry
        self._on_all_completed = on_all_completed

    def apply(
        self,
        job_id: str,
        file_index: int,
        status: FileStatus,
        progress: int,
        artifact: ConvertedArtifact | None = None,
        error: str | None = None,
    ) -> MultiFileJob | None:
        """Apply one file update. Returns the job, or None if it was not applied."""
        finalize = False
        leftovers: list[str] = []
        with self._registry.lock:
            job = self._registry.find(job_id)
            if not isinstance(job, MultiFileJob) or not 0 <= file_index < job.total_files:
                Log.warning(f"Multi-file job {job_id} or file {file_index} not found for status update")
                return None
            if job.status.is_terminal or job.finalization_submitted:
                Log.debug(f"Ignoring file update for settled multi-file job {job_id}")
                return None
            slot = job.files[file_index]
            if slot.status.is_terminal:
                Log.debug(f"Ignoring update for finished file {file_index} of job {job_id}")
                return None

            self._apply_to_slot(slot, status, progress, artifact, error)
            finalize, leftovers = self._recompute(job)
            self._registry.touch(job)
            Log.info(
                f"Multi-file job {job_id}: {job.status} ({job.progress}%) - {job.message}"
            )

        if leftovers:
            remove_artifacts(leftovers)
        if finalize:
            Log.info(f"All files completed for multi-file job {job_id}. Creating unified project...")
            self._on_all_completed(job)
        return job

    def mark_finalized(
        self, job_id: str, project_id: int, project_name: str, model_count: int
    ) -> None:
        with self._registry.lock:
            job = self._registry.find(job_id)
            if not isinstance(job, MultiFileJob) or job.status.is_terminal:
                return
            job.status = JobStatus.COMPLETED
            job.progress = 100
            job.message = f"Project created with {model_count} models"
            if job.project_id is None:
                job.project_id = project_id
            job.project_data = {"id": project_id, "name": project_name}
            self._registry.touch(job)
        Log.info(f"Multi-file job {job_id} created project {project_id} with {model_count} models")

    def mark_finalization_failed(self, job_id: str, error: str) -> None:
        with self._registry.lock:
            job = self._registry.find(job_id)
            if not isinstance(job, MultiFileJob) or job.status.is_terminal:
                return
            job.status = JobStatus.FAILED
            job.message = "Failed to finalize multi-file project"
            job.error = error
            self._registry.touch(job)
        Log.error(f"Failed to finalize multi-file job {job_id}: {error}")

    def _apply_to_slot(
        self,
        slot: FileSlot,
        status: FileStatus,
        progress: int,
        artifact: ConvertedArtifact | None,
        error: str | None,
    ) -> None:
        if status == FileStatus.FAILED:
            slot.progress = max(0, min(100, progress))
            slot.error = error or "Unknown error occurred"
        elif status == FileStatus.COMPLETED:
            slot.progress = 100
        else:
            slot.progress = max(slot.progress, min(100, progress))
        slot.status = status
        if artifact is not None:
            slot.temp_artifact_path = artifact.artifact_path
            slot.extracted_metadata = artifact.metadata
            slot.detected_kind = artifact.detected_kind
            slot.final_artifact_name = artifact.artifact_name or slot.final_artifact_name

    def _recompute(self, job: MultiFileJob) -> tuple[bool, list[str]]:
        """Recompute the aggregate. Returns (submit finalization, artifacts to remove)."""
        total = job.total_files
        completed = job.completed_files
        failed = job.failed_files
        processing = job.processing_files

        if completed == total:
            job.finalization_submitted = True
            job.status = JobStatus.PROCESSING
            job.progress = max(job.progress, 99)
            job.message = ALL_FILES_PROCESSED_MESSAGE
            return True, []

        if failed > 0 and completed + failed == total:
            job.status = JobStatus.FAILED
            job.progress = round_half_up(100 * completed / total)
            job.message = f"{failed} of {total} files failed to process"
            job.error = job.message
            leftovers = [
                slot.temp_artifact_path
                for slot in job.files
                if slot.status == FileStatus.COMPLETED and slot.temp_artifact_path
            ]
            return False, leftovers

        if processing > 0:
            partial = sum(slot.progress for slot in job.files if slot.status == FileStatus.PROCESSING)
            aggregate = min(99, round_half_up((100 * completed + partial) / total))
            job.status = JobStatus.PROCESSING
            job.progress = max(job.progress, aggregate)
            job.message = f"Processing {processing} files, {completed} completed..."
        return False, []


def remove_artifacts(paths: list[str]) -> None:
    """Delete temporary artifact files, logging failures instead of raising."""
    for path in paths:
        try:
            Path(path).unlink(missing_ok=True)
            Log.debug(f"Deleted temp artifact {path}")
        except OSError as exc:
            Log.warning(f"Failed to delete temp artifact {path}: {exc}")

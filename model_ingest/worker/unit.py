"""Isolated execution unit: converts one uploaded file in a child process.

The unit never touches the job registry. It reports everything as messages
on the shared outbox queue, and the owner loop applies them.
"""

import os
import threading
from collections.abc import Callable
from pathlib import Path
from typing import Any

from model_ingest.conversion.base import BaseModelConverter
from model_ingest.conversion.factory import ConverterFactory
from model_ingest.conversion.models import ModelMetadata
from model_ingest.jobs.exceptions import MemoryLimitExceededError
from model_ingest.jobs.models import ConvertedArtifact, FileStatus
from model_ingest.jobs.naming import detect_model_kind
from model_ingest.worker.messages import (
    LogMessage,
    MultiStatusUpdate,
    ProgressMessage,
    StatusUpdate,
    UnitTask,
)
from model_ingest.worker.watchdog import MemoryWatchdog

CONVERSION_START_PROGRESS = 40
CONVERSION_END_PROGRESS = 80


def remap_conversion_progress(percentage: float) -> int:
    """Map converter progress 0-100 onto the 40-80 band of the job."""
    scaled = int(CONVERSION_START_PROGRESS + percentage * 0.4)
    return max(CONVERSION_START_PROGRESS, min(CONVERSION_END_PROGRESS, scaled))


class UnitReporter:
    """Sends a unit's log, progress and status messages to the owner.

    Progress is clamped to be non-decreasing. Nothing is sent after a
    terminal status, which matters when the watchdog thread and the main
    thread race to report.
    """

    def __init__(self, task: UnitTask, outbox: Any) -> None:
        self._task = task
        self._outbox = outbox
        self._progress = 0
        self._finished = False
        self._lock = threading.Lock()

    @property
    def finished(self) -> bool:
        return self._finished

    def log(self, level: str, message: str) -> None:
        self._outbox.put(LogMessage(unit_id=self._task.job_id, level=level, message=message))

    def status(self, progress: int, message: str) -> None:
        """Enter (or stay in) the processing state."""
        with self._lock:
            if self._finished:
                return
            self._progress = max(self._progress, progress)
            self._outbox.put(self._status_message(FileStatus.PROCESSING, self._progress, message))

    def progress(self, progress: int, message: str) -> None:
        with self._lock:
            if self._finished or progress <= self._progress:
                return
            self._progress = progress
            self._outbox.put(
                ProgressMessage(
                    unit_id=self._task.job_id,
                    progress=progress,
                    message=message,
                    parent_job_id=self._task.parent_job_id,
                    file_index=self._task.file_index,
                )
            )

    def completed(self, artifact: ConvertedArtifact) -> bool:
        with self._lock:
            if self._finished:
                return False
            self._finished = True
            self._progress = 100
            self._outbox.put(
                self._status_message(
                    FileStatus.COMPLETED, 100, "File processed successfully", artifact=artifact
                )
            )
            return True

    def failed(self, error: str) -> bool:
        with self._lock:
            if self._finished:
                return False
            self._finished = True
            self._progress = 0
            self._outbox.put(
                self._status_message(FileStatus.FAILED, 0, "Processing failed", error=error)
            )
            return True

    def _status_message(
        self,
        status: FileStatus,
        progress: int,
        message: str,
        artifact: ConvertedArtifact | None = None,
        error: str | None = None,
    ) -> StatusUpdate | MultiStatusUpdate:
        if self._task.parent_job_id is not None and self._task.file_index is not None:
            return MultiStatusUpdate(
                unit_id=self._task.job_id,
                job_id=self._task.parent_job_id,
                file_index=self._task.file_index,
                status=str(status),
                progress=progress,
                message=message,
                artifact=artifact,
                error=error,
            )
        return StatusUpdate(
            unit_id=self._task.job_id,
            status=str(status),
            progress=progress,
            message=message,
            artifact=artifact,
            error=error,
        )


def artifact_path_for(task: UnitTask) -> Path:
    return Path(task.artifact_dir) / f"{task.job_id}.frag"


def process_file(
    task: UnitTask,
    reporter: UnitReporter,
    converter_factory: Callable[[str], BaseModelConverter] = ConverterFactory.create_for_engine,
) -> ConvertedArtifact:
    """Convert or pass through one file and write its artifact to disk."""
    kind = detect_model_kind(task.original_filename)
    if kind is None:
        raise ValueError("Unsupported file type")
    is_ifc = kind == "ifc"

    reporter.status(30, "Converting IFC to FRAG format..." if is_ifc else "Processing FRAG file...")
    data = Path(task.input_path).read_bytes()
    reporter.log("info", f"Read {kind.upper()} temp file ({len(data) / 1024 / 1024:.2f} MB)")

    if is_ifc:
        reporter.progress(40, "Extracting IFC metadata and converting to FRAG...")
        converter = converter_factory(task.conversion_engine)
        result = converter.convert(
            data,
            lambda pct, message: reporter.progress(
                remap_conversion_progress(pct), message or "Converting IFC to FRAG..."
            ),
        )
        artifact_bytes, metadata = result.artifact, result.metadata
        reporter.log(
            "info",
            f"FRAG conversion complete ({len(artifact_bytes) / 1024 / 1024:.2f} MB, "
            f"{metadata.total_elements} elements, {len(metadata.storeys)} storeys)",
        )
    else:
        artifact_bytes, metadata = data, ModelMetadata()
        reporter.progress(60, "FRAG file ready for processing...")
    del data

    artifact_path = artifact_path_for(task)
    artifact_path.parent.mkdir(parents=True, exist_ok=True)
    artifact_path.write_bytes(artifact_bytes)

    reporter.progress(85, "Model ready for project creation...")
    return ConvertedArtifact(
        artifact_path=str(artifact_path),
        artifact_name=task.final_artifact_name,
        size_bytes=len(artifact_bytes),
        metadata=metadata,
        detected_kind=kind,
    )


def remove_input(task: UnitTask, reporter: UnitReporter) -> None:
    try:
        Path(task.input_path).unlink(missing_ok=True)
        reporter.log("debug", f"Deleted temp file {task.input_path}")
    except OSError as exc:
        reporter.log("warning", f"Failed to delete temp file {task.input_path}: {exc}")


def remove_artifact(task: UnitTask, reporter: UnitReporter) -> None:
    path = artifact_path_for(task)
    try:
        path.unlink(missing_ok=True)
    except OSError as exc:
        reporter.log("warning", f"Failed to delete artifact {path}: {exc}")


def run_unit(task: UnitTask, outbox: Any) -> None:
    """Process entry point of an execution unit (spawned process target)."""
    reporter = UnitReporter(task, outbox)

    def on_warning(used_mb: float) -> None:
        reporter.log("warning", f"High memory usage: {used_mb:.1f}MB")

    def on_limit_exceeded(exc: MemoryLimitExceededError) -> None:
        reporter.log("error", str(exc))
        if reporter.failed(str(exc)):
            remove_input(task, reporter)
            remove_artifact(task, reporter)
            outbox.close()
            outbox.join_thread()
            os._exit(1)

    watchdog = MemoryWatchdog(
        warning_limit_mb=task.memory_warning_limit_mb,
        critical_limit_mb=task.memory_critical_limit_mb,
        interval_seconds=task.memory_check_interval,
        environment=task.app_env,
        on_warning=on_warning,
        on_limit_exceeded=on_limit_exceeded,
    )
    watchdog.start()
    try:
        artifact = process_file(task, reporter)
        if not reporter.completed(artifact):
            remove_artifact(task, reporter)
    except Exception as exc:
        reporter.log("error", f"Processing failed: {exc}")
        reporter.failed(str(exc) or exc.__class__.__name__)
    finally:
        watchdog.stop()
        remove_input(task, reporter)

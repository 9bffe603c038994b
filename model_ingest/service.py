import dataclasses
import queue
from collections.abc import Callable, Iterator
from concurrent.futures import Executor, ThreadPoolExecutor
from pathlib import Path
from typing import Any

from model_ingest.config.settings import Settings
from model_ingest.conversion.models import ModelMetadata
from model_ingest.database.models import ModelRecord, ProjectRecord
from model_ingest.database.repositories.model_repository import ModelRepository
from model_ingest.database.repositories.panel_repository import PanelRepository
from model_ingest.database.repositories.project_repository import ProjectRepository
from model_ingest.finalization.engine import FinalizationEngine, FinalizationFile
from model_ingest.finalization.exceptions import FinalizationError
from model_ingest.finalization.panels import PanelExtractor
from model_ingest.jobs.coordinator import MultiFileCoordinator
from model_ingest.jobs.models import (
    ConvertedArtifact,
    FileDescriptor,
    FileSlot,
    FileStatus,
    JobKind,
    JobStatus,
    MultiFileDescriptor,
    MultiFileJob,
    ProcessingJob,
    ProjectBase,
    new_multi_file_id,
    new_processing_id,
)
from model_ingest.jobs.naming import (
    artifact_name,
    assign_artifact_names,
    category_display_name,
    detect_category,
)
from model_ingest.jobs.registry import JobRegistry
from model_ingest.jobs.validation import validate_multi, validate_single
from model_ingest.logging.logger import Log
from model_ingest.status.channel import BaseStatusChannel, LoggingStatusChannel
from model_ingest.status.surface import StatusSurface
from model_ingest.storage.factory import ObjectStoreFactory
from model_ingest.storage.s3_store import S3ObjectStore
from model_ingest.worker.launcher import ProcessLauncher, UnitLauncher, describe_exit
from model_ingest.worker.messages import FinalizationOutcome, InboxMessage, UnitTask
from model_ingest.worker.pool import WorkerPool, resolve_max_concurrency

ENQUEUED_MESSAGE = "File uploaded successfully. Starting processing..."
FINALIZING_MESSAGE = "Creating project and uploading model..."
FINALIZING_PROGRESS = 90
PROJECT_CREATED_MESSAGE = "Project created successfully!"
FAILED_MESSAGE = "Processing failed"


class IngestionService:
    """Entry point for enqueuing model files and following their progress.

    Request threads call ``enqueue``, ``get_status`` and ``stream_status``.
    The owner loop (see ``Worker``) feeds unit messages into
    ``on_file_status_update`` and finalization results into ``apply_outcome``.
    """

    def __init__(
        self,
        settings: Settings,
        registry: JobRegistry,
        launcher: UnitLauncher,
        engine: FinalizationEngine,
        surface: StatusSurface,
        inbox: Any,
        executor: Executor,
        max_concurrency: int,
    ) -> None:
        self._settings = settings
        self._registry = registry
        self._engine = engine
        self._surface = surface
        self._executor = executor
        self.inbox = inbox
        self._tasks: dict[str, UnitTask] = {}
        self._coordinator = MultiFileCoordinator(registry, self._submit_multi_finalization)
        self.pool = WorkerPool(launcher, max_concurrency, self._on_launch_failed)

    def enqueue(self, descriptor: FileDescriptor | MultiFileDescriptor) -> str:
        """Validate and queue an upload. Returns the job id to poll.

        Raises:
            UploadValidationError: if the upload is rejected.
        """
        match descriptor:
            case FileDescriptor():
                validate_single(descriptor, self._settings)
                return self._enqueue_single(descriptor)
            case MultiFileDescriptor():
                validate_multi(descriptor, self._settings)
                return self._enqueue_multi(descriptor)
            case _:
                raise TypeError(f"Unsupported descriptor: {type(descriptor).__name__}")

    def get_status(self, job_id: str) -> dict[str, Any]:
        return self._surface.get_status(job_id)

    def stream_status(
        self,
        job_id: str,
        interval: float | None = None,
        is_disconnected: Callable[[], bool] | None = None,
    ) -> Iterator[dict[str, Any]]:
        return self._surface.stream(job_id, interval=interval, is_disconnected=is_disconnected)

    def on_file_status_update(
        self,
        job_id: str,
        file_index: int | None,
        status: str,
        progress: int,
        message: str,
        result_payload: ConvertedArtifact | dict[str, Any] | None = None,
        error: str | None = None,
    ) -> None:
        """Apply a status change to a single-file job, or to one file of a multi-file job."""
        try:
            file_status = FileStatus(status)
        except ValueError:
            Log.warning(f"Ignoring unknown status {status!r} for job {job_id}")
            return
        if file_index is None:
            self._update_single(job_id, file_status, progress, message, result_payload, error)
        else:
            self._update_multi_file(
                job_id, file_index, file_status, progress, message, result_payload, error
            )
        self._surface.publish(job_id)

    def apply_outcome(self, outcome: FinalizationOutcome) -> None:
        """Apply a finalization result posted by a finalization thread."""
        job = self._registry.find(outcome.job_id)
        match job:
            case MultiFileJob():
                if outcome.succeeded and outcome.project_id is not None:
                    name = (outcome.project_payload or {}).get("name", job.project_base.name)
                    self._coordinator.mark_finalized(
                        job.id, outcome.project_id, name, outcome.model_count
                    )
                else:
                    self._coordinator.mark_finalization_failed(
                        job.id, outcome.error or "Unknown error"
                    )
                self._surface.publish(job.id)
            case ProcessingJob():
                if outcome.succeeded:
                    self.on_file_status_update(
                        job.id,
                        None,
                        JobStatus.COMPLETED,
                        100,
                        PROJECT_CREATED_MESSAGE,
                        result_payload={
                            "project": outcome.project_payload,
                            "model": outcome.model_payload,
                        },
                    )
                    Log.info(f"Processing completed successfully for {job.id}")
                else:
                    self.on_file_status_update(
                        job.id, None, JobStatus.FAILED, 0, FAILED_MESSAGE, error=outcome.error
                    )
            case _:
                Log.warning(f"Finalization outcome for unknown job {outcome.job_id}")

    def on_unit_exited(self, unit_id: str, exitcode: int | None) -> None:
        """Release the unit's slot, failing its job if it never reported a terminal state."""
        task = self._tasks.pop(unit_id, None)
        job = self._registry.find(unit_id)
        if isinstance(job, ProcessingJob) and not (
            job.status.is_terminal or job.finalization_submitted
        ):
            error = describe_exit(exitcode)
            Log.error(f"Unit for job {unit_id} exited without result: {error}")
            self._fail_unit(job.parent_job_id or job.id, job.file_index, error)
        if task is not None:
            _remove_input(task.input_path)
        self.pool.on_slot_free(unit_id)

    def sweep_expired(self) -> list[str]:
        return self._registry.evict_expired()

    def post(self, message: InboxMessage) -> None:
        self.inbox.put(message)

    def shutdown(self, wait: bool = True) -> None:
        dropped = self.pool.shutdown()
        for task in dropped:
            self._tasks.pop(task.job_id, None)
            _remove_input(task.input_path)
        if dropped:
            Log.warning(f"Dropped {len(dropped)} pending jobs on shutdown")
        self._executor.shutdown(wait=wait)

    def _enqueue_single(self, descriptor: FileDescriptor) -> str:
        uploaded = descriptor.file
        job = ProcessingJob(
            id=new_processing_id(),
            kind=JobKind.SINGLE,
            original_filename=uploaded.original_filename,
            final_artifact_name=artifact_name(uploaded.original_filename),
            project_base=descriptor.project_base,
            status=JobStatus.UPLOADING,
            progress=10,
            message=ENQUEUED_MESSAGE,
        )
        self._registry.add(job)
        self._surface.publish(job.id)
        Log.info(
            f"Queued {uploaded.original_filename} "
            f"({uploaded.size_bytes / 1024 / 1024:.1f}MB) as job {job.id}"
        )
        self._schedule(self._task_for(job, uploaded.temp_path))
        return job.id

    def _enqueue_multi(self, descriptor: MultiFileDescriptor) -> str:
        files = descriptor.files
        project_base = descriptor.project_base
        if not project_base.description:
            project_base = dataclasses.replace(
                project_base, description=f"Project with {len(files)} files"
            )
        job = MultiFileJob(id=new_multi_file_id(), project_base=project_base)
        names = assign_artifact_names(f.original_filename for f in files)
        members: list[ProcessingJob] = []
        for index, (uploaded, name) in enumerate(zip(files, names)):
            member = ProcessingJob(
                id=new_processing_id(),
                kind=JobKind.MULTI_FILE_MEMBER,
                original_filename=uploaded.original_filename,
                final_artifact_name=name,
                parent_job_id=job.id,
                file_index=index,
                status=JobStatus.UPLOADING,
                progress=10,
                message=ENQUEUED_MESSAGE,
            )
            members.append(member)
            job.files.append(
                FileSlot(
                    file_name=uploaded.original_filename,
                    category=uploaded.category or detect_category(uploaded.original_filename),
                    final_artifact_name=name,
                    job_id=member.id,
                    size_bytes=uploaded.size_bytes,
                    status=FileStatus.UPLOADING,
                    progress=10,
                )
            )
        job.message = f"Queued {len(files)} files for processing..."

        with self._registry.lock:
            self._registry.add(job)
            for member in members:
                self._registry.add(member)
        self._surface.publish(job.id)
        Log.info(
            f"Starting multi-file project creation: {project_base.name} with {len(files)} files"
        )
        for member, uploaded in zip(members, files):
            self._schedule(self._task_for(member, uploaded.temp_path))
        return job.id

    def _task_for(self, job: ProcessingJob, input_path: Path) -> UnitTask:
        artifact_dir = Path(self._settings.artifact_dir) / (job.parent_job_id or job.id)
        return UnitTask(
            job_id=job.id,
            input_path=str(input_path),
            original_filename=job.original_filename,
            final_artifact_name=job.final_artifact_name,
            artifact_dir=str(artifact_dir),
            conversion_engine=self._settings.conversion_engine,
            app_env="production" if self._settings.is_production else "development",
            memory_warning_limit_mb=self._settings.memory_warning_limit_mb,
            memory_critical_limit_mb=self._settings.memory_critical_limit_mb,
            memory_check_interval=self._settings.memory_check_interval,
            parent_job_id=job.parent_job_id,
            file_index=job.file_index,
        )

    def _schedule(self, task: UnitTask) -> None:
        self._tasks[task.job_id] = task
        self.pool.enqueue(task)

    def _update_single(
        self,
        job_id: str,
        status: FileStatus,
        progress: int,
        message: str,
        result_payload: ConvertedArtifact | dict[str, Any] | None,
        error: str | None,
    ) -> None:
        if isinstance(result_payload, ConvertedArtifact):
            self._begin_single_finalization(job_id, result_payload)
            return
        self._registry.update_processing_job(
            job_id,
            status.job_status,
            progress,
            message,
            result_payload=result_payload,
            error=error,
        )

    def _begin_single_finalization(self, job_id: str, artifact: ConvertedArtifact) -> None:
        with self._registry.lock:
            job = self._registry.find(job_id)
            if (
                not isinstance(job, ProcessingJob)
                or job.status.is_terminal
                or job.finalization_submitted
            ):
                Log.warning(f"Ignoring converted artifact for job {job_id}")
                return
            job.artifact = artifact
            job.finalization_submitted = True
            job.status = JobStatus.PROCESSING
            job.progress = max(job.progress, FINALIZING_PROGRESS)
            job.message = FINALIZING_MESSAGE
            self._registry.touch(job)
            project_base = job.project_base
            original_filename = job.original_filename

        if project_base is None:
            self.post(FinalizationOutcome(job_id=job_id, error="Job has no project data"))
            return
        files = [
            FinalizationFile(
                artifact_path=artifact.artifact_path,
                artifact_name=artifact.artifact_name,
                category="other",
                metadata=artifact.metadata,
                detected_kind=artifact.detected_kind,
            )
        ]
        project_metadata = {
            "created_from_model": True,
            "original_filename": original_filename,
            "converted_from_ifc": artifact.detected_kind == "ifc",
            "model_first": True,
            "processed_successfully": True,
        }
        self._executor.submit(self._run_finalization, job_id, project_base, files, project_metadata)

    def _update_multi_file(
        self,
        job_id: str,
        file_index: int,
        status: FileStatus,
        progress: int,
        message: str,
        result_payload: ConvertedArtifact | dict[str, Any] | None,
        error: str | None,
    ) -> None:
        job = self._registry.find(job_id)
        if not isinstance(job, MultiFileJob) or not 0 <= file_index < job.total_files:
            Log.warning(f"Multi-file job {job_id} or file {file_index} not found for status update")
            return
        artifact = result_payload if isinstance(result_payload, ConvertedArtifact) else None
        member_id = job.files[file_index].job_id
        member_payload = None
        if artifact is not None:
            member_payload = {
                "artifact_name": artifact.artifact_name,
                "size_bytes": artifact.size_bytes,
                "element_count": artifact.metadata.total_elements,
            }
        self._registry.update_processing_job(
            member_id,
            status.job_status,
            progress,
            message,
            result_payload=member_payload,
            error=error,
        )
        self._coordinator.apply(job_id, file_index, status, progress, artifact, error)
        self._surface.publish(member_id)

    def _submit_multi_finalization(self, job: MultiFileJob) -> None:
        missing = [index for index, slot in enumerate(job.files) if not slot.temp_artifact_path]
        if missing:
            self.post(
                FinalizationOutcome(
                    job_id=job.id, error=f"Missing temp artifact for file index {missing[0]}"
                )
            )
            return
        files = [
            FinalizationFile(
                artifact_path=slot.temp_artifact_path or "",
                artifact_name=slot.final_artifact_name,
                category=slot.category,
                metadata=slot.extracted_metadata or ModelMetadata(),
                display_name=category_display_name(slot.category),
                is_multi_file=True,
                detected_kind=slot.detected_kind or "frag",
            )
            for slot in job.files
        ]
        project_metadata = {
            "created_from_multi_file": True,
            "total_files": job.total_files,
            "categories": [slot.category for slot in job.files],
        }
        self._executor.submit(
            self._run_finalization, job.id, job.project_base, files, project_metadata
        )

    def _run_finalization(
        self,
        job_id: str,
        project_base: ProjectBase,
        files: list[FinalizationFile],
        project_metadata: dict[str, Any],
    ) -> None:
        """Runs on a finalization thread; the outcome goes back through the inbox."""
        try:
            finalized = self._engine.finalize(project_base, files, project_metadata)
        except FinalizationError as exc:
            self.post(FinalizationOutcome(job_id=job_id, error=str(exc)))
            return
        except Exception as exc:
            Log.error(f"Unexpected finalization error for job {job_id}: {exc}")
            self.post(FinalizationOutcome(job_id=job_id, error=str(exc) or exc.__class__.__name__))
            return
        self.post(
            FinalizationOutcome(
                job_id=job_id,
                project_id=finalized.project.id,
                project_payload=project_payload(finalized.project),
                model_payload=model_payload(finalized.models[0]),
                model_count=len(finalized.models),
            )
        )

    def _on_launch_failed(self, task: UnitTask, error: str) -> None:
        self._tasks.pop(task.job_id, None)
        _remove_input(task.input_path)
        self._fail_unit(task.parent_job_id or task.job_id, task.file_index, error)

    def _fail_unit(self, job_id: str, file_index: int | None, error: str) -> None:
        self.on_file_status_update(job_id, file_index, JobStatus.FAILED, 0, FAILED_MESSAGE, error=error)


def project_payload(project: ProjectRecord) -> dict[str, Any]:
    return {
        "id": project.id,
        "name": project.name,
        "description": project.description,
        "status": project.status.lower().replace("_", "-"),
        "created_at": project.created_at.isoformat() if project.created_at else None,
        "updated_at": project.updated_at.isoformat() if project.updated_at else None,
    }


def model_payload(model: ModelRecord) -> dict[str, Any]:
    return {
        "id": model.id,
        "original_filename": model.original_filename,
        "status": "ready",
        "size_bytes": model.size_bytes,
        "processing_progress": 100,
    }


def _remove_input(path: str) -> None:
    try:
        Path(path).unlink(missing_ok=True)
    except OSError as exc:
        Log.warning(f"Failed to delete temp file {path}: {exc}")


def build_service(
    settings: Settings,
    launcher: UnitLauncher | None = None,
    channel: BaseStatusChannel | None = None,
) -> IngestionService:
    """Build an IngestionService with all required collaborators."""
    Path(settings.temp_dir).mkdir(parents=True, exist_ok=True)
    Path(settings.artifact_dir).mkdir(parents=True, exist_ok=True)

    if launcher is None:
        process_launcher = ProcessLauncher()
        launcher, inbox = process_launcher, process_launcher.inbox
    else:
        inbox = queue.Queue()

    store = ObjectStoreFactory.create(settings)
    if isinstance(store, S3ObjectStore):
        store.ensure_bucket()

    registry = JobRegistry(
        settings.single_job_retention_seconds, settings.multi_job_retention_seconds
    )
    engine = FinalizationEngine(
        store=store,
        project_repo=ProjectRepository(),
        model_repo=ModelRepository(),
        panel_repo=PanelRepository(),
        panel_extractor=PanelExtractor(),
    )
    surface = StatusSurface(
        registry, channel or LoggingStatusChannel(), settings.status_stream_interval_seconds
    )
    max_concurrency = resolve_max_concurrency(settings)
    Log.info(f"Worker pool initialized with max concurrency {max_concurrency}")
    return IngestionService(
        settings=settings,
        registry=registry,
        launcher=launcher,
        engine=engine,
        surface=surface,
        inbox=inbox,
        executor=ThreadPoolExecutor(
            max_workers=settings.finalization_workers, thread_name_prefix="finalize"
        ),
        max_concurrency=max_concurrency,
    )

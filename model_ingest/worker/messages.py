"""Messages exchanged between execution units, finalization threads and the owner loop.

Everything here is pickled across process boundaries, so only plain
dataclasses and values are allowed.
"""

from dataclasses import dataclass

from model_ingest.jobs.models import ConvertedArtifact


@dataclass(frozen=True)
class UnitTask:
    """Everything an execution unit needs to process one file."""

    job_id: str  # ProcessingJob id, also the scheduler key
    input_path: str
    original_filename: str
    final_artifact_name: str
    artifact_dir: str
    conversion_engine: str
    app_env: str
    memory_warning_limit_mb: int
    memory_critical_limit_mb: int
    memory_check_interval: float
    parent_job_id: str | None = None
    file_index: int | None = None


@dataclass(frozen=True)
class LogMessage:
    unit_id: str
    level: str
    message: str


@dataclass(frozen=True)
class ProgressMessage:
    """In-flight progress of a unit that is already processing."""

    unit_id: str
    progress: int
    message: str
    parent_job_id: str | None = None
    file_index: int | None = None


@dataclass(frozen=True)
class StatusUpdate:
    """Status transition of a single-file job."""

    unit_id: str
    status: str
    progress: int
    message: str
    artifact: ConvertedArtifact | None = None
    error: str | None = None


@dataclass(frozen=True)
class MultiStatusUpdate:
    """Status transition of one file inside a multi-file job."""

    unit_id: str
    job_id: str
    file_index: int
    status: str
    progress: int
    message: str
    artifact: ConvertedArtifact | None = None
    error: str | None = None


@dataclass(frozen=True)
class FinalizationOutcome:
    """Result of a finalization run, posted back to the owner loop."""

    job_id: str
    project_id: int | None = None
    project_payload: dict | None = None
    model_payload: dict | None = None
    model_count: int = 0
    error: str | None = None

    @property
    def succeeded(self) -> bool:
        return self.error is None and self.project_id is not None


UnitMessage = LogMessage | ProgressMessage | StatusUpdate | MultiStatusUpdate
InboxMessage = UnitMessage | FinalizationOutcome

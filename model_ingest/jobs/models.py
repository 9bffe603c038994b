import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import StrEnum
from pathlib import Path
from typing import Any

from model_ingest.conversion.models import ModelMetadata


class JobStatus(StrEnum):
    UPLOADING = "uploading"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (JobStatus.COMPLETED, JobStatus.FAILED)


class FileStatus(StrEnum):
    PENDING = "pending"
    UPLOADING = "uploading"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (FileStatus.COMPLETED, FileStatus.FAILED)

    @property
    def job_status(self) -> JobStatus:
        """Status of the processing job behind a file; a pending file is still uploading."""
        if self == FileStatus.PENDING:
            return JobStatus.UPLOADING
        return JobStatus(self.value)


class JobKind(StrEnum):
    SINGLE = "single"
    MULTI_FILE_MEMBER = "multi_file_member"


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def new_processing_id() -> str:
    return f"proc_{uuid.uuid4().hex}"


def new_multi_file_id() -> str:
    return f"multi_{uuid.uuid4().hex}"


@dataclass(frozen=True)
class ProjectBase:
    """Project attributes captured at enqueue; never changes afterwards."""

    name: str
    created_by: str  # owner user id
    organization_id: str
    description: str | None = None
    status: str = "ACTIVE"  # PLANNING | ACTIVE | ON_HOLD | COMPLETED | CANCELLED


@dataclass(frozen=True)
class UploadedFile:
    """A file the upload layer already wrote to a temporary path."""

    temp_path: Path
    original_filename: str
    size_bytes: int
    category: str | None = None


@dataclass(frozen=True)
class FileDescriptor:
    """Input of a single-file ingestion."""

    file: UploadedFile
    project_base: ProjectBase


@dataclass(frozen=True)
class MultiFileDescriptor:
    """Input of a multi-file ingestion; files keep their upload order."""

    files: tuple[UploadedFile, ...]
    project_base: ProjectBase


@dataclass(frozen=True)
class ConvertedArtifact:
    """Result reported by an execution unit for one converted file."""

    artifact_path: str
    artifact_name: str
    size_bytes: int
    metadata: ModelMetadata
    detected_kind: str  # "ifc" | "frag"


@dataclass
class ProcessingJob:
    """State of one execution unit's work on one file."""

    id: str
    kind: JobKind
    original_filename: str
    final_artifact_name: str
    status: JobStatus = JobStatus.UPLOADING
    progress: int = 0
    message: str = ""
    result_payload: dict[str, Any] | None = None
    error: str | None = None
    project_base: ProjectBase | None = None
    parent_job_id: str | None = None
    file_index: int | None = None
    artifact: ConvertedArtifact | None = None
    finalization_submitted: bool = False
    created_at: datetime = field(default_factory=utcnow)
    updated_at: datetime = field(default_factory=utcnow)
    finished_at: datetime | None = None

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "id": self.id,
            "kind": str(self.kind),
            "status": str(self.status),
            "progress": self.progress,
            "message": self.message,
            "original_filename": self.original_filename,
            "created_at": self.created_at.isoformat(),
            "updated_at": self.updated_at.isoformat(),
        }
        if self.parent_job_id is not None:
            data["parent_job_id"] = self.parent_job_id
            data["file_index"] = self.file_index
        if self.status == JobStatus.COMPLETED and self.result_payload is not None:
            data["result_payload"] = self.result_payload
        if self.status == JobStatus.FAILED and self.error is not None:
            data["error"] = self.error
        return data


@dataclass
class FileSlot:
    """Per-file state inside a multi-file job."""

    file_name: str
    category: str
    final_artifact_name: str
    job_id: str  # id of the member ProcessingJob
    size_bytes: int = 0
    status: FileStatus = FileStatus.PENDING
    progress: int = 0
    temp_artifact_path: str | None = None
    extracted_metadata: ModelMetadata | None = None
    detected_kind: str | None = None
    error: str | None = None

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "file_name": self.file_name,
            "category": self.category,
            "final_artifact_name": self.final_artifact_name,
            "status": str(self.status),
            "progress": self.progress,
        }
        if self.error is not None:
            data["error"] = self.error
        return data


@dataclass
class MultiFileJob:
    """Aggregate state of a multi-file ingestion."""

    id: str
    project_base: ProjectBase
    files: list[FileSlot] = field(default_factory=list)
    status: JobStatus = JobStatus.UPLOADING
    progress: int = 0
    message: str = "Initializing multi-file upload..."
    project_id: int | None = None
    project_data: dict[str, Any] | None = None
    error: str | None = None
    finalization_submitted: bool = False
    created_at: datetime = field(default_factory=utcnow)
    updated_at: datetime = field(default_factory=utcnow)
    finished_at: datetime | None = None

    @property
    def total_files(self) -> int:
        return len(self.files)

    @property
    def completed_files(self) -> int:
        return sum(1 for slot in self.files if slot.status == FileStatus.COMPLETED)

    @property
    def failed_files(self) -> int:
        return sum(1 for slot in self.files if slot.status == FileStatus.FAILED)

    @property
    def processing_files(self) -> int:
        return sum(1 for slot in self.files if slot.status == FileStatus.PROCESSING)

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "id": self.id,
            "status": str(self.status),
            "progress": self.progress,
            "message": self.message,
            "total_files": self.total_files,
            "completed_files": self.completed_files,
            "files": [slot.to_dict() for slot in self.files],
            "created_at": self.created_at.isoformat(),
            "updated_at": self.updated_at.isoformat(),
        }
        if self.project_id is not None:
            data["project_id"] = self.project_id
        if self.project_data is not None:
            data["project_data"] = self.project_data
        if self.error is not None:
            data["error"] = self.error
        return data


Job = ProcessingJob | MultiFileJob

"""Validates upload descriptors before any job is created."""

from model_ingest.config.settings import Settings
from model_ingest.jobs.exceptions import UploadValidationError
from model_ingest.jobs.models import (
    FileDescriptor,
    MultiFileDescriptor,
    ProjectBase,
    UploadedFile,
)
from model_ingest.jobs.naming import detect_model_kind
from model_ingest.jobs.resources import (
    ResourceSampler,
    check_system_resources,
    sample_system_resources,
)

_MAX_NAME_LENGTH = 255
_MAX_DESCRIPTION_LENGTH = 1000
_PROJECT_STATUSES = frozenset({"PLANNING", "ACTIVE", "ON_HOLD", "COMPLETED", "CANCELLED"})
_BYTES_PER_MB = 1024 * 1024


def validate_single(
    descriptor: FileDescriptor,
    settings: Settings,
    sampler: ResourceSampler = sample_system_resources,
) -> None:
    """Validate a single-file upload.

    Raises:
        UploadValidationError: on any validation failure.
    """
    _validate_project_base(descriptor.project_base)
    _validate_file(descriptor.file)
    size_mb = descriptor.file.size_bytes / _BYTES_PER_MB
    if size_mb > settings.max_file_size_mb:
        raise UploadValidationError(
            f"File too large: {size_mb:.1f}MB. Maximum allowed: {settings.max_file_size_mb}MB"
        )
    if size_mb > settings.resource_check_file_mb:
        check_system_resources(size_mb, settings, sampler)


def validate_multi(
    descriptor: MultiFileDescriptor,
    settings: Settings,
    sampler: ResourceSampler = sample_system_resources,
) -> None:
    """Validate a multi-file upload.

    Raises:
        UploadValidationError: on any validation failure.
    """
    _validate_project_base(descriptor.project_base)
    if not descriptor.files:
        raise UploadValidationError("No files provided")
    for uploaded in descriptor.files:
        _validate_file(uploaded)
    total_mb = sum(uploaded.size_bytes for uploaded in descriptor.files) / _BYTES_PER_MB
    if total_mb > settings.max_total_upload_size_mb:
        raise UploadValidationError(
            f"Total file size too large: {total_mb:.1f}MB. "
            f"Maximum allowed: {settings.max_total_upload_size_mb}MB"
        )
    if total_mb > settings.resource_check_total_mb:
        check_system_resources(total_mb, settings, sampler)


def _validate_file(uploaded: UploadedFile) -> None:
    if detect_model_kind(uploaded.original_filename) is None:
        raise UploadValidationError(
            f"Invalid file type: {uploaded.original_filename}. "
            "Only .ifc or .frag files are allowed"
        )
    if uploaded.size_bytes < 0:
        raise UploadValidationError(f"Invalid size for {uploaded.original_filename}")


def _validate_project_base(project_base: ProjectBase) -> None:
    name = project_base.name.strip() if isinstance(project_base.name, str) else ""
    if not name:
        raise UploadValidationError("Project name must be a non-empty string")
    if len(project_base.name) > _MAX_NAME_LENGTH:
        raise UploadValidationError(
            f"Project name too long: {len(project_base.name)} (max {_MAX_NAME_LENGTH})"
        )
    description = project_base.description
    if description is not None and len(description) > _MAX_DESCRIPTION_LENGTH:
        raise UploadValidationError(
            f"Project description too long: {len(description)} (max {_MAX_DESCRIPTION_LENGTH})"
        )
    if project_base.status not in _PROJECT_STATUSES:
        raise UploadValidationError(
            f"Project status must be one of {sorted(_PROJECT_STATUSES)}, "
            f"got {project_base.status!r}"
        )
    if not project_base.created_by:
        raise UploadValidationError("Project owner is required")
    if not project_base.organization_id:
        raise UploadValidationError("Organization is required")

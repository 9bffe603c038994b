class JobError(Exception):
    """Base exception for job-related errors."""


class UploadValidationError(JobError):
    """Raised when an upload is rejected before any job is created."""


class JobNotFoundError(JobError):
    """Raised when a job id is unknown to the registry."""


class JobExpiredError(JobNotFoundError):
    """Raised when a job existed but its retention window has elapsed."""


class MemoryLimitExceededError(JobError):
    """Raised when an execution unit exceeds its resident memory ceiling."""

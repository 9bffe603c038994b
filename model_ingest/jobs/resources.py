"""Host resource admission check for large uploads."""

import os
from collections.abc import Callable
from dataclasses import dataclass
from pathlib import Path

from model_ingest.config.settings import Settings
from model_ingest.jobs.exceptions import UploadValidationError
from model_ingest.logging.logger import Log


@dataclass(frozen=True)
class SystemResources:
    total_mb: int
    available_mb: int
    load_average: float

    @property
    def used_mb(self) -> int:
        return self.total_mb - self.available_mb

    @property
    def used_percent(self) -> int:
        if self.total_mb <= 0:
            return 0
        return round(self.used_mb * 100 / self.total_mb)


ResourceSampler = Callable[[], SystemResources]


def sample_system_resources() -> SystemResources:
    """Read host memory from /proc/meminfo and the 1-minute load average."""
    fields: dict[str, int] = {}
    for line in Path("/proc/meminfo").read_text().splitlines():
        key, _, value = line.partition(":")
        parts = value.split()
        if parts:
            fields[key] = int(parts[0])
    total_kb = fields.get("MemTotal", 0)
    available_kb = fields.get("MemAvailable", fields.get("MemFree", 0))
    return SystemResources(
        total_mb=total_kb // 1024,
        available_mb=available_kb // 1024,
        load_average=os.getloadavg()[0],
    )


def check_system_resources(
    size_mb: float,
    settings: Settings,
    sampler: ResourceSampler = sample_system_resources,
) -> None:
    """Reject an upload the host cannot currently afford to process.

    Raises:
        UploadValidationError: when memory use is above the profile limit or
            the estimated processing memory does not fit in what is free.
    """
    try:
        resources = sampler()
    except OSError as exc:
        Log.warning(f"Could not sample system resources, skipping admission check: {exc}")
        return

    Log.info(
        f"Pre-upload system status: RAM {resources.used_mb}MB/{resources.total_mb}MB "
        f"({resources.used_percent}%), Load: {resources.load_average:.2f}"
    )

    if resources.used_percent > settings.admission_memory_percent_limit:
        raise UploadValidationError(
            f"System critically overloaded ({resources.used_percent}% memory). "
            "Please try again in a moment."
        )

    required_mb = size_mb * settings.admission_memory_factor
    allowed_mb = resources.available_mb * settings.admission_available_fraction
    if required_mb > allowed_mb:
        raise UploadValidationError(
            f"Insufficient memory for processing {size_mb:.1f}MB upload. "
            f"Available: {resources.available_mb}MB, Required: ~{required_mb:.1f}MB."
        )

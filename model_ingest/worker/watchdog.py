import resource
import sys
import threading
from collections.abc import Callable
from pathlib import Path

from model_ingest.jobs.exceptions import MemoryLimitExceededError

_PAGE_SIZE = resource.getpagesize()


def resident_memory_mb() -> float:
    """Current resident set size of this process in MB.

    Reads /proc on Linux; elsewhere falls back to the peak RSS reported by
    getrusage (kilobytes on Linux, bytes on macOS).
    """
    statm = Path("/proc/self/statm")
    try:
        resident_pages = int(statm.read_text().split()[1])
        return resident_pages * _PAGE_SIZE / (1024 * 1024)
    except (OSError, IndexError, ValueError):
        pass
    peak = resource.getrusage(resource.RUSAGE_SELF).ru_maxrss
    if sys.platform == "darwin":
        return peak / (1024 * 1024)
    return peak / 1024


class MemoryWatchdog:
    """Background thread that samples resident memory inside an execution unit.

    Calls ``on_warning`` once when usage first exceeds the warning limit and
    ``on_limit_exceeded`` when it exceeds the critical limit, after which the
    thread stops sampling.
    """

    def __init__(
        self,
        warning_limit_mb: int,
        critical_limit_mb: int,
        interval_seconds: float,
        environment: str,
        on_warning: Callable[[float], None],
        on_limit_exceeded: Callable[[MemoryLimitExceededError], None],
        sampler: Callable[[], float] = resident_memory_mb,
    ) -> None:
        self._warning_limit_mb = warning_limit_mb
        self._critical_limit_mb = critical_limit_mb
        self._interval = interval_seconds
        self._environment = environment
        self._on_warning = on_warning
        self._on_limit_exceeded = on_limit_exceeded
        self._sampler = sampler
        self._stop = threading.Event()
        self._warned = False
        self._thread = threading.Thread(target=self._run, name="memory-watchdog", daemon=True)

    def start(self) -> None:
        self._thread.start()

    def stop(self) -> None:
        self._stop.set()
        if self._thread.is_alive() and self._thread is not threading.current_thread():
            self._thread.join(timeout=self._interval + 1)

    def check(self) -> bool:
        """Take one sample. Returns False once the critical limit is exceeded."""
        used_mb = self._sampler()
        if used_mb > self._warning_limit_mb and not self._warned:
            self._warned = True
            self._on_warning(used_mb)
        if used_mb > self._critical_limit_mb:
            self._on_limit_exceeded(
                MemoryLimitExceededError(
                    f"Memory limit exceeded: {used_mb:.1f} MB in {self._environment} environment"
                )
            )
            return False
        return True

    def _run(self) -> None:
        while not self._stop.wait(self._interval):
            if not self.check():
                return

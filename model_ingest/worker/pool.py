import os
import threading
from collections import deque
from collections.abc import Callable

from model_ingest.config.settings import Settings
from model_ingest.logging.logger import Log
from model_ingest.worker.launcher import UnitHandle, UnitLauncher
from model_ingest.worker.messages import UnitTask


def resolve_max_concurrency(settings: Settings, cpu_count: int | None = None) -> int:
    """Number of execution units allowed to run at once.

    An explicit ``background_workers`` wins over the CPU-based default; both
    are clamped to 16 in production and 8 elsewhere, and never drop below 1.
    """
    ceiling = 16 if settings.is_production else 8
    if settings.background_workers > 0:
        requested = settings.background_workers
    else:
        cpus = cpu_count if cpu_count is not None else (os.cpu_count() or 1)
        requested = max(2, int(cpus * 0.75)) if settings.is_production else max(1, cpus // 2)
    return max(1, min(requested, ceiling))


class WorkerPool:
    """FIFO scheduler that keeps at most ``max_concurrency`` units running.

    Slots are freed only by ``on_slot_free``, which the owner loop calls when
    a unit process has exited. Progress messages never affect scheduling.
    """

    def __init__(
        self,
        launcher: UnitLauncher,
        max_concurrency: int,
        on_launch_failed: Callable[[UnitTask, str], None],
    ) -> None:
        self._launcher = launcher
        self.max_concurrency = max_concurrency
        self._on_launch_failed = on_launch_failed
        self._pending: deque[UnitTask] = deque()
        self._active: dict[str, UnitHandle] = {}
        self._lock = threading.Lock()

    def enqueue(self, task: UnitTask) -> None:
        with self._lock:
            self._pending.append(task)
            Log.info(
                f"Queued job {task.job_id} ({len(self._pending)} pending, "
                f"{len(self._active)}/{self.max_concurrency} active)"
            )
        self.dispatch()

    def dispatch(self) -> list[str]:
        """Launch pending tasks while capacity remains. Returns launched job ids."""
        launched: list[str] = []
        failures: list[tuple[UnitTask, str]] = []
        with self._lock:
            while self._pending and len(self._active) < self.max_concurrency:
                task = self._pending.popleft()
                try:
                    handle = self._launcher.launch(task)
                except Exception as exc:
                    Log.error(f"Failed to start execution unit for job {task.job_id}: {exc}")
                    failures.append((task, f"Failed to start processing: {exc}"))
                    continue
                self._active[task.job_id] = handle
                launched.append(task.job_id)
                Log.info(
                    f"Started execution unit for job {task.job_id} "
                    f"({len(self._active)}/{self.max_concurrency} active)"
                )
        for task, error in failures:
            self._on_launch_failed(task, error)
        return launched

    def on_slot_free(self, job_id: str) -> None:
        with self._lock:
            self._active.pop(job_id, None)
        self.dispatch()

    def active_items(self) -> list[tuple[str, UnitHandle]]:
        with self._lock:
            return list(self._active.items())

    @property
    def active_count(self) -> int:
        with self._lock:
            return len(self._active)

    @property
    def pending_count(self) -> int:
        with self._lock:
            return len(self._pending)

    def pending_ids(self) -> list[str]:
        with self._lock:
            return [task.job_id for task in self._pending]

    def shutdown(self) -> list[UnitTask]:
        """Terminate live units and drop pending tasks. Returns the dropped tasks."""
        with self._lock:
            dropped = list(self._pending)
            self._pending.clear()
            active = list(self._active.items())
            self._active.clear()
        for job_id, handle in active:
            if handle.is_alive():
                Log.warning(f"Terminating execution unit for job {job_id}")
                handle.terminate()
        return dropped

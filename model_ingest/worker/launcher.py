import multiprocessing as mp
import signal
from abc import ABC, abstractmethod
from typing import Any

from model_ingest.worker.messages import UnitTask
from model_ingest.worker.unit import run_unit

_TERMINATE_JOIN_SECONDS = 5.0


class UnitHandle(ABC):
    """Handle on a running execution unit."""

    @abstractmethod
    def is_alive(self) -> bool: ...

    @property
    @abstractmethod
    def exitcode(self) -> int | None: ...

    @abstractmethod
    def terminate(self) -> None: ...


class UnitLauncher(ABC):
    """Starts execution units for tasks."""

    @abstractmethod
    def launch(self, task: UnitTask) -> UnitHandle:
        """Start a unit for the task and return its handle.

        Raises:
            OSError: if the unit could not be started.
        """


class ProcessHandle(UnitHandle):
    def __init__(self, process: Any) -> None:
        self._process = process

    def is_alive(self) -> bool:
        return self._process.is_alive()

    @property
    def exitcode(self) -> int | None:
        return self._process.exitcode

    def terminate(self) -> None:
        if self._process.is_alive():
            self._process.terminate()
            self._process.join(timeout=_TERMINATE_JOIN_SECONDS)
        if self._process.is_alive():
            self._process.kill()
            self._process.join(timeout=_TERMINATE_JOIN_SECONDS)


class ProcessLauncher(UnitLauncher):
    """Runs each unit in a fresh "spawn" process writing to a shared inbox queue."""

    def __init__(self, context: Any | None = None) -> None:
        self._context = context or mp.get_context("spawn")
        self.inbox = self._context.Queue()

    def launch(self, task: UnitTask) -> UnitHandle:
        process = self._context.Process(
            target=run_unit,
            args=(task, self.inbox),
            name=f"unit-{task.job_id}",
            daemon=True,
        )
        process.start()
        return ProcessHandle(process)


def describe_exit(exitcode: int | None) -> str:
    if exitcode is None:
        return "Execution unit exited with unknown status"
    if exitcode < 0:
        signal_number = -exitcode
        try:
            signal_name = signal.Signals(signal_number).name
        except ValueError:
            signal_name = "UNKNOWN"
        return f"Execution unit terminated by signal {signal_number} ({signal_name})"
    return f"Execution unit exited unexpectedly (exit code {exitcode})"

import threading
from abc import ABC, abstractmethod
from typing import Any

from model_ingest.logging.logger import Log


class BaseStatusChannel(ABC):
    """Contract for pushing job snapshots to interested clients."""

    @abstractmethod
    def publish(self, job_id: str, snapshot: dict[str, Any]) -> None:
        """Deliver a snapshot. Must not raise for delivery problems."""


class LoggingStatusChannel(BaseStatusChannel):
    """Writes every snapshot to the application log."""

    def publish(self, job_id: str, snapshot: dict[str, Any]) -> None:
        Log.debug(
            f"Status {job_id}: {snapshot.get('status')} "
            f"({snapshot.get('progress')}%) - {snapshot.get('message')}"
        )


class InMemoryStatusChannel(BaseStatusChannel):
    """Keeps the latest snapshot per job for pollers and tests."""

    def __init__(self) -> None:
        self._latest: dict[str, dict[str, Any]] = {}
        self._history: dict[str, list[dict[str, Any]]] = {}
        self._lock = threading.Lock()

    def publish(self, job_id: str, snapshot: dict[str, Any]) -> None:
        with self._lock:
            self._latest[job_id] = snapshot
            self._history.setdefault(job_id, []).append(snapshot)

    def latest(self, job_id: str) -> dict[str, Any] | None:
        with self._lock:
            return self._latest.get(job_id)

    def history(self, job_id: str) -> list[dict[str, Any]]:
        with self._lock:
            return list(self._history.get(job_id, []))

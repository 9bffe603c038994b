"""Test doubles shared by the unit tests."""

import itertools
import queue
from concurrent.futures import Executor, Future
from contextlib import contextmanager
from pathlib import Path
from typing import Any
from unittest.mock import MagicMock

from model_ingest.config.settings import Settings
from model_ingest.database.models import ModelRecord, ProjectRecord
from model_ingest.finalization.engine import FinalizationEngine
from model_ingest.finalization.panels import PanelExtractor
from model_ingest.jobs.registry import JobRegistry
from model_ingest.service import IngestionService
from model_ingest.status.channel import InMemoryStatusChannel
from model_ingest.status.surface import StatusSurface
from model_ingest.storage.local_store import LocalObjectStore
from model_ingest.worker.launcher import UnitHandle, UnitLauncher
from model_ingest.worker.messages import UnitTask
from model_ingest.worker.unit import run_unit


class FakeHandle(UnitHandle):
    def __init__(self, alive: bool = True, exitcode: int | None = None) -> None:
        self.alive = alive
        self._exitcode = exitcode
        self.terminated = False

    def is_alive(self) -> bool:
        return self.alive

    @property
    def exitcode(self) -> int | None:
        return self._exitcode

    def terminate(self) -> None:
        self.terminated = True
        self.exit(-15)

    def exit(self, code: int = 0) -> None:
        self.alive = False
        self._exitcode = code


class FakeLauncher(UnitLauncher):
    """Records launches; units stay alive until the test exits them."""

    def __init__(self, failing_files: set[str] | None = None) -> None:
        self.launched: list[UnitTask] = []
        self.handles: dict[str, FakeHandle] = {}
        self._failing_files = failing_files or set()

    def launch(self, task: UnitTask) -> UnitHandle:
        if task.original_filename in self._failing_files:
            raise OSError("cannot spawn process")
        handle = FakeHandle()
        self.launched.append(task)
        self.handles[task.job_id] = handle
        return handle


class InlineLauncher(UnitLauncher):
    """Runs the real unit code synchronously, writing to the service inbox."""

    def __init__(self, inbox: "queue.Queue[Any]") -> None:
        self._inbox = inbox
        self.launched: list[UnitTask] = []

    def launch(self, task: UnitTask) -> UnitHandle:
        self.launched.append(task)
        run_unit(task, self._inbox)
        return FakeHandle(alive=False, exitcode=0)


class ImmediateExecutor(Executor):
    """Runs submitted callables on the calling thread."""

    def submit(self, fn: Any, /, *args: Any, **kwargs: Any) -> "Future[Any]":
        future: Future[Any] = Future()
        try:
            future.set_result(fn(*args, **kwargs))
        except Exception as exc:
            future.set_exception(exc)
        return future


class FakeRepositories:
    """Mocked repositories that behave like a tiny database."""

    def __init__(self) -> None:
        self._project_ids = itertools.count(1)
        self._model_ids = itertools.count(1)
        self.projects: list[ProjectRecord] = []
        self.models: list[ModelRecord] = []
        self.panels: list[Any] = []

        self.project_repo = MagicMock()
        self.project_repo.next_display_number.return_value = 1
        self.project_repo.create.side_effect = self._create_project
        self.model_repo = MagicMock()
        self.model_repo.create.side_effect = self._create_model
        self.panel_repo = MagicMock()
        self.panel_repo.bulk_insert.side_effect = self._insert_panels

    def _create_project(self, conn: Any, **kwargs: Any) -> ProjectRecord:
        project = ProjectRecord(id=next(self._project_ids), current_model_id=None, **kwargs)
        self.projects.append(project)
        return project

    def _create_model(self, conn: Any, **kwargs: Any) -> ModelRecord:
        kwargs.pop("spatial_structure", None)
        model = ModelRecord(id=f"model-{next(self._model_ids)}", storage_key="temp_key", **kwargs)
        self.models.append(model)
        return model

    def _insert_panels(self, conn: Any, panels: list[Any]) -> int:
        self.panels.extend(panels)
        return len(panels)


def mock_connection_factory() -> tuple[Any, MagicMock]:
    """Connection factory yielding one MagicMock connection with a working transaction()."""
    conn = MagicMock()
    conn.transaction.return_value.__enter__.return_value = None
    conn.transaction.return_value.__exit__.return_value = False

    @contextmanager
    def factory() -> Any:
        yield conn

    return factory, conn


def make_engine(storage_root: Path) -> tuple[FinalizationEngine, FakeRepositories, LocalObjectStore]:
    repos = FakeRepositories()
    store = LocalObjectStore(storage_root)
    factory, _conn = mock_connection_factory()
    engine = FinalizationEngine(
        store=store,
        project_repo=repos.project_repo,
        model_repo=repos.model_repo,
        panel_repo=repos.panel_repo,
        panel_extractor=PanelExtractor(),
        connection_factory=factory,
    )
    return engine, repos, store


def make_service(
    settings: Settings,
    launcher: UnitLauncher | None = None,
    engine: FinalizationEngine | None = None,
    inbox: "queue.Queue[Any] | None" = None,
    max_concurrency: int = 2,
    executor: Executor | None = None,
) -> tuple[IngestionService, JobRegistry, InMemoryStatusChannel]:
    """Assemble a service with in-process collaborators."""
    inbox = inbox if inbox is not None else queue.Queue()
    registry = JobRegistry(
        settings.single_job_retention_seconds, settings.multi_job_retention_seconds
    )
    channel = InMemoryStatusChannel()
    surface = StatusSurface(registry, channel, stream_interval_seconds=0.0, sleep=lambda _: None)
    if engine is None:
        engine, _repos, _store = make_engine(Path(settings.local_storage_root))
    service = IngestionService(
        settings=settings,
        registry=registry,
        launcher=launcher or FakeLauncher(),
        engine=engine,
        surface=surface,
        inbox=inbox,
        executor=executor or ImmediateExecutor(),
        max_concurrency=max_concurrency,
    )
    return service, registry, channel


class DeferredExecutor(Executor):
    """Collects submitted callables until the test runs them."""

    def __init__(self) -> None:
        self.calls: list[tuple[Any, tuple[Any, ...], dict[str, Any]]] = []

    def submit(self, fn: Any, /, *args: Any, **kwargs: Any) -> "Future[Any]":
        self.calls.append((fn, args, kwargs))
        return Future()

    def run_all(self) -> None:
        calls, self.calls = self.calls, []
        for fn, args, kwargs in calls:
            fn(*args, **kwargs)

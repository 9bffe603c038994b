import queue
from typing import Any
from unittest.mock import MagicMock, patch

from model_ingest.config.settings import Settings
from model_ingest.jobs.models import FileStatus
from model_ingest.worker.messages import (
    FinalizationOutcome,
    LogMessage,
    MultiStatusUpdate,
    ProgressMessage,
    StatusUpdate,
)
from model_ingest.worker.worker import Worker


def _make_worker(
    settings: Settings, clock: Any = None
) -> tuple[Worker, MagicMock, "queue.Queue[Any]"]:
    """Create a Worker around a mocked service with a real inbox."""
    inbox: queue.Queue[Any] = queue.Queue()
    service = MagicMock()
    service.inbox = inbox
    service.pool.active_items.return_value = []
    worker = Worker(service, settings, clock=clock or (lambda: 0.0))
    return worker, service, inbox


class TestWorkerDispatch:
    def test_progress_for_single_job(self, settings: Settings) -> None:
        worker, service, inbox = _make_worker(settings)
        inbox.put(ProgressMessage(unit_id="proc_1", progress=48, message="Converting IFC: 20%"))

        assert worker.run_once() == 1

        service.on_file_status_update.assert_called_once_with(
            "proc_1", None, FileStatus.PROCESSING, 48, "Converting IFC: 20%"
        )

    def test_progress_for_multi_file_member(self, settings: Settings) -> None:
        worker, service, inbox = _make_worker(settings)
        inbox.put(
            ProgressMessage(
                unit_id="proc_1", progress=60, message="m", parent_job_id="multi_1", file_index=1
            )
        )
        worker.run_once()
        service.on_file_status_update.assert_called_once_with(
            "multi_1", 1, FileStatus.PROCESSING, 60, "m"
        )

    def test_status_update(self, settings: Settings) -> None:
        worker, service, inbox = _make_worker(settings)
        inbox.put(StatusUpdate("proc_1", "failed", 0, "Processing failed", error="boom"))
        worker.run_once()
        service.on_file_status_update.assert_called_once_with(
            "proc_1", None, "failed", 0, "Processing failed", result_payload=None, error="boom"
        )

    def test_multi_status_update(self, settings: Settings) -> None:
        worker, service, inbox = _make_worker(settings)
        inbox.put(MultiStatusUpdate("proc_1", "multi_1", 0, "processing", 30, "start"))
        worker.run_once()
        service.on_file_status_update.assert_called_once_with(
            "multi_1", 0, "processing", 30, "start", result_payload=None, error=None
        )

    def test_finalization_outcome(self, settings: Settings) -> None:
        worker, service, inbox = _make_worker(settings)
        outcome = FinalizationOutcome(job_id="proc_1", error="db down")
        inbox.put(outcome)
        worker.run_once()
        service.apply_outcome.assert_called_once_with(outcome)

    def test_log_messages_are_forwarded(self, settings: Settings) -> None:
        worker, _service, inbox = _make_worker(settings)
        inbox.put(LogMessage(unit_id="proc_1", level="warning", message="High memory usage"))
        with patch("model_ingest.worker.worker.Log") as mock_log:
            worker.run_once()
        mock_log.unit.assert_called_once_with("proc_1", "warning", "High memory usage")

    def test_unknown_message_is_ignored(self, settings: Settings) -> None:
        worker, service, inbox = _make_worker(settings)
        inbox.put(object())
        assert worker.run_once() == 1
        service.on_file_status_update.assert_not_called()

    def test_handler_errors_do_not_stop_the_loop(self, settings: Settings) -> None:
        worker, service, inbox = _make_worker(settings)
        service.on_file_status_update.side_effect = [RuntimeError("boom"), None]
        inbox.put(ProgressMessage(unit_id="proc_1", progress=40, message="a"))
        inbox.put(ProgressMessage(unit_id="proc_1", progress=50, message="b"))
        assert worker.run_once() == 2
        assert service.on_file_status_update.call_count == 2


class TestWorkerReaping:
    def test_exited_units_are_reported_after_their_messages(self, settings: Settings) -> None:
        worker, service, inbox = _make_worker(settings)
        handle = MagicMock(exitcode=0)
        handle.is_alive.return_value = False
        service.pool.active_items.return_value = [("proc_1", handle)]

        order: list[str] = []
        service.on_file_status_update.side_effect = lambda *a, **k: order.append("status")
        service.on_unit_exited.side_effect = lambda *a: order.append("exited")

        def late_message() -> list[Any]:
            inbox.put(StatusUpdate("proc_1", "completed", 100, "done"))
            return [("proc_1", handle)]

        service.pool.active_items.side_effect = late_message
        worker.run_once()

        assert order == ["status", "exited"]
        service.on_unit_exited.assert_called_once_with("proc_1", 0)

    def test_live_units_are_left_alone(self, settings: Settings) -> None:
        worker, service, _inbox = _make_worker(settings)
        handle = MagicMock()
        handle.is_alive.return_value = True
        service.pool.active_items.return_value = [("proc_1", handle)]
        worker.run_once()
        service.on_unit_exited.assert_not_called()


class TestWorkerSweep:
    def test_sweeps_when_interval_elapsed(self, settings: Settings) -> None:
        now = {"t": 0.0}
        worker, service, _inbox = _make_worker(settings, clock=lambda: now["t"])

        worker.run_once()
        service.sweep_expired.assert_not_called()

        now["t"] = settings.retention_sweep_interval_seconds + 1.0
        worker.run_once()
        service.sweep_expired.assert_called_once()


class TestWorkerShutdown:
    def test_stops_on_keyboard_interrupt(self, settings: Settings) -> None:
        worker, _service, _inbox = _make_worker(settings)
        with patch.object(worker, "run_once", side_effect=[0, KeyboardInterrupt]) as mock_run:
            worker.run()
        assert mock_run.call_count == 2

    def test_max_iterations(self, settings: Settings) -> None:
        worker, _service, _inbox = _make_worker(settings)
        with patch.object(worker, "run_once", return_value=0) as mock_run:
            worker.run(max_iterations=3)
        assert mock_run.call_count == 3
        mock_run.assert_called_with(timeout=settings.message_poll_interval_seconds)

"""
Unit tests for the external trigger.
"""

import logging
import threading
from concurrent.futures import Future

import pytest

from adaptserver.trigger import (
    ProcessTrigger,
    TriggerOutcome,
    TriggerResult,
    TriggerWorker,
    classify,
)
from adaptserver.trigger.worker import WorkerState


class TestClassify:
    """Tests for exit status classification."""

    @pytest.mark.parametrize("status,outcome", [
        (0, TriggerOutcome.SUCCESS),
        (127, TriggerOutcome.NOT_FOUND),
        (1, TriggerOutcome.FAILED),
        (2, TriggerOutcome.FAILED),
        (126, TriggerOutcome.FAILED),
        (-9, TriggerOutcome.FAILED),
    ])
    def test_classify(self, status, outcome):
        assert classify(status) is outcome


class TestProcessTrigger:
    """Tests for ProcessTrigger.run()."""

    def test_success_receives_path(self, make_script, tmp_path):
        """Test that the command gets the file path as its only argument."""
        record = tmp_path / "args.txt"
        script = make_script(f'echo "$#:$1" > "{record}"')

        result = ProcessTrigger(script).run("/data/uploads/clip.dat")

        assert result.outcome is TriggerOutcome.SUCCESS
        assert result.ok
        assert result.returncode == 0
        assert record.read_text().strip() == "1:/data/uploads/clip.dat"

    def test_generic_failure(self, make_script):
        """Test that a nonzero status is a FAILED outcome with the status."""
        result = ProcessTrigger(make_script("exit 3")).run("/tmp/f")

        assert result.outcome is TriggerOutcome.FAILED
        assert result.returncode == 3
        assert not result.ok

    def test_status_127_is_not_found(self, make_script):
        """Test that a command reporting 127 is classified as not found."""
        result = ProcessTrigger(make_script("exit 127")).run("/tmp/f")

        assert result.outcome is TriggerOutcome.NOT_FOUND

    def test_missing_command(self, tmp_path):
        """Test that a missing executable is classified as not found."""
        result = ProcessTrigger(str(tmp_path / "no-such-command")).run("/tmp/f")

        assert result.outcome is TriggerOutcome.NOT_FOUND
        assert result.returncode == 127

    def test_not_executable(self, tmp_path):
        """Test that a file without execute permission fails, not crashes."""
        path = tmp_path / "plain.txt"
        path.write_text("not a program\n")

        result = ProcessTrigger(str(path)).run("/tmp/f")

        assert result.outcome is TriggerOutcome.FAILED
        assert result.returncode == 126

    def test_timeout_kills_command(self, make_script):
        """Test that a bounded trigger is killed and reported."""
        result = ProcessTrigger(make_script("sleep 10"), timeout=0.2).run("/tmp/f")

        assert result.outcome is TriggerOutcome.TIMED_OUT
        assert result.returncode is None
        assert result.duration < 5


class TestTriggerWorker:
    """Tests for TriggerWorker."""

    def test_submit_returns_future(self, make_script):
        """Test that a submitted run resolves to its TriggerResult."""
        worker = TriggerWorker(ProcessTrigger(make_script("exit 0")))
        worker.start()

        try:
            future = worker.submit("/tmp/f")
            assert isinstance(future, Future)

            result = future.result(timeout=5)
            assert result.outcome is TriggerOutcome.SUCCESS
            assert worker.tasks_completed == 1
        finally:
            worker.shutdown()

        assert worker.state is WorkerState.STOPPED

    def test_runs_tasks_in_order(self):
        """Test that tasks run one at a time, in submission order."""
        order = []

        class Recording:
            def run(self, path):
                order.append(path)
                return TriggerResult(path, TriggerOutcome.FAILED, 1)

        worker = TriggerWorker(Recording())
        worker.start()
        try:
            futures = [worker.submit(f"/tmp/{i}") for i in range(3)]
            for f in futures:
                f.result(timeout=5)
        finally:
            worker.shutdown()

        assert order == ["/tmp/0", "/tmp/1", "/tmp/2"]
        assert worker.tasks_failed == 3

    def test_queue_wait_is_logged(self, caplog):
        """Test that the time a task spent queued is reported."""

        class Instant:
            def run(self, path):
                return TriggerResult(path, TriggerOutcome.SUCCESS, 0)

        worker = TriggerWorker(Instant())
        worker.start()
        try:
            with caplog.at_level(logging.DEBUG, logger="adaptserver.trigger"):
                worker.submit("/tmp/queued").result(timeout=5)
        finally:
            worker.shutdown()

        assert "Trigger for /tmp/queued waited" in caplog.text

    def test_exception_is_set_on_future(self):
        """Test that an unexpected error reaches the waiter."""

        class Broken:
            def run(self, path):
                raise RuntimeError("boom")

        worker = TriggerWorker(Broken())
        worker.start()
        try:
            with pytest.raises(RuntimeError, match="boom"):
                worker.submit("/tmp/f").result(timeout=5)
        finally:
            worker.shutdown()

    def test_pending_tasks_cancelled_on_shutdown(self):
        """Test that queued tasks are cancelled and submit() is refused afterwards."""
        release = threading.Event()

        class Blocking:
            def run(self, path):
                release.wait(5)
                return TriggerResult(path, TriggerOutcome.SUCCESS, 0)

        worker = TriggerWorker(Blocking())
        worker.start()

        running = worker.submit("/tmp/first")
        queued = worker.submit("/tmp/second")

        for _ in range(100):
            if running.running():
                break
            threading.Event().wait(0.01)

        worker.shutdown(wait=False)
        release.set()
        worker.join(5)

        assert running.result(timeout=5).ok
        assert queued.cancelled()

        with pytest.raises(RuntimeError):
            worker.submit("/tmp/third")

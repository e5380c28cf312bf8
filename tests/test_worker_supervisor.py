"""
Tests for the worker supervisor and worker delivery.
"""
import sys
import threading
import time
from unittest.mock import MagicMock, patch

import pytest

from mixpanel_tracker.delivery import WorkerDelivery
from mixpanel_tracker.tracker import Tracker
from mixpanel_tracker.worker_supervisor import (
    WORKER_SCRIPT,
    WorkerState,
    WorkerSupervisor,
    get_worker_supervisor,
)


def _fake_process(*args, **kwargs):
    """Fake Popen whose raw stdin accepts every byte it is given."""
    process = MagicMock()
    process.stdin.write.side_effect = len
    return process


@pytest.fixture
def mock_popen():
    """Patch Popen so every spawn returns a distinct fake process."""
    with patch("mixpanel_tracker.worker_supervisor.subprocess.Popen") as popen:
        popen.side_effect = _fake_process
        yield popen


class TestWorkerSupervisor:
    """Test handle lifecycle with a fake process."""

    def test_default_command(self):
        supervisor = WorkerSupervisor()
        assert supervisor.command == [sys.executable, str(WORKER_SCRIPT)]
        assert WORKER_SCRIPT.exists()

    def test_lazy_spawn(self, mock_popen):
        """Nothing is spawned until the first acquire."""
        supervisor = WorkerSupervisor()
        assert supervisor.state is WorkerState.NO_WORKER
        mock_popen.assert_not_called()

        handle = supervisor.acquire()

        assert supervisor.state is WorkerState.WORKER_ACTIVE
        assert supervisor.current is handle
        mock_popen.assert_called_once()
        assert mock_popen.call_args.kwargs["stdin"] is not None
        assert mock_popen.call_args.kwargs["bufsize"] == 0

    def test_acquire_reuses_handle(self, mock_popen):
        supervisor = WorkerSupervisor()
        assert supervisor.acquire() is supervisor.acquire()
        assert mock_popen.call_count == 1

    def test_dispose_current(self, mock_popen):
        """Disposing the current handle closes its pipe and clears the slot."""
        supervisor = WorkerSupervisor()
        handle = supervisor.acquire()

        supervisor.dispose(handle)

        handle.stdin.close.assert_called_once()
        assert supervisor.state is WorkerState.NO_WORKER
        assert supervisor.acquire() is not handle

    def test_dispose_stale_handle_is_noop(self, mock_popen):
        """A handle that was already replaced does not clear the new one."""
        supervisor = WorkerSupervisor()
        old = supervisor.acquire()
        supervisor.dispose(old)
        new = supervisor.acquire()

        supervisor.dispose(old)

        assert supervisor.current is new
        assert old.stdin.close.call_count == 1

    def test_shutdown(self, mock_popen):
        supervisor = WorkerSupervisor()
        supervisor.shutdown()
        handle = supervisor.acquire()

        supervisor.shutdown()

        handle.stdin.close.assert_called_once()
        assert supervisor.current is None

    def test_global_supervisor_is_shared(self):
        assert get_worker_supervisor() is get_worker_supervisor()


class TestWorkerDelivery:
    """Test the worker delivery path on top of the supervisor."""

    def test_sequential_sends_reuse_worker(self, mock_popen):
        supervisor = WorkerSupervisor()
        tracker = Tracker("token", {}, True, supervisor=supervisor)

        tracker.track_event("first")
        tracker.track_event("second")

        assert mock_popen.call_count == 1
        handle = supervisor.current
        assert handle.stdin.write.call_count == 2

    def test_broken_pipe_respawns_on_next_send(self, mock_popen):
        """A failed write drops the event and the next send gets a new worker."""
        supervisor = WorkerSupervisor()
        tracker = Tracker("token", {}, True, supervisor=supervisor)

        tracker.track_event("first")
        first = supervisor.current
        first.stdin.write.side_effect = BrokenPipeError()

        assert tracker.track_event("dropped") is False
        assert supervisor.state is WorkerState.NO_WORKER

        tracker.track_event("third")
        second = supervisor.current
        assert second is not first
        assert mock_popen.call_count == 2
        assert second.stdin.write.call_count == 1

    def test_partial_writes_complete_the_line(self, mock_popen):
        """Short writes on the raw pipe are continued until the line is out."""
        supervisor = WorkerSupervisor()
        delivery = WorkerDelivery(supervisor)
        handle = supervisor.acquire()
        chunks = []

        def short_write(data):
            chunks.append(bytes(data[:4]))
            return min(4, len(data))

        handle.stdin.write.side_effect = short_write

        delivery.send("http://example/track/?data=abc")

        assert b"".join(chunks) == b"http://example/track/?data=abc\n"

    def test_stale_handle_write_is_dropped(self, mock_popen):
        """A handle disposed by another thread mid-send drops the event quietly."""
        supervisor = WorkerSupervisor()
        delivery = WorkerDelivery(supervisor)
        stale = supervisor.acquire()
        supervisor.dispose(stale)
        replacement = supervisor.acquire()
        stale.stdin.write.side_effect = ValueError("write to closed file")

        with patch.object(supervisor, "acquire", return_value=stale):
            assert delivery.send("http://example/track/?data=x") is None

        assert supervisor.current is replacement
        replacement.stdin.close.assert_not_called()

    def test_closed_current_handle_still_raises(self, mock_popen):
        """A closed pipe nobody disposed is a bug, not a pipe failure."""
        supervisor = WorkerSupervisor()
        delivery = WorkerDelivery(supervisor)
        supervisor.acquire().stdin.write.side_effect = ValueError("write to closed file")

        with pytest.raises(ValueError):
            delivery.send("http://example/track/?data=x")

    def test_concurrent_senders_share_one_worker(self):
        """Many threads never see more than one live worker."""
        def slow_spawn(*args, **kwargs):
            time.sleep(0.01)
            return _fake_process()

        supervisor = WorkerSupervisor()
        seen = []
        seen_lock = threading.Lock()

        def send():
            tracker = Tracker("token", {}, True, supervisor=supervisor)
            for _ in range(5):
                tracker.track_event("load")
                with seen_lock:
                    seen.append(supervisor.current)

        with patch("mixpanel_tracker.worker_supervisor.subprocess.Popen", side_effect=slow_spawn) as popen:
            threads = [threading.Thread(target=send) for _ in range(16)]
            for t in threads:
                t.start()
            for t in threads:
                t.join()

        assert popen.call_count == 1
        assert len(seen) == 16 * 5
        assert len({id(h) for h in seen}) == 1


class TestRealWorkerProcess:
    """Exercise the pipe against a real child process."""

    def test_dead_worker_is_replaced(self):
        """Writing to an exited child raises EPIPE and triggers a respawn."""
        # Child reads one line and exits
        command = [sys.executable, "-c", "import sys; sys.stdin.readline()"]
        supervisor = WorkerSupervisor(command=command)
        delivery = WorkerDelivery(supervisor)

        try:
            first = supervisor.acquire()
            delivery.send("http://example/track/?data=one")
            first.wait(timeout=10)

            delivery.send("http://example/track/?data=two")
            assert supervisor.state is WorkerState.NO_WORKER

            second = supervisor.acquire()
            assert second is not first
            assert second.pid != first.pid
        finally:
            supervisor.shutdown()

    def test_send_on_disposed_pipe_does_not_raise(self):
        """A sender still holding a disposed handle loses only its own event."""
        command = [sys.executable, "-c", "import sys; sys.stdin.read()"]
        supervisor = WorkerSupervisor(command=command)
        delivery = WorkerDelivery(supervisor)

        try:
            stale = supervisor.acquire()
            supervisor.dispose(stale)
            stale.wait(timeout=10)

            with patch.object(supervisor, "acquire", return_value=stale):
                assert delivery.send("http://example/track/?data=late") is None

            assert supervisor.state is WorkerState.NO_WORKER
        finally:
            supervisor.shutdown()

    def test_shutdown_with_stalled_worker_returns(self):
        """Closing an unbuffered pipe never waits on a worker that stopped reading."""
        command = [sys.executable, "-c", "import time; time.sleep(30)"]
        supervisor = WorkerSupervisor(command=command)
        handle = supervisor.acquire()

        try:
            supervisor.shutdown()
            assert supervisor.current is None
            assert handle.stdin.closed
        finally:
            handle.kill()
            handle.wait(timeout=10)

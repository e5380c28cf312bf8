"""
Worker supervisor for asynchronous delivery.
Owns the single long-lived worker subprocess and respawns it lazily after a
pipe failure.
"""
import logging
import subprocess
import sys
import threading
from enum import Enum
from pathlib import Path
from typing import List, Optional

logger = logging.getLogger(__name__)

WORKER_SCRIPT = Path(__file__).parent / "worker_process.py"


class WorkerState(Enum):
    """Lifecycle of the supervised worker."""

    NO_WORKER = "no_worker"
    WORKER_ACTIVE = "worker_active"


class WorkerSupervisor:
    """Thread-safe owner of the delivery worker process."""

    def __init__(self, command: Optional[List[str]] = None):
        """Initialize the supervisor.

        Args:
            command: Optional command line for the worker. Defaults to the
                current interpreter running ``worker_process.py``.
        """
        self._lock = threading.Lock()
        # Serializes writers on the unbuffered worker pipe
        self.write_lock = threading.Lock()
        self._worker: Optional[subprocess.Popen] = None
        self._command = list(command) if command else None

    @property
    def command(self) -> List[str]:
        """Command line used to spawn the worker."""
        if self._command is None:
            self._command = [sys.executable, str(WORKER_SCRIPT)]
        return self._command

    @property
    def state(self) -> WorkerState:
        with self._lock:
            return WorkerState.WORKER_ACTIVE if self._worker is not None else WorkerState.NO_WORKER

    @property
    def current(self) -> Optional[subprocess.Popen]:
        """The live worker handle, or None."""
        with self._lock:
            return self._worker

    def acquire(self) -> subprocess.Popen:
        """Return the live worker, spawning one if there is none."""
        with self._lock:
            if self._worker is None:
                self._worker = self._spawn()
            return self._worker

    def dispose(self, handle: subprocess.Popen) -> None:
        """Forget *handle* and close its pipe if it is still the current worker.

        A handle that was already replaced by another thread is left alone.
        """
        with self._lock:
            if self._worker is not handle:
                logger.debug("Worker handle already replaced, nothing to dispose")
                return
            self._worker = None
            self._close(handle)
            logger.info(f"Disposed delivery worker (pid={handle.pid})")

    def shutdown(self) -> None:
        """Dispose the current worker, if any."""
        handle = self.current
        if handle is not None:
            self.dispose(handle)

    def _spawn(self) -> subprocess.Popen:
        # Caller holds the lock
        handle = subprocess.Popen(
            self.command,
            stdin=subprocess.PIPE,
            bufsize=0,
        )
        logger.info(f"Started delivery worker (pid={handle.pid})")
        return handle

    @staticmethod
    def _close(handle: subprocess.Popen) -> None:
        # Unbuffered, so closing never waits on a stalled worker
        if handle.stdin is not None:
            handle.stdin.close()
        # Reap the child if it has already exited
        handle.poll()


# Global instance
_worker_supervisor: Optional[WorkerSupervisor] = None
_supervisor_lock = threading.Lock()


def get_worker_supervisor() -> WorkerSupervisor:
    """Get or create the process-wide worker supervisor."""
    global _worker_supervisor
    with _supervisor_lock:
        if _worker_supervisor is None:
            _worker_supervisor = WorkerSupervisor()
        return _worker_supervisor

"""
Delivery strategies

Decides how an encoded track URL reaches the collector: a blocking HTTP call,
the supervised worker process, or a caller-supplied delegate.
"""

import logging
from abc import ABC, abstractmethod
from enum import Enum
from typing import Any, Optional, Protocol, runtime_checkable

import requests

from .worker_supervisor import WorkerSupervisor, get_worker_supervisor

logger = logging.getLogger(__name__)


class DeliveryMode(Enum):
    """Available delivery mechanisms."""

    SYNC = "sync"
    WORKER = "worker"
    DELEGATE = "delegate"

    @classmethod
    def from_string(cls, value: str) -> "DeliveryMode":
        """Parse a configuration value such as ``"worker"``."""
        try:
            return cls(value.strip().lower())
        except ValueError:
            raise ValueError(f"Unknown delivery mode: {value!r}") from None


@runtime_checkable
class AsyncDelegate(Protocol):
    """Anything that can take over delivery of a track URL, e.g. a job queue."""

    def perform(self, url: str) -> None:
        ...


class DeliveryStrategy(ABC):
    """Base class for delivery strategies."""

    mode: DeliveryMode

    @abstractmethod
    def send(self, url: str) -> Optional[str]:
        """Deliver *url*; return the raw response body when there is one."""


class SyncDelivery(DeliveryStrategy):
    """Blocking GET on the caller's thread."""

    mode = DeliveryMode.SYNC

    def __init__(self, timeout: Optional[float] = None, session: Optional[requests.Session] = None):
        self.timeout = timeout
        self.session = session

    def send(self, url: str) -> str:
        getter = self.session.get if self.session is not None else requests.get
        resp = getter(url, timeout=self.timeout)
        return resp.text


class WorkerDelivery(DeliveryStrategy):
    """Hand the URL to the supervised worker process."""

    mode = DeliveryMode.WORKER

    def __init__(self, supervisor: Optional[WorkerSupervisor] = None):
        self.supervisor = supervisor or get_worker_supervisor()

    def send(self, url: str) -> None:
        worker = self.supervisor.acquire()
        line = memoryview((url + "\n").encode("utf-8"))
        try:
            # Unbuffered pipe: finish the whole line before another sender writes
            with self.supervisor.write_lock:
                while line:
                    written = worker.stdin.write(line)
                    line = line[written:]
        except BrokenPipeError:
            logger.warning("Delivery worker pipe broken, dropping event")
            self.supervisor.dispose(worker)
        except ValueError:
            # Pipe closed by another thread's dispose
            if worker is self.supervisor.current:
                raise
            logger.warning("Delivery worker was replaced during write, dropping event")
            self.supervisor.dispose(worker)
        return None


class DelegateDelivery(DeliveryStrategy):
    """Defer delivery to an external ``perform(url)`` implementation."""

    mode = DeliveryMode.DELEGATE

    def __init__(self, delegate: AsyncDelegate):
        self.delegate = delegate

    def send(self, url: str) -> None:
        self.delegate.perform(url)
        return None


def resolve_delivery(
    option: Any = False,
    supervisor: Optional[WorkerSupervisor] = None,
    timeout: Optional[float] = None,
) -> DeliveryStrategy:
    """Pick the delivery strategy for a tracker option.

    Args:
        option: ``True`` for the worker process, ``False``/``None`` for
            synchronous delivery, an object with ``perform(url)`` for a
            delegate, a ``DeliveryMode``, or a ready-made strategy
        supervisor: Worker supervisor to use in worker mode
        timeout: Request timeout for synchronous delivery

    Returns:
        The selected DeliveryStrategy

    Raises:
        ValueError: If the option does not name a delivery mechanism
    """
    if isinstance(option, DeliveryStrategy):
        return option
    if option is True or option is DeliveryMode.WORKER:
        return WorkerDelivery(supervisor)
    if option is False or option is None or option is DeliveryMode.SYNC:
        return SyncDelivery(timeout=timeout)
    if isinstance(option, AsyncDelegate) and callable(getattr(option, "perform", None)):
        return DelegateDelivery(option)
    raise ValueError(f"Unsupported delivery option: {option!r}")

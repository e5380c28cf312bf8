"""
Tracker

Per-request façade combining payload encoding, the chosen delivery strategy
and the request's queue of events to be rendered client side.
"""

import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, MutableMapping, Optional

from .delivery import DeliveryStrategy, resolve_delivery
from .encoder import DEFAULT_API_HOST, build_event, build_track_url, encode_args
from .worker_supervisor import WorkerSupervisor

logger = logging.getLogger(__name__)

QUEUE_ENV_KEY = "mixpanel_events"
REMOTE_ADDR_KEY = "REMOTE_ADDR"


class Tracker:
    """Tracks events for a single inbound request."""

    def __init__(
        self,
        token: str,
        env: MutableMapping[str, Any],
        async_option: Any = False,
        supervisor: Optional[WorkerSupervisor] = None,
        api_host: str = DEFAULT_API_HOST,
        timeout: Optional[float] = None,
    ):
        """Initialize the tracker.

        Args:
            token: Project API token sent with every tracked event
            env: Request-scoped environment (e.g. a WSGI environ)
            async_option: ``True`` for the worker process, an object with
                ``perform(url)`` for a delegate, otherwise synchronous
            supervisor: Worker supervisor to use in worker mode
            api_host: Collector host name
            timeout: Request timeout for synchronous delivery
        """
        self.token = token
        self.env = env
        self.api_host = api_host
        self.delivery: DeliveryStrategy = resolve_delivery(async_option, supervisor, timeout)
        self._queue: List[list] = []
        self.clear_queue()

    @property
    def ip(self) -> str:
        return self.env.get(REMOTE_ADDR_KEY, "")

    @property
    def queue(self) -> List[list]:
        """Events waiting to be rendered, as ``[type, [json_arg, ...]]`` pairs."""
        return self._queue

    def clear_queue(self) -> None:
        self._queue = []
        self.env[QUEUE_ENV_KEY] = self._queue

    def append_event(self, event: str, properties: Optional[Dict[str, Any]] = None) -> None:
        """Queue a ``track`` call for client-side rendering."""
        self.append_api("track", event, properties if properties is not None else {})

    def append_api(self, type: str, *args: Any) -> None:
        """Queue an arbitrary client API call; arguments are JSON encoded now."""
        self._queue.append([type, encode_args(*args)])

    def track_event(self, event: str, properties: Optional[Dict[str, Any]] = None) -> bool:
        """Send an event to the collector right away.

        Returns:
            True if the collector answered ``"1"``. Worker and delegate
            delivery have no response, so they always return False.
        """
        merged = dict(properties or {})
        merged.update(
            token=self.token,
            time=int(datetime.now(timezone.utc).timestamp()),
            ip=self.ip,
        )
        url = build_track_url(build_event(event, merged), self.api_host)
        logger.debug(f"Dispatching {event!r} via {self.delivery.mode.value} delivery")
        return self._parse_response(self.delivery.send(url))

    @staticmethod
    def _parse_response(response: Optional[str]) -> bool:
        return response == "1"

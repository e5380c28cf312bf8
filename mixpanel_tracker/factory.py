"""
Factory for creating the tracking module.
"""
from typing import TYPE_CHECKING, Optional

from .delivery import DeliveryMode
from .middleware import MixpanelMiddleware
from .worker_supervisor import WorkerSupervisor, get_worker_supervisor

if TYPE_CHECKING:
    from config_manager import MiddlewareConfig, TrackerConfig


def create_tracking_module(
    tracker_config: "TrackerConfig",
    middleware_config: Optional["MiddlewareConfig"] = None,
    supervisor: Optional[WorkerSupervisor] = None,
) -> dict:
    """Create the tracking module from configuration.

    Args:
        tracker_config: Token, collector host and delivery mode
        middleware_config: Optional client-side rendering settings
        supervisor: Worker supervisor to share; defaults to the process-wide one

    Returns:
        Dictionary containing the supervisor and an unbound middleware
    """
    mode = DeliveryMode.from_string(tracker_config.delivery)
    if mode is DeliveryMode.DELEGATE:
        raise ValueError("Delegate delivery needs a delegate object, it cannot be configured by name")

    supervisor = supervisor or get_worker_supervisor()
    middleware_kwargs = {}
    if middleware_config is not None:
        middleware_kwargs = {
            "insert_js_last": middleware_config.insert_js_last,
            "library_url": middleware_config.library_url,
        }

    middleware = MixpanelMiddleware(
        token=tracker_config.token,
        async_option=mode,
        supervisor=supervisor,
        api_host=tracker_config.api_host,
        timeout=tracker_config.timeout,
        **middleware_kwargs,
    )

    return {
        "supervisor": supervisor,
        "middleware": middleware,
    }

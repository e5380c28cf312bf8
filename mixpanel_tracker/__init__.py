"""
Mixpanel Tracker

Server-side event tracking with synchronous, worker-process or delegated
delivery, plus client-side rendering of queued events.
"""

from .delivery import (
    AsyncDelegate,
    DelegateDelivery,
    DeliveryMode,
    DeliveryStrategy,
    SyncDelivery,
    WorkerDelivery,
    resolve_delivery,
)
from .encoder import build_track_url, encode_args, encode_payload
from .logging_config import get_logger, setup_logging, stop_logging
from .middleware import MixpanelMiddleware, get_tracker, render_calls
from .tracker import QUEUE_ENV_KEY, Tracker
from .worker_supervisor import WorkerState, WorkerSupervisor, get_worker_supervisor

__all__ = [
    'Tracker',
    'QUEUE_ENV_KEY',
    'DeliveryMode',
    'DeliveryStrategy',
    'SyncDelivery',
    'WorkerDelivery',
    'DelegateDelivery',
    'AsyncDelegate',
    'resolve_delivery',
    'WorkerSupervisor',
    'WorkerState',
    'get_worker_supervisor',
    'MixpanelMiddleware',
    'get_tracker',
    'render_calls',
    'build_track_url',
    'encode_args',
    'encode_payload',
    'setup_logging',
    'stop_logging',
    'get_logger',
]

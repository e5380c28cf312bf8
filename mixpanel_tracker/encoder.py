"""
encoder.py - Payload encoding for the tracking endpoint

Turns event names and property mappings into the JSON / base64 text the
collector expects in the ``data`` query parameter.
"""

import base64
import json
from typing import Any, Dict, List

DEFAULT_API_HOST = "api.mixpanel.com"


def encode_arg(value: Any) -> str:
    """Return the compact JSON text for a single argument."""
    return json.dumps(value, separators=(",", ":"))


def encode_args(*args: Any) -> List[str]:
    """Return the JSON text of each argument, in order."""
    return [encode_arg(arg) for arg in args]


def build_event(event: str, properties: Dict[str, Any]) -> Dict[str, Any]:
    """Wrap an event name and its properties into the track payload."""
    return {"event": event, "properties": properties}


def encode_payload(params: Dict[str, Any]) -> str:
    """Base64 of the compact JSON payload, newlines stripped."""
    raw = json.dumps(params, separators=(",", ":")).encode("utf-8")
    return base64.b64encode(raw).decode("ascii").replace("\n", "")


def build_track_url(params: Dict[str, Any], api_host: str = DEFAULT_API_HOST) -> str:
    """Build the full ``/track/`` URL for *params*."""
    return f"http://{api_host}/track/?data={encode_payload(params)}"

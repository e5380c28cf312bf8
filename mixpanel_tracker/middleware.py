"""
Flask middleware

Creates a Tracker for every request and, once the view has run, renders the
queued events into the response as JavaScript calls to the client library.
"""

import json
import logging
from functools import partial
from typing import Any, List, Optional

from flask import Flask, Response, g, request
from jinja2.utils import htmlsafe_json_dumps
from markupsafe import escape

from .encoder import DEFAULT_API_HOST
from .tracker import Tracker
from .worker_supervisor import WorkerSupervisor

logger = logging.getLogger(__name__)

DEFAULT_LIBRARY_URL = "https://cdn.mxpnl.com/libs/mixpanel-2-latest.min.js"
JS_MIMETYPES = {"text/javascript", "application/javascript", "application/x-javascript"}


_compact_dumps = partial(json.dumps, separators=(",", ":"))


def script_json(value: Any) -> str:
    """JSON for a ``<script>`` block with ``<``, ``>``, ``&`` and ``'`` escaped."""
    return str(htmlsafe_json_dumps(value, dumps=_compact_dumps))


def render_calls(queue: List[list]) -> str:
    """Render queued ``[type, [json_arg, ...]]`` entries as JS statements.

    Entries whose call type is not a plain identifier are skipped.
    """
    lines = []
    for call_type, args in queue:
        if not call_type.isidentifier():
            logger.warning(f"Skipping queued call with invalid type {call_type!r}")
            continue
        rendered = ",".join(script_json(json.loads(arg)) for arg in args)
        lines.append(f"mixpanel.{call_type}({rendered});")
    return "\n".join(lines)


class MixpanelMiddleware:
    """Per-request tracking with client-side rendering of queued events."""

    def __init__(
        self,
        app: Optional[Flask] = None,
        token: Optional[str] = None,
        async_option: Any = False,
        supervisor: Optional[WorkerSupervisor] = None,
        insert_js_last: bool = False,
        library_url: str = DEFAULT_LIBRARY_URL,
        api_host: str = DEFAULT_API_HOST,
        timeout: Optional[float] = None,
    ):
        self.token = token
        self.async_option = async_option
        self.supervisor = supervisor
        self.insert_js_last = insert_js_last
        self.library_url = library_url
        self.api_host = api_host
        self.timeout = timeout
        if app is not None:
            self.init_app(app)

    def init_app(self, app: Flask) -> None:
        """Register request hooks on *app*."""
        if self.token is None:
            self.token = app.config.get("MIXPANEL_TOKEN", "")
        app.before_request(self._before_request)
        app.after_request(self._after_request)
        app.extensions["mixpanel"] = self

    def _before_request(self) -> None:
        g.mixpanel = Tracker(
            self.token,
            request.environ,
            self.async_option,
            supervisor=self.supervisor,
            api_host=self.api_host,
            timeout=self.timeout,
        )

    def _after_request(self, response: Response) -> Response:
        tracker: Optional[Tracker] = g.get("mixpanel")
        if tracker is None or response.direct_passthrough:
            return response

        if self._is_xhr() and response.mimetype in JS_MIMETYPES:
            if tracker.queue:
                response.set_data(response.get_data(as_text=True) + "\n" + render_calls(tracker.queue))
                tracker.clear_queue()
        elif response.status_code == 200 and response.mimetype == "text/html":
            self._inject_html(response, tracker)
        return response

    def _is_xhr(self) -> bool:
        return request.headers.get("X-Requested-With") == "XMLHttpRequest"

    def _inject_html(self, response: Response, tracker: Tracker) -> None:
        body = response.get_data(as_text=True)
        anchor = "</body>" if self.insert_js_last else "</head>"
        index = body.find(anchor)
        if index == -1:
            logger.debug(f"No {anchor} tag in response, skipping script injection")
            return
        snippet = self.render_script(tracker.queue)
        response.set_data(body[:index] + snippet + body[index:])
        tracker.clear_queue()

    def render_script(self, queue: List[list]) -> str:
        """Library include, init call and the queued calls as HTML."""
        lines = [f"mixpanel.init({script_json(self.token)});"]
        if queue:
            lines.append(render_calls(queue))
        return (
            f'<script type="text/javascript" src="{escape(self.library_url)}"></script>\n'
            '<script type="text/javascript">\n'
            + "\n".join(lines)
            + "\n</script>\n"
        )


def get_tracker() -> Tracker:
    """Return the tracker for the current request."""
    return g.mixpanel

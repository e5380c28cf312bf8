#!/usr/bin/env python3
"""
Simple runner script for a demo Flask application.
Wires the tracking middleware from configuration and serves a page that
queues a client-side event and tracks a server-side one.
"""

import atexit

from flask import Flask

from config_manager import get_app_config, get_middleware_config, get_tracker_config
from mixpanel_tracker import get_tracker, setup_logging, stop_logging
from mixpanel_tracker.factory import create_tracking_module


def create_app() -> Flask:
    """Build the demo app with tracking enabled."""
    app = Flask(__name__)
    module = create_tracking_module(get_tracker_config(), get_middleware_config())
    module["middleware"].init_app(app)
    atexit.register(module["supervisor"].shutdown)

    @app.route("/")
    def index():
        tracker = get_tracker()
        tracker.append_event("Viewed Page", {"page": "index"})
        tracker.track_event("Page Served", {"page": "index"})
        return "<html><head><title>Demo</title></head><body>Hello</body></html>"

    return app


if __name__ == "__main__":
    app_config = get_app_config()
    setup_logging(debug=app_config.debug)
    try:
        create_app().run(
            host=app_config.host,
            port=app_config.port,
            debug=app_config.debug
        )
    finally:
        stop_logging()

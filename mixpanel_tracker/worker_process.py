#!/usr/bin/env python3
"""
worker_process.py - Out-of-band delivery worker

Started by ``WorkerSupervisor`` with a pipe attached to stdin. Each line is a
fully encoded track URL; the worker issues a GET for it and moves on to the
next one. Failed requests are logged to stderr and skipped. The worker exits
when its stdin is closed.

This file is executed directly by the interpreter, so it only depends on
``requests`` and the standard library.
"""

import logging
import sys
from typing import Optional, TextIO

import requests

_LOG = logging.getLogger("mixpanel_worker")

REQUEST_TIMEOUT = 30


def deliver(url: str, session: requests.Session, timeout: Optional[float] = REQUEST_TIMEOUT) -> bool:
    """Issue one GET; return True if the collector accepted it."""
    try:
        resp = session.get(url, timeout=timeout)
    except requests.RequestException as exc:
        _LOG.warning("Delivery failed for %s: %s", url[:80], exc)
        return False
    accepted = resp.text == "1"
    if not accepted:
        _LOG.debug("Collector rejected event (status=%s body=%r)", resp.status_code, resp.text[:40])
    return accepted


def run(stream: TextIO, session: Optional[requests.Session] = None) -> int:
    """Deliver every URL read from *stream*; return the number processed."""
    session = session or requests.Session()
    processed = 0
    for line in stream:
        url = line.strip()
        if not url:
            continue
        deliver(url, session)
        processed += 1
    return processed


def main() -> int:
    logging.basicConfig(
        stream=sys.stderr,
        level=logging.INFO,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )
    count = run(sys.stdin)
    _LOG.info("Worker exiting after %d events", count)
    return 0


if __name__ == "__main__":
    sys.exit(main())

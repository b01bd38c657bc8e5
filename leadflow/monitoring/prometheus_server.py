"""Optional Prometheus HTTP server for the worker process.

Worker pools run as a standalone process and expose their own metrics port for
Prometheus to scrape. Enable by setting `METRICS_PORT`.
"""

from __future__ import annotations

import structlog
from prometheus_client import start_http_server

logger = structlog.get_logger()

_started = False


def maybe_start_prometheus_http_server(port: int | None, *, component: str) -> bool:
    """Start a metrics server if a port is configured. Returns True once started."""
    global _started
    if _started:
        return True
    if not port:
        return False

    # Listen on all interfaces so the Prometheus container can scrape it.
    start_http_server(port, addr="0.0.0.0")
    _started = True
    logger.info("Prometheus metrics server started", component=component, port=port)
    return True

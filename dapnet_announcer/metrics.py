"""Prometheus metrics for dapnet-announcer."""

from __future__ import annotations

import structlog
from prometheus_client import REGISTRY, CollectorRegistry, Counter, start_http_server

from dapnet_announcer.models import DispatchMode

logger = structlog.get_logger()

RESULT_OK = "ok"
RESULT_ERROR = "error"


class AnnouncementMetrics:
    """Counts DAPNET delivery attempts by target kind and result."""

    def __init__(self, registry: CollectorRegistry = REGISTRY) -> None:
        self._announcements = Counter(
            "dapnet_event_announcements",
            "Number of announcements sent to DAPNET",
            ["target", "result"],
            registry=registry,
        )

    def record(self, target: DispatchMode, result: str) -> None:
        self._announcements.labels(target=target.value, result=result).inc()


def start_metrics_server(address: str, registry: CollectorRegistry = REGISTRY) -> None:
    """Serve /metrics on a host:port address."""
    host, _, port = address.rpartition(":")
    start_http_server(int(port), addr=host.strip("[]"), registry=registry)
    logger.info("metrics_server_started", address=address)

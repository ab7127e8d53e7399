"""Prometheus metrics for the bridge."""

import threading
from typing import Final

from prometheus_client import (  # type: ignore[import-untyped]
    Counter,
    Gauge,
    start_http_server,
)

gh_command_publish_total: Final = Counter(  # type: ignore[assignment]
    "gh_command_publish_total",
    "Total MQTT publishes produced from assistant commands",
    ["command", "outcome"],
)

gh_value_map_errors_total: Final = Counter(  # type: ignore[assignment]
    "gh_value_map_errors_total",
    "Total values rejected by a value map",
    ["direction"],
)

gh_state_report_total: Final = Counter(  # type: ignore[assignment]
    "gh_state_report_total",
    "Total report-state pushes to Home Graph",
    ["outcome"],
)

gh_request_sync_total: Final = Counter(  # type: ignore[assignment]
    "gh_request_sync_total",
    "Total request-sync calls to Home Graph",
    ["outcome"],
)

gh_config_reload_total: Final = Counter(  # type: ignore[assignment]
    "gh_config_reload_total",
    "Total device configuration reloads",
    ["outcome"],
)

gh_subscribed_topics: Final = Gauge(  # type: ignore[assignment]
    "gh_subscribed_topics",
    "Number of MQTT topics currently subscribed for state",
)

gh_hub_handler_errors_total: Final = Counter(  # type: ignore[assignment]
    "gh_hub_handler_errors_total",
    "Total message hub handler failures",
    ["event_type"],
)

_server_state = {"started": False}
_server_lock = threading.Lock()


def start_metrics_server(port: int = 9108) -> None:
    """Start Prometheus HTTP metrics server (idempotent)."""
    with _server_lock:
        if not _server_state["started"]:
            start_http_server(port)  # type: ignore[no-untyped-call]
            _server_state["started"] = True


def record_command_publish(command: str, outcome: str) -> None:
    gh_command_publish_total.labels(command=command, outcome=outcome).inc()  # type: ignore[no-untyped-call]


def record_value_map_error(direction: str) -> None:
    gh_value_map_errors_total.labels(direction=direction).inc()  # type: ignore[no-untyped-call]


def record_state_report(outcome: str) -> None:
    gh_state_report_total.labels(outcome=outcome).inc()  # type: ignore[no-untyped-call]


def record_request_sync(outcome: str) -> None:
    gh_request_sync_total.labels(outcome=outcome).inc()  # type: ignore[no-untyped-call]


def record_config_reload(outcome: str) -> None:
    gh_config_reload_total.labels(outcome=outcome).inc()  # type: ignore[no-untyped-call]


def record_hub_handler_error(event_type: str) -> None:
    gh_hub_handler_errors_total.labels(event_type=event_type).inc()  # type: ignore[no-untyped-call]


def set_subscribed_topics(count: int) -> None:
    gh_subscribed_topics.set(count)  # type: ignore[no-untyped-call]

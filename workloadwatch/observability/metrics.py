"""Prometheus metrics for workloadwatch.

All metrics live in the default registry so that ``start_metrics_server``
exposes them without further wiring.
"""

from __future__ import annotations

from prometheus_client import Counter, Gauge, start_http_server

pod_events_total = Counter(
    "workloadwatch_pod_events_total",
    "Pod watch events processed, by event type.",
    ["event_type"],
)

watch_reconnects_total = Counter(
    "workloadwatch_watch_reconnects_total",
    "Times the pod watch stream was re-established.",
)

workloads_tracked = Gauge(
    "workloadwatch_workloads_tracked",
    "Workload groups currently held in the registry.",
)

pods_tracked = Gauge(
    "workloadwatch_pods_tracked",
    "Pod instances currently held in the registry.",
)

desired_state_waits_total = Counter(
    "workloadwatch_desired_state_waits_total",
    "Desired-state waiter outcomes.",
    ["outcome"],  # running, terminal, timeout, error, cancelled
)

reports_shipped_total = Counter(
    "workloadwatch_reports_shipped_total",
    "Report batches posted to the collector.",
    ["success"],
)

report_records_dropped_total = Counter(
    "workloadwatch_report_records_dropped_total",
    "Change records discarded because the report buffer was full.",
)


def start_metrics_server(port: int) -> None:
    """Serve /metrics on *port* from a daemon thread."""
    start_http_server(port)

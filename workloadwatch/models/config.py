"""Configuration data structures."""

from __future__ import annotations

from dataclasses import dataclass, field


@dataclass
class WatchConfig:
    """Pod watch and desired-state waiter configuration."""

    reconnect_backoff_seconds: float = 10.0
    desired_state_timeout_seconds: float = 300.0
    desired_state_poll_interval: float = 1.0


@dataclass
class ReportConfig:
    """Outbound report shipping configuration."""

    url: str = ""
    customer_guid: str = ""
    flush_interval_seconds: float = 5.0
    timeout_seconds: float = 10.0
    buffer_max_records: int = 10000


@dataclass
class MetricsConfig:
    """Prometheus exporter configuration."""

    enabled: bool = True
    port: int = 9090


@dataclass
class LogConfig:
    """Logging configuration."""

    level: str = "info"


@dataclass
class WorkloadWatchConfig:
    """Top-level workloadwatch configuration."""

    cluster_name: str = ""
    watch: WatchConfig = field(default_factory=WatchConfig)
    report: ReportConfig = field(default_factory=ReportConfig)
    metrics: MetricsConfig = field(default_factory=MetricsConfig)
    log: LogConfig = field(default_factory=LogConfig)

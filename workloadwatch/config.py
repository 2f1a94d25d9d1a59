"""Configuration loading from environment variables."""

from __future__ import annotations

import os

from workloadwatch.models.config import (
    LogConfig,
    MetricsConfig,
    ReportConfig,
    WatchConfig,
    WorkloadWatchConfig,
)


def _env(key: str, default: str = "") -> str:
    return os.environ.get(f"WORKLOADWATCH_{key}", default)


def _env_bool(key: str, default: bool = False) -> bool:
    val = _env(key, str(default).lower())
    return val.lower() in ("true", "1", "yes")


def _env_int(key: str, default: int, min_val: int | None = None, max_val: int | None = None) -> int:
    val = int(_env(key, str(default)))
    if min_val is not None:
        val = max(val, min_val)
    if max_val is not None:
        val = min(val, max_val)
    return val


def _env_float(key: str, default: float, min_val: float | None = None, max_val: float | None = None) -> float:
    val = float(_env(key, str(default)))
    if min_val is not None:
        val = max(val, min_val)
    if max_val is not None:
        val = min(val, max_val)
    return val


def _validate_url(value: str) -> str:
    if value and not value.startswith(("http://", "https://")):
        raise ValueError(f"Invalid report url: {value!r}. Must start with http:// or https://")
    return value


def _validate_log_level(value: str) -> str:
    valid = {"debug", "info", "warning", "error"}
    if value.lower() not in valid:
        raise ValueError(f"Invalid log level: {value}. Must be one of {valid}")
    return value.lower()


def load_config() -> WorkloadWatchConfig:
    """Load configuration from WORKLOADWATCH_* environment variables."""
    return WorkloadWatchConfig(
        cluster_name=_env("CLUSTER_NAME", ""),
        watch=WatchConfig(
            reconnect_backoff_seconds=_env_float("WATCH_RECONNECT_BACKOFF", 10.0, min_val=0.0, max_val=300.0),
            desired_state_timeout_seconds=_env_float("DESIRED_STATE_TIMEOUT", 300.0, min_val=1.0, max_val=3600.0),
            desired_state_poll_interval=_env_float("DESIRED_STATE_POLL_INTERVAL", 1.0, min_val=0.1, max_val=60.0),
        ),
        report=ReportConfig(
            url=_validate_url(_env("REPORT_URL", "")),
            customer_guid=_env("CUSTOMER_GUID", ""),
            flush_interval_seconds=_env_float("REPORT_FLUSH_INTERVAL", 5.0, min_val=0.0, max_val=600.0),
            timeout_seconds=_env_float("REPORT_TIMEOUT", 10.0, min_val=1.0, max_val=120.0),
            buffer_max_records=_env_int("REPORT_BUFFER_MAX", 10000, min_val=100, max_val=1_000_000),
        ),
        metrics=MetricsConfig(
            enabled=_env_bool("METRICS_ENABLED", True),
            port=_env_int("METRICS_PORT", 9090, min_val=1024, max_val=65535),
        ),
        log=LogConfig(
            level=_validate_log_level(_env("LOG_LEVEL", "info")),
        ),
    )

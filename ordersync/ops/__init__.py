"""Operational utilities for event logging, credentials, and metrics."""

from ordersync.ops.logging import JsonEventLogger
from ordersync.ops.metrics import SyncMetrics, SyncMetricsSnapshot
from ordersync.ops.secrets import (
    Credential,
    is_ci_environment,
    load_credential,
    mask_secret,
    read_secret_env,
    redact_url,
    sanitize_logging_payload,
)

__all__ = [
    "Credential",
    "JsonEventLogger",
    "SyncMetrics",
    "SyncMetricsSnapshot",
    "is_ci_environment",
    "load_credential",
    "mask_secret",
    "read_secret_env",
    "redact_url",
    "sanitize_logging_payload",
]

"""CloudWatch Embedded Metric Format (EMF) metrics helper.

Metrics are written as structured log lines so whichever log shipper
collects the console's output can extract them without an SDK.
"""

from __future__ import annotations

import json
import logging
import re
import time
from typing import Any

from admin_console.core.config import settings

logger = logging.getLogger(__name__)

DEFAULT_NAMESPACE = "AdminConsole"


class EMFMetrics:
    """Writes metrics as EMF JSON log lines under one namespace."""

    def __init__(self, namespace: str | None = None):
        self.namespace = namespace or settings.metrics_namespace or DEFAULT_NAMESPACE

    def emit_metric(
        self,
        metric_name: str,
        value: float,
        unit: str,
        dimensions: dict[str, str] | None = None,
        metadata: dict[str, Any] | None = None,
    ) -> None:
        """Emit one metric (``unit`` is an EMF unit such as Count or Milliseconds)."""
        self.emit_metrics(
            [{"MetricName": metric_name, "Value": value, "Unit": unit}],
            dimensions=dimensions,
            metadata=metadata,
        )

    def emit_metrics(
        self,
        metrics: list[dict[str, Any]],
        dimensions: dict[str, str] | None = None,
        metadata: dict[str, Any] | None = None,
    ) -> None:
        """Emit several metrics sharing dimensions in a single log line.

        Args:
            metrics: Dicts with MetricName, Value and Unit
            dimensions: Dimension name to value, applied to every metric
            metadata: Extra top-level fields (not dimensions)
        """
        # Read per call so tests and the CLI can switch it at runtime
        if not settings.enable_metrics:
            return

        document = self._envelope([(m["MetricName"], m["Unit"]) for m in metrics], dimensions)
        document.update(metadata or {})
        document.update({m["MetricName"]: m["Value"] for m in metrics})

        logger.info(json.dumps(document, default=str))

    def _envelope(
        self,
        definitions: list[tuple[str, str]],
        dimensions: dict[str, str] | None,
    ) -> dict[str, Any]:
        dimensions = dimensions or {}
        return {
            "_aws": {
                "Timestamp": int(time.time() * 1000),
                "CloudWatchMetrics": [
                    {
                        "Namespace": self.namespace,
                        "Dimensions": [[name] for name in dimensions] if dimensions else [],
                        "Metrics": [{"MetricName": n, "Unit": u} for n, u in definitions],
                    }
                ],
            },
            **dimensions,
        }


# Global EMF metrics instance
_emf_metrics: EMFMetrics | None = None


def get_metrics() -> EMFMetrics:
    """Get or create the global EMF metrics instance."""
    global _emf_metrics
    if _emf_metrics is None:
        _emf_metrics = EMFMetrics()
    return _emf_metrics


def emit_http_request(
    method: str,
    path: str,
    status_code: int,
    duration_ms: float,
    **metadata: Any,
) -> None:
    """Emit outgoing HTTP request metrics.

    Args:
        method: HTTP method (GET, POST, etc.)
        path: Request path
        status_code: HTTP status code (0 when no response arrived)
        duration_ms: Request duration in milliseconds
        **metadata: Additional metadata (request_id, etc.)
    """
    dimensions = {
        "Method": method,
        "Path": _normalize_path(path),
        "StatusCode": str(status_code),
    }

    get_metrics().emit_metrics(
        metrics=[
            {"MetricName": "RequestCount", "Value": 1, "Unit": "Count"},
            {"MetricName": "RequestDuration", "Value": duration_ms, "Unit": "Milliseconds"},
        ],
        dimensions=dimensions,
        metadata={"request_path": path, **metadata},
    )


def emit_error(
    error_code: str,
    status_code: int | None = None,
    path: str | None = None,
    **metadata: Any,
) -> None:
    """Emit error metrics.

    Args:
        error_code: Application error code
        status_code: HTTP status code, if the error came with one
        path: Request path, if the error came from a request
        **metadata: Additional metadata
    """
    if status_code is None:
        severity = "client_side"
    elif status_code >= 500:
        severity = "server_error"
    elif status_code >= 400:
        severity = "client_error"
    else:
        severity = "unknown"

    dimensions = {
        "ErrorCode": error_code,
        "StatusCode": str(status_code) if status_code is not None else "none",
        "Severity": severity,
    }
    if path:
        dimensions["Path"] = _normalize_path(path)

    get_metrics().emit_metrics(
        metrics=[{"MetricName": "ErrorCount", "Value": 1, "Unit": "Count"}],
        dimensions=dimensions,
        metadata=metadata,
    )


def emit_poll(
    success: bool,
    duration_ms: float,
    job_count: int = 0,
    has_active_job: bool = False,
    **metadata: Any,
) -> None:
    """Emit one job-list reconciliation tick.

    Args:
        success: Whether the fetch produced a job list
        duration_ms: Fetch duration in milliseconds
        job_count: Number of jobs returned
        has_active_job: Whether any returned job is pending or processing
        **metadata: Additional metadata
    """
    get_metrics().emit_metrics(
        metrics=[
            {"MetricName": "JobPollCount", "Value": 1, "Unit": "Count"},
            {"MetricName": "JobPollDuration", "Value": duration_ms, "Unit": "Milliseconds"},
            {"MetricName": "JobPollJobCount", "Value": job_count, "Unit": "Count"},
        ],
        dimensions={
            "Success": str(success).lower(),
            "HasActiveJob": str(has_active_job).lower(),
        },
        metadata=metadata,
    )


def emit_job_action(action: str, success: bool, **metadata: Any) -> None:
    """Emit a cancel/retry request outcome."""
    get_metrics().emit_metric(
        metric_name="JobActionCount",
        value=1,
        unit="Count",
        dimensions={"Action": action, "Success": str(success).lower()},
        metadata=metadata,
    )


def emit_wizard_transition(from_step: int, to_step: int, **metadata: Any) -> None:
    """Emit an import wizard step change."""
    get_metrics().emit_metric(
        metric_name="WizardTransitionCount",
        value=1,
        unit="Count",
        dimensions={"FromStep": str(from_step), "ToStep": str(to_step)},
        metadata=metadata,
    )


def _normalize_path(path: str) -> str:
    """Collapse UUID and numeric path segments into ``{id}``."""
    path = re.sub(
        r"/[0-9a-f]{8}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{12}(?=/|$)",
        "/{id}",
        path,
        flags=re.IGNORECASE,
    )
    return re.sub(r"/\d+(?=/|$)", "/{id}", path)

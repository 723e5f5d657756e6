from __future__ import annotations

import logging
from typing import Any

from app.config import settings

logger = logging.getLogger("app.metrics")


class MetricsReporter:
    """Emits counters, gauges and timings as structured log lines."""

    def __init__(self, *, namespace: str | None = None, disabled: bool | None = None) -> None:
        self._namespace = namespace or settings.metrics_namespace or "workforce_signal"
        self._disabled = settings.metrics_disable if disabled is None else disabled

    def timing(self, metric: str, value_ms: float, *, tags: dict[str, Any] | None = None) -> None:
        self._emit("timing", metric, value_ms, tags=tags)

    def gauge(self, metric: str, value: float, *, tags: dict[str, Any] | None = None) -> None:
        self._emit("gauge", metric, value, tags=tags)

    def increment(
        self, metric: str, value: float = 1.0, *, tags: dict[str, Any] | None = None
    ) -> None:
        self._emit("counter", metric, value, tags=tags)

    def _emit(
        self, metric_type: str, metric: str, value: float, *, tags: dict[str, Any] | None
    ) -> None:
        if self._disabled or value is None:
            return
        payload = {
            "metric": self._normalize_metric(metric),
            "value": round(float(value), 4),
            "type": metric_type,
            "tags": tags or {},
        }
        logger.info(f"{self._namespace}.metric", extra={"metrics": payload})

    def _normalize_metric(self, metric: str) -> str:
        trimmed = (metric or "").strip()
        if trimmed.startswith(f"{self._namespace}."):
            return trimmed
        return f"{self._namespace}.{trimmed}" if trimmed else self._namespace


metrics = MetricsReporter()
